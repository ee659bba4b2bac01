"""
Principal Model

The acting party in an authorization decision, resolved once at the API
boundary into one of two shapes:

- FullTrust: administrative trust, every check passes
- CapabilitySet: an identity holding a list of resource-role grants

Principals are immutable; permission tables derived from them live in a
separate per-call context (see policy.PermissionTable).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, Iterable, Optional, Tuple, Union

from ...data.models.identity import ResourceRole
from ..capability import resolve_generated_resources


class PrincipalType(str, Enum):
    """Type of principal"""
    FULL_TRUST = "full_trust"          # Administrative trust (internal operations)
    CAPABILITY_SET = "capability_set"  # Identity acting with its own grants


@dataclass(frozen=True)
class FullTrust:
    """Full administrative trust. Used for bootstrap and internal operations."""
    principal_type: ClassVar[PrincipalType] = PrincipalType.FULL_TRUST
    label: str = "system"

    @property
    def holder(self) -> Optional[str]:
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {"principal_type": self.principal_type.value, "label": self.label}


@dataclass(frozen=True)
class CapabilitySet:
    """An identity and the resource-role grants it holds."""
    principal_type: ClassVar[PrincipalType] = PrincipalType.CAPABILITY_SET
    holder: str
    grants: Tuple[ResourceRole, ...] = ()

    @classmethod
    def from_roles(cls, holder: str, roles: Iterable[Any]) -> "CapabilitySet":
        """
        Create from stored grants (ResourceRole models or their dicts).

        ``generateResource`` directives are bound to the holder, so a
        self-scoped grant never widens into an unrestricted one.

        Raises:
            NotSupported: a grant carries an unknown directive
        """
        grants = [
            r if isinstance(r, ResourceRole) else ResourceRole.model_validate(r)
            for r in roles
        ]
        return cls(holder=holder, grants=tuple(resolve_generated_resources(grants, holder)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "principal_type": self.principal_type.value,
            "holder": self.holder,
            "grants": [g.to_dict() for g in self.grants],
        }


Principal = Union[FullTrust, CapabilitySet]

FULL_TRUST = FullTrust()


def is_full_trust(principal: Principal) -> bool:
    """Check if a principal bypasses permission checks"""
    return isinstance(principal, FullTrust)


def principal_from_dict(data: Dict[str, Any]) -> Principal:
    """Deserialize either principal shape"""
    principal_type = PrincipalType(data["principal_type"])
    if principal_type == PrincipalType.FULL_TRUST:
        return FullTrust(label=data.get("label", "system"))
    return CapabilitySet.from_roles(data["holder"], data.get("grants", []))
