"""
Capability Expander

Turns resource-role grants into flat (permission, resource-list) capabilities,
the unit the delegation validator reasons about, and runs the registered
resource translators over them.

Expansion produces one capability per (permission, resource) pair so that
every named resource has to be justified on its own.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, List, Mapping, Optional, Tuple

from ..data.models.identity import ResourceRole
from ..errors import NotSupported
from .roles import RoleLookup

logger = logging.getLogger(__name__)

GENERATE_RESOURCE_ID = "id"


@dataclass(frozen=True)
class Capability:
    """A permission over a resource list (None = unrestricted). Derived, never stored."""
    permission: str
    resources: Optional[Tuple[str, ...]] = None

    @property
    def is_unrestricted(self) -> bool:
        return self.resources is None

    def with_resources(self, extra: Iterable[str]) -> "Capability":
        """Return a copy with extra resources appended (deduplicated, order kept)"""
        if self.resources is None:
            return self
        merged = tuple(dict.fromkeys(self.resources + tuple(extra)))
        return Capability(self.permission, merged)


# A translator takes a capability plus owners already known to the caller
# (records not persisted yet) and returns a new capability.
Translator = Callable[[Capability, Mapping[str, str]], Awaitable[Capability]]


def generate_resource(role: ResourceRole, identity_id: str) -> ResourceRole:
    """
    Merge an identity id into a grant's resource list.

    The id is appended if not already present and the ``generateResource``
    directive is dropped.
    """
    resources = list(role.resource or [])
    if identity_id not in resources:
        resources.append(identity_id)
    return role.model_copy(update={"resource": resources, "generate_resource": None})


def resolve_generated_resources(roles: Iterable[ResourceRole], identity_id: str) -> List[ResourceRole]:
    """
    Resolve every ``generateResource`` directive against the owning identity.

    Raises:
        NotSupported: for any directive other than "id"
    """
    resolved = []
    for role in roles:
        if role.generate_resource == GENERATE_RESOURCE_ID:
            role = generate_resource(role, identity_id)
        elif role.generate_resource is not None:
            raise NotSupported(
                "Unknown resource role directive.",
                {"sysResourceRole": role.to_dict()}
            )
        resolved.append(role)
    return resolved


class CapabilityExpander:
    """
    Expands grants into capabilities and applies resource translators.

    Translators run in registration order, only on capabilities with a
    defined resource list.
    """

    def __init__(self, translators: Optional[Iterable[Translator]] = None):
        self._translators: List[Translator] = list(translators or [])

    def register_translator(self, translator: Translator) -> None:
        """Register an additional resource translator (e.g. sub-resource to parent)"""
        self._translators.append(translator)
        logger.debug(f"Registered capability translator: {getattr(translator, '__name__', translator)}")

    @property
    def translators(self) -> List[Translator]:
        return list(self._translators)

    def expand(self, roles: Iterable[ResourceRole], lookup: RoleLookup) -> List[Capability]:
        """
        Expand grants into a deduplicated capability list.

        Raises:
            RoleNotSupported: a grant names an unknown or deleted role
            NotSupported: a grant still carries an unresolved directive
        """
        capabilities = []
        for role in roles:
            if role.generate_resource is not None:
                raise NotSupported(
                    "Resource role directive must be resolved before expansion.",
                    {"sysResourceRole": role.to_dict()}
                )
            resolved = lookup.resolve(role.sys_role)
            resources = role.resource if role.resource is not None else [None]
            for permission in resolved.sys_permission:
                for resource in resources:
                    capabilities.append(Capability(
                        permission=permission,
                        resources=(resource,) if resource is not None else None,
                    ))
        return list(dict.fromkeys(capabilities))

    async def translate(
        self,
        capability: Capability,
        known_owners: Optional[Mapping[str, str]] = None
    ) -> Capability:
        """Run every registered translator over a capability with a defined resource list"""
        if capability.is_unrestricted:
            return capability
        known_owners = known_owners or {}
        for translator in self._translators:
            capability = await translator(capability, known_owners)
        return capability
