"""
Permission Oracle

Answers one question: does a principal hold a permission over at least one
resource in a resource list. The answer is computed from a PermissionTable,
an explicit authorization context built once per call from the principal's
grants and a snapshot of the role catalog.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional, Sequence, Tuple

from ...errors import IdentityError, PermissionDenied
from ..roles import RoleLookup
from .principal import Principal, is_full_trust

logger = logging.getLogger(__name__)


class PolicyDecision(str, Enum):
    """Authorization decision"""
    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True)
class PermissionTable:
    """
    Permissions held by one principal for the duration of one call.

    ``grants`` maps a permission to the resources it is held over, or to
    None when it is held without resource restriction.
    """
    holder: Optional[str]
    full_trust: bool = False
    grants: Dict[str, Optional[FrozenSet[str]]] = field(default_factory=dict)

    @classmethod
    def build(cls, principal: Principal, lookup: RoleLookup) -> "PermissionTable":
        """
        Expand a principal's grants against the role catalog snapshot.

        Grants naming an unknown or deleted role, and grants still carrying
        a generateResource directive, confer nothing.
        """
        if is_full_trust(principal):
            return cls(holder=None, full_trust=True)

        grants: Dict[str, Optional[set]] = {}
        for grant in principal.grants:
            if grant.generate_resource is not None:
                logger.warning(f"Ignoring unresolved {grant.generate_resource} grant of {grant.sys_role} held by {principal.holder}")
                continue
            try:
                role = lookup.resolve(grant.sys_role)
            except IdentityError:
                logger.warning(f"Ignoring grant of unsupported role {grant.sys_role} held by {principal.holder}")
                continue
            for permission in role.sys_permission:
                if grant.resource is None:
                    grants[permission] = None
                elif permission not in grants:
                    grants[permission] = set(grant.resource)
                elif grants[permission] is not None:
                    grants[permission].update(grant.resource)

        frozen = {p: (frozenset(r) if r is not None else None) for p, r in grants.items()}
        return cls(holder=principal.holder, grants=frozen)

    def holds(self, permission: str, resources: Optional[Iterable[str]] = None) -> bool:
        """
        Check a permission.

        Args:
            permission: Permission name
            resources: Resource list; None asks whether the permission is held at all

        Returns:
            True if held without restriction or over at least one listed resource
        """
        if self.full_trust:
            return True
        permission = str(permission)
        if permission not in self.grants:
            return False
        held = self.grants[permission]
        if held is None or resources is None:
            return True
        return any(r in held for r in resources if r is not None)

    def holds_unrestricted(self, permission: str) -> bool:
        """Check if a permission is held without resource restriction"""
        if self.full_trust:
            return True
        permission = str(permission)
        return permission in self.grants and self.grants[permission] is None


class PermissionOracle:
    """
    Decision point for resource-scoped permission checks.

    Stateless: every answer comes from the PermissionTable passed in.
    """

    def authorize(
        self,
        table: PermissionTable,
        permission: str,
        resources: Optional[Sequence[str]] = None,
        unrestricted: bool = False
    ) -> Tuple[PolicyDecision, str]:
        """
        Make an authorization decision.

        Args:
            table: Permission table of the acting principal
            permission: Permission being checked
            resources: Resource list the permission must overlap
            unrestricted: Require the permission to be held without restriction

        Returns:
            (decision, reason) tuple
        """
        permission = str(permission)
        if table.full_trust:
            return (PolicyDecision.ALLOW, "Full trust")

        if unrestricted:
            allowed = table.holds_unrestricted(permission)
        else:
            allowed = table.holds(permission, resources)

        if allowed:
            logger.debug(f"Authorization ALLOW: {permission} for {table.holder} over {resources}")
            return (PolicyDecision.ALLOW, f"{permission} granted")
        return (PolicyDecision.DENY, f"{permission} not granted over {list(resources) if resources else 'any resource'}")

    def check(
        self,
        table: PermissionTable,
        permission: str,
        resources: Optional[Sequence[str]] = None,
        unrestricted: bool = False
    ) -> None:
        """
        Same as authorize() but raises on deny.

        Raises:
            PermissionDenied: carrying the permission and resource list that failed
        """
        decision, reason = self.authorize(table, permission, resources, unrestricted)
        if decision == PolicyDecision.DENY:
            logger.warning(f"Authorization DENY: {table.holder} - {reason}")
            raise PermissionDenied(str(permission), resources)
