"""
Authorization Context

Short-lived context built once per service call: the acting principal, its
permission table, the role catalog snapshot and the collaborators that the
validator chain needs. Passed explicitly; the principal is never mutated.
"""

import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from .auth.policy import PermissionOracle, PermissionTable
from .auth.principal import Principal, is_full_trust
from .capability import Capability, CapabilityExpander
from .roles import RoleCatalog, RoleLookup

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorizationContext:
    """Everything one authorization pass needs"""
    principal: Principal
    table: PermissionTable
    lookup: RoleLookup
    expander: CapabilityExpander
    oracle: PermissionOracle

    @classmethod
    async def create(
        cls,
        principal: Principal,
        catalog: RoleCatalog,
        expander: CapabilityExpander,
        oracle: PermissionOracle,
        role_base_url: str = ""
    ) -> "AuthorizationContext":
        lookup = await catalog.snapshot(role_base_url)
        return cls(
            principal=principal,
            table=PermissionTable.build(principal, lookup),
            lookup=lookup,
            expander=expander,
            oracle=oracle,
        )

    @property
    def full_trust(self) -> bool:
        return is_full_trust(self.principal)

    @property
    def holder(self) -> Optional[str]:
        return self.principal.holder

    async def resolve_resources(
        self,
        permission: str,
        resources: Sequence[str],
        known_owners: Optional[Mapping[str, str]] = None
    ) -> Sequence[str]:
        """Run the capability translators over a resource list"""
        capability = await self.expander.translate(
            Capability(str(permission), tuple(resources)), known_owners
        )
        return capability.resources

    async def check(
        self,
        permission: str,
        resources: Optional[Sequence[str]] = None,
        translate: bool = False,
        known_owners: Optional[Mapping[str, str]] = None
    ) -> None:
        """
        Check a permission for the acting principal.

        Args:
            permission: Permission name
            resources: Resource list, None to check the permission is held at all
            translate: Run capability translators (ownership) over the resources first
            known_owners: Owners of records that are not persisted yet

        Raises:
            PermissionDenied
        """
        if self.full_trust:
            return
        if translate and resources:
            resources = await self.resolve_resources(permission, resources, known_owners)
        self.oracle.check(self.table, permission, resources)

    def holds(self, permission: str, resources: Optional[Sequence[str]] = None) -> bool:
        return self.table.holds(permission, resources)
