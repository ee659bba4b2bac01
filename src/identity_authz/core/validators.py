"""
Capability Validators

Checks run before any identity mutation is written:

- validate_capability_delegation: the actor may grant these resource roles
- validate_capability_revocation: the actor may remove these resource roles
- ensure_membership_valid: every group joined exists, is active, and the
  actor may manage its membership

All three fail fast on the first violation, in list order.
"""

import logging
from typing import Iterable, List, Mapping, Optional

from ..data.models.identity import Identity, IdentityRecord, ResourceRole
from ..data.repos.identity import IdentityRepository
from ..errors import NotAllowed
from .context import AuthorizationContext
from .permissions import IdentityPermission

logger = logging.getLogger(__name__)


async def validate_capability_delegation(
    context: AuthorizationContext,
    roles: Iterable[ResourceRole],
    known_owners: Optional[Mapping[str, str]] = None
) -> None:
    """
    Require the actor to hold every capability it is about to grant.

    For each capability the actor must hold the capability's own permission
    and IDENTITY_CAPABILITY_DELEGATE over the (ownership-translated)
    resource list. A capability without resource restriction can only be
    delegated by an actor holding both permissions without restriction.

    Raises:
        RoleNotSupported: a grant names an unknown or deleted role
        PermissionDenied: on the first capability the actor may not delegate
    """
    if context.full_trust:
        return

    roles = list(roles)
    capabilities = context.expander.expand(roles, context.lookup)
    logger.debug(f"Validating delegation of {len(capabilities)} capabilities by {context.holder}")

    for capability in capabilities:
        capability = await context.expander.translate(capability, known_owners)
        unrestricted = capability.is_unrestricted
        context.oracle.check(
            context.table, capability.permission, capability.resources, unrestricted=unrestricted
        )
        context.oracle.check(
            context.table, IdentityPermission.CAPABILITY_DELEGATE, capability.resources,
            unrestricted=unrestricted
        )


async def validate_capability_revocation(
    context: AuthorizationContext,
    identity_id: str,
    roles: Iterable[ResourceRole]
) -> None:
    """
    Require the actor to be allowed to remove these grants from an identity.

    IDENTITY_META_UPDATE over the identity (ownership-translated) allows any
    removal. Otherwise every resource named by every removed grant must be
    covered by IDENTITY_CAPABILITY_REVOKE, regardless of who issued the grant.
    Grants without resource restriction need unrestricted revoke.

    Raises:
        PermissionDenied: on the first resource the actor may not revoke
    """
    if context.full_trust:
        return

    roles = list(roles)
    if not roles:
        return

    managed = await context.resolve_resources(IdentityPermission.META_UPDATE, [identity_id])
    if context.holds(IdentityPermission.META_UPDATE, managed):
        logger.debug(f"{context.holder} manages {identity_id}; revocation allowed")
        return

    for role in roles:
        if role.resource is None:
            context.oracle.check(
                context.table, IdentityPermission.CAPABILITY_REVOKE, None, unrestricted=True
            )
            continue
        for resource in role.resource:
            context.oracle.check(context.table, IdentityPermission.CAPABILITY_REVOKE, [resource])


async def ensure_membership_valid(
    context: AuthorizationContext,
    identity: Identity,
    store: IdentityRepository,
    known_owners: Optional[Mapping[str, str]] = None
) -> List[IdentityRecord]:
    """
    Validate the groups an identity claims to join.

    Returns:
        The resolved group records

    Raises:
        NotAllowed: a group does not exist, is not a Group, or is not active
        PermissionDenied: the actor lacks IDENTITY_UPDATE_MEMBERSHIP over a group
    """
    groups = []
    for group_id in dict.fromkeys(identity.member_of):
        group = await store.find_active_group(group_id)
        if group is None:
            logger.warning(f"Identity {identity.id} references unknown or inactive group {group_id}")
            raise NotAllowed(
                "Could not join group; group not found or not active.",
                {"id": identity.id, "group": group_id}
            )
        groups.append(group)

    for group in groups:
        await context.check(
            IdentityPermission.UPDATE_MEMBERSHIP,
            [group.identity.id],
            translate=True,
            known_owners=known_owners,
        )
    return groups
