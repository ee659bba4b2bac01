"""
Test Capability Delegation

An actor may grant a capability only if it holds the capability itself and
holds IDENTITY_CAPABILITY_DELEGATE over the same (ownership-translated)
resources.
"""

import pytest

from conftest import READER, REGULAR, self_role
from identity_authz.core.auth.principal import FULL_TRUST
from identity_authz.core.validators import validate_capability_delegation
from identity_authz.data.models.identity import ResourceRole
from identity_authz.errors import PermissionDenied, RoleNotSupported

ALICE = "urn:identity:alice"
BOB = "urn:identity:bob"
GROUP = "urn:identity:group"


def grant(role: str, *resources: str) -> ResourceRole:
    return ResourceRole(sys_role=role, resource=list(resources) if resources else None)


async def setup_identities(service):
    """Alice and Bob, each holding the regular role over themselves"""
    await service.insert(FULL_TRUST, {"id": ALICE}, self_role())
    await service.insert(FULL_TRUST, {"id": BOB}, self_role())
    return await service.resolve_principal(ALICE)


class TestDelegation:
    """Test delegation validation"""

    @pytest.mark.asyncio
    async def test_full_trust_may_delegate_anything(self, service):
        context = await service.context(FULL_TRUST)
        await validate_capability_delegation(context, [grant(REGULAR)])

    @pytest.mark.asyncio
    async def test_delegate_over_own_resource(self, service):
        alice = await setup_identities(service)
        context = await service.context(alice)
        await validate_capability_delegation(context, [grant(REGULAR, ALICE)])

    @pytest.mark.asyncio
    async def test_cannot_delegate_over_foreign_resource(self, service):
        alice = await setup_identities(service)
        context = await service.context(alice)

        with pytest.raises(PermissionDenied) as exc_info:
            await validate_capability_delegation(context, [grant(REGULAR, BOB)])

        # first capability of the role fails first
        assert exc_info.value.permission == "IDENTITY_ACCESS"
        assert exc_info.value.resources == [BOB]

    @pytest.mark.asyncio
    async def test_cannot_delegate_unrestricted_capability(self, service):
        alice = await setup_identities(service)
        context = await service.context(alice)

        with pytest.raises(PermissionDenied) as exc_info:
            await validate_capability_delegation(context, [grant(READER)])
        assert exc_info.value.resources is None

    @pytest.mark.asyncio
    async def test_holding_capability_without_delegate_permission(self, service):
        await service.insert(FULL_TRUST, {"id": ALICE}, self_role(READER))
        alice = await service.resolve_principal(ALICE)
        context = await service.context(alice)

        with pytest.raises(PermissionDenied) as exc_info:
            await validate_capability_delegation(context, [grant(READER, ALICE)])
        assert exc_info.value.permission == "IDENTITY_CAPABILITY_DELEGATE"

    @pytest.mark.asyncio
    async def test_fails_on_first_invalid_entry(self, service):
        alice = await setup_identities(service)
        context = await service.context(alice)

        with pytest.raises(PermissionDenied) as exc_info:
            await validate_capability_delegation(
                context, [grant(READER, ALICE), grant(READER, BOB), grant(READER, GROUP)]
            )
        assert exc_info.value.resources == [BOB]

    @pytest.mark.asyncio
    async def test_unknown_role(self, service):
        alice = await setup_identities(service)
        context = await service.context(alice)

        with pytest.raises(RoleNotSupported):
            await validate_capability_delegation(context, [grant("nobody", ALICE)])

    @pytest.mark.asyncio
    async def test_admin_with_unrestricted_grants(self, service):
        await service.insert(FULL_TRUST, {"id": ALICE}, {"sysResourceRole": [{"sysRole": "admin"}]})
        alice = await service.resolve_principal(ALICE)
        context = await service.context(alice)

        await validate_capability_delegation(context, [grant(REGULAR), grant(READER, BOB)])


class TestGroupOwnerDelegation:
    """Owners of a group may delegate over the group; plain members may not"""

    async def setup_group(self, service):
        await service.insert(FULL_TRUST, {"id": ALICE}, self_role())
        await service.insert(FULL_TRUST, {"id": BOB}, self_role())
        await service.insert(FULL_TRUST, {"id": GROUP, "type": "Group", "owner": ALICE})
        await service.insert(FULL_TRUST, {"id": "urn:identity:carol", "memberOf": [GROUP]}, self_role())

    @pytest.mark.asyncio
    async def test_owner_may_delegate_over_group(self, service):
        await self.setup_group(service)
        alice = await service.resolve_principal(ALICE)
        context = await service.context(alice)

        await validate_capability_delegation(context, [grant(REGULAR, GROUP)])

    @pytest.mark.asyncio
    async def test_member_may_not_delegate_over_group(self, service):
        await self.setup_group(service)
        carol = await service.resolve_principal("urn:identity:carol")
        context = await service.context(carol)

        with pytest.raises(PermissionDenied):
            await validate_capability_delegation(context, [grant(REGULAR, GROUP)])

    @pytest.mark.asyncio
    async def test_owner_delegates_to_third_identity(self, service):
        await self.setup_group(service)
        alice = await service.resolve_principal(ALICE)
        _, meta = await service.get(FULL_TRUST, BOB)

        record = await service.update_roles(
            alice, BOB, add=[{"sysRole": REGULAR, "resource": [GROUP]}], sequence=meta.sequence
        )

        added = [r for r in record.meta.sys_resource_role if GROUP in (r.resource or [])]
        assert added and added[0].sys_role == REGULAR

    @pytest.mark.asyncio
    async def test_translation_uses_known_owners(self, service):
        await service.insert(FULL_TRUST, {"id": ALICE}, self_role())
        alice = await service.resolve_principal(ALICE)
        context = await service.context(alice)
        new_id = "urn:identity:new"

        with pytest.raises(PermissionDenied):
            await validate_capability_delegation(context, [grant(REGULAR, new_id)])
        await validate_capability_delegation(
            context, [grant(REGULAR, new_id)], known_owners={new_id: ALICE}
        )
