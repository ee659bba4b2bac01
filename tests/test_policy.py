"""
Test Permission Oracle

Verifies permission tables built from principals and the oracle's
resource-scoped decisions.
"""

import pytest

from identity_authz.core.auth.policy import PermissionOracle, PermissionTable, PolicyDecision
from identity_authz.core.auth.principal import FULL_TRUST, CapabilitySet, principal_from_dict
from identity_authz.core.permissions import IdentityPermission
from identity_authz.core.roles import Role, RoleLookup, StaticRoleCatalog, default_roles
from identity_authz.data.models.identity import ResourceRole
from identity_authz.errors import PermissionDenied, RoleNotSupported

ALICE = "urn:identity:alice"
BOB = "urn:identity:bob"


def make_lookup(role_base_url: str = "") -> RoleLookup:
    return RoleLookup([
        Role(id="reader", sys_permission=("IDENTITY_ACCESS",)),
        Role(id="editor", sys_permission=("IDENTITY_ACCESS", "IDENTITY_UPDATE")),
        Role(id="retired", sys_permission=("IDENTITY_META_UPDATE",), sys_status="deleted"),
    ], role_base_url=role_base_url)


class TestRoleLookup:
    """Test role resolution against a catalog snapshot"""

    def test_resolve_known_role(self):
        role = make_lookup().resolve("editor")
        assert role.sys_permission == ("IDENTITY_ACCESS", "IDENTITY_UPDATE")

    def test_unknown_role_not_supported(self):
        with pytest.raises(RoleNotSupported) as exc_info:
            make_lookup().resolve("nobody")
        assert exc_info.value.details["sysRole"] == "nobody"

    def test_deleted_role_not_supported(self):
        with pytest.raises(RoleNotSupported):
            make_lookup().resolve("retired")

    def test_qualified_role_id_resolves(self):
        lookup = make_lookup("https://example.com/roles")
        assert lookup.resolve("https://example.com/roles/reader").id == "reader"

    def test_qualify_and_normalize(self):
        lookup = make_lookup("https://example.com/roles/")
        assert lookup.qualify("reader") == "https://example.com/roles/reader"
        assert lookup.qualify("urn:role:reader") == "urn:role:reader"
        assert lookup.normalize("https://example.com/roles/reader") == "reader"

    def test_qualify_without_base_url(self):
        assert make_lookup().qualify("reader") == "reader"

    @pytest.mark.asyncio
    async def test_static_catalog_snapshot(self):
        catalog = StaticRoleCatalog([{"id": "reader", "sysPermission": ["IDENTITY_ACCESS"]}])
        lookup = await catalog.snapshot()
        assert lookup.resolve("reader").sys_permission == ("IDENTITY_ACCESS",)

    def test_default_roles(self):
        roles = {role.id: role for role in default_roles()}
        assert "IDENTITY_CAPABILITY_DELEGATE" in roles["identity.regular"].sys_permission
        assert "IDENTITY_META_UPDATE" not in roles["identity.regular"].sys_permission
        assert len(roles["identity.admin"].sys_permission) == len(IdentityPermission)


class TestPermissionTable:
    """Test permission tables derived from capability sets"""

    def test_full_trust_holds_everything(self):
        table = PermissionTable.build(FULL_TRUST, make_lookup())
        assert table.full_trust
        assert table.holds("ANYTHING", ["x"])
        assert table.holds_unrestricted("ANYTHING")

    def test_restricted_grant(self):
        principal = CapabilitySet.from_roles(ALICE, [{"sysRole": "editor", "resource": [ALICE]}])
        table = PermissionTable.build(principal, make_lookup())

        assert table.holds("IDENTITY_UPDATE", [ALICE])
        assert table.holds("IDENTITY_UPDATE", [BOB, ALICE])
        assert not table.holds("IDENTITY_UPDATE", [BOB])
        assert not table.holds_unrestricted("IDENTITY_UPDATE")

    def test_permission_held_at_all(self):
        principal = CapabilitySet.from_roles(ALICE, [{"sysRole": "reader", "resource": [ALICE]}])
        table = PermissionTable.build(principal, make_lookup())
        assert table.holds("IDENTITY_ACCESS")
        assert not table.holds("IDENTITY_UPDATE")

    def test_unrestricted_grant_wins(self):
        principal = CapabilitySet.from_roles(ALICE, [
            {"sysRole": "reader", "resource": [ALICE]},
            {"sysRole": "editor"},
        ])
        table = PermissionTable.build(principal, make_lookup())
        assert table.holds_unrestricted("IDENTITY_ACCESS")
        assert table.holds("IDENTITY_ACCESS", [BOB])

    def test_resources_accumulate_across_grants(self):
        principal = CapabilitySet.from_roles(ALICE, [
            {"sysRole": "reader", "resource": [ALICE]},
            {"sysRole": "editor", "resource": [BOB]},
        ])
        table = PermissionTable.build(principal, make_lookup())
        assert table.grants["IDENTITY_ACCESS"] == frozenset({ALICE, BOB})
        assert table.grants["IDENTITY_UPDATE"] == frozenset({BOB})

    def test_unsupported_role_confers_nothing(self):
        principal = CapabilitySet.from_roles(ALICE, [
            {"sysRole": "nobody"},
            {"sysRole": "retired"},
        ])
        table = PermissionTable.build(principal, make_lookup())
        assert table.grants == {}

    def test_self_scoped_grant_bound_to_holder(self):
        principal = CapabilitySet.from_roles(ALICE, [{"sysRole": "editor", "generateResource": "id"}])
        table = PermissionTable.build(principal, make_lookup())

        assert principal.grants[0].resource == [ALICE]
        assert table.holds("IDENTITY_UPDATE", [ALICE])
        assert not table.holds("IDENTITY_UPDATE", [BOB])
        assert not table.holds_unrestricted("IDENTITY_UPDATE")

    def test_unresolved_grant_confers_nothing(self):
        principal = CapabilitySet(
            holder=ALICE, grants=(ResourceRole(sys_role="editor", generate_resource="id"),)
        )
        table = PermissionTable.build(principal, make_lookup())
        assert table.grants == {}
        assert not table.holds("IDENTITY_UPDATE", [BOB])

    def test_enum_permission_accepted(self):
        principal = CapabilitySet.from_roles(ALICE, [{"sysRole": "reader", "resource": ALICE}])
        table = PermissionTable.build(principal, make_lookup())
        assert table.holds(IdentityPermission.ACCESS, [ALICE])


class TestPermissionOracle:
    """Test oracle decisions"""

    def setup_method(self):
        self.oracle = PermissionOracle()
        principal = CapabilitySet.from_roles(ALICE, [{"sysRole": "editor", "resource": [ALICE]}])
        self.table = PermissionTable.build(principal, make_lookup())

    def test_allow(self):
        decision, reason = self.oracle.authorize(self.table, "IDENTITY_UPDATE", [ALICE])
        assert decision == PolicyDecision.ALLOW
        assert "IDENTITY_UPDATE" in reason

    def test_deny(self):
        decision, reason = self.oracle.authorize(self.table, "IDENTITY_UPDATE", [BOB])
        assert decision == PolicyDecision.DENY
        assert BOB in reason

    def test_unrestricted_required(self):
        decision, _ = self.oracle.authorize(self.table, "IDENTITY_UPDATE", unrestricted=True)
        assert decision == PolicyDecision.DENY

    def test_check_raises_with_details(self):
        with pytest.raises(PermissionDenied) as exc_info:
            self.oracle.check(self.table, IdentityPermission.UPDATE, [BOB])

        error = exc_info.value
        assert error.permission == "IDENTITY_UPDATE"
        assert error.resources == [BOB]
        assert error.to_dict()["details"] == {"sysPermission": "IDENTITY_UPDATE", "resource": [BOB]}

    def test_full_trust_always_allowed(self):
        table = PermissionTable.build(FULL_TRUST, make_lookup())
        decision, _ = self.oracle.authorize(table, "IDENTITY_META_UPDATE", unrestricted=True)
        assert decision == PolicyDecision.ALLOW


class TestPrincipals:
    """Test principal serialization"""

    def test_capability_set_round_trip(self):
        principal = CapabilitySet.from_roles(ALICE, [{"sysRole": "reader", "resource": [ALICE]}])
        restored = principal_from_dict(principal.to_dict())
        assert restored == principal

    def test_full_trust_round_trip(self):
        assert principal_from_dict(FULL_TRUST.to_dict()) == FULL_TRUST
        assert FULL_TRUST.holder is None
