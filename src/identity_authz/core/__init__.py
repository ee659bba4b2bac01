"""
Identity Authorization Core

Capability-based authorization for identity records.
"""

from .permissions import IdentityPermission, PERM_ADMIN, PERM_REGULAR
from .roles import Role, RoleCatalog, RoleLookup, StaticRoleCatalog, default_roles
from .capability import (
    GENERATE_RESOURCE_ID,
    Capability,
    CapabilityExpander,
    generate_resource,
    resolve_generated_resources,
)
from .ownership import OwnershipTranslator
from .auth import (
    FULL_TRUST,
    CapabilitySet,
    FullTrust,
    Principal,
    PermissionOracle,
    PermissionTable,
    PolicyDecision,
    is_full_trust,
)
from .context import AuthorizationContext
from .validators import (
    ensure_membership_valid,
    validate_capability_delegation,
    validate_capability_revocation,
)
from .hooks import POST_INSERT, PRE_INSERT, HookRegistry, InsertEvent
from .schema import IdentitySchemaValidator, identity_schema
from .identity_service import IdentityService, create_service, diff_roles, merge_roles
from .bootstrap import load_bootstrap_identities

__all__ = [
    # Permissions and roles
    "IdentityPermission",
    "PERM_ADMIN",
    "PERM_REGULAR",
    "Role",
    "RoleCatalog",
    "RoleLookup",
    "StaticRoleCatalog",
    "default_roles",
    # Capabilities
    "GENERATE_RESOURCE_ID",
    "Capability",
    "CapabilityExpander",
    "generate_resource",
    "resolve_generated_resources",
    "OwnershipTranslator",
    # Principals and oracle
    "FULL_TRUST",
    "CapabilitySet",
    "FullTrust",
    "Principal",
    "PermissionOracle",
    "PermissionTable",
    "PolicyDecision",
    "is_full_trust",
    "AuthorizationContext",
    # Validators
    "ensure_membership_valid",
    "validate_capability_delegation",
    "validate_capability_revocation",
    # Hooks and schema
    "POST_INSERT",
    "PRE_INSERT",
    "HookRegistry",
    "InsertEvent",
    "IdentitySchemaValidator",
    "identity_schema",
    # Service
    "IdentityService",
    "create_service",
    "diff_roles",
    "merge_roles",
    "load_bootstrap_identities",
]
