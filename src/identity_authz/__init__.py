"""
Identity Authorization

Identity records guarded by resource-role capabilities: who may read,
change, delegate and revoke what, with optimistic concurrency on every write.
"""

__version__ = "0.1.0"

from .errors import (
    DuplicateError,
    IdentityError,
    InvalidState,
    NotAllowed,
    NotFound,
    NotSupported,
    PermissionDenied,
    RoleNotSupported,
    ValidationError,
)
from .data import Identity, IdentityRecord, IdentityRepository, IdentityStatus, Meta, ResourceRole
from .core import (
    FULL_TRUST,
    CapabilitySet,
    IdentityPermission,
    IdentityService,
    create_service,
    load_bootstrap_identities,
)

__all__ = [
    "__version__",
    "DuplicateError",
    "IdentityError",
    "InvalidState",
    "NotAllowed",
    "NotFound",
    "NotSupported",
    "PermissionDenied",
    "RoleNotSupported",
    "ValidationError",
    "Identity",
    "IdentityRecord",
    "IdentityRepository",
    "IdentityStatus",
    "Meta",
    "ResourceRole",
    "FULL_TRUST",
    "CapabilitySet",
    "IdentityPermission",
    "IdentityService",
    "create_service",
    "load_bootstrap_identities",
]
