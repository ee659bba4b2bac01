"""
Identity Authorization

Principals and the permission oracle:
- Principal: FullTrust or CapabilitySet (holder + resource-role grants)
- PermissionTable: per-call authorization context derived from a principal
- PermissionOracle: resource-scoped permission decisions
"""

from .principal import (
    FULL_TRUST,
    CapabilitySet,
    FullTrust,
    Principal,
    PrincipalType,
    is_full_trust,
    principal_from_dict,
)
from .policy import (
    PermissionOracle,
    PermissionTable,
    PolicyDecision,
)

__all__ = [
    "FULL_TRUST",
    "CapabilitySet",
    "FullTrust",
    "Principal",
    "PrincipalType",
    "is_full_trust",
    "principal_from_dict",
    "PermissionOracle",
    "PermissionTable",
    "PolicyDecision",
]
