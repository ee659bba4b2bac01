"""
Data layer for the identity service.

Contains models and repositories for identity records and their
resource-role grants.
"""

from .models import Identity, IdentityRecord, IdentityStatus, Meta, ResourceRole, record_key
from .repos import IdentityRepository

__all__ = [
    "Identity",
    "IdentityRecord",
    "IdentityStatus",
    "Meta",
    "ResourceRole",
    "record_key",
    "IdentityRepository",
]
