"""Data models for identities and resource-role grants."""

from .identity import (
    Identity,
    IdentityRecord,
    IdentityStatus,
    Meta,
    ResourceRole,
    record_key,
)

__all__ = [
    "Identity",
    "IdentityRecord",
    "IdentityStatus",
    "Meta",
    "ResourceRole",
    "record_key",
]
