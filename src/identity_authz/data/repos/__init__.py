"""Data repositories for identity records."""

from .identity import IdentityRepository, is_duplicate_error

__all__ = [
    "IdentityRepository",
    "is_duplicate_error",
]
