"""
Identity Errors

Error taxonomy for the identity authorization engine. Every error carries a
``details`` dict so callers (and logs) can see which permission, resource or
record caused the failure.
"""

from typing import Any, Dict, Optional


class IdentityError(Exception):
    """Base error for identity operations."""

    name = "IdentityError"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for logging and transport layers"""
        return {
            "name": self.name,
            "message": self.message,
            "details": self.details,
        }


class PermissionDenied(IdentityError):
    """Actor lacks a permission over a resource list."""

    name = "PermissionDenied"

    def __init__(self, permission: str, resources=None, message: Optional[str] = None):
        resources = list(resources) if resources is not None else None
        super().__init__(
            message or f"Permission denied; {permission} not granted.",
            {"sysPermission": permission, "resource": resources},
        )
        self.permission = permission
        self.resources = resources


class NotFound(IdentityError):
    """Referenced identity does not exist."""

    name = "NotFound"


class NotAllowed(IdentityError):
    """Referenced group is missing or inactive."""

    name = "NotAllowed"


class NotSupported(IdentityError):
    """Unknown role or resource-role directive (configuration error)."""

    name = "NotSupported"


class RoleNotSupported(NotSupported):
    """Role id is not in the catalog or has been deleted."""


class DuplicateError(IdentityError):
    """Identity id already exists."""

    name = "DuplicateError"


class InvalidState(IdentityError):
    """Sequence mismatch or a lost optimistic-concurrency race."""

    name = "InvalidState"


class ValidationError(IdentityError):
    """Patched identity fails the attribute schema or field allow-list."""

    name = "ValidationError"
