"""Identity permission names."""

from enum import Enum


class IdentityPermission(str, Enum):
    """Permissions checked by the identity service"""
    ACCESS = "IDENTITY_ACCESS"
    INSERT = "IDENTITY_INSERT"
    UPDATE = "IDENTITY_UPDATE"
    META_UPDATE = "IDENTITY_META_UPDATE"            # status and blanket role management
    UPDATE_MEMBERSHIP = "IDENTITY_UPDATE_MEMBERSHIP"  # join an identity to a group
    CAPABILITY_DELEGATE = "IDENTITY_CAPABILITY_DELEGATE"
    CAPABILITY_REVOKE = "IDENTITY_CAPABILITY_REVOKE"

    def __str__(self) -> str:
        return self.value


# Permission sets used by the built-in roles
PERM_REGULAR = [
    IdentityPermission.ACCESS,
    IdentityPermission.UPDATE,
    IdentityPermission.INSERT,
    IdentityPermission.UPDATE_MEMBERSHIP,
    IdentityPermission.CAPABILITY_DELEGATE,
    IdentityPermission.CAPABILITY_REVOKE,
]
PERM_ADMIN = list(IdentityPermission)
