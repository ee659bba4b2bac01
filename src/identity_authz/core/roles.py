"""
Role Catalog

Resolves role identifiers to permission sets. The catalog itself is an
external collaborator; the service takes one snapshot of it per call
(RoleLookup) and discards it afterwards.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote, unquote

from ..errors import RoleNotSupported
from .permissions import PERM_ADMIN, PERM_REGULAR

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Role:
    """A named, flat permission set"""
    id: str
    sys_permission: tuple = ()
    sys_status: str = "active"
    label: Optional[str] = None
    comment: Optional[str] = None

    @property
    def is_deleted(self) -> bool:
        return self.sys_status == "deleted"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Role":
        """Deserialize from catalog wire format (``sysPermission``, ``sysStatus``)"""
        return cls(
            id=data["id"],
            sys_permission=tuple(str(p) for p in data.get("sysPermission", [])),
            sys_status=data.get("sysStatus", "active"),
            label=data.get("label"),
            comment=data.get("comment"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sysPermission": list(self.sys_permission),
            "sysStatus": self.sys_status,
            "label": self.label,
            "comment": self.comment,
        }


def default_roles() -> List[Role]:
    """Built-in roles used when configuration defines none"""
    return [
        Role(
            id="identity.regular",
            sys_permission=tuple(str(p) for p in PERM_REGULAR),
            label="Identity Regular",
            comment="Manage and delegate capabilities over the identity itself.",
        ),
        Role(
            id="identity.admin",
            sys_permission=tuple(str(p) for p in PERM_ADMIN),
            label="Identity Administrator",
        ),
    ]


class RoleCatalog(ABC):
    """Role catalog contract: one call returning every known role"""

    @abstractmethod
    async def get_roles(self) -> List[Role]:
        pass

    async def snapshot(self, role_base_url: str = "") -> "RoleLookup":
        """Fetch the catalog once and wrap it for lookups during one authorization pass"""
        return RoleLookup(await self.get_roles(), role_base_url=role_base_url)


class StaticRoleCatalog(RoleCatalog):
    """Catalog backed by configuration (``permission.roles``)"""

    def __init__(self, roles: Iterable[Any] = ()):
        self._roles: Dict[str, Role] = {}
        for role in roles:
            self.add_role(role if isinstance(role, Role) else Role.from_dict(role))

    def add_role(self, role: Role) -> None:
        self._roles[role.id] = role
        logger.debug(f"Registered role: {role.id} ({len(role.sys_permission)} permissions)")

    async def get_roles(self) -> List[Role]:
        return list(self._roles.values())


@dataclass
class RoleLookup:
    """
    Per-call snapshot of the role catalog.

    Role ids may be bare ("identity.regular") or prefixed with the configured
    role base URL ("https://example.com/roles/identity.regular").
    """
    roles: List[Role]
    role_base_url: str = ""
    _by_id: Dict[str, Role] = field(init=False, repr=False, default_factory=dict)

    def __post_init__(self):
        self._by_id = {role.id: role for role in self.roles}

    def normalize(self, role_id: str) -> str:
        """Strip the role base URL from a role id"""
        prefix = self.role_base_url.rstrip("/") + "/" if self.role_base_url else ""
        if prefix and role_id.startswith(prefix):
            return unquote(role_id[len(prefix):])
        return role_id

    def qualify(self, role_id: str) -> str:
        """Prefix a bare role id with the role base URL (ids containing ':' are left alone)"""
        if not self.role_base_url or ":" in role_id:
            return role_id
        return f"{self.role_base_url.rstrip('/')}/{quote(role_id, safe='')}"

    def resolve(self, role_id: str) -> Role:
        """
        Resolve a role id to its role.

        Raises:
            RoleNotSupported: role is unknown or deleted
        """
        role = self._by_id.get(self.normalize(role_id))
        if role is None or role.is_deleted:
            raise RoleNotSupported(
                f"Role not supported: {role_id}",
                {"sysRole": role_id}
            )
        return role
