"""
Identity Service Configuration Schema

Defines the configuration structure for the identity service.
All configuration can be specified via identity.yaml or environment variables.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from pathlib import Path


@dataclass
class IdentityConfig:
    """Configuration for identity records"""
    # Attributes that update() may change; None allows any attribute except id
    fields: Optional[List[str]] = None
    # Defaults merged under every inserted identity
    defaults: Dict[str, Any] = field(default_factory=dict)
    # Identities inserted at startup (duplicates are ignored)
    identities: List[Dict[str, Any]] = field(default_factory=list)
    # Extension deep-merged into the base identity JSON schema
    schema: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PermissionConfig:
    """Configuration for the role catalog"""
    # role id -> {"sysPermission": [...], "sysStatus": "active", "label": ...}
    roles: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    # When set, role ids returned by get() are qualified with this URL
    role_base_url: str = ""
    # Maximum owner-of-owner levels followed by ownership translation
    ownership_depth: int = 4


@dataclass
class StoreConfig:
    """Configuration for the record store"""
    type: str = "memory"  # "memory" or "table" (client passed to create_service)
    # Additional store options
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ServiceConfig:
    """
    Central configuration for the identity service.

    This configuration can be loaded from:
    - identity.yaml (primary)
    - Environment variables (interpolated into identity.yaml)
    - Programmatic defaults

    Example identity.yaml:
    ```yaml
    service:
      id: "identity"
      name: "Identity Service"

    identity:
      fields: ["label", "email", "description", "memberOf"]
      identities:
        - id: "https://example.com/i/admin"
          type: "Person"
          sysResourceRole:
            - sysRole: "identity.admin"

    permission:
      role_base_url: "${ROLE_BASE_URL:-}"
      roles:
        identity.regular:
          sysPermission: ["IDENTITY_ACCESS", "IDENTITY_UPDATE"]

    store:
      type: memory
    ```
    """
    # Service identity
    id: str = "identity"
    name: str = "Identity Service"
    version: str = "0.1.0"

    identity: IdentityConfig = field(default_factory=IdentityConfig)
    permission: PermissionConfig = field(default_factory=PermissionConfig)
    store: StoreConfig = field(default_factory=StoreConfig)

    # Working directory (defaults to current directory)
    working_dir: Path = field(default_factory=Path.cwd)

    # Additional metadata
    metadata: Dict[str, Any] = field(default_factory=dict)

    def get_role(self, role_id: str) -> Optional[Dict[str, Any]]:
        """Get the configured definition of a role"""
        return self.permission.roles.get(role_id)

    def role_definitions(self) -> List[Dict[str, Any]]:
        """Roles in catalog wire format (each with its id)"""
        return [{"id": role_id, **role} for role_id, role in self.permission.roles.items()]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServiceConfig":
        """Create ServiceConfig from dictionary (e.g., parsed YAML)"""
        service_data = data.get("service", {})

        identity_data = data.get("identity", {})
        fields = identity_data.get("fields")
        identity_config = IdentityConfig(
            fields=list(fields) if fields is not None else None,
            defaults=identity_data.get("defaults", {}),
            identities=identity_data.get("identities", []),
            schema=identity_data.get("schema", {}),
        )

        permission_data = data.get("permission", {})
        roles = {}
        for role_id, role_data in permission_data.get("roles", {}).items():
            if isinstance(role_data, list):
                # Shorthand: role id -> list of permissions
                roles[role_id] = {"sysPermission": role_data}
            elif isinstance(role_data, dict):
                roles[role_id] = {k: v for k, v in role_data.items() if k != "id"}
        permission_config = PermissionConfig(
            roles=roles,
            role_base_url=permission_data.get("role_base_url", "") or "",
            ownership_depth=permission_data.get("ownership_depth", 4),
        )

        store_data = data.get("store", {})
        store_config = StoreConfig(
            type=store_data.get("type", "memory"),
            metadata={k: v for k, v in store_data.items() if k != "type"}
        )

        return cls(
            id=service_data.get("id", "identity"),
            name=service_data.get("name", "Identity Service"),
            version=service_data.get("version", "0.1.0"),
            identity=identity_config,
            permission=permission_config,
            store=store_config,
            working_dir=Path(data.get("working_dir", ".")),
            metadata=data.get("metadata", {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary (for serialization)"""
        return {
            "service": {
                "id": self.id,
                "name": self.name,
                "version": self.version,
            },
            "identity": {
                "fields": self.identity.fields,
                "defaults": self.identity.defaults,
                "identities": self.identity.identities,
                "schema": self.identity.schema,
            },
            "permission": {
                "roles": self.permission.roles,
                "role_base_url": self.permission.role_base_url,
                "ownership_depth": self.permission.ownership_depth,
            },
            "store": {
                "type": self.store.type,
                **self.store.metadata,
            },
            "working_dir": str(self.working_dir),
            "metadata": self.metadata,
        }
