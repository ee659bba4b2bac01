"""
Identity Models

Stored identity records: the identity attributes, the per-identity meta
bookkeeping (status, sequence, resource roles) and the resource-role grants.
Wire names follow the stored document layout (``sysRole``, ``memberOf``...).
"""

from __future__ import annotations

import copy
import hashlib
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def record_key(identity_id: str) -> str:
    """Hash an identity id into its store key."""
    return hashlib.sha256(identity_id.encode()).hexdigest()


def _now() -> datetime:
    return datetime.now(timezone.utc)


class IdentityStatus(str, Enum):
    """Identity lifecycle status. Both transitions are allowed any number of times."""
    ACTIVE = "active"
    DELETED = "deleted"


class ResourceRole(BaseModel):
    """
    One capability grant: a role bound to zero or more resources.

    ``resource`` of None means the grant is not restricted to any resource.
    ``generate_resource`` is resolved when the grant is stored and never
    survives into a persisted record.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    sys_role: str = Field(alias="sysRole")
    resource: Optional[list[str]] = None
    generate_resource: Optional[str] = Field(default=None, alias="generateResource")
    delegator: Optional[str] = None

    @field_validator("resource", mode="before")
    @classmethod
    def _wrap_scalar_resource(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value

    def to_dict(self) -> dict[str, Any]:
        """Serialize using stored field names, omitting unset optionals."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Identity(BaseModel):
    """
    An identity (user or group).

    Any attribute beyond the ones declared here is kept as-is; which of them
    may be changed after creation is governed by the configured allow-list.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    owner: Optional[str] = None
    type: Optional[Union[str, list[str]]] = None
    member_of: list[str] = Field(default_factory=list, alias="memberOf")

    @field_validator("member_of", mode="before")
    @classmethod
    def _dedupe_member_of(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        seen: list[str] = []
        for group_id in value:
            if group_id not in seen:
                seen.append(group_id)
        return seen

    @property
    def types(self) -> list[str]:
        """The identity type(s) as a list."""
        if self.type is None:
            return []
        if isinstance(self.type, str):
            return [self.type]
        return list(self.type)

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize using stored field names, omitting unset optionals.

        An empty ``memberOf`` is kept only when it was given explicitly.
        """
        data = self.model_dump(by_alias=True, exclude_none=True)
        if not data.get("memberOf") and "member_of" not in self.model_fields_set:
            data.pop("memberOf", None)
        return data


class Meta(BaseModel):
    """Per-identity bookkeeping stored alongside the identity."""
    model_config = ConfigDict(populate_by_name=True)

    status: IdentityStatus = IdentityStatus.ACTIVE
    sequence: int = Field(default=0, ge=0)
    sys_resource_role: list[ResourceRole] = Field(default_factory=list, alias="sysResourceRole")
    created: datetime = Field(default_factory=_now)
    updated: datetime = Field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "sequence": self.sequence,
            "sysResourceRole": [r.to_dict() for r in self.sys_resource_role],
            "created": self.created.isoformat(),
            "updated": self.updated.isoformat(),
        }


class IdentityRecord(BaseModel):
    """A stored identity document: store key, identity and meta."""
    id: str
    identity: Identity
    meta: Meta

    @classmethod
    def create(cls, identity: Identity, meta: Meta) -> "IdentityRecord":
        return cls(id=record_key(identity.id), identity=identity, meta=meta)

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "IdentityRecord":
        """Build a record from a stored document (a plain nested dict)."""
        return cls(
            id=document["id"],
            identity=Identity.model_validate(document["identity"]),
            meta=Meta.model_validate(document["meta"]),
        )

    def to_document(self) -> dict[str, Any]:
        """Serialize to a plain nested dict suitable for a document store."""
        return {
            "id": self.id,
            "identity": self.identity.to_dict(),
            "meta": self.meta.to_dict(),
        }

    def clone(self) -> "IdentityRecord":
        return IdentityRecord.from_document(copy.deepcopy(self.to_document()))
