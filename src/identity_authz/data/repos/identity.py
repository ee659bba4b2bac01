"""
Identity Repository

Record store for identities. Implements the store contract the identity
service relies on:

- find_one(key) / find(filters): reads by hashed id or dotted-path filters
- insert(record): unique on the hashed id, raises DuplicateError
- conditional_update(key, expected_sequence, changes): compare-and-swap on
  the meta sequence; returns the number of matched records (0 or 1)
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from ...errors import DuplicateError
from ..models.identity import IdentityRecord, IdentityStatus, record_key
from .base import Repository, set_path

logger = logging.getLogger(__name__)

# Postgres unique_violation, surfaced by table clients as the error code
UNIQUE_VIOLATION = "23505"


def is_duplicate_error(error: Exception) -> bool:
    """Check whether a low-level store error is a unique-key violation."""
    return str(getattr(error, "code", "")) == UNIQUE_VIOLATION


class IdentityRepository(Repository):
    """Repository for identity records."""

    @property
    def table_name(self) -> str:
        return "identity"

    async def find_one(self, key: str) -> Optional[IdentityRecord]:
        """Find a record by its store key (hashed identity id)."""
        document = await self.get_document(key)
        return IdentityRecord.from_document(document) if document else None

    async def get(self, identity_id: str) -> Optional[IdentityRecord]:
        """Find a record by identity id."""
        return await self.find_one(record_key(identity_id))

    async def find(
        self,
        filters: Optional[dict[str, Any]] = None,
        limit: int = 100,
        offset: int = 0
    ) -> list[IdentityRecord]:
        """Find records matching dotted-path filters (e.g. {"meta.status": "active"})."""
        documents = await self.list_documents(filters, limit, offset)
        return [IdentityRecord.from_document(d) for d in documents]

    async def insert(self, record: IdentityRecord) -> IdentityRecord:
        """Insert a new record. Raises DuplicateError if the id is taken."""
        document = record.to_document()
        if self.client:
            try:
                created = await self._db_create(document)
            except Exception as e:
                if is_duplicate_error(e):
                    raise DuplicateError(
                        "Duplicate identity.", {"id": record.identity.id}
                    ) from e
                raise
            return IdentityRecord.from_document(created)

        if record.id in self._in_memory_store:
            raise DuplicateError("Duplicate identity.", {"id": record.identity.id})
        self._in_memory_store[record.id] = copy.deepcopy(document)
        return IdentityRecord.from_document(copy.deepcopy(document))

    async def conditional_update(
        self,
        key: str,
        expected_sequence: int,
        changes: dict[str, Any]
    ) -> int:
        """
        Apply changes only if the stored sequence still equals expected_sequence.

        Args:
            key: Store key of the record
            expected_sequence: Sequence the caller read before mutating
            changes: Dotted paths to new values (e.g. {"meta.status": "deleted"})

        Returns:
            Number of records matched (0 when the record is gone or the sequence moved)
        """
        now = datetime.now(timezone.utc).isoformat()
        if self.client:
            return await self._db_conditional_update(key, expected_sequence, changes, now)

        document = self._in_memory_store.get(key)
        if document is None or document["meta"]["sequence"] != expected_sequence:
            return 0
        updated = copy.deepcopy(document)
        for path, value in changes.items():
            set_path(updated, path, copy.deepcopy(value))
        updated["meta"]["sequence"] = expected_sequence + 1
        updated["meta"]["updated"] = now
        self._in_memory_store[key] = updated
        return 1

    async def find_owners(self, identity_ids: Iterable[str]) -> dict[str, str]:
        """
        Batched owner lookup: one query through the table client, one pass
        over the in-memory store.

        Returns:
            Mapping of identity id to owner id, for identities that exist and have an owner
        """
        keys = {record_key(i): i for i in identity_ids}
        if not keys:
            return {}
        if self.client:
            response = (
                self.client.table(self.table_name)
                .select("*")
                .in_("id", list(keys))
                .execute()
            )
            documents = [self._row_to_document(row) for row in response.data]
        else:
            documents = [self._in_memory_store[k] for k in keys if k in self._in_memory_store]

        owners: dict[str, str] = {}
        for document in documents:
            owner = document["identity"].get("owner")
            if owner and document["id"] in keys:
                owners[keys[document["id"]]] = owner
        return owners

    async def find_active_group(self, group_id: str) -> Optional[IdentityRecord]:
        """Find a group by id, only if its type includes Group and it is active."""
        records = await self.find({
            "id": record_key(group_id),
            "identity.type": "Group",
            "meta.status": IdentityStatus.ACTIVE.value,
        }, limit=1)
        return records[0] if records else None

    async def _db_conditional_update(
        self,
        key: str,
        expected_sequence: int,
        changes: dict[str, Any],
        now: str
    ) -> int:
        """Compare-and-swap through the table client, filtering on the sequence column."""
        current = await self._db_get(key)
        if current is None or current["meta"]["sequence"] != expected_sequence:
            return 0
        for path, value in changes.items():
            set_path(current, path, value)
        current["meta"]["sequence"] = expected_sequence + 1
        current["meta"]["updated"] = now
        response = (
            self.client.table(self.table_name)
            .update(self._document_to_row(current))
            .eq("id", key)
            .eq("sequence", expected_sequence)
            .execute()
        )
        return len(response.data)

    def _row_to_document(self, row: dict[str, Any]) -> dict[str, Any]:
        return {"id": row["id"], "identity": row["identity"], "meta": row["meta"]}

    def _document_to_row(self, document: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": document["id"],
            "sequence": document["meta"]["sequence"],
            "identity": document["identity"],
            "meta": document["meta"],
        }
