"""
Base Repository

Abstract base class for document repositories.
Supports both a table-client backend (Supabase-style fluent client) and an
in-memory backend. Documents are plain nested dicts; the in-memory backend
deep-copies on the way in and out so callers never share state with it.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from typing import Any, Optional

_MISSING = object()


def get_path(document: dict[str, Any], path: str) -> Any:
    """Read a dotted path ("meta.status") from a nested dict."""
    value: Any = document
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def set_path(document: dict[str, Any], path: str, value: Any) -> None:
    """Write a dotted path into a nested dict, creating parents as needed."""
    parts = path.split(".")
    target = document
    for part in parts[:-1]:
        target = target.setdefault(part, {})
    target[parts[-1]] = value


def matches(document: dict[str, Any], filters: Optional[dict[str, Any]]) -> bool:
    """
    Check a document against equality filters on dotted paths.

    A list-valued field matches when it contains the filter value.
    """
    if not filters:
        return True
    for path, expected in filters.items():
        actual = get_path(document, path)
        if actual is _MISSING:
            return False
        if isinstance(actual, list) and not isinstance(expected, list):
            if expected not in actual:
                return False
        elif actual != expected:
            return False
    return True


class Repository(ABC):
    """
    Abstract document repository.

    Provides a consistent interface for data access across
    different storage backends (table client, in-memory, etc.)
    """

    def __init__(self, client: Any = None):
        """
        Initialize repository.

        Args:
            client: Database client (Supabase-style client or None for in-memory)
        """
        self.client = client
        self._in_memory_store: dict[str, dict[str, Any]] = {}

    @property
    @abstractmethod
    def table_name(self) -> str:
        """Get the database table name for this repository."""
        pass

    async def get_document(self, key: str) -> Optional[dict[str, Any]]:
        """Get a document by key."""
        if self.client:
            return await self._db_get(key)
        document = self._in_memory_store.get(key)
        return copy.deepcopy(document) if document is not None else None

    async def list_documents(
        self,
        filters: Optional[dict[str, Any]] = None,
        limit: int = 100,
        offset: int = 0
    ) -> list[dict[str, Any]]:
        """List documents matching dotted-path equality filters."""
        if self.client:
            documents = await self._db_list()
        else:
            documents = [copy.deepcopy(d) for d in self._in_memory_store.values()]
        documents = [d for d in documents if matches(d, filters)]
        return documents[offset:offset + limit]

    # Database-specific implementations (for Supabase-style clients)
    async def _db_get(self, key: str) -> Optional[dict]:
        """Get from database."""
        response = self.client.table(self.table_name).select("*").eq("id", key).execute()
        return self._row_to_document(response.data[0]) if response.data else None

    async def _db_list(self) -> list[dict]:
        """List from database."""
        response = self.client.table(self.table_name).select("*").execute()
        return [self._row_to_document(row) for row in response.data]

    async def _db_create(self, document: dict[str, Any]) -> dict:
        """Create in database."""
        response = self.client.table(self.table_name).insert(self._document_to_row(document)).execute()
        return self._row_to_document(response.data[0])

    def _row_to_document(self, row: dict[str, Any]) -> dict[str, Any]:
        """Convert a table row to a document. Rows and documents match by default."""
        return row

    def _document_to_row(self, document: dict[str, Any]) -> dict[str, Any]:
        """Convert a document to a table row. Rows and documents match by default."""
        return document
