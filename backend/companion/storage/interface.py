"""
Storage Interface - Abstract base classes for persistence back-ends.

``StorageInterface`` is a path-addressed byte store; ``TableStore`` is the
row-level "database capability" the chat layer talks to. Implementations
can be swapped (local JSON documents, hosted Postgres over PostgREST)
without touching the services.
"""

import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any


# Primary key column per table
PRIMARY_KEYS: Dict[str, str] = {
    "sessions": "session_id",
    "messages": "message_id",
    "anonymous_session_tokens": "token_id",
    "system_prompts": "prompt_id",
    "prompt_usage_log": "log_id",
    "resources": "resource_id",
    "resource_displays": "display_id",
    "folders": "folder_id",
}


class StorageError(Exception):
    """A storage operation failed."""


class UniqueViolation(StorageError):
    """Insert collided with an existing primary key."""


def primary_key(table: str) -> str:
    """Return the primary key column for ``table``."""
    try:
        return PRIMARY_KEYS[table]
    except KeyError:
        raise StorageError(f"Unknown table: {table}")


def apply_row_defaults(table: str, row: Dict[str, Any]) -> Dict[str, Any]:
    """
    Fill the column defaults a Postgres schema would supply on insert.

    Args:
        table: Target table
        row: Row as given by the caller (not mutated)

    Returns:
        Dict: New row with generated key and timestamps
    """
    now = datetime.now(timezone.utc).isoformat()
    filled = dict(row)
    key = primary_key(table)
    if filled.get(key) is None:
        filled[key] = str(uuid.uuid4())
    filled.setdefault("created_at", now)
    if table == "messages":
        filled.setdefault("timestamp", now)
        filled.setdefault("deleted_at", None)
        filled.setdefault("metadata", {})
        filled.setdefault("token_count", None)
    elif table == "sessions":
        filled.setdefault("title", None)
        filled.setdefault("folder_id", None)
        filled.setdefault("thread_id", None)
        filled.setdefault("last_activity_at", now)
    elif table == "resource_displays":
        filled.setdefault("displayed_at", now)
        filled.setdefault("clicked_at", None)
    return filled


class StorageInterface(ABC):
    """Path-addressed byte storage (local disk today, object storage later)."""

    @abstractmethod
    async def save(self, path: str, content: bytes | str) -> bool:
        """
        Save content to the specified path.

        Args:
            path: Relative path (e.g., "tables/sessions.json")
            content: Content to save

        Returns:
            bool: True if save was successful
        """
        pass

    @abstractmethod
    async def load(self, path: str) -> Optional[bytes]:
        """Load content from ``path``; None if it does not exist."""
        pass

    @abstractmethod
    async def exists(self, path: str) -> bool:
        pass

    @abstractmethod
    async def delete(self, path: str) -> bool:
        pass


class TableStore(ABC):
    """
    Row-level access to the managed relational database.

    Filters are equality predicates on column values. Writes return the
    rows as stored.
    """

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Select rows matching all ``filters``.

        Args:
            table: Table name
            filters: Column -> required value
            order_by: Optional column to sort on
            descending: Sort direction
            limit: Maximum rows to return

        Returns:
            List[Dict]: Matching rows
        """
        pass

    @abstractmethod
    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert a single row.

        Raises:
            UniqueViolation: primary key already present
            StorageError: any other failure
        """
        pass

    @abstractmethod
    async def update(
        self,
        table: str,
        filters: Dict[str, Any],
        values: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        """Update rows matching ``filters``; returns the updated rows."""
        pass

    @abstractmethod
    async def delete(self, table: str, filters: Dict[str, Any]) -> int:
        """Delete rows matching ``filters``; returns how many were removed."""
        pass

    async def select_one(self, table: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Return the first matching row or None."""
        rows = await self.select(table, filters, limit=1)
        return rows[0] if rows else None

    def as_caller(self, access_token: Optional[str]) -> "TableStore":
        """
        Return a store whose visibility is narrowed to the given caller.

        Stores without row-level security return themselves.
        """
        return self
