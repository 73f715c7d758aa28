"""
Local table store - keeps each table as one JSON document in LocalStorage.

Intended for development and tests; a per-table asyncio lock makes each
read-modify-write atomic within one process.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

from .interface import (
    StorageError,
    StorageInterface,
    TableStore,
    UniqueViolation,
    apply_row_defaults,
    primary_key,
)


def _matches(row: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
    if not filters:
        return True
    return all(row.get(column) == value for column, value in filters.items())


class LocalTableStore(TableStore):
    """TableStore backed by JSON documents under ``tables/``."""

    def __init__(self, storage: StorageInterface, prefix: str = "tables"):
        self.storage = storage
        self.prefix = prefix
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock(self, table: str) -> asyncio.Lock:
        if table not in self._locks:
            self._locks[table] = asyncio.Lock()
        return self._locks[table]

    def _path(self, table: str) -> str:
        primary_key(table)
        return f"{self.prefix}/{table}.json"

    async def _read(self, table: str) -> List[Dict[str, Any]]:
        content = await self.storage.load(self._path(table))
        if content is None:
            return []
        try:
            return json.loads(content.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StorageError(f"Corrupt table document {table}: {e}")

    async def _write(self, table: str, rows: List[Dict[str, Any]]) -> None:
        ok = await self.storage.save(self._path(table), json.dumps(rows, ensure_ascii=False, default=str))
        if not ok:
            raise StorageError(f"Failed to write table {table}")

    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        rows = [dict(row) for row in await self._read(table) if _matches(row, filters)]
        if order_by:
            # Nulls sort last in ascending order, as in Postgres
            rows.sort(
                key=lambda row: (row.get(order_by) is None, row.get(order_by) or ""),
                reverse=descending,
            )
        if limit is not None:
            rows = rows[:limit]
        return rows

    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        key = primary_key(table)
        stored = apply_row_defaults(table, row)
        async with self._lock(table):
            rows = await self._read(table)
            if any(existing.get(key) == stored[key] for existing in rows):
                raise UniqueViolation(f"duplicate key value violates unique constraint on {table}.{key}")
            rows.append(stored)
            await self._write(table, rows)
        return dict(stored)

    async def update(
        self,
        table: str,
        filters: Dict[str, Any],
        values: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        updated = []
        async with self._lock(table):
            rows = await self._read(table)
            for row in rows:
                if _matches(row, filters):
                    row.update(values)
                    updated.append(dict(row))
            if updated:
                await self._write(table, rows)
        return updated

    async def delete(self, table: str, filters: Dict[str, Any]) -> int:
        async with self._lock(table):
            rows = await self._read(table)
            kept = [row for row in rows if not _matches(row, filters)]
            removed = len(rows) - len(kept)
            if removed:
                await self._write(table, kept)
        return removed
