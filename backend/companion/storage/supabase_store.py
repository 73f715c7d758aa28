"""
Hosted Postgres table store (Supabase PostgREST) over httpx.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .interface import StorageError, TableStore, UniqueViolation

logger = logging.getLogger(__name__)


def _format_value(value: Any) -> str:
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    return f"eq.{value}"


class SupabaseTableStore(TableStore):
    """
    TableStore for the hosted database's REST endpoint.

    The service key is used by default; ``as_caller`` swaps the bearer to a
    user's JWT so the database's own row-level security narrows visibility.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        access_token: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token
        self.timeout = timeout
        self._transport = transport

    def _get_headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token or self.api_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"{self.url}/rest/v1",
            timeout=self.timeout,
            transport=self._transport,
        )

    @staticmethod
    def _params(filters: Optional[Dict[str, Any]]) -> Dict[str, str]:
        return {column: _format_value(value) for column, value in (filters or {}).items()}

    @staticmethod
    def _raise_for_status(resp: httpx.Response, table: str, action: str) -> None:
        if resp.status_code < 400:
            return
        code = None
        try:
            code = resp.json().get("code")
        except ValueError:
            pass
        if resp.status_code == 409 or code == "23505":
            raise UniqueViolation(f"{action} on {table} violated a unique constraint")
        raise StorageError(f"{action} on {table} failed with HTTP {resp.status_code}: {resp.text[:200]}")

    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params = {"select": "*", **self._params(filters)}
        if order_by:
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        if limit is not None:
            params["limit"] = str(limit)
        try:
            async with self._client() as client:
                resp = await client.get(f"/{table}", params=params, headers=self._get_headers())
        except httpx.HTTPError as e:
            raise StorageError(f"select on {table} failed: {e}")
        self._raise_for_status(resp, table, "select")
        return resp.json()

    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                resp = await client.post(
                    f"/{table}",
                    json=row,
                    headers=self._get_headers(prefer="return=representation"),
                )
        except httpx.HTTPError as e:
            raise StorageError(f"insert on {table} failed: {e}")
        self._raise_for_status(resp, table, "insert")
        rows = resp.json()
        if not rows:
            raise StorageError(f"insert on {table} returned no row")
        return rows[0]

    async def update(
        self,
        table: str,
        filters: Dict[str, Any],
        values: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        try:
            async with self._client() as client:
                resp = await client.patch(
                    f"/{table}",
                    params=self._params(filters),
                    json=values,
                    headers=self._get_headers(prefer="return=representation"),
                )
        except httpx.HTTPError as e:
            raise StorageError(f"update on {table} failed: {e}")
        self._raise_for_status(resp, table, "update")
        return resp.json()

    async def delete(self, table: str, filters: Dict[str, Any]) -> int:
        try:
            async with self._client() as client:
                resp = await client.delete(
                    f"/{table}",
                    params=self._params(filters),
                    headers=self._get_headers(prefer="return=representation"),
                )
        except httpx.HTTPError as e:
            raise StorageError(f"delete on {table} failed: {e}")
        self._raise_for_status(resp, table, "delete")
        return len(resp.json())

    def as_caller(self, access_token: Optional[str]) -> "SupabaseTableStore":
        if not access_token:
            return self
        return SupabaseTableStore(
            self.url,
            self.api_key,
            access_token=access_token,
            timeout=self.timeout,
            transport=self._transport,
        )
