"""
Anonymous Token Issuer - binds an anonymous session to a caller-held secret.

Only a salted hash of the raw token is stored; the row id is random so the
raw value never lands in any column.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from ..config import settings
from ..storage import TableStore
from ..utils.auth import find_matching_token, hash_token

logger = logging.getLogger(__name__)


class AnonymousTokenIssuer:
    """Stores and verifies anonymous session tokens."""

    def __init__(self, store: TableStore, ttl_hours: Optional[int] = None):
        self.store = store
        self.ttl = timedelta(hours=ttl_hours or settings.anonymous_token_ttl_hours)

    async def issue(
        self,
        session_id: str,
        raw_token: str,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Persist the hash of ``raw_token`` for ``session_id``.

        Raises:
            StorageError: the insert failed (callers treat this as non-fatal)
        """
        token_hash = await asyncio.to_thread(hash_token, raw_token)
        expires_at = datetime.now(timezone.utc) + self.ttl
        row = await self.store.insert("anonymous_session_tokens", {
            "token_id": str(uuid.uuid4()),
            "token_hash": token_hash,
            "session_id": session_id,
            "expires_at": expires_at.isoformat(),
            "user_agent": user_agent,
            "ip_address": ip_address,
        })
        logger.info(
            "Anonymous token bound to session",
            extra={"extra_fields": {"session_id": session_id, "expires_at": expires_at.isoformat()}}
        )
        return row

    async def rows_for(self, session_id: str) -> List[Dict[str, Any]]:
        return await self.store.select("anonymous_session_tokens", {"session_id": session_id})

    async def find_valid(
        self,
        session_id: str,
        raw_token: str,
        now: Optional[datetime] = None,
    ) -> Optional[Dict[str, Any]]:
        """Return the non-expired row matching ``raw_token``, if any."""
        rows = await self.rows_for(session_id)
        return await asyncio.to_thread(find_matching_token, rows, session_id, raw_token, now)
