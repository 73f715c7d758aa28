"""
Persistence Writer - records a completed chat turn.

Steps run as independent remote writes, in order:

1. user message        must succeed, else PersistenceError (nothing recorded)
2. assistant message   must succeed, else PersistenceError (user message stays)
3. title (first turn)  best-effort
4. last_activity_at    best-effort
5. prompt usage log    best-effort
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..core.logging_config import SessionLoggerAdapter
from ..errors import PersistenceError
from ..models import Message, Session
from ..storage import StorageError, TableStore
from .prompts import get_default_system_prompt
from .titles import TitleGenerator

logger = logging.getLogger(__name__)


@dataclass
class CommitResult:
    user_message: Message
    assistant_message: Message
    title: Optional[str] = None  # set only when a first-turn title was stored


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PersistenceWriter:
    """Writes messages and session metadata after a successful stream."""

    def __init__(self, store: TableStore, titles: Optional[TitleGenerator] = None):
        self.store = store
        self.titles = titles or TitleGenerator()

    async def _insert_message(self, session_id: str, role: str, content: str,
                              token_count: int, metadata: Dict[str, Any]) -> Message:
        row = await self.store.insert("messages", {
            "session_id": session_id,
            "role": role,
            "content": content,
            "token_count": token_count,
            "metadata": metadata,
        })
        return Message.model_validate(row)

    async def commit(
        self,
        session: Session,
        user_message_text: str,
        assistant_message_text: str,
        prompt_tokens: int,
        completion_tokens: int,
        is_first_message: bool,
        response_time_ms: Optional[float] = None,
        assistant_metadata: Optional[Dict[str, Any]] = None,
        mode: Optional[str] = None,
        thread_id: Optional[str] = None,
    ) -> CommitResult:
        """
        Record one turn.

        Raises:
            PersistenceError: the user or assistant message could not be stored
        """
        session_id = session.session_id
        log = SessionLoggerAdapter(logger, {"session_id": session_id})

        try:
            user_message = await self._insert_message(session_id, "user", user_message_text, prompt_tokens, {})
        except StorageError as e:
            log.error(f"Failed to save user message: {e}")
            raise PersistenceError("Failed to save user message")

        try:
            assistant_message = await self._insert_message(
                session_id, "assistant", assistant_message_text, completion_tokens,
                assistant_metadata or {},
            )
        except StorageError as e:
            # The user message stays recorded; the turn is reported as failed
            log.error(
                f"Failed to save assistant message: {e}",
                extra={"extra_fields": {"user_message_id": user_message.message_id}}
            )
            raise PersistenceError("Failed to save assistant message")

        title = None
        if is_first_message:
            try:
                candidate = await self.titles.generate(user_message_text, session.config)
                await self.store.update(
                    "sessions", {"session_id": session_id},
                    {"title": candidate, "last_activity_at": _now()},
                )
                title = candidate
            except Exception as e:
                log.warning(f"Failed to save session title: {e}")

        try:
            await self.store.update("sessions", {"session_id": session_id}, {"last_activity_at": _now()})
        except StorageError as e:
            log.warning(f"Failed to update session activity: {e}")

        await self.log_usage(
            session_id,
            assistant_message.message_id,
            response_time_ms,
            prompt_tokens + completion_tokens,
            {"mode": mode, "thread_id": thread_id},
        )

        return CommitResult(user_message=user_message, assistant_message=assistant_message, title=title)

    async def log_usage(
        self,
        session_id: str,
        message_id: str,
        response_time_ms: Optional[float],
        tokens_used: int,
        metadata: Dict[str, Any],
    ) -> None:
        """Append a prompt usage row when a default system prompt exists. Failures are ignored."""
        prompt = await get_default_system_prompt(self.store)
        if not prompt:
            return
        try:
            await self.store.insert("prompt_usage_log", {
                "log_id": str(uuid.uuid4()),
                "prompt_id": prompt.get("prompt_id"),
                "message_id": message_id,
                "session_id": session_id,
                "prompt_version": prompt.get("version") or "v1.0",
                "response_time_ms": round(response_time_ms) if response_time_ms is not None else None,
                "tokens_used": tokens_used,
                "metadata": metadata,
            })
        except StorageError as e:
            logger.debug(f"Prompt usage log skipped: {e}")

    async def record_thread(self, session_id: str, thread_id: str) -> None:
        """Remember a newly created provider thread on the session."""
        try:
            await self.store.update("sessions", {"session_id": session_id}, {"thread_id": thread_id})
        except StorageError as e:
            logger.warning(
                f"Failed to update thread_id: {e}",
                extra={"extra_fields": {"session_id": session_id}}
            )

    async def list_messages(self, session_id: str) -> List[Message]:
        rows = await self.store.select(
            "messages", {"session_id": session_id, "deleted_at": None}, order_by="timestamp"
        )
        return [Message.model_validate(row) for row in rows]
