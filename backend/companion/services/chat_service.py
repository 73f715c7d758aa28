"""
Chat Service - orchestrates one chat turn.

``prepare`` runs everything that can still fail with an HTTP status
(validation, identity, session lookup/creation, authorization).
``stream_turn`` runs after the event stream has opened: risk screen,
relay, persistence, and the final ``done`` / ``title_updated`` events.
Failures there are reported in-band as ``{"type": "error"}``.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Dict, List, Optional

from ..config import settings
from ..errors import Forbidden, PersistenceError, ProviderError, ValidationError
from ..llm import AssistantProvider, LLMProvider
from ..models import ChatStreamRequest, Folder, Message, Session
from ..storage import StorageError, TableStore
from ..utils.auth import Authenticated, Identity, authorize_session
from .anonymous_tokens import AnonymousTokenIssuer
from .folders import FolderManager
from .persistence import PersistenceWriter
from .relay import ConversationRelay, StreamEvent
from .risk import CRISIS_ALERT_MESSAGE, RiskScreen
from .sessions import SessionRegistrar
from .titles import MAX_TITLE_LENGTH, TitleGenerator

logger = logging.getLogger(__name__)


@dataclass
class ChatTurn:
    """A validated, authorized turn ready to stream."""
    session: Session
    user_message: str
    is_first_message: bool
    store: TableStore  # narrowed to the caller on the authenticated path
    created: bool = False


class ChatService:
    """Wires the registrar, relay and persistence writer for each request."""

    def __init__(
        self,
        store: TableStore,
        assistants: Optional[AssistantProvider] = None,
        llm: Optional[LLMProvider] = None,
        titles: Optional[TitleGenerator] = None,
        config: Any = settings,
    ):
        self.store = store
        self.assistants = assistants
        self.llm = llm
        self.titles = titles or TitleGenerator(llm, config.title_model)
        self.config = config

    def _can_stream(self) -> bool:
        if self.config.assistant_id and self.assistants is not None:
            return True
        return self.llm is not None

    def _store_for(self, identity: Identity) -> TableStore:
        if isinstance(identity, Authenticated):
            return self.store.as_caller(identity.access_token)
        return self.store

    async def _token_rows(self, store: TableStore, session: Session,
                          anonymous_token: Optional[str], is_first_message: bool) -> List[Dict[str, Any]]:
        if not session.is_anonymous or is_first_message or not anonymous_token:
            return []
        try:
            return await AnonymousTokenIssuer(store).rows_for(session.session_id)
        except StorageError as e:
            logger.error(
                f"Anonymous token lookup failed: {e}",
                extra={"extra_fields": {"session_id": session.session_id}}
            )
            raise PersistenceError("Failed to verify anonymous token")

    async def authorized_session(
        self,
        session_id: str,
        identity: Identity,
        anonymous_token: Optional[str],
    ) -> ChatTurn:
        """Load an existing session and authorize the caller as for a follow-up message."""
        store = self._store_for(identity)
        registration = await SessionRegistrar(store, self.config).get_or_create(session_id, False, identity)
        session = registration.session
        rows = await self._token_rows(store, session, anonymous_token, False)
        # bcrypt checks run off the event loop
        await asyncio.to_thread(authorize_session, session, identity, anonymous_token, False, rows)
        return ChatTurn(session=session, user_message="", is_first_message=False, store=store)

    async def prepare(
        self,
        request: ChatStreamRequest,
        identity: Identity,
        anonymous_token: Optional[str] = None,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> ChatTurn:
        """
        Validate and authorize a ``POST /chat/stream`` request.

        Raises:
            ValidationError, ProviderError, Unauthorized, Forbidden, SessionNotFound, PersistenceError
        """
        if not request.session_id or not request.user_message or not request.user_message.strip():
            raise ValidationError("Missing required fields")
        if not self._can_stream():
            raise ProviderError("No LLM provider configured")

        store = self._store_for(identity)
        registration = await SessionRegistrar(store, self.config).get_or_create(
            request.session_id, request.is_first_message, identity
        )
        session = registration.session

        rows = await self._token_rows(store, session, anonymous_token, request.is_first_message)
        await asyncio.to_thread(
            authorize_session, session, identity, anonymous_token, request.is_first_message, rows
        )

        if registration.created and session.is_anonymous and anonymous_token:
            try:
                await AnonymousTokenIssuer(store, self.config.anonymous_token_ttl_hours).issue(
                    session.session_id, anonymous_token, user_agent, ip_address
                )
            except StorageError as e:
                # The session row is already durable; the client can still retry with a new token
                logger.warning(
                    f"Failed to store anonymous token: {e}",
                    extra={"extra_fields": {"session_id": session.session_id}}
                )

        return ChatTurn(
            session=session,
            user_message=request.user_message,
            is_first_message=request.is_first_message,
            store=store,
            created=registration.created,
        )

    async def stream_turn(self, turn: ChatTurn) -> AsyncGenerator[StreamEvent, None]:
        """Yield the application events for one prepared turn."""
        session = turn.session
        started = time.monotonic()

        risk = RiskScreen(turn.store)
        screen = await risk.screen(turn.user_message)
        if screen.crisis:
            yield {"type": "crisis_alert", "message": CRISIS_ALERT_MESSAGE}
            yield {"type": "risk_assessment", "risk_level": screen.risk_level}
            if screen.resources:
                yield {"type": "resources", "resources": screen.resources, "risk_level": screen.risk_level}

        relay = ConversationRelay(turn.store, self.assistants, self.llm, self.config.history_limit)
        done: Optional[StreamEvent] = None
        async for event in relay.stream(
            self.config.assistant_id, session.thread_id, turn.user_message, session.session_id
        ):
            if event["type"] == "token":
                yield event
            elif event["type"] == "error":
                logger.error(
                    f"Relay error: {event['error']}",
                    extra={"extra_fields": {"session_id": session.session_id}}
                )
                yield event
                return
            elif event["type"] == "done":
                done = event

        if done is None:
            yield {"type": "error", "error": "Assistant stream ended unexpectedly"}
            return

        writer = PersistenceWriter(turn.store, self.titles)
        try:
            result = await writer.commit(
                session,
                turn.user_message,
                done["content"],
                done["promptTokens"],
                done["completionTokens"],
                turn.is_first_message,
                response_time_ms=(time.monotonic() - started) * 1000,
                assistant_metadata={"resources": screen.resources, "riskLevel": screen.risk_level},
                mode=done.get("mode"),
                thread_id=done.get("threadId"),
            )
        except PersistenceError as e:
            yield {"type": "error", "error": e.message}
            return

        thread_id = done.get("threadId")
        if thread_id and thread_id != session.thread_id:
            await writer.record_thread(session.session_id, thread_id)

        if screen.resources:
            await risk.log_displays(session.session_id, result.assistant_message.message_id, screen.resources)

        yield {
            "type": "done",
            "userMessage": result.user_message.model_dump(mode="json"),
            "assistantMessage": result.assistant_message.model_dump(mode="json"),
            "tokensUsed": done["promptTokens"] + done["completionTokens"],
            "threadId": thread_id,
        }

        if result.title:
            yield {"type": "title_updated", "sessionId": session.session_id, "title": result.title}

    async def list_sessions(self, identity: Authenticated) -> List[Session]:
        """The caller's sessions, most recently active first."""
        try:
            rows = await self._store_for(identity).select(
                "sessions", {"user_id": identity.user_id}, order_by="last_activity_at", descending=True
            )
        except StorageError as e:
            logger.error(f"Failed to list sessions: {e}")
            raise PersistenceError("Failed to list sessions")
        return [Session.model_validate(row) for row in rows]

    async def list_messages(
        self,
        session_id: str,
        identity: Identity,
        anonymous_token: Optional[str] = None,
    ) -> List[Message]:
        turn = await self.authorized_session(session_id, identity, anonymous_token)
        try:
            return await PersistenceWriter(turn.store).list_messages(session_id)
        except StorageError as e:
            logger.error(f"Failed to list messages: {e}")
            raise PersistenceError("Failed to load messages")

    async def rename_session(self, session_id: str, identity: Identity, title: str) -> Session:
        """
        Rename an authenticated session. Anonymous sessions keep their generated title.

        Raises:
            ValidationError: empty title
            Forbidden: anonymous session or another user's session
        """
        title = title.strip()
        if not title:
            raise ValidationError("Title cannot be empty")

        turn = await self.authorized_session(session_id, identity, None)
        if turn.session.is_anonymous:
            raise Forbidden("Anonymous sessions cannot be renamed")

        try:
            rows = await turn.store.update(
                "sessions", {"session_id": session_id}, {"title": title[:MAX_TITLE_LENGTH]}
            )
        except StorageError as e:
            logger.error(f"Failed to rename session {session_id}: {e}")
            raise PersistenceError("Failed to update session")
        if rows:
            return Session.model_validate(rows[0])
        return turn.session.model_copy(update={"title": title[:MAX_TITLE_LENGTH]})

    def folders(self, identity: Authenticated) -> FolderManager:
        return FolderManager(self._store_for(identity), identity.user_id)

    async def list_folders(self, identity: Authenticated) -> List[Folder]:
        return await self.folders(identity).list_folders()

    async def create_folder(self, identity: Authenticated, folder_name: str) -> Folder:
        return await self.folders(identity).create(folder_name)

    async def rename_folder(self, folder_id: str, identity: Authenticated, folder_name: str) -> Folder:
        return await self.folders(identity).rename(folder_id, folder_name)

    async def delete_folder(self, folder_id: str, identity: Authenticated) -> None:
        await self.folders(identity).delete(folder_id)

    async def move_session(self, session_id: str, identity: Authenticated, folder_id: Optional[str]) -> Session:
        """File one of the caller's sessions under a folder, or unfile it with ``None``."""
        turn = await self.authorized_session(session_id, identity, None)
        return await self.folders(identity).move_session(turn.session, folder_id)

    async def track_resource_click(
        self,
        resource_id: Optional[str],
        session_id: Optional[str],
        identity: Identity,
    ) -> Dict[str, Any]:
        """
        Record that a shown resource card was clicked.

        Raises:
            ValidationError: missing resource or session id
            NotFound: no unclicked display of that resource in the session
        """
        if not resource_id or not session_id:
            raise ValidationError("Missing required fields")
        return await RiskScreen(self._store_for(identity)).track_click(session_id, resource_id)
