"""
Client reconciliation - optimistic chat entries and their replacement by
server-confirmed messages.

A view moves through::

    IDLE -> SENDING -> STREAMING_TOKENS -> RECONCILED
    SENDING / STREAMING_TOKENS -> FAILED -> IDLE

Optimistic entries are matched to the confirmed ones by the temporary ids
the view assigned at submit time, never by content.
"""

import itertools
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class ConfirmedMessage:
    """A message as stored by the server."""
    message_id: str
    session_id: str
    role: str
    content: str
    timestamp: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConfirmedMessage":
        return cls(
            message_id=data["message_id"],
            session_id=data["session_id"],
            role=data["role"],
            content=data["content"],
            timestamp=_parse_timestamp(data["timestamp"]),
            metadata=data.get("metadata") or {},
        )


@dataclass
class OptimisticMessage:
    """A locally synthesized entry shown until the server confirms the turn."""
    temp_id: str
    session_id: str
    role: str
    content: str
    optimistic_order: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def message_id(self) -> str:
        return self.temp_id


ChatMessage = Union[ConfirmedMessage, OptimisticMessage]


def _sort_key(message: ChatMessage):
    # Optimistic entries are always the newest, so they sort after confirmed ones
    if isinstance(message, OptimisticMessage):
        return (1, message.optimistic_order, message.message_id)
    return (0, message.timestamp, message.message_id)


def merge_messages(
    confirmed: Iterable[ConfirmedMessage],
    optimistic: Iterable[OptimisticMessage] = (),
) -> List[ChatMessage]:
    """
    Render order for a conversation.

    Confirmed messages are keyed by id and optimistic ones overlaid on top
    (optimistic wins on an id collision). The result is sorted by
    ``optimistic_order`` for optimistic entries and by timestamp otherwise.
    Pure and idempotent: merging the output again gives the same list.
    """
    by_id: Dict[str, ChatMessage] = {}
    for message in confirmed:
        by_id[message.message_id] = message
    for message in optimistic:
        by_id[message.message_id] = message
    return sorted(by_id.values(), key=_sort_key)


class ViewState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING_TOKENS = "streaming_tokens"
    RECONCILED = "reconciled"
    FAILED = "failed"


@dataclass
class SkeletonSession:
    """Sidebar placeholder for a session whose title is not known yet."""
    session_id: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    title: Optional[str] = None


class SessionList:
    """The sidebar: authoritative sessions plus skeletons for brand-new ones."""

    def __init__(self, sessions: Optional[List[Dict[str, Any]]] = None):
        self.sessions: List[Dict[str, Any]] = list(sessions or [])
        self.skeletons: Dict[str, SkeletonSession] = {}
        self.stale = False

    def add_skeleton(self, session_id: str) -> SkeletonSession:
        skeleton = self.skeletons.get(session_id) or SkeletonSession(session_id)
        self.skeletons[session_id] = skeleton
        return skeleton

    def remove_skeleton(self, session_id: str) -> None:
        self.skeletons.pop(session_id, None)

    def invalidate(self) -> None:
        self.stale = True

    def refresh(self, sessions: List[Dict[str, Any]]) -> None:
        """Replace the list with a fresh server copy."""
        self.sessions = list(sessions)
        titled = {s["session_id"] for s in self.sessions if s.get("title")}
        for session_id in list(self.skeletons):
            if session_id in titled:
                del self.skeletons[session_id]
        self.stale = False

    @property
    def entries(self) -> List[Union[SkeletonSession, Dict[str, Any]]]:
        known = {s["session_id"] for s in self.sessions}
        skeletons = sorted(
            (s for s in self.skeletons.values() if s.session_id not in known),
            key=lambda s: s.created_at,
            reverse=True,
        )
        return [*skeletons, *self.sessions]


@dataclass
class PendingTurn:
    user_temp_id: str
    assistant_temp_id: str
    creates_session: bool = False


class ConversationView:
    """State of one open conversation in the client."""

    def __init__(
        self,
        session_id: str,
        confirmed: Optional[Iterable[ConfirmedMessage]] = None,
        session_list: Optional[SessionList] = None,
    ):
        self.session_id = session_id
        self.confirmed: List[ConfirmedMessage] = list(confirmed or [])
        self.optimistic: List[OptimisticMessage] = []
        self.session_list = session_list
        self.state = ViewState.IDLE
        self.history: List[ViewState] = [ViewState.IDLE]
        self.pending: Optional[PendingTurn] = None
        self.error: Optional[str] = None
        self.thread_id: Optional[str] = None
        self.risk_level: Optional[str] = None
        self.resources: List[Dict[str, Any]] = []
        self.crisis_alert: Optional[str] = None
        self.invalidated = False
        self._order = itertools.count(1)

    @property
    def messages(self) -> List[ChatMessage]:
        return merge_messages(self.confirmed, self.optimistic)

    @property
    def in_flight(self) -> bool:
        return self.state in (ViewState.SENDING, ViewState.STREAMING_TOKENS)

    def _transition(self, state: ViewState) -> None:
        self.state = state
        self.history.append(state)

    def _find_optimistic(self, temp_id: str) -> Optional[OptimisticMessage]:
        for message in self.optimistic:
            if message.temp_id == temp_id:
                return message
        return None

    def submit(self, text: str, is_first_message: bool = False) -> PendingTurn:
        """Show the user's message and an empty assistant placeholder immediately."""
        if self.in_flight:
            raise RuntimeError("A message is already being sent in this conversation")

        turn = PendingTurn(
            user_temp_id=f"temp-user-{uuid.uuid4()}",
            assistant_temp_id=f"temp-assistant-{uuid.uuid4()}",
            creates_session=is_first_message,
        )
        self.optimistic.append(OptimisticMessage(
            turn.user_temp_id, self.session_id, "user", text, next(self._order)
        ))
        self.optimistic.append(OptimisticMessage(
            turn.assistant_temp_id, self.session_id, "assistant", "", next(self._order)
        ))
        if is_first_message and self.session_list is not None:
            self.session_list.add_skeleton(self.session_id)

        self.pending = turn
        self.error = None
        self.risk_level = None
        self.resources = []
        self.crisis_alert = None
        self._transition(ViewState.SENDING)
        return turn

    def apply_event(self, event: Dict[str, Any]) -> None:
        """Apply one decoded stream event."""
        event_type = event.get("type")

        if event_type == "token":
            if self.pending is None:
                return
            if self.state is ViewState.SENDING:
                self._transition(ViewState.STREAMING_TOKENS)
            placeholder = self._find_optimistic(self.pending.assistant_temp_id)
            if placeholder is not None:
                placeholder.content += event.get("content", "")

        elif event_type == "done":
            self._reconcile(event)

        elif event_type == "title_updated":
            if self.session_list is not None:
                self.session_list.remove_skeleton(event.get("sessionId", self.session_id))
                self.session_list.invalidate()

        elif event_type == "error":
            self.fail(event.get("error") or "Something went wrong")

        elif event_type == "resources":
            self.resources = list(event.get("resources") or [])
            self.risk_level = event.get("risk_level") or self.risk_level

        elif event_type == "risk_assessment":
            self.risk_level = event.get("risk_level")

        elif event_type == "crisis_alert":
            self.crisis_alert = event.get("message")

    def _reconcile(self, event: Dict[str, Any]) -> None:
        user = ConfirmedMessage.from_dict(event["userMessage"])
        assistant = ConfirmedMessage.from_dict(event["assistantMessage"])

        known = {m.message_id for m in self.confirmed}
        if user.message_id in known and assistant.message_id in known:
            # Re-delivered done of an earlier turn
            return
        for message in (user, assistant):
            if message.message_id not in known:
                self.confirmed.append(message)

        if self.pending is not None:
            replaced = {self.pending.user_temp_id, self.pending.assistant_temp_id}
            self.optimistic = [m for m in self.optimistic if m.temp_id not in replaced]
            self.pending = None
            if event.get("threadId"):
                self.thread_id = event["threadId"]
            self.invalidated = True
            if self.session_list is not None:
                self.session_list.invalidate()
            self._transition(ViewState.RECONCILED)

    def fail(self, error: str) -> None:
        """Drop this turn's optimistic state and surface ``error``."""
        if self.pending is not None:
            dropped = {self.pending.user_temp_id, self.pending.assistant_temp_id}
            self.optimistic = [m for m in self.optimistic if m.temp_id not in dropped]
            if self.pending.creates_session and self.session_list is not None:
                self.session_list.remove_skeleton(self.session_id)
            self.pending = None
        self.error = error
        self._transition(ViewState.FAILED)
        self._transition(ViewState.IDLE)

    def replace_confirmed(self, messages: Iterable[ConfirmedMessage]) -> None:
        """Install a refetched message list."""
        self.confirmed = list(messages)
        self.invalidated = False
