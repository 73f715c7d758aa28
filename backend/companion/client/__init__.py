"""Client module - reconciliation state and the streaming chat client."""

from .reconcile import (
    ChatMessage,
    ConfirmedMessage,
    ConversationView,
    OptimisticMessage,
    PendingTurn,
    SessionList,
    SkeletonSession,
    ViewState,
    merge_messages,
)
from .sse import iter_sse_events
from .chat_client import ChatStreamClient
from .modals import ModalState, ModalType, open_modal, close_modal, set_auth_mode

__all__ = [
    'ChatMessage',
    'ConfirmedMessage',
    'ConversationView',
    'OptimisticMessage',
    'PendingTurn',
    'SessionList',
    'SkeletonSession',
    'ViewState',
    'merge_messages',
    'iter_sse_events',
    'ChatStreamClient',
    'ModalState',
    'ModalType',
    'open_modal',
    'close_modal',
    'set_auth_mode',
]
