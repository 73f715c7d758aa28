"""Services module - chat turn orchestration."""

from .sessions import SessionRegistrar, Registration, default_session_config
from .anonymous_tokens import AnonymousTokenIssuer
from .relay import ConversationRelay, estimate_tokens
from .persistence import PersistenceWriter, CommitResult
from .titles import TitleGenerator, fallback_title
from .risk import RiskScreen, contains_crisis_keywords
from .folders import FolderManager
from .chat_service import ChatService, ChatTurn

__all__ = [
    'SessionRegistrar',
    'Registration',
    'default_session_config',
    'AnonymousTokenIssuer',
    'ConversationRelay',
    'estimate_tokens',
    'PersistenceWriter',
    'CommitResult',
    'TitleGenerator',
    'fallback_title',
    'RiskScreen',
    'contains_crisis_keywords',
    'FolderManager',
    'ChatService',
    'ChatTurn',
]
