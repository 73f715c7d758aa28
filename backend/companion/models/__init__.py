"""Models module."""

from .session import SessionConfig, Session, SessionTitleUpdate, AnonymousSessionToken
from .message import Message, ChatStreamRequest
from .folder import Folder, FolderName, SessionFolderUpdate
from .resource import ResourceClick

__all__ = [
    'SessionConfig', 'Session', 'SessionTitleUpdate', 'AnonymousSessionToken',
    'Message', 'ChatStreamRequest',
    'Folder', 'FolderName', 'SessionFolderUpdate',
    'ResourceClick',
]
