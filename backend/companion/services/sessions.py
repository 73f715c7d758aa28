"""
Session Registrar - idempotent get-or-create of conversation sessions.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import ValidationError as ModelValidationError

from ..config import settings
from ..errors import PersistenceError, SessionNotFound
from ..models import Session, SessionConfig
from ..storage import StorageError, TableStore, UniqueViolation
from ..utils.auth import Authenticated, Identity

logger = logging.getLogger(__name__)


@dataclass
class Registration:
    session: Session
    created: bool  # True only for the request whose insert won


def default_session_config(identity: Identity, config: Any = settings) -> SessionConfig:
    """Config for a new session; anonymous sessions get the short retention window."""
    authenticated = isinstance(identity, Authenticated)
    return SessionConfig(
        language=config.default_language,
        timezone=config.default_timezone,
        timezone_offset=config.default_timezone_offset,
        retention_days=(
            config.authenticated_retention_days if authenticated else config.anonymous_retention_days
        ),
    )


class SessionRegistrar:
    """
    Creates or retrieves a session for a client-generated session id.

    Two concurrent first messages for the same id both resolve to one row:
    the lookup is repeated before inserting, and an insert that loses the
    race on the primary key re-reads the winner's row.
    """

    def __init__(self, store: TableStore, config: Any = settings):
        self.store = store
        self.config = config

    async def get(self, session_id: str) -> Optional[Session]:
        try:
            row = await self.store.select_one("sessions", {"session_id": session_id})
        except StorageError as e:
            logger.error(f"Session lookup failed for {session_id}: {e}")
            raise PersistenceError("Failed to get session")
        if row is None:
            return None
        try:
            return Session.model_validate(row)
        except ModelValidationError as e:
            logger.error(f"Stored session {session_id} is malformed: {e}")
            raise PersistenceError("Failed to get session")

    async def get_or_create(self, session_id: str, is_first_message: bool, identity: Identity) -> Registration:
        """
        Return the session for ``session_id``, creating it on a first message.

        No authorization happens here.

        Raises:
            SessionNotFound: unknown id and not a first message
            PersistenceError: the store failed
        """
        session = await self.get(session_id)
        if session is not None:
            return Registration(session=session, created=False)

        if not is_first_message:
            raise SessionNotFound()

        # Double-check: a concurrent first message may have created it meanwhile
        session = await self.get(session_id)
        if session is not None:
            logger.info(f"Session {session_id} created by a concurrent request")
            return Registration(session=session, created=False)

        user_id = identity.user_id if isinstance(identity, Authenticated) else None
        row = {
            "session_id": session_id,
            "user_id": user_id,
            "is_anonymous": user_id is None,
            "auth_type": "email" if user_id else "anonymous",
            "config": default_session_config(identity, self.config).model_dump(),
        }

        try:
            created = await self.store.insert("sessions", row)
        except UniqueViolation:
            logger.info(f"Lost create race for session {session_id}; using existing row")
            session = await self.get(session_id)
            if session is None:
                raise PersistenceError("Failed to create session")
            return Registration(session=session, created=False)
        except StorageError as e:
            logger.error(f"Session insert failed for {session_id}: {e}")
            raise PersistenceError("Failed to create session")

        logger.info(
            f"Created {'anonymous' if user_id is None else 'authenticated'} session",
            extra={"extra_fields": {"session_id": session_id}}
        )
        return Registration(session=Session.model_validate(created), created=True)
