"""
Folders - owner-only grouping of authenticated sessions.

Deleting a folder moves its sessions back to the top level; sessions are
never deleted with their folder.
"""

import logging
from collections import Counter
from typing import Any, Dict, List, Optional

from ..errors import Forbidden, NotFound, PersistenceError, ValidationError
from ..models import Folder, Session
from ..storage import StorageError, TableStore

logger = logging.getLogger(__name__)


def _clean_name(folder_name: str) -> str:
    name = (folder_name or "").strip()
    if not name:
        raise ValidationError("Folder name cannot be empty")
    return name


class FolderManager:
    """Folder CRUD scoped to one owner."""

    def __init__(self, store: TableStore, user_id: str):
        self.store = store
        self.user_id = user_id

    async def _owned(self, folder_id: str) -> Dict[str, Any]:
        try:
            row = await self.store.select_one("folders", {"folder_id": folder_id})
        except StorageError as e:
            logger.error(f"Folder lookup failed: {e}")
            raise PersistenceError("Failed to load folder")
        if row is None:
            raise NotFound("Folder not found")
        if row.get("user_id") != self.user_id:
            raise Forbidden("Folder belongs to another user")
        return row

    async def list_folders(self) -> List[Folder]:
        """The owner's folders, oldest first, with the number of sessions in each."""
        try:
            rows = await self.store.select("folders", {"user_id": self.user_id}, order_by="created_at")
            sessions = await self.store.select("sessions", {"user_id": self.user_id})
        except StorageError as e:
            logger.error(f"Failed to list folders: {e}")
            raise PersistenceError("Failed to list folders")
        counts = Counter(s.get("folder_id") for s in sessions if s.get("folder_id"))
        return [Folder(**row, session_count=counts[row["folder_id"]]) for row in rows]

    async def create(self, folder_name: str) -> Folder:
        name = _clean_name(folder_name)
        try:
            row = await self.store.insert("folders", {"user_id": self.user_id, "folder_name": name})
        except StorageError as e:
            logger.error(f"Failed to create folder: {e}")
            raise PersistenceError("Failed to create folder")
        logger.info(f"Folder created: {row['folder_id']}")
        return Folder(**row)

    async def rename(self, folder_id: str, folder_name: str) -> Folder:
        name = _clean_name(folder_name)
        row = await self._owned(folder_id)
        try:
            rows = await self.store.update("folders", {"folder_id": folder_id}, {"folder_name": name})
        except StorageError as e:
            logger.error(f"Failed to rename folder {folder_id}: {e}")
            raise PersistenceError("Failed to rename folder")
        return Folder(**(rows[0] if rows else {**row, "folder_name": name}))

    async def delete(self, folder_id: str) -> None:
        """Remove the folder after moving its sessions to the top level."""
        await self._owned(folder_id)
        try:
            await self.store.update(
                "sessions", {"folder_id": folder_id, "user_id": self.user_id}, {"folder_id": None}
            )
            await self.store.delete("folders", {"folder_id": folder_id})
        except StorageError as e:
            logger.error(f"Failed to delete folder {folder_id}: {e}")
            raise PersistenceError("Failed to delete folder")
        logger.info(f"Folder deleted: {folder_id}")

    async def move_session(self, session: Session, folder_id: Optional[str]) -> Session:
        """
        File ``session`` under ``folder_id`` (``None`` unfiles it).

        Raises:
            Forbidden: anonymous session, or a folder owned by someone else
            NotFound: unknown folder
        """
        if session.is_anonymous or session.user_id != self.user_id:
            raise Forbidden("Only the owner can file a session")
        if folder_id is not None:
            await self._owned(folder_id)
        try:
            rows = await self.store.update(
                "sessions", {"session_id": session.session_id}, {"folder_id": folder_id}
            )
        except StorageError as e:
            logger.error(f"Failed to move session {session.session_id}: {e}")
            raise PersistenceError("Failed to move session")
        if rows:
            return Session.model_validate(rows[0])
        return session.model_copy(update={"folder_id": folder_id})
