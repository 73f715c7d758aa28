"""
Folder Models - user-owned groupings of sessions.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class Folder(BaseModel):
    """A folder as listed to its owner."""
    folder_id: str
    user_id: str
    folder_name: str
    created_at: Optional[datetime] = None
    session_count: int = 0  # computed on listing, not stored


class FolderName(BaseModel):
    """Body for creating or renaming a folder."""
    folder_name: str = Field(..., min_length=1, max_length=100)


class SessionFolderUpdate(BaseModel):
    """Move a session into a folder, or out of any folder with ``null``."""
    folder_id: Optional[str] = None
