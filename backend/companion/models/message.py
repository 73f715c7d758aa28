"""
Message Models - chat turns and the streaming request body.
"""

from datetime import datetime
from typing import Optional, Literal, Dict, Any
from pydantic import BaseModel, ConfigDict, Field


class Message(BaseModel):
    """One persisted turn. Append-only; removal sets ``deleted_at``."""
    message_id: str
    session_id: str
    role: Literal["user", "assistant", "system"]
    content: str
    token_count: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
    deleted_at: Optional[datetime] = None


class ChatStreamRequest(BaseModel):
    """Body of ``POST /chat/stream``. Missing fields are reported as 400, not 422."""
    model_config = ConfigDict(populate_by_name=True)

    session_id: Optional[str] = Field(None, alias="sessionId")
    user_message: Optional[str] = Field(None, alias="userMessage")
    is_first_message: bool = Field(False, alias="isFirstMessage")
