"""
Session Models - conversation sessions and the tokens bound to them.
"""

from datetime import datetime
from typing import Optional, Literal
from pydantic import BaseModel, Field, model_validator


class SessionConfig(BaseModel):
    """Per-session preferences fixed at creation."""
    language: str = "vi"
    timezone: str = "Asia/Ho_Chi_Minh"
    timezone_offset: str = "UTC+7"
    retention_days: int = 1


class Session(BaseModel):
    """A persisted conversation."""
    session_id: str
    user_id: Optional[str] = None
    is_anonymous: bool = True
    auth_type: Literal["anonymous", "email"] = "anonymous"
    config: SessionConfig = Field(default_factory=SessionConfig)
    title: Optional[str] = None
    thread_id: Optional[str] = None  # provider-side thread, distinct from session_id
    folder_id: Optional[str] = None
    last_activity_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @model_validator(mode="after")
    def check_owner(self) -> "Session":
        # Anonymous sessions have no owner; authenticated ones always do
        if self.is_anonymous != (self.user_id is None):
            raise ValueError("is_anonymous must be true exactly when user_id is null")
        return self


class SessionTitleUpdate(BaseModel):
    """Rename request for a session."""
    title: str = Field(..., min_length=1, max_length=120)


class AnonymousSessionToken(BaseModel):
    """Stored binding between an anonymous session and a caller-held secret."""
    token_id: str
    token_hash: str
    session_id: str
    expires_at: datetime
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    created_at: Optional[datetime] = None
