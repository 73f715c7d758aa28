"""
Resource Models - support resource click tracking.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class ResourceClick(BaseModel):
    """Body of ``POST /resources/track-click``. Missing fields are reported as 400."""
    model_config = ConfigDict(populate_by_name=True)

    resource_id: Optional[str] = Field(None, alias="resourceId")
    session_id: Optional[str] = Field(None, alias="sessionId")
