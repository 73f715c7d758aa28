"""
Resource API endpoints - click tracking for support resource cards.
"""

from fastapi import APIRouter, Depends

from ..models import ResourceClick
from ..services import ChatService
from ..utils.auth import Identity, get_caller_identity
from .chat import get_chat_service

router = APIRouter(prefix="/resources", tags=["resources"])


@router.post("/track-click")
async def track_click(
    body: ResourceClick,
    identity: Identity = Depends(get_caller_identity),
    service: ChatService = Depends(get_chat_service),
):
    """Mark the latest unclicked display of a resource in a session as clicked."""
    await service.track_resource_click(body.resource_id, body.session_id, identity)
    return {"success": True}
