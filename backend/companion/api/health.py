"""
Health API endpoint - liveness and configuration summary.
"""

from fastapi import APIRouter, Request

from ..config import settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    state = request.app.state
    return {
        "status": "healthy",
        "storage": settings.storage_type,
        "version": settings.app_version,
        "assistant_mode": bool(settings.assistant_id and getattr(state, "assistant_provider", None)),
        "chat_fallback": getattr(state, "llm_provider", None) is not None,
    }
