"""
Chat API endpoints - streaming chat turns and session access.
"""

import json
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import StreamingResponse

from ..models import (
    ChatStreamRequest,
    Folder,
    FolderName,
    Message,
    Session,
    SessionFolderUpdate,
    SessionTitleUpdate,
)
from ..services import ChatService
from ..utils.auth import (
    Authenticated,
    Identity,
    get_anonymous_token,
    get_caller_identity,
    mint_token,
    require_authenticated,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


def get_chat_service(request: Request) -> ChatService:
    """Chat service built from the store and providers created at startup."""
    state = request.app.state
    return ChatService(
        store=state.table_store,
        assistants=getattr(state, "assistant_provider", None),
        llm=getattr(state, "llm_provider", None),
    )


def _sse(event: dict) -> str:
    return f"data: {json.dumps(event, ensure_ascii=False)}\n\n"


@router.post("/stream")
async def stream_chat(
    body: ChatStreamRequest,
    request: Request,
    identity: Identity = Depends(get_caller_identity),
    anonymous_token: Optional[str] = Depends(get_anonymous_token),
    service: ChatService = Depends(get_chat_service),
):
    """
    Send a message and stream the reply as Server-Sent Events.

    Validation, session lookup and authorization happen before the stream
    opens and fail with a JSON error body. Anything after that is sent as
    an ``error`` event.
    """
    turn = await service.prepare(
        body,
        identity,
        anonymous_token,
        user_agent=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None,
    )

    async def event_generator():
        try:
            async for event in service.stream_turn(turn):
                yield _sse(event)
                if event["type"] == "error":
                    return
        except GeneratorExit:
            # Client disconnected; nothing is persisted for this turn
            logger.info(
                "Client disconnected mid-stream",
                extra={"extra_fields": {"session_id": turn.session.session_id}}
            )
            raise
        except Exception as e:
            logger.error(f"Chat stream failed: {e}", exc_info=True)
            yield _sse({"type": "error", "error": "Failed to process chat request"})

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        }
    )


@router.post("/anonymous-token")
async def issue_anonymous_token():
    """
    Mint a raw anonymous token for clients that do not generate their own.

    Nothing is stored until the token accompanies a session's first message.
    """
    return {"token": mint_token()}


@router.get("/sessions", response_model=List[Session])
async def list_sessions(
    identity: Authenticated = Depends(require_authenticated),
    service: ChatService = Depends(get_chat_service),
):
    """List the authenticated caller's sessions, most recent first."""
    return await service.list_sessions(identity)


@router.get("/sessions/{session_id}/messages", response_model=List[Message])
async def list_messages(
    session_id: str,
    identity: Identity = Depends(get_caller_identity),
    anonymous_token: Optional[str] = Depends(get_anonymous_token),
    service: ChatService = Depends(get_chat_service),
):
    """Messages of one session in timestamp order (soft-deleted ones excluded)."""
    return await service.list_messages(session_id, identity, anonymous_token)


@router.patch("/sessions/{session_id}", response_model=Session)
async def rename_session(
    session_id: str,
    update: SessionTitleUpdate,
    identity: Authenticated = Depends(require_authenticated),
    service: ChatService = Depends(get_chat_service),
):
    """Rename one of the caller's sessions."""
    return await service.rename_session(session_id, identity, update.title)


@router.patch("/sessions/{session_id}/folder", response_model=Session)
async def move_session(
    session_id: str,
    update: SessionFolderUpdate,
    identity: Authenticated = Depends(require_authenticated),
    service: ChatService = Depends(get_chat_service),
):
    """Move a session into one of the caller's folders (``folder_id: null`` unfiles it)."""
    return await service.move_session(session_id, identity, update.folder_id)


@router.get("/folders", response_model=List[Folder])
async def list_folders(
    identity: Authenticated = Depends(require_authenticated),
    service: ChatService = Depends(get_chat_service),
):
    return await service.list_folders(identity)


@router.post("/folders", response_model=Folder, status_code=status.HTTP_201_CREATED)
async def create_folder(
    body: FolderName,
    identity: Authenticated = Depends(require_authenticated),
    service: ChatService = Depends(get_chat_service),
):
    return await service.create_folder(identity, body.folder_name)


@router.patch("/folders/{folder_id}", response_model=Folder)
async def rename_folder(
    folder_id: str,
    body: FolderName,
    identity: Authenticated = Depends(require_authenticated),
    service: ChatService = Depends(get_chat_service),
):
    return await service.rename_folder(folder_id, identity, body.folder_name)


@router.delete("/folders/{folder_id}")
async def delete_folder(
    folder_id: str,
    identity: Authenticated = Depends(require_authenticated),
    service: ChatService = Depends(get_chat_service),
):
    """Delete a folder; its sessions move back to the top level."""
    await service.delete_folder(folder_id, identity)
    return {"success": True}
