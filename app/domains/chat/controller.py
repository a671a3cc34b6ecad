"""Chat API controller with FastAPI endpoints."""

import logging
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Path, Query, Request, Response, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import (
    get_coordinator,
    get_current_user,
    get_db,
    get_stream_registry,
    validate_token,
)
from app.domains.chat.coordinator import ChatTurnCoordinator
from app.domains.chat.service import ChatService
from app.schemas.base import ActionResponse
from app.schemas.chat import (
    ChatHistoryResponse,
    ChatMessageResponse,
    ChatRequest,
    ChatResponse,
    MessageExistsResponse,
    VisibilityUpdateRequest,
)
from app.services.stream_registry import ResumableStreamRegistry
from models.user import User


logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["chat"],
    dependencies=[Depends(validate_token)],
)

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}


@router.post("/chat")
async def post_chat(
    _request: Request,
    chat_request: ChatRequest = Body(...),
    current_user: User = Depends(get_current_user),
    coordinator: ChatTurnCoordinator = Depends(get_coordinator),
    registry: ResumableStreamRegistry | None = Depends(get_stream_registry),
):
    """Run a chat turn and stream the assistant reply as server-sent events.

    The chat is created on first use and the user message is stored before
    the research backend is contacted. Errors raised before streaming starts
    (rate limit, ownership, backend unavailable) are returned as JSON errors;
    an interruption mid-stream is reported as an ``error`` event.
    """
    turn = await coordinator.prepare(chat_request, current_user)
    source = coordinator.stream_sse(turn)

    if registry is not None:
        stream_id = str(turn.stream_id)
        registry.start(stream_id, source)
        source = await registry.subscribe(stream_id)

    return StreamingResponse(source, media_type="text/event-stream", headers=SSE_HEADERS)


@router.delete("/chat", response_model=ActionResponse)
async def delete_chat(
    _request: Request,
    chat_id: UUID = Query(..., alias="id", description="Chat ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Delete an owned chat together with its messages, hypotheses and votes."""
    service = ChatService(db)
    chat = await service.delete_chat(chat_id, current_user)

    return ActionResponse(
        status="success",
        message="Chat deleted successfully",
        data=ChatResponse.model_validate(chat).model_dump(mode="json"),
    )


@router.get("/chat/{chat_id}/stream")
async def resume_chat_stream(
    _request: Request,
    chat_id: UUID = Path(..., description="Chat ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    registry: ResumableStreamRegistry | None = Depends(get_stream_registry),
):
    """Re-attach to the latest stream of a chat; 204 when there is nothing to resume."""
    service = ChatService(db)
    await service.get_visible_chat(chat_id, current_user)

    if registry is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    stream_ids = await service.get_stream_ids_by_chat(chat_id)
    if not stream_ids or str(stream_ids[-1]) not in registry:
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    stream_id = str(stream_ids[-1])
    logger.info(f"Resuming stream {stream_id} of chat {chat_id}")
    return StreamingResponse(await registry.subscribe(stream_id), media_type="text/event-stream", headers=SSE_HEADERS)


@router.get("/chat/{chat_id}/messages", response_model=list[ChatMessageResponse])
async def get_chat_messages(
    _request: Request,
    chat_id: UUID = Path(..., description="Chat ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Messages of a chat the user owns or that is public."""
    service = ChatService(db)
    await service.get_visible_chat(chat_id, current_user)
    messages = await service.get_messages_by_chat(chat_id)
    return [ChatMessageResponse.model_validate(message) for message in messages]


@router.patch("/chat/{chat_id}/visibility", response_model=ActionResponse)
async def update_chat_visibility(
    _request: Request,
    chat_id: UUID = Path(..., description="Chat ID"),
    update: VisibilityUpdateRequest = Body(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Change the visibility of an owned chat."""
    service = ChatService(db)
    chat = await service.update_visibility(chat_id, current_user, update.visibility)

    return ActionResponse(
        status="success",
        message="Chat visibility updated",
        data=ChatResponse.model_validate(chat).model_dump(mode="json"),
    )


@router.get("/history", response_model=ChatHistoryResponse)
async def get_chat_history(
    _request: Request,
    limit: int = Query(20, ge=1, le=100, description="Page size"),
    starting_after: UUID | None = Query(None, description="Return chats newer than this chat"),
    ending_before: UUID | None = Query(None, description="Return chats older than this chat"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Chats of the current user, newest first."""
    service = ChatService(db)
    chats, has_more = await service.get_chat_history(
        current_user.id,
        limit=limit,
        starting_after=starting_after,
        ending_before=ending_before,
    )
    return ChatHistoryResponse(chats=[ChatResponse.model_validate(chat) for chat in chats], has_more=has_more)


@router.get("/message/{message_id}/exists", response_model=MessageExistsResponse)
async def message_exists(
    _request: Request,
    message_id: UUID = Path(..., description="Message ID"),
    _current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Whether a message has been persisted yet."""
    message = await ChatService(db).get_message(message_id)
    return MessageExistsResponse(
        exists=message is not None,
        message_id=message_id,
        chat_id=message.chat_id if message else None,
    )


@router.delete("/message/{message_id}/trailing", response_model=ActionResponse)
async def delete_trailing_messages(
    _request: Request,
    message_id: UUID = Path(..., description="Message ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Delete a message and everything after it in its chat (edit / regenerate)."""
    deleted = await ChatService(db).delete_trailing_messages(message_id, current_user)

    return ActionResponse(
        status="success",
        message="Trailing messages deleted",
        data={"deleted": deleted},
    )
