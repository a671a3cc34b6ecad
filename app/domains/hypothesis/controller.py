"""Hypothesis API controller."""

import logging
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Path, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_current_user, get_db, validate_token
from app.domains.chat.service import ChatService
from app.domains.hypothesis.service import HypothesisService
from app.schemas.hypothesis import HypothesisResponse, SaveHypothesesRequest, SaveHypothesesResponse
from models.user import User

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/message",
    tags=["hypotheses"],
    dependencies=[Depends(validate_token)],
)


@router.get("/{message_id}/hypotheses", response_model=list[HypothesisResponse])
async def get_message_hypotheses(
    _request: Request,
    message_id: UUID = Path(..., description="Message ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Persisted hypotheses of a message, in order."""
    chat_service = ChatService(db)
    message = await chat_service.get_message(message_id)
    if message:
        await chat_service.get_visible_chat(message.chat_id, current_user)
    hypotheses = await HypothesisService(db).get_by_message(message_id)
    return [HypothesisResponse.model_validate(h) for h in hypotheses]


@router.post("/{message_id}/hypotheses", response_model=SaveHypothesesResponse)
async def save_message_hypotheses(
    _request: Request,
    message_id: UUID = Path(..., description="Message ID"),
    data: SaveHypothesesRequest = Body(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Upsert hypotheses of a message in an owned chat; existing ids are updated in place."""
    saved = await HypothesisService(db).save_many(message_id, data.hypotheses, current_user)
    return SaveHypothesesResponse(
        saved=len(saved),
        hypotheses=[HypothesisResponse.model_validate(h) for h in saved],
    )
