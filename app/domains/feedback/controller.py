"""Feedback API controller."""

import logging
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Path, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_current_user, get_db, validate_token
from app.domains.feedback.service import FeedbackService
from app.schemas.hypothesis import (
    FeedbackStats,
    HypothesisFeedbackCreate,
    HypothesisFeedbackResponse,
    HypothesisFeedbackResult,
    MessageFeedbackCreate,
    MessageFeedbackResponse,
)
from models.user import User

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["feedback"],
    dependencies=[Depends(validate_token)],
)


@router.get("/hypothesis/{hypothesis_id}/feedback", response_model=HypothesisFeedbackResult)
async def get_hypothesis_feedback(
    _request: Request,
    hypothesis_id: str = Path(..., max_length=100, description="Hypothesis ID"),
    include_stats: bool = Query(False, alias="includeStats"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The current user's feedback on a hypothesis, optionally with rating counts."""
    service = FeedbackService(db)
    feedback = await service.get_hypothesis_feedback(hypothesis_id, current_user.id)
    stats = await service.get_hypothesis_feedback_stats(hypothesis_id) if include_stats else None
    return HypothesisFeedbackResult(
        feedback=HypothesisFeedbackResponse.model_validate(feedback) if feedback else None,
        stats=stats,
    )


@router.post("/hypothesis/{hypothesis_id}/feedback", response_model=HypothesisFeedbackResult)
async def submit_hypothesis_feedback(
    _request: Request,
    hypothesis_id: str = Path(..., max_length=100, description="Hypothesis ID"),
    data: HypothesisFeedbackCreate = Body(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Rate a hypothesis; the hypothesis row is created from its message if missing."""
    service = FeedbackService(db)
    feedback = await service.save_hypothesis_feedback(current_user, hypothesis_id, data)
    stats = await service.get_hypothesis_feedback_stats(feedback.hypothesis_id)
    return HypothesisFeedbackResult(
        feedback=HypothesisFeedbackResponse.model_validate(feedback),
        stats=stats,
    )


@router.get("/hypothesis-feedback", response_model=MessageFeedbackResponse | FeedbackStats | None)
async def get_message_feedback(
    _request: Request,
    message_id: UUID = Query(..., alias="messageId"),
    stats: bool = Query(False),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The current user's feedback on a message, or its rating counts with ``stats=true``."""
    service = FeedbackService(db)
    if stats:
        return await service.get_message_feedback_stats(message_id)
    feedback = await service.get_message_feedback(message_id, current_user.id)
    return MessageFeedbackResponse.model_validate(feedback) if feedback else None


@router.post("/hypothesis-feedback", response_model=MessageFeedbackResponse)
async def submit_message_feedback(
    _request: Request,
    data: MessageFeedbackCreate = Body(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Rate the hypotheses of an assistant message as a whole."""
    feedback = await FeedbackService(db).save_message_feedback(current_user, data)
    return MessageFeedbackResponse.model_validate(feedback)
