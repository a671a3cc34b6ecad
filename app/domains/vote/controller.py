"""Vote API controller."""

import logging
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_current_user, get_db, validate_token
from app.domains.vote.service import VoteService
from app.schemas.base import ActionResponse
from app.schemas.vote import VoteRequest, VoteResponse
from models.user import User

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/vote",
    tags=["votes"],
    dependencies=[Depends(validate_token)],
)


@router.get("", response_model=list[VoteResponse])
async def get_votes(
    _request: Request,
    chat_id: UUID = Query(..., alias="chatId"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Votes on the messages of a chat."""
    votes = await VoteService(db).get_votes_by_chat(chat_id, current_user)
    return [VoteResponse.model_validate(vote) for vote in votes]


@router.patch("", response_model=ActionResponse)
async def vote_message(
    _request: Request,
    data: VoteRequest = Body(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Up- or down-vote a message."""
    vote = await VoteService(db).vote(current_user, data.chat_id, data.message_id, data.type == "up")
    return ActionResponse(
        status="success",
        message="Message voted",
        data=VoteResponse.model_validate(vote).model_dump(mode="json"),
    )
