"""Feedback service layer.

Two shapes of feedback are kept: aggregate feedback on an assistant message
and feedback on a single hypothesis. Each allows one row per (user, subject);
resubmitting updates the row in place.
"""

import logging
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.domains.chat.service import ChatService
from app.domains.hypothesis.service import HypothesisService
from app.exceptions.base import PersistenceError
from app.exceptions.chat import ChatNotFoundError, MessageNotFoundError
from app.schemas.hypothesis import FeedbackStats, HypothesisFeedbackCreate, MessageFeedbackCreate
from app.shared.upsert import insert_for
from models.base import utcnow
from models.feedback import HypothesisFeedback, MessageFeedback
from models.user import User


logger = logging.getLogger(__name__)


class FeedbackService:
    """Service class for message and hypothesis feedback."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _execute_upsert(self, stmt, what: str) -> None:
        try:
            await self.db.execute(stmt)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to save {what}: {str(e)}")
            raise PersistenceError(f"Failed to save {what}") from e

    # Message-level feedback

    async def get_message_feedback(self, message_id: UUID, user_id: UUID) -> MessageFeedback | None:
        query = select(MessageFeedback).where(
            MessageFeedback.message_id == message_id,
            MessageFeedback.user_id == user_id,
        )
        result = await self.db.execute(query.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def save_message_feedback(self, user: User, data: MessageFeedbackCreate) -> MessageFeedback:
        """Upsert the user's feedback on a message.

        When the message id is unknown, or names a message of another chat, the
        latest assistant message of the chat receives the feedback.

        Raises:
            ChatNotFoundError: If the chat does not exist.
            MessageNotFoundError: If the chat has no assistant message to fall back on.
        """
        chat_service = ChatService(self.db)
        chat = await chat_service.get_chat(data.chat_id)
        if not chat:
            raise ChatNotFoundError()

        message_id = data.message_id
        message = await chat_service.get_message(message_id)
        if not message or message.chat_id != chat.id:
            fallback = await chat_service.get_latest_assistant_message(chat.id)
            if not fallback:
                raise MessageNotFoundError("No assistant messages found in chat")
            logger.info(f"Message {message_id} not found in chat {chat.id}, using assistant message {fallback.id}")
            message_id = fallback.id

        ratings = (
            {key: rating.value for key, rating in data.hypothesis_ratings.items()}
            if data.hypothesis_ratings is not None
            else None
        )
        now = utcnow()
        stmt = insert_for(self.db, MessageFeedback).values(
            chat_id=chat.id,
            message_id=message_id,
            user_id=user.id,
            rating=data.rating,
            feedback_text=data.feedback_text,
            feedback_type=data.feedback_type,
            hypothesis_ratings=ratings,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "message_id"],
            set_={
                "rating": stmt.excluded.rating,
                "feedback_text": stmt.excluded.feedback_text,
                "feedback_type": stmt.excluded.feedback_type,
                "hypothesis_ratings": stmt.excluded.hypothesis_ratings,
                "updated_at": now,
            },
        )
        await self._execute_upsert(stmt, "message feedback")
        return await self.get_message_feedback(message_id, user.id)

    async def get_message_feedback_stats(self, message_id: UUID) -> FeedbackStats:
        query = (
            select(MessageFeedback.rating, func.count())
            .where(MessageFeedback.message_id == message_id)
            .group_by(MessageFeedback.rating)
        )
        result = await self.db.execute(query)
        return FeedbackStats.from_counts(dict(result.all()))

    # Per-hypothesis feedback

    async def get_hypothesis_feedback(self, hypothesis_id: str, user_id: UUID) -> HypothesisFeedback | None:
        query = select(HypothesisFeedback).where(
            HypothesisFeedback.hypothesis_id == hypothesis_id,
            HypothesisFeedback.user_id == user_id,
        )
        result = await self.db.execute(query.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def save_hypothesis_feedback(
        self, user: User, hypothesis_id: str, data: HypothesisFeedbackCreate
    ) -> HypothesisFeedback:
        """Upsert the user's feedback on a hypothesis, backfilling the hypothesis row if needed."""
        hypothesis = await HypothesisService(self.db).resolve(hypothesis_id)

        now = utcnow()
        stmt = insert_for(self.db, HypothesisFeedback).values(
            hypothesis_id=hypothesis.id,
            user_id=user.id,
            rating=data.rating,
            feedback_text=data.feedback_text,
            feedback_category=data.feedback_category,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "hypothesis_id"],
            set_={
                "rating": stmt.excluded.rating,
                "feedback_text": stmt.excluded.feedback_text,
                "feedback_category": stmt.excluded.feedback_category,
                "updated_at": now,
            },
        )
        await self._execute_upsert(stmt, "hypothesis feedback")
        return await self.get_hypothesis_feedback(hypothesis.id, user.id)

    async def get_hypothesis_feedback_stats(self, hypothesis_id: str) -> FeedbackStats:
        query = (
            select(HypothesisFeedback.rating, func.count())
            .where(HypothesisFeedback.hypothesis_id == hypothesis_id)
            .group_by(HypothesisFeedback.rating)
        )
        result = await self.db.execute(query)
        return FeedbackStats.from_counts(dict(result.all()))
