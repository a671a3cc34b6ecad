"""Vote service layer."""

import logging
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.domains.chat.service import ChatService
from app.exceptions.base import PersistenceError
from app.exceptions.chat import MessageNotFoundError
from app.shared.upsert import insert_for
from models.user import User
from models.vote import Vote


logger = logging.getLogger(__name__)


class VoteService:
    """Service class for message votes."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def vote(self, user: User, chat_id: UUID, message_id: UUID, is_upvoted: bool) -> Vote:
        """Record or change the vote on a message of an owned chat."""
        chat_service = ChatService(self.db)
        await chat_service.get_owned_chat(chat_id, user)
        message = await chat_service.get_message(message_id)
        if not message or message.chat_id != chat_id:
            raise MessageNotFoundError()

        stmt = insert_for(self.db, Vote).values(chat_id=chat_id, message_id=message_id, is_upvoted=is_upvoted)
        stmt = stmt.on_conflict_do_update(
            index_elements=["chat_id", "message_id"],
            set_={"is_upvoted": stmt.excluded.is_upvoted},
        )
        try:
            await self.db.execute(stmt)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to vote on message {message_id}: {str(e)}")
            raise PersistenceError("Failed to vote message") from e

        result = await self.db.execute(
            select(Vote)
            .where(Vote.chat_id == chat_id, Vote.message_id == message_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def get_votes_by_chat(self, chat_id: UUID, user: User) -> list[Vote]:
        await ChatService(self.db).get_owned_chat(chat_id, user)
        result = await self.db.execute(select(Vote).where(Vote.chat_id == chat_id))
        return list(result.scalars().all())
