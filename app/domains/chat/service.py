"""Chat service layer: chats, messages and stream markers."""

import logging
import uuid
from datetime import timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.exceptions.base import BadRequestError, PersistenceError
from app.exceptions.chat import ChatNotFoundError, ChatPermissionError, MessageNotFoundError
from app.shared.upsert import insert_for
from models.base import utcnow
from models.chat import Chat, Visibility
from models.chat_message import ChatMessage, MessageRole
from models.chat_stream import ChatStream
from models.user import User


logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 50
DEFAULT_TITLE = "New Chat"


def title_from_text(text: str) -> str:
    """Chat title derived from the first user message."""
    text = " ".join((text or "").split())
    if not text:
        return DEFAULT_TITLE
    if len(text) <= TITLE_MAX_LENGTH:
        return text
    return text[: TITLE_MAX_LENGTH - 3].rstrip() + "..."


class ChatService:
    """Service class for chat persistence operations."""

    def __init__(self, db: AsyncSession):
        """Initialize chat service with database session.

        Args:
            db: Async database session for data operations.
        """
        self.db = db

    # Chats

    async def get_chat(self, chat_id: UUID) -> Chat | None:
        result = await self.db.execute(select(Chat).where(Chat.id == chat_id))
        return result.scalar_one_or_none()

    async def get_owned_chat(self, chat_id: UUID, user: User) -> Chat:
        """Get a chat the user owns.

        Raises:
            ChatNotFoundError: If the chat does not exist.
            ChatPermissionError: If another user owns it.
        """
        chat = await self.get_chat(chat_id)
        if not chat:
            raise ChatNotFoundError()
        if chat.user_id != user.id:
            raise ChatPermissionError()
        return chat

    async def get_visible_chat(self, chat_id: UUID, user: User) -> Chat:
        """Get a chat that is public or owned by the user."""
        chat = await self.get_chat(chat_id)
        if not chat:
            raise ChatNotFoundError()
        if chat.visibility != Visibility.PUBLIC and chat.user_id != user.id:
            raise ChatPermissionError()
        return chat

    async def save_chat(
        self,
        chat_id: UUID,
        user_id: UUID,
        title: str,
        visibility: Visibility = Visibility.PRIVATE,
    ) -> bool:
        """Insert a chat; an existing id is a successful no-op.

        Returns:
            True if the chat was created by this call.
        """
        now = utcnow()
        stmt = (
            insert_for(self.db, Chat)
            .values(
                id=chat_id,
                user_id=user_id,
                title=title,
                visibility=visibility,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["id"])
        )
        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to save chat {chat_id}: {str(e)}")
            raise PersistenceError("Failed to save chat") from e

        created = result.rowcount == 1
        if not created:
            logger.info(f"Chat {chat_id} already exists, continuing")
        return created

    async def delete_chat(self, chat_id: UUID, user: User) -> Chat:
        """Delete an owned chat with its messages, votes and stream markers."""
        chat = await self.get_owned_chat(chat_id, user)
        try:
            await self.db.delete(chat)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError("Failed to delete chat") from e
        logger.info(f"Deleted chat {chat_id}")
        return chat

    async def update_visibility(self, chat_id: UUID, user: User, visibility: Visibility) -> Chat:
        chat = await self.get_owned_chat(chat_id, user)
        chat.visibility = visibility
        try:
            await self.db.commit()
            await self.db.refresh(chat)
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError("Failed to update chat visibility") from e
        return chat

    async def get_chat_history(
        self,
        user_id: UUID,
        limit: int = 20,
        starting_after: UUID | None = None,
        ending_before: UUID | None = None,
    ) -> tuple[list[Chat], bool]:
        """Keyset-paginated chats of a user, newest first.

        ``starting_after`` returns chats newer than the referenced chat,
        ``ending_before`` chats older than it. An unknown reference chat
        yields an empty page.

        Returns:
            The page of chats and whether more exist.
        """
        if starting_after and ending_before:
            raise BadRequestError("Only one of starting_after or ending_before can be provided")

        query = select(Chat).where(Chat.user_id == user_id)

        reference_id = starting_after or ending_before
        if reference_id:
            reference = await self.get_chat(reference_id)
            if not reference:
                logger.info(f"History cursor chat {reference_id} not found, returning empty page")
                return [], False
            if starting_after:
                query = query.where(Chat.created_at > reference.created_at)
            else:
                query = query.where(Chat.created_at < reference.created_at)

        query = query.order_by(Chat.created_at.desc()).limit(limit + 1)
        result = await self.db.execute(query)
        chats = list(result.scalars().all())

        has_more = len(chats) > limit
        return chats[:limit], has_more

    # Messages

    async def save_messages(self, messages: list[dict[str, Any]]) -> int:
        """Insert messages; ids that already exist are left untouched.

        Returns:
            Number of messages inserted.
        """
        if not messages:
            return 0

        now = utcnow()
        rows = [
            {
                "id": message["id"],
                "chat_id": message["chat_id"],
                "role": message["role"],
                "parts": message.get("parts") or [],
                "attachments": message.get("attachments") or [],
                "hypotheses": message.get("hypotheses"),
                "created_at": message.get("created_at") or now,
                "updated_at": now,
            }
            for message in messages
        ]
        inserted = 0
        try:
            for row in rows:
                stmt = insert_for(self.db, ChatMessage).values(**row).on_conflict_do_nothing(index_elements=["id"])
                result = await self.db.execute(stmt)
                inserted += result.rowcount
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to save {len(rows)} message(s): {str(e)}")
            raise PersistenceError("Failed to save messages") from e

        if inserted < len(rows):
            logger.info(f"Skipped {len(rows) - inserted} message(s) that already exist")
        return inserted

    async def get_message(self, message_id: UUID) -> ChatMessage | None:
        result = await self.db.execute(select(ChatMessage).where(ChatMessage.id == message_id))
        return result.scalar_one_or_none()

    async def get_messages_by_chat(self, chat_id: UUID) -> list[ChatMessage]:
        query = (
            select(ChatMessage)
            .where(ChatMessage.chat_id == chat_id)
            .order_by(ChatMessage.created_at)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_latest_assistant_message(self, chat_id: UUID, with_hypotheses: bool = False) -> ChatMessage | None:
        """Most recent assistant message of a chat, optionally one carrying hypotheses."""
        messages = [m for m in await self.get_messages_by_chat(chat_id) if m.role == MessageRole.ASSISTANT]
        if with_hypotheses:
            messages = [m for m in messages if m.hypotheses]
        return messages[-1] if messages else None

    async def delete_trailing_messages(self, message_id: UUID, user: User) -> int:
        """Delete a message and every later message of its chat (edit / regenerate).

        Returns:
            Number of messages deleted.
        """
        message = await self.get_message(message_id)
        if not message:
            raise MessageNotFoundError()
        await self.get_owned_chat(message.chat_id, user)

        stmt = delete(ChatMessage).where(
            ChatMessage.chat_id == message.chat_id,
            ChatMessage.created_at >= message.created_at,
        )
        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError("Failed to delete messages") from e

        logger.info(f"Deleted {result.rowcount} trailing message(s) of chat {message.chat_id}")
        return result.rowcount

    async def count_user_messages(self, user_id: UUID, hours: int = 24) -> int:
        """User-role messages sent by ``user_id`` within the last ``hours``."""
        since = utcnow() - timedelta(hours=hours)
        query = (
            select(func.count(ChatMessage.id))
            .join(Chat, ChatMessage.chat_id == Chat.id)
            .where(
                Chat.user_id == user_id,
                ChatMessage.role == MessageRole.USER,
                ChatMessage.created_at >= since,
            )
        )
        result = await self.db.execute(query)
        return result.scalar() or 0

    # Stream markers

    async def create_stream_id(self, chat_id: UUID) -> UUID:
        stream_id = uuid.uuid4()
        try:
            self.db.add(ChatStream(id=stream_id, chat_id=chat_id))
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError("Failed to create stream id") from e
        return stream_id

    async def get_stream_ids_by_chat(self, chat_id: UUID) -> list[UUID]:
        query = select(ChatStream.id).where(ChatStream.chat_id == chat_id).order_by(ChatStream.created_at)
        result = await self.db.execute(query)
        return list(result.scalars().all())

