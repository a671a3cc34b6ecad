"""Hypothesis service layer: persistence and feedback backfill."""

import logging
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.domains.chat.service import ChatService
from app.exceptions.base import PersistenceError
from app.exceptions.chat import HypothesisNotFoundError, InvalidHypothesisIdError, MessageNotFoundError
from app.schemas.hypothesis import HypothesisData
from app.services.hypothesis_extractor import hypotheses_from_parts, parse_hypothesis_id
from app.shared.upsert import insert_for
from models.base import utcnow
from models.chat_message import ChatMessage
from models.hypothesis import Hypothesis
from models.user import User


logger = logging.getLogger(__name__)


def snapshot_hypotheses(message: ChatMessage) -> list[HypothesisData]:
    """Hypotheses stored on a message's JSON snapshot, skipping invalid entries."""
    hypotheses = []
    for position, item in enumerate(message.hypotheses or [], start=1):
        if not isinstance(item, dict):
            continue
        item = {"orderIndex": position, **item}
        try:
            hypotheses.append(HypothesisData.model_validate(item))
        except PydanticValidationError:
            logger.warning(f"Ignoring invalid hypothesis snapshot entry on message {message.id}")
    return hypotheses


class HypothesisService:
    """Service class for hypothesis operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def upsert(self, hypothesis: HypothesisData, message_id: UUID, commit: bool = True) -> Hypothesis:
        """Insert a hypothesis or update title, description and order of an existing id."""
        stmt = insert_for(self.db, Hypothesis).values(
            id=hypothesis.id,
            message_id=message_id,
            title=hypothesis.title,
            description=hypothesis.description,
            order_index=hypothesis.order_index,
            created_at=utcnow(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={
                "title": stmt.excluded.title,
                "description": stmt.excluded.description,
                "order_index": stmt.excluded.order_index,
            },
        )
        try:
            await self.db.execute(stmt)
            if commit:
                await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to upsert hypothesis {hypothesis.id}: {str(e)}")
            raise PersistenceError("Failed to save hypothesis", details={"hypothesis_id": hypothesis.id}) from e

        return await self.get(hypothesis.id, populate_existing=True)

    async def save_many(
        self, message_id: UUID, hypotheses: list[HypothesisData], user: User | None = None
    ) -> list[Hypothesis]:
        """Upsert hypotheses of one message.

        When ``user`` is given the message's chat must belong to them. Every id
        must name this message. Individual write failures are logged and skipped.

        Raises:
            MessageNotFoundError: If the message does not exist.
            ChatPermissionError: If ``user`` does not own the chat.
            InvalidHypothesisIdError: If an id is malformed or names another message.
        """
        chat_service = ChatService(self.db)
        message = await chat_service.get_message(message_id)
        if not message:
            raise MessageNotFoundError()
        if user is not None:
            await chat_service.get_owned_chat(message.chat_id, user)

        for hypothesis in hypotheses:
            ref = parse_hypothesis_id(hypothesis.id)
            if ref.message_id != message.id or ref.chat_id != message.chat_id:
                raise InvalidHypothesisIdError(f"Hypothesis {hypothesis.id} does not belong to message {message_id}")

        saved = []
        for hypothesis in hypotheses:
            try:
                saved.append(await self.upsert(hypothesis, message_id))
            except PersistenceError:
                logger.warning(f"Skipping hypothesis {hypothesis.id} of message {message_id}")
        logger.info(f"Saved {len(saved)}/{len(hypotheses)} hypotheses for message {message_id}")
        return saved

    async def get(self, hypothesis_id: str, populate_existing: bool = False) -> Hypothesis | None:
        query = select(Hypothesis).where(Hypothesis.id == hypothesis_id)
        if populate_existing:
            query = query.execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_by_message(self, message_id: UUID) -> list[Hypothesis]:
        query = select(Hypothesis).where(Hypothesis.message_id == message_id).order_by(Hypothesis.order_index)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def resolve(self, hypothesis_id: str) -> Hypothesis:
        """Return the persisted hypothesis, backfilling it when only the message knows it.

        Clients may hold ids whose message id differs from the stored one, so
        when the message is unknown the latest assistant message of the chat
        that carries hypotheses is used, and the hypothesis is matched by id or
        by its number.

        Raises:
            InvalidHypothesisIdError: If the id is malformed.
            HypothesisNotFoundError: If no message holds the hypothesis.
        """
        existing = await self.get(hypothesis_id)
        if existing:
            return existing

        ref = parse_hypothesis_id(hypothesis_id)
        chat_service = ChatService(self.db)

        message = await chat_service.get_message(ref.message_id)
        if not message or message.chat_id != ref.chat_id:
            logger.info(f"Message {ref.message_id} not found, looking for hypotheses in chat {ref.chat_id}")
            message = await chat_service.get_latest_assistant_message(ref.chat_id, with_hypotheses=True)
        if not message:
            raise HypothesisNotFoundError("Message not found and no assistant messages with hypotheses in chat")

        candidates = snapshot_hypotheses(message) or hypotheses_from_parts(message.parts, message.chat_id, message.id)
        match = next((h for h in candidates if h.id == hypothesis_id), None)
        if match is None:
            match = next((h for h in candidates if h.order_index == ref.ordinal), None)
        if match is None:
            raise HypothesisNotFoundError("Hypothesis not found in message")

        if match.id != hypothesis_id:
            logger.info(f"Resolved hypothesis {hypothesis_id} to {match.id} by number")
        existing = await self.get(match.id)
        if existing:
            return existing
        return await self.upsert(match, message.id)
