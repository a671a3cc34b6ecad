"""Per-turn orchestration of storage around the backend stream.

A turn moves through::

    CREATED -> USER_MESSAGE_SAVED -> STREAM_OPEN -> STREAMING
        -> COMPLETED | INTERRUPTED | BACKEND_UNAVAILABLE
        -> ASSISTANT_MESSAGE_SAVED | FAILED

The user message is stored before the backend is contacted. Whatever the
transcoder accumulated is stored exactly once when the stream ends, whether
it completed, was interrupted upstream or was cancelled by the client. That
final write runs in its own task on its own session and is shielded from
the request's cancellation.
"""

import asyncio
import enum
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import Settings, settings as default_settings
from app.domains.chat.service import ChatService, title_from_text
from app.domains.hypothesis.service import HypothesisService
from app.exceptions.base import BaseAppException, PersistenceError
from app.exceptions.chat import ChatPermissionError, RateLimitExceededError
from app.exceptions.stream import BackendUnavailableError, StreamInterruptedError
from app.schemas.chat import ChatRequest
from app.schemas.stream import SSE_DONE, UIEventType, UIStreamEvent
from app.services.backend_client import BackendClient, BackendStream
from app.services.hypothesis_extractor import extract_hypotheses
from app.services.transcoder import StreamTranscoder
from models.chat_message import MessageRole
from models.user import User, UserType

logger = logging.getLogger(__name__)


class PendingPersistence:
    """End-of-stream writes still running, possibly after their request went away.

    One instance is created per application in the lifespan and drained on
    shutdown.
    """

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._done)

    def _done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Persisting the assistant message failed: {task.exception()!r}")

    async def wait(self) -> None:
        """Wait for every in-flight write to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class TurnState(str, enum.Enum):
    """Lifecycle of one chat turn."""

    CREATED = "created"
    USER_MESSAGE_SAVED = "user_message_saved"
    STREAM_OPEN = "stream_open"
    STREAMING = "streaming"
    COMPLETED = "completed"
    INTERRUPTED = "interrupted"
    BACKEND_UNAVAILABLE = "backend_unavailable"
    ASSISTANT_MESSAGE_SAVED = "assistant_message_saved"
    FAILED = "failed"


@dataclass
class ChatTurn:
    chat_id: UUID
    user_id: UUID
    user_message_id: UUID
    assistant_message_id: UUID = field(default_factory=uuid.uuid4)
    stream_id: UUID | None = None
    chat_created: bool = False
    state: TurnState = TurnState.CREATED
    backend_stream: BackendStream | None = None
    transcoder: StreamTranscoder = field(default_factory=StreamTranscoder)
    hypothesis_count: int = 0


class ChatTurnCoordinator:
    """Runs one chat turn: storage before, during and after the backend stream."""

    def __init__(
        self,
        db: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        backend: BackendClient,
        config: Settings | None = None,
        pending: PendingPersistence | None = None,
    ):
        self.db = db
        self.session_factory = session_factory
        self.backend = backend
        self.config = config or default_settings
        self.pending = pending if pending is not None else PendingPersistence()
        self.turn: ChatTurn | None = None

    def message_limit(self, user: User) -> int:
        if user.user_type == UserType.GUEST:
            return self.config.max_messages_per_day_guest
        return self.config.max_messages_per_day_regular

    async def prepare(self, request: ChatRequest, user: User) -> ChatTurn:
        """Validate the turn, store the user message and open the backend stream.

        Raises:
            RateLimitExceededError: If the user is over the daily entitlement.
            ChatPermissionError: If the chat belongs to another user.
            BackendUnavailableError: If the backend stream cannot be opened.
        """
        chat_service = ChatService(self.db)
        turn = ChatTurn(chat_id=request.id, user_id=user.id, user_message_id=request.message.id)
        self.turn = turn

        limit = self.message_limit(user)
        sent = await chat_service.count_user_messages(user.id, hours=24)
        if sent >= limit:
            logger.info(f"User {user.id} reached the daily limit of {limit} messages")
            raise RateLimitExceededError(limit=limit)

        chat = await chat_service.get_chat(request.id)
        if not chat:
            turn.chat_created = await chat_service.save_chat(
                request.id,
                user.id,
                title_from_text(request.message.text),
                request.selected_visibility_type,
            )
            if not turn.chat_created:
                chat = await chat_service.get_chat(request.id)
        if chat and chat.user_id != user.id:
            raise ChatPermissionError()

        await chat_service.save_messages(
            [
                {
                    "id": request.message.id,
                    "chat_id": request.id,
                    "role": MessageRole.USER,
                    "parts": [part.model_dump(by_alias=True, exclude_none=True) for part in request.message.parts],
                    "attachments": [],
                }
            ]
        )
        turn.state = TurnState.USER_MESSAGE_SAVED

        turn.stream_id = await chat_service.create_stream_id(request.id)

        payload = self.backend.build_payload(user.id, request.message.text)
        try:
            turn.backend_stream = await self.backend.open_stream(payload)
        except BackendUnavailableError:
            turn.state = TurnState.BACKEND_UNAVAILABLE
            logger.error(f"Backend unavailable for chat {request.id}; user message {request.message.id} kept")
            raise
        turn.state = TurnState.STREAM_OPEN

        logger.info(f"Turn prepared for chat {turn.chat_id} (stream {turn.stream_id})")
        return turn

    async def events(self, turn: ChatTurn) -> AsyncIterator[UIStreamEvent]:
        """UI events of the turn; stores the assistant message when the stream ends."""
        turn.state = TurnState.STREAMING
        try:
            yield UIStreamEvent(type=UIEventType.START, message_id=str(turn.assistant_message_id))
            async for event in turn.transcoder.transcode(turn.backend_stream.iter_chunks()):
                yield event
            turn.state = TurnState.COMPLETED
        except StreamInterruptedError as e:
            turn.state = TurnState.INTERRUPTED
            logger.warning(f"Stream for chat {turn.chat_id} interrupted after {len(turn.transcoder.text)} chars")
            yield UIStreamEvent(type=UIEventType.ERROR, error_text=e.message)
        finally:
            if turn.state == TurnState.STREAMING:
                # Client went away or the consumer stopped early
                turn.state = TurnState.INTERRUPTED
            task = asyncio.create_task(self._finish(turn))
            self.pending.track(task)
            await asyncio.shield(task)

    async def stream_sse(self, turn: ChatTurn) -> AsyncIterator[str]:
        """The turn encoded as UI SSE frames, terminated by ``[DONE]``."""
        async with aclosing(self.events(turn)) as events:
            async for event in events:
                yield event.to_sse()
        yield SSE_DONE

    async def _finish(self, turn: ChatTurn) -> None:
        if turn.backend_stream is not None:
            await turn.backend_stream.aclose()
        await self.persist(turn)

    async def persist(self, turn: ChatTurn) -> None:
        """Store the assistant message and, when any were extracted, its hypotheses."""
        parts = turn.transcoder.parts()
        if not parts:
            logger.info(f"No assistant content for chat {turn.chat_id}; nothing to persist")
            return

        hypotheses = extract_hypotheses(turn.transcoder.text, turn.chat_id, turn.assistant_message_id)

        async with self.session_factory() as session:
            try:
                await ChatService(session).save_messages(
                    [
                        {
                            "id": turn.assistant_message_id,
                            "chat_id": turn.chat_id,
                            "role": MessageRole.ASSISTANT,
                            "parts": parts,
                            "attachments": [],
                            "hypotheses": [h.snapshot() for h in hypotheses] or None,
                        }
                    ]
                )
            except PersistenceError:
                turn.state = TurnState.FAILED
                logger.error(f"Failed to save assistant message {turn.assistant_message_id} of chat {turn.chat_id}")
                return
            turn.state = TurnState.ASSISTANT_MESSAGE_SAVED

            if hypotheses:
                try:
                    saved = await HypothesisService(session).save_many(turn.assistant_message_id, hypotheses)
                    turn.hypothesis_count = len(saved)
                except BaseAppException as e:
                    logger.error(f"Failed to save hypotheses of message {turn.assistant_message_id}: {e.message}")

        logger.info(
            f"Saved assistant message {turn.assistant_message_id} "
            f"({len(turn.transcoder.text)} chars, {turn.hypothesis_count} hypotheses)"
        )
