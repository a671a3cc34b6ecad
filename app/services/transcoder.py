"""Backend SSE to UI stream transcoding.

The backend speaks SSE frames of tagged JSON objects, terminated by a literal
``[DONE]`` payload. The transcoder re-encodes them for the chat UI, assigning
one stable id to the answer text block however many start/end cycles the
backend emits, and accumulates the answer and reasoning text for persistence.
"""

import codecs
import json
import logging
import uuid
from collections.abc import AsyncIterable, AsyncIterator, Iterator

from pydantic import ValidationError

from app.exceptions.stream import MalformedFrameError, StreamInterruptedError
from app.schemas.stream import (
    Finish,
    ReasoningDelta,
    ReasoningEnd,
    ReasoningStart,
    TextDelta,
    TextEnd,
    TextStart,
    UIEventType,
    UIStreamEvent,
    backend_event_adapter,
)

logger = logging.getLogger(__name__)

FRAME_DELIMITER = "\n\n"
DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


class StreamTranscoder:
    """Transcodes one backend stream. Not restartable; create one per turn."""

    def __init__(self, text_block_id: str | None = None):
        self.text_block_id = text_block_id or str(uuid.uuid4())
        self.done = False
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._text_open = False
        self._text_chunks: list[str] = []
        self._reasoning_chunks: list[str] = []

    @property
    def text(self) -> str:
        return "".join(self._text_chunks)

    @property
    def reasoning(self) -> str:
        return "".join(self._reasoning_chunks)

    def parts(self) -> list[dict]:
        """Message content parts accumulated so far."""
        parts = []
        if self._reasoning_chunks:
            parts.append({"type": "reasoning", "text": self.reasoning})
        if self._text_chunks:
            parts.append({"type": "text", "text": self.text})
        return parts

    async def transcode(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[UIStreamEvent]:
        """Yield UI events for a backend byte stream.

        Raises:
            StreamInterruptedError: If the source ends without ``[DONE]``.
        """
        async for chunk in chunks:
            for event in self.feed(chunk):
                yield event
            if self.done:
                return

        for event in self.finalize():
            yield event

        if not self.done:
            logger.warning(f"Backend stream ended without {DONE_SENTINEL} after {len(self.text)} chars")
            raise StreamInterruptedError("Backend stream closed before completion")

    def feed(self, chunk: bytes) -> Iterator[UIStreamEvent]:
        """Consume a raw chunk and yield the events of every complete frame in it."""
        if self.done:
            return
        self._buffer = (self._buffer + self._decoder.decode(chunk)).replace("\r\n", "\n")

        while not self.done:
            frame, sep, rest = self._buffer.partition(FRAME_DELIMITER)
            if not sep:
                break
            self._buffer = rest
            yield from self._process_frame(frame)

    def finalize(self) -> Iterator[UIStreamEvent]:
        """Process whatever is left once the source is exhausted."""
        if self.done:
            return
        self._buffer = (self._buffer + self._decoder.decode(b"", final=True)).replace("\r\n", "\n")
        remainder, self._buffer = self._buffer, ""
        for frame in remainder.split(FRAME_DELIMITER):
            if self.done:
                break
            yield from self._process_frame(frame)

    def _process_frame(self, frame: str) -> Iterator[UIStreamEvent]:
        # Comment, event and id lines carry nothing the UI needs
        data_lines = [line[len(DATA_PREFIX):] for line in frame.split("\n") if line.startswith(DATA_PREFIX)]
        if not data_lines:
            return

        payload = "\n".join(data_lines).strip()
        if payload == DONE_SENTINEL:
            yield from self._complete()
            return

        try:
            event = self._decode(payload)
        except MalformedFrameError as e:
            logger.warning(f"{e.message}: {e.details.get('frame')!r}")
            return
        except ValidationError as e:
            logger.debug(f"Ignoring unrecognized backend event: {e.error_count()} validation error(s)")
            return

        yield from self._dispatch(event)

    @staticmethod
    def _decode(payload: str):
        try:
            obj = json.loads(payload)
        except json.JSONDecodeError as e:
            raise MalformedFrameError(f"Dropping malformed backend frame ({e.msg})", frame=payload) from e
        return backend_event_adapter.validate_python(obj)

    def _dispatch(self, event) -> Iterator[UIStreamEvent]:
        if isinstance(event, ReasoningStart):
            yield UIStreamEvent(type=UIEventType.REASONING_START, id=event.id)
        elif isinstance(event, ReasoningDelta):
            self._reasoning_chunks.append(event.delta)
            yield UIStreamEvent(type=UIEventType.REASONING_DELTA, id=event.id, delta=event.delta)
        elif isinstance(event, ReasoningEnd):
            yield UIStreamEvent(type=UIEventType.REASONING_END, id=event.id)
        elif isinstance(event, TextStart):
            yield from self._ensure_text_open()
        elif isinstance(event, TextDelta):
            yield from self._ensure_text_open()
            if event.delta:
                self._text_chunks.append(event.delta)
                yield UIStreamEvent(type=UIEventType.TEXT_DELTA, id=self.text_block_id, delta=event.delta)
        elif isinstance(event, TextEnd):
            yield from self._close_text()
        elif isinstance(event, Finish):
            yield UIStreamEvent(type=UIEventType.FINISH)

    def _ensure_text_open(self) -> Iterator[UIStreamEvent]:
        if not self._text_open:
            self._text_open = True
            yield UIStreamEvent(type=UIEventType.TEXT_START, id=self.text_block_id)

    def _close_text(self) -> Iterator[UIStreamEvent]:
        if self._text_open:
            self._text_open = False
            yield UIStreamEvent(type=UIEventType.TEXT_END, id=self.text_block_id)

    def _complete(self) -> Iterator[UIStreamEvent]:
        self.done = True
        yield from self._close_text()
        yield UIStreamEvent(type=UIEventType.FINISH)
