"""In-process registry of resumable response streams.

A registered stream is drained by a detached producer task into a replay
buffer, so generation (and the persistence that follows it) does not depend
on any one client staying connected. Subscribers replay the buffer and then
follow live output until the stream finishes.

The registry is created in the application lifespan and closed at shutdown;
request handlers reach it through ``app.state``.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class _StreamEntry:
    stream_id: str
    items: list[str] = field(default_factory=list)
    finished: bool = False
    finished_at: float | None = None
    changed: asyncio.Condition = field(default_factory=asyncio.Condition)
    task: asyncio.Task | None = None


class ResumableStreamRegistry:
    """Keyed registry of in-flight and recently finished streams."""

    def __init__(self, ttl_seconds: float = 600.0):
        self.ttl_seconds = ttl_seconds
        self._streams: dict[str, _StreamEntry] = {}
        self._closed = False

    def __contains__(self, stream_id: str) -> bool:
        self._evict_expired()
        return stream_id in self._streams

    def __len__(self) -> int:
        return len(self._streams)

    def is_active(self, stream_id: str) -> bool:
        entry = self._streams.get(stream_id)
        return entry is not None and not entry.finished

    def start(self, stream_id: str, source: AsyncIterator[str]) -> None:
        """Begin draining ``source`` in the background under ``stream_id``."""
        if self._closed:
            raise RuntimeError("Stream registry is closed")
        if stream_id in self._streams:
            raise ValueError(f"Stream {stream_id} is already registered")

        self._evict_expired()
        entry = _StreamEntry(stream_id=stream_id)
        self._streams[stream_id] = entry
        entry.task = asyncio.create_task(self._produce(entry, source), name=f"stream-{stream_id}")
        entry.task.add_done_callback(self._producer_done)
        logger.debug(f"Registered stream {stream_id}")

    async def subscribe(self, stream_id: str) -> AsyncIterator[str]:
        """Replay everything buffered for ``stream_id``, then follow it live.

        Raises:
            KeyError: If the stream is unknown or has expired.
        """
        if stream_id not in self:
            raise KeyError(stream_id)
        return self._follow(self._streams[stream_id])

    async def close(self) -> None:
        """Cancel running producers and forget every stream."""
        self._closed = True
        tasks = [entry.task for entry in self._streams.values() if entry.task and not entry.task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._streams.clear()
        logger.info(f"Stream registry closed ({len(tasks)} producer(s) cancelled)")

    async def _produce(self, entry: _StreamEntry, source: AsyncIterator[str]) -> None:
        try:
            async for item in source:
                async with entry.changed:
                    entry.items.append(item)
                    entry.changed.notify_all()
        finally:
            aclose = getattr(source, "aclose", None)
            if aclose is not None:
                await aclose()
            entry.finished = True
            entry.finished_at = time.monotonic()
            async with entry.changed:
                entry.changed.notify_all()

    async def _follow(self, entry: _StreamEntry) -> AsyncIterator[str]:
        position = 0
        while True:
            async with entry.changed:
                while position >= len(entry.items) and not entry.finished:
                    await entry.changed.wait()
                pending = entry.items[position:]
                finished = entry.finished
            for item in pending:
                yield item
            position += len(pending)
            if finished and position >= len(entry.items):
                return

    def _producer_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Stream producer {task.get_name()} failed: {exc!r}")

    def _evict_expired(self) -> None:
        now = time.monotonic()
        expired = [
            stream_id
            for stream_id, entry in self._streams.items()
            if entry.finished and entry.finished_at is not None and now - entry.finished_at > self.ttl_seconds
        ]
        for stream_id in expired:
            del self._streams[stream_id]
        if expired:
            logger.debug(f"Evicted {len(expired)} expired stream(s)")
