"""HTTP client for the streaming research backend."""

import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.core.config import Settings, settings as default_settings
from app.exceptions.stream import BackendUnavailableError, StreamInterruptedError

logger = logging.getLogger(__name__)


class BackendStream:
    """An open streaming response from the backend.

    The first body chunk has already been read when the stream is handed out,
    so an upstream that answers with an empty body is reported as unavailable
    rather than as an interrupted stream.
    """

    def __init__(self, response: httpx.Response, chunks: AsyncIterator[bytes], first_chunk: bytes):
        self.response = response
        self._chunks = chunks
        self._first_chunk = first_chunk
        self._closed = False

    @property
    def status_code(self) -> int:
        return self.response.status_code

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        """Yield raw body bytes; the response is closed however iteration ends.

        Raises:
            StreamInterruptedError: If the connection fails mid-stream.
        """
        try:
            yield self._first_chunk
            async for chunk in self._chunks:
                if chunk:
                    yield chunk
        except (httpx.TransportError, httpx.StreamError) as e:
            logger.warning(f"Backend stream interrupted: {e!r}")
            raise StreamInterruptedError(details={"reason": type(e).__name__}) from e
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if not self._closed:
            self._closed = True
            await self.response.aclose()


class BackendClient:
    """Opens streaming chat requests against the research backend.

    Connection failures are retried with exponential backoff; a non-success
    status is not retried.
    """

    def __init__(self, http_client: httpx.AsyncClient, config: Settings | None = None):
        self.http_client = http_client
        self.config = config or default_settings

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "BackendClient":
        config = config or default_settings
        timeout = httpx.Timeout(config.backend_read_timeout, connect=config.backend_connect_timeout)
        return cls(httpx.AsyncClient(timeout=timeout), config)

    async def aclose(self) -> None:
        await self.http_client.aclose()

    def build_payload(self, user_id: Any, message: str) -> dict[str, Any]:
        """Request body for one chat turn."""
        config = self.config
        return {
            "user_id": str(user_id),
            "message": message,
            "conversation_id": None,
            "stream": True,
            "system_prompt": config.backend_system_prompt,
            "temperature": config.backend_temperature,
            "max_tokens": config.backend_max_tokens,
            "show_context": config.backend_show_context,
            "multifaceted": config.backend_multifaceted,
            "top_k_per_facet": config.backend_top_k_per_facet,
            "min_facets": config.backend_min_facets,
            "max_facets": config.backend_max_facets,
        }

    async def open_stream(self, payload: dict[str, Any]) -> BackendStream:
        """POST ``payload`` and return the open stream.

        Raises:
            BackendUnavailableError: If the backend cannot be reached, answers
                with a non-success status or sends no body.
        """
        endpoint = self.config.backend_chat_endpoint
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(httpx.TransportError),
            stop=stop_after_attempt(self.config.backend_max_retries),
            wait=wait_exponential(
                multiplier=self.config.backend_retry_backoff_factor,
                min=self.config.backend_retry_min_wait,
                max=self.config.backend_retry_max_wait,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    request = self.http_client.build_request(
                        "POST",
                        endpoint,
                        json=payload,
                        headers={"Accept": "text/event-stream"},
                    )
                    response = await self.http_client.send(request, stream=True)
        except httpx.TransportError as e:
            logger.error(f"Backend unreachable at {endpoint}: {e!r}")
            raise BackendUnavailableError(details={"reason": type(e).__name__}) from e

        if not response.is_success:
            await response.aclose()
            logger.error(f"Backend answered {response.status_code} for {endpoint}")
            raise BackendUnavailableError(
                f"Research backend error ({response.status_code})",
                upstream_status=response.status_code,
            )

        chunks = response.aiter_bytes()
        try:
            first_chunk = b""
            async for chunk in chunks:
                if chunk:
                    first_chunk = chunk
                    break
        except (httpx.TransportError, httpx.StreamError) as e:
            await response.aclose()
            logger.error(f"Backend stream failed before the first chunk: {e!r}")
            raise BackendUnavailableError(details={"reason": type(e).__name__}) from e

        if not first_chunk:
            await response.aclose()
            logger.error(f"Backend at {endpoint} returned an empty body")
            raise BackendUnavailableError("Research backend returned an empty response")

        logger.info(f"Opened backend stream ({response.status_code}) at {endpoint}")
        return BackendStream(response, chunks, first_chunk)
