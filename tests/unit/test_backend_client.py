"""
Unit tests for BackendClient.

The research backend is replaced by ``httpx.MockTransport`` so connection
failures, error statuses and broken bodies can be scripted.
"""

import uuid

import httpx
import pytest

from app.core.config import Settings
from app.exceptions.stream import BackendUnavailableError, StreamInterruptedError
from app.services.backend_client import BackendClient
from tests.factories import sse, text_frames


class TestBuildPayload:
    """Test cases for the backend request body."""

    def test_payload_carries_message_and_generation_settings(self, backend_client, test_settings):
        user_id = uuid.uuid4()

        payload = backend_client.build_payload(user_id, "Why do tumours relapse?")

        assert payload["user_id"] == str(user_id)
        assert payload["message"] == "Why do tumours relapse?"
        assert payload["conversation_id"] is None
        assert payload["stream"] is True
        assert payload["temperature"] == test_settings.backend_temperature
        assert payload["max_tokens"] == test_settings.backend_max_tokens
        assert payload["multifaceted"] is test_settings.backend_multifaceted
        assert payload["min_facets"] <= payload["max_facets"]
        assert set(payload) == {
            "user_id",
            "message",
            "conversation_id",
            "stream",
            "system_prompt",
            "temperature",
            "max_tokens",
            "show_context",
            "multifaceted",
            "top_k_per_facet",
            "min_facets",
            "max_facets",
        }

    def test_from_settings_applies_timeouts(self):
        config = Settings(backend_connect_timeout=2.5, backend_read_timeout=30)

        client = BackendClient.from_settings(config)

        assert client.http_client.timeout.connect == 2.5
        assert client.http_client.timeout.read == 30
        assert client.config is config


class TestOpenStream:
    """Test cases for opening and reading backend streams."""

    @pytest.mark.asyncio
    async def test_streams_body_chunks(self, backend_client, fake_backend, test_settings):
        fake_backend.chunks = text_frames("Hi")

        stream = await backend_client.open_stream({"message": "hello"})
        chunks = [chunk async for chunk in stream.iter_chunks()]

        assert stream.status_code == 200
        assert chunks == fake_backend.chunks
        request = fake_backend.requests[0]
        assert request.method == "POST"
        assert str(request.url) == test_settings.backend_chat_endpoint
        assert request.headers["accept"] == "text/event-stream"
        assert fake_backend.payloads == [{"message": "hello"}]

    @pytest.mark.asyncio
    async def test_error_status_is_unavailable_and_not_retried(self, backend_client, fake_backend):
        fake_backend.status_code = 503

        with pytest.raises(BackendUnavailableError) as exc_info:
            await backend_client.open_stream({"message": "hello"})

        assert exc_info.value.status_code == 503
        assert exc_info.value.upstream_status == 503
        assert exc_info.value.details["upstream_status"] == 503
        assert len(fake_backend.requests) == 1

    @pytest.mark.asyncio
    async def test_connection_errors_are_retried(self, backend_client, fake_backend, test_settings):
        fake_backend.connect_error = httpx.ConnectError("connection refused")

        with pytest.raises(BackendUnavailableError) as exc_info:
            await backend_client.open_stream({"message": "hello"})

        assert len(fake_backend.requests) == test_settings.backend_max_retries
        assert exc_info.value.details["reason"] == "ConnectError"

    @pytest.mark.asyncio
    async def test_recovers_when_a_retry_succeeds(self, fake_backend, test_settings):
        attempts = []

        async def flaky(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectTimeout("timed out")
            return await fake_backend.handler(request)

        client = BackendClient(httpx.AsyncClient(transport=httpx.MockTransport(flaky)), test_settings)
        try:
            stream = await client.open_stream({"message": "hello"})
            chunks = [chunk async for chunk in stream.iter_chunks()]
        finally:
            await client.aclose()

        assert len(attempts) == 2
        assert b"".join(chunks).endswith(b"data: [DONE]\n\n")

    @pytest.mark.asyncio
    async def test_empty_body_is_unavailable(self, backend_client, fake_backend):
        fake_backend.chunks = []

        with pytest.raises(BackendUnavailableError, match="empty response"):
            await backend_client.open_stream({"message": "hello"})

    @pytest.mark.asyncio
    async def test_mid_stream_failure_is_interrupted(self, backend_client, fake_backend):
        fake_backend.chunks = [sse({"type": "text-delta", "delta": "partial"})]
        fake_backend.error_after = httpx.ReadError("connection reset")

        stream = await backend_client.open_stream({"message": "hello"})
        received = []
        with pytest.raises(StreamInterruptedError):
            async for chunk in stream.iter_chunks():
                received.append(chunk)

        assert received == fake_backend.chunks
        assert stream.response.is_closed

    @pytest.mark.asyncio
    async def test_aclose_is_idempotent(self, backend_client):
        stream = await backend_client.open_stream({"message": "hello"})

        await stream.aclose()
        await stream.aclose()

        assert stream.response.is_closed
