"""
API tests for the chat endpoints.

These tests drive the FastAPI application through httpx with the research
backend replaced by a scripted transport.
"""

import uuid
from datetime import timedelta

import pytest

from app.domains.chat.service import ChatService
from models import MessageRole
from models.base import utcnow
from tests.factories import (
    RESEARCH_ANSWER,
    ChatFactory,
    ChatMessageFactory,
    bearer,
    make_token,
    parse_sse,
    persist,
    text_frames,
)


def chat_body(chat_id=None, text="Which pathways drive chemoresistance?", **extra) -> dict:
    return {
        "id": str(chat_id or uuid.uuid4()),
        "message": {"id": str(uuid.uuid4()), "role": "user", "parts": [{"type": "text", "text": text}]},
        "selectedChatModel": "chat-model",
        "selectedVisibilityType": "private",
        **extra,
    }


class TestPostChat:
    """POST /api/chat"""

    @pytest.mark.asyncio
    async def test_streams_ui_events(self, client, auth_headers, test_db, fake_backend):
        body = chat_body()

        response = await client.post("/api/chat", json=body, headers=auth_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        events = parse_sse(response.text)
        assert events[-1] == "[DONE]"
        assert [e["type"] for e in events[:-1]] == [
            "start",
            "text-start",
            "text-delta",
            "text-delta",
            "text-end",
            "finish",
        ]
        assert fake_backend.payloads[0]["message"] == "Which pathways drive chemoresistance?"

        messages = await ChatService(test_db).get_messages_by_chat(uuid.UUID(body["id"]))
        assert [m.role for m in messages] == [MessageRole.USER, MessageRole.ASSISTANT]
        assert str(messages[1].id) == events[0]["messageId"]
        assert messages[1].text == "Hello world"

    @pytest.mark.asyncio
    async def test_research_answer_stores_hypotheses(self, client, auth_headers, fake_backend):
        fake_backend.chunks = text_frames(RESEARCH_ANSWER[:60], RESEARCH_ANSWER[60:])
        body = chat_body()

        response = await client.post("/api/chat", json=body, headers=auth_headers)
        message_id = parse_sse(response.text)[0]["messageId"]

        response = await client.get(f"/api/message/{message_id}/hypotheses", headers=auth_headers)
        assert response.status_code == 200
        hypotheses = response.json()
        assert [h["order_index"] for h in hypotheses] == [1, 2]
        assert hypotheses[0]["id"] == f"hyp_{body['id']}_{message_id}_1"
        assert hypotheses[0]["title"] == "Gut microbiome modulates drug response"

    @pytest.mark.asyncio
    async def test_interrupted_backend_stream(self, client, auth_headers, fake_backend, test_db):
        fake_backend.chunks = text_frames("Half an ans", done=False)
        body = chat_body()

        response = await client.post("/api/chat", json=body, headers=auth_headers)

        events = parse_sse(response.text)
        assert events[-2]["type"] == "error"
        assert events[-1] == "[DONE]"
        messages = await ChatService(test_db).get_messages_by_chat(uuid.UUID(body["id"]))
        assert messages[-1].text == "Half an ans"

    @pytest.mark.asyncio
    async def test_backend_unavailable(self, client, auth_headers, fake_backend, test_db):
        fake_backend.status_code = 503
        body = chat_body()

        response = await client.post("/api/chat", json=body, headers=auth_headers)

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "error"
        assert data["error_code"] == "BACKEND_UNAVAILABLE"
        assert data["request_id"] == response.headers["x-request-id"]
        messages = await ChatService(test_db).get_messages_by_chat(uuid.UUID(body["id"]))
        assert [m.role for m in messages] == [MessageRole.USER]

    @pytest.mark.asyncio
    async def test_requires_token(self, client):
        response = await client.post("/api/chat", json=chat_body())

        assert response.status_code == 401
        assert response.json()["error_code"] == "UNAUTHORIZED"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "mutate",
        [
            lambda body: body.pop("message"),
            lambda body: body.update(id="not-a-uuid"),
            lambda body: body["message"].update(parts=[]),
            lambda body: body["message"].update(parts=[{"type": "text", "text": ""}]),
            lambda body: body.update(selectedVisibilityType="secret"),
        ],
    )
    async def test_invalid_body(self, client, auth_headers, fake_backend, mutate):
        body = chat_body()
        mutate(body)

        response = await client.post("/api/chat", json=body, headers=auth_headers)

        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"
        assert fake_backend.requests == []

    @pytest.mark.asyncio
    async def test_rate_limited(self, client, auth_headers, test_db, test_chat, test_settings):
        await persist(
            test_db,
            *(ChatMessageFactory.build(chat_id=test_chat.id) for _ in range(test_settings.max_messages_per_day_regular)),
        )

        response = await client.post("/api/chat", json=chat_body(), headers=auth_headers)

        assert response.status_code == 429
        assert response.json()["error_code"] == "RATE_LIMITED"

    @pytest.mark.asyncio
    async def test_chat_of_another_user(self, client, auth_headers, test_db, test_user_2):
        chat = await persist(test_db, ChatFactory.build(user_id=test_user_2.id))

        response = await client.post("/api/chat", json=chat_body(chat_id=chat.id), headers=auth_headers)

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_first_request_creates_the_user(self, client, test_db):
        headers = bearer("user_first_visit", email="guest-99@example.com", type="guest")

        response = await client.post("/api/chat", json=chat_body(), headers=headers)

        assert response.status_code == 200
        history = await client.get("/api/history", headers=headers)
        assert len(history.json()["chats"]) == 1

    @pytest.mark.asyncio
    async def test_email_registered_to_another_user(self, client, test_user):
        headers = bearer("user_second_account", email=test_user.email)

        response = await client.post("/api/chat", json=chat_body(), headers=headers)

        assert response.status_code == 409
        assert response.json()["error_code"] == "CONFLICT"


class TestResumeStream:
    """GET /api/chat/{id}/stream"""

    @pytest.mark.asyncio
    async def test_no_registry_means_no_content(self, client, auth_headers, test_chat):
        response = await client.get(f"/api/chat/{test_chat.id}/stream", headers=auth_headers)

        assert response.status_code == 204

    @pytest.mark.asyncio
    async def test_chat_without_streams(self, resumable_client, auth_headers, test_chat):
        response = await resumable_client.get(f"/api/chat/{test_chat.id}/stream", headers=auth_headers)

        assert response.status_code == 204

    @pytest.mark.asyncio
    async def test_finished_stream_is_replayed(self, resumable_client, auth_headers, stream_registry):
        body = chat_body()
        first = await resumable_client.post("/api/chat", json=body, headers=auth_headers)

        resumed = await resumable_client.get(f"/api/chat/{body['id']}/stream", headers=auth_headers)

        assert resumed.status_code == 200
        assert resumed.text == first.text
        assert parse_sse(resumed.text)[-1] == "[DONE]"
        assert len(stream_registry) == 1

    @pytest.mark.asyncio
    async def test_private_chat_of_another_user(self, client, test_user_2, test_chat):
        headers = {"Authorization": f"Bearer {make_token(test_user_2)}"}

        response = await client.get(f"/api/chat/{test_chat.id}/stream", headers=headers)

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_chat(self, client, auth_headers):
        response = await client.get(f"/api/chat/{uuid.uuid4()}/stream", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["error_code"] == "CHAT_NOT_FOUND"


class TestChatEndpoints:
    """Deleting chats, reading messages and changing visibility."""

    @pytest.mark.asyncio
    async def test_delete_chat(self, client, auth_headers, test_db, test_chat):
        response = await client.delete("/api/chat", params={"id": str(test_chat.id)}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "success"
        assert response.json()["message"] == "Chat deleted successfully"
        assert response.json()["data"]["id"] == str(test_chat.id)
        assert await ChatService(test_db).get_chat(test_chat.id) is None

    @pytest.mark.asyncio
    async def test_delete_chat_of_another_user(self, client, test_user_2, test_chat):
        headers = {"Authorization": f"Bearer {make_token(test_user_2)}"}

        response = await client.delete("/api/chat", params={"id": str(test_chat.id)}, headers=headers)

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_get_messages(self, client, auth_headers, test_chat, assistant_message):
        response = await client.get(f"/api/chat/{test_chat.id}/messages", headers=auth_headers)

        assert response.status_code == 200
        (message,) = response.json()
        assert message["id"] == str(assistant_message.id)
        assert message["role"] == "assistant"
        assert message["parts"][0]["text"] == RESEARCH_ANSWER

    @pytest.mark.asyncio
    async def test_public_chat_is_readable_by_others(self, client, auth_headers, test_user_2, test_chat):
        other = {"Authorization": f"Bearer {make_token(test_user_2)}"}
        assert (await client.get(f"/api/chat/{test_chat.id}/messages", headers=other)).status_code == 403

        response = await client.patch(
            f"/api/chat/{test_chat.id}/visibility", json={"visibility": "public"}, headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["data"]["visibility"] == "public"
        assert (await client.get(f"/api/chat/{test_chat.id}/messages", headers=other)).status_code == 200

    @pytest.mark.asyncio
    async def test_history_pagination(self, client, auth_headers, test_db, test_user):
        now = utcnow()
        chats = [ChatFactory.build(user_id=test_user.id, created_at=now - timedelta(minutes=i)) for i in range(3)]
        await persist(test_db, *chats)

        first = await client.get("/api/history", params={"limit": 2}, headers=auth_headers)
        assert first.status_code == 200
        page = first.json()
        assert [c["id"] for c in page["chats"]] == [str(chats[0].id), str(chats[1].id)]
        assert page["has_more"] is True

        second = await client.get(
            "/api/history", params={"limit": 2, "ending_before": page["chats"][-1]["id"]}, headers=auth_headers
        )
        assert [c["id"] for c in second.json()["chats"]] == [str(chats[2].id)]
        assert second.json()["has_more"] is False

    @pytest.mark.asyncio
    async def test_history_rejects_both_cursors(self, client, auth_headers):
        params = {"starting_after": str(uuid.uuid4()), "ending_before": str(uuid.uuid4())}

        response = await client.get("/api/history", params=params, headers=auth_headers)

        assert response.status_code == 400


class TestMessageEndpoints:
    """Message existence probe and trailing deletion."""

    @pytest.mark.asyncio
    async def test_message_exists(self, client, auth_headers, test_chat, assistant_message):
        found = await client.get(f"/api/message/{assistant_message.id}/exists", headers=auth_headers)
        missing = await client.get(f"/api/message/{uuid.uuid4()}/exists", headers=auth_headers)

        assert found.json()["exists"] is True
        assert found.json()["chat_id"] == str(test_chat.id)
        assert missing.json()["exists"] is False
        assert missing.json()["chat_id"] is None

    @pytest.mark.asyncio
    async def test_delete_trailing_messages(self, client, auth_headers, test_db, test_chat):
        now = utcnow()
        first, second = await persist(
            test_db,
            ChatMessageFactory.build(chat_id=test_chat.id, created_at=now - timedelta(seconds=2)),
            ChatMessageFactory.build(chat_id=test_chat.id, role=MessageRole.ASSISTANT, created_at=now),
        )

        response = await client.delete(f"/api/message/{second.id}/trailing", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["data"] == {"deleted": 1}
        remaining = await client.get(f"/api/chat/{test_chat.id}/messages", headers=auth_headers)
        assert [m["id"] for m in remaining.json()] == [str(first.id)]
