"""
Integration tests for hypothesis persistence and backfill.
"""

import uuid

import pytest

from app.domains.hypothesis.service import HypothesisService, snapshot_hypotheses
from app.exceptions.chat import (
    ChatPermissionError,
    HypothesisNotFoundError,
    InvalidHypothesisIdError,
    MessageNotFoundError,
)
from app.schemas.hypothesis import HypothesisData
from app.services.hypothesis_extractor import extract_hypotheses, make_hypothesis_id
from models import MessageRole
from tests.factories import RESEARCH_ANSWER, ChatMessageFactory, persist


def hypothesis(chat_id, message_id, ordinal, title="A title", description="A description") -> HypothesisData:
    return HypothesisData(
        id=make_hypothesis_id(chat_id, message_id, ordinal),
        title=title,
        description=description,
        order_index=ordinal,
    )


class TestHypothesisService:
    """Test cases for HypothesisService writes and reads."""

    @pytest.mark.asyncio
    async def test_upsert_updates_in_place(self, test_db, test_chat, assistant_message):
        service = HypothesisService(test_db)
        first = hypothesis(test_chat.id, assistant_message.id, 1, title="Original")

        created = await service.upsert(first, assistant_message.id)
        updated = await service.upsert(
            first.model_copy(update={"title": "Revised", "description": "Sharper"}), assistant_message.id
        )

        assert updated.id == created.id
        assert updated.title == "Revised"
        assert updated.description == "Sharper"
        assert len(await service.get_by_message(assistant_message.id)) == 1

    @pytest.mark.asyncio
    async def test_save_many_orders_by_index(self, test_db, test_chat, assistant_message):
        service = HypothesisService(test_db)
        batch = [hypothesis(test_chat.id, assistant_message.id, n, title=f"H{n}") for n in (2, 1, 3)]

        saved = await service.save_many(assistant_message.id, batch)

        assert len(saved) == 3
        stored = await service.get_by_message(assistant_message.id)
        assert [h.title for h in stored] == ["H1", "H2", "H3"]

    @pytest.mark.asyncio
    async def test_save_many_is_idempotent(self, test_db, test_chat, assistant_message):
        service = HypothesisService(test_db)
        batch = extract_hypotheses(RESEARCH_ANSWER, test_chat.id, assistant_message.id)

        await service.save_many(assistant_message.id, batch)
        await service.save_many(assistant_message.id, batch)

        assert len(await service.get_by_message(assistant_message.id)) == 2

    @pytest.mark.asyncio
    async def test_save_many_requires_the_message(self, test_db, test_chat):
        service = HypothesisService(test_db)
        message_id = uuid.uuid4()

        with pytest.raises(MessageNotFoundError):
            await service.save_many(message_id, [hypothesis(test_chat.id, message_id, 1)])

    @pytest.mark.asyncio
    async def test_save_many_checks_owner_and_ids(self, test_db, test_user_2, test_chat, assistant_message):
        service = HypothesisService(test_db)
        own = hypothesis(test_chat.id, assistant_message.id, 1)

        with pytest.raises(ChatPermissionError):
            await service.save_many(assistant_message.id, [own], test_user_2)
        with pytest.raises(InvalidHypothesisIdError):
            await service.save_many(assistant_message.id, [own, hypothesis(test_chat.id, uuid.uuid4(), 2)])
        with pytest.raises(InvalidHypothesisIdError):
            await service.save_many(assistant_message.id, [own.model_copy(update={"id": "hyp_1"})])

        assert await service.get_by_message(assistant_message.id) == []


class TestSnapshotHypotheses:
    """Hypotheses read back from a message's JSON snapshot."""

    def test_invalid_entries_are_skipped(self, caplog):
        message = ChatMessageFactory.build(
            hypotheses=[
                {"id": "hyp_a", "title": "First", "description": "d", "orderIndex": 1},
                "not a dict",
                {"id": "hyp_b", "title": ""},
                {"id": "hyp_c", "title": "Positional"},
            ]
        )

        result = snapshot_hypotheses(message)

        assert [(h.id, h.order_index) for h in result] == [("hyp_a", 1), ("hyp_c", 4)]
        assert "Ignoring invalid hypothesis snapshot entry" in caplog.text

    def test_message_without_snapshot(self):
        assert snapshot_hypotheses(ChatMessageFactory.build(hypotheses=None)) == []


class TestResolve:
    """Backfilling hypotheses that exist only in message content."""

    @pytest.mark.asyncio
    async def test_existing_row_is_returned(self, test_db, test_chat, assistant_message):
        service = HypothesisService(test_db)
        saved = await service.upsert(hypothesis(test_chat.id, assistant_message.id, 1), assistant_message.id)

        assert (await service.resolve(saved.id)).id == saved.id

    @pytest.mark.asyncio
    async def test_backfill_from_message_text(self, test_db, test_chat, assistant_message):
        service = HypothesisService(test_db)
        hypothesis_id = make_hypothesis_id(test_chat.id, assistant_message.id, 2)

        resolved = await service.resolve(hypothesis_id)

        assert resolved.id == hypothesis_id
        assert resolved.title == "Circadian timing affects efficacy"
        assert resolved.message_id == assistant_message.id
        assert await service.get(hypothesis_id) is not None

    @pytest.mark.asyncio
    async def test_backfill_prefers_the_snapshot(self, test_db, test_chat):
        message = ChatMessageFactory.build(
            chat_id=test_chat.id,
            role=MessageRole.ASSISTANT,
            parts=[{"type": "text", "text": "No markers here"}],
        )
        hypothesis_id = make_hypothesis_id(test_chat.id, message.id, 1)
        message.hypotheses = [{"id": hypothesis_id, "title": "From snapshot", "description": "", "orderIndex": 1}]
        await persist(test_db, message)

        resolved = await HypothesisService(test_db).resolve(hypothesis_id)

        assert resolved.title == "From snapshot"

    @pytest.mark.asyncio
    async def test_unknown_message_falls_back_to_latest_by_number(self, test_db, test_chat):
        message = ChatMessageFactory.build(chat_id=test_chat.id, role=MessageRole.ASSISTANT)
        snapshot = extract_hypotheses(RESEARCH_ANSWER, test_chat.id, message.id)
        message.hypotheses = [h.snapshot() for h in snapshot]
        await persist(test_db, message)

        # A client-side message id the server never stored
        stale_id = make_hypothesis_id(test_chat.id, uuid.uuid4(), 2)
        resolved = await HypothesisService(test_db).resolve(stale_id)

        assert resolved.id == snapshot[1].id
        assert resolved.message_id == message.id

    @pytest.mark.asyncio
    async def test_number_missing_from_message(self, test_db, test_chat, assistant_message):
        with pytest.raises(HypothesisNotFoundError):
            await HypothesisService(test_db).resolve(make_hypothesis_id(test_chat.id, assistant_message.id, 9))

    @pytest.mark.asyncio
    async def test_chat_without_hypotheses(self, test_db, test_chat):
        with pytest.raises(HypothesisNotFoundError):
            await HypothesisService(test_db).resolve(make_hypothesis_id(test_chat.id, uuid.uuid4(), 1))

    @pytest.mark.asyncio
    async def test_malformed_id(self, test_db):
        with pytest.raises(InvalidHypothesisIdError):
            await HypothesisService(test_db).resolve("hyp_not_an_id")
