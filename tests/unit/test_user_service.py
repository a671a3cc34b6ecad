# ruff: noqa: SIM117
"""
Unit tests for UserService.

This module contains unit tests for the UserService class, covering lazy
creation of users from token payloads and guest detection.
"""

import uuid
from unittest.mock import patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.domains.user.service import UserService, user_type_from_payload
from app.exceptions.base import ConflictError
from models import UserType


class TestUserTypeFromPayload:
    """Test cases for guest detection."""

    @pytest.mark.parametrize(
        ("payload", "expected"),
        [
            ({"type": "guest"}, UserType.GUEST),
            ({"user_type": "regular", "email": "guest-123@example.com"}, UserType.REGULAR),
            ({"email": "guest-1700000000@example.com"}, UserType.GUEST),
            ({"email": "researcher@example.com"}, UserType.REGULAR),
            ({"type": "admin", "email": "someone@example.com"}, UserType.REGULAR),
            ({}, UserType.REGULAR),
        ],
    )
    def test_user_type(self, payload, expected):
        assert user_type_from_payload(payload) == expected


class TestUserService:
    """Test cases for UserService."""

    @pytest.mark.asyncio
    async def test_get_user_by_external_id_existing_user(self, test_db, test_user):
        service = UserService(test_db)

        result = await service.get_user_by_external_id(test_user.external_user_id)

        assert result is not None
        assert result.id == test_user.id
        assert result.email == test_user.email

    @pytest.mark.asyncio
    async def test_get_user_by_external_id_nonexistent_user(self, test_db):
        service = UserService(test_db)

        assert await service.get_user_by_external_id("nonexistent") is None

    @pytest.mark.asyncio
    async def test_get_user_by_id(self, test_db, test_user):
        service = UserService(test_db)

        assert (await service.get_user_by_id(test_user.id)).external_user_id == test_user.external_user_id
        assert await service.get_user_by_id(uuid.uuid4()) is None

    @pytest.mark.asyncio
    async def test_create_user_success(self, test_db):
        service = UserService(test_db)

        result = await service.create_user(
            external_user_id="user_new", email="new@example.com", username="new", user_type=UserType.GUEST
        )

        assert result.id is not None
        assert result.user_type == UserType.GUEST
        assert result.is_active is True

    @pytest.mark.asyncio
    async def test_create_user_database_error(self, test_db):
        service = UserService(test_db)

        with patch.object(test_db, "commit", side_effect=SQLAlchemyError("Database error")):
            with patch.object(test_db, "rollback") as mock_rollback:
                with pytest.raises(SQLAlchemyError):
                    await service.create_user(external_user_id="user_err", email="error@example.com")
                mock_rollback.assert_called_once()

    @pytest.mark.asyncio
    async def test_get_or_create_user_existing_user(self, test_db, test_user):
        service = UserService(test_db)

        result = await service.get_or_create_user(
            test_user.external_user_id, {"email": "different@example.com", "type": "guest"}
        )

        # Existing users are returned unchanged
        assert result.id == test_user.id
        assert result.email == test_user.email
        assert result.user_type == UserType.REGULAR

    @pytest.mark.asyncio
    async def test_get_or_create_user_new_guest(self, test_db):
        service = UserService(test_db)

        result = await service.get_or_create_user("guest_abc", {"email": "guest-42@example.com"})

        assert result.external_user_id == "guest_abc"
        assert result.user_type == UserType.GUEST

    @pytest.mark.asyncio
    async def test_get_or_create_user_without_email(self, test_db):
        service = UserService(test_db)

        result = await service.get_or_create_user("user_noemail", {"name": "No Email"})

        assert result.email == "user_noemail@users.invalid"
        assert result.username == "No Email"
        assert result.user_type == UserType.REGULAR

    @pytest.mark.asyncio
    async def test_get_or_create_user_email_taken_by_another_subject(self, test_db, test_user):
        service = UserService(test_db)
        taken_email = test_user.email

        with pytest.raises(ConflictError) as exc_info:
            await service.get_or_create_user("user_newcomer", {"email": taken_email})

        assert exc_info.value.status_code == 409
        assert await service.get_user_by_external_id("user_newcomer") is None
        assert (await service.get_user_by_email(taken_email)).external_user_id != "user_newcomer"
