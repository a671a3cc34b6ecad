# app/domains/user/service.py
import logging
import re
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from typing import Optional
from uuid import UUID
from app.exceptions.base import ConflictError
from models import User, UserType

logger = logging.getLogger(__name__)


GUEST_EMAIL_PATTERN = re.compile(r"^guest-\d+")


def user_type_from_payload(payload: dict) -> UserType:
    """Guest or regular, from the token's ``type`` claim or a guest email."""
    claimed = payload.get("type") or payload.get("user_type")
    if claimed in (UserType.GUEST.value, UserType.REGULAR.value):
        return UserType(claimed)
    if GUEST_EMAIL_PATTERN.match(payload.get("email") or ""):
        return UserType.GUEST
    return UserType.REGULAR


class UserService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_by_external_id(self, external_user_id: str) -> Optional[User]:
        """Get a user by the auth provider's subject id."""
        result = await self.db.execute(select(User).where(User.external_user_id == external_user_id))
        return result.scalar_one_or_none()

    async def get_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        """Get a user by ID."""
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def create_user(
        self,
        external_user_id: str,
        email: str,
        username: str = None,
        user_type: UserType = UserType.REGULAR,
    ) -> User:
        """Create a new user."""
        user = User(external_user_id=external_user_id, email=email, username=username, user_type=user_type)

        try:
            self.db.add(user)
            await self.db.commit()
            await self.db.refresh(user)
            return user
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise e

    async def get_or_create_user(self, external_user_id: str, payload: dict) -> User:
        """Get existing user or create new one from the token payload."""
        user = await self.get_user_by_external_id(external_user_id)
        if user:
            return user

        email = payload.get("email") or f"{external_user_id}@users.invalid"
        try:
            return await self.create_user(
                external_user_id=external_user_id,
                email=email,
                username=payload.get("username") or payload.get("name"),
                user_type=user_type_from_payload({**payload, "email": email}),
            )
        except IntegrityError as e:
            # Concurrent first request for the same subject
            user = await self.get_user_by_external_id(external_user_id)
            if user:
                return user
            if await self.get_user_by_email(email):
                logger.warning(f"Subject {external_user_id} presented an email registered to another user")
                raise ConflictError("Email is already registered to another account") from e
            raise
