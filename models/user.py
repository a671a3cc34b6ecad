"""
Provides the User model for the application's database schema.

Users are created lazily from the authentication provider's token payload.
They own chats and are referenced (never owned) by feedback rows.

Attributes
----------
external_user_id : sqlalchemy.Column
    Subject identifier issued by the authentication provider.
email : sqlalchemy.Column
    The email address of the user, which must also be unique.
username : sqlalchemy.Column
    The optional username chosen by the user.
user_type : sqlalchemy.Column
    ``guest`` or ``regular``; drives the daily message entitlement.
is_active : sqlalchemy.Column
    A boolean indicating if the user is active. Defaults to `True`.
"""

import enum

from sqlalchemy import Boolean, Column, Enum, String
from sqlalchemy.orm import relationship

from .base import BaseModel


class UserType(str, enum.Enum):
    """Account type enumeration."""

    GUEST = "guest"
    REGULAR = "regular"


class User(BaseModel):
    """
    Represents a user entity in the application.

    :ivar external_user_id: Unique identifier for the user provided by the auth provider.
    :type external_user_id: str
    :ivar email: Email address of the user. It must be unique.
    :type email: str
    :ivar username: Username of the user. This is optional.
    :type username: str
    :ivar user_type: Guest or regular account.
    :type user_type: UserType
    :ivar is_active: Indicates whether the user account is active.
    :type is_active: bool
    """

    __tablename__ = "users"

    external_user_id = Column(String(255), unique=True, nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    username = Column(String(100))
    user_type = Column(
        Enum(UserType, values_callable=lambda e: [m.value for m in e], name="usertype"),
        nullable=False,
        default=UserType.REGULAR,
    )
    is_active = Column(Boolean, default=True)

    # Relationships
    chats = relationship("Chat", back_populates="user", cascade="all, delete-orphan")
