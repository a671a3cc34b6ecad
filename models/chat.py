"""
Chat model for research conversations.
"""

from sqlalchemy import Column, Enum, ForeignKey, Index, Text
from sqlalchemy.orm import relationship
import enum

from .base import UUID, BaseModel


class Visibility(str, enum.Enum):
    """Chat visibility enumeration."""

    PRIVATE = "private"
    PUBLIC = "public"


class Chat(BaseModel):
    """
    Represents a chat entity in the application.

    The id is supplied by the client on the first message of a conversation.
    Only the title and visibility change after creation.
    """

    __tablename__ = "chats"

    user_id = Column(UUID(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(Text, nullable=False)
    visibility = Column(
        Enum(Visibility, values_callable=lambda e: [m.value for m in e], name="visibility"),
        nullable=False,
        default=Visibility.PRIVATE,
    )

    # Relationships
    user = relationship("User", back_populates="chats")
    messages = relationship(
        "ChatMessage",
        back_populates="chat",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ChatMessage.created_at",
    )
    votes = relationship("Vote", back_populates="chat", cascade="all, delete-orphan", passive_deletes=True)
    streams = relationship("ChatStream", back_populates="chat", cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (Index("idx_chats_user_created", "user_id", "created_at"),)
