"""
Vote model for up/down votes on assistant messages.
"""

from sqlalchemy import Boolean, Column, ForeignKey
from sqlalchemy.orm import relationship

from .base import UUID, Base


class Vote(Base):
    """One vote per message, keyed by (chat_id, message_id)."""

    __tablename__ = "votes"

    chat_id = Column(UUID(), ForeignKey("chats.id", ondelete="CASCADE"), primary_key=True)
    message_id = Column(UUID(), ForeignKey("chat_messages.id", ondelete="CASCADE"), primary_key=True)
    is_upvoted = Column(Boolean, nullable=False)

    # Relationships
    chat = relationship("Chat", back_populates="votes")
