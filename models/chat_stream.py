"""
Stream marker model used to re-attach clients to in-flight responses.
"""

from sqlalchemy import Column, ForeignKey, Index
from sqlalchemy.orm import relationship

from .base import UUID, BaseModel


class ChatStream(BaseModel):
    """A response stream issued for a chat turn; ``id`` is the stream id."""

    __tablename__ = "chat_streams"

    chat_id = Column(UUID(), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False)

    # Relationships
    chat = relationship("Chat", back_populates="streams")

    __table_args__ = (Index("idx_chat_streams_chat_created", "chat_id", "created_at"),)
