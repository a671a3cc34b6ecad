"""
Chat message model for user and assistant turns.
"""

from sqlalchemy import Column, Enum, ForeignKey, Index
from sqlalchemy.orm import relationship
import enum

from .base import UUID, BaseModel, JSONType


class MessageRole(str, enum.Enum):
    """Message role enumeration."""

    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """
    Represents a chat message entity in the application.

    ``parts`` is the ordered list of content parts, each a tagged object
    (``{"type": "text", "text": ...}``, ``{"type": "reasoning", ...}``,
    ``{"type": "file", ...}``).
    """

    __tablename__ = "chat_messages"

    chat_id = Column(UUID(), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False)
    role = Column(
        Enum(MessageRole, values_callable=lambda e: [m.value for m in e], name="messagerole"),
        nullable=False,
    )
    parts = Column(JSONType, nullable=False, default=list)
    attachments = Column(JSONType, nullable=False, default=list)

    # Snapshot of hypotheses extracted at end of stream (assistant research replies only)
    hypotheses = Column(JSONType, nullable=True)

    # Relationships
    chat = relationship("Chat", back_populates="messages")
    hypothesis_records = relationship(
        "Hypothesis",
        back_populates="message",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Hypothesis.order_index",
    )

    __table_args__ = (Index("idx_chat_messages_chat_created", "chat_id", "created_at"),)

    @property
    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "".join(
            part.get("text", "") for part in (self.parts or []) if isinstance(part, dict) and part.get("type") == "text"
        )
