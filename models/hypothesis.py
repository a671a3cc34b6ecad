"""
Hypothesis model for research claims extracted from assistant messages.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from .base import UUID, Base, utcnow

HYPOTHESIS_ID_MAX_LENGTH = 100


class Hypothesis(Base):
    """
    Represents a single hypothesis extracted from an assistant message.

    The id is deterministic, ``hyp_<chatId>_<messageId>_<ordinal>``, so that
    re-running extraction on the same message upserts the same rows.
    ``order_index`` is the 1-based position within the generation.
    """

    __tablename__ = "hypotheses"

    id = Column(String(HYPOTHESIS_ID_MAX_LENGTH), primary_key=True)
    message_id = Column(UUID(), ForeignKey("chat_messages.id", ondelete="CASCADE"), nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    order_index = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    message = relationship("ChatMessage", back_populates="hypothesis_records")
    feedback = relationship(
        "HypothesisFeedback",
        back_populates="hypothesis",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (Index("idx_hypotheses_message_id", "message_id"),)
