"""
Feedback models: message-level aggregate feedback and per-hypothesis feedback.

Both enforce one row per (user, subject); a second submission updates the
existing row.
"""

from sqlalchemy import Column, Enum, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
import enum

from .base import UUID, BaseModel, JSONType
from .hypothesis import HYPOTHESIS_ID_MAX_LENGTH


class FeedbackRating(str, enum.Enum):
    """Feedback rating enumeration."""

    HELPFUL = "helpful"
    NOT_HELPFUL = "not_helpful"
    NEEDS_IMPROVEMENT = "needs_improvement"


class FeedbackCategory(str, enum.Enum):
    """Feedback category enumeration."""

    QUALITY = "quality"
    NOVELTY = "novelty"
    FEASIBILITY = "feasibility"
    CLARITY = "clarity"
    OTHER = "other"


def _enum(enum_cls, name):
    return Enum(enum_cls, values_callable=lambda e: [m.value for m in e], name=name)


class MessageFeedback(BaseModel):
    """Aggregate feedback a user leaves on an assistant message's hypotheses."""

    __tablename__ = "message_feedback"

    chat_id = Column(UUID(), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False)
    message_id = Column(UUID(), ForeignKey("chat_messages.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(UUID(), ForeignKey("users.id"), nullable=False)
    rating = Column(_enum(FeedbackRating, "feedbackrating"), nullable=False)
    feedback_text = Column(Text, nullable=True)
    feedback_type = Column(_enum(FeedbackCategory, "feedbackcategory"), nullable=True)

    # {hypothesis_id: rating}
    hypothesis_ratings = Column(JSONType, nullable=True)

    __table_args__ = (UniqueConstraint("user_id", "message_id", name="uq_message_feedback_user_message"),)


class HypothesisFeedback(BaseModel):
    """Feedback a user leaves on a single hypothesis."""

    __tablename__ = "hypothesis_feedback"

    hypothesis_id = Column(
        String(HYPOTHESIS_ID_MAX_LENGTH),
        ForeignKey("hypotheses.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id = Column(UUID(), ForeignKey("users.id"), nullable=False)
    rating = Column(_enum(FeedbackRating, "feedbackrating"), nullable=False)
    feedback_text = Column(Text, nullable=True)
    feedback_category = Column(_enum(FeedbackCategory, "feedbackcategory"), nullable=True)

    # Relationships
    hypothesis = relationship("Hypothesis", back_populates="feedback")

    __table_args__ = (
        UniqueConstraint("user_id", "hypothesis_id", name="uq_hypothesis_feedback_user_hypothesis"),
        Index("idx_hypothesis_feedback_hypothesis_id", "hypothesis_id"),
        Index("idx_hypothesis_feedback_user_id", "user_id"),
    )
