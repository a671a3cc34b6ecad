"""Hypothesis and feedback schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import ConfigDict, Field

from models.feedback import FeedbackCategory, FeedbackRating
from models.hypothesis import HYPOTHESIS_ID_MAX_LENGTH

from .base import StoredRowSchema, BaseSchema


class HypothesisData(BaseSchema):
    """A hypothesis as extracted from assistant text or sent by the client."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True, frozen=True)

    id: str = Field(..., min_length=1, max_length=HYPOTHESIS_ID_MAX_LENGTH)
    title: str = Field(..., min_length=1)
    description: str = ""
    order_index: int = Field(..., ge=1, alias="orderIndex")

    def snapshot(self) -> dict:
        """JSON form stored on the owning message."""
        return self.model_dump(by_alias=True)


class HypothesisResponse(BaseSchema):
    """Schema for a persisted hypothesis."""

    id: str
    message_id: UUID
    title: str
    description: str
    order_index: int
    created_at: datetime


class SaveHypothesesRequest(BaseSchema):
    """Schema for saving hypotheses of a message."""

    hypotheses: list[HypothesisData] = Field(..., min_length=1)


class SaveHypothesesResponse(BaseSchema):
    saved: int
    hypotheses: list[HypothesisResponse]


class FeedbackStats(BaseSchema):
    """Rating counts for a feedback subject."""

    helpful: int = 0
    not_helpful: int = 0
    needs_improvement: int = 0
    total: int = 0

    @classmethod
    def from_counts(cls, counts: dict) -> "FeedbackStats":
        values = {str(getattr(rating, "value", rating)): int(n) for rating, n in counts.items()}
        return cls(**values, total=sum(values.values()))


class HypothesisFeedbackCreate(BaseSchema):
    """Schema for submitting feedback on a single hypothesis."""

    model_config = ConfigDict(populate_by_name=True)

    rating: FeedbackRating
    feedback_text: Optional[str] = Field(None, max_length=2000, alias="feedbackText")
    feedback_category: Optional[FeedbackCategory] = Field(None, alias="feedbackCategory")


class HypothesisFeedbackResponse(StoredRowSchema):
    hypothesis_id: str
    user_id: UUID
    rating: FeedbackRating
    feedback_text: Optional[str] = None
    feedback_category: Optional[FeedbackCategory] = None


class HypothesisFeedbackResult(BaseSchema):
    """Feedback for one hypothesis, optionally with aggregate stats."""

    feedback: Optional[HypothesisFeedbackResponse] = None
    stats: Optional[FeedbackStats] = None


class MessageFeedbackCreate(BaseSchema):
    """Schema for submitting aggregate feedback on a message's hypotheses."""

    model_config = ConfigDict(populate_by_name=True)

    chat_id: UUID = Field(..., alias="chatId")
    message_id: UUID = Field(..., alias="messageId")
    rating: FeedbackRating
    feedback_text: Optional[str] = Field(None, max_length=2000, alias="feedbackText")
    feedback_type: Optional[FeedbackCategory] = Field(None, alias="feedbackType")
    hypothesis_ratings: Optional[dict[str, FeedbackRating]] = Field(None, alias="hypothesisRatings")


class MessageFeedbackResponse(StoredRowSchema):
    chat_id: UUID
    message_id: UUID
    user_id: UUID
    rating: FeedbackRating
    feedback_text: Optional[str] = None
    feedback_type: Optional[FeedbackCategory] = None
    hypothesis_ratings: Optional[dict[str, FeedbackRating]] = None
