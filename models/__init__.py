"""
Models package initialization.
"""

from .base import Base, BaseModel
from .chat import Chat, Visibility
from .chat_message import ChatMessage, MessageRole
from .chat_stream import ChatStream
from .feedback import FeedbackCategory, FeedbackRating, HypothesisFeedback, MessageFeedback
from .hypothesis import HYPOTHESIS_ID_MAX_LENGTH, Hypothesis
from .user import User, UserType
from .vote import Vote

__all__ = [
    "Base",
    "BaseModel",
    "User",
    "UserType",
    # Chat models
    "Chat",
    "Visibility",
    "ChatMessage",
    "MessageRole",
    "ChatStream",
    "Vote",
    # Hypotheses and feedback
    "Hypothesis",
    "HYPOTHESIS_ID_MAX_LENGTH",
    "MessageFeedback",
    "HypothesisFeedback",
    "FeedbackRating",
    "FeedbackCategory",
]
