"""Chat, message and hypothesis exceptions."""

from .base import BaseAppException


class ChatNotFoundError(BaseAppException):
    """Raised when a chat is not found."""

    def __init__(self, message: str = "Chat not found"):
        super().__init__(message=message, status_code=404, error_code="CHAT_NOT_FOUND")


class ChatPermissionError(BaseAppException):
    """Raised when the caller does not own the chat."""

    def __init__(self, message: str = "You don't have permission to access this chat"):
        super().__init__(message=message, status_code=403, error_code="CHAT_FORBIDDEN")


class MessageNotFoundError(BaseAppException):
    """Raised when a message is not found."""

    def __init__(self, message: str = "Message not found"):
        super().__init__(message=message, status_code=404, error_code="MESSAGE_NOT_FOUND")


class HypothesisNotFoundError(BaseAppException):
    """Raised when a hypothesis cannot be resolved."""

    def __init__(self, message: str = "Hypothesis not found"):
        super().__init__(message=message, status_code=404, error_code="HYPOTHESIS_NOT_FOUND")


class InvalidHypothesisIdError(BaseAppException):
    """Raised when a hypothesis id does not follow hyp_<chat>_<message>_<n>."""

    def __init__(self, message: str = "Invalid hypothesis ID format"):
        super().__init__(message=message, status_code=400, error_code="INVALID_HYPOTHESIS_ID")


class RateLimitExceededError(BaseAppException):
    """Raised when a user exceeds the daily message entitlement."""

    def __init__(self, message: str = "Daily message limit reached", limit: int | None = None):
        details = {"limit": limit} if limit is not None else None
        super().__init__(message=message, status_code=429, error_code="RATE_LIMITED", details=details)
