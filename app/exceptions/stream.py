# ruff: noqa: D107
"""Research backend and stream exceptions."""

from typing import Any

from .base import BaseAppException


class BackendServiceError(BaseAppException):
    """Base exception for research backend errors."""

    def __init__(
        self,
        message: str = "Research backend error occurred",
        status_code: int = 502,
        error_code: str = "BACKEND_ERROR",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message=message, status_code=status_code, error_code=error_code, details=details)


class BackendUnavailableError(BackendServiceError):
    """Raised when the backend cannot be reached or answers with a non-success status."""

    def __init__(
        self,
        message: str = "Research backend is unavailable",
        upstream_status: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        if details is None:
            details = {}
        if upstream_status is not None:
            details["upstream_status"] = upstream_status
        self.upstream_status = upstream_status
        super().__init__(message, 503, "BACKEND_UNAVAILABLE", details)


class StreamInterruptedError(BackendServiceError):
    """Raised when the backend stream ends before the [DONE] sentinel."""

    def __init__(
        self,
        message: str = "Research backend stream was interrupted",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, 502, "STREAM_INTERRUPTED", details)


class MalformedFrameError(BackendServiceError):
    """Raised for a single undecodable SSE frame. Always recovered locally."""

    def __init__(
        self,
        message: str = "Malformed stream frame",
        frame: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        if details is None:
            details = {}
        if frame is not None:
            details["frame"] = frame[:200]
        super().__init__(message, 502, "MALFORMED_FRAME", details)
