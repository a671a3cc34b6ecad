# ruff: noqa: D107
"""Base exception classes."""

from typing import Any

from fastapi import HTTPException


class BaseAppException(HTTPException):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}

        super().__init__(
            status_code=status_code,
            detail={"message": message, "error_code": error_code, "details": self.details},
        )


class BadRequestError(BaseAppException):
    """Exception raised for malformed requests."""

    def __init__(
        self,
        message: str = "Bad request",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message=message, status_code=400, error_code="BAD_REQUEST", details=details)


class UnauthorizedError(BaseAppException):
    """Exception raised when the caller is not authenticated."""

    def __init__(
        self,
        message: str = "Authentication required",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message=message, status_code=401, error_code="UNAUTHORIZED", details=details)


class AppPermissionError(BaseAppException):
    """Exception raised when user doesn't have permission to access a resource."""

    def __init__(
        self,
        message: str = "Permission denied",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            status_code=403,
            error_code="PERMISSION_DENIED",
            details=details,
        )


class ConflictError(BaseAppException):
    """Exception raised when a write clashes with an existing record."""

    def __init__(
        self,
        message: str = "Resource already exists",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message=message, status_code=409, error_code="CONFLICT", details=details)


class PersistenceError(BaseAppException):
    """Exception raised when a storage write fails."""

    def __init__(
        self,
        message: str = "Failed to persist data",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message=message, status_code=500, error_code="PERSISTENCE_ERROR", details=details)
