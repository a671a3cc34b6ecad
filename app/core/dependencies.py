# app/core/dependencies.py
import logging

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.security import TokenVerifier
from app.database import get_db, get_session_factory
from app.domains.chat.coordinator import ChatTurnCoordinator, PendingPersistence
from app.domains.user.service import UserService
from app.exceptions.base import AppPermissionError, UnauthorizedError
from app.services.backend_client import BackendClient
from app.services.stream_registry import ResumableStreamRegistry
from models import User

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)
auth = TokenVerifier()


async def validate_token(token: HTTPAuthorizationCredentials | None = Depends(security)) -> dict:
    """Validate and decode the bearer token.

    Returns:
        dict: Decoded token payload

    Raises:
        UnauthorizedError: If the token is missing or invalid
    """
    if not token or not token.credentials:
        raise UnauthorizedError("Authentication token is required")
    return auth.verify_token(token.credentials)


async def get_current_user(
    request: Request,
    payload: dict = Depends(validate_token),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Get current authenticated user from JWT payload, creating it on first use.

    Raises:
        AppPermissionError: If the user is inactive
    """
    external_user_id = payload["sub"]

    user_service = UserService(db)
    user = await user_service.get_or_create_user(external_user_id, payload)

    if not user.is_active:
        raise AppPermissionError("User account is inactive")

    # Add user info to request state for logging
    request.state.user_id = user.id
    request.state.external_user_id = external_user_id

    return user


def get_backend_client(request: Request) -> BackendClient:
    """Backend client created in the application lifespan."""
    return request.app.state.backend_client


def get_stream_registry(request: Request) -> ResumableStreamRegistry | None:
    """Resumable stream registry, or None when resumable streams are disabled."""
    if not settings.resumable_streams_enabled:
        return None
    return getattr(request.app.state, "stream_registry", None)


def get_pending_persistence(request: Request) -> PendingPersistence:
    """Tracker of end-of-stream writes created in the application lifespan."""
    return request.app.state.pending_persistence


def get_coordinator(
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    backend: BackendClient = Depends(get_backend_client),
    pending: PendingPersistence = Depends(get_pending_persistence),
) -> ChatTurnCoordinator:
    return ChatTurnCoordinator(db=db, session_factory=session_factory, backend=backend, pending=pending)
