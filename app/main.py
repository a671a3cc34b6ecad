"""Hypothesis Chat API - Main Application Module.

This module initializes the FastAPI application with configuration,
middleware, routing, and lifecycle management for the research chat service:
the backend client and resumable stream registry are created at startup and
torn down at shutdown.
"""

import logging
import sys
import uuid
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path

# Add the project root to Python path if running directly
if __name__ == "__main__":
    project_root = Path(__file__).parent.parent
    sys.path.insert(0, str(project_root))

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import get_config_summary, settings
from app.core.logging import configure_logging
from app.database import AsyncSessionLocal, engine
from app.domains.chat.coordinator import PendingPersistence
from app.services.backend_client import BackendClient
from app.services.stream_registry import ResumableStreamRegistry
from models import Base

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(UTC).isoformat()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle events."""
    # Startup
    configure_logging()
    logger.info(f"Starting {settings.app_name} ({settings.environment.value})")

    # Development mode: Auto-create tables if they don't exist
    # Production: Use Alembic migrations (alembic upgrade head)
    if settings.is_development:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Development mode: database tables created/verified")

    app.state.backend_client = BackendClient.from_settings(settings)
    app.state.pending_persistence = PendingPersistence()
    app.state.stream_registry = (
        ResumableStreamRegistry(ttl_seconds=settings.stream_ttl_seconds)
        if settings.resumable_streams_enabled
        else None
    )
    logger.info(f"Research backend at {settings.backend_chat_endpoint}")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}")
    if app.state.stream_registry is not None:
        await app.state.stream_registry.close()
    await app.state.pending_persistence.wait()
    await app.state.backend_client.aclose()
    await engine.dispose()
    logger.info("Database connections closed")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Research chat backend: streams answers from a RAG service and collects hypothesis feedback",
        version=settings.version,
        lifespan=lifespan,
        docs_url=settings.docs_url if settings.is_development else None,
        redoc_url=settings.redoc_url if settings.is_development else None,
    )

    # Add middleware
    setup_middleware(app)

    # Add exception handlers
    setup_exception_handlers(app)

    # Include routers
    setup_routers(app)

    return app


def setup_middleware(app: FastAPI):
    """Configure application middleware."""
    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request ID middleware
    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


def setup_exception_handlers(app: FastAPI):
    """Configure global exception handlers."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        # Handle custom exceptions that have structured detail
        if isinstance(exc.detail, dict) and "message" in exc.detail:
            message = exc.detail["message"]
            error_code = exc.detail.get("error_code", "HTTP_ERROR")
            details = exc.detail.get("details")
        else:
            message = str(exc.detail) if exc.detail else "An error occurred"
            error_code = "HTTP_ERROR"
            details = None

        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {error_code} {message}")

        return JSONResponse(
            status_code=exc.status_code,
            content={
                "status": "error",
                "message": message,
                "error_code": error_code,
                "details": details,
                "timestamp": _now(),
                "request_id": getattr(request.state, "request_id", None),
            },
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        # Convert errors to JSON-serializable format
        errors = []
        for error in exc.errors():
            error_dict = {
                "loc": error.get("loc", []),
                "msg": str(error.get("msg", "Validation error")),
                "type": error.get("type", "value_error"),
            }
            # Handle custom input if present
            if "input" in error:
                error_dict["input"] = str(error["input"])
            errors.append(error_dict)

        return JSONResponse(
            status_code=422,
            content={
                "status": "error",
                "message": "Validation error",
                "error_code": "VALIDATION_ERROR",
                "details": errors,
                "timestamp": _now(),
                "request_id": getattr(request.state, "request_id", None),
            },
        )


def setup_routers(app: FastAPI):
    """Configure application routers."""
    # Import routers
    from app.domains.chat.controller import router as chat_router
    from app.domains.feedback.controller import router as feedback_router
    from app.domains.hypothesis.controller import router as hypothesis_router
    from app.domains.vote.controller import router as vote_router

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        db_status = "healthy"
        try:
            async with AsyncSessionLocal() as session:
                await session.execute(text("SELECT 1"))
        except Exception as e:
            logger.warning(f"Database health check failed: {str(e)}")
            db_status = "unhealthy"

        registry = getattr(app.state, "stream_registry", None)
        return JSONResponse(
            status_code=200 if db_status == "healthy" else 503,
            content={
                "status": "healthy" if db_status == "healthy" else "degraded",
                "version": settings.version,
                "environment": settings.environment.value,
                "timestamp": _now(),
                "services": {
                    "database": db_status,
                    "stream_registry": "disabled" if registry is None else f"{len(registry)} stream(s)",
                },
            },
        )

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        summary = get_config_summary()
        return {
            "name": settings.app_name,
            "version": settings.version,
            "description": "Research chat with hypothesis extraction and feedback",
            "features": summary["features"],
            "docs_url": settings.docs_url if settings.is_development else None,
        }

    # Include domain routers
    app.include_router(chat_router)
    app.include_router(hypothesis_router)
    app.include_router(feedback_router)
    app.include_router(vote_router)


# Create the application instance
app = create_app()


def main():
    """Entry point for running the application directly."""
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload or settings.is_development,
        log_level=settings.log_level.value.lower(),
    )


if __name__ == "__main__":
    main()
