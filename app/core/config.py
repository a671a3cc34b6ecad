# python
# app/core/config.py
"""Configuration settings for the Hypothesis Chat API.

Uses Pydantic BaseSettings for environment variable management.
"""
import secrets
from enum import Enum

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentEnum(str, Enum):
    development = "development"
    testing = "testing"
    staging = "staging"
    production = "production"


class LogLevelEnum(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormatEnum(str, Enum):
    simple = "simple"
    json = "json"


class Settings(BaseSettings):
    # Pydantic v2 settings configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===== Application Settings =====
    app_name: str = Field(default="Hypothesis Chat API", description="Application name")
    environment: EnvironmentEnum = Field(
        default=EnvironmentEnum.development, description="Environment type"
    )
    debug: bool = Field(default=False, description="Debug mode")
    version: str = Field(default="1.0.0", description="Application version")

    # ===== Security Settings =====
    auth_secret_key: str | None = Field(
        default=None,
        description="Secret used to verify bearer tokens; unverified decode when unset (development only)",
    )
    secret_key: str = Field(
        default_factory=lambda: secrets.token_urlsafe(32),
        description="Application secret key",
    )
    algorithm: str = Field(default="HS256", description="JWT algorithm")

    # ===== Database Settings =====
    database_url: str | None = Field(default=None, description="Database connection URL")
    db_pool_size: int = Field(default=20, description="Database connection pool size")
    db_max_overflow: int = Field(default=0, description="Database max overflow connections")

    # Test database URL
    test_database_url: str | None = Field(default=None, description="Test database URL")

    # ===== Research Backend =====
    backend_url: str = Field(default="http://localhost:8080", description="Research backend base URL")
    backend_chat_path: str = Field(default="/api/chat/", description="Streaming chat endpoint path")
    backend_connect_timeout: float = Field(default=10.0, description="Backend connect timeout in seconds")
    backend_read_timeout: float = Field(default=120.0, description="Backend read timeout in seconds")
    backend_max_retries: int = Field(default=3, description="Connection attempts before giving up")
    backend_retry_backoff_factor: float = Field(default=0.5, description="Exponential backoff multiplier")
    backend_retry_min_wait: float = Field(default=0.5, description="Minimum wait between attempts")
    backend_retry_max_wait: float = Field(default=4.0, description="Maximum wait between attempts")

    # ===== Generation Knobs (forwarded to the backend) =====
    backend_system_prompt: str | None = Field(default=None, description="Optional system prompt override")
    backend_temperature: float = Field(default=0.7, description="Sampling temperature")
    backend_max_tokens: int = Field(default=8000, description="Maximum tokens to generate")
    backend_show_context: bool = Field(default=False, description="Ask backend to echo retrieved context")
    backend_multifaceted: bool = Field(default=True, description="Enable multifaceted hypothesis generation")
    backend_top_k_per_facet: int = Field(default=3, description="Documents retrieved per facet")
    backend_min_facets: int = Field(default=3, description="Minimum number of facets")
    backend_max_facets: int = Field(default=6, description="Maximum number of facets")

    # ===== Resumable Streams =====
    resumable_streams_enabled: bool = Field(default=True, description="Allow clients to re-attach to streams")
    stream_ttl_seconds: int = Field(default=600, description="Seconds a finished stream stays resumable")

    # ===== Entitlements =====
    max_messages_per_day_guest: int = Field(default=20, description="Daily user messages for guests")
    max_messages_per_day_regular: int = Field(default=100, description="Daily user messages for regular users")

    # ===== CORS Settings =====
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000",
        description="Allowed CORS origins (comma-separated)",
    )

    @property
    def allowed_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        if isinstance(self.allowed_origins, str):
            return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]
        return self.allowed_origins if isinstance(self.allowed_origins, list) else []

    # ===== Monitoring & Logging =====
    log_level: LogLevelEnum = Field(default=LogLevelEnum.INFO, description="Logging level")
    log_format: LogFormatEnum = Field(default=LogFormatEnum.json, description="Log format")

    # ===== Server Settings =====
    host: str = Field(default="127.0.0.1", description="Host to bind the server")
    port: int = Field(default=8000, description="Port to bind the server")

    # ===== Development Settings =====
    reload: bool = Field(default=False, description="Auto-reload in development")
    docs_url: str = Field(default="/docs", description="API documentation URL")
    redoc_url: str = Field(default="/redoc", description="ReDoc documentation URL")

    # ===== Computed Properties =====
    @property
    def is_development(self) -> bool:
        return self.environment == EnvironmentEnum.development

    @property
    def is_production(self) -> bool:
        return self.environment == EnvironmentEnum.production

    @property
    def is_testing(self) -> bool:
        return self.environment == EnvironmentEnum.testing

    @property
    def database_url_sync(self) -> str:
        if not self.database_url:
            return ""
        return self.database_url.replace("postgresql+asyncpg://", "postgresql://")

    @property
    def backend_chat_endpoint(self) -> str:
        return f"{self.backend_url.rstrip('/')}/{self.backend_chat_path.lstrip('/')}"

    @property
    def has_token_verification(self) -> bool:
        return bool(self.auth_secret_key)

    # ===== Validation Methods =====
    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v):
        if v and isinstance(v, str):
            lv = v.lower()
            if lv in ["dev", "develop"]:
                return "development"
            if lv in ["prod"]:
                return "production"
            if lv in ["test"]:
                return "testing"
        return v

    @field_validator("backend_temperature")
    @classmethod
    def validate_temperature(cls, v):
        if v < 0 or v > 2:
            raise ValueError("Temperature must be between 0 and 2")
        return v

    @field_validator("backend_max_retries")
    @classmethod
    def validate_max_retries(cls, v):
        if v < 1:
            raise ValueError("At least one backend connection attempt is required")
        return v

    @model_validator(mode="after")
    def validate_facets(self):
        if self.backend_min_facets > self.backend_max_facets:
            raise ValueError("backend_min_facets cannot exceed backend_max_facets")
        if not self.test_database_url and self.database_url and "neondb" in self.database_url:
            self.test_database_url = self.database_url.replace("neondb", "neondb_test")
        return self


settings = Settings()


class ConfigValidator:
    @staticmethod
    def validate_required_settings():
        errors = []
        if not settings.database_url:
            errors.append("DATABASE_URL is required")
        if not settings.backend_url:
            errors.append("BACKEND_URL is required")
        if settings.is_production and not settings.auth_secret_key:
            errors.append("AUTH_SECRET_KEY is required in production")
        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")

    @staticmethod
    def get_feature_status() -> dict:
        return {
            "token_verification": settings.has_token_verification,
            "resumable_streams": settings.resumable_streams_enabled,
            "multifaceted": settings.backend_multifaceted,
            "environment": settings.environment,
        }


def get_config_summary() -> dict:
    return {
        "app_name": settings.app_name,
        "version": settings.version,
        "environment": settings.environment,
        "debug": settings.debug,
        "features": ConfigValidator.get_feature_status(),
        "database_configured": bool(settings.database_url),
        "backend_url": settings.backend_url,
    }


__all__ = [
    "settings",
    "Settings",
    "ConfigValidator",
    "get_config_summary",
    "EnvironmentEnum",
    "LogLevelEnum",
    "LogFormatEnum",
]
