"""Application configuration.

All settings come from environment variables (or a ``.env`` file) and are
read once per process through ``get_settings()``.
"""

from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

CYCLE_POLICIES = ("error", "omit")
BACKOFF_POLICIES = ("linear", "fixed", "exponential", "none")
LOG_FORMATS = ("json", "text")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API
    APP_NAME: str = "Workflow Execution Engine"
    APP_VERSION: str = "1.0.0"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, testing, staging, production

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./workflows.db"
    SQLALCHEMY_ECHO: bool = False
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30

    # Celery broker / result backend
    REDIS_URL: str = "redis://localhost:6379/0"

    # Document store used by mongodb nodes
    MONGO_URL: Optional[str] = None
    MONGO_DATABASE: str = "workflows"

    # Email transport; when unset, email nodes only log the message
    EMAIL_SERVICE_URL: Optional[str] = None
    EMAIL_SERVICE_API_KEY: Optional[str] = None

    # Node execution
    HTTP_TIMEOUT_SECONDS: float = 30.0
    NODE_TIMEOUT_SECONDS: float = 600.0
    DELAY_MAX_SECONDS: float = 300.0
    FIND_DEFAULT_LIMIT: int = 100
    WORKFLOW_CYCLE_POLICY: str = "error"

    # Job queue
    JOB_BATCH_SIZE: int = 10
    JOB_MAX_RETRIES: int = 3
    JOB_RETRY_INTERVAL_SECONDS: float = 60.0
    JOB_BACKOFF_POLICY: str = "linear"
    JOB_POLL_INTERVAL_SECONDS: float = 60.0

    # Event trigger dispatch
    TRIGGER_QUEUE_SIZE: int = 100
    TRIGGER_WORKERS: int = 4

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    @field_validator("WORKFLOW_CYCLE_POLICY")
    @classmethod
    def _check_cycle_policy(cls, value: str) -> str:
        return _one_of("WORKFLOW_CYCLE_POLICY", value, CYCLE_POLICIES)

    @field_validator("JOB_BACKOFF_POLICY")
    @classmethod
    def _check_backoff_policy(cls, value: str) -> str:
        return _one_of("JOB_BACKOFF_POLICY", value, BACKOFF_POLICIES)

    @field_validator("LOG_FORMAT")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        return _one_of("LOG_FORMAT", value, LOG_FORMATS)

    @field_validator("TRIGGER_QUEUE_SIZE", "TRIGGER_WORKERS", "JOB_BATCH_SIZE")
    @classmethod
    def _check_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = True


def _one_of(name: str, value: str, allowed: tuple) -> str:
    normalized = value.strip().lower()
    if normalized not in allowed:
        raise ValueError(f"{name} must be one of {', '.join(allowed)}")
    return normalized


@lru_cache()
def get_settings() -> Settings:
    """Get the process-wide settings, loaded on first use."""
    return Settings()
