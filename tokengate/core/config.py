"""
Tokengate Settings

Redis, circuit breaker, limiter and logging settings read from the
process environment or a local .env file.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from typing import Optional
from functools import lru_cache
from dotenv import load_dotenv

load_dotenv()

LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


class Settings(BaseSettings):
    """Settings consumed by AdmissionEngine.from_settings and configure_logging."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    # Window store (Redis)
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0", description="Redis connection URL"
    )
    REDIS_MAX_CONNECTIONS: int = Field(
        default=10, ge=1, le=50, description="Upper bound on pooled Redis connections"
    )
    REDIS_CONNECTION_TIMEOUT: float = Field(
        default=5.0, gt=0, le=60, description="Socket connect timeout in seconds"
    )
    REDIS_OPERATION_TIMEOUT: float = Field(
        default=5.0, gt=0, le=60, description="Socket read/write timeout in seconds"
    )
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(
        default=30, ge=0, le=300, description="Idle connection health check interval"
    )
    REDIS_KEY_PREFIX: str = Field(
        default="tokengate", min_length=1, description="Prefix for all limiter keys"
    )

    # Store circuit breaker
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = Field(
        default=5, ge=1, le=20, description="Consecutive store failures that open the circuit"
    )
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT: int = Field(
        default=60,
        ge=1,
        le=300,
        description="Seconds an open circuit waits before a trial call",
    )
    CIRCUIT_BREAKER_SUCCESS_THRESHOLD: int = Field(
        default=3, ge=1, le=20, description="Successes needed to close the circuit"
    )

    # Admission limiter
    LIMITER_LANE: Optional[int] = Field(
        default=None,
        ge=0,
        le=31,
        description="Identifier lane for this process; allocated from Redis when unset",
    )
    LIMITER_OVERRIDES_FILE: Optional[str] = Field(
        default=None, description="JSON file with per-subaccount quota overrides"
    )
    LIMITER_KEY_TTL_PADDING_MS: int = Field(
        default=1000,
        ge=0,
        le=600000,
        description="Extra lifetime added to window keys beyond the longest interval",
    )

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Root log level")
    LOG_FORMAT: str = Field(default="json", description="Log renderer: json or console")

    @field_validator("REDIS_URL")
    @classmethod
    def validate_redis_url(cls, v):
        """Validate Redis URL scheme."""
        if not v.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError("REDIS_URL must use redis://, rediss:// or unix://")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v):
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of: {sorted(LOG_LEVELS)}")
        return level

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v):
        """Validate log renderer."""
        if v.lower() not in ("json", "console"):
            raise ValueError("LOG_FORMAT must be 'json' or 'console'")
        return v.lower()


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings, read once."""
    return Settings()
