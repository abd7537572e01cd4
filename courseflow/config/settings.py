"""Application settings using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="courseflow", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Environment name"
    )

    # Remote persistence API
    remote_api_base_url: str = Field(
        default="http://localhost:5000/api",
        description="Base URL of the remote persistence API",
    )
    remote_api_timeout: float = Field(
        default=10.0, description="Remote API request timeout (seconds)"
    )
    remote_api_connect_timeout: float = Field(
        default=5.0, description="Remote API connect timeout (seconds)"
    )
    remote_api_max_connections: int = Field(
        default=10, description="Max concurrent connections to the remote API"
    )

    # Local fallback cache (Redis)
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    redis_max_connections: int = Field(default=10, description="Max Redis connections")
    redis_socket_timeout: float = Field(default=5.0, description="Redis socket timeout")
    redis_socket_connect_timeout: float = Field(
        default=5.0, description="Redis connect timeout"
    )
    redis_retry_on_timeout: bool = Field(default=True, description="Retry on timeout")
    cache_namespace: str = Field(
        default="courseflow", description="Key prefix scoping the local cache"
    )
    cache_ttl_seconds: int | None = Field(
        default=None, description="Expiry for cached entries (None keeps them)"
    )

    # Progress policy
    checkpoint_interval_seconds: int = Field(
        default=5, description="Checkpoint every N whole seconds of playback"
    )
    completion_threshold_percent: float = Field(
        default=95.0, description="Watched percent at which a video is complete"
    )

    # Content hierarchy
    invariant_refetch_attempts: int = Field(
        default=2,
        description="Re-fetches attempted when loaded order values are corrupt",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="DEBUG", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", description="Log format"
    )
    log_include_caller_info: bool = Field(
        default=True, description="Include caller info"
    )
    log_to_file: bool = Field(default=False, description="Also write JSON log files")
    log_dir: str = Field(default="logs", description="Directory for log files")
    log_file_max_bytes: int = Field(
        default=10 * 1024 * 1024, description="Max size per log file (10MB default)"
    )
    log_file_backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
