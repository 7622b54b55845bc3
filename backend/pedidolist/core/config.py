"""Application configuration using pydantic-settings.

All environment variables should be accessed through the settings object
rather than using os.getenv() directly. This ensures:
1. Type validation at startup
2. Centralized configuration
3. Documentation of available settings
4. Proper defaults
"""

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Terminal settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )

    # Local store - relative path so every terminal keeps its own file
    database_url: str = "sqlite:///./data/pedidolist.db"

    # Server
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Local API
    api_v1_prefix: str = "/api/v1"
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_requests: int = 120  # requests per window
    rate_limit_window: int = 60  # window in seconds

    # ==========================================================================
    # Remote PedidoList API
    # ==========================================================================
    remote_api_url: str = "http://localhost:3030"
    remote_api_token: Optional[str] = None
    request_timeout_seconds: float = 15.0

    # ==========================================================================
    # Connectivity
    # ==========================================================================
    connectivity_quiet_period_ms: int = 500
    connectivity_probe_interval_seconds: float = 30.0  # 0 disables the heartbeat
    connectivity_probe_path: str = "/health"

    # ==========================================================================
    # Sync engine
    # ==========================================================================
    periodic_sync_enabled: bool = True
    sync_interval_seconds: int = 300
    sync_backoff_base_seconds: float = 1.0
    sync_backoff_cap_seconds: float = 300.0
    sync_max_retries: int = 10  # 0 keeps retrying forever
    sync_conflict_strategy: Literal["last_write_wins", "server_wins", "client_wins", "manual"] = "last_write_wins"

    # Storage retention
    retention_days: int = 30

    # Background scheduler
    scheduler_tick_seconds: float = 5.0

    @field_validator("remote_api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("request_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if not 1 <= v <= 120:
            raise ValueError("request_timeout_seconds must be between 1 and 120")
        return v

    @field_validator("sync_max_retries", "retention_days", "sync_interval_seconds")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("value must not be negative")
        return v

    @model_validator(mode="after")
    def validate_backoff(self) -> "Settings":
        """Backoff ceiling must not be below its base."""
        if self.sync_backoff_base_seconds <= 0:
            raise ValueError("sync_backoff_base_seconds must be positive")
        if self.sync_backoff_cap_seconds < self.sync_backoff_base_seconds:
            raise ValueError(
                f"sync_backoff_cap_seconds ({self.sync_backoff_cap_seconds}) must be >= "
                f"sync_backoff_base_seconds ({self.sync_backoff_base_seconds})"
            )
        return self

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def connectivity_quiet_period(self) -> float:
        """Debounce window in seconds."""
        return self.connectivity_quiet_period_ms / 1000


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
