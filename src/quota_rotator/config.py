"""Configuration module using Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Backing store
    store_backend: str = "memory"  # "memory" or "redis"
    redis_url: str | None = None  # e.g. redis://localhost:6379/0
    redis_max_connections: int = 10
    redis_socket_timeout: float = 5.0
    redis_socket_connect_timeout: float = 5.0

    # Keyspace
    key_prefix: str = "rate"
    metric_prefix: str = "metric"
    freeze_prefix: str = "freeze"
    windows: dict[str, int] = {}  # Extra windows, merged over minute/hour/day/month
    final_window: str = "month"  # Window that can never be borrowed against

    # Selection
    key_strategy: str = "ascending"
    model_strategy: str = "ascending"
    default_batch_size: int = 3

    # Metrics
    metrics_enabled: bool = True

    # API definitions (JSON)
    apis_config_path: str = "apis.json"

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience handle for quick access
settings = get_settings()
