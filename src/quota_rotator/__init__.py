"""Multi-window quota enforcement with key and model rotation."""

from quota_rotator.errors import (
    ConfigurationError,
    NotFoundError,
    QuotaRotatorError,
    ValidationError,
)
from quota_rotator.quota import (
    ApiConfig,
    ModelConfig,
    QuotaRotator,
    Selection,
    SelectionStrategy,
)
from quota_rotator.store import InMemoryStore, RedisStore

__version__ = "0.1.0"

__all__ = [
    "ApiConfig",
    "ConfigurationError",
    "InMemoryStore",
    "ModelConfig",
    "NotFoundError",
    "QuotaRotator",
    "QuotaRotatorError",
    "RedisStore",
    "Selection",
    "SelectionStrategy",
    "ValidationError",
]
