"""Factories for stores and rotators based on configuration."""

import logging
import time
from typing import Any

from quota_rotator.config import Settings, settings as default_settings
from quota_rotator.quota.registry import ApiConfig, ConfigRegistry
from quota_rotator.quota.rotator import QuotaRotator
from quota_rotator.quota.windows import WindowKeyspace
from quota_rotator.store.base import CounterStore
from quota_rotator.store.memory import InMemoryStore
from quota_rotator.store.redis import RedisStore

logger = logging.getLogger(__name__)


def create_store(
    backend: str | None = None,
    settings: Settings | None = None,
    **kwargs: Any,
) -> CounterStore:
    """
    Create a counter store instance.

    Args:
        backend: Backend type ("memory" or "redis"), defaults to config
        settings: Settings to read defaults from
        **kwargs: Overrides passed to the backend

    Returns:
        CounterStore instance

    Raises:
        ValueError: If backend type is unknown
    """
    settings = settings or default_settings
    backend_type = backend or settings.store_backend

    if backend_type == "memory":
        return InMemoryStore(clock=kwargs.get("clock", time.time))

    elif backend_type == "redis":
        url = kwargs.get("url") or settings.redis_url
        if not url:
            logger.warning(
                "Redis URL not configured, falling back to in-memory store. "
                "Set REDIS_URL to share quotas across processes."
            )
            return InMemoryStore()

        return RedisStore(
            url=url,
            max_connections=kwargs.get("max_connections", settings.redis_max_connections),
            socket_timeout=kwargs.get("socket_timeout", settings.redis_socket_timeout),
            socket_connect_timeout=kwargs.get(
                "socket_connect_timeout", settings.redis_socket_connect_timeout
            ),
        )

    else:
        raise ValueError(f"Unknown store backend: {backend_type}")


def create_keyspace(settings: Settings | None = None, **kwargs: Any) -> WindowKeyspace:
    """Build the window keyspace from settings."""
    settings = settings or default_settings
    return WindowKeyspace(
        windows=settings.windows,
        key_prefix=settings.key_prefix,
        metric_prefix=settings.metric_prefix,
        freeze_prefix=settings.freeze_prefix,
        **kwargs,
    )


def create_rotator(
    apis: list[ApiConfig] | None = None,
    store: CounterStore | None = None,
    settings: Settings | None = None,
    config_path: str | None = None,
) -> QuotaRotator:
    """
    Create a QuotaRotator wired from settings.

    Args:
        apis: API definitions; loaded from config_path (or
            settings.apis_config_path) when omitted
        store: Backing store; created from settings when omitted
        settings: Settings to read from
        config_path: JSON file of API definitions

    Returns:
        Configured QuotaRotator
    """
    settings = settings or default_settings
    keyspace = create_keyspace(settings)

    if apis is None:
        registry = ConfigRegistry.from_file(config_path or settings.apis_config_path, keyspace)
    else:
        registry = ConfigRegistry(apis, keyspace)

    rotator = QuotaRotator(
        registry,
        store or create_store(settings=settings),
        key_strategy=settings.key_strategy,
        model_strategy=settings.model_strategy,
        metrics_enabled=settings.metrics_enabled,
        default_batch_size=settings.default_batch_size,
        final_window=settings.final_window,
    )
    logger.info(
        f"Initialized rotator with {len(registry.apis)} APIs on {rotator.store.name} store"
    )
    return rotator
