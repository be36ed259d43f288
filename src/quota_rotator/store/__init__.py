"""
Backing stores for quota counters, freeze flags and metrics.

Provides pluggable backends (in-memory and Redis) behind the
CounterStore contract.
"""

from quota_rotator.store.base import CommandBatch, CounterStore
from quota_rotator.store.memory import InMemoryStore
from quota_rotator.store.redis import RedisStore

__all__ = [
    "CommandBatch",
    "CounterStore",
    "InMemoryStore",
    "RedisStore",
]
