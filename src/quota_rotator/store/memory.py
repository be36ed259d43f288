"""In-memory counter store implementation."""

import asyncio
import fnmatch
import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from quota_rotator.store.base import BATCH_COMMANDS, CounterStore

logger = logging.getLogger(__name__)


@dataclass
class StoreEntry:
    """A stored value with an optional absolute expiry (epoch seconds)."""

    value: Any
    expires_at: float | None = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class InMemoryStore(CounterStore):
    """
    In-memory counter store using a simple dictionary.

    Mirrors the Redis semantics the quota engine relies on: INCR/DECR of
    a missing key starts from 0 without a TTL, INCR keeps an existing
    TTL, EXPIRE on a missing key is a no-op.

    Best for:
    - Single-process deployments
    - Development and testing

    Limitations:
    - Not shared across processes
    - Lost on restart
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        """
        Initialize in-memory store.

        Args:
            clock: Source of the current epoch time in seconds
        """
        self._store: dict[str, StoreEntry] = {}
        self._clock = clock
        self._lock = asyncio.Lock()
        self._connected = True

    @property
    def name(self) -> str:
        return "memory"

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _live_entry(self, key: str) -> StoreEntry | None:
        """Return the entry for key, dropping it if expired (caller holds lock)."""
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._store[key]
            return None
        return entry

    def _incr_by(self, key: str, delta: int) -> int:
        entry = self._live_entry(key)
        if entry is None:
            self._store[key] = StoreEntry(value=delta)
            return delta
        entry.value = int(entry.value) + delta
        return entry.value

    def _expire(self, key: str, seconds: int) -> bool:
        entry = self._live_entry(key)
        if entry is None:
            return False
        if seconds <= 0:
            del self._store[key]
        else:
            entry.expires_at = self._clock() + seconds
        return True

    def _get(self, key: str) -> Any | None:
        entry = self._live_entry(key)
        return entry.value if entry is not None else None

    async def incr(self, key: str) -> int:
        async with self._lock:
            return self._incr_by(key, 1)

    async def decr(self, key: str) -> int:
        async with self._lock:
            return self._incr_by(key, -1)

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            return self._get(key)

    async def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: int | None = None,
    ) -> bool:
        async with self._lock:
            expires_at = None
            if ttl_seconds is not None:
                expires_at = self._clock() + math.ceil(ttl_seconds)
            self._store[key] = StoreEntry(value=value, expires_at=expires_at)
            return True

    async def exists(self, key: str) -> bool:
        async with self._lock:
            return self._live_entry(key) is not None

    async def expire(self, key: str, seconds: int) -> bool:
        async with self._lock:
            return self._expire(key, seconds)

    async def scan(self, pattern: str) -> list[str]:
        async with self._lock:
            return [
                key for key in list(self._store.keys())
                if fnmatch.fnmatchcase(key, pattern) and self._live_entry(key) is not None
            ]

    async def execute_batch(self, commands: list[tuple[str, tuple[Any, ...]]]) -> list[Any]:
        """Run all commands under one lock acquisition."""
        results: list[Any] = []
        async with self._lock:
            for command, args in commands:
                if command not in BATCH_COMMANDS:
                    raise ValueError(f"Unsupported batch command: {command}")
                if command == "incr":
                    results.append(self._incr_by(args[0], 1))
                elif command == "decr":
                    results.append(self._incr_by(args[0], -1))
                elif command == "expire":
                    results.append(self._expire(args[0], args[1]))
                else:
                    results.append(self._get(args[0]))
        return results

    async def close(self) -> None:
        self._connected = False
        self._store.clear()

    async def cleanup_expired(self) -> int:
        """Remove all expired entries."""
        async with self._lock:
            now = self._clock()
            expired_keys = [k for k, v in self._store.items() if v.is_expired(now)]
            for key in expired_keys:
                del self._store[key]

            if expired_keys:
                logger.debug(f"Cleaned up {len(expired_keys)} expired store entries")

            return len(expired_keys)

    async def ttl(self, key: str) -> float | None:
        """Remaining lifetime of a key in seconds, or None if it has no TTL or is missing."""
        async with self._lock:
            entry = self._live_entry(key)
            if entry is None or entry.expires_at is None:
                return None
            return entry.expires_at - self._clock()

    async def health_check(self) -> dict[str, Any]:
        """Return health status with store statistics."""
        async with self._lock:
            now = self._clock()
            total_entries = len(self._store)
            expired_entries = sum(1 for v in self._store.values() if v.is_expired(now))

        return {
            "backend": self.name,
            "connected": self.is_connected,
            "total_entries": total_entries,
            "expired_entries": expired_entries,
        }

    def size(self) -> int:
        """Get current number of entries (sync method for convenience)."""
        return len(self._store)
