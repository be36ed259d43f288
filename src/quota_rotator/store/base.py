"""Abstract base class for counter store backends."""

from abc import ABC, abstractmethod
from typing import Any

BATCH_COMMANDS = frozenset({"incr", "decr", "expire", "get"})


class CommandBatch:
    """
    Commands queued for submission in a single round trip.

    Results come back from ``execute`` in submission order, one per
    queued command.
    """

    def __init__(self, store: "CounterStore") -> None:
        self._store = store
        self._commands: list[tuple[str, tuple[Any, ...]]] = []

    def __len__(self) -> int:
        return len(self._commands)

    @property
    def commands(self) -> list[tuple[str, tuple[Any, ...]]]:
        return list(self._commands)

    def incr(self, key: str) -> "CommandBatch":
        self._commands.append(("incr", (key,)))
        return self

    def decr(self, key: str) -> "CommandBatch":
        self._commands.append(("decr", (key,)))
        return self

    def expire(self, key: str, seconds: int) -> "CommandBatch":
        self._commands.append(("expire", (key, seconds)))
        return self

    def get(self, key: str) -> "CommandBatch":
        self._commands.append(("get", (key,)))
        return self

    async def execute(self) -> list[Any]:
        """Submit all queued commands and return their results."""
        if not self._commands:
            return []
        commands, self._commands = self._commands, []
        return await self._store.execute_batch(commands)


class CounterStore(ABC):
    """
    Abstract base class for shared counter stores.

    A store must provide atomic single-key increment/decrement,
    set-with-expiry, reads, key-pattern enumeration and batched
    submission of several commands in one round trip. Any backend that
    satisfies this contract can back a QuotaRotator.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """
        Unique identifier for this backend.

        Returns:
            Backend name (e.g., 'memory', 'redis')
        """
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Check if the backend is connected and healthy."""
        ...

    @abstractmethod
    async def incr(self, key: str) -> int:
        """
        Atomically increment an integer key.

        Missing keys start at 0 and are created without a TTL.

        Returns:
            The value after incrementing
        """
        ...

    @abstractmethod
    async def decr(self, key: str) -> int:
        """Atomically decrement an integer key and return the new value."""
        ...

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """
        Read a key.

        Returns:
            Stored value, or None if missing/expired
        """
        ...

    @abstractmethod
    async def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: int | None = None,
    ) -> bool:
        """
        Set a key, optionally with an expiry.

        Args:
            key: Store key
            value: Value to store
            ttl_seconds: Time-to-live in seconds (None = no expiry)

        Returns:
            True if successful
        """
        ...

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check if a key exists and has not expired."""
        ...

    @abstractmethod
    async def expire(self, key: str, seconds: int) -> bool:
        """
        (Re)set the TTL of an existing key.

        Returns:
            True if the key existed and the TTL was applied
        """
        ...

    @abstractmethod
    async def scan(self, pattern: str) -> list[str]:
        """
        Enumerate live keys matching a glob-style pattern.

        Args:
            pattern: Pattern such as "freeze:*"

        Returns:
            Matching keys (order unspecified)
        """
        ...

    @abstractmethod
    async def execute_batch(self, commands: list[tuple[str, tuple[Any, ...]]]) -> list[Any]:
        """
        Run queued commands in a single round trip.

        Args:
            commands: (command name, args) pairs from a CommandBatch

        Returns:
            One result per command, in submission order
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the store connection."""
        ...

    def batch(self) -> CommandBatch:
        """Start a new command batch bound to this store."""
        return CommandBatch(self)

    async def health_check(self) -> dict[str, Any]:
        """
        Check store health.

        Returns:
            Dict with health status information
        """
        return {
            "backend": self.name,
            "connected": self.is_connected,
        }
