"""Redis counter store implementation."""

import logging
import math
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from quota_rotator.store.base import BATCH_COMMANDS, CounterStore

logger = logging.getLogger(__name__)


class RedisStore(CounterStore):
    """
    Redis counter store for quota state shared across processes.

    Counters, freeze flags and metrics live in the Redis keyspace, so
    every process pointed at the same server sees the same quotas.
    Redis' native INCR/DECR and pipelines are the only synchronization.

    Errors from the server (connection loss, timeouts) are logged and
    re-raised unchanged; retries belong to the client configuration.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        max_connections: int = 10,
        socket_timeout: float = 5.0,
        socket_connect_timeout: float = 5.0,
    ) -> None:
        """
        Initialize Redis store.

        Args:
            url: Redis connection URL
            max_connections: Maximum connections in pool
            socket_timeout: Socket timeout in seconds
            socket_connect_timeout: Connection timeout in seconds
        """
        self._url = url
        self._max_connections = max_connections
        self._socket_timeout = socket_timeout
        self._socket_connect_timeout = socket_connect_timeout
        self._client: Any = None
        self._connected = False

    @property
    def name(self) -> str:
        return "redis"

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _get_client(self) -> Any:
        """Create the client on first use; connections open lazily."""
        if self._client is None:
            self._client = redis.from_url(
                self._url,
                max_connections=self._max_connections,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._socket_connect_timeout,
                decode_responses=True,
            )
        return self._client

    async def connect(self) -> bool:
        """
        Connect to Redis and verify the server answers.

        Returns:
            True if connected successfully
        """
        if self._connected and self._client:
            return True

        try:
            await self._get_client().ping()
            self._connected = True
            logger.info(f"Connected to Redis at {self._url}")
            return True
        except RedisError as e:
            logger.error(f"Failed to connect to Redis: {e}")
            self._connected = False
            return False

    async def incr(self, key: str) -> int:
        try:
            return int(await self._get_client().incr(key))
        except RedisError as e:
            logger.error(f"Redis INCR error for {key}: {e}")
            raise

    async def decr(self, key: str) -> int:
        try:
            return int(await self._get_client().decr(key))
        except RedisError as e:
            logger.error(f"Redis DECR error for {key}: {e}")
            raise

    async def get(self, key: str) -> Any | None:
        try:
            return await self._get_client().get(key)
        except RedisError as e:
            logger.error(f"Redis GET error for {key}: {e}")
            raise

    async def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: int | None = None,
    ) -> bool:
        try:
            if ttl_seconds is not None:
                result = await self._get_client().set(key, value, ex=math.ceil(ttl_seconds))
            else:
                result = await self._get_client().set(key, value)
            return bool(result)
        except RedisError as e:
            logger.error(f"Redis SET error for {key}: {e}")
            raise

    async def exists(self, key: str) -> bool:
        try:
            return await self._get_client().exists(key) > 0
        except RedisError as e:
            logger.error(f"Redis EXISTS error for {key}: {e}")
            raise

    async def expire(self, key: str, seconds: int) -> bool:
        try:
            return bool(await self._get_client().expire(key, seconds))
        except RedisError as e:
            logger.error(f"Redis EXPIRE error for {key}: {e}")
            raise

    async def scan(self, pattern: str) -> list[str]:
        try:
            # SCAN rather than KEYS so large keyspaces are not blocked
            keys = []
            async for key in self._get_client().scan_iter(match=pattern):
                keys.append(key)
            return keys
        except RedisError as e:
            logger.error(f"Redis SCAN error for {pattern}: {e}")
            raise

    async def execute_batch(self, commands: list[tuple[str, tuple[Any, ...]]]) -> list[Any]:
        """Queue commands on a MULTI/EXEC pipeline and run it in one round trip."""
        pipe = self._get_client().pipeline(transaction=True)
        for command, args in commands:
            if command not in BATCH_COMMANDS:
                raise ValueError(f"Unsupported batch command: {command}")
            getattr(pipe, command)(*args)

        try:
            return list(await pipe.execute())
        except RedisError as e:
            logger.error(f"Redis pipeline error ({len(commands)} commands): {e}")
            raise

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._client:
            try:
                await self._client.aclose()
            except RedisError as e:
                logger.error(f"Error closing Redis connection: {e}")
            finally:
                self._client = None
                self._connected = False

    async def health_check(self) -> dict[str, Any]:
        """Return health status with Redis info."""
        try:
            info = await self._get_client().info("server")
            keys_count = await self._get_client().dbsize()
            self._connected = True
            return {
                "backend": self.name,
                "connected": True,
                "redis_version": info.get("redis_version"),
                "total_keys": keys_count,
            }
        except RedisError as e:
            return {
                "backend": self.name,
                "connected": False,
                "error": str(e),
            }
