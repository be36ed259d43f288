"""Temporary suppression of (key, model) pairs through TTL-bound flags."""

import logging
import math

from quota_rotator.errors import ValidationError
from quota_rotator.quota.windows import WindowKeyspace
from quota_rotator.store.base import CounterStore

logger = logging.getLogger(__name__)

FREEZE_SENTINEL = "1"


class FreezeGuard:
    """
    Sets and checks freeze flags.

    A frozen pair is rejected before any counter is touched. Flags
    expire on their own; there is no unfreeze.
    """

    def __init__(self, store: CounterStore, keyspace: WindowKeyspace) -> None:
        self._store = store
        self._keyspace = keyspace

    async def freeze(self, api_key: str, model_name: str, duration_seconds: float) -> None:
        if (
            isinstance(duration_seconds, bool)
            or not isinstance(duration_seconds, (int, float))
            or not math.isfinite(duration_seconds)
            or duration_seconds <= 0
        ):
            raise ValidationError(f"Invalid freeze duration: {duration_seconds!r}")

        key = self._keyspace.freeze_key(api_key, model_name)
        await self._store.set(key, FREEZE_SENTINEL, ttl_seconds=duration_seconds)
        logger.info(f"Froze {api_key}:{model_name} for {duration_seconds}s")

    async def is_frozen(self, api_key: str, model_name: str) -> bool:
        return await self._store.exists(self._keyspace.freeze_key(api_key, model_name))

    async def list_frozen(self) -> list[tuple[str, str]]:
        """Currently frozen (api_key, model_name) pairs."""
        prefix = f"{self._keyspace.freeze_prefix}:"
        keys = await self._store.scan(f"{prefix}*")

        frozen = []
        for key in sorted(keys):
            # Model names are colon-free (enforced by ConfigRegistry); API keys may contain ":"
            api_key, _, model_name = key[len(prefix):].rpartition(":")
            frozen.append((api_key, model_name))
        return frozen
