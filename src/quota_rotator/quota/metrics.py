"""
Per-day outcome counters for each (key, model) pair.

Metrics are a side channel: recording them never changes whether a
request is admitted.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from quota_rotator.quota.windows import METRICS_WINDOW, WindowKeyspace
from quota_rotator.store.base import CounterStore


class Outcome(str, Enum):
    """Outcome of one limit evaluation."""

    SUCCESS = "success"
    LIMIT_REACHED = "limit_reached"
    BORROWED = "borrowed"


@dataclass
class MetricsSnapshot:
    """Today's outcome counts for a key:model pair."""

    success: int = 0
    limit_reached: int = 0
    borrowed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "success": self.success,
            "limit_reached": self.limit_reached,
            "borrowed": self.borrowed,
        }


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


class MetricsRecorder:
    """Increments and reads the daily outcome counters."""

    def __init__(
        self,
        store: CounterStore,
        keyspace: WindowKeyspace,
        enabled: bool = True,
    ) -> None:
        self._store = store
        self._keyspace = keyspace
        self.enabled = enabled

    async def update_metrics(self, api_key: str, model_name: str, outcome: Outcome) -> None:
        if not self.enabled:
            return

        key = self._keyspace.metric_key(api_key, model_name, Outcome(outcome).value)
        expiry = self._keyspace.window_expiry(METRICS_WINDOW)
        await self._store.batch().incr(key).expire(key, expiry).execute()

    async def get_metrics(self, api_key: str, model_name: str) -> MetricsSnapshot | None:
        """
        Read today's counters.

        Returns:
            Snapshot with missing counters as 0, or None when metrics are disabled
        """
        if not self.enabled:
            return None

        batch = self._store.batch()
        for outcome in Outcome:
            batch.get(self._keyspace.metric_key(api_key, model_name, outcome.value))
        success, limit_reached, borrowed = await batch.execute()

        return MetricsSnapshot(
            success=_as_int(success),
            limit_reached=_as_int(limit_reached),
            borrowed=_as_int(borrowed),
        )
