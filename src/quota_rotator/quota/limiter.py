"""
Multi-window limit evaluation for a single key:model candidate.

The protocol is increment-then-evaluate: every window counter is
incremented in one batch, the resulting counts are compared against the
model's limits, and a rejected attempt is undone with a compensating
batch of decrements. The three steps are separate round trips, so two
callers racing on the same bucket can overshoot a limit by the number
of concurrent attempts.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from quota_rotator.quota.freeze import FreezeGuard
from quota_rotator.quota.metrics import MetricsRecorder, Outcome
from quota_rotator.quota.registry import ModelConfig
from quota_rotator.quota.windows import WindowKeyspace
from quota_rotator.store.base import CounterStore

logger = logging.getLogger(__name__)


@dataclass
class WindowUsage:
    """Usage of one window after an evaluation."""

    used: int
    """Count in the current bucket."""

    remaining: int | None
    """Requests left before the limit (None if the window is unlimited)."""

    limit: int | None
    """Configured ceiling (None if the model does not limit this window)."""

    reset: int
    """Seconds until the bucket rolls over."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "used": self.used,
            "remaining": self.remaining,
            "limit": self.limit,
            "reset": self.reset,
        }


@dataclass
class LimitCheckResult:
    """Result of check_and_increment for one key:model pair."""

    is_within_limits: bool
    """Whether the request was admitted."""

    usage: dict[str, WindowUsage] = field(default_factory=dict)
    """Per-window usage; empty when the pair was frozen."""

    borrowed: bool = False
    """Whether a non-final window was exceeded and borrowed against."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_within_limits": self.is_within_limits,
            "usage": {w: u.to_dict() for w, u in self.usage.items()},
            "borrowed": self.borrowed,
        }


class LimitEvaluator:
    """
    Runs the increment/evaluate/rollback/borrow protocol.

    Borrowing lets a request through when a shorter window is full, on
    the assumption that longer windows still have headroom. The final
    window (``month`` by default) is never borrowed against.
    """

    def __init__(
        self,
        store: CounterStore,
        keyspace: WindowKeyspace,
        freeze_guard: FreezeGuard,
        metrics: MetricsRecorder,
        final_window: str = "month",
    ) -> None:
        self._store = store
        self._keyspace = keyspace
        self._freeze_guard = freeze_guard
        self._metrics = metrics
        self.final_window = final_window

    def _is_borrowable(self, window: str) -> bool:
        return window != self.final_window

    async def check_and_increment(
        self,
        api_key: str,
        model: ModelConfig,
        allow_borrowing: bool = False,
    ) -> LimitCheckResult:
        """
        Consume one request from every window of the model if allowed.

        Args:
            api_key: Key the request would be made with
            model: Model whose limits apply
            allow_borrowing: Admit over-limit requests on non-final windows

        Returns:
            LimitCheckResult; counters are left untouched unless admitted

        Raises:
            ConfigurationError: If a limit names an unregistered window
        """
        if await self._freeze_guard.is_frozen(api_key, model.name):
            logger.debug(f"{api_key}:{model.name} is frozen")
            return LimitCheckResult(is_within_limits=False)

        # Resolve every key first so an unknown window fails before any write
        windows: list[tuple[str, str, int, int]] = []
        for window, limit in model.limits.items():
            key = self._keyspace.counter_key(api_key, model.name, window)
            expiry = self._keyspace.window_expiry(window)
            windows.append((window, key, limit, expiry))

        batch = self._store.batch()
        for _, key, _, expiry in windows:
            batch.incr(key)
            batch.expire(key, expiry)
        results = await batch.execute()

        usage: dict[str, WindowUsage] = {}
        is_within_limits = True
        borrowed = False

        for i, (window, _, limit, expiry) in enumerate(windows):
            count = int(results[i * 2])
            usage[window] = WindowUsage(
                used=count,
                remaining=max(0, limit - count),
                limit=limit,
                reset=expiry,
            )

            if count > limit:
                if allow_borrowing and self._is_borrowable(window):
                    borrowed = True
                else:
                    is_within_limits = False

        if not is_within_limits:
            rollback = self._store.batch()
            for _, key, _, _ in windows:
                rollback.decr(key)
            await rollback.execute()

            logger.debug(f"{api_key}:{model.name} over limit, rolled back {len(windows)} counters")
            await self._metrics.update_metrics(api_key, model.name, Outcome.LIMIT_REACHED)
            return LimitCheckResult(is_within_limits=False, usage=usage, borrowed=False)

        outcome = Outcome.BORROWED if borrowed else Outcome.SUCCESS
        await self._metrics.update_metrics(api_key, model.name, outcome)
        return LimitCheckResult(is_within_limits=True, usage=usage, borrowed=borrowed)
