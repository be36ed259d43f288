"""
Key and model rotation across rate-limited APIs.

QuotaRotator ties together the registry, the window keyspace, the
freeze guard, the limit evaluator and the metrics recorder, and walks
the candidate (key, model) pairs in strategy order until one is
admitted.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from quota_rotator.errors import ValidationError
from quota_rotator.quota.freeze import FreezeGuard
from quota_rotator.quota.limiter import LimitCheckResult, LimitEvaluator, WindowUsage
from quota_rotator.quota.metrics import MetricsRecorder, MetricsSnapshot
from quota_rotator.quota.registry import ApiConfig, ConfigRegistry, ModelConfig
from quota_rotator.quota.strategy import (
    Dimension,
    RotationCursors,
    SelectionStrategy,
    order_items,
)
from quota_rotator.quota.windows import WindowKeyspace
from quota_rotator.store.base import CounterStore

logger = logging.getLogger(__name__)


@dataclass
class Selection:
    """An admitted key:model pair."""

    key: str
    model: str
    limits: dict[str, WindowUsage] = field(default_factory=dict)
    borrowed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "model": self.model,
            "limits": {w: u.to_dict() for w, u in self.limits.items()},
            "borrowed": self.borrowed,
        }


@dataclass
class UsageStats:
    """Read-only view of a pair's current buckets and today's metrics."""

    current_usage: dict[str, WindowUsage]
    metrics: MetricsSnapshot | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_usage": {w: u.to_dict() for w, u in self.current_usage.items()},
            "metrics": self.metrics.to_dict() if self.metrics is not None else None,
        }


class QuotaRotator:
    """
    Picks the next available key:model pair for an API.

    Example:
        rotator = QuotaRotator(apis, InMemoryStore())
        selection = await rotator.get_model("openai")
        if selection is None:
            ...  # every pair is exhausted or frozen
    """

    def __init__(
        self,
        apis: list[ApiConfig] | ConfigRegistry,
        store: CounterStore,
        *,
        windows: Mapping[str, int] | None = None,
        key_strategy: str | SelectionStrategy = SelectionStrategy.ASCENDING,
        model_strategy: str | SelectionStrategy = SelectionStrategy.ASCENDING,
        metrics_enabled: bool = True,
        default_batch_size: int = 3,
        key_prefix: str = "rate",
        metric_prefix: str = "metric",
        freeze_prefix: str = "freeze",
        final_window: str = "month",
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
    ) -> None:
        """
        Initialize the rotator.

        Args:
            apis: API definitions, or a registry already bound to a keyspace
            store: Backing counter store
            windows: Extra windows merged over minute/hour/day/month. Ignored
                when apis is a ConfigRegistry, as are the three prefixes and
                clock; the registry's keyspace is used instead
            key_strategy: Ordering of keys
            model_strategy: Ordering of models
            metrics_enabled: Record daily outcome counters
            default_batch_size: Size used by get_batch when none is given
            key_prefix: Prefix of counter keys
            metric_prefix: Prefix of metric keys
            freeze_prefix: Prefix of freeze flag keys
            final_window: Window that is never borrowed against
            clock: Source of the current epoch time in seconds
            rng: Random source for the random strategy

        Raises:
            ValidationError: On an unknown strategy or a bad batch size
        """
        self._key_strategy = SelectionStrategy.parse(key_strategy)
        self._model_strategy = SelectionStrategy.parse(model_strategy)
        self.default_batch_size = self._validate_batch_size(default_batch_size)

        if isinstance(apis, ConfigRegistry):
            self.registry = apis
            self.keyspace = apis.keyspace
        else:
            self.keyspace = WindowKeyspace(
                windows=windows,
                key_prefix=key_prefix,
                metric_prefix=metric_prefix,
                freeze_prefix=freeze_prefix,
                clock=clock,
            )
            self.registry = ConfigRegistry(apis, self.keyspace)

        self._store = store
        self.cursors = RotationCursors()
        self._rng = rng or random.Random()
        self.freeze_guard = FreezeGuard(store, self.keyspace)
        self.metrics = MetricsRecorder(store, self.keyspace, enabled=metrics_enabled)
        self.evaluator = LimitEvaluator(
            store,
            self.keyspace,
            self.freeze_guard,
            self.metrics,
            final_window=final_window,
        )

    @staticmethod
    def _validate_batch_size(size: Any) -> int:
        if isinstance(size, bool) or not isinstance(size, int) or size < 1:
            raise ValidationError(f"Invalid batch size: {size!r}")
        return size

    @property
    def store(self) -> CounterStore:
        return self._store

    @property
    def key_strategy(self) -> SelectionStrategy:
        return self._key_strategy

    @property
    def model_strategy(self) -> SelectionStrategy:
        return self._model_strategy

    def set_key_strategy(self, strategy: str | SelectionStrategy) -> None:
        """Switch key ordering; rotation cursors are kept."""
        self._key_strategy = SelectionStrategy.parse(strategy)

    def set_model_strategy(self, strategy: str | SelectionStrategy) -> None:
        """Switch model ordering; rotation cursors are kept."""
        self._model_strategy = SelectionStrategy.parse(strategy)

    def find_api(self, api_name: str) -> ApiConfig:
        return self.registry.find_api(api_name)

    def _candidates(self, api: ApiConfig) -> tuple[list[ModelConfig], list[str]]:
        models = order_items(
            self._model_strategy, api.models, self.cursors, api.name, Dimension.MODEL, self._rng
        )
        keys = order_items(
            self._key_strategy, api.keys, self.cursors, api.name, Dimension.KEY, self._rng
        )
        return models, keys

    async def check_and_increment(
        self,
        api_key: str,
        model: ModelConfig,
        allow_borrowing: bool = False,
    ) -> LimitCheckResult:
        """
        Evaluate and consume quota for one pair.

        Args:
            api_key: Key to charge
            model: ModelConfig to evaluate
            allow_borrowing: Admit over-limit requests on non-final windows
        """
        return await self.evaluator.check_and_increment(api_key, model, allow_borrowing)

    async def get_model(self, api_name: str, allow_borrowing: bool = False) -> Selection | None:
        """
        Find the first admissible key:model pair.

        Models are the outer loop and keys the inner loop, so every key
        is tried on the preferred model before moving to the next model.

        Returns:
            The admitted Selection, or None if no pair is available
        """
        api = self.find_api(api_name)
        models, keys = self._candidates(api)

        for model in models:
            for key in keys:
                result = await self.check_and_increment(key, model, allow_borrowing)
                if result.is_within_limits:
                    logger.debug(f"Selected {key}:{model.name} for {api_name}")
                    return Selection(
                        key=key,
                        model=model.name,
                        limits=result.usage,
                        borrowed=result.borrowed,
                    )

        logger.warning(f"No available key:model pair for {api_name}")
        return None

    async def get_batch(self, api_name: str, size: int | None = None) -> list[Selection] | None:
        """
        Collect up to size admitted pairs in one pass.

        Each admitted pair consumes one real request from its counters.
        Borrowing is never used in batch mode.

        Returns:
            Admitted selections in iteration order, or None if none were admitted
        """
        size = self._validate_batch_size(self.default_batch_size if size is None else size)
        api = self.find_api(api_name)
        models, keys = self._candidates(api)

        results: list[Selection] = []
        for model in models:
            for key in keys:
                if len(results) >= size:
                    return results

                result = await self.check_and_increment(key, model)
                if result.is_within_limits:
                    results.append(
                        Selection(
                            key=key,
                            model=model.name,
                            limits=result.usage,
                            borrowed=result.borrowed,
                        )
                    )

        if not results:
            logger.warning(f"No available key:model pairs for batch on {api_name}")
            return None
        return results

    async def freeze_model(self, api_key: str, model_name: str, duration_seconds: float) -> None:
        """Suppress a pair for duration_seconds regardless of remaining quota."""
        await self.freeze_guard.freeze(api_key, model_name, duration_seconds)

    async def is_frozen(self, api_key: str, model_name: str) -> bool:
        return await self.freeze_guard.is_frozen(api_key, model_name)

    async def list_frozen(self) -> list[tuple[str, str]]:
        return await self.freeze_guard.list_frozen()

    def update_limits(
        self,
        api_name: str,
        model_name: str,
        new_limits: dict[str, Any],
    ) -> dict[str, int]:
        """Merge new limits into a model; see ConfigRegistry.update_limits."""
        return self.registry.update_limits(api_name, model_name, new_limits)

    async def get_metrics(self, api_key: str, model_name: str) -> MetricsSnapshot | None:
        return await self.metrics.get_metrics(api_key, model_name)

    async def get_usage_stats(
        self,
        api_name: str,
        api_key: str,
        model_name: str,
    ) -> UsageStats:
        """
        Current bucket counts for every registered window plus today's metrics.

        Nothing is incremented. Windows the model does not limit report
        ``limit`` and ``remaining`` as None.
        """
        model = self.registry.find_model(api_name, model_name)
        windows = self.keyspace.names

        batch = self._store.batch()
        for window in windows:
            batch.get(self.keyspace.counter_key(api_key, model_name, window))
        counts = await batch.execute()

        usage: dict[str, WindowUsage] = {}
        for window, raw in zip(windows, counts):
            used = int(raw) if raw is not None else 0
            limit = model.limits.get(window)
            usage[window] = WindowUsage(
                used=used,
                remaining=max(0, limit - used) if limit is not None else None,
                limit=limit,
                reset=self.keyspace.window_expiry(window),
            )

        metrics = await self.metrics.get_metrics(api_key, model_name)
        return UsageStats(current_usage=usage, metrics=metrics)
