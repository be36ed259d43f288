"""
Time-aligned window buckets and key naming.

Every counter lives in a bucket that starts at ``now - now % duration``
and expires at the next boundary, so buckets for different periods
never share a key.
"""

import time
from collections.abc import Callable, Mapping
from types import MappingProxyType

from quota_rotator.errors import ConfigurationError, ValidationError

DEFAULT_WINDOWS: dict[str, int] = {
    "minute": 60,
    "hour": 3600,
    "day": 86400,
    "month": 2592000,
}

METRICS_WINDOW = "day"


class WindowKeyspace:
    """Window table plus the key shapes for counters, metrics and freezes."""

    def __init__(
        self,
        windows: Mapping[str, int] | None = None,
        key_prefix: str = "rate",
        metric_prefix: str = "metric",
        freeze_prefix: str = "freeze",
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Args:
            windows: Extra windows (name -> seconds) merged over the defaults
            key_prefix: Prefix of counter keys
            metric_prefix: Prefix of metric keys
            freeze_prefix: Prefix of freeze flag keys
            clock: Source of the current epoch time in seconds
        """
        self._durations: dict[str, int] = dict(DEFAULT_WINDOWS)
        self.key_prefix = key_prefix
        self.metric_prefix = metric_prefix
        self.freeze_prefix = freeze_prefix
        self._clock = clock
        for name, duration in (windows or {}).items():
            self.register(name, duration)

    @property
    def durations(self) -> Mapping[str, int]:
        return MappingProxyType(self._durations)

    @property
    def names(self) -> list[str]:
        return list(self._durations)

    def register(self, name: str, duration: int) -> None:
        """Add or replace a window definition."""
        if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
            raise ValidationError(f"Invalid duration for window {name}: {duration!r}")
        self._durations[name] = duration

    def is_known(self, window: str) -> bool:
        return window in self._durations

    def duration(self, window: str) -> int:
        try:
            return self._durations[window]
        except KeyError:
            raise ConfigurationError(f"Invalid window: {window}") from None

    def now(self) -> int:
        return int(self._clock())

    def window_timestamp(self, window: str) -> int:
        """Start of the current bucket for the window."""
        size = self.duration(window)
        now = self.now()
        return now - (now % size)

    def window_expiry(self, window: str) -> int:
        """Seconds until the current bucket ends (always at least 1)."""
        size = self.duration(window)
        now = self.now()
        return size - (now % size)

    def counter_key(self, api_key: str, model_name: str, window: str) -> str:
        timestamp = self.window_timestamp(window)
        return f"{self.key_prefix}:{api_key}:{model_name}:{window}:{timestamp}"

    def metric_key(self, api_key: str, model_name: str, outcome: str) -> str:
        day = self.window_timestamp(METRICS_WINDOW)
        return f"{self.metric_prefix}:{api_key}:{model_name}:{outcome}:{day}"

    def freeze_key(self, api_key: str, model_name: str) -> str:
        return f"{self.freeze_prefix}:{api_key}:{model_name}"
