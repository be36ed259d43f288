"""
Quota evaluation and candidate selection.

Provides multi-window limits with rollback and borrowing, freeze flags,
daily outcome metrics and key/model rotation strategies.
"""

from quota_rotator.quota.freeze import FreezeGuard
from quota_rotator.quota.limiter import LimitCheckResult, LimitEvaluator, WindowUsage
from quota_rotator.quota.metrics import MetricsRecorder, MetricsSnapshot, Outcome
from quota_rotator.quota.registry import ApiConfig, ConfigRegistry, ModelConfig
from quota_rotator.quota.rotator import QuotaRotator, Selection, UsageStats
from quota_rotator.quota.strategy import (
    Dimension,
    RotationCursors,
    SelectionStrategy,
    order_items,
)
from quota_rotator.quota.windows import DEFAULT_WINDOWS, WindowKeyspace

__all__ = [
    "ApiConfig",
    "ConfigRegistry",
    "DEFAULT_WINDOWS",
    "Dimension",
    "FreezeGuard",
    "LimitCheckResult",
    "LimitEvaluator",
    "MetricsRecorder",
    "MetricsSnapshot",
    "ModelConfig",
    "Outcome",
    "QuotaRotator",
    "RotationCursors",
    "Selection",
    "SelectionStrategy",
    "UsageStats",
    "WindowKeyspace",
    "WindowUsage",
    "order_items",
]
