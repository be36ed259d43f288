"""Tests for key:model rotation."""

import random

import pytest

from quota_rotator.errors import NotFoundError, ValidationError
from quota_rotator.quota.metrics import MetricsSnapshot
from quota_rotator.quota.registry import ApiConfig, ConfigRegistry, ModelConfig
from quota_rotator.quota.rotator import QuotaRotator, Selection, UsageStats
from quota_rotator.quota.strategy import Dimension, SelectionStrategy
from quota_rotator.quota.windows import WindowKeyspace
from quota_rotator.store.memory import InMemoryStore


async def _picks(rotator: QuotaRotator, api_name: str, n: int) -> list[tuple[str, str] | None]:
    picks = []
    for _ in range(n):
        selection = await rotator.get_model(api_name)
        picks.append((selection.key, selection.model) if selection else None)
    return picks


class TestQuotaRotatorInit:
    """Tests for QuotaRotator construction."""

    def test_defaults(self, rotator: QuotaRotator) -> None:
        """Test default strategies and batch size."""
        assert rotator.key_strategy is SelectionStrategy.ASCENDING
        assert rotator.model_strategy is SelectionStrategy.ASCENDING
        assert rotator.default_batch_size == 3

    def test_invalid_strategy(self, sample_apis, store: InMemoryStore) -> None:
        """Test unknown strategies are rejected up front."""
        with pytest.raises(ValidationError):
            QuotaRotator(sample_apis, store, key_strategy="sideways")
        with pytest.raises(ValidationError):
            QuotaRotator(sample_apis, store, model_strategy="sideways")

    def test_invalid_batch_size(self, sample_apis, store: InMemoryStore) -> None:
        """Test the default batch size must be positive."""
        with pytest.raises(ValidationError):
            QuotaRotator(sample_apis, store, default_batch_size=0)

    def test_registry_keyspace_wins(self, sample_apis, store: InMemoryStore, clock) -> None:
        """Test a prebuilt registry keeps its own keyspace over keyspace arguments."""
        registry = ConfigRegistry(sample_apis, WindowKeyspace(key_prefix="q", clock=clock))

        rotator = QuotaRotator(registry, store, key_prefix="ignored", windows={"week": 604800})

        assert rotator.keyspace is registry.keyspace
        assert rotator.keyspace.counter_key("k", "m", "minute").startswith("q:")
        assert not rotator.keyspace.is_known("week")


class TestGetModel:
    """Tests for QuotaRotator.get_model."""

    @pytest.mark.asyncio
    async def test_first_pair_selected(self, rotator: QuotaRotator) -> None:
        """Test the first model and key are tried first."""
        selection = await rotator.get_model("openai")

        assert isinstance(selection, Selection)
        assert (selection.key, selection.model) == ("key-a", "gpt-4")
        assert selection.borrowed is False
        assert selection.limits["minute"].used == 1
        assert selection.limits["month"].remaining == 99

    @pytest.mark.asyncio
    async def test_keys_inner_models_outer(self, rotator: QuotaRotator) -> None:
        """Test all keys are used on a model before falling to the next model."""
        picks = await _picks(rotator, "openai", 6)

        assert picks == [
            ("key-a", "gpt-4"),
            ("key-a", "gpt-4"),
            ("key-b", "gpt-4"),
            ("key-b", "gpt-4"),
            ("key-a", "gpt-3.5"),
            ("key-a", "gpt-3.5"),
        ]

    @pytest.mark.asyncio
    async def test_no_availability(self, rotator: QuotaRotator) -> None:
        """Test exhaustion returns None rather than raising."""
        assert await rotator.get_model("anthropic") is not None
        assert await rotator.get_model("anthropic") is None

    @pytest.mark.asyncio
    async def test_borrowing(self, rotator: QuotaRotator) -> None:
        """Test borrowing admits past a non-final window limit."""
        await rotator.get_model("anthropic")
        selection = await rotator.get_model("anthropic", allow_borrowing=True)

        assert selection is not None
        assert selection.borrowed is True
        assert selection.limits["minute"].used == 2
        assert selection.limits["minute"].remaining == 0

    @pytest.mark.asyncio
    async def test_unknown_api(self, rotator: QuotaRotator) -> None:
        """Test unknown APIs raise NotFoundError."""
        with pytest.raises(NotFoundError):
            await rotator.get_model("missing")

    @pytest.mark.asyncio
    async def test_frozen_pair_skipped(self, rotator: QuotaRotator, store: InMemoryStore) -> None:
        """Test a frozen pair is passed over without touching its counters."""
        await rotator.freeze_model("key-a", "gpt-4", 60)

        selection = await rotator.get_model("openai")

        assert (selection.key, selection.model) == ("key-b", "gpt-4")
        assert await store.scan("rate:key-a:gpt-4:*") == []

    @pytest.mark.asyncio
    async def test_freeze_expires(self, rotator: QuotaRotator, clock) -> None:
        """Test a pair is selectable again once its freeze lapses."""
        await rotator.freeze_model("key-a", "gpt-4", 10)
        assert await rotator.is_frozen("key-a", "gpt-4") is True

        clock.advance(10)

        assert await rotator.is_frozen("key-a", "gpt-4") is False
        selection = await rotator.get_model("openai")
        assert selection.key == "key-a"

    @pytest.mark.asyncio
    async def test_all_frozen(self, rotator: QuotaRotator) -> None:
        """Test every pair frozen means no availability."""
        await rotator.freeze_model("key-x", "claude", 60)
        assert await rotator.get_model("anthropic", allow_borrowing=True) is None

    @pytest.mark.asyncio
    async def test_custom_window(self, store: InMemoryStore, clock) -> None:
        """Test limits on configured extra windows are enforced."""
        apis = [ApiConfig(name="a", keys=["k"], models=[ModelConfig(name="m", limits={"second": 1})])]
        rotator = QuotaRotator(apis, store, windows={"second": 1}, clock=clock)

        assert await rotator.get_model("a") is not None
        assert await rotator.get_model("a") is None
        clock.advance(1)
        assert await rotator.get_model("a") is not None


class TestGetBatch:
    """Tests for QuotaRotator.get_batch."""

    @pytest.mark.asyncio
    async def test_default_size(self, rotator: QuotaRotator) -> None:
        """Test the default batch size is used and each pair is consumed once."""
        batch = await rotator.get_batch("openai")

        assert [(s.key, s.model) for s in batch] == [
            ("key-a", "gpt-4"),
            ("key-b", "gpt-4"),
            ("key-a", "gpt-3.5"),
        ]
        assert all(s.limits["minute"].used == 1 for s in batch)

    @pytest.mark.asyncio
    async def test_stops_at_size(self, rotator: QuotaRotator, store: InMemoryStore) -> None:
        """Test no candidate past the requested size is incremented."""
        batch = await rotator.get_batch("openai", size=1)

        assert len(batch) == 1
        assert await store.scan("rate:key-b:*") == []

    @pytest.mark.asyncio
    async def test_fewer_than_size(self, rotator: QuotaRotator) -> None:
        """Test the batch holds every admitted pair when fewer than size exist."""
        batch = await rotator.get_batch("openai", size=10)
        assert len(batch) == 4

    @pytest.mark.asyncio
    async def test_empty_returns_none(self, rotator: QuotaRotator) -> None:
        """Test an API with every pair frozen yields None."""
        for key in ("key-a", "key-b"):
            for model in ("gpt-4", "gpt-3.5"):
                await rotator.freeze_model(key, model, 60)

        assert await rotator.get_batch("openai") is None

    @pytest.mark.asyncio
    async def test_no_borrowing(self, rotator: QuotaRotator) -> None:
        """Test batch mode never borrows."""
        await rotator.get_model("anthropic")
        batch = await rotator.get_batch("anthropic", size=5)
        assert batch is None

    @pytest.mark.asyncio
    async def test_invalid_size(self, rotator: QuotaRotator) -> None:
        """Test non-positive sizes are rejected."""
        with pytest.raises(ValidationError):
            await rotator.get_batch("openai", size=0)


class TestStrategies:
    """Tests for runtime strategy selection."""

    @pytest.mark.asyncio
    async def test_round_robin_keys(self, rotator: QuotaRotator) -> None:
        """Test round-robin starts each call on the next key."""
        rotator.set_key_strategy("round-robin")

        picks = await _picks(rotator, "openai", 3)

        assert [key for key, _ in picks] == ["key-a", "key-b", "key-a"]

    @pytest.mark.asyncio
    async def test_round_robin_models(self, rotator: QuotaRotator) -> None:
        """Test round-robin on models alternates the outer loop."""
        rotator.set_model_strategy(SelectionStrategy.ROUND_ROBIN)

        picks = await _picks(rotator, "openai", 3)

        assert [model for _, model in picks] == ["gpt-4", "gpt-3.5", "gpt-4"]

    @pytest.mark.asyncio
    async def test_switching_keeps_cursors(self, rotator: QuotaRotator) -> None:
        """Test changing strategy does not reset rotation state."""
        rotator.set_key_strategy("round-robin")
        await _picks(rotator, "openai", 2)
        assert rotator.cursors.get("openai", Dimension.KEY) == 1

        rotator.set_key_strategy("ascending")
        await rotator.get_model("openai")
        rotator.set_model_strategy("random")
        assert rotator.cursors.get("openai", Dimension.KEY) == 1

        rotator.set_key_strategy("round-robin")
        assert rotator.cursors.get("openai", Dimension.KEY) == 1

    def test_invalid_strategy_name(self, rotator: QuotaRotator) -> None:
        """Test unknown names raise ValidationError and keep the old strategy."""
        with pytest.raises(ValidationError):
            rotator.set_key_strategy("fastest")
        with pytest.raises(ValidationError):
            rotator.set_model_strategy("fastest")

        assert rotator.key_strategy is SelectionStrategy.ASCENDING

    @pytest.mark.asyncio
    async def test_random_keys(self, sample_apis, store: InMemoryStore, clock) -> None:
        """Test random ordering still only selects configured pairs."""
        rotator = QuotaRotator(sample_apis, store, key_strategy="random", clock=clock, rng=random.Random(7))

        picks = await _picks(rotator, "openai", 4)

        assert {key for key, _ in picks} <= {"key-a", "key-b"}
        assert all(model == "gpt-4" for _, model in picks)

    @pytest.mark.asyncio
    async def test_cursors_are_per_instance(self, sample_apis, store: InMemoryStore, clock) -> None:
        """Test two rotators on one store share counters but not cursors."""
        first = QuotaRotator(sample_apis, store, key_strategy="round-robin", clock=clock)
        second = QuotaRotator(sample_apis, store, key_strategy="round-robin", clock=clock)

        a = await first.get_model("openai")
        b = await second.get_model("openai")

        assert a.key == b.key == "key-a"
        assert b.limits["minute"].used == 2


class TestLimitsAndStats:
    """Tests for limit updates, metrics and usage stats."""

    @pytest.mark.asyncio
    async def test_update_limits_visible_immediately(self, rotator: QuotaRotator) -> None:
        """Test a raised limit applies to the next evaluation."""
        merged = rotator.update_limits("openai", "gpt-4", {"minute": 10})

        assert merged == {"minute": 10, "month": 100}
        picks = await _picks(rotator, "openai", 4)
        assert all(p == ("key-a", "gpt-4") for p in picks)

    @pytest.mark.asyncio
    async def test_freeze_then_check(self, rotator: QuotaRotator, store: InMemoryStore) -> None:
        """Test check_and_increment on a frozen pair is a no-op rejection."""
        model = rotator.registry.find_model("openai", "gpt-4")
        await rotator.freeze_model("key-a", "gpt-4", 60)

        result = await rotator.check_and_increment("key-a", model)

        assert result.is_within_limits is False
        assert result.usage == {}
        assert await store.scan("rate:*") == []

    @pytest.mark.asyncio
    async def test_freeze_invalid_duration(self, rotator: QuotaRotator) -> None:
        """Test freeze durations must be positive numbers."""
        for duration in (0, -5, "60", None, float("inf"), float("nan")):
            with pytest.raises(ValidationError):
                await rotator.freeze_model("key-a", "gpt-4", duration)

    @pytest.mark.asyncio
    async def test_list_frozen(self, rotator: QuotaRotator) -> None:
        """Test frozen pairs can be enumerated."""
        await rotator.freeze_model("key-b", "gpt-4", 60)
        await rotator.freeze_model("key-a", "gpt-3.5", 60)

        assert await rotator.list_frozen() == [("key-a", "gpt-3.5"), ("key-b", "gpt-4")]

    @pytest.mark.asyncio
    async def test_metrics(self, rotator: QuotaRotator) -> None:
        """Test outcomes are counted per pair."""
        await _picks(rotator, "anthropic", 2)
        await rotator.get_model("anthropic", allow_borrowing=True)

        assert await rotator.get_metrics("key-x", "claude") == MetricsSnapshot(
            success=1, limit_reached=1, borrowed=1
        )
        assert await rotator.get_metrics("key-y", "claude") == MetricsSnapshot()

    @pytest.mark.asyncio
    async def test_metrics_expire_with_day(self, rotator: QuotaRotator, clock) -> None:
        """Test metric counters roll over at the day boundary."""
        await rotator.get_model("anthropic")
        clock.advance(86400)

        assert (await rotator.get_metrics("key-x", "claude")).success == 0

    @pytest.mark.asyncio
    async def test_metrics_disabled(self, sample_apis, store: InMemoryStore, clock) -> None:
        """Test disabled metrics record nothing and report None."""
        rotator = QuotaRotator(sample_apis, store, metrics_enabled=False, clock=clock)
        await _picks(rotator, "anthropic", 2)

        assert await rotator.get_metrics("key-x", "claude") is None
        assert await store.scan("metric:*") == []
        assert (await rotator.get_usage_stats("anthropic", "key-x", "claude")).metrics is None

    @pytest.mark.asyncio
    async def test_usage_stats(self, rotator: QuotaRotator) -> None:
        """Test stats report every window without consuming quota."""
        await _picks(rotator, "openai", 2)

        stats = await rotator.get_usage_stats("openai", "key-a", "gpt-4")
        again = await rotator.get_usage_stats("openai", "key-a", "gpt-4")

        assert isinstance(stats, UsageStats)
        assert stats == again
        assert set(stats.current_usage) == {"minute", "hour", "day", "month"}
        assert stats.current_usage["minute"].used == 2
        assert stats.current_usage["minute"].remaining == 0
        assert stats.current_usage["month"].remaining == 98
        assert stats.current_usage["hour"].limit is None
        assert stats.current_usage["hour"].remaining is None
        assert stats.current_usage["hour"].used == 0
        assert stats.metrics.success == 2

        data = stats.to_dict()
        assert data["metrics"]["success"] == 2
        assert data["current_usage"]["minute"]["limit"] == 2

    @pytest.mark.asyncio
    async def test_usage_stats_unknown_model(self, rotator: QuotaRotator) -> None:
        """Test stats for an unknown model raise NotFoundError."""
        with pytest.raises(NotFoundError):
            await rotator.get_usage_stats("openai", "key-a", "gpt-5")
