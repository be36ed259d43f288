"""Pytest configuration and fixtures."""

import random

import pytest

from quota_rotator.quota.registry import ApiConfig, ModelConfig
from quota_rotator.quota.rotator import QuotaRotator
from quota_rotator.store.memory import InMemoryStore

# 30 seconds into a minute; 1_728_000_000 is a multiple of 86400
START_TIME = 1_728_000_030


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """Clock shared by the store and the keyspace."""
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryStore:
    """In-memory store driven by the fake clock."""
    return InMemoryStore(clock=clock)


@pytest.fixture
def sample_apis() -> list[ApiConfig]:
    """Two APIs with a couple of keys and models each."""
    return [
        ApiConfig(
            name="openai",
            keys=["key-a", "key-b"],
            models=[
                ModelConfig(name="gpt-4", limits={"minute": 2, "month": 100}),
                ModelConfig(name="gpt-3.5", limits={"minute": 5}),
            ],
        ),
        ApiConfig(
            name="anthropic",
            keys=["key-x"],
            models=[ModelConfig(name="claude", limits={"minute": 1, "day": 10})],
        ),
    ]


@pytest.fixture
def rotator(sample_apis: list[ApiConfig], store: InMemoryStore, clock: FakeClock) -> QuotaRotator:
    """Rotator over the sample APIs with deterministic time and randomness."""
    return QuotaRotator(sample_apis, store, clock=clock, rng=random.Random(42))
