"""Ordering strategies for candidate keys and models."""

from __future__ import annotations

import random
from collections.abc import Sequence
from enum import Enum
from typing import TypeVar

from quota_rotator.errors import ValidationError

T = TypeVar("T")


class SelectionStrategy(str, Enum):
    """Order in which candidates of one dimension are tried."""

    ASCENDING = "ascending"  # Configured order
    RANDOM = "random"  # Fresh shuffle per call
    ROUND_ROBIN = "round-robin"  # Start one past the previous start

    @classmethod
    def parse(cls, value: str | SelectionStrategy) -> SelectionStrategy:
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"Invalid strategy: {value}") from None


class Dimension(str, Enum):
    """Which candidate list a strategy orders."""

    KEY = "key"
    MODEL = "model"


class RotationCursors:
    """
    Last-used start index per (api name, dimension).

    Process-local; two rotators (or two processes) rotate independently.
    """

    def __init__(self) -> None:
        self._indices: dict[tuple[str, Dimension], int] = {}

    def get(self, api_name: str, dimension: Dimension) -> int:
        return self._indices.get((api_name, dimension), -1)

    def advance(self, api_name: str, dimension: Dimension, length: int) -> int:
        """Move the cursor one position (wrapping) and return it."""
        index = (self.get(api_name, dimension) + 1) % length
        self._indices[(api_name, dimension)] = index
        return index

    def reset(self) -> None:
        self._indices.clear()


def order_items(
    strategy: SelectionStrategy,
    items: Sequence[T],
    cursors: RotationCursors,
    api_name: str,
    dimension: Dimension,
    rng: random.Random | None = None,
) -> list[T]:
    """
    Return a new list of items in the order the strategy tries them.

    Only ROUND_ROBIN touches the cursor table.
    """
    ordered = list(items)
    if not ordered:
        return ordered

    if strategy is SelectionStrategy.ASCENDING:
        return ordered

    if strategy is SelectionStrategy.RANDOM:
        (rng or random).shuffle(ordered)
        return ordered

    if strategy is SelectionStrategy.ROUND_ROBIN:
        start = cursors.advance(api_name, dimension, len(ordered))
        return ordered[start:] + ordered[:start]

    raise ValidationError(f"Invalid strategy: {strategy}")
