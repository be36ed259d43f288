"""Tests for candidate ordering strategies."""

import random
from collections import Counter

import pytest

from quota_rotator.errors import ValidationError
from quota_rotator.quota.strategy import (
    Dimension,
    RotationCursors,
    SelectionStrategy,
    order_items,
)


class TestSelectionStrategy:
    """Tests for SelectionStrategy enum."""

    def test_values(self) -> None:
        """Test enum values match configuration names."""
        assert SelectionStrategy.ASCENDING.value == "ascending"
        assert SelectionStrategy.RANDOM.value == "random"
        assert SelectionStrategy.ROUND_ROBIN.value == "round-robin"

    def test_parse(self) -> None:
        """Test parsing names and passing through members."""
        assert SelectionStrategy.parse("round-robin") is SelectionStrategy.ROUND_ROBIN
        assert SelectionStrategy.parse(SelectionStrategy.RANDOM) is SelectionStrategy.RANDOM

    @pytest.mark.parametrize("name", ["", "descending", "ROUND_ROBIN", "roundrobin"])
    def test_parse_invalid(self, name: str) -> None:
        """Test unknown names raise ValidationError."""
        with pytest.raises(ValidationError):
            SelectionStrategy.parse(name)


class TestRotationCursors:
    """Tests for RotationCursors."""

    def test_starts_before_first_item(self) -> None:
        """Test an unused cursor advances to index 0."""
        cursors = RotationCursors()
        assert cursors.get("api", Dimension.KEY) == -1
        assert cursors.advance("api", Dimension.KEY, 3) == 0

    def test_wraps(self) -> None:
        """Test the cursor wraps at the list length."""
        cursors = RotationCursors()
        positions = [cursors.advance("api", Dimension.KEY, 3) for _ in range(5)]
        assert positions == [0, 1, 2, 0, 1]

    def test_independent_per_api_and_dimension(self) -> None:
        """Test cursors are keyed by api name and dimension."""
        cursors = RotationCursors()
        cursors.advance("api", Dimension.KEY, 3)
        cursors.advance("api", Dimension.KEY, 3)

        assert cursors.get("api", Dimension.MODEL) == -1
        assert cursors.get("other", Dimension.KEY) == -1
        assert cursors.get("api", Dimension.KEY) == 1

    def test_reset(self) -> None:
        """Test reset forgets all positions."""
        cursors = RotationCursors()
        cursors.advance("api", Dimension.KEY, 3)
        cursors.reset()
        assert cursors.get("api", Dimension.KEY) == -1


class TestOrderItems:
    """Tests for order_items."""

    ITEMS = ["a", "b", "c", "d"]

    def test_ascending_returns_copy(self) -> None:
        """Test ascending keeps order and does not alias the input."""
        cursors = RotationCursors()
        ordered = order_items(SelectionStrategy.ASCENDING, self.ITEMS, cursors, "api", Dimension.KEY)

        assert ordered == self.ITEMS
        assert ordered is not self.ITEMS
        assert cursors.get("api", Dimension.KEY) == -1

    def test_random_is_permutation(self) -> None:
        """Test random returns the same items and leaves the cursor alone."""
        cursors = RotationCursors()
        items = list(self.ITEMS)
        ordered = order_items(
            SelectionStrategy.RANDOM, items, cursors, "api", Dimension.KEY, random.Random(1)
        )

        assert sorted(ordered) == self.ITEMS
        assert items == self.ITEMS
        assert cursors.get("api", Dimension.KEY) == -1

    def test_random_is_unbiased(self) -> None:
        """Test every item leads a shuffle roughly equally often."""
        rng = random.Random(1234)
        cursors = RotationCursors()
        firsts = Counter(
            order_items(SelectionStrategy.RANDOM, self.ITEMS, cursors, "api", Dimension.KEY, rng)[0]
            for _ in range(4000)
        )

        for item in self.ITEMS:
            assert 800 < firsts[item] < 1200

    def test_round_robin_rotation(self) -> None:
        """Test each call starts one past the previous start."""
        cursors = RotationCursors()
        orders = [
            order_items(SelectionStrategy.ROUND_ROBIN, ["a", "b", "c"], cursors, "api", Dimension.KEY)
            for _ in range(4)
        ]

        assert orders == [
            ["a", "b", "c"],
            ["b", "c", "a"],
            ["c", "a", "b"],
            ["a", "b", "c"],
        ]

    def test_round_robin_visits_each_position_once(self) -> None:
        """Test N calls start at each of N positions exactly once before repeating."""
        cursors = RotationCursors()
        cursors.advance("api", Dimension.MODEL, len(self.ITEMS))  # last used index 0

        starts = [
            order_items(SelectionStrategy.ROUND_ROBIN, self.ITEMS, cursors, "api", Dimension.MODEL)[0]
            for _ in range(len(self.ITEMS))
        ]

        assert starts == ["b", "c", "d", "a"]

    def test_empty_items(self) -> None:
        """Test empty candidate lists are returned untouched."""
        cursors = RotationCursors()
        for strategy in SelectionStrategy:
            assert order_items(strategy, [], cursors, "api", Dimension.KEY) == []
        assert cursors.get("api", Dimension.KEY) == -1
