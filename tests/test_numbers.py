"""Tests for llkb.utils.numbers module."""

from __future__ import annotations

import pytest

from llkb.utils.numbers import round_half_up


class TestRoundHalfUp:
    """Tests for round_half_up()."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(0.125, 0.13), (0.5, 0.5), (1 / 3, 0.33), (0.0, 0.0), (9.0, 9.0)],
    )
    def test_two_places(self, value: float, expected: float):
        """Values round to two decimals with halves going up."""
        assert round_half_up(value) == expected

    def test_places(self):
        """The number of decimals is configurable."""
        assert round_half_up(0.0625, places=3) == 0.063
        assert round_half_up(12.5, places=0) == 13.0
