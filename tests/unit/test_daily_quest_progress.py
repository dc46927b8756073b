"""
Unit tests for daily quest progress rules.
"""

from datetime import date, datetime

import pytest

from gorillionaire.core.timezone import UTC
from gorillionaire.services.daily_quests import day_bounds, ladder_progress, progress_percentage


class TestLadderProgress:

    @pytest.mark.unit
    def test_trades_fill_quests_in_order(self):
        assert ladder_progress([3, 5, 10], 5) == [3, 2, 0]

    @pytest.mark.unit
    def test_surplus_is_capped(self):
        assert ladder_progress([1, 2], 50) == [1, 2]

    @pytest.mark.unit
    def test_no_trades(self):
        assert ladder_progress([1, 3], 0) == [0, 0]

    @pytest.mark.unit
    def test_no_quests(self):
        assert ladder_progress([], 4) == []


class TestPercentage:

    @pytest.mark.unit
    def test_rounded(self):
        assert progress_percentage(1, 3) == 33
        assert progress_percentage(2, 3) == 67

    @pytest.mark.unit
    def test_never_over_a_hundred(self):
        assert progress_percentage(9, 3) == 100

    @pytest.mark.unit
    def test_zero_requirement(self):
        assert progress_percentage(0, 0) == 0


class TestDayBounds:

    @pytest.mark.unit
    def test_utc_day(self):
        start, end = day_bounds(date(2025, 3, 1))
        assert start == datetime(2025, 3, 1, tzinfo=UTC)
        assert end == datetime(2025, 3, 2, tzinfo=UTC)
