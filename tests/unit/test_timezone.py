"""
Unit tests for UTC week boundaries.
"""

from datetime import datetime, timedelta

import pytest

from gorillionaire.core.timezone import UTC, end_of_week, iso_week, start_of_week, utc_now


class TestWeekBoundaries:

    @pytest.mark.unit
    def test_start_of_week_is_monday_midnight(self):
        thursday = datetime(2025, 3, 13, 17, 45, 12, tzinfo=UTC)
        assert start_of_week(thursday) == datetime(2025, 3, 10, tzinfo=UTC)

    @pytest.mark.unit
    def test_monday_is_its_own_start(self):
        monday = datetime(2025, 3, 10, 0, 0, tzinfo=UTC)
        assert start_of_week(monday) == monday

    @pytest.mark.unit
    def test_end_of_week(self):
        sunday = datetime(2025, 3, 16, 23, 0, tzinfo=UTC)
        end = end_of_week(sunday)
        assert end == datetime(2025, 3, 16, 23, 59, 59, 999000, tzinfo=UTC)
        assert end + timedelta(milliseconds=1) == datetime(2025, 3, 17, tzinfo=UTC)

    @pytest.mark.unit
    def test_utc_now_is_aware(self):
        assert utc_now().utcoffset() == timedelta(0)

    @pytest.mark.unit
    def test_iso_week(self):
        assert iso_week(datetime(2025, 3, 3, tzinfo=UTC)) == (10, 2025)

    @pytest.mark.unit
    def test_iso_week_straddling_new_year(self):
        # The week of Monday 29 Dec 2025 is week 1 of 2026
        assert iso_week(datetime(2025, 12, 29, tzinfo=UTC)) == (1, 2026)
