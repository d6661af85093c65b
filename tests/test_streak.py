"""Tests for the streak calculator."""

import pytest

from conftest import ONE_HOUR, START
from streak import (
    CALENDAR_DAY, ONE_DAY, ROLLING_WINDOW,
    compute_calendar_streak, compute_streak, next_streak
)


class TestRollingWindow:
    def test_first_activity_starts_at_one(self):
        assert compute_streak(0, START, 0) == 1
        assert compute_streak(0, START, 12) == 1

    @pytest.mark.parametrize("elapsed", [1, ONE_HOUR, ONE_DAY, 2 * ONE_DAY - 1])
    def test_within_two_days_continues(self, elapsed):
        assert compute_streak(START, START + elapsed, 4) == 5

    @pytest.mark.parametrize("elapsed", [2 * ONE_DAY, 2 * ONE_DAY + 1, 30 * ONE_DAY])
    def test_two_days_or_more_resets(self, elapsed):
        assert compute_streak(START, START + elapsed, 4) == 1

    def test_same_day_events_each_count(self):
        # Rolling window semantics: a second quiz minutes later still extends
        first = compute_streak(0, START, 0)
        second = compute_streak(START, START + 10 * 60 * 1000, first)
        assert second == 2


class TestCalendarDay:
    def test_first_activity_starts_at_one(self):
        assert compute_calendar_streak(0, START, 0) == 1

    def test_same_day_keeps_streak(self):
        assert compute_calendar_streak(START, START + 2 * ONE_HOUR, 3) == 3

    def test_next_day_extends(self):
        assert compute_calendar_streak(START, START + ONE_DAY, 3) == 4

    def test_late_next_day_still_extends(self):
        # 09:00 -> 23:30 the following day is 38.5h apart but one calendar day
        assert compute_calendar_streak(START, START + ONE_DAY + 14 * ONE_HOUR + 30 * 60 * 1000, 3) == 4

    def test_skipped_day_resets(self):
        assert compute_calendar_streak(START, START + 2 * ONE_DAY, 3) == 1

    def test_utc_offset_moves_day_boundary(self):
        # 23:00 UTC and 01:00 UTC next day: different UTC days, same day at UTC-3
        late = START + 14 * ONE_HOUR
        after_midnight = late + 2 * ONE_HOUR
        assert compute_calendar_streak(late, after_midnight, 2) == 3
        assert compute_calendar_streak(late, after_midnight, 2, utc_offset_minutes=-180) == 2


class TestDispatch:
    def test_rolling_is_default_rule(self):
        assert next_streak(ROLLING_WINDOW, START, START + ONE_HOUR, 1) == 2

    def test_calendar_mode(self):
        assert next_streak(CALENDAR_DAY, START, START + ONE_HOUR, 1) == 1

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            next_streak("weekly", START, START, 1)
