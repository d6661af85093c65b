"""
Streak Calculator - consecutive activity periods.

Timestamps are epoch milliseconds; 0 means "never active".

Two rules are available:
    - rolling window (default): any event less than 48 hours after the
      previous one extends the streak, so two events on the same day both
      count.
    - calendar day (opt-in): one step per calendar day; a repeat on the same
      day leaves the streak unchanged, the next day extends it.
"""

from datetime import datetime, timedelta, timezone

ONE_DAY = 24 * 60 * 60 * 1000

ROLLING_WINDOW = "rolling_window"
CALENDAR_DAY = "calendar_day"


def compute_streak(last_activity_date: int, now: int, current_streak: int) -> int:
    """Streak after an event at `now` under the rolling 48-hour window."""
    if last_activity_date == 0:
        return 1

    elapsed = now - last_activity_date
    if elapsed < 2 * ONE_DAY:
        return current_streak + 1

    return 1


def _day_number(timestamp: int, utc_offset_minutes: int) -> int:
    tz = timezone(timedelta(minutes=utc_offset_minutes))
    return datetime.fromtimestamp(timestamp / 1000, tz).date().toordinal()


def compute_calendar_streak(
    last_activity_date: int,
    now: int,
    current_streak: int,
    utc_offset_minutes: int = 0
) -> int:
    """Streak after an event at `now`, counting calendar days."""
    if last_activity_date == 0:
        return 1

    gap = _day_number(now, utc_offset_minutes) - _day_number(last_activity_date, utc_offset_minutes)
    if gap <= 0:
        # Same day (or a clock running backwards): already counted
        return max(current_streak, 1)
    if gap == 1:
        return current_streak + 1

    return 1


def next_streak(
    mode: str,
    last_activity_date: int,
    now: int,
    current_streak: int,
    utc_offset_minutes: int = 0
) -> int:
    """Dispatch on the configured streak mode."""
    if mode == CALENDAR_DAY:
        return compute_calendar_streak(last_activity_date, now, current_streak, utc_offset_minutes)
    if mode == ROLLING_WINDOW:
        return compute_streak(last_activity_date, now, current_streak)
    raise ValueError(f"Unknown streak mode: {mode}")
