"""
tests/test_streaks.py — Calendar-Day Streak Arithmetic
=======================================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

from ascent.engine.streaks import advance_streak, day_difference

DAY_ONE = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


class TestDayDifference:
    def test_calendar_days_not_24h_windows(self):
        late = datetime(2026, 3, 2, 23, 50, tzinfo=UTC)
        early = datetime(2026, 3, 3, 0, 10, tzinfo=UTC)
        assert day_difference(late, early) == 1

    def test_timezone_moves_the_boundary(self):
        # 23:30 and 01:30 UTC fall on the same day in New York
        a = datetime(2026, 3, 2, 23, 30, tzinfo=UTC)
        b = datetime(2026, 3, 3, 1, 30, tzinfo=UTC)
        assert day_difference(a, b, UTC) == 1
        assert day_difference(a, b, ZoneInfo("America/New_York")) == 0


class TestAdvanceStreak:
    def test_next_day_increments(self):
        outcome = advance_streak(1, DAY_ONE, DAY_ONE + timedelta(days=1))
        assert outcome.changed
        assert outcome.streak == 2
        assert outcome.milestone is None

    def test_same_day_is_unchanged(self):
        outcome = advance_streak(3, DAY_ONE, DAY_ONE + timedelta(hours=5))
        assert not outcome.changed
        assert outcome.streak == 3

    def test_gap_resets_to_one(self):
        outcome = advance_streak(5, DAY_ONE, DAY_ONE + timedelta(days=3))
        assert outcome.changed
        assert outcome.reset
        assert outcome.streak == 1
        assert outcome.previous == 5

    def test_first_activity_starts_at_one(self):
        assert advance_streak(0, None, DAY_ONE).streak == 1
        assert advance_streak(0, DAY_ONE, DAY_ONE).streak == 1

    def test_multiples_of_seven_are_milestones(self):
        assert advance_streak(6, DAY_ONE, DAY_ONE + timedelta(days=1)).milestone == 7
        assert advance_streak(13, DAY_ONE, DAY_ONE + timedelta(days=1)).milestone == 14
        assert advance_streak(7, DAY_ONE, DAY_ONE + timedelta(days=1)).milestone is None

    def test_future_last_active_counts_as_same_day(self):
        outcome = advance_streak(4, DAY_ONE + timedelta(days=2), DAY_ONE)
        assert not outcome.changed
        assert outcome.streak == 4
