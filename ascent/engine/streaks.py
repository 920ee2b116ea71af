"""
ascent.engine.streaks — Calendar-Day Streak Arithmetic
=======================================================

Pure function deciding what one "user was active now" report does to a
streak.  Days are calendar days in the configured timezone, so activity at
23:50 and again at 00:10 counts as two consecutive days.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, tzinfo

from ascent.constants import STREAK_MILESTONE_INTERVAL

__all__ = ["StreakOutcome", "advance_streak", "day_difference"]


@dataclass(frozen=True, slots=True)
class StreakOutcome:
    """Result of applying one activity report.

    ``changed`` is False when the report was already counted today; the
    caller then writes nothing.
    """

    streak: int
    previous: int
    changed: bool
    reset: bool = False
    milestone: int | None = None


def day_difference(last_active: datetime, now: datetime, tz: tzinfo = UTC) -> int:
    """Whole calendar days from *last_active* to *now* in *tz*."""
    return (now.astimezone(tz).date() - last_active.astimezone(tz).date()).days


def advance_streak(
    streak: int,
    last_active: datetime | None,
    now: datetime,
    tz: tzinfo = UTC,
) -> StreakOutcome:
    """Apply an activity report at *now* to a streak last touched at *last_active*.

    * 1 day later → streak + 1 (a positive multiple of 7 is a milestone).
    * same day    → unchanged, unless nothing was ever counted (→ 1).
    * 2+ days     → the gap breaks the streak; today is day 1.

    A *last_active* in the future (clock skew between devices) is treated
    as "same day".
    """
    if last_active is None:
        return StreakOutcome(streak=1, previous=streak, changed=True)

    diff = day_difference(last_active, now, tz)

    if diff == 1:
        new_streak = streak + 1
        milestone = new_streak if new_streak % STREAK_MILESTONE_INTERVAL == 0 else None
        return StreakOutcome(
            streak=new_streak, previous=streak, changed=True, milestone=milestone,
        )

    if diff > 1:
        return StreakOutcome(streak=1, previous=streak, changed=True, reset=True)

    if streak == 0:
        return StreakOutcome(streak=1, previous=0, changed=True)

    return StreakOutcome(streak=streak, previous=streak, changed=False)
