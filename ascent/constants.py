"""
ascent.constants — Default Catalog Tables & Synthetic Achievement Ids
======================================================================

Single source of truth for the default reward tables.  ``config.yaml`` may
override any of them; :class:`~ascent.engine.catalog.RewardCatalog` falls
back to these values for keys it does not find.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Leveling: experience required to clear each level, ascending
# ---------------------------------------------------------------------------
DEFAULT_LEVEL_THRESHOLDS: tuple[int, ...] = (
    100, 250, 500, 1000, 2000, 4000, 8000, 16000,
)

# ---------------------------------------------------------------------------
# Base experience per achievement difficulty (fixed, not configurable)
# ---------------------------------------------------------------------------
DIFFICULTY_EXPERIENCE: dict[str, int] = {
    "beginner": 50,
    "intermediate": 100,
    "advanced": 200,
    "expert": 500,
}

# ---------------------------------------------------------------------------
# Per-category tables
# ---------------------------------------------------------------------------
DEFAULT_CATEGORY_MULTIPLIERS: dict[str, float] = {
    "financial": 1.2,
    "community": 1.5,
    "learning": 1.3,
    "impact": 1.4,
    "personal": 1.1,
}

# Days between generated challenges, per category
DEFAULT_CHALLENGE_FREQUENCY: dict[str, int] = {
    "financial": 7,
    "community": 14,
    "learning": 10,
    "impact": 30,
    "personal": 5,
}
DEFAULT_CHALLENGE_INTERVAL_DAYS = 7

# (minimum level, complexity) bands, ascending by level
DEFAULT_QUEST_COMPLEXITY: tuple[tuple[int, float], ...] = (
    (1, 1.0),
    (5, 1.5),
    (10, 2.0),
    (20, 2.5),
    (50, 3.0),
)

# ---------------------------------------------------------------------------
# Streaks
# ---------------------------------------------------------------------------
STREAK_MILESTONE_INTERVAL = 7

# ---------------------------------------------------------------------------
# Quests & challenges
# ---------------------------------------------------------------------------
QUEST_COMPLETE_PROGRESS = 100
DEFAULT_CHALLENGE_TARGET = 100


def level_achievement_id(level: int) -> str:
    """Stable id of the synthetic "reached level N" achievement."""
    return f"level_{level}"


def streak_achievement_id(days: int) -> str:
    """Stable id of the synthetic "N day streak" achievement."""
    return f"streak_{days}"


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
# Undrained events kept per process; the oldest are evicted first
EVENT_BUFFER_CAPACITY = 10_000
