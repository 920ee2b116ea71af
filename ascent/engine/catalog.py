"""
ascent.engine.catalog — Reward Catalog
=======================================

Static lookup tables that drive the progression arithmetic:

* level thresholds (experience needed to clear each level),
* per-category experience multipliers,
* challenge cadence per category,
* quest complexity per level band.

Tables are validated once when the catalog is built.  A malformed table is
a configuration error raised at load time, never at request time.

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from ascent.constants import (
    DEFAULT_CATEGORY_MULTIPLIERS,
    DEFAULT_CHALLENGE_FREQUENCY,
    DEFAULT_CHALLENGE_INTERVAL_DAYS,
    DEFAULT_LEVEL_THRESHOLDS,
    DEFAULT_QUEST_COMPLEXITY,
    DIFFICULTY_EXPERIENCE,
    level_achievement_id,
    streak_achievement_id,
)
from ascent.engine.achievements import (
    Achievement,
    Category,
    Difficulty,
    PointsReward,
    Reward,
)

logger = logging.getLogger(__name__)

__all__ = [
    "CatalogError",
    "RewardCatalog",
    "level_for_experience",
    "round_half_up",
]


class CatalogError(ValueError):
    """A reward table is malformed (e.g. non-increasing thresholds)."""


# ---------------------------------------------------------------------------
# Leveling formula
# ---------------------------------------------------------------------------
def level_for_experience(experience: int, thresholds: Sequence[int]) -> int:
    """Level reached with *experience* against ascending *thresholds*.

    Level is 1 plus the number of thresholds cleared, walking the list in
    order and stopping at the first one not reached.  Experience exactly
    equal to a threshold clears it.
    """
    level = 1
    for threshold in thresholds:
        if experience < threshold:
            break
        level += 1
    return level


def round_half_up(value: float) -> int:
    """Nearest integer, halves rounded up (``62.5`` → ``63``)."""
    return int(math.floor(value + 0.5))


def _validate_thresholds(thresholds: Sequence[int]) -> None:
    previous = 0
    for i, threshold in enumerate(thresholds):
        if not isinstance(threshold, int) or isinstance(threshold, bool):
            raise CatalogError(f"level_thresholds[{i}] must be an integer, got {threshold!r}")
        if threshold <= previous:
            raise CatalogError(
                f"level_thresholds must be strictly increasing positive integers; "
                f"level_thresholds[{i}]={threshold} does not exceed {previous}"
            )
        previous = threshold


def _validate_positive(table: Mapping[str, float], name: str, *, integral: bool = False) -> None:
    for key, value in table.items():
        if integral and (not isinstance(value, int) or isinstance(value, bool)):
            raise CatalogError(f"{name}[{key!r}] must be an integer, got {value!r}")
        if not isinstance(value, (int, float)) or value <= 0:
            raise CatalogError(f"{name}[{key!r}] must be positive, got {value!r}")


def _validate_bands(bands: Sequence[tuple[int, float]]) -> None:
    previous_level = 0
    for min_level, complexity in bands:
        if min_level <= previous_level:
            raise CatalogError(
                f"quest_complexity bands must be ascending by level; "
                f"level {min_level} follows {previous_level}"
            )
        if complexity <= 0:
            raise CatalogError(f"quest_complexity for level {min_level} must be positive")
        previous_level = min_level


# ---------------------------------------------------------------------------
# RewardCatalog
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RewardCatalog:
    """Immutable reward tables.

    Usage::

        catalog = RewardCatalog()                       # built-in defaults
        catalog = RewardCatalog.from_mapping(raw_yaml)  # from config.yaml

        catalog.level_for_experience(260)               # → 3
        catalog.achievement_experience(achievement)     # base × multiplier
    """

    level_thresholds: tuple[int, ...] = DEFAULT_LEVEL_THRESHOLDS
    category_multipliers: Mapping[str, float] = field(
        default_factory=lambda: dict(DEFAULT_CATEGORY_MULTIPLIERS)
    )
    challenge_frequency: Mapping[str, int] = field(
        default_factory=lambda: dict(DEFAULT_CHALLENGE_FREQUENCY)
    )
    quest_complexity: tuple[tuple[int, float], ...] = DEFAULT_QUEST_COMPLEXITY

    def __post_init__(self) -> None:
        object.__setattr__(self, "level_thresholds", tuple(self.level_thresholds))
        object.__setattr__(
            self, "quest_complexity",
            tuple((int(lvl), float(c)) for lvl, c in self.quest_complexity),
        )
        _validate_thresholds(self.level_thresholds)
        _validate_positive(self.category_multipliers, "experience_multipliers")
        _validate_positive(self.challenge_frequency, "challenge_frequency", integral=True)
        _validate_bands(self.quest_complexity)
        object.__setattr__(
            self, "category_multipliers", MappingProxyType(dict(self.category_multipliers))
        )
        object.__setattr__(
            self, "challenge_frequency", MappingProxyType(dict(self.challenge_frequency))
        )

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> RewardCatalog:
        """Build from the ``catalog:`` section of ``config.yaml``.

        Multipliers and cadences accept either a ``{category: value}``
        mapping or the list form ``[{category, multiplier|daysInterval}]``.
        Keys left out keep their defaults.

        Raises
        ------
        CatalogError
            If any table is malformed.
        """
        raw = raw or {}
        try:
            thresholds = tuple(raw.get("level_thresholds", DEFAULT_LEVEL_THRESHOLDS))
            multipliers = {
                **DEFAULT_CATEGORY_MULTIPLIERS,
                **_as_table(raw.get("experience_multipliers"), "multiplier"),
            }
            frequency = {
                **DEFAULT_CHALLENGE_FREQUENCY,
                **_as_table(raw.get("challenge_frequency"), "days_interval"),
            }
            bands = raw.get("quest_complexity")
            complexity = (
                tuple((int(b["level"]), float(b["complexity"])) for b in bands)
                if bands is not None else DEFAULT_QUEST_COMPLEXITY
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise CatalogError(f"Malformed catalog section: {exc}") from exc

        catalog = cls(
            level_thresholds=thresholds,
            category_multipliers=multipliers,
            challenge_frequency=frequency,
            quest_complexity=complexity,
        )
        logger.info(
            "Reward catalog loaded: %d level thresholds, %d multipliers, "
            "%d cadences, %d complexity bands",
            len(catalog.level_thresholds),
            len(catalog.category_multipliers),
            len(catalog.challenge_frequency),
            len(catalog.quest_complexity),
        )
        return catalog

    # -------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------
    def experience_for_difficulty(self, difficulty: Difficulty | str) -> int:
        return DIFFICULTY_EXPERIENCE.get(str(difficulty), DIFFICULTY_EXPERIENCE["intermediate"])

    def multiplier_for_category(self, category: Category | str) -> float:
        return self.category_multipliers.get(str(category), 1.0)

    def level_for_experience(self, experience: int) -> int:
        return level_for_experience(experience, self.level_thresholds)

    def challenge_interval_days(self, category: Category | str) -> int:
        return self.challenge_frequency.get(str(category), DEFAULT_CHALLENGE_INTERVAL_DAYS)

    def quest_complexity_for_level(self, level: int) -> float:
        """Complexity of the highest band whose minimum level is ≤ *level*."""
        complexity = 1.0
        for min_level, band_complexity in self.quest_complexity:
            if level < min_level:
                break
            complexity = band_complexity
        return complexity

    # -------------------------------------------------------------------
    # Derived rewards
    # -------------------------------------------------------------------
    def achievement_experience(self, achievement: Achievement) -> int:
        """Experience granted when *achievement* is first unlocked."""
        base = self.experience_for_difficulty(achievement.difficulty)
        return round_half_up(base * self.multiplier_for_category(achievement.category))

    def completion_experience(self, rewards: Iterable[Reward], complexity: float = 1.0) -> int:
        """Sum of point rewards in a completion bundle, scaled by *complexity*."""
        points = sum(r.points for r in rewards if isinstance(r, PointsReward))
        return round_half_up(points * complexity)

    @staticmethod
    def level_achievement(level: int) -> Achievement:
        return Achievement(
            id=level_achievement_id(level),
            name=f"Level {level}",
            description=f"Reached level {level}",
            category=Category.PERSONAL,
            difficulty=Difficulty.BEGINNER,
        )

    @staticmethod
    def streak_achievement(days: int) -> Achievement:
        return Achievement(
            id=streak_achievement_id(days),
            name=f"{days} Day Streak",
            description=f"Maintained a {days} day activity streak",
            category=Category.PERSONAL,
            difficulty=Difficulty.INTERMEDIATE,
        )


def _as_table(raw: Any, value_key: str) -> dict[str, float]:
    """Normalize ``{k: v}`` or ``[{category: k, <value_key>: v}]`` into a dict."""
    if raw is None:
        return {}
    if isinstance(raw, Mapping):
        return dict(raw)
    camel = "daysInterval" if value_key == "days_interval" else value_key
    return {
        str(row["category"]): row[value_key] if value_key in row else row[camel]
        for row in raw
    }
