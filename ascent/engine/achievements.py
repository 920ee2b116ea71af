"""
ascent.engine.achievements — Achievements & Tagged-Union Rewards
=================================================================

An :class:`Achievement` is a one-time, permanently unlockable milestone.
Rewards are a tagged union keyed by ``type`` so every consumer handles each
variant explicitly instead of inspecting an untyped payload at runtime.

Pure data — no database I/O.
"""

from __future__ import annotations

import enum
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, ClassVar

from ascent.engine.events import parse_timestamp, to_iso

__all__ = [
    "Achievement",
    "BadgeReward",
    "Category",
    "Difficulty",
    "FeatureReward",
    "PerkReward",
    "PointsReward",
    "Requirement",
    "Reward",
    "RewardType",
    "TitleReward",
    "reward_from_dict",
    "rewards_from_list",
]


class Category(enum.StrEnum):
    FINANCIAL = "financial"
    COMMUNITY = "community"
    LEARNING = "learning"
    IMPACT = "impact"
    PERSONAL = "personal"


class Difficulty(enum.StrEnum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"


class RewardType(enum.StrEnum):
    POINTS = "points"
    BADGE = "badge"
    TITLE = "title"
    FEATURE = "feature"
    REWARD = "reward"


# ---------------------------------------------------------------------------
# Requirement: one measurable condition toward an achievement
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Requirement:
    metric: str
    target: float
    current: float = 0

    @property
    def fraction(self) -> float:
        if self.target <= 0:
            return 1.0
        return max(0.0, min(1.0, self.current / self.target))

    def to_dict(self) -> dict[str, Any]:
        return {"metric": self.metric, "target": self.target, "current": self.current}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Requirement:
        return cls(
            metric=str(raw.get("metric", "")),
            target=raw.get("target", 0),
            current=raw.get("current", 0),
        )


# ---------------------------------------------------------------------------
# Reward variants
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class PointsReward:
    """Experience granted on completion."""

    type: ClassVar[RewardType] = RewardType.POINTS
    points: int
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "points": self.points, "description": self.description}


@dataclass(frozen=True, slots=True)
class BadgeReward:
    """An achievement unlocked on completion."""

    type: ClassVar[RewardType] = RewardType.BADGE
    achievement: Achievement
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "achievement": self.achievement.to_dict(),
            "description": self.description,
        }


@dataclass(frozen=True, slots=True)
class TitleReward:
    type: ClassVar[RewardType] = RewardType.TITLE
    title: str
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "title": self.title, "description": self.description}


@dataclass(frozen=True, slots=True)
class FeatureReward:
    """A dashboard feature switched on for the user."""

    type: ClassVar[RewardType] = RewardType.FEATURE
    feature: str
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "feature": self.feature, "description": self.description}


@dataclass(frozen=True, slots=True)
class PerkReward:
    """A tangible perk (discount, voucher, ...), stored under type ``reward``."""

    type: ClassVar[RewardType] = RewardType.REWARD
    name: str
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "name": self.name, "description": self.description}


Reward = PointsReward | BadgeReward | TitleReward | FeatureReward | PerkReward


def _points(raw: Mapping[str, Any]) -> Reward:
    return PointsReward(points=int(raw.get("points", raw.get("value", 0))),
                        description=raw.get("description", ""))


def _badge(raw: Mapping[str, Any]) -> Reward:
    achievement = raw.get("achievement", raw.get("value"))
    if not isinstance(achievement, Mapping):
        raise ValueError("badge reward requires an 'achievement' mapping")
    return BadgeReward(achievement=Achievement.from_dict(achievement),
                       description=raw.get("description", ""))


def _title(raw: Mapping[str, Any]) -> Reward:
    return TitleReward(title=str(raw.get("title", raw.get("value", ""))),
                       description=raw.get("description", ""))


def _feature(raw: Mapping[str, Any]) -> Reward:
    return FeatureReward(feature=str(raw.get("feature", raw.get("value", ""))),
                         description=raw.get("description", ""))


def _perk(raw: Mapping[str, Any]) -> Reward:
    return PerkReward(name=str(raw.get("name", raw.get("value", ""))),
                      description=raw.get("description", ""))


# ---------------------------------------------------------------------------
# Parser registry: one builder per RewardType
# ---------------------------------------------------------------------------
REWARD_PARSERS: dict[str, Callable[[Mapping[str, Any]], Reward]] = {
    RewardType.POINTS: _points,
    RewardType.BADGE: _badge,
    RewardType.TITLE: _title,
    RewardType.FEATURE: _feature,
    RewardType.REWARD: _perk,
}


def reward_from_dict(raw: Mapping[str, Any]) -> Reward:
    """Build the reward variant named by ``raw["type"]``.

    Raises
    ------
    ValueError
        If the type is missing or unknown.
    """
    parser = REWARD_PARSERS.get(raw.get("type", ""))
    if parser is None:
        raise ValueError(f"Unknown reward type: {raw.get('type')!r}")
    return parser(raw)


def rewards_from_list(raw: list[Mapping[str, Any]] | None) -> tuple[Reward, ...]:
    return tuple(reward_from_dict(r) for r in raw or ())


# ---------------------------------------------------------------------------
# Achievement
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Achievement:
    """A permanently unlockable milestone.

    Once ``unlocked`` is True it is never unset; :meth:`unlock` returns a
    copy and leaves an already-unlocked achievement untouched.
    """

    id: str
    name: str
    category: Category
    difficulty: Difficulty
    description: str = ""
    requirements: tuple[Requirement, ...] = ()
    rewards: tuple[Reward, ...] = ()
    unlocked: bool = False
    unlocked_at: datetime | None = None

    @property
    def progress(self) -> float:
        """Percentage of requirements met, 0–100 (100 once unlocked)."""
        if self.unlocked:
            return 100.0
        if not self.requirements:
            return 0.0
        total = sum(r.fraction for r in self.requirements)
        return round(100.0 * total / len(self.requirements), 2)

    def unlock(self, at: datetime) -> Achievement:
        if self.unlocked and self.unlocked_at is not None:
            return self
        return replace(self, unlocked=True, unlocked_at=self.unlocked_at or at)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category.value,
            "difficulty": self.difficulty.value,
            "requirements": [r.to_dict() for r in self.requirements],
            "rewards": [r.to_dict() for r in self.rewards],
            "progress": self.progress,
            "unlocked": self.unlocked,
            "unlocked_at": to_iso(self.unlocked_at),
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Achievement:
        return cls(
            id=str(raw["id"]),
            name=raw.get("name", str(raw["id"])),
            description=raw.get("description", ""),
            category=Category(raw.get("category", Category.PERSONAL)),
            difficulty=Difficulty(raw.get("difficulty", Difficulty.BEGINNER)),
            requirements=tuple(Requirement.from_dict(r) for r in raw.get("requirements", ())),
            rewards=rewards_from_list(raw.get("rewards")),
            unlocked=bool(raw.get("unlocked", False)),
            unlocked_at=parse_timestamp(raw.get("unlocked_at")),
        )
