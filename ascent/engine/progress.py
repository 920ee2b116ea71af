"""
ascent.engine.progress — Challenge, Quest & UserProgress Documents
===================================================================

Typed views over the per-user progression document.  The store keeps plain
JSON-compatible dicts; these dataclasses are what the engine and the
reducer reason about.  Every type round-trips through ``to_dict`` /
``from_dict`` so the persisted layout is defined in one place.

Pure data — no database I/O.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from ascent.constants import DEFAULT_CHALLENGE_TARGET, QUEST_COMPLETE_PROGRESS
from ascent.engine.achievements import Achievement, Category, Reward, rewards_from_list
from ascent.engine.events import parse_timestamp, to_iso

__all__ = [
    "Challenge",
    "LeaderboardEntry",
    "Objective",
    "Participant",
    "ProgressField",
    "Quest",
    "Stat",
    "StatPoint",
    "Status",
    "Task",
    "UserProgress",
]


class Status(enum.StrEnum):
    """Lifecycle of a challenge participation or a quest.

    ``completed`` and ``failed`` are terminal.
    """

    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not Status.ACTIVE


class ProgressField(enum.StrEnum):
    """Top-level keys of the persisted progression document."""

    USER_ID = "user_id"
    LEVEL = "level"
    EXPERIENCE = "experience"
    ACHIEVEMENTS = "achievements"
    ACTIVE_CHALLENGES = "active_challenges"
    COMPLETED_CHALLENGES = "completed_challenges"
    ACTIVE_QUESTS = "active_quests"
    COMPLETED_QUESTS = "completed_quests"
    STATS = "stats"
    STREAK = "streak"
    LAST_ACTIVE = "last_active"


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Task:
    id: str
    description: str
    points: int = 0
    completed: bool = False
    deadline: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "points": self.points,
            "completed": self.completed,
            "deadline": to_iso(self.deadline),
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Task:
        return cls(
            id=str(raw["id"]),
            description=raw.get("description", ""),
            points=int(raw.get("points", 0)),
            completed=bool(raw.get("completed", False)),
            deadline=parse_timestamp(raw.get("deadline")),
        )


@dataclass(frozen=True, slots=True)
class Participant:
    id: str
    progress: float = 0
    status: Status = Status.ACTIVE

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "progress": self.progress, "status": self.status.value}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Participant:
        return cls(
            id=str(raw["id"]),
            progress=raw.get("progress", 0),
            status=Status(raw.get("status", Status.ACTIVE)),
        )


@dataclass(frozen=True, slots=True)
class LeaderboardEntry:
    id: str
    score: float
    rank: int

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "score": self.score, "rank": self.rank}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> LeaderboardEntry:
        return cls(id=str(raw["id"]), score=raw.get("score", 0), rank=int(raw.get("rank", 0)))


@dataclass(frozen=True, slots=True)
class Challenge:
    """A time-boxed objective shared by several participants.

    Each copy stored in a user's document tracks that user's own
    :class:`Participant` entry; ``target`` is the progress value that
    completes it.
    """

    id: str
    name: str
    category: Category
    starts_at: datetime
    ends_at: datetime
    target: float = DEFAULT_CHALLENGE_TARGET
    description: str = ""
    tasks: tuple[Task, ...] = ()
    rewards: tuple[Reward, ...] = ()
    participants: tuple[Participant, ...] = ()
    leaderboard: tuple[LeaderboardEntry, ...] | None = None

    def participant(self, user_id: str) -> Participant | None:
        for p in self.participants:
            if p.id == user_id:
                return p
        return None

    def status_for(self, user_id: str) -> Status:
        p = self.participant(user_id)
        return p.status if p is not None else Status.ACTIVE

    def progress_for(self, user_id: str) -> float:
        p = self.participant(user_id)
        return p.progress if p is not None else 0

    def is_overdue(self, now: datetime) -> bool:
        return now > self.ends_at

    def with_participant(self, user_id: str, progress: float, status: Status) -> Challenge:
        """Return a copy with *user_id*'s entry replaced (or added)."""
        entry = Participant(id=user_id, progress=progress, status=status)
        others = tuple(p for p in self.participants if p.id != user_id)
        return replace(self, participants=(*others, entry))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category.value,
            "starts_at": to_iso(self.starts_at),
            "ends_at": to_iso(self.ends_at),
            "target": self.target,
            "tasks": [t.to_dict() for t in self.tasks],
            "rewards": [r.to_dict() for r in self.rewards],
            "participants": [p.to_dict() for p in self.participants],
            "leaderboard": (
                [e.to_dict() for e in self.leaderboard] if self.leaderboard is not None else None
            ),
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Challenge:
        leaderboard = raw.get("leaderboard")
        return cls(
            id=str(raw["id"]),
            name=raw.get("name", str(raw["id"])),
            description=raw.get("description", ""),
            category=Category(raw.get("category", Category.FINANCIAL)),
            starts_at=parse_timestamp(raw["starts_at"]),
            ends_at=parse_timestamp(raw["ends_at"]),
            target=raw.get("target", DEFAULT_CHALLENGE_TARGET),
            tasks=tuple(Task.from_dict(t) for t in raw.get("tasks", ())),
            rewards=rewards_from_list(raw.get("rewards")),
            participants=tuple(Participant.from_dict(p) for p in raw.get("participants", ())),
            leaderboard=(
                tuple(LeaderboardEntry.from_dict(e) for e in leaderboard)
                if leaderboard is not None else None
            ),
        )


# ---------------------------------------------------------------------------
# Quests
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Objective:
    id: str
    description: str = ""
    completed: bool = False
    impact: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "completed": self.completed,
            "impact": list(self.impact),
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Objective:
        return cls(
            id=str(raw["id"]),
            description=raw.get("description", ""),
            completed=bool(raw.get("completed", False)),
            impact=tuple(raw.get("impact", ())),
        )


@dataclass(frozen=True, slots=True)
class Quest:
    """A single-user, ordered multi-objective progression.

    ``storyline`` is narrative metadata carried verbatim; nothing reads it.
    ``complexity`` scales point rewards and is stamped when the quest starts.
    """

    id: str
    name: str
    description: str = ""
    storyline: Mapping[str, Any] = field(default_factory=dict)
    objectives: tuple[Objective, ...] = ()
    rewards: tuple[Reward, ...] = ()
    progress: float = 0
    status: Status = Status.ACTIVE
    complexity: float = 1.0

    def with_progress(self, progress: float) -> Quest:
        """Clamp *progress* to 0–100; reaching 100 completes the quest."""
        progress = max(0, min(QUEST_COMPLETE_PROGRESS, progress))
        if progress >= QUEST_COMPLETE_PROGRESS:
            return replace(self, progress=QUEST_COMPLETE_PROGRESS, status=Status.COMPLETED)
        return replace(self, progress=progress)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "storyline": dict(self.storyline),
            "objectives": [o.to_dict() for o in self.objectives],
            "rewards": [r.to_dict() for r in self.rewards],
            "progress": self.progress,
            "status": self.status.value,
            "complexity": self.complexity,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Quest:
        return cls(
            id=str(raw["id"]),
            name=raw.get("name", str(raw["id"])),
            description=raw.get("description", ""),
            storyline=dict(raw.get("storyline") or {}),
            objectives=tuple(Objective.from_dict(o) for o in raw.get("objectives", ())),
            rewards=rewards_from_list(raw.get("rewards")),
            progress=raw.get("progress", 0),
            status=Status(raw.get("status", Status.ACTIVE)),
            complexity=float(raw.get("complexity", 1.0)),
        )


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class StatPoint:
    date: str
    value: float

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.date, "value": self.value}


@dataclass(frozen=True, slots=True)
class Stat:
    category: str
    value: float
    history: tuple[StatPoint, ...] = ()

    def record(self, value: float, at: datetime) -> Stat:
        return Stat(
            category=self.category,
            value=value,
            history=(*self.history, StatPoint(date=to_iso(at), value=value)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "value": self.value,
            "history": [p.to_dict() for p in self.history],
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Stat:
        return cls(
            category=str(raw["category"]),
            value=raw.get("value", 0),
            history=tuple(
                StatPoint(date=p["date"], value=p.get("value", 0))
                for p in raw.get("history", ())
            ),
        )


# ---------------------------------------------------------------------------
# UserProgress: one document per user
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class UserProgress:
    """Everything the engine tracks for one user.

    ``level`` always equals the catalog level of ``experience``; only the
    engine and the reducer change it, and only by re-deriving it.
    """

    user_id: str
    level: int = 1
    experience: int = 0
    achievements: tuple[Achievement, ...] = ()
    active_challenges: tuple[Challenge, ...] = ()
    completed_challenges: tuple[Challenge, ...] = ()
    active_quests: tuple[Quest, ...] = ()
    completed_quests: tuple[Quest, ...] = ()
    stats: tuple[Stat, ...] = ()
    streak: int = 0
    last_active: datetime | None = None

    @classmethod
    def new(cls, user_id: str, now: datetime) -> UserProgress:
        return cls(user_id=user_id, last_active=now)

    # -------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------
    @property
    def achievement_ids(self) -> frozenset[str]:
        return frozenset(a.id for a in self.achievements)

    def has_achievement(self, achievement_id: str) -> bool:
        return any(a.id == achievement_id for a in self.achievements)

    def active_challenge(self, challenge_id: str) -> Challenge | None:
        return next((c for c in self.active_challenges if c.id == challenge_id), None)

    def completed_challenge(self, challenge_id: str) -> Challenge | None:
        return next((c for c in self.completed_challenges if c.id == challenge_id), None)

    def knows_challenge(self, challenge_id: str) -> bool:
        return any(
            c.id == challenge_id
            for c in (*self.active_challenges, *self.completed_challenges)
        )

    def active_quest(self, quest_id: str) -> Quest | None:
        return next((q for q in self.active_quests if q.id == quest_id), None)

    def completed_quest(self, quest_id: str) -> Quest | None:
        return next((q for q in self.completed_quests if q.id == quest_id), None)

    def knows_quest(self, quest_id: str) -> bool:
        return any(q.id == quest_id for q in (*self.active_quests, *self.completed_quests))

    def stat(self, category: str) -> Stat | None:
        return next((s for s in self.stats if s.category == category), None)

    # -------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------
    def to_document(self) -> dict[str, Any]:
        """Persisted layout; ``last_active`` stays a datetime for the store."""
        doc = {
            ProgressField.USER_ID: self.user_id,
            ProgressField.LEVEL: self.level,
            ProgressField.EXPERIENCE: self.experience,
            ProgressField.ACHIEVEMENTS: [a.to_dict() for a in self.achievements],
            ProgressField.ACTIVE_CHALLENGES: [c.to_dict() for c in self.active_challenges],
            ProgressField.COMPLETED_CHALLENGES: [c.to_dict() for c in self.completed_challenges],
            ProgressField.ACTIVE_QUESTS: [q.to_dict() for q in self.active_quests],
            ProgressField.COMPLETED_QUESTS: [q.to_dict() for q in self.completed_quests],
            ProgressField.STATS: [s.to_dict() for s in self.stats],
            ProgressField.STREAK: self.streak,
            ProgressField.LAST_ACTIVE: self.last_active,
        }
        return {k.value: v for k, v in doc.items()}

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe rendering for API responses."""
        doc = self.to_document()
        doc["last_active"] = to_iso(self.last_active)
        return doc

    @classmethod
    def from_document(cls, raw: Mapping[str, Any]) -> UserProgress:
        return cls(
            user_id=str(raw[ProgressField.USER_ID]),
            level=int(raw.get(ProgressField.LEVEL, 1)),
            experience=int(raw.get(ProgressField.EXPERIENCE, 0)),
            achievements=tuple(
                Achievement.from_dict(a) for a in raw.get(ProgressField.ACHIEVEMENTS) or ()
            ),
            active_challenges=tuple(
                Challenge.from_dict(c) for c in raw.get(ProgressField.ACTIVE_CHALLENGES) or ()
            ),
            completed_challenges=tuple(
                Challenge.from_dict(c) for c in raw.get(ProgressField.COMPLETED_CHALLENGES) or ()
            ),
            active_quests=tuple(
                Quest.from_dict(q) for q in raw.get(ProgressField.ACTIVE_QUESTS) or ()
            ),
            completed_quests=tuple(
                Quest.from_dict(q) for q in raw.get(ProgressField.COMPLETED_QUESTS) or ()
            ),
            stats=tuple(Stat.from_dict(s) for s in raw.get(ProgressField.STATS) or ()),
            streak=int(raw.get(ProgressField.STREAK, 0)),
            last_active=parse_timestamp(raw.get(ProgressField.LAST_ACTIVE)),
        )
