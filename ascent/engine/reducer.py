"""
ascent.engine.reducer — Optimistic Progression Reducer
=======================================================

A pure ``(state, action) -> state`` function over an in-memory copy of a
user's :class:`~ascent.engine.progress.UserProgress`, so the dashboard can
show the effect of an action before the authoritative write round-trips.

It applies the same catalog arithmetic as
:class:`~ascent.services.progression_service.ProgressionEngine`, with two
deliberate differences:

* duplicates are detected against the in-memory collections only;
* a jump across several levels at once gets its ``level_up`` events but
  not the per-level achievements; the next server read fills those in.

The result is provisional.  :func:`reconcile` replaces it with whatever the
store returns, and the server always wins.
"""

from __future__ import annotations

import enum
import functools
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, ClassVar, assert_never

from ascent.engine.achievements import (
    Achievement,
    BadgeReward,
    FeatureReward,
    PerkReward,
    PointsReward,
    Reward,
    TitleReward,
)
from ascent.engine.catalog import RewardCatalog
from ascent.engine.events import EventType, ProgressionEvent, utcnow
from ascent.engine.progress import Stat, Status, UserProgress

logger = logging.getLogger(__name__)

__all__ = [
    "Action",
    "ActionType",
    "ClientState",
    "CompleteChallenge",
    "GainExperience",
    "LevelUp",
    "ProgressQuest",
    "UnlockAchievement",
    "UpdateStats",
    "drain_events",
    "reconcile",
    "reduce",
    "reduce_all",
]


class ActionType(enum.StrEnum):
    UNLOCK_ACHIEVEMENT = "UNLOCK_ACHIEVEMENT"
    COMPLETE_CHALLENGE = "COMPLETE_CHALLENGE"
    PROGRESS_QUEST = "PROGRESS_QUEST"
    GAIN_EXPERIENCE = "GAIN_EXPERIENCE"
    LEVEL_UP = "LEVEL_UP"
    UPDATE_STATS = "UPDATE_STATS"


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class UnlockAchievement:
    type: ClassVar[ActionType] = ActionType.UNLOCK_ACHIEVEMENT
    achievement: Achievement


@dataclass(frozen=True, slots=True)
class CompleteChallenge:
    type: ClassVar[ActionType] = ActionType.COMPLETE_CHALLENGE
    challenge_id: str


@dataclass(frozen=True, slots=True)
class ProgressQuest:
    type: ClassVar[ActionType] = ActionType.PROGRESS_QUEST
    quest_id: str
    progress: float


@dataclass(frozen=True, slots=True)
class GainExperience:
    type: ClassVar[ActionType] = ActionType.GAIN_EXPERIENCE
    amount: int
    reason: str = "activity"


@dataclass(frozen=True, slots=True)
class LevelUp:
    """Re-derive the level from the current experience total."""

    type: ClassVar[ActionType] = ActionType.LEVEL_UP


@dataclass(frozen=True, slots=True)
class UpdateStats:
    type: ClassVar[ActionType] = ActionType.UPDATE_STATS
    category: str
    value: float


Action = (
    UnlockAchievement | CompleteChallenge | ProgressQuest | GainExperience | LevelUp | UpdateStats
)


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ClientState:
    """Provisional progress plus the events the reducer produced so far."""

    progress: UserProgress
    catalog: RewardCatalog = field(default_factory=RewardCatalog)
    events: tuple[ProgressionEvent, ...] = ()

    @property
    def user_id(self) -> str:
        return self.progress.user_id


# ---------------------------------------------------------------------------
# Transition helpers: each returns a new ClientState
# ---------------------------------------------------------------------------
def _emit(state: ClientState, event_type: EventType, now: datetime, **payload: Any) -> ClientState:
    event = ProgressionEvent(type=event_type, user_id=state.user_id, payload=payload, timestamp=now)
    return replace(state, events=(*state.events, event))


def _with_progress(state: ClientState, **changes: Any) -> ClientState:
    return replace(state, progress=replace(state.progress, **changes))


def _relevel(state: ClientState, now: datetime) -> ClientState:
    progress = state.progress
    level = state.catalog.level_for_experience(progress.experience)
    previous = progress.level
    if level <= previous:
        return state

    state = _with_progress(state, level=level)
    for reached in range(previous + 1, level + 1):
        state = _emit(state, EventType.LEVEL_UP, now, level=reached, experience=progress.experience)
    if level == previous + 1:
        state = _unlock(state, state.catalog.level_achievement(level), now)
    return state


def _gain(state: ClientState, amount: int, now: datetime) -> ClientState:
    if amount <= 0:
        return state
    state = _with_progress(state, experience=state.progress.experience + amount)
    return _relevel(state, now)


def _unlock(state: ClientState, achievement: Achievement, now: datetime) -> ClientState:
    if state.progress.has_achievement(achievement.id):
        return state
    unlocked = achievement.unlock(now)
    state = _with_progress(state, achievements=(*state.progress.achievements, unlocked))
    state = _emit(state, EventType.ACHIEVEMENT_UNLOCKED, now, achievement=unlocked.to_dict())
    return _gain(state, state.catalog.achievement_experience(achievement), now)


def _rewards(
    state: ClientState, rewards: tuple[Reward, ...], now: datetime, complexity: float = 1.0
) -> ClientState:
    state = _gain(state, state.catalog.completion_experience(rewards, complexity), now)
    for reward in rewards:
        match reward:
            case BadgeReward(achievement=achievement):
                state = _unlock(state, achievement, now)
            case PointsReward() | TitleReward() | FeatureReward() | PerkReward():
                pass
            case _:
                assert_never(reward)
    return state


def _complete_challenge(state: ClientState, challenge_id: str, now: datetime) -> ClientState:
    progress = state.progress
    challenge = progress.active_challenge(challenge_id)
    if challenge is None or challenge.status_for(state.user_id).is_terminal:
        return state

    remaining = tuple(c for c in progress.active_challenges if c.id != challenge_id)
    if challenge.is_overdue(now):
        failed = challenge.with_participant(
            state.user_id, challenge.progress_for(state.user_id), Status.FAILED,
        )
        state = _with_progress(
            state,
            active_challenges=remaining,
            completed_challenges=(*progress.completed_challenges, failed),
        )
        return _emit(state, EventType.CHALLENGE_FAILED, now, challenge=failed.to_dict())

    completed = challenge.with_participant(
        state.user_id,
        max(challenge.progress_for(state.user_id), challenge.target),
        Status.COMPLETED,
    )
    state = _with_progress(
        state,
        active_challenges=remaining,
        completed_challenges=(*progress.completed_challenges, completed),
    )
    state = _emit(state, EventType.CHALLENGE_COMPLETED, now, challenge=completed.to_dict())
    return _rewards(state, completed.rewards, now)


def _progress_quest(
    state: ClientState, quest_id: str, value: float, now: datetime
) -> ClientState:
    progress = state.progress
    quest = progress.active_quest(quest_id)
    if quest is None or quest.status.is_terminal:
        return state

    updated = quest.with_progress(max(value, quest.progress))
    if updated.status is not Status.COMPLETED:
        state = _with_progress(
            state,
            active_quests=tuple(updated if q.id == quest_id else q for q in progress.active_quests),
        )
        return _emit(state, EventType.QUEST_PROGRESS, now, quest_id=quest_id, progress=updated.progress)

    state = _with_progress(
        state,
        active_quests=tuple(q for q in progress.active_quests if q.id != quest_id),
        completed_quests=(*progress.completed_quests, updated),
    )
    state = _emit(state, EventType.QUEST_COMPLETED, now, quest=updated.to_dict())
    return _rewards(state, updated.rewards, now, complexity=updated.complexity)


def _update_stats(state: ClientState, category: str, value: float, now: datetime) -> ClientState:
    stats = state.progress.stats
    existing = state.progress.stat(category)
    if existing is None:
        return _with_progress(
            state, stats=(*stats, Stat(category=category, value=value).record(value, now)),
        )
    recorded = existing.record(value, now)
    return _with_progress(
        state, stats=tuple(recorded if s.category == category else s for s in stats),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def reduce(state: ClientState, action: Action, *, now: datetime | None = None) -> ClientState:
    """Apply one action; invalid or redundant actions return *state* unchanged."""
    now = now or utcnow()
    match action:
        case UnlockAchievement(achievement=achievement):
            return _unlock(state, achievement, now)
        case CompleteChallenge(challenge_id=challenge_id):
            return _complete_challenge(state, challenge_id, now)
        case ProgressQuest(quest_id=quest_id, progress=value):
            return _progress_quest(state, quest_id, value, now)
        case GainExperience(amount=amount):
            return _gain(state, amount, now)
        case LevelUp():
            return _relevel(state, now)
        case UpdateStats(category=category, value=value):
            return _update_stats(state, category, value, now)
        case _:
            return state


def reduce_all(
    state: ClientState, actions: Iterable[Action], *, now: datetime | None = None
) -> ClientState:
    return functools.reduce(lambda s, a: reduce(s, a, now=now), actions, state)


def reconcile(state: ClientState, server: UserProgress) -> ClientState:
    """Replace the optimistic view with the authoritative record.

    Buffered events are kept so already-rendered toasts are not lost.
    """
    if server.user_id != state.user_id:
        raise ValueError(
            f"Cannot reconcile state for {state.user_id!r} with record of {server.user_id!r}"
        )
    if server.level < state.progress.level:
        logger.warning(
            "Optimistic level %d for user %s corrected down to %d by server",
            state.progress.level, state.user_id, server.level,
        )
    return replace(state, progress=server)


def drain_events(state: ClientState) -> tuple[ClientState, list[ProgressionEvent]]:
    """Hand out buffered events once; the returned state has none left."""
    return replace(state, events=()), list(state.events)
