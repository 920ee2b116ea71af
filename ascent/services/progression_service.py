"""
ascent.services.progression_service — Authoritative Progression Engine
=======================================================================

The single writer of truth for every user's progression record.  Each
public operation is one logical read-modify-write against the
:class:`~ascent.services.progress_store.ProgressStore`, built only from
writes that stay correct under concurrent callers for the same user
(two browser tabs, a background job and a live session):

* experience and level use atomic increment / atomic max, so interleaved
  awards always add up and each level-up is claimed by exactly one caller;
* unlocks, challenge and quest completions are idempotent against the
  persisted state and commit their experience in the same write, so a
  redundant call is a no-op and a retry after an outage only finishes
  the level and badge work the failed call left behind.

Unknown ids and late progress reports are logged and absorbed, never
raised.  Store outages propagate unchanged (with a note naming the
operation) and are safe to retry.

Usage::

    engine = ProgressionEngine(SqlProgressStore(db_engine), catalog)
    await engine.award_experience("user-1", 120, "budget reviewed")
    toasts = engine.events.drain("user-1")
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta, tzinfo
from typing import Any, assert_never

from ascent.database.engine import run_db
from ascent.engine.achievements import (
    Achievement,
    BadgeReward,
    Category,
    FeatureReward,
    PerkReward,
    PointsReward,
    Reward,
    TitleReward,
)
from ascent.engine.catalog import RewardCatalog
from ascent.engine.events import EventLog, EventType, ProgressionEvent, utcnow
from ascent.engine.progress import Challenge, ProgressField, Quest, Stat, Status, UserProgress
from ascent.engine.streaks import StreakOutcome, advance_streak
from ascent.services.progress_store import ProgressStore, StoreUnavailableError

logger = logging.getLogger(__name__)

__all__ = ["ExperienceResult", "ProgressionEngine"]

STREAK_WRITE_ATTEMPTS = 3


@dataclass(frozen=True, slots=True)
class ExperienceResult:
    """Outcome of one :meth:`ProgressionEngine.award_experience` call.

    ``experience`` is the total this call observed right after its own
    increment; ``previous_level`` is the stored level it replaced.
    """

    awarded: int
    experience: int
    previous_level: int
    level: int

    @property
    def leveled_up(self) -> bool:
        return self.level > self.previous_level

    @property
    def levels_gained(self) -> list[int]:
        return list(range(self.previous_level + 1, self.level + 1))


class ProgressionEngine:
    """Server-side progression rules over a :class:`ProgressStore`.

    Parameters
    ----------
    store : the document store; the engine is its only writer.
    catalog : reward tables (defaults to the built-in catalog).
    events : event buffer for notifications; a fresh one if omitted.
    clock : source of "now"; injectable so tests can simulate days.
    tz : timezone whose calendar days delimit streaks.
    """

    def __init__(
        self,
        store: ProgressStore,
        catalog: RewardCatalog | None = None,
        events: EventLog | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
        tz: tzinfo = UTC,
    ) -> None:
        self.store = store
        self.catalog = catalog or RewardCatalog()
        self.events = events if events is not None else EventLog()
        self._clock = clock
        self._tz = tz

    # -------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------
    async def _io(self, op: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return await run_db(func, *args, **kwargs)
        except StoreUnavailableError as exc:
            exc.add_note(f"progression operation: {op}")
            logger.warning("Progress store unavailable during %s", op)
            raise

    def _emit(self, event_type: EventType, user_id: str, **payload: Any) -> ProgressionEvent:
        event = ProgressionEvent(
            type=event_type, user_id=user_id, payload=payload, timestamp=self._clock(),
        )
        self.events.append(event)
        return event

    async def _read(self, user_id: str, op: str) -> UserProgress | None:
        doc = await self._io(op, self.store.get, user_id)
        return UserProgress.from_document(doc) if doc is not None else None

    async def _load(self, user_id: str, op: str) -> UserProgress:
        progress = await self._read(user_id, op)
        if progress is None:
            return await self.initialize_progress(user_id)
        return progress

    # -------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------
    async def initialize_progress(self, user_id: str) -> UserProgress:
        """Return the user's record, creating a fresh one on first access.

        Idempotent: an existing record is never reset, even when two
        sessions race to create it.
        """
        op = "initialize_progress"
        doc = await self._io(op, self.store.get, user_id)
        if doc is not None:
            return UserProgress.from_document(doc)

        progress = UserProgress.new(user_id, self._clock())
        created = await self._io(op, self.store.create, user_id, progress.to_document())
        if created:
            logger.info("Initialized progression for user %s", user_id)
            return progress

        doc = await self._io(op, self.store.get, user_id)
        return UserProgress.from_document(doc)

    async def get_progress(self, user_id: str) -> UserProgress:
        return await self._load(user_id, "get_progress")

    # -------------------------------------------------------------------
    # Experience & levels
    # -------------------------------------------------------------------
    async def award_experience(
        self, user_id: str, amount: int, reason: str = "activity"
    ) -> ExperienceResult | None:
        """Add *amount* experience and re-derive the level.

        Amounts ≤ 0 are ignored.  The level is computed from the total
        this call observed after its own increment.  Every level crossed,
        including intermediate ones in a single large jump, gets its own
        ``level_up`` event and "reached level N" achievement.
        """
        op = "award_experience"
        if amount <= 0:
            logger.debug("Ignoring non-positive XP award (%d) for user %s", amount, user_id)
            return None

        await self._load(user_id, op)
        experience = await self._io(
            op, self.store.atomic_increment, user_id, ProgressField.EXPERIENCE, amount,
        )
        logger.info(
            "Awarded %d XP to user %s for %s. Total: %d XP", amount, user_id, reason, experience,
        )
        previous_level, level = await self._settle_levels(user_id, op, experience)
        return ExperienceResult(
            awarded=amount,
            experience=experience,
            previous_level=previous_level,
            level=level,
        )

    async def _settle_levels(
        self, user_id: str, op: str, experience: int | None = None
    ) -> tuple[int, int]:
        """Bring the stored level and level achievements up to the experience total.

        Experience is committed by the write that earned it; the level
        follows in later writes, so an outage can leave it behind.  Running
        this again completes whatever is missing: level achievements for
        levels already held, then every newly crossed level.  All
        ``level_up`` events are emitted before any level achievement is
        unlocked, since that experience can cross further levels.

        Returns ``(previous_level, level)``.
        """
        progress = await self._read(user_id, op)
        if progress is None:
            return 1, 1
        if experience is None:
            experience = progress.experience

        for held in range(2, progress.level + 1):
            achievement = self.catalog.level_achievement(held)
            if not progress.has_achievement(achievement.id):
                await self.unlock_achievement(user_id, achievement)

        level = self.catalog.level_for_experience(experience)
        if level <= progress.level:
            return progress.level, progress.level
        previous_level = await self._io(
            op, self.store.atomic_max, user_id, ProgressField.LEVEL, level,
        )
        crossed = range(previous_level + 1, level + 1)
        for reached in crossed:
            logger.info("User %s reached level %d", user_id, reached)
            self._emit(EventType.LEVEL_UP, user_id, level=reached, experience=experience)
        for reached in crossed:
            await self.unlock_achievement(user_id, self.catalog.level_achievement(reached))
        return previous_level, max(level, previous_level)

    # -------------------------------------------------------------------
    # Achievements
    # -------------------------------------------------------------------
    async def unlock_achievement(self, user_id: str, achievement: Achievement) -> bool:
        """Unlock *achievement* once; returns False if it was already held.

        The first unlock appends it with a timestamp together with its
        difficulty × category experience, then emits
        ``achievement_unlocked``.  Redundant or concurrent calls lose the
        append race; they only finish level work a failed call left behind.
        """
        op = "unlock_achievement"
        progress = await self._load(user_id, op)
        if progress.has_achievement(achievement.id):
            logger.debug("Achievement %s already unlocked for user %s", achievement.id, user_id)
            await self._settle_levels(user_id, op)
            return False

        unlocked = achievement.unlock(self._clock())
        experience = self.catalog.achievement_experience(achievement)
        appended = await self._io(
            op, self.store.array_append, user_id, ProgressField.ACHIEVEMENTS, unlocked.to_dict(),
            experience=experience,
        )
        if not appended:
            logger.debug("Achievement %s unlocked concurrently for user %s", achievement.id, user_id)
            return False

        logger.info(
            "User %s unlocked achievement %s (+%d XP)", user_id, achievement.id, experience,
        )
        self._emit(EventType.ACHIEVEMENT_UNLOCKED, user_id, achievement=unlocked.to_dict())
        await self._settle_levels(user_id, op)
        return True

    # -------------------------------------------------------------------
    # Rewards
    # -------------------------------------------------------------------
    async def _apply_rewards(
        self,
        user_id: str,
        rewards: Iterable[Reward],
        reason: str,
        op: str,
        *,
        resumed: bool = False,
    ) -> None:
        """Finish a completion whose points were committed by its move.

        Every step is idempotent, so a *resumed* call (the completion was
        already recorded) only fills in what an interrupted one missed.
        """
        await self._settle_levels(user_id, op)
        for reward in rewards:
            match reward:
                case PointsReward():
                    continue
                case BadgeReward(achievement=achievement):
                    await self.unlock_achievement(user_id, achievement)
                case TitleReward() | FeatureReward() | PerkReward():
                    if not resumed:
                        logger.info(
                            "Granted %s reward to user %s (%s): %s",
                            reward.type, user_id, reason, reward.to_dict(),
                        )
                case _:
                    assert_never(reward)

    # -------------------------------------------------------------------
    # Challenges
    # -------------------------------------------------------------------
    async def start_challenge(self, user_id: str, challenge: Challenge) -> bool:
        """Join *challenge*; a challenge already joined (or finished) is not restarted."""
        op = "start_challenge"
        progress = await self._load(user_id, op)
        if progress.knows_challenge(challenge.id):
            logger.debug("Challenge %s already known for user %s", challenge.id, user_id)
            return False

        entry = challenge.with_participant(user_id, 0, Status.ACTIVE)
        appended = await self._io(
            op, self.store.array_append, user_id, ProgressField.ACTIVE_CHALLENGES, entry.to_dict(),
        )
        if appended:
            logger.info("User %s started challenge %s", user_id, challenge.id)
        return appended

    async def update_challenge_progress(
        self, user_id: str, challenge_id: str, progress: float
    ) -> Challenge | None:
        """Record *progress*; reaching the target completes the challenge.

        No-op (returns None) for a challenge that is not active or has
        already been resolved.  Past the deadline the challenge fails
        instead.  Point rewards are committed by the active → completed
        move itself; a repeat call after a completion only finishes
        rewards an outage interrupted.
        """
        op = "update_challenge_progress"
        state = await self._read(user_id, op)
        if state is None:
            logger.debug(
                "Ignoring progress for challenge %s: no record for user %s", challenge_id, user_id,
            )
            return None
        challenge = state.active_challenge(challenge_id)
        if challenge is None or challenge.status_for(user_id).is_terminal:
            logger.debug(
                "Ignoring progress for inactive challenge %s (user %s)", challenge_id, user_id,
            )
            finished = state.completed_challenge(challenge_id)
            if finished is not None and finished.status_for(user_id) is Status.COMPLETED:
                await self._apply_rewards(
                    user_id, finished.rewards, f"challenge:{challenge_id}", op, resumed=True,
                )
            return None

        if challenge.is_overdue(self._clock()):
            return await self._fail_challenge(user_id, challenge, op)

        progress = max(progress, challenge.progress_for(user_id))
        if progress < challenge.target:
            updated = challenge.with_participant(user_id, progress, Status.ACTIVE)
            replaced = await self._io(
                op, self.store.array_replace, user_id,
                ProgressField.ACTIVE_CHALLENGES, updated.to_dict(),
            )
            return updated if replaced else None

        completed = challenge.with_participant(user_id, progress, Status.COMPLETED)
        points = self.catalog.completion_experience(completed.rewards)
        moved = await self._io(
            op, self.store.array_move, user_id,
            ProgressField.ACTIVE_CHALLENGES, ProgressField.COMPLETED_CHALLENGES,
            completed.to_dict(), experience=points,
        )
        if not moved:
            logger.debug("Challenge %s resolved concurrently for user %s", challenge_id, user_id)
            return None

        logger.info("User %s completed challenge %s (+%d XP)", user_id, challenge_id, points)
        self._emit(EventType.CHALLENGE_COMPLETED, user_id, challenge=completed.to_dict())
        await self._apply_rewards(user_id, completed.rewards, f"challenge:{challenge_id}", op)
        return completed

    async def _fail_challenge(self, user_id: str, challenge: Challenge, op: str) -> Challenge | None:
        failed = challenge.with_participant(
            user_id, challenge.progress_for(user_id), Status.FAILED,
        )
        moved = await self._io(
            op, self.store.array_move, user_id,
            ProgressField.ACTIVE_CHALLENGES, ProgressField.COMPLETED_CHALLENGES,
            failed.to_dict(),
        )
        if not moved:
            return None
        logger.info("Challenge %s failed for user %s (deadline passed)", challenge.id, user_id)
        self._emit(EventType.CHALLENGE_FAILED, user_id, challenge=failed.to_dict())
        return failed

    async def expire_challenges(self, user_id: str) -> list[Challenge]:
        """Fail every active challenge whose deadline has passed."""
        op = "expire_challenges"
        state = await self._read(user_id, op)
        if state is None:
            return []
        now = self._clock()
        expired: list[Challenge] = []
        for challenge in state.active_challenges:
            if challenge.is_overdue(now) and not challenge.status_for(user_id).is_terminal:
                failed = await self._fail_challenge(user_id, challenge, op)
                if failed is not None:
                    expired.append(failed)
        return expired

    async def challenge_due(self, user_id: str, category: Category | str) -> bool:
        """Whether the category's cadence has elapsed since its last challenge started."""
        state = await self._read(user_id, "challenge_due")
        if state is None:
            return True
        starts = [
            c.starts_at
            for c in (*state.active_challenges, *state.completed_challenges)
            if c.category == category
        ]
        if not starts:
            return True
        interval = timedelta(days=self.catalog.challenge_interval_days(category))
        return self._clock() - max(starts) >= interval

    # -------------------------------------------------------------------
    # Quests
    # -------------------------------------------------------------------
    async def start_quest(self, user_id: str, quest: Quest) -> Quest | None:
        """Begin *quest* at the complexity of the user's level band.

        Quests are never restarted: an id already active or finished is a
        no-op.
        """
        op = "start_quest"
        state = await self._load(user_id, op)
        if state.knows_quest(quest.id):
            logger.debug("Quest %s already known for user %s", quest.id, user_id)
            return None

        started = replace(
            quest,
            progress=0,
            status=Status.ACTIVE,
            complexity=self.catalog.quest_complexity_for_level(state.level),
        )
        appended = await self._io(
            op, self.store.array_append, user_id, ProgressField.ACTIVE_QUESTS, started.to_dict(),
        )
        if not appended:
            return None
        logger.info(
            "User %s started quest %s (complexity %.1f)", user_id, quest.id, started.complexity,
        )
        return started

    async def progress_quest(self, user_id: str, quest_id: str, progress: float) -> Quest | None:
        """Record quest *progress* (0–100); 100 completes it irreversibly.

        Points, scaled by the quest's complexity, are committed by the move
        to the finished set; repeating the call on a completed quest only
        finishes rewards an outage interrupted.
        """
        op = "progress_quest"
        state = await self._read(user_id, op)
        quest = state.active_quest(quest_id) if state is not None else None
        if quest is None or quest.status.is_terminal:
            logger.debug("Ignoring progress for inactive quest %s (user %s)", quest_id, user_id)
            finished = state.completed_quest(quest_id) if state is not None else None
            if finished is not None and finished.status is Status.COMPLETED:
                await self._apply_rewards(
                    user_id, finished.rewards, f"quest:{quest_id}", op, resumed=True,
                )
            return None

        updated = quest.with_progress(max(progress, quest.progress))
        if updated.status is not Status.COMPLETED:
            replaced = await self._io(
                op, self.store.array_replace, user_id,
                ProgressField.ACTIVE_QUESTS, updated.to_dict(),
            )
            if not replaced:
                return None
            self._emit(
                EventType.QUEST_PROGRESS, user_id, quest_id=quest_id, progress=updated.progress,
            )
            return updated

        points = self.catalog.completion_experience(updated.rewards, updated.complexity)
        moved = await self._io(
            op, self.store.array_move, user_id,
            ProgressField.ACTIVE_QUESTS, ProgressField.COMPLETED_QUESTS, updated.to_dict(),
            experience=points,
        )
        if not moved:
            logger.debug("Quest %s resolved concurrently for user %s", quest_id, user_id)
            return None

        logger.info("User %s completed quest %s (+%d XP)", user_id, quest_id, points)
        self._emit(EventType.QUEST_COMPLETED, user_id, quest=updated.to_dict())
        await self._apply_rewards(user_id, updated.rewards, f"quest:{quest_id}", op)
        return updated

    async def abandon_quest(self, user_id: str, quest_id: str) -> Quest | None:
        """Give up an active quest; it moves to the finished set as failed."""
        op = "abandon_quest"
        state = await self._read(user_id, op)
        quest = state.active_quest(quest_id) if state is not None else None
        if quest is None:
            logger.debug("Ignoring abandon of inactive quest %s (user %s)", quest_id, user_id)
            return None

        failed = replace(quest, status=Status.FAILED)
        moved = await self._io(
            op, self.store.array_move, user_id,
            ProgressField.ACTIVE_QUESTS, ProgressField.COMPLETED_QUESTS, failed.to_dict(),
        )
        if not moved:
            return None
        logger.info("User %s abandoned quest %s", user_id, quest_id)
        self._emit(EventType.QUEST_FAILED, user_id, quest=failed.to_dict())
        return failed

    # -------------------------------------------------------------------
    # Streaks
    # -------------------------------------------------------------------
    async def update_streak(self, user_id: str) -> StreakOutcome:
        """Count today as an active day.

        The write is a compare-and-set on (streak, last_active); a
        concurrent session that already counted today makes the re-read
        a no-op, so two tabs never double-increment.
        """
        op = "update_streak"
        for _ in range(STREAK_WRITE_ATTEMPTS):
            state = await self._load(user_id, op)
            now = self._clock()
            outcome = advance_streak(state.streak, state.last_active, now, self._tz)
            if not outcome.changed:
                return outcome

            written = await self._io(
                op, self.store.update, user_id,
                {ProgressField.STREAK: outcome.streak, ProgressField.LAST_ACTIVE: now},
                if_match={
                    ProgressField.STREAK: state.streak,
                    ProgressField.LAST_ACTIVE: state.last_active,
                },
            )
            if written:
                break
            logger.debug("Streak for user %s changed concurrently; re-reading", user_id)
        else:
            logger.warning(
                "Gave up updating streak for user %s after %d attempts",
                user_id, STREAK_WRITE_ATTEMPTS,
            )
            return StreakOutcome(streak=state.streak, previous=state.streak, changed=False)

        if outcome.reset:
            logger.info("User %s streak broken at %d; restarting at 1", user_id, outcome.previous)
        else:
            logger.info("User %s streak: %d → %d", user_id, outcome.previous, outcome.streak)

        if outcome.milestone is not None:
            await self.unlock_achievement(
                user_id, self.catalog.streak_achievement(outcome.milestone),
            )
        return outcome

    # -------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------
    async def record_stat(self, user_id: str, category: str, value: float) -> Stat | None:
        """Set a dashboard stat and append the data point to its history."""
        op = "record_stat"
        state = await self._load(user_id, op)
        existing = state.stat(category)
        stat = (existing or Stat(category=category, value=value)).record(value, self._clock())

        if existing is not None:
            written = await self._io(
                op, self.store.array_replace, user_id, ProgressField.STATS, stat.to_dict(),
            )
        else:
            written = await self._io(
                op, self.store.array_append, user_id, ProgressField.STATS, stat.to_dict(),
            )
        if not written:
            logger.debug("Stat %s changed concurrently for user %s", category, user_id)
            return None
        return stat
