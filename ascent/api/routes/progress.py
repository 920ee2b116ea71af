"""
ascent.api.routes.progress — Progression endpoints for the signed-in user
==========================================================================

Thin HTTP layer over :class:`~ascent.services.progression_service.ProgressionEngine`.
The user id always comes from the bearer token; no route can touch another
user's record.  Logical no-ops (unknown ids, repeated completions) answer
200 with ``applied: false`` so retries are harmless.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from ascent.api.deps import get_current_user_id, get_progression
from ascent.engine.achievements import Achievement, Category, Difficulty
from ascent.engine.progress import Challenge, Quest
from ascent.services.progression_service import ProgressionEngine

router = APIRouter(prefix="/progress/me", tags=["progress"])
logger = logging.getLogger(__name__)

UserId = Annotated[str, Depends(get_current_user_id)]
Progression = Annotated[ProgressionEngine, Depends(get_progression)]


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ExperienceAward(BaseModel):
    amount: int
    reason: str = "activity"


class AchievementIn(BaseModel):
    id: str
    name: str
    category: Category
    difficulty: Difficulty
    description: str = ""
    requirements: list[dict[str, Any]] = []
    rewards: list[dict[str, Any]] = []


class ChallengeIn(BaseModel):
    id: str
    name: str
    category: Category
    starts_at: datetime
    ends_at: datetime
    target: float = Field(default=100, gt=0)
    description: str = ""
    tasks: list[dict[str, Any]] = []
    rewards: list[dict[str, Any]] = []
    leaderboard: list[dict[str, Any]] | None = None


class QuestIn(BaseModel):
    id: str
    name: str
    description: str = ""
    storyline: dict[str, Any] = {}
    objectives: list[dict[str, Any]] = []
    rewards: list[dict[str, Any]] = []


class ProgressReport(BaseModel):
    progress: float = Field(ge=0)


class StatIn(BaseModel):
    category: str
    value: float


def _parse(builder, body: BaseModel):
    """Build a domain object, turning malformed nested payloads into 422s."""
    try:
        return builder(body.model_dump())
    except (KeyError, TypeError, ValueError) as exc:
        raise HTTPException(422, str(exc))


# ---------------------------------------------------------------------------
# Record
# ---------------------------------------------------------------------------
@router.get("")
async def get_my_progress(user_id: UserId, engine: Progression):
    progress = await engine.get_progress(user_id)
    return progress.to_dict()


@router.get("/events")
async def drain_my_events(user_id: UserId, engine: Progression):
    """Pending notifications; each event is returned exactly once."""
    return [event.to_dict() for event in engine.events.drain(user_id)]


# ---------------------------------------------------------------------------
# Experience, achievements, streak, stats
# ---------------------------------------------------------------------------
@router.post("/experience")
async def award_experience(body: ExperienceAward, user_id: UserId, engine: Progression):
    result = await engine.award_experience(user_id, body.amount, body.reason)
    if result is None:
        return {"applied": False}
    return {
        "applied": True,
        "experience": result.experience,
        "level": result.level,
        "previous_level": result.previous_level,
        "levels_gained": result.levels_gained,
    }


@router.post("/achievements")
async def unlock_achievement(body: AchievementIn, user_id: UserId, engine: Progression):
    achievement = _parse(Achievement.from_dict, body)
    unlocked = await engine.unlock_achievement(user_id, achievement)
    return {"applied": unlocked, "achievement_id": achievement.id}


@router.post("/streak")
async def record_activity(user_id: UserId, engine: Progression):
    outcome = await engine.update_streak(user_id)
    return {
        "applied": outcome.changed,
        "streak": outcome.streak,
        "reset": outcome.reset,
        "milestone": outcome.milestone,
    }


@router.post("/stats")
async def record_stat(body: StatIn, user_id: UserId, engine: Progression):
    stat = await engine.record_stat(user_id, body.category, body.value)
    return {"applied": stat is not None, "stat": stat.to_dict() if stat else None}


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------
@router.post("/challenges")
async def start_challenge(body: ChallengeIn, user_id: UserId, engine: Progression):
    challenge = _parse(Challenge.from_dict, body)
    started = await engine.start_challenge(user_id, challenge)
    return {"applied": started, "challenge_id": challenge.id}


@router.get("/challenges/due")
async def challenge_due(
    user_id: UserId,
    engine: Progression,
    category: Annotated[Category, Query()],
):
    return {"category": category.value, "due": await engine.challenge_due(user_id, category)}


@router.post("/challenges/expire")
async def expire_challenges(user_id: UserId, engine: Progression):
    expired = await engine.expire_challenges(user_id)
    return {"expired": [c.id for c in expired]}


@router.patch("/challenges/{challenge_id}")
async def update_challenge(
    challenge_id: str, body: ProgressReport, user_id: UserId, engine: Progression,
):
    challenge = await engine.update_challenge_progress(user_id, challenge_id, body.progress)
    return {
        "applied": challenge is not None,
        "challenge": challenge.to_dict() if challenge else None,
    }


# ---------------------------------------------------------------------------
# Quests
# ---------------------------------------------------------------------------
@router.post("/quests")
async def start_quest(body: QuestIn, user_id: UserId, engine: Progression):
    quest = await engine.start_quest(user_id, _parse(Quest.from_dict, body))
    return {"applied": quest is not None, "quest": quest.to_dict() if quest else None}


@router.patch("/quests/{quest_id}")
async def update_quest(quest_id: str, body: ProgressReport, user_id: UserId, engine: Progression):
    quest = await engine.progress_quest(user_id, quest_id, body.progress)
    return {"applied": quest is not None, "quest": quest.to_dict() if quest else None}


@router.post("/quests/{quest_id}/abandon")
async def abandon_quest(quest_id: str, user_id: UserId, engine: Progression):
    quest = await engine.abandon_quest(user_id, quest_id)
    return {"applied": quest is not None, "quest": quest.to_dict() if quest else None}
