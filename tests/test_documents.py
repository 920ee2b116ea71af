"""
tests/test_documents.py — Achievement, Reward & Progress Documents
===================================================================
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from ascent.engine.achievements import (
    Achievement,
    BadgeReward,
    Category,
    Difficulty,
    PerkReward,
    PointsReward,
    Requirement,
    reward_from_dict,
)
from ascent.engine.progress import Quest, Status, UserProgress

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


class TestRewards:
    def test_each_type_builds_its_variant(self):
        assert reward_from_dict({"type": "points", "points": 25}) == PointsReward(points=25)
        assert reward_from_dict({"type": "reward", "name": "Coffee"}) == PerkReward(name="Coffee")
        badge = reward_from_dict({
            "type": "badge",
            "achievement": {"id": "b", "category": "impact", "difficulty": "expert"},
        })
        assert isinstance(badge, BadgeReward)
        assert badge.achievement.difficulty is Difficulty.EXPERT

    def test_unknown_type_raises(self):
        with pytest.raises(ValueError, match="Unknown reward type"):
            reward_from_dict({"type": "mystery"})

    def test_badge_without_achievement_raises(self):
        with pytest.raises(ValueError):
            reward_from_dict({"type": "badge"})


class TestAchievement:
    def test_progress_is_mean_of_requirements(self):
        achievement = Achievement(
            id="a", name="A", category=Category.LEARNING, difficulty=Difficulty.BEGINNER,
            requirements=(Requirement("lessons", 10, 5), Requirement("quizzes", 4, 4)),
        )
        assert achievement.progress == 75.0
        assert achievement.unlock(NOW).progress == 100.0

    def test_unlock_keeps_first_timestamp(self):
        first = Achievement(
            id="a", name="A", category=Category.LEARNING, difficulty=Difficulty.BEGINNER,
        ).unlock(NOW)
        assert first.unlock(datetime(2030, 1, 1, tzinfo=UTC)).unlocked_at == NOW


class TestQuest:
    def test_progress_is_clamped(self):
        quest = Quest(id="q", name="Q")
        assert quest.with_progress(-10).progress == 0
        done = quest.with_progress(250)
        assert done.progress == 100
        assert done.status is Status.COMPLETED


class TestUserProgressDocument:
    def test_document_survives_store_layout(self):
        progress = UserProgress(
            user_id="u1",
            level=2,
            experience=180,
            achievements=(Achievement(
                id="a", name="A", category=Category.IMPACT, difficulty=Difficulty.ADVANCED,
                rewards=(PointsReward(points=5),),
            ).unlock(NOW),),
            active_quests=(Quest(id="q", name="Q", storyline={"act": 2}, complexity=1.5),),
            streak=3,
            last_active=NOW,
        )
        doc = progress.to_document()
        assert all(type(k) is str for k in doc)
        assert UserProgress.from_document(doc) == progress

    def test_to_dict_is_json_safe(self):
        assert UserProgress.new("u1", NOW).to_dict()["last_active"] == NOW.isoformat()
