"""
tests/test_catalog.py — Reward Catalog Arithmetic & Validation
===============================================================
"""

from __future__ import annotations

import pytest

from ascent.engine.achievements import (
    Achievement,
    BadgeReward,
    Category,
    Difficulty,
    PointsReward,
    TitleReward,
)
from ascent.engine.catalog import (
    CatalogError,
    RewardCatalog,
    level_for_experience,
    round_half_up,
)

SHORT_TABLE = [100, 250, 500, 1000]


class TestLevelForExperience:
    @pytest.mark.parametrize(
        ("experience", "level"),
        [(0, 1), (100, 2), (249, 2), (250, 3), (999, 4), (1000, 5)],
    )
    def test_short_table(self, experience, level):
        assert level_for_experience(experience, SHORT_TABLE) == level

    def test_beyond_last_threshold_caps_at_table_length(self):
        assert level_for_experience(10**9, SHORT_TABLE) == len(SHORT_TABLE) + 1

    def test_empty_table_is_always_level_one(self):
        assert level_for_experience(5000, []) == 1

    def test_catalog_uses_default_table(self):
        catalog = RewardCatalog()
        assert catalog.level_for_experience(99) == 1
        assert catalog.level_for_experience(16000) == 9


class TestRounding:
    def test_halves_round_up(self):
        assert round_half_up(62.5) == 63
        assert round_half_up(2.5) == 3

    def test_float_noise_rounds_to_nearest(self):
        assert round_half_up(50 * 1.1) == 55
        assert round_half_up(100 * 1.4) == 140


class TestAchievementExperience:
    @pytest.mark.parametrize(
        ("difficulty", "category", "expected"),
        [
            (Difficulty.BEGINNER, Category.PERSONAL, 55),
            (Difficulty.INTERMEDIATE, Category.PERSONAL, 110),
            (Difficulty.ADVANCED, Category.FINANCIAL, 240),
            (Difficulty.EXPERT, Category.COMMUNITY, 750),
            (Difficulty.BEGINNER, Category.LEARNING, 65),
        ],
    )
    def test_difficulty_times_multiplier(self, difficulty, category, expected):
        achievement = Achievement(id="a", name="A", category=category, difficulty=difficulty)
        assert RewardCatalog().achievement_experience(achievement) == expected

    def test_unknown_category_multiplier_defaults_to_one(self):
        assert RewardCatalog().multiplier_for_category("gardening") == 1.0

    def test_synthetic_achievements(self):
        catalog = RewardCatalog()
        assert catalog.level_achievement(3).id == "level_3"
        assert catalog.achievement_experience(catalog.level_achievement(3)) == 55
        assert catalog.streak_achievement(14).id == "streak_14"
        assert catalog.achievement_experience(catalog.streak_achievement(14)) == 110


class TestCompletionExperience:
    def test_sums_points_only(self):
        badge = Achievement(
            id="b", name="B", category=Category.IMPACT, difficulty=Difficulty.BEGINNER,
        )
        rewards = (PointsReward(points=40), BadgeReward(achievement=badge),
                   PointsReward(points=10), TitleReward(title="Saver"))
        assert RewardCatalog().completion_experience(rewards) == 50

    def test_scaled_by_complexity(self):
        assert RewardCatalog().completion_experience([PointsReward(points=25)], 1.5) == 38


class TestQuestComplexityAndCadence:
    @pytest.mark.parametrize(
        ("level", "complexity"),
        [(1, 1.0), (4, 1.0), (5, 1.5), (12, 2.0), (20, 2.5), (75, 3.0)],
    )
    def test_level_bands(self, level, complexity):
        assert RewardCatalog().quest_complexity_for_level(level) == complexity

    def test_challenge_interval(self):
        catalog = RewardCatalog()
        assert catalog.challenge_interval_days(Category.IMPACT) == 30
        assert catalog.challenge_interval_days("unknown") == 7


class TestCatalogValidation:
    def test_rejects_non_increasing_thresholds(self):
        with pytest.raises(CatalogError, match="strictly increasing"):
            RewardCatalog(level_thresholds=(100, 100, 300))

    def test_rejects_decreasing_thresholds(self):
        with pytest.raises(CatalogError):
            RewardCatalog(level_thresholds=(100, 50))

    def test_rejects_non_positive_multiplier(self):
        with pytest.raises(CatalogError, match="experience_multipliers"):
            RewardCatalog(category_multipliers={"financial": 0})

    def test_rejects_fractional_cadence(self):
        with pytest.raises(CatalogError, match="challenge_frequency"):
            RewardCatalog(challenge_frequency={"impact": 1.5})

    def test_rejects_unordered_bands(self):
        with pytest.raises(CatalogError, match="ascending"):
            RewardCatalog(quest_complexity=((5, 1.5), (1, 1.0)))

    def test_catalog_error_is_value_error(self):
        assert issubclass(CatalogError, ValueError)


class TestFromMapping:
    def test_none_gives_defaults(self):
        assert RewardCatalog.from_mapping(None) == RewardCatalog()

    def test_partial_override_keeps_other_defaults(self):
        catalog = RewardCatalog.from_mapping({"experience_multipliers": {"financial": 2.0}})
        assert catalog.multiplier_for_category("financial") == 2.0
        assert catalog.multiplier_for_category("community") == 1.5

    def test_list_forms(self):
        catalog = RewardCatalog.from_mapping({
            "experience_multipliers": [{"category": "impact", "multiplier": 3.0}],
            "challenge_frequency": [{"category": "impact", "daysInterval": 2}],
            "quest_complexity": [{"level": 1, "complexity": 1.0}, {"level": 3, "complexity": 4.0}],
        })
        assert catalog.multiplier_for_category("impact") == 3.0
        assert catalog.challenge_interval_days("impact") == 2
        assert catalog.quest_complexity_for_level(3) == 4.0

    def test_malformed_rows_raise_catalog_error(self):
        with pytest.raises(CatalogError, match="Malformed"):
            RewardCatalog.from_mapping({"quest_complexity": [{"complexity": 2.0}]})

    def test_bad_thresholds_raise_catalog_error(self):
        with pytest.raises(CatalogError):
            RewardCatalog.from_mapping({"level_thresholds": [500, 100]})
