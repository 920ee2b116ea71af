"""
tests/test_convergence.py — Reducer and Engine agree on the same facts
=======================================================================
The optimistic reducer and the authoritative engine are two
implementations of one set of rules.  Fed the same facts, they must end on
the same (level, experience, achievement ids) triple.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from ascent.engine.achievements import Achievement, Category, Difficulty, PointsReward
from ascent.engine.progress import Challenge, Quest, Status
from ascent.engine.reducer import (
    ClientState,
    CompleteChallenge,
    GainExperience,
    ProgressQuest,
    UnlockAchievement,
    reduce_all,
)
from conftest import run_async

USER = "user-1"
BUDGET = Achievement(
    id="first_budget", name="First Budget",
    category=Category.FINANCIAL, difficulty=Difficulty.BEGINNER,
)


def _triple(progress) -> tuple[int, int, frozenset[str]]:
    return progress.level, progress.experience, progress.achievement_ids


@pytest.mark.parametrize("amounts", [(60,), (40, 30, 100), (99, 1, 200), (120, 130, 140)])
def test_experience_sequences_converge(progression, clock, amounts):
    client = ClientState(
        progress=run_async(progression.initialize_progress(USER)), catalog=progression.catalog,
    )
    client = reduce_all(client, [GainExperience(a) for a in amounts], now=clock.now)

    for amount in amounts:
        run_async(progression.award_experience(USER, amount, "fact"))

    assert _triple(client.progress) == _triple(run_async(progression.get_progress(USER)))


def test_mixed_facts_converge(progression, clock):
    challenge = Challenge(
        id="save-50", name="Save $50", category=Category.FINANCIAL,
        starts_at=clock.now, ends_at=clock.now + timedelta(days=7),
        rewards=(PointsReward(points=50),),
    )
    quest = Quest(id="debt-free", name="Debt Free", rewards=(PointsReward(points=40),))
    run_async(progression.start_challenge(USER, challenge))
    run_async(progression.start_quest(USER, quest))

    # The client starts from the same authoritative snapshot
    client = ClientState(
        progress=run_async(progression.get_progress(USER)), catalog=progression.catalog,
    )
    client = reduce_all(
        client,
        [
            GainExperience(60),
            UnlockAchievement(BUDGET),
            CompleteChallenge("save-50"),
            ProgressQuest("debt-free", 100),
            GainExperience(30),
            UnlockAchievement(BUDGET),
        ],
        now=clock.now,
    )

    run_async(progression.award_experience(USER, 60, "fact"))
    run_async(progression.unlock_achievement(USER, BUDGET))
    run_async(progression.update_challenge_progress(USER, "save-50", 100))
    run_async(progression.progress_quest(USER, "debt-free", 100))
    run_async(progression.award_experience(USER, 30, "fact"))
    run_async(progression.unlock_achievement(USER, BUDGET))

    server = run_async(progression.get_progress(USER))
    assert _triple(client.progress) == _triple(server)
    assert server.experience == 350
    assert server.level == 3
    assert server.achievement_ids == {"first_budget", "level_2", "level_3"}


def test_overdue_challenge_converges(progression, clock):
    challenge = Challenge(
        id="c", name="Sprint", category=Category.FINANCIAL,
        starts_at=clock.now, ends_at=clock.now + timedelta(days=1),
        rewards=(PointsReward(points=50),),
    )
    run_async(progression.start_challenge(USER, challenge))
    client = ClientState(
        progress=run_async(progression.get_progress(USER)), catalog=progression.catalog,
    )
    clock.advance(days=3)

    client = reduce_all(client, [CompleteChallenge("c")], now=clock.now)
    run_async(progression.update_challenge_progress(USER, "c", 100))

    server = run_async(progression.get_progress(USER))
    assert _triple(client.progress) == _triple(server)
    assert server.experience == 0
    assert client.progress.completed_challenges[0].status_for(USER) is Status.FAILED
    assert server.completed_challenges[0].status_for(USER) is Status.FAILED
