import asyncio
import json
import random
from datetime import datetime, timezone

import pytest

from prepal.ledger import MasteryLedger
from prepal.models import (
    GameLevel, PrepositionCategory, QuestionResult, UserProgress, level_for_xp,
)

L1 = GameLevel.LEVEL_1
LOCATION = PrepositionCategory.LOCATION


def correct(xp: int = 10, level: GameLevel = L1, category=LOCATION) -> QuestionResult:
    return QuestionResult(level, category, True, xp)


def wrong(level: GameLevel = L1, category=LOCATION) -> QuestionResult:
    return QuestionResult(level, category, False, 0)


def test_new_learner_starts_from_zero(db) -> None:
    progress = asyncio.run(MasteryLedger(db).get_progress())
    assert progress == UserProgress()
    assert progress.level == 1


def test_first_correct_answer_of_fifty_xp(db) -> None:
    progress = asyncio.run(MasteryLedger(db).record_result(correct(50)))
    assert progress.total_xp == 50
    assert progress.level == 2
    assert progress.current_streak == 1
    assert progress.best_streak == 1
    assert progress.questions_answered == 1
    assert progress.correct_answers == 1


def test_wrong_answer_resets_streak_but_keeps_best(db) -> None:
    ledger = MasteryLedger(db)

    async def scenario():
        for _ in range(3):
            await ledger.record_result(correct())
        return await ledger.record_result(wrong())

    progress = asyncio.run(scenario())
    assert progress.current_streak == 0
    assert progress.best_streak == 3
    assert progress.total_xp == 30


def test_level_and_category_stats_accumulate(db) -> None:
    ledger = MasteryLedger(db)

    async def scenario():
        await ledger.record_result(correct(level=GameLevel.LEVEL_3))
        await ledger.record_result(wrong(level=GameLevel.LEVEL_3))
        await ledger.record_result(correct(category=PrepositionCategory.TIME))
        await ledger.record_result(QuestionResult(L1, None, True, 10))
        return await ledger.get_progress()

    progress = asyncio.run(scenario())
    assert progress.level_stats["L3"] == {"correct": 1, "total": 2}
    assert progress.level_stats["L1"] == {"correct": 2, "total": 2}
    assert progress.category_stats["Location"] == {"correct": 1, "total": 2}
    assert progress.category_stats["Time"] == {"correct": 1, "total": 1}
    assert progress.level_accuracy(GameLevel.LEVEL_3) == 0.5
    assert progress.category_accuracy(PrepositionCategory.CAUSE) == 0.0
    assert progress.accuracy == 0.75


def test_level_and_xp_never_decrease(db) -> None:
    ledger = MasteryLedger(db)
    rng = random.Random(2)
    results = [correct(rng.choice([10, 20, 50, 100])) if rng.random() < 0.6 else wrong() for _ in range(40)]

    async def scenario():
        return [await ledger.record_result(r) for r in results]

    snapshots = [(p.total_xp, p.level) for p in asyncio.run(scenario())]
    for (xp_a, level_a), (xp_b, level_b) in zip(snapshots, snapshots[1:]):
        assert xp_b >= xp_a
        assert level_b >= level_a
    assert all(level == level_for_xp(xp) for xp, level in snapshots)


def test_level_curve() -> None:
    assert [level_for_xp(xp) for xp in (0, 49, 50, 199, 200, 450)] == [1, 1, 2, 2, 3, 4]


def test_last_played_is_recorded(db) -> None:
    now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    progress = asyncio.run(MasteryLedger(db).record_result(correct(), now=now))
    assert progress.last_played == now.isoformat()


def test_concurrent_submissions_are_not_lost(db) -> None:
    ledger = MasteryLedger(db)

    async def scenario():
        await asyncio.gather(*(ledger.record_result(correct()) for _ in range(20)))
        return await ledger.get_progress()

    progress = asyncio.run(scenario())
    assert progress.questions_answered == 20
    assert progress.total_xp == 200


def test_history_is_appended_per_answer(db) -> None:
    ledger = MasteryLedger(db)

    async def scenario():
        await ledger.record_result(correct(10))
        await ledger.record_result(wrong())
        return await ledger.recent_history(limit=5)

    history = asyncio.run(scenario())
    assert [entry["is_correct"] for entry in history] == [False, True]
    assert history[1]["xp_earned"] == 10
    assert all("timestamp" in entry for entry in history)


def test_learners_are_tracked_separately(db) -> None:
    ledger = MasteryLedger(db)

    async def scenario():
        await ledger.record_result(correct(50), user_id="alice")
        await ledger.record_result(wrong(), user_id="bob")
        return await ledger.get_progress("alice"), await ledger.get_progress("bob")

    alice, bob = asyncio.run(scenario())
    assert (alice.total_xp, alice.current_streak) == (50, 1)
    assert (bob.total_xp, bob.questions_answered) == (0, 1)


def test_stored_level_is_recomputed_from_xp() -> None:
    progress = UserProgress.from_dict(json.loads('{"total_xp": 200, "level": 99, "unknown": 1}'))
    assert progress.level == 3


@pytest.mark.parametrize("payload", ["[]", "null", "42", '"progress"'])
def test_non_object_progress_payload_starts_fresh(db, payload) -> None:
    ledger = MasteryLedger(db)

    async def scenario():
        await db.save_progress("default_user", payload, "{}")
        before = await ledger.get_progress()
        after = await ledger.record_result(correct(50))
        return before, after

    before, after = asyncio.run(scenario())
    assert before == UserProgress()
    assert after.questions_answered == 1
    assert after.total_xp == 50


def test_progress_document_must_be_an_object() -> None:
    with pytest.raises(TypeError):
        UserProgress.from_dict([])
    with pytest.raises(TypeError):
        UserProgress.from_dict(None)
