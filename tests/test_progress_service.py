"""Tests for daily task progress."""

from datetime import date, datetime, timezone

import pytest

from app.core.database import PROGRESS_TABLE
from app.core.exceptions import (
    ChallengeNotFoundError,
    UnauthenticatedError,
    UnauthorizedError,
)
from app.services.challenge_service import ChallengeService
from app.services.progress_service import (
    progress_service,
    score_tasks,
    today_iso,
)

THREE_TASKS = [
    {"name": "Walk", "target": 10000, "unit": "steps"},
    {"name": "Water", "target": 8, "unit": "glasses"},
    {"name": "Stretch"},
]


@pytest.fixture
def challenge_setup(make_user):
    """A three-task challenge with a creator and one joined member"""
    creator, member = make_user("Creator"), make_user("Member")
    service = ChallengeService(code_generator=lambda: "PROG01")

    async def _setup():
        created = await service.create_challenge(
            user_id=creator,
            name="Hydrate",
            description="",
            start_date=datetime(2024, 1, 1, tzinfo=timezone.utc),
            end_date=datetime(2024, 1, 31, tzinfo=timezone.utc),
            is_public=False,
            daily_tasks=THREE_TASKS,
        )
        await service.join_by_code("PROG01", member)
        return created.challenge_id

    return creator, member, _setup


def entries(progress):
    return [(t.task_index, t.completed) for t in progress.completed_tasks]


@pytest.mark.asyncio
async def test_first_update_creates_record(store, challenge_setup):
    _, member, setup = challenge_setup
    challenge_id = await setup()

    progress = await progress_service.upsert_task(challenge_id, "2024-01-01", 0, True, member)

    assert progress.date == "2024-01-01"
    assert entries(progress) == [(0, True), (1, False), (2, False)]
    assert progress.total_score == 1
    assert len(store.find(PROGRESS_TABLE, challenge_id=challenge_id, user_id=member, date="2024-01-01")) == 1


@pytest.mark.asyncio
async def test_update_is_idempotent(store, challenge_setup):
    _, member, setup = challenge_setup
    challenge_id = await setup()

    first = await progress_service.upsert_task(challenge_id, "2024-01-01", 0, True, member, value=9000)
    second = await progress_service.upsert_task(challenge_id, "2024-01-01", 0, True, member, value=9000)

    assert first.id == second.id
    assert first.model_dump() == second.model_dump()
    assert len(store.find(PROGRESS_TABLE, challenge_id=challenge_id, user_id=member, date="2024-01-01")) == 1


@pytest.mark.asyncio
async def test_update_overwrites_completed_and_value(store, challenge_setup):
    _, member, setup = challenge_setup
    challenge_id = await setup()

    await progress_service.upsert_task(challenge_id, "2024-01-01", 1, True, member, value=8)
    await progress_service.upsert_task(challenge_id, "2024-01-01", 2, True, member)
    progress = await progress_service.upsert_task(challenge_id, "2024-01-01", 1, False, member)

    assert entries(progress) == [(0, False), (1, False), (2, True)]
    assert progress.completed_tasks[1].value is None
    assert progress.total_score == 1


@pytest.mark.asyncio
async def test_score_always_matches_completed_entries(store, challenge_setup):
    _, member, setup = challenge_setup
    challenge_id = await setup()

    steps = [(0, True), (1, True), (2, True), (0, False), (2, False), (1, True)]
    for task_index, completed in steps:
        await progress_service.upsert_task(challenge_id, "2024-01-03", task_index, completed, member)
        record = store.find_one(PROGRESS_TABLE, challenge_id=challenge_id, user_id=member, date="2024-01-03")
        assert record["total_score"] == score_tasks(record["completed_tasks"])

    assert record["total_score"] == 1


@pytest.mark.asyncio
async def test_accepts_date_objects(store, challenge_setup):
    _, member, setup = challenge_setup
    challenge_id = await setup()

    progress = await progress_service.upsert_task(challenge_id, date(2024, 1, 2), 0, True, member)

    assert progress.date == "2024-01-02"


@pytest.mark.asyncio
async def test_update_for_missing_challenge(store, make_user):
    with pytest.raises(ChallengeNotFoundError):
        await progress_service.upsert_task("missing", "2024-01-01", 0, True, make_user())
    assert store.count(PROGRESS_TABLE) == 0


@pytest.mark.asyncio
async def test_update_requires_identity(store, challenge_setup):
    _, _, setup = challenge_setup
    challenge_id = await setup()

    with pytest.raises(UnauthenticatedError):
        await progress_service.upsert_task(challenge_id, "2024-01-01", 0, True, None)


@pytest.mark.asyncio
async def test_get_for_today(store, challenge_setup, make_user):
    creator, member, setup = challenge_setup
    challenge_id = await setup()

    today = await progress_service.get_for_today(challenge_id, member)
    assert today is not None
    assert today.date == today_iso()
    assert today.total_score == 0

    assert await progress_service.get_for_today(challenge_id, None) is None
    assert await progress_service.get_for_today(challenge_id, make_user()) is None


@pytest.mark.asyncio
async def test_get_history_sorted_by_day(store, challenge_setup):
    _, member, setup = challenge_setup
    challenge_id = await setup()
    await progress_service.upsert_task(challenge_id, "2024-01-03", 0, True, member)
    await progress_service.upsert_task(challenge_id, "2024-01-01", 0, True, member)

    history = await progress_service.get_history(challenge_id, member)

    days = [p.date for p in history]
    assert days == sorted(days)
    assert "2024-01-01" in days and "2024-01-03" in days
    assert await progress_service.get_history(challenge_id, None) == []


@pytest.mark.asyncio
async def test_get_for_date(store, challenge_setup, make_user):
    creator, member, setup = challenge_setup
    challenge_id = await setup()
    await progress_service.upsert_task(challenge_id, "2024-01-05", 0, True, member)
    await progress_service.upsert_task(challenge_id, "2024-01-05", 2, True, creator)

    day = await progress_service.get_for_date(challenge_id, "2024-01-05", creator)

    assert sorted(p.user_id for p in day) == sorted([creator, member])

    with pytest.raises(UnauthorizedError):
        await progress_service.get_for_date(challenge_id, "2024-01-05", make_user())
    with pytest.raises(ChallengeNotFoundError):
        await progress_service.get_for_date("missing", "2024-01-05", creator)
