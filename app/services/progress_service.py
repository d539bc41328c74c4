"""
Progress Service

Per-user, per-day task completion records for challenges.

A record is keyed by (challenge_id, user_id, date) where date is a calendar
day string (YYYY-MM-DD, UTC). total_score is always the number of completed
entries in completed_tasks.
"""

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Union

from app.core.database import (
    CHALLENGES_TABLE,
    PROGRESS_TABLE,
    DocumentStore,
    get_document_store,
)
from app.core.entity_validation import (
    load_challenge,
    require_participant,
    require_user,
)
from app.core.exceptions import ChallengeNotFoundError
from app.models.challenges import ChallengeProgress
from app.services.logger import logger


def today_iso() -> str:
    """Today's calendar day in UTC"""
    return datetime.now(timezone.utc).date().isoformat()


def normalize_day(value: Union[str, date]) -> str:
    if isinstance(value, date):
        return value.isoformat()
    return value


def score_tasks(completed_tasks: List[Dict[str, Any]]) -> int:
    return sum(1 for task in completed_tasks if task.get("completed"))


def blank_tasks(task_count: int) -> List[Dict[str, Any]]:
    return [
        {"task_index": index, "completed": False, "value": None}
        for index in range(task_count)
    ]


def create_initial_progress(
    store: DocumentStore,
    challenge: Dict[str, Any],
    user_id: str,
    day: Optional[str] = None,
) -> Optional[str]:
    """
    Create an all-incomplete record for a new member.

    Called inside the caller's transaction. Does nothing if the user
    already has a record for that day.

    Returns:
        The new record id, or None when one already existed
    """
    day = day or today_iso()
    existing = store.find_one(
        PROGRESS_TABLE,
        challenge_id=challenge["id"],
        user_id=user_id,
        date=day,
    )
    if existing:
        return None

    return store.insert(
        PROGRESS_TABLE,
        {
            "challenge_id": challenge["id"],
            "user_id": user_id,
            "date": day,
            "completed_tasks": blank_tasks(len(challenge.get("daily_tasks") or [])),
            "total_score": 0,
        },
    )


def delete_participant_progress(
    store: DocumentStore, challenge_id: str, user_id: str
) -> int:
    return store.delete_where(PROGRESS_TABLE, challenge_id=challenge_id, user_id=user_id)


class ProgressService:
    """Service for recording and reading challenge progress"""

    async def upsert_task(
        self,
        challenge_id: str,
        progress_date: Union[str, date],
        task_index: int,
        completed: bool,
        user_id: Optional[str],
        value: Optional[float] = None,
    ) -> ChallengeProgress:
        """
        Set one task's state for the caller on a given day.

        Overwrites the entry at task_index (completed and value) and
        recomputes total_score. When no record exists yet for that day one
        is created, sized to the challenge's current task list. Calling it
        again with the same arguments leaves the stored record unchanged.

        Args:
            challenge_id: Challenge ID
            progress_date: Calendar day (YYYY-MM-DD or date)
            task_index: Position of the task in the challenge's daily tasks
            completed: New completion state
            user_id: Caller
            value: Optional achieved value, replaces any previous value

        Returns:
            The stored progress record
        """
        user_id = require_user(user_id)
        day = normalize_day(progress_date)
        store = get_document_store()

        try:
            with store.transaction():
                existing = store.find_one(
                    PROGRESS_TABLE,
                    challenge_id=challenge_id,
                    user_id=user_id,
                    date=day,
                )

                if existing:
                    updated_tasks = []
                    for index, task in enumerate(existing.get("completed_tasks") or []):
                        if task.get("task_index", index) == task_index:
                            task = {**task, "completed": completed, "value": value}
                        updated_tasks.append(task)

                    store.patch(
                        PROGRESS_TABLE,
                        existing["id"],
                        {
                            "completed_tasks": updated_tasks,
                            "total_score": score_tasks(updated_tasks),
                        },
                    )
                    progress_id = existing["id"]
                else:
                    challenge = store.get(CHALLENGES_TABLE, challenge_id)
                    if not challenge:
                        raise ChallengeNotFoundError()

                    completed_tasks = blank_tasks(len(challenge.get("daily_tasks") or []))
                    for task in completed_tasks:
                        if task["task_index"] == task_index:
                            task["completed"] = completed
                            task["value"] = value

                    progress_id = store.insert(
                        PROGRESS_TABLE,
                        {
                            "challenge_id": challenge_id,
                            "user_id": user_id,
                            "date": day,
                            "completed_tasks": completed_tasks,
                            "total_score": score_tasks(completed_tasks),
                        },
                    )

                record = store.get(PROGRESS_TABLE, progress_id)

        except Exception as e:
            logger.error(
                f"Failed to update progress for challenge {challenge_id}",
                {
                    "error": str(e),
                    "challenge_id": challenge_id,
                    "user_id": user_id,
                    "date": day,
                    "task_index": task_index,
                },
            )
            raise

        logger.info(
            f"Progress updated for challenge {challenge_id}",
            {
                "challenge_id": challenge_id,
                "user_id": user_id,
                "date": day,
                "task_index": task_index,
                "completed": completed,
            },
        )

        return ChallengeProgress.model_validate(record)

    async def get_for_today(
        self, challenge_id: str, user_id: Optional[str]
    ) -> Optional[ChallengeProgress]:
        """
        Caller's record for today.

        None means nothing has been recorded today, i.e. every task is
        still incomplete.
        """
        if not user_id:
            return None

        record = get_document_store().find_one(
            PROGRESS_TABLE,
            challenge_id=challenge_id,
            user_id=user_id,
            date=today_iso(),
        )
        return ChallengeProgress.model_validate(record) if record else None

    async def get_history(
        self, challenge_id: str, user_id: Optional[str]
    ) -> List[ChallengeProgress]:
        """All of the caller's records for a challenge, oldest day first"""
        if not user_id:
            return []

        records = get_document_store().find(
            PROGRESS_TABLE, challenge_id=challenge_id, user_id=user_id
        )
        records.sort(key=lambda r: r.get("date", ""))
        return [ChallengeProgress.model_validate(r) for r in records]

    async def get_for_date(
        self,
        challenge_id: str,
        progress_date: Union[str, date],
        user_id: Optional[str],
    ) -> List[ChallengeProgress]:
        """Every participant's record for one day (participants only)"""
        user_id = require_user(user_id)
        store = get_document_store()

        challenge = load_challenge(store, challenge_id)
        require_participant(challenge, user_id)

        records = store.find(
            PROGRESS_TABLE,
            challenge_id=challenge_id,
            date=normalize_day(progress_date),
        )
        records.sort(key=lambda r: r.get("user_id", ""))
        return [ChallengeProgress.model_validate(r) for r in records]


# Global instance
progress_service = ProgressService()
