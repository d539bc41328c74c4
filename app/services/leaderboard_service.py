"""
Leaderboard Service

Ranks challenge participants by the sum of their daily scores.

The leaderboard is computed from progress records on every request and is
never stored: records for past days can still change.
"""

from typing import Dict, List

from app.core.database import CHALLENGES_TABLE, PROGRESS_TABLE, get_document_store
from app.models.challenges import LeaderboardEntry
from app.services.user_directory import user_directory


class LeaderboardService:
    """Computes challenge leaderboards on demand"""

    async def get_leaderboard(self, challenge_id: str) -> List[LeaderboardEntry]:
        """
        Sum total_score per user over every day of the challenge.

        Entries are sorted by score (highest first), then by user id so ties
        come back in a stable order. Users without a profile are left out.

        Args:
            challenge_id: Challenge ID

        Returns:
            Ranked entries, empty if the challenge does not exist
        """
        store = get_document_store()
        if not store.get(CHALLENGES_TABLE, challenge_id):
            return []

        scores: Dict[str, int] = {}
        for progress in store.find(PROGRESS_TABLE, challenge_id=challenge_id):
            user_id = progress["user_id"]
            scores[user_id] = scores.get(user_id, 0) + int(progress.get("total_score") or 0)

        users = user_directory.get_summaries(scores.keys(), store=store)

        ranked = sorted(
            (user_id for user_id in scores if user_id in users),
            key=lambda user_id: (-scores[user_id], user_id),
        )

        return [
            LeaderboardEntry(
                user_id=user_id,
                user_name=users[user_id].label(),
                total_score=scores[user_id],
                rank=rank,
            )
            for rank, user_id in enumerate(ranked, start=1)
        ]


# Global instance
leaderboard_service = LeaderboardService()
