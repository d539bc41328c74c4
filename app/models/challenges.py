from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


ChallengeStatus = Literal["pending", "active", "completed"]
InvitationStatus = Literal["pending", "accepted", "declined"]


class DailyTask(BaseModel):
    name: str = Field(..., description="Task name shown to participants")
    description: str = Field("", description="What completing the task means")
    target: Optional[float] = Field(
        None, description="Optional numeric target, e.g. 10000 for steps"
    )
    unit: Optional[str] = Field(None, description="Unit for target, e.g. steps")


class Challenge(BaseModel):
    id: str
    name: str
    description: str = ""
    start_date: datetime
    end_date: datetime
    is_public: bool = False
    invite_code: str
    daily_tasks: List[DailyTask] = Field(default_factory=list)
    participants: List[str] = Field(default_factory=list)
    created_by: str
    status: ChallengeStatus = "pending"
    created_at: Optional[datetime] = None


class ChallengeCreated(BaseModel):
    challenge_id: str
    invite_code: str


class ChallengeDetail(Challenge):
    is_creator: bool = False
    is_participant: bool = False
    participants_count: int = 0


class ChallengePreview(Challenge):
    """Challenge as seen through an invite link, before joining"""

    creator_name: str
    participant_count: int


class ChallengeSummary(BaseModel):
    id: str
    name: str
    description: str = ""
    start_date: datetime
    end_date: datetime
    is_public: bool = False
    status: ChallengeStatus = "pending"
    created_by: str


class TaskCompletion(BaseModel):
    task_index: int
    completed: bool = False
    value: Optional[float] = Field(None, description="Actual value achieved")


class ChallengeProgress(BaseModel):
    id: str
    challenge_id: str
    user_id: str
    date: str = Field(..., description="Calendar day, YYYY-MM-DD")
    completed_tasks: List[TaskCompletion] = Field(default_factory=list)
    total_score: int = 0


class ChallengeInvitation(BaseModel):
    id: str
    challenge_id: str
    invited_by: str
    invited_user: str
    status: InvitationStatus = "pending"
    sent_at: datetime
    responded_at: Optional[datetime] = None


class PendingInvitation(ChallengeInvitation):
    challenge: ChallengeSummary
    inviter_name: str


class UserSummary(BaseModel):
    """The parts of a user document this service reads"""

    id: str
    display_name: Optional[str] = None
    contact_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "UserSummary":
        return cls(
            id=record["id"],
            display_name=record.get("name") or None,
            contact_id=record.get("email") or None,
        )

    def label(self, fallback: str = "Anonymous") -> str:
        return self.display_name or self.contact_id or fallback


class ParticipantInfo(BaseModel):
    user_id: str
    name: str
    email: str = ""
    is_creator: bool = False


class LeaderboardEntry(BaseModel):
    user_id: str
    user_name: str
    total_score: int
    rank: int
