"""
Challenges API endpoints
"""

from fastapi import APIRouter, HTTPException, status, Depends
from pydantic import BaseModel, Field, model_validator
from typing import List, Optional
import datetime as dt
from datetime import date, datetime
from app.core.auth import get_current_user
from app.core.exceptions import ChallengeError
from app.models.challenges import (
    Challenge,
    ChallengeCreated,
    ChallengeDetail,
    ChallengeInvitation,
    ChallengePreview,
    ChallengeProgress,
    DailyTask,
    LeaderboardEntry,
    ParticipantInfo,
    PendingInvitation,
)
from app.services.logger import logger
from app.services.challenge_service import challenge_service
from app.services.invitation_service import invitation_service
from app.services.leaderboard_service import leaderboard_service
from app.services.progress_service import progress_service

router = APIRouter(redirect_slashes=False)


def _http_error(error: ChallengeError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=str(error))


def _server_error(action: str, error: Exception, **context) -> HTTPException:
    logger.error(f"Failed to {action}", {"error": str(error), **context})
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}",
    )


def normalize_invite_code(invite_code: str) -> str:
    """Invite codes are stored upper case; users type them any way"""
    return invite_code.strip().upper()


class ChallengeCreate(BaseModel):
    """Request body for creating a challenge"""

    name: str = Field(..., min_length=1)
    description: str = ""
    start_date: datetime
    end_date: datetime
    is_public: bool = False
    daily_tasks: List[DailyTask] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class JoinByCodeRequest(BaseModel):
    invite_code: str = Field(..., min_length=1)


class JoinResponse(BaseModel):
    challenge_id: str


class ChallengeInviteRequest(BaseModel):
    user_id: str  # User to invite


class InvitationResponseRequest(BaseModel):
    accept: bool


class ProgressUpdateRequest(BaseModel):
    date: dt.date
    task_index: int = Field(..., ge=0)
    completed: bool
    value: Optional[float] = None


@router.post("", response_model=ChallengeCreated, status_code=status.HTTP_201_CREATED)
async def create_challenge(
    challenge_data: ChallengeCreate,
    current_user: dict = Depends(get_current_user),
):
    """Create a new challenge"""
    user_id = current_user["id"]

    try:
        return await challenge_service.create_challenge(
            user_id=user_id,
            name=challenge_data.name,
            description=challenge_data.description,
            start_date=challenge_data.start_date,
            end_date=challenge_data.end_date,
            is_public=challenge_data.is_public,
            daily_tasks=challenge_data.daily_tasks,
        )
    except ChallengeError as e:
        raise _http_error(e)
    except Exception as e:
        raise _server_error("create challenge", e, user_id=user_id)


@router.get("/my", response_model=List[Challenge])
async def get_my_challenges(current_user: dict = Depends(get_current_user)):
    """Challenges created or joined by the current user"""
    try:
        return await challenge_service.get_my_challenges(current_user["id"])
    except Exception as e:
        raise _server_error("retrieve challenges", e, user_id=current_user["id"])


@router.get("/public", response_model=List[Challenge])
async def get_public_challenges(current_user: dict = Depends(get_current_user)):
    """Public challenges for discovery"""
    try:
        return await challenge_service.get_public_challenges()
    except Exception as e:
        raise _server_error(
            "retrieve public challenges", e, user_id=current_user["id"]
        )


@router.get("/code/{invite_code}", response_model=ChallengePreview)
async def get_challenge_by_invite_code(invite_code: str):
    """
    Preview a challenge from its invite link.

    No authentication: the link is opened before signing in.
    """
    try:
        preview = await challenge_service.get_by_invite_code(
            normalize_invite_code(invite_code)
        )
    except Exception as e:
        raise _server_error("look up invite code", e)

    if preview is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Invalid invite code"
        )
    return preview


@router.post("/join", response_model=JoinResponse)
async def join_challenge_by_code(
    join_data: JoinByCodeRequest,
    current_user: dict = Depends(get_current_user),
):
    """Join a challenge with its invite code"""
    user_id = current_user["id"]

    try:
        challenge_id = await challenge_service.join_by_code(
            normalize_invite_code(join_data.invite_code), user_id
        )
        return {"challenge_id": challenge_id}
    except ChallengeError as e:
        raise _http_error(e)
    except Exception as e:
        raise _server_error("join challenge", e, user_id=user_id)


@router.post("/join-after-signup", response_model=JoinResponse)
async def join_challenge_after_signup(
    join_data: JoinByCodeRequest,
    current_user: dict = Depends(get_current_user),
):
    """Auto-join after signing up from an invite link; already joined is fine"""
    user_id = current_user["id"]

    try:
        challenge_id = await challenge_service.join_after_signup(
            normalize_invite_code(join_data.invite_code), user_id
        )
        return {"challenge_id": challenge_id}
    except ChallengeError as e:
        raise _http_error(e)
    except Exception as e:
        raise _server_error("join challenge", e, user_id=user_id)


# =====================================================
# Challenge Invitation Endpoints
# =====================================================


@router.get("/invites/pending", response_model=List[PendingInvitation])
async def get_pending_invitations(current_user: dict = Depends(get_current_user)):
    """Invitations waiting for the current user's answer"""
    try:
        return await invitation_service.get_pending(current_user["id"])
    except Exception as e:
        raise _server_error(
            "get challenge invites", e, user_id=current_user["id"]
        )


@router.post("/invites/{invitation_id}/respond", response_model=JoinResponse)
async def respond_to_invitation(
    invitation_id: str,
    response_data: InvitationResponseRequest,
    current_user: dict = Depends(get_current_user),
):
    """Accept or decline a challenge invitation"""
    user_id = current_user["id"]

    try:
        challenge_id = await invitation_service.respond(
            invitation_id, response_data.accept, user_id
        )
        return {"challenge_id": challenge_id}
    except ChallengeError as e:
        raise _http_error(e)
    except Exception as e:
        raise _server_error(
            "respond to invite", e, invitation_id=invitation_id, user_id=user_id
        )


# =====================================================
# Single Challenge Endpoints
# =====================================================


@router.get("/{challenge_id}", response_model=ChallengeDetail)
async def get_challenge(
    challenge_id: str,
    current_user: dict = Depends(get_current_user),
):
    """Challenge detail with the current user's role"""
    try:
        return await challenge_service.get_challenge(challenge_id, current_user["id"])
    except ChallengeError as e:
        raise _http_error(e)
    except Exception as e:
        raise _server_error(
            "retrieve challenge", e, challenge_id=challenge_id
        )


@router.delete("/{challenge_id}")
async def delete_challenge(
    challenge_id: str,
    current_user: dict = Depends(get_current_user),
):
    """
    Delete a challenge permanently.

    Only the creator can delete a challenge. All progress and invitations
    for it are deleted too.
    """
    try:
        await challenge_service.delete_challenge(challenge_id, current_user["id"])
    except ChallengeError as e:
        raise _http_error(e)
    except Exception as e:
        raise _server_error(
            "delete challenge", e, challenge_id=challenge_id, user_id=current_user["id"]
        )

    return {"message": "Challenge deleted successfully"}


@router.post(
    "/{challenge_id}/invite",
    response_model=ChallengeInvitation,
    status_code=status.HTTP_201_CREATED,
)
async def send_challenge_invite(
    challenge_id: str,
    invite_data: ChallengeInviteRequest,
    current_user: dict = Depends(get_current_user),
):
    """Invite a user to the challenge (creator only)"""
    try:
        return await challenge_service.invite_user(
            challenge_id, invite_data.user_id, current_user["id"]
        )
    except ChallengeError as e:
        raise _http_error(e)
    except Exception as e:
        raise _server_error(
            "send invite", e, challenge_id=challenge_id, user_id=current_user["id"]
        )


@router.delete("/{challenge_id}/participants/{participant_id}")
async def remove_participant(
    challenge_id: str,
    participant_id: str,
    current_user: dict = Depends(get_current_user),
):
    """Remove a participant and their progress (creator only)"""
    try:
        await challenge_service.remove_participant(
            challenge_id, participant_id, current_user["id"]
        )
    except ChallengeError as e:
        raise _http_error(e)
    except Exception as e:
        raise _server_error(
            "remove participant",
            e,
            challenge_id=challenge_id,
            participant_id=participant_id,
        )

    return {"success": True}


@router.post("/{challenge_id}/leave")
async def leave_challenge(
    challenge_id: str,
    current_user: dict = Depends(get_current_user),
):
    """Leave a challenge; removes the current user's progress"""
    try:
        await challenge_service.leave_challenge(challenge_id, current_user["id"])
    except ChallengeError as e:
        raise _http_error(e)
    except Exception as e:
        raise _server_error(
            "leave challenge", e, challenge_id=challenge_id, user_id=current_user["id"]
        )

    return {"message": "You have left the challenge"}


@router.get("/{challenge_id}/participants", response_model=List[ParticipantInfo])
async def get_challenge_participants(
    challenge_id: str,
    current_user: dict = Depends(get_current_user),
):
    try:
        return await challenge_service.get_participants(challenge_id)
    except Exception as e:
        raise _server_error("get participants", e, challenge_id=challenge_id)


@router.get("/{challenge_id}/leaderboard", response_model=List[LeaderboardEntry])
async def get_challenge_leaderboard(
    challenge_id: str,
    current_user: dict = Depends(get_current_user),
):
    """Get challenge leaderboard"""
    try:
        return await leaderboard_service.get_leaderboard(challenge_id)
    except Exception as e:
        raise _server_error("retrieve leaderboard", e, challenge_id=challenge_id)


# =====================================================
# Challenge Progress Endpoints
# =====================================================


@router.put("/{challenge_id}/progress", response_model=ChallengeProgress)
async def update_challenge_progress(
    challenge_id: str,
    progress_data: ProgressUpdateRequest,
    current_user: dict = Depends(get_current_user),
):
    """Mark one daily task complete or incomplete for a day"""
    try:
        return await progress_service.upsert_task(
            challenge_id=challenge_id,
            progress_date=progress_data.date,
            task_index=progress_data.task_index,
            completed=progress_data.completed,
            value=progress_data.value,
            user_id=current_user["id"],
        )
    except ChallengeError as e:
        raise _http_error(e)
    except Exception as e:
        raise _server_error(
            "update progress", e, challenge_id=challenge_id, user_id=current_user["id"]
        )


@router.get("/{challenge_id}/progress/today", response_model=Optional[ChallengeProgress])
async def get_todays_progress(
    challenge_id: str,
    current_user: dict = Depends(get_current_user),
):
    """Today's record, or null if nothing was recorded yet today"""
    try:
        return await progress_service.get_for_today(challenge_id, current_user["id"])
    except Exception as e:
        raise _server_error("get progress", e, challenge_id=challenge_id)


@router.get(
    "/{challenge_id}/progress/history", response_model=List[ChallengeProgress]
)
async def get_progress_history(
    challenge_id: str,
    current_user: dict = Depends(get_current_user),
):
    try:
        return await progress_service.get_history(challenge_id, current_user["id"])
    except Exception as e:
        raise _server_error("get progress history", e, challenge_id=challenge_id)


@router.get(
    "/{challenge_id}/progress/{progress_date}", response_model=List[ChallengeProgress]
)
async def get_progress_for_date(
    challenge_id: str,
    progress_date: date,
    current_user: dict = Depends(get_current_user),
):
    """Every participant's progress for one day"""
    try:
        return await progress_service.get_for_date(
            challenge_id, progress_date, current_user["id"]
        )
    except ChallengeError as e:
        raise _http_error(e)
    except Exception as e:
        raise _server_error("get progress", e, challenge_id=challenge_id)
