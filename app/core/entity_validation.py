"""
Entity validation utilities for challenges and invitations.

These helpers load the referenced documents and check the caller's role
before a service mutates anything. A missing document is reported as a
NotFound error, never as a crash.
"""

from typing import Any, Dict, Optional

from app.core.database import (
    CHALLENGES_TABLE,
    INVITATIONS_TABLE,
    DocumentStore,
)
from app.core.exceptions import (
    ChallengeNotFoundError,
    InvitationNotFoundError,
    UnauthenticatedError,
    UnauthorizedError,
)


def require_user(user_id: Optional[str]) -> str:
    """Return the caller's id or raise when no identity is present"""
    if not user_id:
        raise UnauthenticatedError()
    return user_id


def load_challenge(store: DocumentStore, challenge_id: str) -> Dict[str, Any]:
    challenge = store.get(CHALLENGES_TABLE, challenge_id)
    if not challenge:
        raise ChallengeNotFoundError()
    return challenge


def load_invitation(store: DocumentStore, invitation_id: str) -> Dict[str, Any]:
    invitation = store.get(INVITATIONS_TABLE, invitation_id)
    if not invitation:
        raise InvitationNotFoundError()
    return invitation


def is_creator(challenge: Dict[str, Any], user_id: str) -> bool:
    return challenge.get("created_by") == user_id


def is_participant(challenge: Dict[str, Any], user_id: str) -> bool:
    return user_id in (challenge.get("participants") or [])


def require_creator(challenge: Dict[str, Any], user_id: str, action: str) -> None:
    """
    Ensure the caller created the challenge.

    Args:
        challenge: Challenge record
        user_id: Caller
        action: Short phrase used in the error, e.g. "delete this challenge"
    """
    if not is_creator(challenge, user_id):
        raise UnauthorizedError(f"Only the challenge creator can {action}")


def require_participant(challenge: Dict[str, Any], user_id: str) -> None:
    if not is_participant(challenge, user_id):
        raise UnauthorizedError("You must be a participant in this challenge")


def can_view(challenge: Dict[str, Any], user_id: str) -> bool:
    """Public challenges are visible to everyone, private ones to members"""
    if challenge.get("is_public"):
        return True
    return is_creator(challenge, user_id) or is_participant(challenge, user_id)
