"""
Challenge domain errors.

Every failure a challenge operation can report is one of these classes.
Each carries the HTTP status the API layer answers with, so endpoints can
translate them without a lookup table.
"""

from typing import Optional

from fastapi import status


class ChallengeError(Exception):
    """Base class for failures scoped to a single challenge operation"""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Challenge operation failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)


class UnauthenticatedError(ChallengeError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authenticated"


class UnauthorizedError(ChallengeError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You are not allowed to perform this action"


class NotFoundError(ChallengeError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ChallengeNotFoundError(NotFoundError):
    default_message = "Challenge not found"


class InvitationNotFoundError(NotFoundError):
    default_message = "Invitation not found"


class UserNotFoundError(NotFoundError):
    default_message = "User not found"


class ConflictError(ChallengeError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflicting challenge state"


class AlreadyMemberError(ConflictError):
    default_message = "Already participating in this challenge"


class AlreadyInvitedError(ConflictError):
    default_message = "User already invited"


class CannotRemoveCreatorError(ConflictError):
    default_message = "Cannot remove the challenge creator"


class NotAParticipantError(ConflictError):
    default_message = "User is not a participant in this challenge"


class InvitationAlreadyRespondedError(ConflictError):
    default_message = "Invitation has already been responded to"


class InviteCodeExhaustedError(ChallengeError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Could not allocate a unique invite code"
