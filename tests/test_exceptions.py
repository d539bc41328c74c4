from app.core.exceptions import (
    AlreadyMemberError,
    ChallengeError,
    ChallengeNotFoundError,
    NotFoundError,
    UserNotFoundError,
)


def test_default_messages():
    assert str(ChallengeError()) == "Challenge operation failed"
    assert str(ChallengeNotFoundError(None)) == "Challenge not found"
    assert str(AlreadyMemberError("Already in")) == "Already in"


def test_status_codes():
    assert UserNotFoundError.status_code == 404
    assert issubclass(UserNotFoundError, NotFoundError)
    assert AlreadyMemberError().status_code == 409
