"""
Challenge Service

Handles challenge creation, membership (invite codes, invitations, removal)
and deletion.
"""

import secrets
import string
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from app.core.config import settings
from app.core.database import (
    CHALLENGES_TABLE,
    INVITATIONS_TABLE,
    PROGRESS_TABLE,
    DocumentStore,
    DuplicateKeyError,
    get_document_store,
)
from app.core.entity_validation import (
    can_view,
    is_creator,
    is_participant,
    load_challenge,
    require_creator,
    require_user,
)
from app.core.exceptions import (
    AlreadyInvitedError,
    AlreadyMemberError,
    CannotRemoveCreatorError,
    ChallengeNotFoundError,
    InviteCodeExhaustedError,
    NotAParticipantError,
    UnauthorizedError,
    UserNotFoundError,
)
from app.models.challenges import (
    Challenge,
    ChallengeCreated,
    ChallengeDetail,
    ChallengeInvitation,
    ChallengePreview,
    DailyTask,
    ParticipantInfo,
)
from app.services.logger import logger
from app.services.progress_service import (
    create_initial_progress,
    delete_participant_progress,
)
from app.services.user_directory import user_directory

# Base 36, upper case
INVITE_CODE_ALPHABET = string.digits + string.ascii_uppercase


def generate_invite_code(length: Optional[int] = None) -> str:
    """Random base-36 invite code (6 characters by default)"""
    length = length or settings.INVITE_CODE_LENGTH
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(length))


def add_participant(
    store: DocumentStore, challenge: Dict[str, Any], user_id: str
) -> bool:
    """
    Append user_id to the roster and create today's blank progress record.

    The append is a single atomic store call, so concurrent joins never
    overwrite each other. Must run inside the caller's transaction.

    Returns:
        False if the user was already on the roster (nothing is written)
    """
    if not store.add_to_array(CHALLENGES_TABLE, challenge["id"], "participants", user_id):
        return False

    challenge["participants"] = list(challenge.get("participants") or []) + [user_id]
    create_initial_progress(store, challenge, user_id)
    return True


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ChallengeService:
    """Service for managing challenges"""

    def __init__(self, code_generator: Optional[Callable[[], str]] = None):
        self.code_generator = code_generator or generate_invite_code

    async def create_challenge(
        self,
        user_id: Optional[str],
        name: str,
        description: str,
        start_date: datetime,
        end_date: datetime,
        is_public: bool,
        daily_tasks: Sequence[Union[DailyTask, Dict[str, Any]]],
    ) -> ChallengeCreated:
        """
        Create a new challenge with the caller as creator and first participant.

        A fresh invite code is drawn until one is found that no other
        challenge uses. The creator gets a blank progress record for today.

        Args:
            user_id: User creating the challenge
            name: Challenge name
            description: Challenge description
            start_date: Start timestamp
            end_date: End timestamp
            is_public: Whether the challenge is listed publicly
            daily_tasks: Ordered task definitions

        Returns:
            The new challenge id and invite code
        """
        user_id = require_user(user_id)
        tasks = [
            (task if isinstance(task, DailyTask) else DailyTask.model_validate(task)).model_dump()
            for task in daily_tasks
        ]
        challenge = {
            "name": name,
            "description": description,
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "is_public": is_public,
            "daily_tasks": tasks,
            "participants": [user_id],
            "created_by": user_id,
            "status": "pending",  # Never advanced automatically
            "created_at": _utcnow_iso(),
        }

        store = get_document_store()

        try:
            with store.transaction():
                challenge_id = None
                invite_code = None
                for attempt in range(1, settings.INVITE_CODE_MAX_ATTEMPTS + 1):
                    invite_code = self.code_generator()
                    if store.find_one(CHALLENGES_TABLE, invite_code=invite_code):
                        logger.warning(
                            f"Invite code collision on attempt {attempt}",
                            {"user_id": user_id, "attempt": attempt},
                        )
                        continue
                    try:
                        challenge_id = store.insert(
                            CHALLENGES_TABLE, {**challenge, "invite_code": invite_code}
                        )
                    except DuplicateKeyError:
                        # Lost a race with a concurrent create
                        logger.warning(
                            f"Invite code taken concurrently on attempt {attempt}",
                            {"user_id": user_id, "attempt": attempt},
                        )
                        continue
                    break

                if challenge_id is None:
                    raise InviteCodeExhaustedError()

                create_initial_progress(
                    store, {**challenge, "id": challenge_id}, user_id
                )

        except Exception as e:
            logger.error(
                f"Failed to create challenge for user {user_id}",
                {"error": str(e), "user_id": user_id, "name": name},
            )
            raise

        logger.info(
            f"Created challenge '{name}' by user {user_id}",
            {
                "challenge_id": challenge_id,
                "user_id": user_id,
                "task_count": len(tasks),
            },
        )

        return ChallengeCreated(challenge_id=challenge_id, invite_code=invite_code)

    async def join_by_code(self, invite_code: str, user_id: Optional[str]) -> str:
        """
        Join a challenge by its invite code.

        The code is matched exactly; callers normalise case first.

        Returns:
            The joined challenge id
        """
        return await self._join_by_code(invite_code, user_id, allow_existing=False)

    async def join_after_signup(self, invite_code: str, user_id: Optional[str]) -> str:
        """
        Same as join_by_code, but succeeds quietly if the caller is already
        a member (used by the post-signup auto-join flow).
        """
        return await self._join_by_code(invite_code, user_id, allow_existing=True)

    async def _join_by_code(
        self, invite_code: str, user_id: Optional[str], allow_existing: bool
    ) -> str:
        user_id = require_user(user_id)
        store = get_document_store()

        with store.transaction():
            challenge = store.find_one(CHALLENGES_TABLE, invite_code=invite_code)
            if not challenge:
                raise ChallengeNotFoundError()

            if is_participant(challenge, user_id) or not add_participant(
                store, challenge, user_id
            ):
                if allow_existing:
                    return challenge["id"]
                raise AlreadyMemberError()

        logger.info(
            f"User {user_id} joined challenge {challenge['id']}",
            {"challenge_id": challenge["id"], "user_id": user_id},
        )

        return challenge["id"]

    async def invite_user(
        self, challenge_id: str, invited_user_id: str, user_id: Optional[str]
    ) -> ChallengeInvitation:
        """
        Invite a specific user to a challenge (creator only).

        At most one pending invitation may exist per (challenge, invitee).
        """
        user_id = require_user(user_id)
        store = get_document_store()

        with store.transaction():
            challenge = load_challenge(store, challenge_id)
            require_creator(challenge, user_id, "invite users")

            if not user_directory.get_summary(invited_user_id, store=store):
                raise UserNotFoundError("Invited user not found")

            if is_participant(challenge, invited_user_id):
                raise AlreadyMemberError("User is already a participant in this challenge")

            pending = store.find_one(
                INVITATIONS_TABLE,
                challenge_id=challenge_id,
                invited_user=invited_user_id,
                status="pending",
            )
            if pending:
                raise AlreadyInvitedError()

            try:
                invitation_id = store.insert(
                    INVITATIONS_TABLE,
                    {
                        "challenge_id": challenge_id,
                        "invited_by": user_id,
                        "invited_user": invited_user_id,
                        "status": "pending",
                        "sent_at": _utcnow_iso(),
                        "responded_at": None,
                    },
                )
            except DuplicateKeyError as e:
                # One pending invitation per (challenge, invitee) index
                raise AlreadyInvitedError() from e
            invitation = store.get(INVITATIONS_TABLE, invitation_id)

        logger.info(
            f"Challenge invite sent",
            {
                "challenge_id": challenge_id,
                "invited_by": user_id,
                "invited_user": invited_user_id,
            },
        )

        return ChallengeInvitation.model_validate(invitation)

    async def remove_participant(
        self, challenge_id: str, participant_id: str, user_id: Optional[str]
    ) -> None:
        """Remove a participant and all of their progress (creator only)"""
        user_id = require_user(user_id)
        store = get_document_store()

        with store.transaction():
            challenge = load_challenge(store, challenge_id)
            require_creator(challenge, user_id, "remove participants")

            if participant_id == challenge["created_by"]:
                raise CannotRemoveCreatorError()

            removed = self._drop_participant(store, challenge, participant_id)

        logger.info(
            f"User {participant_id} removed from challenge {challenge_id}",
            {
                "challenge_id": challenge_id,
                "removed_by": user_id,
                "participant_id": participant_id,
                "progress_deleted": removed,
            },
        )

    async def leave_challenge(self, challenge_id: str, user_id: Optional[str]) -> None:
        """
        Leave a challenge as a participant.

        The creator cannot leave; they can delete the challenge instead.
        """
        user_id = require_user(user_id)
        store = get_document_store()

        with store.transaction():
            challenge = load_challenge(store, challenge_id)

            if is_creator(challenge, user_id):
                raise CannotRemoveCreatorError(
                    "As the creator, you cannot leave the challenge. Delete it instead."
                )

            removed = self._drop_participant(store, challenge, user_id)

        logger.info(
            f"User {user_id} left challenge {challenge_id}",
            {
                "challenge_id": challenge_id,
                "user_id": user_id,
                "progress_deleted": removed,
            },
        )

    def _drop_participant(
        self, store: DocumentStore, challenge: Dict[str, Any], participant_id: str
    ) -> int:
        if not store.remove_from_array(
            CHALLENGES_TABLE, challenge["id"], "participants", participant_id
        ):
            raise NotAParticipantError()

        return delete_participant_progress(store, challenge["id"], participant_id)

    async def delete_challenge(self, challenge_id: str, user_id: Optional[str]) -> None:
        """
        Delete a challenge permanently (creator only).

        Progress records and invitations go first, then the challenge.
        """
        user_id = require_user(user_id)
        store = get_document_store()

        with store.transaction():
            challenge = load_challenge(store, challenge_id)
            require_creator(challenge, user_id, "delete this challenge")

            progress_deleted = store.delete_where(PROGRESS_TABLE, challenge_id=challenge_id)
            invitations_deleted = store.delete_where(
                INVITATIONS_TABLE, challenge_id=challenge_id
            )
            store.delete(CHALLENGES_TABLE, challenge_id)

        logger.info(
            f"Challenge {challenge_id} deleted by creator {user_id}",
            {
                "challenge_id": challenge_id,
                "user_id": user_id,
                "progress_deleted": progress_deleted,
                "invitations_deleted": invitations_deleted,
            },
        )

    async def get_my_challenges(self, user_id: Optional[str]) -> List[Challenge]:
        """Challenges the caller created or participates in, newest first"""
        if not user_id:
            return []

        challenges = [
            c
            for c in get_document_store().find(CHALLENGES_TABLE)
            if is_creator(c, user_id) or is_participant(c, user_id)
        ]
        challenges.sort(key=lambda c: c.get("created_at") or "", reverse=True)
        return [Challenge.model_validate(c) for c in challenges]

    async def get_public_challenges(self) -> List[Challenge]:
        challenges = get_document_store().find(CHALLENGES_TABLE, is_public=True)
        challenges.sort(key=lambda c: c.get("created_at") or "", reverse=True)
        return [Challenge.model_validate(c) for c in challenges]

    async def get_challenge(
        self, challenge_id: str, user_id: Optional[str]
    ) -> ChallengeDetail:
        """Challenge with the caller's role; private challenges need membership"""
        user_id = require_user(user_id)
        challenge = load_challenge(get_document_store(), challenge_id)

        if not can_view(challenge, user_id):
            raise UnauthorizedError("This challenge is private")

        return ChallengeDetail.model_validate(
            {
                **challenge,
                "is_creator": is_creator(challenge, user_id),
                "is_participant": is_participant(challenge, user_id),
                "participants_count": len(challenge.get("participants") or []),
            }
        )

    async def get_by_invite_code(self, invite_code: str) -> Optional[ChallengePreview]:
        """Invite preview; needs no authentication"""
        store = get_document_store()
        challenge = store.find_one(CHALLENGES_TABLE, invite_code=invite_code)
        if not challenge:
            return None

        creator = user_directory.get_summary(challenge["created_by"], store=store)

        return ChallengePreview.model_validate(
            {
                **challenge,
                "creator_name": creator.label("Someone") if creator else "Someone",
                "participant_count": len(challenge.get("participants") or []),
            }
        )

    async def get_participants(self, challenge_id: str) -> List[ParticipantInfo]:
        """Roster with display names; users without a profile are skipped"""
        store = get_document_store()
        challenge = store.get(CHALLENGES_TABLE, challenge_id)
        if not challenge:
            return []

        participant_ids = challenge.get("participants") or []
        users = user_directory.get_summaries(participant_ids, store=store)

        participants = []
        for participant_id in participant_ids:
            user = users.get(participant_id)
            if user is None:
                continue
            participants.append(
                ParticipantInfo(
                    user_id=participant_id,
                    name=user.label(),
                    email=user.contact_id or "",
                    is_creator=participant_id == challenge["created_by"],
                )
            )
        return participants


# Global instance
challenge_service = ChallengeService()
