"""
Invitation Service

Directed invitations between users: responding to them and listing the ones
waiting for an answer.

Status moves pending -> accepted | declined exactly once.
"""

from datetime import datetime, timezone
from typing import List, Optional

from app.core.database import (
    CHALLENGES_TABLE,
    INVITATIONS_TABLE,
    get_document_store,
)
from app.core.entity_validation import load_invitation, require_user
from app.core.exceptions import InvitationAlreadyRespondedError, UnauthorizedError
from app.models.challenges import ChallengeSummary, PendingInvitation
from app.services.challenge_service import add_participant
from app.services.logger import logger
from app.services.user_directory import user_directory


class InvitationService:
    """Service for answering and listing challenge invitations"""

    async def respond(
        self, invitation_id: str, accept: bool, user_id: Optional[str]
    ) -> str:
        """
        Accept or decline an invitation addressed to the caller.

        Accepting also adds the caller to the challenge and creates their
        blank progress record for today, unless they are already a
        participant.

        Returns:
            The invitation's challenge id
        """
        user_id = require_user(user_id)
        store = get_document_store()

        with store.transaction():
            invitation = load_invitation(store, invitation_id)

            if invitation.get("invited_user") != user_id:
                raise UnauthorizedError("This invitation was sent to another user")

            if invitation.get("status") != "pending":
                raise InvitationAlreadyRespondedError()

            new_status = "accepted" if accept else "declined"
            answered = store.patch_if(
                INVITATIONS_TABLE,
                invitation_id,
                {
                    "status": new_status,
                    "responded_at": datetime.now(timezone.utc).isoformat(),
                },
                status="pending",
            )
            if not answered:
                # Answered by a concurrent request
                raise InvitationAlreadyRespondedError()

            challenge_id = invitation["challenge_id"]
            if accept:
                challenge = store.get(CHALLENGES_TABLE, challenge_id)
                if challenge:
                    add_participant(store, challenge, user_id)

        logger.info(
            f"Challenge invite {new_status}",
            {
                "invitation_id": invitation_id,
                "challenge_id": challenge_id,
                "user_id": user_id,
            },
        )

        return challenge_id

    async def get_pending(self, user_id: Optional[str]) -> List[PendingInvitation]:
        """
        Pending invitations for the caller, with challenge summary and
        inviter name. Rows whose challenge or inviter no longer exists are
        left out.
        """
        if not user_id:
            return []

        store = get_document_store()
        invitations = store.find(
            INVITATIONS_TABLE, invited_user=user_id, status="pending"
        )
        invitations.sort(key=lambda i: i.get("sent_at") or "", reverse=True)

        results = []
        for invitation in invitations:
            challenge = store.get(CHALLENGES_TABLE, invitation["challenge_id"])
            inviter = user_directory.get_summary(invitation["invited_by"], store=store)
            if not challenge or not inviter:
                continue

            results.append(
                PendingInvitation.model_validate(
                    {
                        **invitation,
                        "challenge": ChallengeSummary.model_validate(challenge),
                        "inviter_name": inviter.label("Someone"),
                    }
                )
            )

        return results


# Global instance
invitation_service = InvitationService()
