"""
User Directory

Read-only view over the identity provider's users table. User documents are
turned into UserSummary objects here, once, so callers never poke at raw
profile fields.
"""

from typing import Dict, Iterable, Optional

from app.core.database import USERS_TABLE, DocumentStore, get_document_store
from app.models.challenges import UserSummary


class UserDirectory:
    """Resolves user ids to display information"""

    def get_summary(
        self, user_id: str, store: Optional[DocumentStore] = None
    ) -> Optional[UserSummary]:
        store = store or get_document_store()
        record = store.get(USERS_TABLE, user_id)
        if not record:
            return None
        return UserSummary.from_record(record)

    def get_summaries(
        self, user_ids: Iterable[str], store: Optional[DocumentStore] = None
    ) -> Dict[str, UserSummary]:
        """Summaries for the users that exist; missing ids are left out"""
        store = store or get_document_store()
        summaries: Dict[str, UserSummary] = {}
        for user_id in user_ids:
            if user_id in summaries:
                continue
            summary = self.get_summary(user_id, store=store)
            if summary is not None:
                summaries[user_id] = summary
        return summaries


# Global instance
user_directory = UserDirectory()
