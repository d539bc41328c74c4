"""
Database Configuration

Document store used by the challenge services.

Two backends share one small contract (insert / get / patch / delete / find
by equality, atomic array add/remove, conditional patch, transaction):

- SupabaseDocumentStore: Supabase REST API (PostgREST), already pooled.
  Array membership changes run inside Postgres functions called through
  rpc (see supabase/migrations). A transaction keeps an undo journal of
  the writes made so far and replays it in reverse if the block raises.
- InMemoryDocumentStore: process-local dictionaries for development and
  tests. A transaction holds a re-entrant lock for the whole operation and
  rolls back to a snapshot if the block raises.

Tables:
- challenges            (unique: invite_code)
- challenge_progress    (lookups: challenge_id+user_id, challenge_id+date)
- challenge_invitations (lookups: invited_user, challenge_id)
- users                 (owned by the identity provider, read only here)
"""

import copy
import threading
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager, nullcontext
from contextvars import ContextVar
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from postgrest.exceptions import APIError
from supabase import create_client, Client

from app.core.config import settings
from app.services.logger import logger

CHALLENGES_TABLE = "challenges"
PROGRESS_TABLE = "challenge_progress"
INVITATIONS_TABLE = "challenge_invitations"
USERS_TABLE = "users"

# Columns that must be unique within a table
UNIQUE_KEYS: Dict[str, Tuple[str, ...]] = {
    CHALLENGES_TABLE: ("invite_code",),
}

# Postgres functions, see supabase/migrations
ARRAY_ADD_FUNCTION = "array_add_unique"
ARRAY_REMOVE_FUNCTION = "array_remove_value"


class DuplicateKeyError(Exception):
    """Raised when an insert or patch would violate a unique key"""

    def __init__(self, table: str, column: str, value: Any):
        super().__init__(f"Duplicate value for {table}.{column}: {value!r}")
        self.table = table
        self.column = column
        self.value = value


class DocumentStore(ABC):
    """Keyed collections with equality lookups and per-operation atomicity"""

    @abstractmethod
    def insert(self, table: str, record: Dict[str, Any]) -> str:
        """Insert a record and return its id"""

    @abstractmethod
    def get(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a record by id, or None when absent"""

    @abstractmethod
    def patch(self, table: str, record_id: str, fields: Dict[str, Any]) -> None:
        """Merge fields into an existing record"""

    @abstractmethod
    def patch_if(
        self,
        table: str,
        record_id: str,
        fields: Dict[str, Any],
        **expected: Any,
    ) -> bool:
        """
        Merge fields only while the record still has the expected values.

        Returns False when the record is missing or no longer matches.
        """

    @abstractmethod
    def delete(self, table: str, record_id: str) -> None:
        """Delete a record by id (no-op when absent)"""

    @abstractmethod
    def find(self, table: str, **filters: Any) -> List[Dict[str, Any]]:
        """Return all records whose columns equal the given values"""

    @abstractmethod
    def add_to_array(self, table: str, record_id: str, column: str, value: Any) -> bool:
        """Atomically append value to an array column unless already present"""

    @abstractmethod
    def remove_from_array(
        self, table: str, record_id: str, column: str, value: Any
    ) -> bool:
        """Atomically remove value from an array column; False if it was absent"""

    def find_one(self, table: str, **filters: Any) -> Optional[Dict[str, Any]]:
        records = self.find(table, **filters)
        return records[0] if records else None

    def delete_where(self, table: str, **filters: Any) -> int:
        """Delete every record matching filters; returns how many were removed"""
        records = self.find(table, **filters)
        for record in records:
            self.delete(table, record["id"])
        return len(records)

    def count_rows(self, table: str) -> Optional[int]:
        """Row count for health reporting"""
        return len(self.find(table))

    def transaction(self):
        """Context manager grouping the calls of one operation"""
        return nullcontext()


# Undo steps of the Supabase transaction active in the current context
_undo_journal: ContextVar[Optional[List[Tuple[str, Callable[[], Any]]]]] = ContextVar(
    "supabase_undo_journal", default=None
)


class SupabaseDocumentStore(DocumentStore):
    """Document store backed by the Supabase REST client"""

    def __init__(self, client: Client):
        self.client = client

    def _remember(self, description: str, undo: Callable[[], Any]) -> None:
        journal = _undo_journal.get()
        if journal is not None:
            journal.append((description, undo))

    @staticmethod
    def _journaling() -> bool:
        return _undo_journal.get() is not None

    @contextmanager
    def transaction(self) -> Iterator["SupabaseDocumentStore"]:
        """
        Compensating transaction.

        Every write made inside the block registers its inverse. If the block
        raises, the inverses run newest first and the original error is
        re-raised. Nested blocks share the outermost journal.
        """
        if self._journaling():
            yield self
            return

        journal: List[Tuple[str, Callable[[], Any]]] = []
        token = _undo_journal.set(journal)
        try:
            yield self
        except BaseException as e:
            _undo_journal.set(None)
            self._compensate(journal, e)
            raise
        finally:
            _undo_journal.reset(token)

    def _compensate(
        self, journal: List[Tuple[str, Callable[[], Any]]], error: BaseException
    ) -> None:
        if not journal:
            return

        logger.warning(
            f"Rolling back {len(journal)} write(s) after failure",
            {"error": str(error), "steps": [d for d, _ in journal]},
        )
        for description, undo in reversed(journal):
            try:
                undo()
            except Exception as undo_error:
                logger.error(
                    f"Rollback step failed: {description}",
                    {"error": str(undo_error), "original_error": str(error)},
                )

    def insert(self, table: str, record: Dict[str, Any]) -> str:
        try:
            result = self.client.table(table).insert(record).execute()
        except APIError as exc:
            # 23505 = unique_violation
            if str(getattr(exc, "code", "")) == "23505":
                column = UNIQUE_KEYS.get(table, ("id",))[0]
                raise DuplicateKeyError(table, column, record.get(column)) from exc
            raise

        if not result.data:
            raise Exception(f"Failed to insert into {table}")

        record_id = result.data[0]["id"]
        self._remember(
            f"delete {table}/{record_id}",
            lambda: self.client.table(table).delete().eq("id", record_id).execute(),
        )
        return record_id

    def get(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        result = (
            self.client.table(table)
            .select("*")
            .eq("id", record_id)
            .maybe_single()
            .execute()
        )
        if not result or not result.data:
            return None
        return result.data

    def _remember_restore(self, table: str, record_id: str, fields: Dict[str, Any]) -> None:
        if not self._journaling():
            return
        previous = self.get(table, record_id)
        if previous is None:
            return
        restore = {column: previous.get(column) for column in fields}
        self._remember(
            f"restore {table}/{record_id}",
            lambda: self.client.table(table).update(restore).eq("id", record_id).execute(),
        )

    def patch(self, table: str, record_id: str, fields: Dict[str, Any]) -> None:
        self._remember_restore(table, record_id, fields)
        self.client.table(table).update(fields).eq("id", record_id).execute()

    def patch_if(
        self,
        table: str,
        record_id: str,
        fields: Dict[str, Any],
        **expected: Any,
    ) -> bool:
        self._remember_restore(table, record_id, fields)
        query = self.client.table(table).update(fields).eq("id", record_id)
        for column, value in expected.items():
            query = query.eq(column, value)
        result = query.execute()
        return bool(result.data)

    def _reinsert(self, table: str, records: List[Dict[str, Any]]) -> None:
        if not records:
            return
        rows = copy.deepcopy(records)
        self._remember(
            f"reinsert {len(rows)} row(s) into {table}",
            lambda: self.client.table(table).insert(rows).execute(),
        )

    def delete(self, table: str, record_id: str) -> None:
        result = self.client.table(table).delete().eq("id", record_id).execute()
        self._reinsert(table, result.data or [])

    def find(self, table: str, **filters: Any) -> List[Dict[str, Any]]:
        query = self.client.table(table).select("*")
        for column, value in filters.items():
            query = query.eq(column, value)
        result = query.execute()
        return result.data or []

    def delete_where(self, table: str, **filters: Any) -> int:
        if not filters:
            raise ValueError("delete_where requires at least one filter")
        query = self.client.table(table).delete()
        for column, value in filters.items():
            query = query.eq(column, value)
        result = query.execute()
        deleted = result.data or []
        self._reinsert(table, deleted)
        return len(deleted)

    def _array_rpc(
        self, function: str, table: str, record_id: str, column: str, value: Any
    ) -> bool:
        result = self.client.rpc(
            function,
            {
                "p_table": table,
                "p_id": record_id,
                "p_column": column,
                "p_value": value,
            },
        ).execute()
        return bool(result.data)

    def add_to_array(self, table: str, record_id: str, column: str, value: Any) -> bool:
        added = self._array_rpc(ARRAY_ADD_FUNCTION, table, record_id, column, value)
        if added:
            self._remember(
                f"remove {value} from {table}/{record_id}.{column}",
                lambda: self._array_rpc(
                    ARRAY_REMOVE_FUNCTION, table, record_id, column, value
                ),
            )
        return added

    def remove_from_array(
        self, table: str, record_id: str, column: str, value: Any
    ) -> bool:
        removed = self._array_rpc(ARRAY_REMOVE_FUNCTION, table, record_id, column, value)
        if removed:
            self._remember(
                f"add {value} back to {table}/{record_id}.{column}",
                lambda: self._array_rpc(
                    ARRAY_ADD_FUNCTION, table, record_id, column, value
                ),
            )
        return removed

    def count_rows(self, table: str) -> Optional[int]:
        result = self.client.table(table).select("id", count="exact").limit(1).execute()
        return getattr(result, "count", None)


class InMemoryDocumentStore(DocumentStore):
    """Thread-safe in-process document store"""

    def __init__(self):
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._depth = 0
        self._snapshot: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        return self._tables.setdefault(table, {})

    def _check_unique(
        self, table: str, record: Dict[str, Any], record_id: Optional[str] = None
    ) -> None:
        for column in UNIQUE_KEYS.get(table, ()):
            value = record.get(column)
            if value is None:
                continue
            for existing_id, existing in self._table(table).items():
                if existing_id != record_id and existing.get(column) == value:
                    raise DuplicateKeyError(table, column, value)

    def insert(self, table: str, record: Dict[str, Any]) -> str:
        with self._lock:
            stored = copy.deepcopy(record)
            record_id = stored.get("id") or str(uuid.uuid4())
            stored["id"] = record_id
            if record_id in self._table(table):
                raise DuplicateKeyError(table, "id", record_id)
            self._check_unique(table, stored)
            self._table(table)[record_id] = stored
            return record_id

    def get(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._table(table).get(record_id)
            return copy.deepcopy(record) if record is not None else None

    def patch(self, table: str, record_id: str, fields: Dict[str, Any]) -> None:
        with self._lock:
            existing = self._table(table).get(record_id)
            if existing is None:
                return
            merged = {**existing, **copy.deepcopy(fields), "id": record_id}
            self._check_unique(table, merged, record_id=record_id)
            self._table(table)[record_id] = merged

    def patch_if(
        self,
        table: str,
        record_id: str,
        fields: Dict[str, Any],
        **expected: Any,
    ) -> bool:
        with self._lock:
            existing = self._table(table).get(record_id)
            if existing is None:
                return False
            if any(existing.get(column) != value for column, value in expected.items()):
                return False
            self.patch(table, record_id, fields)
            return True

    def add_to_array(self, table: str, record_id: str, column: str, value: Any) -> bool:
        with self._lock:
            existing = self._table(table).get(record_id)
            if existing is None:
                return False
            values = list(existing.get(column) or [])
            if value in values:
                return False
            existing[column] = values + [copy.deepcopy(value)]
            return True

    def remove_from_array(
        self, table: str, record_id: str, column: str, value: Any
    ) -> bool:
        with self._lock:
            existing = self._table(table).get(record_id)
            if existing is None:
                return False
            values = list(existing.get(column) or [])
            if value not in values:
                return False
            existing[column] = [v for v in values if v != value]
            return True

    def delete(self, table: str, record_id: str) -> None:
        with self._lock:
            self._table(table).pop(record_id, None)

    def find(self, table: str, **filters: Any) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                copy.deepcopy(record)
                for record in self._table(table).values()
                if all(record.get(column) == value for column, value in filters.items())
            ]

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._table(table))

    @contextmanager
    def transaction(self) -> Iterator["InMemoryDocumentStore"]:
        with self._lock:
            if self._depth == 0:
                self._snapshot = copy.deepcopy(self._tables)
            self._depth += 1
            try:
                yield self
            except BaseException:
                if self._depth == 1 and self._snapshot is not None:
                    self._tables = self._snapshot
                raise
            finally:
                self._depth -= 1
                if self._depth == 0:
                    self._snapshot = None


_supabase_client: Optional[Client] = None
_document_store: Optional[DocumentStore] = None


def get_supabase_client() -> Client:
    """
    Get Supabase client instance.

    Created on first use so the app can boot with the in-memory store and
    no Supabase credentials.
    """
    global _supabase_client
    if _supabase_client is None:
        _supabase_client = create_client(
            settings.SUPABASE_URL, settings.SUPABASE_SERVICE_KEY
        )
    return _supabase_client


def get_document_store() -> DocumentStore:
    """Return the configured document store, creating it on first use"""
    global _document_store
    if _document_store is None:
        if settings.DOCUMENT_STORE == "memory":
            _document_store = InMemoryDocumentStore()
        else:
            _document_store = SupabaseDocumentStore(get_supabase_client())
    return _document_store


def configure_document_store(store: Optional[DocumentStore]) -> None:
    """Install a specific store (or None to fall back to settings)"""
    global _document_store
    _document_store = store
