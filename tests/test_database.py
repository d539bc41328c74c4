"""Tests for the in-memory document store."""

import pytest

from app.core.database import (
    CHALLENGES_TABLE,
    PROGRESS_TABLE,
    DuplicateKeyError,
    InMemoryDocumentStore,
)


def test_insert_assigns_id_and_get_returns_copy(store):
    record_id = store.insert(PROGRESS_TABLE, {"user_id": "u1", "completed_tasks": []})
    fetched = store.get(PROGRESS_TABLE, record_id)
    assert fetched["id"] == record_id

    fetched["completed_tasks"].append({"task_index": 0})
    assert store.get(PROGRESS_TABLE, record_id)["completed_tasks"] == []


def test_get_missing_returns_none(store):
    assert store.get(CHALLENGES_TABLE, "missing") is None


def test_find_filters_on_every_column(store):
    store.insert(PROGRESS_TABLE, {"challenge_id": "c1", "user_id": "u1", "date": "2024-01-01"})
    store.insert(PROGRESS_TABLE, {"challenge_id": "c1", "user_id": "u2", "date": "2024-01-01"})
    store.insert(PROGRESS_TABLE, {"challenge_id": "c1", "user_id": "u1", "date": "2024-01-02"})

    assert len(store.find(PROGRESS_TABLE, challenge_id="c1")) == 3
    assert len(store.find(PROGRESS_TABLE, challenge_id="c1", user_id="u1")) == 2
    assert len(store.find(PROGRESS_TABLE, challenge_id="c1", date="2024-01-01")) == 2
    assert store.find_one(PROGRESS_TABLE, challenge_id="c2") is None


def test_invite_code_is_unique(store):
    store.insert(CHALLENGES_TABLE, {"invite_code": "ABC123"})
    with pytest.raises(DuplicateKeyError):
        store.insert(CHALLENGES_TABLE, {"invite_code": "ABC123"})

    other_id = store.insert(CHALLENGES_TABLE, {"invite_code": "XYZ789"})
    with pytest.raises(DuplicateKeyError):
        store.patch(CHALLENGES_TABLE, other_id, {"invite_code": "ABC123"})


def test_patch_merges_fields(store):
    record_id = store.insert(CHALLENGES_TABLE, {"name": "Steps", "participants": ["a"]})
    store.patch(CHALLENGES_TABLE, record_id, {"participants": ["a", "b"]})
    record = store.get(CHALLENGES_TABLE, record_id)
    assert record["name"] == "Steps"
    assert record["participants"] == ["a", "b"]


def test_delete_where_removes_matching_records(store):
    store.insert(PROGRESS_TABLE, {"challenge_id": "c1", "user_id": "u1"})
    store.insert(PROGRESS_TABLE, {"challenge_id": "c1", "user_id": "u2"})
    store.insert(PROGRESS_TABLE, {"challenge_id": "c2", "user_id": "u1"})

    assert store.delete_where(PROGRESS_TABLE, challenge_id="c1", user_id="u1") == 1
    assert store.count(PROGRESS_TABLE) == 2


def test_transaction_rolls_back_on_error():
    store = InMemoryDocumentStore()
    kept_id = store.insert(CHALLENGES_TABLE, {"name": "kept", "participants": []})

    with pytest.raises(RuntimeError):
        with store.transaction():
            store.patch(CHALLENGES_TABLE, kept_id, {"participants": ["u1"]})
            store.insert(PROGRESS_TABLE, {"challenge_id": kept_id, "user_id": "u1"})
            raise RuntimeError("boom")

    assert store.get(CHALLENGES_TABLE, kept_id)["participants"] == []
    assert store.count(PROGRESS_TABLE) == 0


def test_nested_transaction_rolls_back_whole_operation():
    store = InMemoryDocumentStore()

    with pytest.raises(ValueError):
        with store.transaction():
            store.insert(CHALLENGES_TABLE, {"name": "outer"})
            with store.transaction():
                store.insert(CHALLENGES_TABLE, {"name": "inner"})
            raise ValueError("fail after inner")

    assert store.count(CHALLENGES_TABLE) == 0


def test_array_add_and_remove(store):
    record_id = store.insert(CHALLENGES_TABLE, {"participants": ["a"]})

    assert store.add_to_array(CHALLENGES_TABLE, record_id, "participants", "b")
    assert not store.add_to_array(CHALLENGES_TABLE, record_id, "participants", "b")
    assert store.get(CHALLENGES_TABLE, record_id)["participants"] == ["a", "b"]

    assert store.remove_from_array(CHALLENGES_TABLE, record_id, "participants", "a")
    assert not store.remove_from_array(CHALLENGES_TABLE, record_id, "participants", "a")
    assert store.get(CHALLENGES_TABLE, record_id)["participants"] == ["b"]

    assert not store.add_to_array(CHALLENGES_TABLE, "missing", "participants", "c")


def test_patch_if_checks_expected_values(store):
    record_id = store.insert(PROGRESS_TABLE, {"status": "pending"})

    assert store.patch_if(PROGRESS_TABLE, record_id, {"status": "accepted"}, status="pending")
    assert not store.patch_if(PROGRESS_TABLE, record_id, {"status": "declined"}, status="pending")
    assert store.get(PROGRESS_TABLE, record_id)["status"] == "accepted"
    assert not store.patch_if(PROGRESS_TABLE, "missing", {"status": "accepted"})


def test_array_change_rolls_back_with_transaction():
    store = InMemoryDocumentStore()
    record_id = store.insert(CHALLENGES_TABLE, {"participants": ["a"]})

    with pytest.raises(RuntimeError):
        with store.transaction():
            store.add_to_array(CHALLENGES_TABLE, record_id, "participants", "b")
            raise RuntimeError("boom")

    assert store.get(CHALLENGES_TABLE, record_id)["participants"] == ["a"]
