import pytest
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from clinic_queue.database import Database, storage_guard
from clinic_queue.errors import StorageUnavailable


async def test_driver_failures_become_storage_unavailable():
    with pytest.raises(StorageUnavailable) as info:
        async with storage_guard("test"):
            raise ServerSelectionTimeoutError("mongo-1:27017: timed out")

    assert "mongo-1" not in info.value.message
    assert info.value.retryable


async def test_duplicate_keys_pass_through():
    with pytest.raises(DuplicateKeyError):
        async with storage_guard("test"):
            raise DuplicateKeyError("E11000 duplicate key")


async def test_collections_require_a_connection():
    Database.db = None
    with pytest.raises(StorageUnavailable):
        Database.get_collection("queue_entries")


async def test_indexes_are_created(db):
    entry_indexes = await db["queue_entries"].index_information()
    unique = [spec for spec in entry_indexes.values() if spec.get("unique")]
    assert [("service_date", 1), ("queue_number", 1)] in [spec["key"] for spec in unique]

    history_indexes = await db["queue_history"].index_information()
    assert any(
        spec.get("unique") and spec["key"] == [("session_id", 1)]
        for spec in history_indexes.values()
    )
