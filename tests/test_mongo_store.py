"""
Tests for the MongoDB store. Unit tests use MagicMock collections; the integration test needs
MONGODB_URI pointing at a replica set and skips otherwise.
"""

import os
from unittest.mock import MagicMock

import pytest
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, OperationFailure

from estateclaims.errors import ConcurrentModificationError, ConflictError
from estateclaims.store.base import ASSET_CLAIMS, DOCUMENTS, SESSIONS
from estateclaims.store.mongo import MongoWorkflowStore, count_by_pipeline


@pytest.fixture
def mongo():
    """(store, client, collections-by-name) with every collection a MagicMock."""
    client = MagicMock()
    db = client.__getitem__.return_value
    collections = {}
    db.__getitem__.side_effect = lambda name: collections.setdefault(name, MagicMock(name=name))
    store = MongoWorkflowStore(client, {"mongodb": {"database": "test", "collections": {"documents": "docs"}}})
    return store, client, collections


def test_compare_and_set_filters_on_expected_status(mongo):
    store, _, collections = mongo
    store.compare_and_set(DOCUMENTS, "d1", {"status": "PENDING"}, {"status": "VERIFIED"})

    coll = collections["docs"]
    coll.find_one_and_update.assert_called_once_with(
        {"_id": "d1", "status": "PENDING"},
        {"$set": {"status": "VERIFIED"}},
        return_document=ReturnDocument.AFTER,
        session=None,
    )


def test_compare_and_set_returns_none_when_no_match(mongo):
    store, _, collections = mongo
    collections.setdefault(SESSIONS, MagicMock()).find_one_and_update.return_value = None
    assert store.compare_and_set(SESSIONS, "s1", {"status": "UNDER_REVIEW"}, {"status": "VERIFIED"}) is None


def test_insert_maps_duplicate_key_to_conflict(mongo):
    store, _, collections = mongo
    collections.setdefault(ASSET_CLAIMS, MagicMock()).insert_one.side_effect = DuplicateKeyError("dup")
    with pytest.raises(ConflictError):
        store.insert(ASSET_CLAIMS, {"_id": "c1", "asset_id": "a1", "claimant_id": "u1"})


def test_find_applies_sort_and_limit(mongo):
    store, _, collections = mongo
    coll = collections.setdefault(SESSIONS, MagicMock())
    cursor = coll.find.return_value
    cursor.sort.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.__iter__.return_value = iter([{"_id": "s1"}])

    result = store.find(SESSIONS, {"claimant_id": "u1"}, sort=[("created_at", -1)], limit=5)

    coll.find.assert_called_once_with({"claimant_id": "u1"}, session=None)
    cursor.sort.assert_called_once_with([("created_at", -1)])
    cursor.limit.assert_called_once_with(5)
    assert result == [{"_id": "s1"}]


def test_count_by_uses_group_pipeline(mongo):
    store, _, collections = mongo
    coll = collections.setdefault(SESSIONS, MagicMock())
    coll.aggregate.return_value = [{"_id": "STARTED", "count": 2}, {"_id": "APPROVED", "count": 1}]

    assert store.count_by(SESSIONS, "status") == {"STARTED": 2, "APPROVED": 1}
    coll.aggregate.assert_called_once_with(count_by_pipeline("status"), session=None)


def test_count_by_pipeline_groups_on_field():
    assert count_by_pipeline("status")[0] == {"$group": {"_id": "$status", "count": {"$sum": 1}}}


def test_transaction_passes_session_to_operations(mongo):
    store, client, collections = mongo
    session = client.start_session.return_value.__enter__.return_value

    with store.transaction():
        store.get(SESSIONS, "s1")
        with store.transaction():
            store.count(DOCUMENTS)

    session.start_transaction.assert_called_once()
    collections[SESSIONS].find_one.assert_called_once_with({"_id": "s1"}, session=session)
    collections["docs"].count_documents.assert_called_once_with({}, session=session)
    # Session is cleared once the unit ends
    store.get(SESSIONS, "s2")
    collections[SESSIONS].find_one.assert_called_with({"_id": "s2"}, session=None)


def test_write_conflict_in_transaction_is_concurrent_modification(mongo):
    store, client, collections = mongo
    session = client.start_session.return_value.__enter__.return_value
    collections.setdefault(SESSIONS, MagicMock()).find_one_and_update.side_effect = OperationFailure(
        "WriteConflict", code=112, details={"errorLabels": ["TransientTransactionError"]}
    )

    with pytest.raises(ConcurrentModificationError) as exc_info:
        with store.transaction():
            store.compare_and_set(SESSIONS, "s1", {"status": "UNDER_REVIEW"}, {"status": "VERIFIED"})

    assert isinstance(exc_info.value.__cause__, OperationFailure)
    session.start_transaction.assert_called_once()
    assert store._session() is None


def test_other_transaction_failures_propagate(mongo):
    store, _, collections = mongo
    collections.setdefault(SESSIONS, MagicMock()).find_one.side_effect = OperationFailure("Unauthorized", code=13)

    with pytest.raises(OperationFailure):
        with store.transaction():
            store.get(SESSIONS, "s1")


def test_transactions_can_be_disabled():
    client = MagicMock()
    store = MongoWorkflowStore(client, {"mongodb": {}}, use_transactions=False)
    with store.transaction():
        pass
    client.start_session.assert_not_called()


@pytest.mark.integration
def test_compare_and_set_against_server():
    """Integration: conditional update wins once, then loses. Skips if no URI."""
    from estateclaims.config_loader import MONGODB_URI_ENV
    from estateclaims.db import get_client

    if not os.environ.get(MONGODB_URI_ENV):
        pytest.skip("MONGODB_URI not set; skipping integration test")

    client = get_client()
    config = {"mongodb": {"database": "_integration_test_estate_claims"}}
    try:
        store = MongoWorkflowStore(client, config, use_transactions=False)
        store.insert(SESSIONS, {"_id": "cas-1", "status": "UNDER_REVIEW"})
        assert store.compare_and_set(SESSIONS, "cas-1", {"status": "UNDER_REVIEW"}, {"status": "VERIFIED"})
        assert store.compare_and_set(SESSIONS, "cas-1", {"status": "UNDER_REVIEW"}, {"status": "REJECTED"}) is None
        assert store.get(SESSIONS, "cas-1")["status"] == "VERIFIED"
    finally:
        client.drop_database("_integration_test_estate_claims")
        client.close()
