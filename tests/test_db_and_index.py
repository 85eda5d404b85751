"""
Tests for MongoDB wiring and index creation.
Unit tests use mocks; the integration test requires MONGODB_URI in .env and skips if unset.
"""

import os
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from estateclaims.db import DEFAULT_DATABASE, collection_names, get_client, get_collection, get_database
from estateclaims.indexes import WORKFLOW_INDEXES, ensure_workflow_indexes
from estateclaims.store.base import ASSET_CLAIMS, COLLECTIONS, DOCUMENTS

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
CONFIG_EXAMPLE = PROJECT_ROOT / "config" / "config.example.yaml"


def test_get_client_is_timezone_aware():
    with patch("estateclaims.db.MongoClient") as mock_client:
        get_client("mongodb://localhost:27017")
    mock_client.assert_called_once_with("mongodb://localhost:27017", tz_aware=True)


def test_get_database_defaults_name():
    client = MagicMock()
    get_database(client, {"mongodb": {}})
    client.__getitem__.assert_called_once_with(DEFAULT_DATABASE)


def test_collection_names_apply_overrides():
    names = collection_names({"mongodb": {"collections": {"documents": "claim_documents"}}})
    assert set(names) == set(COLLECTIONS)
    assert names[DOCUMENTS] == "claim_documents"
    assert names[ASSET_CLAIMS] == ASSET_CLAIMS


def test_get_collection_uses_configured_name():
    client = MagicMock()
    db = client.__getitem__.return_value
    config = {"mongodb": {"database": "db1", "collections": {"documents": "docs_v2"}}}

    get_collection(client, config, DOCUMENTS)

    client.__getitem__.assert_called_once_with("db1")
    db.__getitem__.assert_called_once_with("docs_v2")


def test_ensure_workflow_indexes_creates_every_index():
    """One create_index per WORKFLOW_INDEXES entry, with name and unique flag."""
    db = MagicMock()
    collections = {}

    def get_coll(name):
        coll = collections.setdefault(name, MagicMock())
        coll.create_index.side_effect = lambda key, name, unique: name
        return coll

    db.__getitem__.side_effect = get_coll

    names = ensure_workflow_indexes(db, {"mongodb": {}})

    assert names == [name for _, _, name, _ in WORKFLOW_INDEXES]
    total_calls = sum(c.create_index.call_count for c in collections.values())
    assert total_calls == len(WORKFLOW_INDEXES)


def test_asset_claim_index_is_unique_on_asset_and_claimant():
    unique = [entry for entry in WORKFLOW_INDEXES if entry[3]]
    assert len(unique) == 1
    logical, key, name, _ = unique[0]
    assert logical == ASSET_CLAIMS
    assert key == [("asset_id", 1), ("claimant_id", 1)]
    assert name == "uniq_asset_claimant"


@pytest.mark.integration
def test_connect_create_indexes_requires_uri():
    """Integration: connect, create indexes on a scratch database, drop it. Skips if no URI."""
    from pymongo.errors import OperationFailure

    from estateclaims.config_loader import MONGODB_URI_ENV, load_config

    if not os.environ.get(MONGODB_URI_ENV):
        pytest.skip("MONGODB_URI not set; skipping integration test")

    config = load_config(CONFIG_EXAMPLE, require_uri=True)
    test_config = {**config, "mongodb": {**config["mongodb"], "database": "_integration_test_estate_claims"}}

    client = get_client()
    try:
        db = get_database(client, test_config)
        try:
            names = ensure_workflow_indexes(db, test_config)
        except OperationFailure as e:
            if e.details and e.details.get("code") == 13:
                pytest.skip("User not authorized to create indexes; skip with -m 'not integration'")
            raise
        assert "uniq_asset_claimant" in names
        # Second run is a no-op
        assert ensure_workflow_indexes(db, test_config) == names
        client.drop_database(db.name)
    finally:
        client.close()
