"""
MongoDB client and collection access.
Uses MONGODB_URI from environment (via .env) and database/collection names from config.
"""

from __future__ import annotations

from typing import Any

from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from estateclaims.config_loader import get_mongodb_uri
from estateclaims.store.base import COLLECTIONS

DEFAULT_DATABASE = "estate_claims"


def get_client(uri: str | None = None) -> MongoClient:
    """
    Return a MongoDB client. Uses uri if provided, otherwise MONGODB_URI from environment.
    The client is timezone-aware so stored UTC datetimes round-trip with tzinfo.
    """
    if uri is None:
        uri = get_mongodb_uri()
    return MongoClient(uri, tz_aware=True)


def get_database(client: MongoClient, config: dict[str, Any]) -> Database:
    """Return the database from config (config['mongodb']['database'])."""
    name = (config.get("mongodb") or {}).get("database") or DEFAULT_DATABASE
    return client[name]


def collection_names(config: dict[str, Any]) -> dict[str, str]:
    """
    Map each logical collection to its configured name.
    config['mongodb']['collections'] may rename any of them; the rest keep their logical name.
    """
    overrides = (config.get("mongodb") or {}).get("collections") or {}
    return {name: overrides.get(name) or name for name in COLLECTIONS}


def get_collection(client: MongoClient, config: dict[str, Any], name: str) -> Collection:
    """Return the collection for a logical name (e.g. 'documents')."""
    db = get_database(client, config)
    return db[collection_names(config)[name]]
