"""
Create and ensure MongoDB indexes for the workflow collections.
Idempotent: safe to run multiple times.
"""

from __future__ import annotations

from typing import Any

from pymongo.database import Database

from estateclaims.db import collection_names
from estateclaims.store.base import ASSET_CLAIMS, ASSETS, AUDIT_LOGS, DOCUMENTS, SESSIONS

# (logical collection, key, index name, unique)
WORKFLOW_INDEXES: list[tuple[str, list[tuple[str, int]], str, bool]] = [
    # One asset claim per (asset, claimant); backs ConflictError on initiate_claim
    (ASSET_CLAIMS, [("asset_id", 1), ("claimant_id", 1)], "uniq_asset_claimant", True),
    # Review queue: status in (PENDING, OCR_COMPLETE) ordered by upload time
    (DOCUMENTS, [("status", 1), ("uploaded_at", -1)], "idx_status_uploaded_at", False),
    # Completeness checks: documents of one session grouped by type
    (DOCUMENTS, [("claim_session_id", 1), ("document_type", 1)], "idx_session_doc_type", False),
    (SESSIONS, [("claimant_id", 1), ("created_at", -1)], "idx_claimant_created_at", False),
    (ASSETS, [("claim_session_id", 1), ("discovered_at", -1)], "idx_session_discovered_at", False),
    (AUDIT_LOGS, [("created_at", -1)], "idx_created_at", False),
    (AUDIT_LOGS, [("entity_type", 1), ("entity_id", 1)], "idx_entity", False),
]


def ensure_workflow_indexes(db: Database, config: dict[str, Any]) -> list[str]:
    """
    Create every workflow index if it does not exist.
    Idempotent: safe to call repeatedly.

    Returns:
        The names of the indexes (existing or newly created), in WORKFLOW_INDEXES order.
    """
    names = collection_names(config)
    created = []
    for logical, key, name, unique in WORKFLOW_INDEXES:
        collection = db[names[logical]]
        created.append(collection.create_index(key, name=name, unique=unique))
    return created
