"""
Data-access interface for the workflow's transactional store.

Records are plain documents keyed by a string _id. Filters use the MongoDB query subset the
workflow needs: field equality plus $in, $gt, $gte, $lt, $lte. Sorts are lists of (field, 1 | -1).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Any

# Logical collection names; the Mongo store maps them to configured names
SESSIONS = "claim_sessions"
DOCUMENTS = "documents"
ASSETS = "assets"
ASSET_CLAIMS = "asset_claims"
AUDIT_LOGS = "audit_logs"

COLLECTIONS = (SESSIONS, DOCUMENTS, ASSETS, ASSET_CLAIMS, AUDIT_LOGS)

# Field tuples that must be unique per collection
UNIQUE_KEYS: dict[str, list[tuple[str, ...]]] = {
    ASSET_CLAIMS: [("asset_id", "claimant_id")],
}

Filter = dict[str, Any]
Sort = list[tuple[str, int]]


class WorkflowStore(ABC):
    """
    Transactional store used by every engine.

    transaction() opens one atomic unit; nested calls join the outer unit. If the block
    raises, every write made inside it is rolled back.
    """

    @abstractmethod
    def transaction(self) -> AbstractContextManager[None]:
        ...

    @abstractmethod
    def insert(self, collection: str, doc: dict[str, Any]) -> None:
        """Insert a new record. Raises ConflictError on a unique-key violation."""

    @abstractmethod
    def get(self, collection: str, record_id: str) -> dict[str, Any] | None:
        ...

    @abstractmethod
    def find(
        self,
        collection: str,
        filt: Filter | None = None,
        sort: Sort | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        ...

    @abstractmethod
    def count(self, collection: str, filt: Filter | None = None) -> int:
        ...

    @abstractmethod
    def compare_and_set(
        self,
        collection: str,
        record_id: str,
        expected: dict[str, Any],
        updates: dict[str, Any],
    ) -> dict[str, Any] | None:
        """
        Apply updates to the record only if every field in expected still holds.
        Returns the updated record, or None when the record is missing or changed since read.
        """

    @abstractmethod
    def count_by(self, collection: str, field: str) -> dict[str, int]:
        """Return {value: count} grouped on field."""
