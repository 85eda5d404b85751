"""
Shared load and compare-and-set plumbing for the workflow engines.
"""

from __future__ import annotations

import logging
from typing import Any

from estateclaims.audit import AuditRecorder
from estateclaims.errors import ConcurrentModificationError, NotFoundError
from estateclaims.models import ClaimSession
from estateclaims.store.base import SESSIONS, WorkflowStore

logger = logging.getLogger(__name__)


def load_session(store: WorkflowStore, session_id: str) -> ClaimSession:
    doc = store.get(SESSIONS, session_id)
    if doc is None:
        raise NotFoundError("claim_session not found", {"id": session_id})
    return ClaimSession.from_document(doc)


class EngineBase:
    """Owns one collection; subclasses set collection and entity_type."""

    collection: str = ""
    entity_type: str = ""

    def __init__(self, store: WorkflowStore, audit: AuditRecorder):
        self.store = store
        self.audit = audit

    def _load(self, record_id: str) -> dict[str, Any]:
        doc = self.store.get(self.collection, record_id)
        if doc is None:
            raise NotFoundError(f"{self.entity_type} not found", {"id": record_id})
        return doc

    def _cas(
        self,
        record_id: str,
        expected_status: str,
        updates: dict[str, Any],
        extra_expected: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Write updates only if the stored status is still expected_status (and every field in
        extra_expected still holds). Raises ConcurrentModificationError when another writer
        got there first.
        """
        expected = {"status": expected_status, **(extra_expected or {})}
        updated = self.store.compare_and_set(self.collection, record_id, expected, updates)
        if updated is None:
            logger.warning(
                "Lost compare-and-set on %s %s (expected status %s)",
                self.entity_type,
                record_id,
                expected_status,
            )
            raise ConcurrentModificationError(
                f"{self.entity_type} changed since it was read; re-fetch and retry",
                {"id": record_id, "expected_status": expected_status},
            )
        return updated
