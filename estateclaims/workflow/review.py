"""
Review/Admin Coordinator.

The single writer of the document-to-session link: a reviewer decision on a document and the
session's verification outcome that follows from it commit in one transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, time, timezone
from typing import Any

from estateclaims.audit import DEFAULT_RECENT_LIMIT, AuditRecorder
from estateclaims.identity import Caller, require_staff
from estateclaims.models import AuditLogEntry, ClaimSession, ClaimStatus, Document, DocumentStatus, utcnow
from estateclaims.store.base import DOCUMENTS, SESSIONS, WorkflowStore
from estateclaims.workflow.base import load_session
from estateclaims.workflow.documents import DocumentVerificationEngine
from estateclaims.workflow.predicates import (
    UNDECIDED_DOCUMENT_STATUSES,
    document_set_outcome,
    unverified_required_types,
)
from estateclaims.workflow.sessions import ClaimSessionEngine

logger = logging.getLogger(__name__)


@dataclass
class PendingDocument:
    """A document awaiting a decision, joined with its session's case fields."""

    document: Document
    deceased_name: str
    claimant_id: str


def _start_of_day(now: datetime) -> datetime:
    return datetime.combine(now.astimezone(timezone.utc).date(), time.min, tzinfo=timezone.utc)


class ReviewCoordinator:
    def __init__(
        self,
        store: WorkflowStore,
        audit: AuditRecorder,
        documents: DocumentVerificationEngine,
        sessions: ClaimSessionEngine,
    ):
        self.store = store
        self.audit = audit
        self.documents = documents
        self.sessions = sessions

    def pending_documents(self, search: str | None = None) -> list[PendingDocument]:
        """
        Documents in PENDING or OCR_COMPLETE across all sessions, newest upload first.
        search matches file name or deceased name, case-insensitively.
        """
        docs = self.store.find(
            DOCUMENTS,
            {"status": {"$in": [s.value for s in UNDECIDED_DOCUMENT_STATUSES]}},
            sort=[("uploaded_at", -1)],
        )
        session_ids = sorted({d["claim_session_id"] for d in docs})
        sessions = {
            s["_id"]: ClaimSession.from_document(s)
            for s in (self.store.find(SESSIONS, {"_id": {"$in": session_ids}}) if session_ids else [])
        }
        needle = (search or "").strip().lower()
        out = []
        for raw in docs:
            document = Document.from_document(raw)
            session = sessions.get(document.claim_session_id)
            if session is None:
                logger.warning("Document %s references missing session %s", document.id, document.claim_session_id)
                continue
            if needle and needle not in document.file_name.lower() and needle not in session.deceased_name.lower():
                continue
            out.append(PendingDocument(document, session.deceased_name, session.claimant_id))
        return out

    def _link_outcome(self, caller: Caller, session_id: str) -> ClaimSession | None:
        """If the session is UNDER_REVIEW and its required set is settled, record the outcome."""
        session = load_session(self.store, session_id)
        if session.status is not ClaimStatus.UNDER_REVIEW:
            return None
        documents = self.documents.list_documents(session_id)
        outcome = document_set_outcome(documents)
        if outcome is None:
            return None
        notes = None
        if outcome is False:
            notes = "Required documents not verified: " + ", ".join(unverified_required_types(documents))
        return self.sessions.record_verification_outcome(caller, session_id, outcome, notes)

    def decide(
        self,
        caller: Caller,
        document_id: str,
        approved: bool,
        reason: str | None = None,
    ) -> tuple[Document, ClaimSession | None]:
        """
        Apply a reviewer decision and, in the same transaction, the session verification
        outcome it settles. Returns the document and the session if its status changed.
        """
        require_staff(caller, "decide")
        with self.store.transaction():
            document = self.documents.decide(caller, document_id, approved, reason)
            session = self._link_outcome(caller, document.claim_session_id)
        return document, session

    def begin_review(self, caller: Caller, session_id: str) -> ClaimSession:
        """Assign the caller as reviewer; a document set already settled is linked immediately."""
        with self.store.transaction():
            session = self.sessions.begin_review(caller, session_id, caller.user_id)
            linked = self._link_outcome(caller, session_id)
        return linked or session

    def admin_stats(self) -> dict[str, Any]:
        pending = self.store.count(
            DOCUMENTS, {"status": {"$in": [s.value for s in UNDECIDED_DOCUMENT_STATUSES]}}
        )
        verified_today = self.store.count(
            DOCUMENTS,
            {"status": DocumentStatus.VERIFIED.value, "verified_at": {"$gte": _start_of_day(utcnow())}},
        )
        return {
            "pending_review": pending,
            "verified_today": verified_today,
            "total_claims": self.store.count(SESSIONS),
            "sessions_by_status": self.store.count_by(SESSIONS, "status"),
        }

    def recent_audit_log(self, limit: int = DEFAULT_RECENT_LIMIT) -> list[AuditLogEntry]:
        return self.audit.recent(limit)
