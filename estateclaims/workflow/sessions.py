"""
Claim Session Engine.

STARTED -> DOCUMENTS_UPLOADED -> UNDER_REVIEW -> VERIFIED -> APPROVED, with REJECTED reachable
from DOCUMENTS_UPLOADED or UNDER_REVIEW. Submission is gated on document coverage; the
verification outcome is fed by the review coordinator from the documents' aggregate state.
Approval hands the session to the asset discovery hook after the transition commits.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from estateclaims.audit import AuditRecorder
from estateclaims.errors import (
    AuthorizationError,
    PreconditionError,
    StateError,
    ValidationError,
    WorkflowError,
)
from estateclaims.identity import Caller, require_owner_or_staff, require_staff
from estateclaims.models import (
    DOCUMENT_CATALOG,
    ENTITY_CLAIM_SESSION,
    Asset,
    AuditAction,
    ClaimSession,
    ClaimStatus,
    Document,
    DocumentTypeSpec,
    new_id,
    utcnow,
)
from estateclaims.store.base import ASSETS, SESSIONS, WorkflowStore
from estateclaims.workflow.base import EngineBase
from estateclaims.workflow.documents import DocumentVerificationEngine
from estateclaims.workflow.predicates import (
    PENDING_SESSION_STATUSES,
    document_set_outcome,
    missing_required_types,
    upload_progress,
)
from estateclaims.workflow.transitions import SESSION_TRANSITIONS, check_transition

logger = logging.getLogger(__name__)


@dataclass
class SessionDetail:
    """A session with its documents and assets, newest first, plus catalog progress."""

    session: ClaimSession
    documents: list[Document]
    assets: list[Asset]
    progress: int
    missing_required: list[str]
    catalog: tuple[DocumentTypeSpec, ...] = DOCUMENT_CATALOG


def _clean(value: str | None) -> str:
    return (value or "").strip()


def _append_note(existing: str | None, note: str) -> str:
    return f"{existing}\n{note}" if existing else note


class ClaimSessionEngine(EngineBase):
    collection = SESSIONS
    entity_type = ENTITY_CLAIM_SESSION

    def __init__(
        self,
        store: WorkflowStore,
        audit: AuditRecorder,
        documents: DocumentVerificationEngine,
        on_approved: Callable[[ClaimSession], Any] | None = None,
    ):
        super().__init__(store, audit)
        self.documents = documents
        self.on_approved = on_approved

    def _session(self, session_id: str) -> ClaimSession:
        return ClaimSession.from_document(self._load(session_id))

    def _transition(
        self,
        caller: Caller,
        session: ClaimSession,
        target: ClaimStatus,
        action: AuditAction,
        extra_updates: dict[str, Any] | None = None,
        detail: dict[str, Any] | None = None,
    ) -> ClaimSession:
        """Validate and apply one transition plus its audit entry. Caller holds the transaction."""
        check_transition(
            SESSION_TRANSITIONS, session.status, target, entity=ENTITY_CLAIM_SESSION, entity_id=session.id
        )
        updates = {"status": target.value, "updated_at": utcnow(), **(extra_updates or {})}
        updated = self._cas(session.id, session.status.value, updates)
        self.audit.record(
            caller,
            action,
            ENTITY_CLAIM_SESSION,
            session.id,
            {"from": session.status.value, "to": target.value, **(detail or {})},
        )
        logger.info("Session %s %s -> %s", session.id, session.status.value, target.value)
        return ClaimSession.from_document(updated)

    # --- operations ---

    def create_session(
        self,
        caller: Caller,
        deceased_name: str,
        relationship: str,
        consent: bool,
        deceased_id_number: str | None = None,
        notes: str | None = None,
    ) -> ClaimSession:
        """Create a STARTED session owned by the caller. Consent is mandatory."""
        deceased_name = _clean(deceased_name)
        relationship = _clean(relationship)
        if not deceased_name:
            raise ValidationError("deceased_name is required")
        if not relationship:
            raise ValidationError("relationship is required")
        if consent is not True:
            raise ValidationError("Consent is required to start a claim")

        now = utcnow()
        session = ClaimSession(
            id=new_id(),
            claimant_id=caller.user_id,
            deceased_name=deceased_name,
            relationship=relationship,
            consent_given=True,
            consent_timestamp=now,
            deceased_id_number=_clean(deceased_id_number) or None,
            notes=_clean(notes) or None,
            created_at=now,
            updated_at=now,
        )
        with self.store.transaction():
            self.store.insert(SESSIONS, session.to_document())
            self.audit.record(
                caller,
                AuditAction.CREATE,
                ENTITY_CLAIM_SESSION,
                session.id,
                {"deceased_name": deceased_name, "relationship": relationship},
            )
        logger.info("Created session %s for claimant %s", session.id, caller.user_id)
        return session

    def grant_consent(self, caller: Caller, session_id: str) -> ClaimSession:
        """Record the claimant's consent (flag and timestamp together). Idempotent."""
        with self.store.transaction():
            session = self._session(session_id)
            if caller.user_id != session.claimant_id:
                raise AuthorizationError(
                    "Only the claimant can give consent", {"session_id": session_id}
                )
            if session.consent_given:
                return session
            if session.status in (ClaimStatus.APPROVED, ClaimStatus.REJECTED):
                raise StateError(
                    f"Session in {session.status.value} is closed", {"session_id": session_id}
                )
            now = utcnow()
            updated = self._cas(
                session_id,
                session.status.value,
                {"consent_given": True, "consent_timestamp": now, "updated_at": now},
                extra_expected={"consent_given": False},
            )
            self.audit.record(
                caller, AuditAction.UPDATE, ENTITY_CLAIM_SESSION, session_id, {"consent_given": True}
            )
        return ClaimSession.from_document(updated)

    def submit_documents(self, caller: Caller, session_id: str) -> ClaimSession:
        """
        STARTED -> DOCUMENTS_UPLOADED once every required type has a non-REJECTED document.
        Already DOCUMENTS_UPLOADED is a no-op.
        """
        with self.store.transaction():
            session = self._session(session_id)
            require_owner_or_staff(caller, session.claimant_id, "submit_documents")
            if session.status is ClaimStatus.DOCUMENTS_UPLOADED:
                return session
            check_transition(
                SESSION_TRANSITIONS,
                session.status,
                ClaimStatus.DOCUMENTS_UPLOADED,
                entity=ENTITY_CLAIM_SESSION,
                entity_id=session_id,
            )
            missing = missing_required_types(self.documents.list_documents(session_id))
            if missing:
                raise PreconditionError(
                    "Upload all required documents to proceed",
                    {"session_id": session_id, "missing": missing},
                )
            return self._transition(caller, session, ClaimStatus.DOCUMENTS_UPLOADED, AuditAction.UPDATE)

    def begin_review(self, caller: Caller, session_id: str, reviewer_id: str | None = None) -> ClaimSession:
        """DOCUMENTS_UPLOADED -> UNDER_REVIEW with the reviewer assigned."""
        require_staff(caller, "begin_review")
        reviewer_id = reviewer_id or caller.user_id
        with self.store.transaction():
            session = self._session(session_id)
            return self._transition(
                caller,
                session,
                ClaimStatus.UNDER_REVIEW,
                AuditAction.UPDATE,
                extra_updates={"assigned_reviewer_id": reviewer_id},
                detail={"reviewer_id": reviewer_id},
            )

    def record_verification_outcome(
        self,
        caller: Caller,
        session_id: str,
        all_required_docs_verified: bool,
        notes: str | None = None,
    ) -> ClaimSession:
        """
        UNDER_REVIEW -> VERIFIED (True) or REJECTED (False, notes required).

        The outcome must agree with the session's documents: True only once every required type
        has a VERIFIED document, False only once the required set is settled without that.
        Repeating the outcome the session already holds is a no-op; a conflicting outcome
        is a StateError.
        """
        require_staff(caller, "record_verification_outcome")
        notes = _clean(notes)
        if not all_required_docs_verified and not notes:
            raise ValidationError("notes are required when rejecting a session")
        target = ClaimStatus.VERIFIED if all_required_docs_verified else ClaimStatus.REJECTED

        with self.store.transaction():
            session = self._session(session_id)
            already = (
                session.status in (ClaimStatus.VERIFIED, ClaimStatus.APPROVED)
                if all_required_docs_verified
                else session.status is ClaimStatus.REJECTED
            )
            if already:
                return session
            if session.status is not ClaimStatus.UNDER_REVIEW:
                raise StateError(
                    f"Cannot record a verification outcome for a session in {session.status.value}",
                    {"session_id": session_id, "status": session.status.value},
                )
            documents_outcome = document_set_outcome(self.documents.list_documents(session_id))
            if documents_outcome != bool(all_required_docs_verified):
                raise PreconditionError(
                    "Verification outcome does not match the session's document decisions",
                    {
                        "session_id": session_id,
                        "requested": all_required_docs_verified,
                        "documents_outcome": documents_outcome,
                    },
                )
            extra = {"notes": _append_note(session.notes, notes)} if notes else None
            return self._transition(
                caller,
                session,
                target,
                AuditAction.VERIFY if all_required_docs_verified else AuditAction.REJECT,
                extra_updates=extra,
                detail={"all_required_docs_verified": all_required_docs_verified, "notes": notes or None},
            )

    def reject(self, caller: Caller, session_id: str, notes: str) -> ClaimSession:
        """Reviewer rejection of a submitted session (DOCUMENTS_UPLOADED or UNDER_REVIEW)."""
        require_staff(caller, "reject")
        notes = _clean(notes)
        if not notes:
            raise ValidationError("notes are required when rejecting a session")
        with self.store.transaction():
            session = self._session(session_id)
            return self._transition(
                caller,
                session,
                ClaimStatus.REJECTED,
                AuditAction.REJECT,
                extra_updates={"notes": _append_note(session.notes, notes)},
                detail={"notes": notes},
            )

    def approve(self, caller: Caller, session_id: str) -> ClaimSession:
        """VERIFIED -> APPROVED, then hand the session to asset discovery."""
        require_staff(caller, "approve")
        with self.store.transaction():
            session = self._session(session_id)
            approved = self._transition(caller, session, ClaimStatus.APPROVED, AuditAction.APPROVE)

        if self.on_approved is not None:
            try:
                self.on_approved(approved)
            except WorkflowError as e:
                # Approval stands; discovery is retried through the asset engine
                logger.error("Asset discovery failed for session %s: %s", session_id, e)
            except Exception:
                logger.exception("Asset discovery crashed for session %s", session_id)
        return approved

    def add_note(self, caller: Caller, session_id: str, note: str) -> ClaimSession:
        note = _clean(note)
        if not note:
            raise ValidationError("note must not be empty")
        with self.store.transaction():
            session = self._session(session_id)
            require_owner_or_staff(caller, session.claimant_id, "add_note")
            updated = self._cas(
                session_id,
                session.status.value,
                {"notes": _append_note(session.notes, note), "updated_at": utcnow()},
                extra_expected={"updated_at": session.updated_at},
            )
            self.audit.record(caller, AuditAction.UPDATE, ENTITY_CLAIM_SESSION, session_id, {"note": note})
        return ClaimSession.from_document(updated)

    # --- queries ---

    def get_session(self, caller: Caller, session_id: str) -> ClaimSession:
        session = self._session(session_id)
        require_owner_or_staff(caller, session.claimant_id, "get_session")
        return session

    def list_sessions_for_claimant(self, claimant_id: str) -> list[ClaimSession]:
        docs = self.store.find(SESSIONS, {"claimant_id": claimant_id}, sort=[("created_at", -1)])
        return [ClaimSession.from_document(d) for d in docs]

    def session_detail(self, caller: Caller, session_id: str) -> SessionDetail:
        session = self.get_session(caller, session_id)
        documents = self.documents.list_documents(session_id)
        assets = [
            Asset.from_document(d)
            for d in self.store.find(
                ASSETS, {"claim_session_id": session_id}, sort=[("discovered_at", -1)]
            )
        ]
        return SessionDetail(
            session=session,
            documents=documents,
            assets=assets,
            progress=upload_progress(documents),
            missing_required=missing_required_types(documents),
        )

    def claimant_dashboard(self, caller: Caller) -> dict[str, int]:
        """Counts for the claimant's own sessions and the assets found for them."""
        sessions = self.list_sessions_for_claimant(caller.user_id)
        session_ids = [s.id for s in sessions]
        assets_found = (
            self.store.count(ASSETS, {"claim_session_id": {"$in": session_ids}}) if session_ids else 0
        )
        return {
            "total_claims": len(sessions),
            "pending": sum(1 for s in sessions if s.status in PENDING_SESSION_STATUSES),
            "approved": sum(1 for s in sessions if s.status is ClaimStatus.APPROVED),
            "assets_found": assets_found,
        }
