"""
Tests for the audit recorder and the one-entry-per-committed-change contract.
"""

from datetime import datetime, timezone

import pytest

from estateclaims.audit import AuditRecorder
from estateclaims.errors import AuditWriteError
from estateclaims.models import ENTITY_CLAIM_SESSION, AuditAction, ClaimStatus
from estateclaims.store import AUDIT_LOGS, SESSIONS, InMemoryWorkflowStore
from estateclaims.services import StubOcrService
from estateclaims.workflow import build_workflow


class FailingAuditStore(InMemoryWorkflowStore):
    """Store whose audit collection rejects writes once armed."""

    def __init__(self):
        super().__init__()
        self.fail_audit = False

    def insert(self, collection, doc):
        if collection == AUDIT_LOGS and self.fail_audit:
            raise OSError("audit volume unavailable")
        super().insert(collection, doc)


def test_record_writes_entry_with_request_metadata(claimant):
    store = InMemoryWorkflowStore()
    audit = AuditRecorder(store)

    entry = audit.record(claimant, AuditAction.VIEW, "document", "d1", {"k": "v"})

    stored = store.get(AUDIT_LOGS, entry.id)
    assert stored["user_id"] == claimant.user_id
    assert stored["action"] == "VIEW"
    assert stored["entity_type"] == "document"
    assert stored["details"] == {"k": "v"}
    assert stored["ip_address"] == "10.0.0.1"
    assert stored["user_agent"] == "pytest"


def test_record_failure_raises_audit_write_error(claimant):
    store = FailingAuditStore()
    store.fail_audit = True
    with pytest.raises(AuditWriteError) as exc_info:
        AuditRecorder(store).record(claimant, AuditAction.CREATE, "claim_session", "s1")
    assert isinstance(exc_info.value.__cause__, OSError)


def test_audit_failure_rolls_back_state_change(blobstore, settings, claimant):
    store = FailingAuditStore()
    wf = build_workflow(store, blobstore, StubOcrService(), None, settings)
    session = wf.sessions.create_session(claimant, "Robert Smith", "child", consent=True)

    store.fail_audit = True
    with pytest.raises(AuditWriteError):
        wf.sessions.add_note(claimant, session.id, "called the bank")

    assert store.get(SESSIONS, session.id)["notes"] is None
    assert store.count(AUDIT_LOGS) == 1


def test_audit_failure_on_create_leaves_no_session(blobstore, settings, claimant):
    store = FailingAuditStore()
    store.fail_audit = True
    wf = build_workflow(store, blobstore, StubOcrService(), None, settings)

    with pytest.raises(AuditWriteError):
        wf.sessions.create_session(claimant, "Robert Smith", "child", consent=True)
    assert store.count(SESSIONS) == 0


def test_each_transition_writes_exactly_one_entry(wf, store, claimant, reviewer, under_review):
    session, _ = under_review
    before = store.count(AUDIT_LOGS)

    wf.sessions.reject(reviewer, session.id, "documents illegible")

    assert store.count(AUDIT_LOGS) == before + 1
    entries = wf.audit.for_entity(ENTITY_CLAIM_SESSION, session.id)
    assert entries[-1].action is AuditAction.REJECT
    assert entries[-1].details["from"] == ClaimStatus.UNDER_REVIEW.value
    assert entries[-1].details["to"] == ClaimStatus.REJECTED.value


def test_idempotent_repeat_writes_no_entry(wf, store, claimant, session, upload):
    for doc_type in ("death_certificate", "claimant_id", "proof_of_relationship"):
        upload(claimant, session.id, doc_type)
    wf.sessions.submit_documents(claimant, session.id)
    before = store.count(AUDIT_LOGS)

    wf.sessions.submit_documents(claimant, session.id)

    assert store.count(AUDIT_LOGS) == before


def test_recent_is_newest_first_and_limited():
    store = InMemoryWorkflowStore()
    for i in range(3):
        store.insert(
            AUDIT_LOGS,
            {
                "_id": f"a{i}",
                "user_id": "u1",
                "action": "VIEW",
                "entity_type": "document",
                "entity_id": "d1",
                "details": {},
                "created_at": datetime(2024, 1, 1, 12, i, tzinfo=timezone.utc),
            },
        )
    audit = AuditRecorder(store)

    assert [e.id for e in audit.recent(limit=2)] == ["a2", "a1"]
    assert [e.id for e in audit.for_entity("document", "d1")] == ["a0", "a1", "a2"]
