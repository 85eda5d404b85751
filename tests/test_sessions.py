"""
Tests for the claim session engine: creation, consent, submission gating, review outcomes,
approval and the claimant-facing queries.
"""

import threading

import pytest

from estateclaims.errors import (
    AuthorizationError,
    ConcurrentModificationError,
    NotFoundError,
    PreconditionError,
    StateError,
    ValidationError,
)
from estateclaims.models import ClaimSession, ClaimStatus, new_id, utcnow
from estateclaims.services import StubOcrService
from estateclaims.store import AUDIT_LOGS, SESSIONS, InMemoryWorkflowStore
from estateclaims.workflow import build_workflow


def test_create_session_starts_with_consent(wf, claimant):
    session = wf.sessions.create_session(claimant, "  Robert Smith ", "child", consent=True, notes="  ")

    assert session.status is ClaimStatus.STARTED
    assert session.claimant_id == claimant.user_id
    assert session.deceased_name == "Robert Smith"
    assert session.consent_given is True
    assert session.consent_timestamp is not None
    assert session.notes is None


@pytest.mark.parametrize(
    "name,relationship,consent",
    [("", "child", True), ("Robert Smith", "   ", True), ("Robert Smith", "child", False)],
)
def test_create_session_validation(wf, claimant, name, relationship, consent):
    with pytest.raises(ValidationError):
        wf.sessions.create_session(claimant, name, relationship, consent=consent)


def test_submit_requires_every_required_type(wf, claimant, session, upload):
    upload(claimant, session.id, "death_certificate")
    upload(claimant, session.id, "claimant_id")

    with pytest.raises(PreconditionError) as exc_info:
        wf.sessions.submit_documents(claimant, session.id)
    assert exc_info.value.details["missing"] == ["proof_of_relationship"]

    upload(claimant, session.id, "proof_of_relationship")
    submitted = wf.sessions.submit_documents(claimant, session.id)
    assert submitted.status is ClaimStatus.DOCUMENTS_UPLOADED


def test_submit_after_review_is_state_error(wf, claimant, under_review, session):
    with pytest.raises(StateError):
        wf.sessions.submit_documents(claimant, session.id)


def test_submit_by_other_claimant_is_forbidden(wf, other_claimant, session):
    with pytest.raises(AuthorizationError):
        wf.sessions.submit_documents(other_claimant, session.id)


def test_begin_review_requires_staff(wf, claimant, session, upload):
    for t in ("death_certificate", "claimant_id", "proof_of_relationship"):
        upload(claimant, session.id, t)
    wf.sessions.submit_documents(claimant, session.id)

    with pytest.raises(AuthorizationError):
        wf.sessions.begin_review(claimant, session.id)


def test_begin_review_assigns_reviewer(under_review, reviewer):
    session, _ = under_review
    assert session.status is ClaimStatus.UNDER_REVIEW
    assert session.assigned_reviewer_id == reviewer.user_id


def test_begin_review_from_started_is_state_error(wf, reviewer, session):
    with pytest.raises(StateError):
        wf.sessions.begin_review(reviewer, session.id)


def decide_all(wf, reviewer, documents, rejected=()):
    """Decide every document directly on the document engine, leaving the session status alone."""
    for doc_type, document in documents.items():
        if doc_type in rejected:
            wf.documents.decide(reviewer, document.id, approved=False, reason="unreadable")
        else:
            wf.documents.decide(reviewer, document.id, approved=True)


def test_verification_outcome_verified_then_idempotent(wf, store, reviewer, under_review):
    session, documents = under_review
    decide_all(wf, reviewer, documents)
    verified = wf.sessions.record_verification_outcome(reviewer, session.id, True)
    assert verified.status is ClaimStatus.VERIFIED

    before = store.count(AUDIT_LOGS)
    again = wf.sessions.record_verification_outcome(reviewer, session.id, True)
    assert again.status is ClaimStatus.VERIFIED
    assert store.count(AUDIT_LOGS) == before


def test_verification_outcome_must_match_pending_documents(wf, store, reviewer, admin, under_review):
    session, _ = under_review
    before = store.count(AUDIT_LOGS)

    with pytest.raises(PreconditionError):
        wf.sessions.record_verification_outcome(reviewer, session.id, True)
    with pytest.raises(PreconditionError):
        wf.sessions.record_verification_outcome(reviewer, session.id, False, "looks wrong")
    with pytest.raises(StateError):
        wf.sessions.approve(admin, session.id)

    assert wf.sessions.get_session(reviewer, session.id).status is ClaimStatus.UNDER_REVIEW
    assert store.count(AUDIT_LOGS) == before


def test_verification_outcome_must_match_decided_documents(wf, reviewer, under_review):
    session, documents = under_review
    decide_all(wf, reviewer, documents, rejected={"claimant_id"})
    with pytest.raises(PreconditionError) as exc_info:
        wf.sessions.record_verification_outcome(reviewer, session.id, True)
    assert exc_info.value.details["documents_outcome"] is False


def test_verification_outcome_only_from_under_review(wf, claimant, reviewer, session, upload):
    for t in ("death_certificate", "claimant_id", "proof_of_relationship"):
        upload(claimant, session.id, t)
    wf.sessions.submit_documents(claimant, session.id)

    with pytest.raises(StateError):
        wf.sessions.record_verification_outcome(reviewer, session.id, False, "never reviewed")
    assert wf.sessions.get_session(reviewer, session.id).status is ClaimStatus.DOCUMENTS_UPLOADED


def test_conflicting_verification_outcome_is_state_error(wf, reviewer, under_review):
    session, documents = under_review
    decide_all(wf, reviewer, documents)
    wf.sessions.record_verification_outcome(reviewer, session.id, True)
    with pytest.raises(StateError):
        wf.sessions.record_verification_outcome(reviewer, session.id, False, "forged certificate")


def test_rejection_outcome_requires_notes(wf, reviewer, under_review):
    session, documents = under_review
    decide_all(wf, reviewer, documents, rejected={"death_certificate"})
    with pytest.raises(ValidationError):
        wf.sessions.record_verification_outcome(reviewer, session.id, False, "  ")

    rejected = wf.sessions.record_verification_outcome(reviewer, session.id, False, "forged certificate")
    assert rejected.status is ClaimStatus.REJECTED
    assert rejected.notes == "forged certificate"
    # Repeating the same outcome is a no-op
    assert wf.sessions.record_verification_outcome(reviewer, session.id, False, "again").notes == "forged certificate"


def test_concurrent_conflicting_outcomes_exactly_one_commits(wf, reviewer, under_review):
    session, documents = under_review
    decide_all(wf, reviewer, documents)
    barrier = threading.Barrier(2)
    results, errors = [], []

    def run(verified):
        barrier.wait()
        try:
            if verified:
                results.append(wf.sessions.record_verification_outcome(reviewer, session.id, True))
            else:
                results.append(wf.sessions.reject(reviewer, session.id, "bad scan"))
        except (StateError, ConcurrentModificationError) as e:
            errors.append(e)

    threads = [threading.Thread(target=run, args=(v,)) for v in (True, False)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 1
    assert len(errors) == 1
    final = wf.sessions.get_session(reviewer, session.id)
    assert final.status is results[0].status


class RacingStore(InMemoryWorkflowStore):
    """Lets another writer change a session's status just before the next compare-and-set."""

    def __init__(self):
        super().__init__()
        self.race_to = None

    def compare_and_set(self, collection, record_id, expected, updates):
        if self.race_to is not None and collection == SESSIONS:
            race_to, self.race_to = self.race_to, None
            super().compare_and_set(collection, record_id, {}, {"status": race_to})
        return super().compare_and_set(collection, record_id, expected, updates)


def test_lost_compare_and_set_raises_concurrent_modification(blobstore, settings, claimant, reviewer):
    store = RacingStore()
    wf = build_workflow(store, blobstore, StubOcrService(), None, settings)
    now = utcnow()
    session = ClaimSession(
        id=new_id(),
        claimant_id=claimant.user_id,
        deceased_name="Robert Smith",
        relationship="child",
        status=ClaimStatus.UNDER_REVIEW,
        consent_given=True,
        consent_timestamp=now,
        created_at=now,
        updated_at=now,
    )
    store.insert(SESSIONS, session.to_document())

    store.race_to = ClaimStatus.VERIFIED.value
    with pytest.raises(ConcurrentModificationError):
        wf.sessions.reject(reviewer, session.id, "wrong estate")

    # The losing transition is not applied and leaves no audit entry
    assert store.get(SESSIONS, session.id)["status"] != ClaimStatus.REJECTED.value
    assert store.count(AUDIT_LOGS) == 0


def test_reject_from_documents_uploaded(wf, claimant, reviewer, session, upload):
    for t in ("death_certificate", "claimant_id", "proof_of_relationship"):
        upload(claimant, session.id, t)
    wf.sessions.submit_documents(claimant, session.id)

    rejected = wf.sessions.reject(reviewer, session.id, "wrong estate")
    assert rejected.status is ClaimStatus.REJECTED

    with pytest.raises(StateError):
        wf.sessions.reject(reviewer, session.id, "again")


def test_approve_requires_verified(wf, admin, under_review):
    session, _ = under_review
    with pytest.raises(StateError):
        wf.sessions.approve(admin, session.id)


def test_approve_triggers_discovery(wf, discovery, approved):
    assert approved.status is ClaimStatus.APPROVED
    assert discovery.calls == [approved.id]
    assert len(wf.assets.list_assets(approved.id)) == 3


def test_approval_stands_when_discovery_fails(wf, admin, reviewer, under_review, discovery):
    session, documents = under_review

    def broken(_session):
        raise ConnectionError("institution gateway down")

    discovery.discover = broken
    for document in documents.values():
        wf.review.decide(reviewer, document.id, approved=True)

    approved = wf.sessions.approve(admin, session.id)

    assert approved.status is ClaimStatus.APPROVED
    assert wf.assets.list_assets(session.id) == []


def test_approval_stands_when_discovery_hook_crashes(wf, store, admin, reviewer, under_review):
    session, documents = under_review
    for document in documents.values():
        wf.review.decide(reviewer, document.id, approved=True)

    def crash(_session):
        raise RuntimeError("asset store unavailable")

    wf.sessions.on_approved = crash

    approved = wf.sessions.approve(admin, session.id)

    assert approved.status is ClaimStatus.APPROVED
    assert store.get(SESSIONS, session.id)["status"] == ClaimStatus.APPROVED.value


def test_grant_consent_enables_uploads(wf, store, claimant, pdf):
    now = utcnow()
    imported = ClaimSession(
        id=new_id(),
        claimant_id=claimant.user_id,
        deceased_name="Robert Smith",
        relationship="spouse",
        created_at=now,
        updated_at=now,
    )
    store.insert(SESSIONS, imported.to_document())
    meta, content = pdf()

    with pytest.raises(PreconditionError):
        wf.documents.upload(claimant, imported.id, "death_certificate", meta, content)

    consented = wf.sessions.grant_consent(claimant, imported.id)
    assert consented.consent_given is True
    assert consented.consent_timestamp is not None

    document = wf.documents.upload(claimant, imported.id, "death_certificate", meta, content)
    assert document.claim_session_id == imported.id


def test_grant_consent_only_by_claimant(wf, reviewer, session):
    with pytest.raises(AuthorizationError):
        wf.sessions.grant_consent(reviewer, session.id)


def test_add_note_appends(wf, claimant, session):
    wf.sessions.add_note(claimant, session.id, "called First National")
    updated = wf.sessions.add_note(claimant, session.id, "awaiting statement")
    assert updated.notes == "called First National\nawaiting statement"


def test_get_session_unknown_id(wf, claimant):
    with pytest.raises(NotFoundError):
        wf.sessions.get_session(claimant, "missing")


def test_get_session_hidden_from_other_claimants(wf, other_claimant, reviewer, session):
    with pytest.raises(AuthorizationError):
        wf.sessions.get_session(other_claimant, session.id)
    assert wf.sessions.get_session(reviewer, session.id).id == session.id


def test_session_detail_reports_progress(wf, claimant, session, upload):
    upload(claimant, session.id, "death_certificate")
    upload(claimant, session.id, "other")

    detail = wf.sessions.session_detail(claimant, session.id)

    assert detail.session.id == session.id
    assert len(detail.documents) == 2
    assert detail.progress == 33
    assert detail.missing_required == ["claimant_id", "proof_of_relationship"]
    assert len(detail.catalog) == 6


def test_claimant_dashboard(wf, claimant, approved):
    wf.sessions.create_session(claimant, "Mary Smith", "child", consent=True)

    dashboard = wf.sessions.claimant_dashboard(claimant)

    assert dashboard == {"total_claims": 2, "pending": 1, "approved": 1, "assets_found": 3}


def test_list_sessions_for_claimant_only_own(wf, claimant, other_claimant, session):
    wf.sessions.create_session(other_claimant, "Someone Else", "sibling", consent=True)
    sessions = wf.sessions.list_sessions_for_claimant(claimant.user_id)
    assert [s.id for s in sessions] == [session.id]
