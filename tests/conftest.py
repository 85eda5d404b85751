"""
Shared fixtures: an in-process workflow over a temp blob directory, callers for each role,
and helpers that drive a session to a given state.
"""

import pytest

from estateclaims.config_loader import WorkflowSettings
from estateclaims.identity import Caller
from estateclaims.models import REQUIRED_DOCUMENT_TYPES, FileMeta, Role
from estateclaims.services import LocalBlobStore, StubAssetDiscovery, StubOcrService
from estateclaims.services.discovery import default_demo_specs
from estateclaims.store import InMemoryWorkflowStore
from estateclaims.workflow import build_workflow

PDF_BYTES = b"%PDF-1.4\n% test document\n"


@pytest.fixture
def settings():
    """Short timeouts and no backoff so retry paths run instantly."""
    return WorkflowSettings(ocr_timeout_seconds=5, discovery_timeout_seconds=5, backoff_seconds=0.0)


@pytest.fixture
def store():
    return InMemoryWorkflowStore()


@pytest.fixture
def blobstore(tmp_path):
    return LocalBlobStore(tmp_path / "blobs")


@pytest.fixture
def discovery():
    return StubAssetDiscovery(default_demo_specs())


@pytest.fixture
def wf(store, blobstore, discovery, settings):
    return build_workflow(store, blobstore, StubOcrService(), discovery, settings)


@pytest.fixture
def claimant():
    return Caller("claimant-1", frozenset({Role.CLAIMANT}), "10.0.0.1", "pytest")


@pytest.fixture
def other_claimant():
    return Caller("claimant-2", frozenset({Role.CLAIMANT}), "10.0.0.2", "pytest")


@pytest.fixture
def reviewer():
    return Caller("reviewer-1", frozenset({Role.REVIEWER}))


@pytest.fixture
def admin():
    return Caller("admin-1", frozenset({Role.ADMIN}))


@pytest.fixture
def pdf():
    """Factory: (FileMeta, bytes) for a small PDF named file_name."""

    def make(file_name="file.pdf"):
        return FileMeta(file_name, "application/pdf", len(PDF_BYTES)), PDF_BYTES

    return make


@pytest.fixture
def session(wf, claimant):
    return wf.sessions.create_session(claimant, "Robert Smith", "child", consent=True)


@pytest.fixture
def upload(wf, pdf):
    """Factory: upload one document of doc_type to a session and return it."""

    def do_upload(caller, session_id, doc_type, file_name=None):
        meta, content = pdf(file_name or f"{doc_type}.pdf")
        return wf.documents.upload(caller, session_id, doc_type, meta, content)

    return do_upload


@pytest.fixture
def under_review(wf, claimant, reviewer, session, upload):
    """Session UNDER_REVIEW with one PENDING document per required type. Returns (session, documents)."""
    documents = {t: upload(claimant, session.id, t) for t in sorted(REQUIRED_DOCUMENT_TYPES)}
    wf.sessions.submit_documents(claimant, session.id)
    reviewed = wf.review.begin_review(reviewer, session.id)
    return reviewed, documents


@pytest.fixture
def approved(wf, reviewer, admin, under_review):
    """APPROVED session with the demo assets discovered."""
    session, documents = under_review
    for document in documents.values():
        wf.review.decide(reviewer, document.id, approved=True)
    return wf.sessions.approve(admin, session.id)
