# Workflow engines and their wiring

from __future__ import annotations

from dataclasses import dataclass

from estateclaims.audit import AuditRecorder
from estateclaims.config_loader import WorkflowSettings
from estateclaims.services.blobstore import BlobStore
from estateclaims.services.discovery import AssetDiscovery
from estateclaims.services.ocr import OcrService
from estateclaims.store.base import WorkflowStore
from estateclaims.workflow.asset_claims import AssetClaimEngine
from estateclaims.workflow.documents import DocumentVerificationEngine
from estateclaims.workflow.review import PendingDocument, ReviewCoordinator
from estateclaims.workflow.sessions import ClaimSessionEngine, SessionDetail
from estateclaims.workflow.transitions import check_transition


@dataclass
class Workflow:
    store: WorkflowStore
    audit: AuditRecorder
    documents: DocumentVerificationEngine
    sessions: ClaimSessionEngine
    assets: AssetClaimEngine
    review: ReviewCoordinator


def build_workflow(
    store: WorkflowStore,
    blobstore: BlobStore,
    ocr: OcrService,
    discovery: AssetDiscovery | None = None,
    settings: WorkflowSettings | None = None,
) -> Workflow:
    """Wire the engines over one store; approval hands sessions to asset discovery."""
    settings = settings or WorkflowSettings()
    audit = AuditRecorder(store)
    documents = DocumentVerificationEngine(store, audit, blobstore, ocr, settings)
    assets = AssetClaimEngine(store, audit, blobstore, discovery, settings)
    sessions = ClaimSessionEngine(store, audit, documents, on_approved=assets.discover_assets)
    review = ReviewCoordinator(store, audit, documents, sessions)
    return Workflow(store, audit, documents, sessions, assets, review)


__all__ = [
    "AssetClaimEngine",
    "ClaimSessionEngine",
    "DocumentVerificationEngine",
    "PendingDocument",
    "ReviewCoordinator",
    "SessionDetail",
    "Workflow",
    "build_workflow",
    "check_transition",
]
