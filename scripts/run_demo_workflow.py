#!/usr/bin/env python3
"""
Run one claim end to end on the in-process store and print each step:
create session -> upload + OCR required documents -> submit -> review -> approve ->
asset discovery -> claim every asset -> receipt / processing -> transfer.

  python -m scripts.run_demo_workflow
  python -m scripts.run_demo_workflow --blob-dir /tmp/blobs --deceased "Jane Doe"
"""

from __future__ import annotations

import argparse
import sys
import tempfile
from pathlib import Path

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from dotenv import load_dotenv
load_dotenv(_PROJECT_ROOT / ".env")

from estateclaims.config_loader import load_config, workflow_settings
from estateclaims.identity import Caller
from estateclaims.logging_setup import setup_logging_from_config
from estateclaims.models import REQUIRED_DOCUMENT_TYPES, AssetClaimStatus, AssetType, FileMeta, Role
from estateclaims.services import LocalBlobStore, StubAssetDiscovery, StubOcrService
from estateclaims.services.discovery import default_demo_specs
from estateclaims.store import InMemoryWorkflowStore
from estateclaims.workflow import build_workflow

FAKE_PDF = b"%PDF-1.4\n% demo document\n"


def main() -> int:
    ap = argparse.ArgumentParser(description="Run the claim workflow end to end on the in-process store")
    ap.add_argument("--blob-dir", default=None, help="Directory for stored files (default: a temp dir)")
    ap.add_argument("--deceased", default="Robert Smith", help="Deceased person's name")
    ap.add_argument("--relationship", default="child", help="Claimant's relationship to the deceased")
    args = ap.parse_args()

    config_path = _PROJECT_ROOT / "config" / "config.yaml"
    if not config_path.exists():
        config_path = _PROJECT_ROOT / "config" / "config.example.yaml"
    config = load_config(config_path)
    setup_logging_from_config(config)

    blob_dir = args.blob_dir or tempfile.mkdtemp(prefix="estateclaims-demo-")
    wf = build_workflow(
        InMemoryWorkflowStore(),
        LocalBlobStore(blob_dir),
        StubOcrService(),
        StubAssetDiscovery(default_demo_specs()),
        workflow_settings(config),
    )

    claimant = Caller("claimant-1", frozenset({Role.CLAIMANT}), "127.0.0.1", "demo-script")
    reviewer = Caller("reviewer-1", frozenset({Role.REVIEWER}), "127.0.0.1", "demo-script")
    admin = Caller("admin-1", frozenset({Role.ADMIN}), "127.0.0.1", "demo-script")

    session = wf.sessions.create_session(claimant, args.deceased, args.relationship, consent=True)
    print(f"Session {session.id} created ({session.status.value})")

    for doc_type in sorted(REQUIRED_DOCUMENT_TYPES):
        meta = FileMeta(f"{doc_type}.pdf", "application/pdf", len(FAKE_PDF))
        document = wf.documents.upload(claimant, session.id, doc_type, meta, FAKE_PDF)
        document = wf.documents.run_ocr(claimant, document.id)
        print(f"  {doc_type}: {document.status.value} (confidence {document.ocr_data['confidence']})")

    session = wf.sessions.submit_documents(claimant, session.id)
    print(f"Submitted: {session.status.value}")

    session = wf.review.begin_review(reviewer, session.id)
    print(f"Review started by {session.assigned_reviewer_id}: {session.status.value}")

    pending = wf.review.pending_documents()
    print(f"Pending documents: {len(pending)}")
    for item in pending:
        _, linked = wf.review.decide(reviewer, item.document.id, approved=True)
        if linked is not None:
            print(f"Document set settled: session {linked.status.value}")

    session = wf.sessions.approve(admin, session.id)
    print(f"Approved: {session.status.value}")

    assets = wf.assets.list_assets(session.id)
    totals = ", ".join(f"{v:,.2f} {c}" for c, v in sorted(wf.assets.total_estimated_value(session.id).items()))
    print(f"Assets discovered: {len(assets)} ({totals})")

    for asset in assets:
        claim = wf.assets.initiate_claim(claimant, asset.id)
        if asset.asset_type is AssetType.LOAN:
            meta = FileMeta("receipt.pdf", "application/pdf", len(FAKE_PDF))
            claim = wf.assets.attach_receipt(claimant, claim.id, meta, FAKE_PDF)
        else:
            claim = wf.assets.begin_processing(admin, claim.id)
        claim = wf.assets.finalize(admin, claim.id, AssetClaimStatus.TRANSFERRED, "Settled in demo run")
        print(f"  {asset.institution_name} ({asset.asset_type.value}): {claim.status.value}")

    print(f"Dashboard: {wf.sessions.claimant_dashboard(claimant)}")
    print(f"Admin stats: {wf.review.admin_stats()}")
    print(f"Audit entries: {len(wf.review.recent_audit_log(limit=500))}")
    print(f"Blobs written under {blob_dir}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
