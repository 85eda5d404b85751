"""
Flask JSON API over the claim workflow engines.
Identity comes from the fronting identity proxy via X-User-Id / X-User-Roles headers.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

# Project root and path setup for imports
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from dotenv import load_dotenv
load_dotenv(_PROJECT_ROOT / ".env")

from flask import Flask, Response, jsonify, request

from estateclaims.config_loader import load_config, workflow_settings
from estateclaims.errors import AuthorizationError, ValidationError, WorkflowError
from estateclaims.identity import Caller, parse_roles, require_staff
from estateclaims.logging_setup import setup_logging_from_config
from estateclaims.models import DOCUMENT_CATALOG, FileMeta
from estateclaims.services import LocalBlobStore, StubAssetDiscovery, StubOcrService
from estateclaims.services.discovery import default_demo_specs
from estateclaims.store import InMemoryWorkflowStore
from estateclaims.workflow import Workflow, build_workflow

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"
ROLES_HEADER = "X-User-Roles"


def _serialize_value(v):
    """Recursively make a value JSON-serializable (datetime)."""
    if hasattr(v, "isoformat"):  # datetime
        return v.isoformat()
    if isinstance(v, dict):
        return {k: _serialize_value(x) for k, x in v.items()}
    if isinstance(v, (list, tuple)):
        return [_serialize_value(x) for x in v]
    return v


def _serialize_record(record) -> dict:
    """Record dataclass -> JSON dict with _id exposed as id."""
    out = _serialize_value(record.to_document())
    out["id"] = out.pop("_id")
    return out


def _config_path() -> Path:
    config_path = _PROJECT_ROOT / "config" / "config.yaml"
    if not config_path.exists():
        config_path = _PROJECT_ROOT / "config" / "config.example.yaml"
    return config_path


def workflow_from_config(config: dict[str, Any]) -> Workflow:
    """Build the engines over the store selected by config['storage']['backend']."""
    storage = config.get("storage") or {}
    external = config.get("external") or {}
    backend = storage.get("backend") or "memory"
    if backend == "mongodb":
        from estateclaims.db import get_client
        from estateclaims.store.mongo import MongoWorkflowStore

        store = MongoWorkflowStore(
            get_client(), config, use_transactions=bool(storage.get("use_transactions", True))
        )
    elif backend == "memory":
        store = InMemoryWorkflowStore()
    else:
        raise ValueError(f"Unknown storage backend: {backend}")
    specs = default_demo_specs() if external.get("demo_assets", True) else []
    return build_workflow(
        store,
        LocalBlobStore(storage.get("blob_dir") or "data/blobs"),
        StubOcrService(),
        StubAssetDiscovery(specs),
        workflow_settings(config),
    )


def _caller() -> Caller:
    user_id = (request.headers.get(USER_ID_HEADER) or "").strip()
    if not user_id:
        raise AuthorizationError(f"{USER_ID_HEADER} header is required")
    return Caller(
        user_id=user_id,
        roles=parse_roles(request.headers.get(ROLES_HEADER)),
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )


def _body() -> dict:
    return request.get_json(force=True, silent=True) or {}


def _upload() -> tuple[FileMeta, bytes]:
    f = request.files.get("file")
    if f is None:
        raise ValidationError("file is required (multipart field 'file')")
    content = f.read()
    return FileMeta(file_name=f.filename or "", mime_type=f.mimetype or "", size_bytes=len(content)), content


def create_app(config: dict[str, Any] | None = None, workflow: Workflow | None = None) -> Flask:
    app = Flask(__name__)
    if config is None:
        config = load_config(_config_path())
    if workflow is None:
        workflow = workflow_from_config(config)
    app.config["CONFIG"] = config
    app.config["WORKFLOW"] = workflow

    wf = workflow

    @app.errorhandler(WorkflowError)
    def handle_workflow_error(err: WorkflowError):
        if err.http_status >= 500:
            logger.error("%s %s failed: %s", request.method, request.path, err)
        else:
            logger.info("%s %s rejected: %s", request.method, request.path, err)
        return jsonify({"error": err.to_dict()}), err.http_status

    @app.route("/api/health")
    def health():
        return jsonify({"status": "ok"})

    @app.route("/api/catalog")
    def catalog():
        return jsonify(
            [{"id": d.id, "label": d.label, "required": d.required} for d in DOCUMENT_CATALOG]
        )

    # --- claim sessions ---

    @app.route("/api/sessions", methods=["POST"])
    def create_session():
        body = _body()
        session = wf.sessions.create_session(
            _caller(),
            deceased_name=body.get("deceased_name") or "",
            relationship=body.get("relationship") or "",
            consent=body.get("consent") is True,
            deceased_id_number=body.get("deceased_id_number"),
            notes=body.get("notes"),
        )
        return jsonify(_serialize_record(session)), 201

    @app.route("/api/sessions", methods=["GET"])
    def list_sessions():
        caller = _caller()
        return jsonify([_serialize_record(s) for s in wf.sessions.list_sessions_for_claimant(caller.user_id)])

    @app.route("/api/dashboard")
    def dashboard():
        return jsonify(wf.sessions.claimant_dashboard(_caller()))

    @app.route("/api/sessions/<session_id>")
    def session_detail(session_id):
        detail = wf.sessions.session_detail(_caller(), session_id)
        return jsonify({
            "session": _serialize_record(detail.session),
            "documents": [_serialize_record(d) for d in detail.documents],
            "assets": [_serialize_record(a) for a in detail.assets],
            "progress": detail.progress,
            "missing_required": detail.missing_required,
        })

    @app.route("/api/sessions/<session_id>/consent", methods=["POST"])
    def grant_consent(session_id):
        return jsonify(_serialize_record(wf.sessions.grant_consent(_caller(), session_id)))

    @app.route("/api/sessions/<session_id>/submit", methods=["POST"])
    def submit_documents(session_id):
        return jsonify(_serialize_record(wf.sessions.submit_documents(_caller(), session_id)))

    @app.route("/api/sessions/<session_id>/review", methods=["POST"])
    def begin_review(session_id):
        return jsonify(_serialize_record(wf.review.begin_review(_caller(), session_id)))

    @app.route("/api/sessions/<session_id>/reject", methods=["POST"])
    def reject_session(session_id):
        session = wf.sessions.reject(_caller(), session_id, _body().get("notes") or "")
        return jsonify(_serialize_record(session))

    @app.route("/api/sessions/<session_id>/approve", methods=["POST"])
    def approve_session(session_id):
        return jsonify(_serialize_record(wf.sessions.approve(_caller(), session_id)))

    @app.route("/api/sessions/<session_id>/notes", methods=["POST"])
    def add_note(session_id):
        session = wf.sessions.add_note(_caller(), session_id, _body().get("note") or "")
        return jsonify(_serialize_record(session))

    # --- documents ---

    @app.route("/api/sessions/<session_id>/documents", methods=["POST"])
    def upload_document(session_id):
        file_meta, content = _upload()
        document = wf.documents.upload(
            _caller(), session_id, request.form.get("document_type") or "", file_meta, content
        )
        return jsonify(_serialize_record(document)), 201

    @app.route("/api/sessions/<session_id>/documents", methods=["GET"])
    def list_documents(session_id):
        wf.sessions.get_session(_caller(), session_id)
        return jsonify([_serialize_record(d) for d in wf.documents.list_documents(session_id)])

    @app.route("/api/documents/<document_id>/ocr", methods=["POST"])
    def run_ocr(document_id):
        return jsonify(_serialize_record(wf.documents.run_ocr(_caller(), document_id)))

    @app.route("/api/documents/<document_id>/decision", methods=["POST"])
    def decide_document(document_id):
        body = _body()
        approved = body.get("approved")
        if not isinstance(approved, bool):
            raise ValidationError("approved must be true or false")
        document, session = wf.review.decide(_caller(), document_id, approved, body.get("reason"))
        return jsonify({
            "document": _serialize_record(document),
            "session": _serialize_record(session) if session is not None else None,
        })

    @app.route("/api/documents/<document_id>/download")
    def download_document(document_id):
        document, content = wf.documents.download(_caller(), document_id)
        return Response(
            content,
            mimetype=document.mime_type,
            headers={"Content-Disposition": f'attachment; filename="{document.file_name}"'},
        )

    # --- assets and asset claims ---

    @app.route("/api/sessions/<session_id>/assets")
    def list_assets(session_id):
        wf.sessions.get_session(_caller(), session_id)
        return jsonify({
            "assets": [_serialize_record(a) for a in wf.assets.list_assets(session_id)],
            "total_estimated_value": wf.assets.total_estimated_value(session_id),
        })

    @app.route("/api/sessions/<session_id>/assets/discover", methods=["POST"])
    def discover_assets(session_id):
        require_staff(_caller(), "discover_assets")
        assets = wf.assets.discover_assets(session_id)
        return jsonify([_serialize_record(a) for a in assets])

    @app.route("/api/assets/<asset_id>/claims", methods=["POST"])
    def initiate_claim(asset_id):
        return jsonify(_serialize_record(wf.assets.initiate_claim(_caller(), asset_id))), 201

    @app.route("/api/assets/<asset_id>/claims", methods=["GET"])
    def list_claims_for_asset(asset_id):
        caller = _caller()
        if caller.is_staff:
            claims = wf.assets.list_claims_for_asset(asset_id)
        else:
            own = wf.assets.get_asset_claim_for(asset_id, caller.user_id)
            claims = [own] if own is not None else []
        return jsonify([_serialize_record(c) for c in claims])

    @app.route("/api/asset-claims/<asset_claim_id>/receipt", methods=["POST"])
    def attach_receipt(asset_claim_id):
        file_meta, content = _upload()
        claim = wf.assets.attach_receipt(_caller(), asset_claim_id, file_meta, content)
        return jsonify(_serialize_record(claim))

    @app.route("/api/asset-claims/<asset_claim_id>/processing", methods=["POST"])
    def begin_processing(asset_claim_id):
        return jsonify(_serialize_record(wf.assets.begin_processing(_caller(), asset_claim_id)))

    @app.route("/api/asset-claims/<asset_claim_id>/finalize", methods=["POST"])
    def finalize_claim(asset_claim_id):
        body = _body()
        claim = wf.assets.finalize(
            _caller(), asset_claim_id, body.get("outcome") or "", body.get("notes")
        )
        return jsonify(_serialize_record(claim))

    # --- admin ---

    @app.route("/api/admin/pending-documents")
    def pending_documents():
        require_staff(_caller(), "pending_documents")
        pending = wf.review.pending_documents(request.args.get("search"))
        out = []
        for p in pending:
            row = _serialize_record(p.document)
            row["deceased_name"] = p.deceased_name
            row["claimant_id"] = p.claimant_id
            out.append(row)
        return jsonify(out)

    @app.route("/api/admin/stats")
    def admin_stats():
        require_staff(_caller(), "admin_stats")
        return jsonify(wf.review.admin_stats())

    @app.route("/api/admin/audit")
    def recent_audit_log():
        require_staff(_caller(), "recent_audit_log")
        try:
            limit = int(request.args.get("limit", 50))
        except (TypeError, ValueError):
            limit = 50
        limit = max(1, min(500, limit))
        return jsonify([_serialize_record(e) for e in wf.review.recent_audit_log(limit)])

    return app


if __name__ == "__main__":
    _config = load_config(_config_path())
    setup_logging_from_config(_config)
    create_app(_config).run(host="0.0.0.0", port=5000, debug=True)
