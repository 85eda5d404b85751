"""
Document Verification Engine.

Per-document lifecycle: PENDING -> OCR_COMPLETE -> VERIFIED | REJECTED (PENDING may be decided
directly). Uploads write the blob and confirm it before the Document record is committed, so a
record never points at a locator that failed to persist. OCR runs outside the transaction with
a timeout; a failed or slow OCR call leaves the document PENDING.
"""

from __future__ import annotations

import logging

from estateclaims.audit import AuditRecorder
from estateclaims.config_loader import WorkflowSettings
from estateclaims.errors import PreconditionError, StateError, ValidationError
from estateclaims.identity import Caller, require_owner_or_staff, require_staff
from estateclaims.models import (
    DOCUMENT_TYPES,
    ENTITY_DOCUMENT,
    AuditAction,
    ClaimSession,
    Document,
    DocumentStatus,
    FileMeta,
    new_id,
    utcnow,
)
from estateclaims.services.blobstore import BlobStore, document_blob_path
from estateclaims.services.ocr import OcrService, normalize_ocr_payload
from estateclaims.services.retry import call_with_retry, call_with_timeout
from estateclaims.store.base import DOCUMENTS, WorkflowStore
from estateclaims.workflow.base import EngineBase, load_session
from estateclaims.workflow.predicates import accepts_uploads, is_document_set_complete
from estateclaims.workflow.transitions import DOCUMENT_TRANSITIONS, check_transition

logger = logging.getLogger(__name__)


def validate_upload(
    file_meta: FileMeta, content: bytes | None, settings: WorkflowSettings
) -> None:
    """Raise ValidationError for a blank name, disallowed MIME type, or bad size."""
    if not file_meta.file_name or not file_meta.file_name.strip():
        raise ValidationError("file_name is required")
    if file_meta.mime_type not in settings.allowed_mime_types:
        raise ValidationError(
            "Please upload JPG, PNG, or PDF files only",
            {"mime_type": file_meta.mime_type, "allowed": sorted(settings.allowed_mime_types)},
        )
    if file_meta.size_bytes <= 0:
        raise ValidationError("File is empty", {"size_bytes": file_meta.size_bytes})
    if file_meta.size_bytes > settings.max_upload_bytes:
        raise ValidationError(
            "File too large",
            {"size_bytes": file_meta.size_bytes, "max_bytes": settings.max_upload_bytes},
        )
    if content is not None and len(content) != file_meta.size_bytes:
        raise ValidationError(
            "Declared size does not match uploaded content",
            {"size_bytes": file_meta.size_bytes, "content_bytes": len(content)},
        )


class DocumentVerificationEngine(EngineBase):
    collection = DOCUMENTS
    entity_type = ENTITY_DOCUMENT

    def __init__(
        self,
        store: WorkflowStore,
        audit: AuditRecorder,
        blobstore: BlobStore,
        ocr: OcrService,
        settings: WorkflowSettings | None = None,
    ):
        super().__init__(store, audit)
        self.blobstore = blobstore
        self.ocr = ocr
        self.settings = settings or WorkflowSettings()

    # --- validation ---

    def validate_file(self, doc_type: str, file_meta: FileMeta, content: bytes | None = None) -> None:
        """Raise ValidationError for an unknown document type or an unacceptable file."""
        if doc_type not in DOCUMENT_TYPES:
            raise ValidationError(
                f"Unknown document type: {doc_type}", {"allowed": sorted(DOCUMENT_TYPES)}
            )
        validate_upload(file_meta, content, self.settings)

    def _check_session_accepts_upload(self, session: ClaimSession) -> None:
        if not session.consent_given:
            raise PreconditionError(
                "Consent must be given before documents can be attached", {"session_id": session.id}
            )
        if not accepts_uploads(session.status):
            raise StateError(
                f"Session in {session.status.value} does not accept documents",
                {"session_id": session.id, "status": session.status.value},
            )

    # --- operations ---

    def upload(
        self,
        caller: Caller,
        session_id: str,
        doc_type: str,
        file_meta: FileMeta,
        content: bytes,
    ) -> Document:
        """
        Store the file and create a PENDING Document for the session.

        Raises:
            ValidationError: bad type, MIME type or size.
            PreconditionError: session has no consent.
            StateError: session no longer accepts documents.
            ExternalServiceError: blob write failed after retries (no record is created).
        """
        self.validate_file(doc_type, file_meta, content)
        session = load_session(self.store, session_id)
        require_owner_or_staff(caller, session.claimant_id, "upload")
        self._check_session_accepts_upload(session)

        document_id = new_id()
        uploaded_at = utcnow()
        path = document_blob_path(
            session.claimant_id,
            session.id,
            doc_type,
            int(uploaded_at.timestamp() * 1000),
            document_id,
            file_meta.file_name,
        )
        locator = call_with_retry(
            lambda: self.blobstore.put(path, content),
            operation="blob put",
            max_attempts=self.settings.max_attempts,
            backoff_seconds=self.settings.backoff_seconds,
        )

        document = Document(
            id=document_id,
            claim_session_id=session.id,
            document_type=doc_type,
            file_name=file_meta.file_name,
            mime_type=file_meta.mime_type,
            size_bytes=file_meta.size_bytes,
            storage_locator=locator,
            uploaded_at=uploaded_at,
        )
        with self.store.transaction():
            # Re-check against the latest committed session state
            self._check_session_accepts_upload(load_session(self.store, session_id))
            self.store.insert(DOCUMENTS, document.to_document())
            self.audit.record(
                caller,
                AuditAction.UPLOAD,
                ENTITY_DOCUMENT,
                document.id,
                {
                    "session_id": session.id,
                    "document_type": doc_type,
                    "file_name": file_meta.file_name,
                    "size_bytes": file_meta.size_bytes,
                },
            )
        logger.info("Uploaded %s document %s for session %s", doc_type, document.id, session.id)
        return document

    def run_ocr(self, caller: Caller, document_id: str) -> Document:
        """
        PENDING -> OCR_COMPLETE with the extraction payload attached.
        A second call on an OCR_COMPLETE document is a StateError, never an overwrite.
        """
        document = Document.from_document(self._load(document_id))
        session = load_session(self.store, document.claim_session_id)
        require_owner_or_staff(caller, session.claimant_id, "run_ocr")
        check_transition(
            DOCUMENT_TRANSITIONS,
            document.status,
            DocumentStatus.OCR_COMPLETE,
            entity=ENTITY_DOCUMENT,
            entity_id=document_id,
        )

        content = call_with_retry(
            lambda: self.blobstore.get(document.storage_locator),
            operation="blob get",
            max_attempts=self.settings.max_attempts,
            backoff_seconds=self.settings.backoff_seconds,
        )
        payload = call_with_timeout(
            lambda: self.ocr.extract(document, content),
            operation="ocr",
            timeout=self.settings.ocr_timeout_seconds,
        )
        payload = normalize_ocr_payload(payload)

        with self.store.transaction():
            current = Document.from_document(self._load(document_id))
            check_transition(
                DOCUMENT_TRANSITIONS,
                current.status,
                DocumentStatus.OCR_COMPLETE,
                entity=ENTITY_DOCUMENT,
                entity_id=document_id,
            )
            updated = self._cas(
                document_id,
                current.status.value,
                {
                    "status": DocumentStatus.OCR_COMPLETE.value,
                    "ocr_data": payload,
                    "ocr_processed_at": utcnow(),
                },
            )
            self.audit.record(
                caller,
                AuditAction.UPDATE,
                ENTITY_DOCUMENT,
                document_id,
                {"status": DocumentStatus.OCR_COMPLETE.value, "confidence": payload["confidence"]},
            )
        logger.info("OCR complete for document %s (confidence %.2f)", document_id, payload["confidence"])
        return Document.from_document(updated)

    def decide(
        self,
        caller: Caller,
        document_id: str,
        approved: bool,
        reason: str | None = None,
    ) -> Document:
        """
        Reviewer decision: {PENDING, OCR_COMPLETE} -> VERIFIED (approved) or REJECTED.
        A rejection requires a non-empty reason.
        """
        require_staff(caller, "decide")
        reason = (reason or "").strip()
        if not approved and not reason:
            raise ValidationError("A rejection reason is required", {"document_id": document_id})
        target = DocumentStatus.VERIFIED if approved else DocumentStatus.REJECTED

        with self.store.transaction():
            document = Document.from_document(self._load(document_id))
            check_transition(
                DOCUMENT_TRANSITIONS,
                document.status,
                target,
                entity=ENTITY_DOCUMENT,
                entity_id=document_id,
            )
            updated = self._cas(
                document_id,
                document.status.value,
                {
                    "status": target.value,
                    "verified_by": caller.user_id,
                    "verified_at": utcnow(),
                    "rejection_reason": None if approved else reason,
                },
            )
            detail = {"approved": approved, "session_id": document.claim_session_id}
            if not approved:
                detail["reason"] = reason
            self.audit.record(
                caller,
                AuditAction.VERIFY if approved else AuditAction.REJECT,
                ENTITY_DOCUMENT,
                document_id,
                detail,
            )
        logger.info("Document %s %s by %s", document_id, target.value, caller.user_id)
        return Document.from_document(updated)

    # --- queries ---

    def get_document(self, document_id: str) -> Document:
        return Document.from_document(self._load(document_id))

    def list_documents(self, session_id: str) -> list[Document]:
        """Documents of one session, newest upload first."""
        docs = self.store.find(
            DOCUMENTS, {"claim_session_id": session_id}, sort=[("uploaded_at", -1)]
        )
        return [Document.from_document(d) for d in docs]

    def is_session_document_set_complete(self, session_id: str) -> bool:
        """True iff every required catalog type has at least one VERIFIED document."""
        return is_document_set_complete(self.list_documents(session_id))

    def download(self, caller: Caller, document_id: str) -> tuple[Document, bytes]:
        """Return the document and its stored bytes; records a VIEW entry."""
        document = self.get_document(document_id)
        session = load_session(self.store, document.claim_session_id)
        require_owner_or_staff(caller, session.claimant_id, "download")
        content = call_with_retry(
            lambda: self.blobstore.get(document.storage_locator),
            operation="blob get",
            max_attempts=self.settings.max_attempts,
            backoff_seconds=self.settings.backoff_seconds,
        )
        with self.store.transaction():
            self.audit.record(caller, AuditAction.VIEW, ENTITY_DOCUMENT, document_id, {})
        return document, content
