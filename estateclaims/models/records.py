"""
Entity records for claim sessions, documents, assets, asset claims and audit entries.
Each record converts to and from a BSON-ready document (string UUID in _id, UTC datetimes). No I/O.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from estateclaims.models.enums import (
    AssetClaimStatus,
    AssetType,
    AuditAction,
    ClaimStatus,
    DocumentStatus,
)


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class FileMeta:
    """Declared metadata of an uploaded file."""

    file_name: str
    mime_type: str
    size_bytes: int


@dataclass
class ClaimSession:
    id: str
    claimant_id: str
    deceased_name: str
    relationship: str
    status: ClaimStatus = ClaimStatus.STARTED
    consent_given: bool = False
    consent_timestamp: datetime | None = None
    deceased_id_number: str | None = None
    assigned_reviewer_id: str | None = None
    notes: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_document(self) -> dict[str, Any]:
        return {
            "_id": self.id,
            "claimant_id": self.claimant_id,
            "deceased_name": self.deceased_name,
            "deceased_id_number": self.deceased_id_number,
            "relationship": self.relationship,
            "consent_given": self.consent_given,
            "consent_timestamp": self.consent_timestamp,
            "status": self.status.value,
            "assigned_reviewer_id": self.assigned_reviewer_id,
            "notes": self.notes,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "ClaimSession":
        return cls(
            id=doc["_id"],
            claimant_id=doc["claimant_id"],
            deceased_name=doc["deceased_name"],
            relationship=doc["relationship"],
            status=ClaimStatus(doc["status"]),
            consent_given=bool(doc.get("consent_given")),
            consent_timestamp=doc.get("consent_timestamp"),
            deceased_id_number=doc.get("deceased_id_number"),
            assigned_reviewer_id=doc.get("assigned_reviewer_id"),
            notes=doc.get("notes"),
            created_at=doc["created_at"],
            updated_at=doc["updated_at"],
        )


@dataclass
class Document:
    id: str
    claim_session_id: str
    document_type: str
    file_name: str
    mime_type: str
    size_bytes: int
    storage_locator: str
    status: DocumentStatus = DocumentStatus.PENDING
    uploaded_at: datetime = field(default_factory=utcnow)
    ocr_data: dict[str, Any] | None = None
    ocr_processed_at: datetime | None = None
    verified_by: str | None = None
    verified_at: datetime | None = None
    rejection_reason: str | None = None

    @property
    def file_meta(self) -> FileMeta:
        return FileMeta(self.file_name, self.mime_type, self.size_bytes)

    def to_document(self) -> dict[str, Any]:
        return {
            "_id": self.id,
            "claim_session_id": self.claim_session_id,
            "document_type": self.document_type,
            "file_name": self.file_name,
            "mime_type": self.mime_type,
            "size_bytes": self.size_bytes,
            "storage_locator": self.storage_locator,
            "status": self.status.value,
            "uploaded_at": self.uploaded_at,
            "ocr_data": self.ocr_data,
            "ocr_processed_at": self.ocr_processed_at,
            "verified_by": self.verified_by,
            "verified_at": self.verified_at,
            "rejection_reason": self.rejection_reason,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Document":
        return cls(
            id=doc["_id"],
            claim_session_id=doc["claim_session_id"],
            document_type=doc["document_type"],
            file_name=doc["file_name"],
            mime_type=doc["mime_type"],
            size_bytes=doc["size_bytes"],
            storage_locator=doc["storage_locator"],
            status=DocumentStatus(doc["status"]),
            uploaded_at=doc["uploaded_at"],
            ocr_data=doc.get("ocr_data"),
            ocr_processed_at=doc.get("ocr_processed_at"),
            verified_by=doc.get("verified_by"),
            verified_at=doc.get("verified_at"),
            rejection_reason=doc.get("rejection_reason"),
        )


@dataclass
class Asset:
    id: str
    claim_session_id: str
    institution_name: str
    asset_type: AssetType
    account_number: str | None = None
    estimated_value: float | None = None
    currency: str = "USD"
    details: dict[str, Any] = field(default_factory=dict)
    discovered_at: datetime = field(default_factory=utcnow)

    def to_document(self) -> dict[str, Any]:
        return {
            "_id": self.id,
            "claim_session_id": self.claim_session_id,
            "institution_name": self.institution_name,
            "asset_type": self.asset_type.value,
            "account_number": self.account_number,
            "estimated_value": self.estimated_value,
            "currency": self.currency,
            "details": self.details,
            "discovered_at": self.discovered_at,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Asset":
        return cls(
            id=doc["_id"],
            claim_session_id=doc["claim_session_id"],
            institution_name=doc["institution_name"],
            asset_type=AssetType(doc["asset_type"]),
            account_number=doc.get("account_number"),
            estimated_value=doc.get("estimated_value"),
            currency=doc.get("currency") or "USD",
            details=doc.get("details") or {},
            discovered_at=doc["discovered_at"],
        )


@dataclass
class AssetClaim:
    id: str
    asset_id: str
    claimant_id: str
    status: AssetClaimStatus = AssetClaimStatus.CLAIMED
    claimed_at: datetime = field(default_factory=utcnow)
    receipt_locator: str | None = None
    processed_at: datetime | None = None
    processing_notes: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_document(self) -> dict[str, Any]:
        return {
            "_id": self.id,
            "asset_id": self.asset_id,
            "claimant_id": self.claimant_id,
            "status": self.status.value,
            "claimed_at": self.claimed_at,
            "receipt_locator": self.receipt_locator,
            "processed_at": self.processed_at,
            "processing_notes": self.processing_notes,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "AssetClaim":
        return cls(
            id=doc["_id"],
            asset_id=doc["asset_id"],
            claimant_id=doc["claimant_id"],
            status=AssetClaimStatus(doc["status"]),
            claimed_at=doc["claimed_at"],
            receipt_locator=doc.get("receipt_locator"),
            processed_at=doc.get("processed_at"),
            processing_notes=doc.get("processing_notes"),
            created_at=doc["created_at"],
            updated_at=doc["updated_at"],
        )


@dataclass(frozen=True)
class AuditLogEntry:
    """One immutable audit record."""

    id: str
    user_id: str | None
    action: AuditAction
    entity_type: str
    entity_id: str | None
    details: dict[str, Any]
    created_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "_id": self.id,
            "user_id": self.user_id,
            "action": self.action.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "details": self.details,
            "created_at": self.created_at,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "AuditLogEntry":
        return cls(
            id=doc["_id"],
            user_id=doc.get("user_id"),
            action=AuditAction(doc["action"]),
            entity_type=doc["entity_type"],
            entity_id=doc.get("entity_id"),
            details=doc.get("details") or {},
            created_at=doc["created_at"],
            ip_address=doc.get("ip_address"),
            user_agent=doc.get("user_agent"),
        )
