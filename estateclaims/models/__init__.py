# Workflow entities, enums and document catalog

from estateclaims.models.catalog import (
    ALLOWED_MIME_TYPES,
    DOCUMENT_CATALOG,
    DOCUMENT_TYPES,
    MAX_UPLOAD_BYTES,
    REQUIRED_DOCUMENT_TYPES,
    DocumentTypeSpec,
    catalog_entry,
)
from estateclaims.models.enums import (
    ENTITY_ASSET,
    ENTITY_ASSET_CLAIM,
    ENTITY_CLAIM_SESSION,
    ENTITY_DOCUMENT,
    AssetClaimStatus,
    AssetType,
    AuditAction,
    ClaimStatus,
    DocumentStatus,
    Role,
)
from estateclaims.models.records import (
    Asset,
    AssetClaim,
    AuditLogEntry,
    ClaimSession,
    Document,
    FileMeta,
    new_id,
    utcnow,
)

__all__ = [
    "ALLOWED_MIME_TYPES",
    "DOCUMENT_CATALOG",
    "DOCUMENT_TYPES",
    "ENTITY_ASSET",
    "ENTITY_ASSET_CLAIM",
    "ENTITY_CLAIM_SESSION",
    "ENTITY_DOCUMENT",
    "MAX_UPLOAD_BYTES",
    "REQUIRED_DOCUMENT_TYPES",
    "Asset",
    "AssetClaim",
    "AssetClaimStatus",
    "AssetType",
    "AuditAction",
    "AuditLogEntry",
    "ClaimSession",
    "ClaimStatus",
    "Document",
    "DocumentStatus",
    "DocumentTypeSpec",
    "FileMeta",
    "Role",
    "catalog_entry",
    "new_id",
    "utcnow",
]
