"""
Closed status and vocabulary enums for the claim workflow.
Values are stored verbatim in the persistent store.
"""

from __future__ import annotations

from enum import Enum


class ClaimStatus(str, Enum):
    """Lifecycle of a claim session."""

    STARTED = "STARTED"
    DOCUMENTS_UPLOADED = "DOCUMENTS_UPLOADED"
    UNDER_REVIEW = "UNDER_REVIEW"
    VERIFIED = "VERIFIED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class DocumentStatus(str, Enum):
    """Lifecycle of one uploaded evidence document."""

    PENDING = "PENDING"
    OCR_COMPLETE = "OCR_COMPLETE"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class AssetType(str, Enum):
    BANK_ACCOUNT = "BANK_ACCOUNT"
    INVESTMENT = "INVESTMENT"
    INSURANCE = "INSURANCE"
    PROPERTY = "PROPERTY"
    LOAN = "LOAN"
    OTHER = "OTHER"


class AssetClaimStatus(str, Enum):
    """Lifecycle of a claimant's pursuit of one asset."""

    CLAIMED = "CLAIMED"
    PROCESSING = "PROCESSING"
    TRANSFERRED = "TRANSFERRED"
    REJECTED = "REJECTED"


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    VIEW = "VIEW"
    VERIFY = "VERIFY"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    UPLOAD = "UPLOAD"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"


class Role(str, Enum):
    CLAIMANT = "CLAIMANT"
    ADMIN = "ADMIN"
    REVIEWER = "REVIEWER"


# Entity type labels written to audit entries
ENTITY_CLAIM_SESSION = "claim_session"
ENTITY_DOCUMENT = "document"
ENTITY_ASSET = "asset"
ENTITY_ASSET_CLAIM = "asset_claim"
