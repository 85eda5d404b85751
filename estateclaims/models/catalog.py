"""
Fixed document catalog and upload limits.
Each catalog entry is flagged required or optional; the required set gates claim submission.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DocumentTypeSpec:
    id: str
    label: str
    required: bool


DOCUMENT_CATALOG: tuple[DocumentTypeSpec, ...] = (
    DocumentTypeSpec("death_certificate", "Death Certificate", True),
    DocumentTypeSpec("claimant_id", "Your ID (Passport/Driver's License)", True),
    DocumentTypeSpec("proof_of_relationship", "Proof of Relationship", True),
    DocumentTypeSpec("deceased_id", "Deceased's ID", False),
    DocumentTypeSpec("account_statement", "Account Statements (if available)", False),
    DocumentTypeSpec("other", "Other Supporting Documents", False),
)

DOCUMENT_TYPES = frozenset(spec.id for spec in DOCUMENT_CATALOG)

REQUIRED_DOCUMENT_TYPES = frozenset(spec.id for spec in DOCUMENT_CATALOG if spec.required)

ALLOWED_MIME_TYPES = frozenset({"image/jpeg", "image/png", "application/pdf"})

# 10 MiB
MAX_UPLOAD_BYTES = 10 * 1024 * 1024


def catalog_entry(doc_type: str) -> DocumentTypeSpec | None:
    """Return the catalog entry for doc_type, or None if it is not in the catalog."""
    for spec in DOCUMENT_CATALOG:
        if spec.id == doc_type:
            return spec
    return None
