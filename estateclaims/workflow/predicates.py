"""
Pure eligibility and completeness predicates over entity state.
No I/O: callers load the records and pass them in.
"""

from __future__ import annotations

from collections.abc import Iterable

from estateclaims.models import (
    REQUIRED_DOCUMENT_TYPES,
    ClaimStatus,
    Document,
    DocumentStatus,
)

UNDECIDED_DOCUMENT_STATUSES = frozenset({DocumentStatus.PENDING, DocumentStatus.OCR_COMPLETE})

DISCOVERY_ELIGIBLE_STATUSES = frozenset({ClaimStatus.VERIFIED, ClaimStatus.APPROVED})

# Superseding re-uploads stay open while a review is in progress
UPLOAD_OPEN_STATUSES = frozenset(
    {ClaimStatus.STARTED, ClaimStatus.DOCUMENTS_UPLOADED, ClaimStatus.UNDER_REVIEW}
)

PENDING_SESSION_STATUSES = frozenset(
    {ClaimStatus.STARTED, ClaimStatus.DOCUMENTS_UPLOADED, ClaimStatus.UNDER_REVIEW}
)


def _types_with(documents: Iterable[Document], statuses: Iterable[DocumentStatus]) -> set[str]:
    wanted = set(statuses)
    return {d.document_type for d in documents if d.status in wanted}


def missing_required_types(
    documents: Iterable[Document], required: frozenset[str] = REQUIRED_DOCUMENT_TYPES
) -> list[str]:
    """Required types with no non-REJECTED document attached."""
    covered = {d.document_type for d in documents if d.status is not DocumentStatus.REJECTED}
    return sorted(required - covered)


def required_types_covered(
    documents: Iterable[Document], required: frozenset[str] = REQUIRED_DOCUMENT_TYPES
) -> bool:
    """Gate for submit_documents: every required type has a non-REJECTED document."""
    return not missing_required_types(documents, required)


def unverified_required_types(
    documents: Iterable[Document], required: frozenset[str] = REQUIRED_DOCUMENT_TYPES
) -> list[str]:
    verified = _types_with(documents, {DocumentStatus.VERIFIED})
    return sorted(required - verified)


def is_document_set_complete(
    documents: Iterable[Document], required: frozenset[str] = REQUIRED_DOCUMENT_TYPES
) -> bool:
    """True iff every required type has at least one VERIFIED document."""
    return not unverified_required_types(documents, required)


def document_set_outcome(
    documents: Iterable[Document], required: frozenset[str] = REQUIRED_DOCUMENT_TYPES
) -> bool | None:
    """
    Aggregate verification result for a session's documents.

    True when the set is complete. False when some required type lacks a VERIFIED document
    and none of that type's documents still await a decision. None while any such type
    still has a PENDING or OCR_COMPLETE document.
    """
    docs = list(documents)
    unverified = unverified_required_types(docs, required)
    if not unverified:
        return True
    awaiting = _types_with(docs, UNDECIDED_DOCUMENT_STATUSES)
    if any(t in awaiting for t in unverified):
        return None
    return False


def upload_progress(
    documents: Iterable[Document], required: frozenset[str] = REQUIRED_DOCUMENT_TYPES
) -> int:
    """Percentage (0-100) of required types covered by a non-REJECTED document."""
    if not required:
        return 100
    covered = len(required) - len(missing_required_types(documents, required))
    return round(covered * 100 / len(required))


def is_discovery_eligible(status: ClaimStatus) -> bool:
    """Assets may be recorded against sessions in VERIFIED or APPROVED."""
    return status in DISCOVERY_ELIGIBLE_STATUSES


def can_initiate_asset_claim(status: ClaimStatus) -> bool:
    return status is ClaimStatus.APPROVED


def accepts_uploads(status: ClaimStatus) -> bool:
    return status in UPLOAD_OPEN_STATUSES
