"""
Allow-list transition tables for the three state machines.
check_transition() is the single validation point; any pair not listed is a StateError.
"""

from __future__ import annotations

from enum import Enum
from typing import Mapping

from estateclaims.errors import StateError
from estateclaims.models import AssetClaimStatus, ClaimStatus, DocumentStatus

SESSION_TRANSITIONS: Mapping[ClaimStatus, frozenset[ClaimStatus]] = {
    ClaimStatus.STARTED: frozenset({ClaimStatus.DOCUMENTS_UPLOADED}),
    ClaimStatus.DOCUMENTS_UPLOADED: frozenset({ClaimStatus.UNDER_REVIEW, ClaimStatus.REJECTED}),
    ClaimStatus.UNDER_REVIEW: frozenset({ClaimStatus.VERIFIED, ClaimStatus.REJECTED}),
    ClaimStatus.VERIFIED: frozenset({ClaimStatus.APPROVED}),
    ClaimStatus.APPROVED: frozenset(),
    ClaimStatus.REJECTED: frozenset(),
}

DOCUMENT_TRANSITIONS: Mapping[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.PENDING: frozenset(
        {DocumentStatus.OCR_COMPLETE, DocumentStatus.VERIFIED, DocumentStatus.REJECTED}
    ),
    DocumentStatus.OCR_COMPLETE: frozenset({DocumentStatus.VERIFIED, DocumentStatus.REJECTED}),
    DocumentStatus.VERIFIED: frozenset(),
    DocumentStatus.REJECTED: frozenset(),
}

ASSET_CLAIM_TRANSITIONS: Mapping[AssetClaimStatus, frozenset[AssetClaimStatus]] = {
    AssetClaimStatus.CLAIMED: frozenset({AssetClaimStatus.PROCESSING}),
    AssetClaimStatus.PROCESSING: frozenset(
        {AssetClaimStatus.TRANSFERRED, AssetClaimStatus.REJECTED}
    ),
    AssetClaimStatus.TRANSFERRED: frozenset(),
    AssetClaimStatus.REJECTED: frozenset(),
}


def allowed_targets(table: Mapping[Enum, frozenset], current: Enum) -> list[str]:
    """Sorted status values reachable from current."""
    return sorted(s.value for s in table.get(current, frozenset()))


def is_terminal(table: Mapping[Enum, frozenset], status: Enum) -> bool:
    return not table.get(status)


def check_transition(
    table: Mapping[Enum, frozenset],
    current: Enum,
    target: Enum,
    *,
    entity: str,
    entity_id: str | None = None,
) -> None:
    """Raise StateError unless current -> target is in the table."""
    if target not in table.get(current, frozenset()):
        raise StateError(
            f"Illegal {entity} transition {current.value} -> {target.value}",
            {
                "entity": entity,
                "id": entity_id,
                "current": current.value,
                "target": target.value,
                "allowed": allowed_targets(table, current),
            },
        )
