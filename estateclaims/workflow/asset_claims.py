"""
Asset Claim Engine.

Records assets reported by the discovery collaborator for eligible sessions, and runs each
claimant's settlement of one asset: CLAIMED -> PROCESSING -> TRANSFERRED | REJECTED.
Loan assets need a payment receipt to leave CLAIMED; other types are moved to PROCESSING by
an administrator.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from estateclaims.audit import AuditRecorder
from estateclaims.config_loader import WorkflowSettings
from estateclaims.errors import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PreconditionError,
    StateError,
    ValidationError,
)
from estateclaims.identity import Caller, require_owner_or_staff, require_staff, system_caller
from estateclaims.models import (
    ENTITY_ASSET,
    ENTITY_ASSET_CLAIM,
    Asset,
    AssetClaim,
    AssetClaimStatus,
    AssetType,
    AuditAction,
    ClaimSession,
    FileMeta,
    new_id,
    utcnow,
)
from estateclaims.services.blobstore import BlobStore, receipt_blob_path
from estateclaims.services.discovery import AssetDiscovery, AssetSpec
from estateclaims.services.retry import call_with_retry, call_with_timeout
from estateclaims.store.base import ASSET_CLAIMS, ASSETS, WorkflowStore
from estateclaims.workflow.base import EngineBase, load_session
from estateclaims.workflow.documents import validate_upload
from estateclaims.workflow.predicates import can_initiate_asset_claim, is_discovery_eligible
from estateclaims.workflow.transitions import ASSET_CLAIM_TRANSITIONS, check_transition

logger = logging.getLogger(__name__)

FINAL_OUTCOMES = frozenset({AssetClaimStatus.TRANSFERRED, AssetClaimStatus.REJECTED})


def _asset_key(asset: Asset) -> tuple[str, str, str | None]:
    return (asset.institution_name, asset.asset_type.value, asset.account_number)


def _check_spec(spec: AssetSpec) -> None:
    if not spec.institution_name or not spec.institution_name.strip():
        raise ExternalServiceError("Discovery returned an asset without an institution name")
    if spec.estimated_value is not None and spec.estimated_value < 0:
        raise ExternalServiceError(
            "Discovery returned a negative estimated value",
            {"institution_name": spec.institution_name, "estimated_value": spec.estimated_value},
        )
    if len(spec.currency or "") != 3:
        raise ExternalServiceError(
            "Discovery returned an invalid currency code", {"currency": spec.currency}
        )


class AssetClaimEngine(EngineBase):
    collection = ASSET_CLAIMS
    entity_type = ENTITY_ASSET_CLAIM

    def __init__(
        self,
        store: WorkflowStore,
        audit: AuditRecorder,
        blobstore: BlobStore,
        discovery: AssetDiscovery | None = None,
        settings: WorkflowSettings | None = None,
    ):
        super().__init__(store, audit)
        self.blobstore = blobstore
        self.discovery = discovery
        self.settings = settings or WorkflowSettings()

    def _claim(self, asset_claim_id: str) -> AssetClaim:
        return AssetClaim.from_document(self._load(asset_claim_id))

    # --- assets ---

    def record_discovered_assets(
        self,
        session_id: str,
        specs: list[AssetSpec],
        caller: Caller | None = None,
    ) -> list[Asset]:
        """
        Create Asset records for an eligible (VERIFIED or APPROVED) session.
        Specs matching an existing asset (institution, type, account number) are skipped, so
        a retried discovery run does not duplicate assets.
        """
        caller = caller or system_caller()
        for spec in specs:
            _check_spec(spec)
        created: list[Asset] = []
        with self.store.transaction():
            session = load_session(self.store, session_id)
            if not is_discovery_eligible(session.status):
                raise PreconditionError(
                    "Assets can only be recorded for verified sessions",
                    {"session_id": session_id, "status": session.status.value},
                )
            seen = {_asset_key(a) for a in self.list_assets(session_id)}
            for spec in specs:
                if spec.dedupe_key() in seen:
                    continue
                asset = Asset(
                    id=new_id(),
                    claim_session_id=session_id,
                    institution_name=spec.institution_name.strip(),
                    asset_type=spec.asset_type,
                    account_number=spec.account_number,
                    estimated_value=spec.estimated_value,
                    currency=spec.currency.upper(),
                    details=dict(spec.details),
                )
                self.store.insert(ASSETS, asset.to_document())
                self.audit.record(
                    caller,
                    AuditAction.CREATE,
                    ENTITY_ASSET,
                    asset.id,
                    {
                        "session_id": session_id,
                        "institution_name": asset.institution_name,
                        "asset_type": asset.asset_type.value,
                    },
                )
                seen.add(spec.dedupe_key())
                created.append(asset)
        logger.info("Recorded %d discovered assets for session %s", len(created), session_id)
        return created

    def discover_assets(self, session: ClaimSession | str) -> list[Asset]:
        """
        Ask the discovery collaborator for the session's assets and record them.
        A timeout or failure leaves no assets behind and may be retried.
        """
        if isinstance(session, str):
            session = load_session(self.store, session)
        if not is_discovery_eligible(session.status):
            raise PreconditionError(
                "Asset discovery requires a verified session",
                {"session_id": session.id, "status": session.status.value},
            )
        if self.discovery is None:
            logger.info("No discovery collaborator configured; skipping session %s", session.id)
            return []
        discovery = self.discovery
        specs = call_with_retry(
            lambda: call_with_timeout(
                lambda: discovery.discover(session),
                operation="asset discovery",
                timeout=self.settings.discovery_timeout_seconds,
            ),
            operation="asset discovery",
            max_attempts=self.settings.max_attempts,
            backoff_seconds=self.settings.backoff_seconds,
        )
        return self.record_discovered_assets(session.id, specs)

    def get_asset(self, asset_id: str) -> Asset:
        doc = self.store.get(ASSETS, asset_id)
        if doc is None:
            raise NotFoundError("asset not found", {"id": asset_id})
        return Asset.from_document(doc)

    def list_assets(self, session_id: str) -> list[Asset]:
        """Assets of one session, most recently discovered first."""
        docs = self.store.find(ASSETS, {"claim_session_id": session_id}, sort=[("discovered_at", -1)])
        return [Asset.from_document(d) for d in docs]

    def total_estimated_value(self, session_id: str) -> dict[str, float]:
        """Sum of estimated values per currency code; assets without a value are skipped."""
        totals: dict[str, float] = defaultdict(float)
        for asset in self.list_assets(session_id):
            if asset.estimated_value is not None:
                totals[asset.currency] += asset.estimated_value
        return dict(totals)

    # --- asset claims ---

    def initiate_claim(self, caller: Caller, asset_id: str) -> AssetClaim:
        """
        Create a CLAIMED asset claim for (asset, caller).

        Raises:
            ConflictError: the caller already has a claim on this asset.
            PreconditionError: the asset's session is not APPROVED.
        """
        with self.store.transaction():
            asset = self.get_asset(asset_id)
            existing = self.store.find(
                ASSET_CLAIMS, {"asset_id": asset_id, "claimant_id": caller.user_id}, limit=1
            )
            if existing:
                raise ConflictError(
                    "An asset claim already exists for this asset and claimant",
                    {"asset_id": asset_id, "claimant_id": caller.user_id, "asset_claim_id": existing[0]["_id"]},
                )
            session = load_session(self.store, asset.claim_session_id)
            if not can_initiate_asset_claim(session.status):
                raise PreconditionError(
                    "Assets can only be claimed once the claim session is approved",
                    {"session_id": session.id, "status": session.status.value},
                )
            now = utcnow()
            claim = AssetClaim(
                id=new_id(),
                asset_id=asset_id,
                claimant_id=caller.user_id,
                claimed_at=now,
                created_at=now,
                updated_at=now,
            )
            self.store.insert(ASSET_CLAIMS, claim.to_document())
            self.audit.record(
                caller,
                AuditAction.CREATE,
                ENTITY_ASSET_CLAIM,
                claim.id,
                {"asset_id": asset_id, "asset_type": asset.asset_type.value},
            )
        logger.info("Asset claim %s initiated on asset %s by %s", claim.id, asset_id, caller.user_id)
        return claim

    def attach_receipt(
        self,
        caller: Caller,
        asset_claim_id: str,
        file_meta: FileMeta,
        content: bytes,
    ) -> AssetClaim:
        """Loan assets only: store the payment receipt and move CLAIMED -> PROCESSING."""
        claim = self._claim(asset_claim_id)
        require_owner_or_staff(caller, claim.claimant_id, "attach_receipt")
        asset = self.get_asset(claim.asset_id)
        if asset.asset_type is not AssetType.LOAN:
            raise StateError(
                "Receipts are only accepted for loan assets",
                {"asset_claim_id": asset_claim_id, "asset_type": asset.asset_type.value},
            )
        check_transition(
            ASSET_CLAIM_TRANSITIONS,
            claim.status,
            AssetClaimStatus.PROCESSING,
            entity=ENTITY_ASSET_CLAIM,
            entity_id=asset_claim_id,
        )
        validate_upload(file_meta, content, self.settings)

        path = receipt_blob_path(claim.claimant_id, claim.id, file_meta.file_name)
        locator = call_with_retry(
            lambda: self.blobstore.put(path, content),
            operation="blob put",
            max_attempts=self.settings.max_attempts,
            backoff_seconds=self.settings.backoff_seconds,
        )

        with self.store.transaction():
            current = self._claim(asset_claim_id)
            check_transition(
                ASSET_CLAIM_TRANSITIONS,
                current.status,
                AssetClaimStatus.PROCESSING,
                entity=ENTITY_ASSET_CLAIM,
                entity_id=asset_claim_id,
            )
            updated = self._cas(
                asset_claim_id,
                current.status.value,
                {
                    "status": AssetClaimStatus.PROCESSING.value,
                    "receipt_locator": locator,
                    "updated_at": utcnow(),
                },
            )
            self.audit.record(
                caller,
                AuditAction.UPLOAD,
                ENTITY_ASSET_CLAIM,
                asset_claim_id,
                {"receipt_locator": locator, "file_name": file_meta.file_name},
            )
        logger.info("Receipt attached to asset claim %s", asset_claim_id)
        return AssetClaim.from_document(updated)

    def begin_processing(self, caller: Caller, asset_claim_id: str) -> AssetClaim:
        """Administrative CLAIMED -> PROCESSING; loan assets must have a receipt."""
        require_staff(caller, "begin_processing")
        with self.store.transaction():
            claim = self._claim(asset_claim_id)
            asset = self.get_asset(claim.asset_id)
            if asset.asset_type is AssetType.LOAN and not claim.receipt_locator:
                raise StateError(
                    "Loan assets require a receipt before processing",
                    {"asset_claim_id": asset_claim_id},
                )
            check_transition(
                ASSET_CLAIM_TRANSITIONS,
                claim.status,
                AssetClaimStatus.PROCESSING,
                entity=ENTITY_ASSET_CLAIM,
                entity_id=asset_claim_id,
            )
            updated = self._cas(
                asset_claim_id,
                claim.status.value,
                {"status": AssetClaimStatus.PROCESSING.value, "updated_at": utcnow()},
            )
            self.audit.record(
                caller,
                AuditAction.UPDATE,
                ENTITY_ASSET_CLAIM,
                asset_claim_id,
                {"from": claim.status.value, "to": AssetClaimStatus.PROCESSING.value},
            )
        return AssetClaim.from_document(updated)

    def finalize(
        self,
        caller: Caller,
        asset_claim_id: str,
        outcome: AssetClaimStatus | str,
        notes: str | None = None,
    ) -> AssetClaim:
        """
        PROCESSING -> TRANSFERRED | REJECTED.
        Repeating the outcome already recorded is a no-op; a different outcome is a StateError.
        """
        require_staff(caller, "finalize")
        try:
            outcome = AssetClaimStatus(outcome)
        except ValueError as e:
            raise ValidationError(f"Unknown outcome: {outcome}") from e
        if outcome not in FINAL_OUTCOMES:
            raise ValidationError(
                "outcome must be TRANSFERRED or REJECTED", {"outcome": outcome.value}
            )
        notes = (notes or "").strip() or None

        with self.store.transaction():
            claim = self._claim(asset_claim_id)
            if claim.status is outcome:
                return claim
            check_transition(
                ASSET_CLAIM_TRANSITIONS,
                claim.status,
                outcome,
                entity=ENTITY_ASSET_CLAIM,
                entity_id=asset_claim_id,
            )
            now = utcnow()
            updated = self._cas(
                asset_claim_id,
                claim.status.value,
                {
                    "status": outcome.value,
                    "processed_at": now,
                    "processing_notes": notes,
                    "updated_at": now,
                },
            )
            self.audit.record(
                caller,
                AuditAction.APPROVE if outcome is AssetClaimStatus.TRANSFERRED else AuditAction.REJECT,
                ENTITY_ASSET_CLAIM,
                asset_claim_id,
                {"outcome": outcome.value, "notes": notes},
            )
        logger.info("Asset claim %s finalized as %s", asset_claim_id, outcome.value)
        return AssetClaim.from_document(updated)

    def get_asset_claim(self, asset_claim_id: str) -> AssetClaim:
        return self._claim(asset_claim_id)

    def get_asset_claim_for(self, asset_id: str, claimant_id: str) -> AssetClaim | None:
        docs = self.store.find(ASSET_CLAIMS, {"asset_id": asset_id, "claimant_id": claimant_id}, limit=1)
        return AssetClaim.from_document(docs[0]) if docs else None

    def list_claims_for_asset(self, asset_id: str) -> list[AssetClaim]:
        docs = self.store.find(ASSET_CLAIMS, {"asset_id": asset_id}, sort=[("claimed_at", 1)])
        return [AssetClaim.from_document(d) for d in docs]
