"""Claim ledger - records every claim, purchase request and delivery request against a listing."""

from typing import Any, Optional
from datetime import datetime, timezone
from foodshare.models.claim import (
    ClaimKind,
    ClaimRecord,
    ClaimStatus,
    DeliveryRecord,
    ReviewDecision,
)
from foodshare.services.store import ClaimStore
from foodshare.utils.errors import ClaimNotFoundError, InvalidClaimError, InvalidTransitionError
from foodshare.utils.ids import generate_id
from foodshare.utils.logging import get_structured_logger, mask_user_id, sanitize_message_text

logger = get_structured_logger(__name__)

# decision -> (required current status, resulting status)
REVIEW_TRANSITIONS = {
    ReviewDecision.ACCEPT: (ClaimStatus.PENDING, ClaimStatus.ACCEPTED),
    ReviewDecision.DECLINE: (ClaimStatus.PENDING, ClaimStatus.DECLINED),
    ReviewDecision.COMPLETE: (ClaimStatus.ACCEPTED, ClaimStatus.COMPLETED),
}


class ClaimLedger:
    """Append-only record of claims. Does not check listing quantity."""

    def __init__(self, store: ClaimStore):
        self.store = store

    def build(
        self,
        listing_id: str,
        claimant_id: str,
        quantity_requested: int,
        kind: ClaimKind = ClaimKind.CLAIM,
        now: Optional[datetime] = None,
        **details: Any,
    ) -> ClaimRecord:
        """Validate and build a pending record without persisting it."""
        if quantity_requested < 1:
            raise InvalidClaimError("quantity_requested must be at least 1")

        fields = {
            **details,
            "id": generate_id(),
            "listing_id": listing_id,
            "claimant_id": claimant_id,
            "quantity_requested": quantity_requested,
            "kind": kind,
            "status": ClaimStatus.PENDING,
            "created_at": now or datetime.now(timezone.utc),
        }
        if kind == ClaimKind.DELIVERY:
            return DeliveryRecord(**fields)
        return ClaimRecord(**fields)

    async def record(self, claim: ClaimRecord) -> ClaimRecord:
        """Persist a built record."""
        stored = await self.store.insert_claim(claim)
        logger.info(
            "Claim recorded",
            claim_id=stored.id,
            listing_id=stored.listing_id,
            claimant_id=mask_user_id(stored.claimant_id),
            quantity_requested=stored.quantity_requested,
            kind=stored.kind.value,
            notes=sanitize_message_text(stored.notes),
        )
        return stored

    async def append(
        self,
        listing_id: str,
        claimant_id: str,
        quantity_requested: int,
        kind: ClaimKind = ClaimKind.CLAIM,
        **details: Any,
    ) -> ClaimRecord:
        """Build and persist a pending record."""
        claim = self.build(listing_id, claimant_id, quantity_requested, kind=kind, **details)
        return await self.record(claim)

    async def list_claims_for(self, listing_id: str) -> list[ClaimRecord]:
        """All records for a listing in creation order."""
        return await self.store.list_claims(listing_id)

    async def get(self, claim_id: str, kind: Optional[ClaimKind] = None) -> ClaimRecord:
        claim = await self.store.get_claim(claim_id, kind)
        if claim is None:
            raise ClaimNotFoundError(claim_id)
        return claim

    async def review(
        self,
        claim: ClaimRecord,
        decision: ReviewDecision,
        now: Optional[datetime] = None,
    ) -> ClaimRecord:
        """
        Apply a donor decision to a claim.

        pending -> accepted | declined, accepted -> completed. The update is
        conditional on the current status, so two concurrent reviews cannot
        both succeed.
        """
        required, target = REVIEW_TRANSITIONS[decision]
        if claim.status != required:
            raise InvalidTransitionError(claim.status.value, target.value)

        updated = await self.store.update_claim(
            claim,
            {"status": target, "reviewed_at": now or datetime.now(timezone.utc)},
            expected={"status": required},
        )
        if updated is None:
            current = await self.get(claim.id, claim.kind)
            raise InvalidTransitionError(current.status.value, target.value)

        logger.info(
            "Claim reviewed",
            claim_id=claim.id,
            listing_id=claim.listing_id,
            decision=decision.value,
            claim_status=target.value,
        )
        return updated
