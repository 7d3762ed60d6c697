"""Reconciliation engine - the only writer of listing quantity and status."""

from typing import Any, Optional
from datetime import datetime, timezone
from foodshare.models.listing import Listing, ListingStatus
from foodshare.models.claim import ClaimKind, ClaimRecord
from foodshare.models.outcome import ReconciliationOutcome, ReconciliationReport
from foodshare.services.claim_ledger import ClaimLedger
from foodshare.services.listing_state import ListingStateMachine
from foodshare.services.quantity_parser import parse_quantity
from foodshare.services.store import ListingStore
from foodshare.utils.config import Settings
from foodshare.utils.errors import (
    ConcurrentModificationError,
    InsufficientQuantityError,
    ListingNotFoundError,
    PartialCommitError,
    PermissionDeniedError,
    StaleListingError,
)
from foodshare.utils.logging import get_structured_logger, log_timing, mask_user_id, timed

logger = get_structured_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReconciliationEngine:
    """
    Checks claims against remaining quantity and commits the result.

    Every quantity/status write is a compare-and-swap on the listing version.
    A lost race raises ConcurrentModificationError internally; the engine
    re-reads and retries (once by default) before surfacing it. After the
    listing write the claim is appended to the ledger; if that append fails
    the listing write is reversed and PartialCommitError is raised.
    """

    def __init__(
        self,
        listings: ListingStore,
        ledger: ClaimLedger,
        state_machine: Optional[ListingStateMachine] = None,
        max_conflict_retries: Optional[int] = None,
    ):
        self.listings = listings
        self.ledger = ledger
        self.state_machine = state_machine or ListingStateMachine()
        self.max_conflict_retries = (
            Settings.CLAIM_CONFLICT_RETRIES if max_conflict_retries is None else max_conflict_retries
        )

    async def load_listing(self, listing_id: str, now: Optional[datetime] = None) -> Listing:
        """Read a listing, expiring it first if its expiry time has passed."""
        now = now or _utcnow()
        listing = await self.listings.get_listing(listing_id)
        if listing is None:
            raise ListingNotFoundError(listing_id)

        refreshed = self.state_machine.refresh_expiry(listing, now)
        if refreshed is listing:
            return listing

        stored = await self.listings.swap_listing(refreshed, expected_version=listing.version)
        if stored is not None:
            logger.info("Listing expired", listing_id=listing_id, remaining=stored.quantity_remaining)
            return stored

        # Someone else wrote first; take their state and re-check expiry locally
        current = await self.listings.get_listing(listing_id)
        if current is None:
            raise ListingNotFoundError(listing_id)
        return self.state_machine.refresh_expiry(current, now)

    async def reconcile_claim(
        self,
        listing_id: str,
        claimant_id: str,
        quantity_requested: int,
        kind: ClaimKind = ClaimKind.CLAIM,
        now: Optional[datetime] = None,
        **details: Any,
    ) -> ReconciliationOutcome:
        """
        Take `quantity_requested` units from a listing and record the claim.

        Raises InsufficientQuantityError / StaleListingError without mutating
        anything when the claim cannot be honoured.
        """
        attempt = 0
        with log_timing(
            "reconcile_claim",
            logger=logger,
            listing_id=listing_id,
            claimant_id=mask_user_id(claimant_id),
            quantity_requested=quantity_requested,
        ):
            while True:
                try:
                    return await self._attempt_claim(
                        listing_id, claimant_id, quantity_requested, kind, now, details
                    )
                except ConcurrentModificationError as e:
                    if attempt >= self.max_conflict_retries:
                        logger.warning(
                            "Claim lost optimistic-lock race after retries",
                            listing_id=listing_id,
                            attempts=attempt + 1,
                            expected_version=e.expected_version,
                        )
                        raise
                    attempt += 1
                    logger.info(
                        "Listing changed during claim, retrying",
                        listing_id=listing_id,
                        attempt=attempt,
                        expected_version=e.expected_version,
                    )
                except (InsufficientQuantityError, StaleListingError) as e:
                    logger.info(
                        "Claim rejected",
                        listing_id=listing_id,
                        claimant_id=mask_user_id(claimant_id),
                        quantity_requested=quantity_requested,
                        reason=str(e),
                    )
                    raise

    async def _attempt_claim(
        self,
        listing_id: str,
        claimant_id: str,
        quantity_requested: int,
        kind: ClaimKind,
        now: Optional[datetime],
        details: dict[str, Any],
    ) -> ReconciliationOutcome:
        now = now or _utcnow()
        before = await self.load_listing(listing_id, now)
        after = self.state_machine.apply_claim(before, quantity_requested, claimant_id, now)

        # Validate the ledger record before touching the listing
        claim = self.ledger.build(
            listing_id, claimant_id, quantity_requested, kind=kind, now=now, **details
        )

        stored = await self.listings.swap_listing(after, expected_version=before.version)
        if stored is None:
            raise ConcurrentModificationError(listing_id, before.version)

        try:
            recorded = await self.ledger.record(claim)
        except Exception as e:
            compensated = await self._compensate(before, stored, quantity_requested)
            logger.error(
                "Ledger append failed after listing write",
                listing_id=listing_id,
                claim_id=claim.id,
                quantity_requested=quantity_requested,
                compensated=compensated,
                error=str(e),
                exc_info=True,
            )
            raise PartialCommitError(listing_id, compensated, e) from e

        logger.info(
            "Claim reconciled",
            listing_id=listing_id,
            claim_id=recorded.id,
            claimant_id=mask_user_id(claimant_id),
            quantity_requested=quantity_requested,
            remaining=stored.quantity_remaining,
            listing_status=stored.status.value,
            listing_version=stored.version,
        )

        return ReconciliationOutcome(
            listing_id=listing_id,
            claimant_id=claimant_id,
            donor_id=stored.donor_id,
            listing_title=stored.title,
            accepted=True,
            remaining=stored.quantity_remaining,
            new_status=stored.status,
            quantity_requested=quantity_requested,
            claim_id=recorded.id,
            kind=kind.value,
        )

    async def _compensate(self, before: Listing, written: Listing, quantity: int) -> bool:
        """
        Undo a listing write whose ledger append failed.

        First try to restore the exact previous state. If another claim has
        landed since, hand the units back on top of the current state instead.
        """
        restored = await self.listings.swap_listing(before, expected_version=written.version)
        if restored is not None:
            return True

        current = await self.listings.get_listing(before.id)
        if current is None:
            return False

        remaining = min(current.quantity_total, current.quantity_remaining + quantity)
        data = current.model_dump()
        data["quantity_remaining"] = remaining
        if current.status in (ListingStatus.CLAIMED, ListingStatus.COMPLETED) and remaining > 0:
            data["status"] = ListingStatus.AVAILABLE
            data["claimed_by"] = before.claimed_by
            data["claimed_at"] = before.claimed_at
        returned = Listing.model_validate(data)

        restored = await self.listings.swap_listing(returned, expected_version=current.version)
        return restored is not None

    async def adjust_quantity(
        self,
        listing_id: str,
        donor_id: str,
        quantity_text: str,
        now: Optional[datetime] = None,
    ) -> Listing:
        """Donor quantity edit, through the same versioned write as claims."""
        new_total = parse_quantity(quantity_text)
        attempt = 0
        while True:
            current_now = now or _utcnow()
            listing = await self.load_listing(listing_id, current_now)
            if listing.donor_id != donor_id:
                raise PermissionDeniedError(f"Only the donor can edit listing {listing_id}")

            updated = self.state_machine.apply_quantity_edit(listing, new_total, quantity_text, current_now)
            stored = await self.listings.swap_listing(updated, expected_version=listing.version)
            if stored is not None:
                logger.info(
                    "Listing quantity updated",
                    listing_id=listing_id,
                    quantity_total=stored.quantity_total,
                    remaining=stored.quantity_remaining,
                    listing_status=stored.status.value,
                )
                return stored

            if attempt >= self.max_conflict_retries:
                raise ConcurrentModificationError(listing_id, listing.version)
            attempt += 1

    async def complete_listing(
        self,
        listing_id: str,
        donor_id: str,
        now: Optional[datetime] = None,
    ) -> Listing:
        """Donor marks an available listing as completed."""
        now = now or _utcnow()
        listing = await self.load_listing(listing_id, now)
        if listing.donor_id != donor_id:
            raise PermissionDeniedError(f"Only the donor can complete listing {listing_id}")

        completed = self.state_machine.transition(listing, ListingStatus.COMPLETED, now)
        if completed is listing:
            return listing
        stored = await self.listings.swap_listing(completed, expected_version=listing.version)
        if stored is None:
            raise ConcurrentModificationError(listing_id, listing.version)
        logger.info("Listing completed by donor", listing_id=listing_id)
        return stored

    def compute_state(self, listing: Listing, claims: list[ClaimRecord]) -> tuple[int, ListingStatus]:
        """
        Derive remaining quantity and status from the ledger.

        Every recorded claim consumes its units (declining a claim does not
        hand them back). Raises InsufficientQuantityError if the ledger holds
        more than the listing ever had.
        """
        consumed = sum(claim.quantity_requested for claim in claims)
        if consumed > listing.quantity_total:
            raise InsufficientQuantityError(listing.quantity_total, consumed)

        if listing.status == ListingStatus.COMPLETED:
            return 0, ListingStatus.COMPLETED

        remaining = listing.quantity_total - consumed
        if listing.status == ListingStatus.EXPIRED:
            return remaining, ListingStatus.EXPIRED
        if remaining == 0:
            if listing.status == ListingStatus.CLAIMED:
                return 0, ListingStatus.CLAIMED
            return 0, ListingStatus.COMPLETED
        return remaining, ListingStatus.AVAILABLE

    @timed("audit_listing", logger=logger)
    async def audit(self, listing_id: str) -> ReconciliationReport:
        """Compare a listing's stored quantity with what its ledger implies."""
        listing = await self.listings.get_listing(listing_id)
        if listing is None:
            raise ListingNotFoundError(listing_id)
        claims = await self.ledger.list_claims_for(listing_id)
        expected_remaining, expected_status = self.compute_state(listing, claims)

        report = ReconciliationReport(
            listing_id=listing_id,
            quantity_total=listing.quantity_total,
            stored_remaining=listing.quantity_remaining,
            ledger_consumed=sum(c.quantity_requested for c in claims),
            expected_remaining=expected_remaining,
            stored_status=listing.status,
            expected_status=expected_status,
            claim_count=len(claims),
        )
        if not report.consistent:
            logger.warning(
                "Listing disagrees with its ledger",
                listing_id=listing_id,
                stored_remaining=report.stored_remaining,
                expected_remaining=report.expected_remaining,
                stored_status=report.stored_status.value,
                expected_status=report.expected_status.value,
            )
        return report
