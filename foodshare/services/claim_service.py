"""Inbound operations for donors and recipients: listings, claims, purchases, deliveries."""

from typing import Any, Optional, Union
from datetime import datetime, timezone
from foodshare.models.claim import ClaimKind, ClaimRecord, DeliveryRecord, ReviewDecision
from foodshare.models.impact import DonorImpact
from foodshare.models.listing import Listing, ListingStatus, ListingType
from foodshare.models.outcome import ReconciliationOutcome, ReconciliationReport
from foodshare.services.claim_ledger import ClaimLedger
from foodshare.services.delivery_fees import calculate_delivery_fee
from foodshare.services.impact import donor_impact
from foodshare.services.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    SupabaseNotificationDispatcher,
)
from foodshare.services.quantity_parser import parse_quantity
from foodshare.services.reconciliation import ReconciliationEngine
from foodshare.services.store import (
    ClaimStore,
    InMemoryClaimStore,
    InMemoryListingStore,
    ListingStore,
)
from foodshare.services.supabase_store import SupabaseClaimStore, SupabaseListingStore
from foodshare.utils.config import Settings
from foodshare.utils.errors import (
    InsufficientQuantityError,
    InvalidClaimError,
    ListingNotFoundError,
    ListingUpdateError,
    PermissionDeniedError,
    StaleListingError,
)
from foodshare.utils.ids import generate_id
from foodshare.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)

STALE_LISTING_MESSAGE = "This listing is no longer available."

# Claimant-supplied fields a claim may carry; everything else is set by the ledger
CLAIM_DETAIL_FIELDS = frozenset({"pickup_at", "contact_method", "phone", "email", "notes"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_details(details: dict[str, Any]) -> None:
    unknown = sorted(set(details) - CLAIM_DETAIL_FIELDS)
    if unknown:
        raise InvalidClaimError(f"Unsupported claim field(s): {', '.join(unknown)}")


class ClaimService:
    """
    Entry point for every user action that touches a listing.

    Quantity and status changes go through the ReconciliationEngine; this
    class adds permission checks, turns user-facing rejections into
    ReconciliationOutcome values and fans results out to the dispatcher.
    """

    def __init__(
        self,
        listings: ListingStore,
        claims: ClaimStore,
        dispatcher: Optional[NotificationDispatcher] = None,
        engine: Optional[ReconciliationEngine] = None,
    ):
        self.listings = listings
        self.ledger = ClaimLedger(claims)
        self.engine = engine or ReconciliationEngine(listings, self.ledger)
        self.dispatcher = dispatcher or LoggingNotificationDispatcher()

    async def _dispatch(self, hook: str, *args: Any) -> None:
        try:
            await getattr(self.dispatcher, hook)(*args)
        except Exception as e:
            logger.error(
                "Notification dispatch failed",
                hook=hook,
                error=str(e),
                exc_info=True,
            )

    # Listings

    async def create_listing(
        self,
        donor_id: str,
        title: str,
        quantity_text: str,
        expiry_timestamp: datetime,
        now: Optional[datetime] = None,
        **fields: Any,
    ) -> Listing:
        """Create an available listing with its quantity parsed from free text."""
        now = now or _utcnow()
        if not title or not title.strip():
            raise ListingUpdateError("Title is required")

        quantity_total = parse_quantity(quantity_text)
        if quantity_total < 1:
            raise ListingUpdateError("Quantity must be at least 1")

        try:
            listing = Listing.model_validate({
                **fields,
                "id": generate_id(),
                "donor_id": donor_id,
                "title": title.strip(),
                "quantity_text": quantity_text,
                "quantity_total": quantity_total,
                "quantity_remaining": quantity_total,
                "status": ListingStatus.AVAILABLE,
                "expiry_timestamp": expiry_timestamp,
                "version": 1,
                "created_at": now,
                "updated_at": now,
            })
        except ValueError as e:
            raise ListingUpdateError(f"Invalid listing: {e}") from e

        if listing.listing_type == ListingType.HALF_PRICE and not listing.price:
            raise ListingUpdateError("Half-price listings need a price")
        if listing.is_past_expiry(now):
            raise ListingUpdateError("Expiry must be in the future")

        stored = await self.listings.insert_listing(listing)
        logger.info(
            "Listing created",
            listing_id=stored.id,
            donor_id=mask_user_id(donor_id),
            quantity_total=stored.quantity_total,
            listing_type=stored.listing_type.value,
        )
        return stored

    async def read_listing(self, listing_id: str, now: Optional[datetime] = None) -> Listing:
        """Current listing state, expiring it on the way if needed."""
        return await self.engine.load_listing(listing_id, now)

    async def edit_listing(
        self,
        listing_id: str,
        donor_id: str,
        fields: dict[str, Any],
        now: Optional[datetime] = None,
    ) -> Listing:
        """
        Donor edit of a listing.

        Descriptive fields are written directly. A new `quantity_text` is
        re-parsed and applied through the reconciliation engine so claims in
        flight are accounted for.
        """
        now = now or _utcnow()
        listing = await self.engine.load_listing(listing_id, now)
        if listing.donor_id != donor_id:
            raise PermissionDeniedError(f"Only the donor can edit listing {listing_id}")

        changes = self.engine.state_machine.check_donor_edit(listing, fields)
        if changes:
            try:
                Listing.model_validate({**listing.model_dump(), **changes})
            except ValueError as e:
                raise ListingUpdateError(f"Invalid listing fields: {e}") from e

        if "quantity_text" in fields:
            listing = await self.engine.adjust_quantity(listing_id, donor_id, fields["quantity_text"], now)
        if changes:
            listing = await self.listings.update_descriptive(listing_id, changes)
            logger.info("Listing edited", listing_id=listing_id, fields=sorted(changes))
        return listing

    async def complete_listing(self, listing_id: str, donor_id: str, now: Optional[datetime] = None) -> Listing:
        return await self.engine.complete_listing(listing_id, donor_id, now)

    async def audit_listing(self, listing_id: str) -> ReconciliationReport:
        return await self.engine.audit(listing_id)

    async def donor_impact(self, donor_id: str) -> DonorImpact:
        listings = await self.listings.list_listings(donor_id=donor_id)
        return donor_impact(donor_id, listings)

    # Claims

    async def _reconcile(
        self,
        listing_id: str,
        claimant_id: str,
        quantity: int,
        kind: ClaimKind,
        now: Optional[datetime],
        **details: Any,
    ) -> ReconciliationOutcome:
        now = now or _utcnow()
        try:
            outcome = await self.engine.reconcile_claim(
                listing_id, claimant_id, quantity, kind=kind, now=now, **details
            )
        except (InsufficientQuantityError, StaleListingError) as e:
            listing = await self.engine.load_listing(listing_id, now)
            reason = str(e) if isinstance(e, InsufficientQuantityError) else STALE_LISTING_MESSAGE
            outcome = ReconciliationOutcome(
                listing_id=listing_id,
                claimant_id=claimant_id,
                donor_id=listing.donor_id,
                listing_title=listing.title,
                accepted=False,
                remaining=listing.quantity_remaining,
                new_status=listing.status,
                quantity_requested=quantity,
                kind=kind.value,
                reason=reason,
            )

        await self._dispatch("on_reconciled", outcome)
        return outcome

    async def submit_claim(
        self,
        listing_id: str,
        claimant_id: str,
        quantity: int,
        now: Optional[datetime] = None,
        **details: Any,
    ) -> ReconciliationOutcome:
        """Free claim of `quantity` units."""
        _check_details(details)
        return await self._reconcile(listing_id, claimant_id, quantity, ClaimKind.CLAIM, now, **details)

    async def submit_purchase_request(
        self,
        listing_id: str,
        claimant_id: str,
        quantity: int,
        now: Optional[datetime] = None,
        **details: Any,
    ) -> ReconciliationOutcome:
        """Request to buy `quantity` units of a half-price listing."""
        details.pop("total_price", None)
        _check_details(details)
        listing = await self.engine.load_listing(listing_id, now)
        if listing.listing_type != ListingType.HALF_PRICE:
            raise InvalidClaimError("Purchase requests are only accepted on half-price listings")
        total_price = round((listing.price or 0) * quantity, 2)
        return await self._reconcile(
            listing_id, claimant_id, quantity, ClaimKind.PURCHASE, now, total_price=total_price, **details
        )

    async def request_delivery(
        self,
        listing_id: str,
        claimant_id: str,
        quantity: int,
        delivery_address: str,
        district: str,
        city: str = "",
        urgent: bool = False,
        now: Optional[datetime] = None,
        **details: Any,
    ) -> ReconciliationOutcome:
        """Claim `quantity` units and ask a volunteer to deliver them."""
        _check_details(details)
        if not delivery_address or not district:
            raise InvalidClaimError("Delivery address and district are required")

        fee = calculate_delivery_fee(district, urgent)
        outcome = await self._reconcile(
            listing_id,
            claimant_id,
            quantity,
            ClaimKind.DELIVERY,
            now,
            delivery_address=delivery_address,
            city=city,
            district=district,
            urgent=urgent,
            delivery_fee_amount=fee,
            **details,
        )
        if outcome.accepted and outcome.claim_id:
            delivery = await self.ledger.get(outcome.claim_id, ClaimKind.DELIVERY)
            await self._dispatch("on_delivery_requested", delivery)
        return outcome

    async def review_claim(
        self,
        claim_id: str,
        donor_id: str,
        decision: Union[ReviewDecision, str],
        kind: Optional[ClaimKind] = None,
        now: Optional[datetime] = None,
    ) -> ClaimRecord:
        """Donor accepts, declines or completes a claim on their listing."""
        decision = ReviewDecision(decision)
        claim = await self.ledger.get(claim_id, kind)
        listing = await self.listings.get_listing(claim.listing_id)
        if listing is None:
            raise ListingNotFoundError(claim.listing_id)
        if listing.donor_id != donor_id:
            raise PermissionDeniedError(f"Only the donor can review claim {claim_id}")

        reviewed = await self.ledger.review(claim, decision, now)
        await self._dispatch("on_claim_reviewed", reviewed, listing)
        return reviewed

    async def list_claims(self, listing_id: str) -> list[ClaimRecord]:
        return await self.ledger.list_claims_for(listing_id)

    async def get_delivery(self, delivery_id: str) -> DeliveryRecord:
        return await self.ledger.get(delivery_id, ClaimKind.DELIVERY)


# Global instances (singleton pattern)
_stores: Optional[tuple[ListingStore, ClaimStore]] = None
_service: Optional[ClaimService] = None


def get_stores() -> tuple[ListingStore, ClaimStore]:
    """Listing and claim stores for the configured backend."""
    global _stores
    if _stores is None:
        if Settings.use_memory_store():
            _stores = (InMemoryListingStore(), InMemoryClaimStore())
        else:
            _stores = (SupabaseListingStore(), SupabaseClaimStore())
        logger.info("Stores initialized", backend=Settings.STORE_BACKEND)
    return _stores


def get_dispatcher() -> NotificationDispatcher:
    if Settings.use_memory_store():
        return LoggingNotificationDispatcher()
    return SupabaseNotificationDispatcher()


def get_claim_service() -> ClaimService:
    """Get or create the ClaimService singleton."""
    global _service
    if _service is None:
        listings, claims = get_stores()
        _service = ClaimService(listings, claims, get_dispatcher())
    return _service


def reset_services() -> None:
    """Drop cached stores and services."""
    global _stores, _service
    _stores = None
    _service = None
