"""Listing state machine - status transitions and quantity guards for a single listing."""

from typing import Any, Optional
from datetime import datetime, timezone
from foodshare.models.listing import Listing, ListingStatus
from foodshare.utils.errors import (
    InsufficientQuantityError,
    InvalidClaimError,
    InvalidTransitionError,
    ListingUpdateError,
    StaleListingError,
)

# Allowed status moves. Nothing leaves claimed, completed or expired.
TRANSITIONS: dict[ListingStatus, frozenset] = {
    ListingStatus.AVAILABLE: frozenset({
        ListingStatus.CLAIMED,
        ListingStatus.COMPLETED,
        ListingStatus.EXPIRED,
    }),
    ListingStatus.CLAIMED: frozenset(),
    ListingStatus.COMPLETED: frozenset(),
    ListingStatus.EXPIRED: frozenset(),
}

# Written only through the reconciliation path
PROTECTED_FIELDS = frozenset({
    "id",
    "donor_id",
    "quantity_total",
    "quantity_remaining",
    "status",
    "version",
    "claimed_by",
    "claimed_at",
    "created_at",
})

DESCRIPTIVE_FIELDS = frozenset({
    "title",
    "description",
    "category",
    "images",
    "pickup_location",
    "listing_type",
    "price",
    "expiry_timestamp",
})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _rebuild(listing: Listing, **changes: Any) -> Listing:
    """Copy a listing with changes, re-running model validation."""
    data = listing.model_dump()
    data.update(changes)
    return Listing.model_validate(data)


class ListingStateMachine:
    """Owns the available -> claimed / completed / expired rules."""

    @staticmethod
    def can_transition(current: ListingStatus, target: ListingStatus) -> bool:
        return target in TRANSITIONS[current]

    def transition(self, listing: Listing, target: ListingStatus, now: Optional[datetime] = None) -> Listing:
        """Move a listing to a new status, or raise if the move is undefined."""
        if listing.status == target:
            return listing
        if not self.can_transition(listing.status, target):
            if listing.status in (ListingStatus.COMPLETED, ListingStatus.EXPIRED):
                raise StaleListingError(listing.id, listing.status.value)
            raise InvalidTransitionError(listing.status.value, target.value)

        changes: dict[str, Any] = {"status": target, "updated_at": now or _utcnow()}
        if target == ListingStatus.COMPLETED:
            changes["quantity_remaining"] = 0
        return _rebuild(listing, **changes)

    def refresh_expiry(self, listing: Listing, now: Optional[datetime] = None) -> Listing:
        """Lazily expire an available listing whose expiry time has passed."""
        now = now or _utcnow()
        if listing.status == ListingStatus.AVAILABLE and listing.is_past_expiry(now):
            return self.transition(listing, ListingStatus.EXPIRED, now)
        return listing

    def ensure_claimable(self, listing: Listing, quantity_requested: int, now: Optional[datetime] = None) -> None:
        """Raise unless `quantity_requested` units can be taken from the listing right now."""
        now = now or _utcnow()
        if quantity_requested < 1:
            raise InvalidClaimError("quantity_requested must be at least 1")

        if listing.status == ListingStatus.EXPIRED or (
            listing.status == ListingStatus.AVAILABLE and listing.is_past_expiry(now)
        ):
            raise StaleListingError(listing.id, ListingStatus.EXPIRED.value)
        if listing.status == ListingStatus.COMPLETED:
            raise StaleListingError(listing.id, listing.status.value)

        if quantity_requested > listing.quantity_remaining:
            raise InsufficientQuantityError(listing.quantity_remaining, quantity_requested)

    def apply_claim(
        self,
        listing: Listing,
        quantity_requested: int,
        claimant_id: str,
        now: Optional[datetime] = None,
    ) -> Listing:
        """
        Compute the listing after a claim.

        Full claim (the whole original quantity at once): status becomes
        claimed and remaining is forced to 0. Partial claim: remaining is
        decremented and the listing stays available, or becomes completed
        once partial claims have used it up.
        """
        now = now or _utcnow()
        self.ensure_claimable(listing, quantity_requested, now)

        if quantity_requested == listing.quantity_total:
            return _rebuild(
                listing,
                status=ListingStatus.CLAIMED,
                quantity_remaining=0,
                claimed_by=claimant_id,
                claimed_at=now,
                updated_at=now,
            )

        remaining = listing.quantity_remaining - quantity_requested
        if remaining == 0:
            return _rebuild(
                listing,
                status=ListingStatus.COMPLETED,
                quantity_remaining=0,
                updated_at=now,
            )
        return _rebuild(listing, quantity_remaining=remaining, updated_at=now)

    def apply_quantity_edit(
        self,
        listing: Listing,
        new_total: int,
        quantity_text: str,
        now: Optional[datetime] = None,
    ) -> Listing:
        """
        Apply a donor's new total quantity.

        Units already claimed stay consumed. Terminal listings cannot be
        topped up.
        """
        now = now or _utcnow()
        listing = self.refresh_expiry(listing, now)

        if listing.is_terminal:
            if new_total > listing.quantity_total:
                raise StaleListingError(listing.id, listing.status.value)
            if new_total != listing.quantity_total:
                raise InvalidTransitionError(
                    listing.status.value,
                    listing.status.value,
                    f"Quantity of a {listing.status.value} listing cannot be changed",
                )
            return _rebuild(listing, quantity_text=quantity_text, updated_at=now)

        consumed = listing.quantity_total - listing.quantity_remaining
        if new_total < 1:
            raise ListingUpdateError("Quantity must be at least 1")
        if new_total < consumed:
            raise ListingUpdateError(
                f"Quantity cannot drop below the {consumed} portions already claimed"
            )

        remaining = new_total - consumed
        changes: dict[str, Any] = {
            "quantity_text": quantity_text,
            "quantity_total": new_total,
            "quantity_remaining": remaining,
            "updated_at": now,
        }
        if remaining == 0:
            changes["status"] = ListingStatus.COMPLETED
        return _rebuild(listing, **changes)

    def check_donor_edit(self, listing: Listing, fields: dict) -> dict:
        """Validate a donor's descriptive edit and return the accepted changes."""
        protected = PROTECTED_FIELDS.intersection(fields)
        if protected:
            raise ListingUpdateError(
                f"Fields managed by reconciliation cannot be edited: {', '.join(sorted(protected))}"
            )
        unknown = set(fields) - DESCRIPTIVE_FIELDS - {"quantity_text"}
        if unknown:
            raise ListingUpdateError(f"Unknown listing fields: {', '.join(sorted(unknown))}")
        if listing.status in (ListingStatus.COMPLETED, ListingStatus.EXPIRED) and "expiry_timestamp" in fields:
            raise StaleListingError(listing.id, listing.status.value)
        return {k: v for k, v in fields.items() if k in DESCRIPTIVE_FIELDS}
