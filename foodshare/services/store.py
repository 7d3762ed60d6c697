"""Persistence interface for listings and the claim ledger, plus the in-memory adapter."""

import asyncio
import threading
from abc import ABC, abstractmethod
from typing import Any, Optional
from foodshare.models.listing import Listing, ListingStatus
from foodshare.models.claim import ClaimRecord, DeliveryRecord, DeliveryStatus, ClaimKind
from foodshare.utils.errors import ListingNotFoundError, ClaimNotFoundError

# Columns written by the reconciliation path (compare-and-swap on version)
QUANTITY_STATE_FIELDS = (
    "quantity_text",
    "quantity_total",
    "quantity_remaining",
    "status",
    "claimed_by",
    "claimed_at",
    "updated_at",
)


class ListingStore(ABC):
    """Listing persistence. Quantity and status only change through `swap_listing`."""

    @abstractmethod
    async def insert_listing(self, listing: Listing) -> Listing:
        ...

    @abstractmethod
    async def get_listing(self, listing_id: str) -> Optional[Listing]:
        ...

    @abstractmethod
    async def list_listings(
        self,
        donor_id: Optional[str] = None,
        status: Optional[ListingStatus] = None,
    ) -> list[Listing]:
        ...

    @abstractmethod
    async def swap_listing(self, listing: Listing, expected_version: int) -> Optional[Listing]:
        """
        Write the quantity/status state of `listing` if the stored version
        still equals `expected_version`.

        Returns the stored listing (version bumped by one), or None when
        another writer got there first.
        """

    @abstractmethod
    async def update_descriptive(self, listing_id: str, changes: dict[str, Any]) -> Listing:
        """Write donor-owned descriptive fields. Does not bump the version."""


class ClaimStore(ABC):
    """Claim ledger persistence. Records are never hard-deleted."""

    @abstractmethod
    async def insert_claim(self, claim: ClaimRecord) -> ClaimRecord:
        ...

    @abstractmethod
    async def get_claim(self, claim_id: str, kind: Optional[ClaimKind] = None) -> Optional[ClaimRecord]:
        ...

    @abstractmethod
    async def list_claims(self, listing_id: str) -> list[ClaimRecord]:
        """All records for a listing, oldest first."""

    @abstractmethod
    async def update_claim(
        self,
        claim: ClaimRecord,
        changes: dict[str, Any],
        expected: Optional[dict[str, Any]] = None,
    ) -> Optional[ClaimRecord]:
        """
        Apply `changes` if every field in `expected` still has the given value.

        Returns the updated record, or None when the condition no longer holds.
        """

    @abstractmethod
    async def list_open_deliveries(self, district: Optional[str] = None) -> list[DeliveryRecord]:
        """Pending deliveries with no volunteer yet."""


class InMemoryListingStore(ListingStore):
    """Process-local listing store for local runs and tests."""

    def __init__(self):
        self._listings: dict[str, Listing] = {}
        self._lock = threading.Lock()

    async def insert_listing(self, listing: Listing) -> Listing:
        await asyncio.sleep(0)
        with self._lock:
            self._listings[listing.id] = listing.model_copy(deep=True)
        return listing.model_copy(deep=True)

    async def get_listing(self, listing_id: str) -> Optional[Listing]:
        await asyncio.sleep(0)
        with self._lock:
            listing = self._listings.get(listing_id)
            return listing.model_copy(deep=True) if listing else None

    async def list_listings(
        self,
        donor_id: Optional[str] = None,
        status: Optional[ListingStatus] = None,
    ) -> list[Listing]:
        await asyncio.sleep(0)
        with self._lock:
            listings = [
                listing.model_copy(deep=True)
                for listing in self._listings.values()
                if (donor_id is None or listing.donor_id == donor_id)
                and (status is None or listing.status == status)
            ]
        return listings

    async def swap_listing(self, listing: Listing, expected_version: int) -> Optional[Listing]:
        await asyncio.sleep(0)
        with self._lock:
            current = self._listings.get(listing.id)
            if current is None:
                raise ListingNotFoundError(listing.id)
            if current.version != expected_version:
                return None

            data = current.model_dump()
            for field in QUANTITY_STATE_FIELDS:
                data[field] = getattr(listing, field)
            data["version"] = expected_version + 1
            stored = Listing.model_validate(data)
            self._listings[listing.id] = stored
            return stored.model_copy(deep=True)

    async def update_descriptive(self, listing_id: str, changes: dict[str, Any]) -> Listing:
        await asyncio.sleep(0)
        with self._lock:
            current = self._listings.get(listing_id)
            if current is None:
                raise ListingNotFoundError(listing_id)
            data = current.model_dump()
            data.update(changes)
            stored = Listing.model_validate(data)
            self._listings[listing_id] = stored
            return stored.model_copy(deep=True)


class InMemoryClaimStore(ClaimStore):
    """Process-local claim ledger."""

    def __init__(self):
        self._claims: dict[str, ClaimRecord] = {}
        self._lock = threading.Lock()

    async def insert_claim(self, claim: ClaimRecord) -> ClaimRecord:
        await asyncio.sleep(0)
        with self._lock:
            self._claims[claim.id] = claim.model_copy(deep=True)
        return claim.model_copy(deep=True)

    async def get_claim(self, claim_id: str, kind: Optional[ClaimKind] = None) -> Optional[ClaimRecord]:
        await asyncio.sleep(0)
        with self._lock:
            claim = self._claims.get(claim_id)
            if claim is None or (kind is not None and claim.kind != kind):
                return None
            return claim.model_copy(deep=True)

    async def list_claims(self, listing_id: str) -> list[ClaimRecord]:
        await asyncio.sleep(0)
        with self._lock:
            claims = [c.model_copy(deep=True) for c in self._claims.values() if c.listing_id == listing_id]
        # dicts keep insertion order, so equal timestamps stay in append order
        return sorted(claims, key=lambda c: c.created_at)

    async def update_claim(
        self,
        claim: ClaimRecord,
        changes: dict[str, Any],
        expected: Optional[dict[str, Any]] = None,
    ) -> Optional[ClaimRecord]:
        await asyncio.sleep(0)
        with self._lock:
            current = self._claims.get(claim.id)
            if current is None:
                raise ClaimNotFoundError(claim.id)
            for field, value in (expected or {}).items():
                if getattr(current, field) != value:
                    return None
            data = current.model_dump()
            data.update(changes)
            updated = type(current).model_validate(data)
            self._claims[claim.id] = updated
            return updated.model_copy(deep=True)

    async def list_open_deliveries(self, district: Optional[str] = None) -> list[DeliveryRecord]:
        await asyncio.sleep(0)
        with self._lock:
            deliveries = [
                c.model_copy(deep=True)
                for c in self._claims.values()
                if isinstance(c, DeliveryRecord)
                and c.delivery_status == DeliveryStatus.PENDING
                and c.assigned_volunteer_id is None
                and (district is None or c.district == district)
            ]
        return sorted(deliveries, key=lambda d: d.created_at)
