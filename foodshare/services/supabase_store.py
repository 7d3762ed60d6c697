"""Supabase-backed listing and claim stores.

Listings carry a `version` column; reconciliation writes are conditional
updates on (id, version), so a concurrent writer makes the update match no
rows instead of silently overwriting.
"""

from enum import Enum
from datetime import datetime
from typing import Any, Optional
from foodshare.models.listing import Listing, ListingStatus
from foodshare.models.claim import ClaimKind, ClaimRecord, DeliveryRecord, DeliveryStatus
from foodshare.services.quantity_parser import parse_quantity
from foodshare.services.store import ListingStore, ClaimStore, QUANTITY_STATE_FIELDS
from foodshare.services.supabase_client import SupabaseClient
from foodshare.utils.config import TABLES
from foodshare.utils.errors import SupabaseError, ListingNotFoundError
from foodshare.utils.logging import get_structured_logger, timed

logger = get_structured_logger(__name__)

# Model field -> food_listings column
LISTING_COLUMNS = {
    "quantity_text": "quantity",
    "images": "image_urls",
    "listing_type": "type",
    "expiry_timestamp": "expiry_date",
    "category": "category_id",
}

CLAIM_TABLES = {
    ClaimKind.CLAIM: TABLES["FOOD_CLAIMS"],
    ClaimKind.PURCHASE: TABLES["FOOD_REQUESTS"],
    ClaimKind.DELIVERY: TABLES["DELIVERY_REQUESTS"],
}

# Model field -> column, per ledger table
CLAIM_COLUMNS = {
    ClaimKind.CLAIM: {
        "pickup_at": "pickup_date_time",
    },
    ClaimKind.PURCHASE: {
        "claimant_id": "requester_id",
        "quantity_requested": "quantity",
        "pickup_at": "pickup_date_time",
    },
    ClaimKind.DELIVERY: {
        "claimant_id": "requester_id",
        "quantity_requested": "quantity",
        "pickup_at": "pickup_date_time",
        "delivery_fee_amount": "delivery_fee",
        "urgent": "urgent_delivery",
        "assigned_volunteer_id": "volunteer_id",
    },
}


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    return value


def listing_from_row(row: dict) -> Listing:
    """
    Normalize a food_listings row into a Listing.

    Older rows reference the donor as a nested object and the category either
    by id or inline; both are resolved here once.
    """
    donor = row.get("donor")
    donor_id = row.get("donor_id") or (donor.get("id") if isinstance(donor, dict) else donor)

    quantity_text = row.get("quantity_text") or str(row.get("quantity") or "")
    quantity_total = row.get("quantity_total")
    if quantity_total is None:
        quantity_total = parse_quantity(quantity_text)
    quantity_remaining = row.get("quantity_remaining")
    if quantity_remaining is None:
        quantity_remaining = quantity_total

    return Listing.model_validate({
        "id": str(row["id"]),
        "donor_id": donor_id,
        "title": row.get("title") or "",
        "description": row.get("description"),
        "category": row.get("category") or row.get("category_id"),
        "images": row.get("image_urls") or row.get("images") or [],
        "pickup_location": row.get("pickup_location") or None,
        "listing_type": row.get("type") or "free",
        "price": row.get("price"),
        "quantity_text": quantity_text,
        "quantity_total": quantity_total,
        "quantity_remaining": quantity_remaining,
        "status": row.get("status") or ListingStatus.AVAILABLE.value,
        "expiry_timestamp": row.get("expiry_date") or row.get("expiry_timestamp"),
        "version": row.get("version") or 1,
        "claimed_by": row.get("claimed_by"),
        "claimed_at": row.get("claimed_at"),
        "created_at": row.get("created_at"),
        "updated_at": row.get("updated_at"),
    })


def _listing_columns(listing: Listing, fields) -> dict:
    row = {}
    for field in fields:
        value = listing.category_id if field == "category" else getattr(listing, field)
        row[LISTING_COLUMNS.get(field, field)] = _jsonable(value)
    return row


def listing_to_row(listing: Listing) -> dict:
    """Serialize a Listing into food_listings columns."""
    return _listing_columns(listing, Listing.model_fields.keys())


def claim_to_row(claim: ClaimRecord) -> dict:
    """Serialize a ledger record for its table (the table implies the kind)."""
    columns = CLAIM_COLUMNS[claim.kind]
    data = claim.model_dump(mode="json", exclude={"kind"})
    return {columns.get(field, field): value for field, value in data.items()}


def claim_from_row(row: dict, kind: ClaimKind) -> ClaimRecord:
    """Build a ledger record from a row of the given table."""
    reverse = {column: field for field, column in CLAIM_COLUMNS[kind].items()}
    data = {reverse.get(column, column): value for column, value in row.items()}
    data["kind"] = kind.value
    data["id"] = str(data["id"])
    if kind == ClaimKind.DELIVERY:
        return DeliveryRecord.model_validate(data)
    return ClaimRecord.model_validate(data)


class SupabaseListingStore(ListingStore):
    """Listings in the food_listings table."""

    table = TABLES["FOOD_LISTINGS"]

    async def insert_listing(self, listing: Listing) -> Listing:
        async with SupabaseClient() as client:
            try:
                result = client.table(self.table).insert(listing_to_row(listing)).execute()
            except Exception as e:
                raise SupabaseError(f"Failed to create listing: {e}")
        if result.data and len(result.data) > 0:
            return listing_from_row(result.data[0])
        raise SupabaseError("Failed to create listing: no data returned")

    async def get_listing(self, listing_id: str) -> Optional[Listing]:
        async with SupabaseClient() as client:
            try:
                result = client.table(self.table).select("*").eq("id", listing_id).execute()
            except Exception as e:
                raise SupabaseError(f"Failed to get listing: {e}")
        return listing_from_row(result.data[0]) if result.data and len(result.data) > 0 else None

    async def list_listings(
        self,
        donor_id: Optional[str] = None,
        status: Optional[ListingStatus] = None,
    ) -> list[Listing]:
        async with SupabaseClient() as client:
            try:
                query = client.table(self.table).select("*")
                if donor_id is not None:
                    query = query.eq("donor_id", donor_id)
                if status is not None:
                    query = query.eq("status", status.value)
                result = query.order("created_at").execute()
            except Exception as e:
                raise SupabaseError(f"Failed to list listings: {e}")
        return [listing_from_row(row) for row in (result.data or [])]

    @timed("supabase.swap_listing", logger=logger)
    async def swap_listing(self, listing: Listing, expected_version: int) -> Optional[Listing]:
        changes = _listing_columns(listing, QUANTITY_STATE_FIELDS)
        changes["version"] = expected_version + 1

        async with SupabaseClient() as client:
            try:
                result = (
                    client.table(self.table)
                    .update(changes)
                    .eq("id", listing.id)
                    .eq("version", expected_version)
                    .execute()
                )
            except Exception as e:
                raise SupabaseError(f"Failed to update listing {listing.id}: {e}")

        if not result.data:
            logger.debug(
                "Conditional listing update matched no rows",
                listing_id=listing.id,
                expected_version=expected_version,
            )
            return None
        return listing_from_row(result.data[0])

    async def update_descriptive(self, listing_id: str, changes: dict[str, Any]) -> Listing:
        row = {}
        for field, value in changes.items():
            if field == "category":
                value = value.id if hasattr(value, "id") else value
            row[LISTING_COLUMNS.get(field, field)] = _jsonable(value)

        async with SupabaseClient() as client:
            try:
                result = client.table(self.table).update(row).eq("id", listing_id).execute()
            except Exception as e:
                raise SupabaseError(f"Failed to update listing {listing_id}: {e}")
        if result.data and len(result.data) > 0:
            return listing_from_row(result.data[0])
        raise ListingNotFoundError(listing_id)


class SupabaseClaimStore(ClaimStore):
    """Claims, purchase requests and delivery requests, one table per kind."""

    async def insert_claim(self, claim: ClaimRecord) -> ClaimRecord:
        table = CLAIM_TABLES[claim.kind]
        async with SupabaseClient() as client:
            try:
                result = client.table(table).insert(claim_to_row(claim)).execute()
            except Exception as e:
                raise SupabaseError(f"Failed to insert into {table}: {e}")
        if result.data and len(result.data) > 0:
            return claim_from_row(result.data[0], claim.kind)
        raise SupabaseError(f"Failed to insert into {table}: no data returned")

    async def get_claim(self, claim_id: str, kind: Optional[ClaimKind] = None) -> Optional[ClaimRecord]:
        kinds = [kind] if kind else list(CLAIM_TABLES)
        async with SupabaseClient() as client:
            for each in kinds:
                try:
                    result = client.table(CLAIM_TABLES[each]).select("*").eq("id", claim_id).execute()
                except Exception as e:
                    raise SupabaseError(f"Failed to get claim {claim_id}: {e}")
                if result.data and len(result.data) > 0:
                    return claim_from_row(result.data[0], each)
        return None

    @timed("supabase.list_claims", logger=logger)
    async def list_claims(self, listing_id: str) -> list[ClaimRecord]:
        claims: list[ClaimRecord] = []
        async with SupabaseClient() as client:
            for kind, table in CLAIM_TABLES.items():
                try:
                    result = (
                        client.table(table)
                        .select("*")
                        .eq("listing_id", listing_id)
                        .order("created_at")
                        .execute()
                    )
                except Exception as e:
                    raise SupabaseError(f"Failed to list {table} for listing {listing_id}: {e}")
                claims.extend(claim_from_row(row, kind) for row in (result.data or []))
        return sorted(claims, key=lambda c: c.created_at)

    async def update_claim(
        self,
        claim: ClaimRecord,
        changes: dict[str, Any],
        expected: Optional[dict[str, Any]] = None,
    ) -> Optional[ClaimRecord]:
        table = CLAIM_TABLES[claim.kind]
        columns = CLAIM_COLUMNS[claim.kind]
        row = {columns.get(field, field): _jsonable(value) for field, value in changes.items()}

        async with SupabaseClient() as client:
            try:
                query = client.table(table).update(row).eq("id", claim.id)
                for field, value in (expected or {}).items():
                    column = columns.get(field, field)
                    if value is None:
                        query = query.is_(column, "null")
                    else:
                        query = query.eq(column, _jsonable(value))
                result = query.execute()
            except Exception as e:
                raise SupabaseError(f"Failed to update {table} {claim.id}: {e}")

        if not result.data:
            return None
        return claim_from_row(result.data[0], claim.kind)

    async def list_open_deliveries(self, district: Optional[str] = None) -> list[DeliveryRecord]:
        table = CLAIM_TABLES[ClaimKind.DELIVERY]
        async with SupabaseClient() as client:
            try:
                query = (
                    client.table(table)
                    .select("*")
                    .eq("delivery_status", DeliveryStatus.PENDING.value)
                    .is_("volunteer_id", "null")
                )
                if district:
                    query = query.eq("district", district)
                result = query.order("created_at").execute()
            except Exception as e:
                raise SupabaseError(f"Failed to list open deliveries: {e}")
        return [claim_from_row(row, ClaimKind.DELIVERY) for row in (result.data or [])]
