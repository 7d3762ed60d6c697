"""Tests for the Supabase-backed stores (mocked client)."""

import pytest
from unittest.mock import MagicMock, patch
from foodshare.models.claim import ClaimKind, DeliveryRecord
from foodshare.models.listing import CategoryId, ListingStatus
from foodshare.services.supabase_store import (
    SupabaseClaimStore,
    SupabaseListingStore,
    claim_from_row,
    claim_to_row,
    listing_from_row,
    listing_to_row,
)
from foodshare.utils.errors import SupabaseError
from tests.utils.factories import create_listing_data, make_claim, make_listing


def _mock_client(data):
    """Client whose query chain ends in execute() returning `data`."""
    client = MagicMock()
    query = MagicMock()
    for method in ("select", "insert", "update", "eq", "is_", "order"):
        getattr(query, method).return_value = query
    query.execute.return_value = MagicMock(data=data)
    client.table.return_value = query
    return client, query


def _patch_client(client):
    patcher = patch("foodshare.services.supabase_store.SupabaseClient")
    mock_client_class = patcher.start()
    mock_client_class.return_value.__aenter__.return_value = client
    mock_client_class.return_value.__aexit__.return_value = False
    return patcher


@pytest.mark.unit
def test_listing_from_row():
    row = create_listing_data(quantity=6)
    listing = listing_from_row(row)

    assert listing.quantity_total == 6
    assert listing.quantity_text == "6 servings"
    assert isinstance(listing.category, CategoryId)
    assert listing.pickup_location.district == "Colombo"


@pytest.mark.unit
def test_listing_from_legacy_row():
    """Rows without quantity columns or a flat donor id are normalized."""
    row = create_listing_data()
    for column in ("quantity_total", "quantity_remaining", "version", "donor_id"):
        row.pop(column)
    row["quantity"] = "4 trays"
    row["donor"] = {"id": "donor-9", "name": "Temple kitchen"}
    row["category_id"] = None
    row["category"] = {"id": "cat-1", "name": "Prepared"}

    listing = listing_from_row(row)

    assert listing.donor_id == "donor-9"
    assert listing.quantity_total == 4
    assert listing.quantity_remaining == 4
    assert listing.version == 1
    assert listing.category_id == "cat-1"


@pytest.mark.unit
def test_listing_to_row_column_names():
    listing = make_listing(category="cat-2", images=["https://img/1.jpg"])
    row = listing_to_row(listing)

    assert row["quantity"] == listing.quantity_text
    assert row["category_id"] == "cat-2"
    assert row["image_urls"] == ["https://img/1.jpg"]
    assert row["type"] == "free"
    assert row["status"] == "available"
    assert isinstance(row["expiry_date"], str)


@pytest.mark.unit
def test_claim_row_mapping_per_table():
    purchase = make_claim("listing-1", quantity=2, kind=ClaimKind.PURCHASE, total_price=200.0)
    row = claim_to_row(purchase)

    assert row["requester_id"] == purchase.claimant_id
    assert row["quantity"] == 2
    assert "kind" not in row

    back = claim_from_row(row, ClaimKind.PURCHASE)
    assert back.claimant_id == purchase.claimant_id
    assert back.kind == ClaimKind.PURCHASE


@pytest.mark.unit
def test_delivery_row_mapping():
    delivery = make_claim("listing-1", kind=ClaimKind.DELIVERY, urgent=True, delivery_fee_amount=300)
    row = claim_to_row(delivery)

    assert row["urgent_delivery"] is True
    assert row["delivery_fee"] == 300
    assert row["volunteer_id"] is None
    assert isinstance(claim_from_row(row, ClaimKind.DELIVERY), DeliveryRecord)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_swap_listing_is_conditional_on_version():
    listing = make_listing(quantity=5, remaining=3)
    stored_row = listing_to_row(listing)
    stored_row["version"] = 3
    client, query = _mock_client([stored_row])
    patcher = _patch_client(client)
    try:
        result = await SupabaseListingStore().swap_listing(listing, expected_version=2)
    finally:
        patcher.stop()

    assert result.version == 3
    client.table.assert_called_with("food_listings")
    changes = query.update.call_args.args[0]
    assert changes["version"] == 3
    assert changes["quantity_remaining"] == 3
    assert "title" not in changes
    query.eq.assert_any_call("id", listing.id)
    query.eq.assert_any_call("version", 2)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_swap_listing_conflict_returns_none():
    client, _ = _mock_client([])
    patcher = _patch_client(client)
    try:
        result = await SupabaseListingStore().swap_listing(make_listing(), expected_version=1)
    finally:
        patcher.stop()

    assert result is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_listing_wraps_client_errors():
    client, query = _mock_client([])
    query.execute.side_effect = Exception("connection reset")
    patcher = _patch_client(client)
    try:
        with pytest.raises(SupabaseError):
            await SupabaseListingStore().get_listing("listing-1")
    finally:
        patcher.stop()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_insert_claim_uses_kind_table():
    delivery = make_claim("listing-1", kind=ClaimKind.DELIVERY)
    client, _ = _mock_client([claim_to_row(delivery)])
    patcher = _patch_client(client)
    try:
        stored = await SupabaseClaimStore().insert_claim(delivery)
    finally:
        patcher.stop()

    client.table.assert_called_with("delivery_requests")
    assert stored.id == delivery.id


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_claim_condition_on_null_volunteer():
    delivery = make_claim("listing-1", kind=ClaimKind.DELIVERY)
    updated_row = claim_to_row(delivery)
    updated_row.update({"delivery_status": "assigned", "volunteer_id": "vol-1"})
    client, query = _mock_client([updated_row])
    patcher = _patch_client(client)
    try:
        updated = await SupabaseClaimStore().update_claim(
            delivery,
            {"assigned_volunteer_id": "vol-1"},
            expected={"delivery_status": "pending", "assigned_volunteer_id": None},
        )
    finally:
        patcher.stop()

    assert updated.assigned_volunteer_id == "vol-1"
    query.update.assert_called_once_with({"volunteer_id": "vol-1"})
    query.is_.assert_called_once_with("volunteer_id", "null")
    query.eq.assert_any_call("delivery_status", "pending")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_claims_merges_tables():
    listing_id = "listing-1"
    claim = make_claim(listing_id)
    purchase = make_claim(listing_id, kind=ClaimKind.PURCHASE, total_price=50.0)
    client, query = _mock_client([])
    query.execute.side_effect = [
        MagicMock(data=[claim_to_row(claim)]),
        MagicMock(data=[claim_to_row(purchase)]),
        MagicMock(data=[]),
    ]
    patcher = _patch_client(client)
    try:
        claims = await SupabaseClaimStore().list_claims(listing_id)
    finally:
        patcher.stop()

    assert {c.id: c.kind for c in claims} == {claim.id: ClaimKind.CLAIM, purchase.id: ClaimKind.PURCHASE}
    assert {t.args[0] for t in client.table.call_args_list} == {"food_claims", "food_requests", "delivery_requests"}
