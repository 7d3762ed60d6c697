"""Tests for the claim submission and review endpoints."""

import asyncio
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch
from api.claims.review import handler as review_handler
from api.claims.submit import handler as submit_handler
from foodshare.models.listing import ListingStatus
from foodshare.services.claim_service import get_claim_service
from foodshare.utils.errors import PartialCommitError
from tests.utils.assertions import assert_valid_response
from tests.utils.helpers import create_vercel_request


def _create_listing(**kwargs):
    kwargs.setdefault("listing_type", "free")
    return asyncio.run(get_claim_service().create_listing(
        "donor-1",
        "Chicken kottu",
        kwargs.pop("quantity_text", "5 servings"),
        datetime.now(timezone.utc) + timedelta(hours=4),
        **kwargs,
    ))


@pytest.mark.unit
def test_submit_claim_accepted():
    listing = _create_listing()
    request = create_vercel_request(body={"listing_id": listing.id, "claimant_id": "user-1", "quantity": 2})

    body = assert_valid_response(submit_handler(request), 201)

    assert body["ok"] is True
    assert body["outcome"]["remaining"] == 3
    assert body["outcome"]["new_status"] == "available"


@pytest.mark.unit
def test_submit_claim_rejected_returns_conflict_with_reason():
    listing = _create_listing(quantity_text="1 pot")
    request = create_vercel_request(body={"listing_id": listing.id, "claimant_id": "user-1", "quantity": 3})

    body = assert_valid_response(submit_handler(request), 409)

    assert body["ok"] is False
    assert body["error"] == "Only 1 portions available."
    assert body["outcome"]["accepted"] is False


@pytest.mark.unit
def test_submit_purchase_request():
    listing = _create_listing(listing_type="half-price", price=80)
    request = create_vercel_request(body={
        "listing_id": listing.id,
        "claimant_id": "user-1",
        "quantity": "2",
        "kind": "purchase",
        "contact_method": "phone",
        "phone": "+94771234567",
    })

    body = assert_valid_response(submit_handler(request), 201)

    claim = asyncio.run(get_claim_service().ledger.get(body["outcome"]["claim_id"]))
    assert claim.total_price == 160
    assert claim.phone == "+94771234567"


@pytest.mark.unit
def test_submit_delivery_request():
    listing = _create_listing()
    request = create_vercel_request(body={
        "listing_id": listing.id,
        "claimant_id": "user-1",
        "quantity": 1,
        "kind": "delivery",
        "delivery_address": "5 Lake Rd",
        "city": "Kurunegala",
        "district": "Kurunegala",
        "urgent": "true",
    })

    body = assert_valid_response(submit_handler(request), 201)

    delivery = asyncio.run(get_claim_service().get_delivery(body["outcome"]["claim_id"]))
    assert delivery.delivery_fee_amount == 450
    assert delivery.urgent is True


@pytest.mark.unit
@pytest.mark.parametrize("body", [
    {"claimant_id": "user-1", "quantity": 1},
    {"listing_id": "x", "claimant_id": "user-1", "quantity": "lots"},
    {"listing_id": "x", "claimant_id": "user-1", "quantity": 1, "kind": "barter"},
    {"listing_id": "x", "claimant_id": "user-1", "quantity": 1, "kind": "delivery"},
])
def test_submit_claim_bad_request(body):
    assert_valid_response(submit_handler(create_vercel_request(body=body)), 400)


@pytest.mark.unit
def test_submit_claim_invalid_json():
    request = create_vercel_request()
    request["body"] = "{not json"
    assert_valid_response(submit_handler(request), 400)


@pytest.mark.unit
def test_submit_claim_unknown_listing():
    request = create_vercel_request(body={"listing_id": "missing", "claimant_id": "user-1", "quantity": 1})
    assert_valid_response(submit_handler(request), 404)


@pytest.mark.unit
def test_submit_claim_zero_quantity():
    listing = _create_listing()
    request = create_vercel_request(body={"listing_id": listing.id, "claimant_id": "user-1", "quantity": 0})
    assert_valid_response(submit_handler(request), 400)


@pytest.mark.unit
def test_submit_claim_partial_commit_hides_details():
    listing = _create_listing()
    service = get_claim_service()
    request = create_vercel_request(body={"listing_id": listing.id, "claimant_id": "user-1", "quantity": 1})

    with patch.object(service.ledger, "record", AsyncMock(side_effect=RuntimeError("db down"))):
        body = assert_valid_response(submit_handler(request), 500)

    assert body["error"] == "Something went wrong, please try again."
    stored = asyncio.run(service.read_listing(listing.id))
    assert stored.quantity_remaining == 5


@pytest.mark.unit
def test_review_accept():
    listing = _create_listing()
    outcome = asyncio.run(get_claim_service().submit_claim(listing.id, "user-1", 1))
    request = create_vercel_request(
        path="/api/claims/review",
        body={"claim_id": outcome.claim_id, "donor_id": "donor-1", "decision": "accept"},
    )

    body = assert_valid_response(review_handler(request), 200)

    assert body["claim"]["status"] == "accepted"


@pytest.mark.unit
def test_review_by_non_donor_forbidden():
    listing = _create_listing()
    outcome = asyncio.run(get_claim_service().submit_claim(listing.id, "user-1", 1))
    request = create_vercel_request(
        path="/api/claims/review",
        body={"claim_id": outcome.claim_id, "donor_id": "user-1", "decision": "accept"},
    )

    assert_valid_response(review_handler(request), 403)


@pytest.mark.unit
def test_review_twice_conflicts():
    listing = _create_listing()
    outcome = asyncio.run(get_claim_service().submit_claim(listing.id, "user-1", 1))
    request = create_vercel_request(
        path="/api/claims/review",
        body={"claim_id": outcome.claim_id, "donor_id": "donor-1", "decision": "decline"},
    )

    assert_valid_response(review_handler(request), 200)
    assert_valid_response(review_handler(request), 409)


@pytest.mark.unit
def test_review_unknown_decision():
    request = create_vercel_request(body={"claim_id": "c", "donor_id": "d", "decision": "maybe"})
    assert_valid_response(review_handler(request), 400)


@pytest.mark.unit
@pytest.mark.parametrize("extra", [
    {"status": "accepted"},
    {"id": "fixed-id"},
    {"quantity_requested": 5},
    {"now": "2020-01-01T00:00:00Z"},
    {"urgent": True},
])
def test_submit_claim_rejects_unsupported_fields(extra):
    listing = _create_listing()
    request = create_vercel_request(body={"listing_id": listing.id, "claimant_id": "user-1", "quantity": 1, **extra})

    assert_valid_response(submit_handler(request), 400)

    service = get_claim_service()
    assert asyncio.run(service.list_claims(listing.id)) == []
    assert asyncio.run(service.audit_listing(listing.id)).consistent


@pytest.mark.unit
def test_submit_purchase_ignores_client_total_price():
    listing = _create_listing(listing_type="half-price", price=50)
    request = create_vercel_request(body={
        "listing_id": listing.id,
        "claimant_id": "user-1",
        "quantity": 2,
        "kind": "purchase",
        "total_price": 1,
    })

    body = assert_valid_response(submit_handler(request), 201)

    claim = asyncio.run(get_claim_service().ledger.get(body["outcome"]["claim_id"]))
    assert claim.total_price == 100
    assert claim.status == "pending"
