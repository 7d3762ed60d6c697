"""Claim submission endpoint: free claims, purchase requests and delivery requests."""

from foodshare.models.claim import ClaimKind
from foodshare.services.claim_service import CLAIM_DETAIL_FIELDS, get_claim_service
from foodshare.utils.http import BadRequestError, parse_body, require, run_handler
from foodshare.utils.logging import get_structured_logger, setup_logging

setup_logging()
logger = get_structured_logger(__name__)

DELIVERY_FIELDS = CLAIM_DETAIL_FIELDS | {"delivery_address", "district", "city", "urgent"}


def handler(request):
    """
    Submit a claim against a listing.

    Body: listing_id, claimant_id, quantity, optional kind
    (claim | purchase | delivery) and the pickup/contact or delivery details.
    Responds 201 with the outcome when the claim is accepted and 409 with the
    outcome and a user-facing reason when it is rejected.
    """

    async def operation():
        body = parse_body(request)
        listing_id, claimant_id, quantity = require(body, "listing_id", "claimant_id", "quantity")
        try:
            quantity = int(quantity)
            kind = ClaimKind(body.get("kind", ClaimKind.CLAIM.value))
        except ValueError as e:
            raise BadRequestError(str(e))

        details = {
            k: v for k, v in body.items()
            if k not in ("listing_id", "claimant_id", "quantity", "kind", "total_price")
        }
        allowed = DELIVERY_FIELDS if kind == ClaimKind.DELIVERY else CLAIM_DETAIL_FIELDS
        unknown = sorted(set(details) - allowed)
        if unknown:
            raise BadRequestError(f"Unsupported claim field(s): {', '.join(unknown)}")
        service = get_claim_service()

        if isinstance(details.get("urgent"), str):
            details["urgent"] = details["urgent"].strip().lower() in ("true", "1", "yes")

        if kind == ClaimKind.PURCHASE:
            outcome = await service.submit_purchase_request(listing_id, claimant_id, quantity, **details)
        elif kind == ClaimKind.DELIVERY:
            delivery_address, district = require(details, "delivery_address", "district")
            details.pop("delivery_address")
            details.pop("district")
            outcome = await service.request_delivery(
                listing_id, claimant_id, quantity, delivery_address, district, **details
            )
        else:
            outcome = await service.submit_claim(listing_id, claimant_id, quantity, **details)

        if outcome.accepted:
            return 201, {"ok": True, "outcome": outcome.model_dump(mode="json")}
        return 409, {"ok": False, "error": outcome.reason, "outcome": outcome.model_dump(mode="json")}

    return run_handler(request, operation)
