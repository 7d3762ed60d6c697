"""Donor listing endpoint: create, edit and complete listings."""

from foodshare.services.claim_service import get_claim_service
from foodshare.utils.http import BadRequestError, parse_body, require, run_handler
from foodshare.utils.logging import setup_logging

setup_logging()


def handler(request):
    """
    Body: donor_id plus one of
      - action=create: title, quantity, expiry_timestamp and descriptive fields
      - action=edit (default): listing_id, fields
      - action=complete: listing_id
    """

    async def operation():
        body = parse_body(request)
        (donor_id,) = require(body, "donor_id")
        action = body.get("action", "edit")
        service = get_claim_service()

        if action == "create":
            title, quantity_text, expiry = require(body, "title", "quantity", "expiry_timestamp")
            fields = {
                k: v for k, v in body.items()
                if k not in ("action", "donor_id", "title", "quantity", "expiry_timestamp")
            }
            listing = await service.create_listing(donor_id, title, str(quantity_text), expiry, **fields)
            return 201, {"ok": True, "listing": listing.model_dump(mode="json")}

        (listing_id,) = require(body, "listing_id")
        if action == "complete":
            listing = await service.complete_listing(listing_id, donor_id)
        elif action == "edit":
            fields = body.get("fields") or {}
            if not isinstance(fields, dict) or not fields:
                raise BadRequestError("fields must be a non-empty object")
            listing = await service.edit_listing(listing_id, donor_id, fields)
        else:
            raise BadRequestError(f"Unknown action: {action}")

        return 200, {"ok": True, "listing": listing.model_dump(mode="json")}

    return run_handler(request, operation)
