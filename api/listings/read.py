"""Listing read endpoint (applies lazy expiry)."""

from foodshare.services.claim_service import get_claim_service
from foodshare.utils.http import query_params, require, run_handler
from foodshare.utils.logging import setup_logging

setup_logging()


def handler(request):
    """
    Query: listing_id, optional include_claims=true and audit=true.
    """

    async def operation():
        params = query_params(request)
        (listing_id,) = require(params, "listing_id")
        service = get_claim_service()

        listing = await service.read_listing(listing_id)
        payload = {"ok": True, "listing": listing.model_dump(mode="json")}

        if str(params.get("include_claims", "false")).lower() == "true":
            claims = await service.list_claims(listing_id)
            payload["claims"] = [claim.model_dump(mode="json") for claim in claims]
        if str(params.get("audit", "false")).lower() == "true":
            report = await service.audit_listing(listing_id)
            payload["audit"] = {**report.model_dump(mode="json"), "consistent": report.consistent}

        return 200, payload

    return run_handler(request, operation)
