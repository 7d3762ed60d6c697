"""Donor review endpoint for claims and requests."""

from foodshare.models.claim import ClaimKind, ReviewDecision
from foodshare.services.claim_service import get_claim_service
from foodshare.utils.http import BadRequestError, parse_body, require, run_handler
from foodshare.utils.logging import setup_logging

setup_logging()


def handler(request):
    """Body: claim_id, donor_id, decision (accept | decline | complete), optional kind."""

    async def operation():
        body = parse_body(request)
        claim_id, donor_id, decision = require(body, "claim_id", "donor_id", "decision")
        try:
            decision = ReviewDecision(decision)
            kind = ClaimKind(body["kind"]) if body.get("kind") else None
        except ValueError as e:
            raise BadRequestError(str(e))

        claim = await get_claim_service().review_claim(claim_id, donor_id, decision, kind=kind)
        return 200, {"ok": True, "claim": claim.model_dump(mode="json")}

    return run_handler(request, operation)
