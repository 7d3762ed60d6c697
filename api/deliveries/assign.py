"""Volunteer delivery endpoint."""

from foodshare.services.delivery import get_delivery_service
from foodshare.utils.http import BadRequestError, parse_body, query_params, require, run_handler
from foodshare.utils.logging import setup_logging

setup_logging()


def handler(request):
    """
    GET: open deliveries, optional ?district=.
    POST body: delivery_id, volunteer_id, action (assign | start | complete).
    """

    async def operation():
        service = get_delivery_service()

        if (request.get("method") or "POST").upper() == "GET":
            district = query_params(request).get("district")
            deliveries = await service.list_open_deliveries(district)
            return 200, {"ok": True, "deliveries": [d.model_dump(mode="json") for d in deliveries]}

        body = parse_body(request)
        delivery_id, volunteer_id = require(body, "delivery_id", "volunteer_id")
        action = body.get("action", "assign")

        if action == "assign":
            delivery = await service.assign_volunteer(delivery_id, volunteer_id)
        elif action == "start":
            delivery = await service.start(delivery_id, volunteer_id)
        elif action == "complete":
            delivery = await service.complete(delivery_id, volunteer_id)
        else:
            raise BadRequestError(f"Unknown action: {action}")

        return 200, {"ok": True, "delivery": delivery.model_dump(mode="json")}

    return run_handler(request, operation)
