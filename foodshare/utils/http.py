"""Helpers shared by the serverless handlers under api/."""

import json
import asyncio
from typing import Any, Callable, Coroutine, Optional
from pydantic import ValidationError
from foodshare.utils.errors import (
    ClaimNotFoundError,
    ConcurrentModificationError,
    InsufficientQuantityError,
    InvalidClaimError,
    InvalidTransitionError,
    ListingNotFoundError,
    ListingUpdateError,
    PartialCommitError,
    PermissionDeniedError,
)
from foodshare.utils.logging import correlation_context, get_structured_logger
from foodshare.utils.logging_config import LoggingConfig

logger = get_structured_logger(__name__)

RETRY_MESSAGE = "Something went wrong, please try again."

# Checked in order; the first matching class wins
ERROR_STATUS = [
    (ValidationError, 400),
    (InvalidClaimError, 400),
    (ListingUpdateError, 400),
    (PermissionDeniedError, 403),
    (ListingNotFoundError, 404),
    (ClaimNotFoundError, 404),
    (InsufficientQuantityError, 409),
    (InvalidTransitionError, 409),
    (ConcurrentModificationError, 409),
]


class BadRequestError(Exception):
    """Malformed request body or missing parameter."""
    pass


def json_response(status_code: int, payload: Any) -> dict:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(payload, default=str),
    }


def parse_body(request: dict) -> dict:
    """JSON body of the request as a dict."""
    body = request.get("body") or {}
    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8")
    if isinstance(body, str):
        try:
            body = json.loads(body) if body.strip() else {}
        except json.JSONDecodeError as e:
            raise BadRequestError(f"Invalid JSON body: {e}")
    if not isinstance(body, dict):
        raise BadRequestError("Request body must be a JSON object")
    return body


def require(data: dict, *names: str) -> list:
    """Values of required parameters, in order."""
    missing = [name for name in names if data.get(name) in (None, "")]
    if missing:
        raise BadRequestError(f"Missing required field(s): {', '.join(missing)}")
    return [data[name] for name in names]


def query_params(request: dict) -> dict:
    return request.get("query", {}) or {}


def error_response(error: Exception) -> dict:
    """Map an exception to an HTTP response."""
    if isinstance(error, BadRequestError):
        return json_response(400, {"error": str(error)})
    if isinstance(error, PartialCommitError):
        logger.error(
            "Partial commit surfaced to client",
            listing_id=error.listing_id,
            compensated=error.compensated,
        )
        return json_response(500, {"error": RETRY_MESSAGE})

    for error_class, status_code in ERROR_STATUS:
        if isinstance(error, error_class):
            return json_response(status_code, {"error": str(error)})

    logger.error("Unhandled error in handler", error=str(error), error_type=type(error).__name__, exc_info=True)
    return json_response(500, {"error": RETRY_MESSAGE})


def run_handler(request: dict, operation: Callable[[], Coroutine[Any, Any, Any]]) -> dict:
    """
    Run an async operation for a serverless request.

    The operation returns (status_code, payload). Errors are mapped by
    error_response.
    """
    headers = request.get("headers", {}) or {}
    correlation_id: Optional[str] = headers.get(LoggingConfig.LOG_CORRELATION_ID_HEADER)

    with correlation_context(correlation_id):
        try:
            status_code, payload = asyncio.run(operation())
            return json_response(status_code, payload)
        except Exception as e:
            return error_response(e)
