"""Test helper functions."""

import json
from typing import Dict, Any


def create_vercel_request(
    method: str = "POST",
    path: str = "/api/claims/submit",
    body: Dict[str, Any] = None,
    headers: Dict[str, str] = None,
    query: Dict[str, str] = None,
) -> Dict[str, Any]:
    """Create a Vercel request dict for testing."""
    return {
        "method": method,
        "path": path,
        "headers": headers or {"content-type": "application/json"},
        "body": json.dumps(body) if body is not None else "",
        "query": query or {},
    }
