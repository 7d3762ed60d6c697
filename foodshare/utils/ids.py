"""Text-based record IDs (ULID)."""

from ulid import ULID


def generate_id() -> str:
    """Generate a sortable text ID (26 chars)."""
    return str(ULID())
