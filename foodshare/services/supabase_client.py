"""Supabase client wrapper with async context manager support."""

import os
from typing import Optional
from supabase import create_client, Client
from supabase.client import ClientOptions
from foodshare.utils.config import TABLES
from foodshare.utils.errors import SupabaseError
import logging

logger = logging.getLogger(__name__)

# Global client instance (singleton pattern)
_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """Get or create Supabase client singleton."""
    global _client

    if _client is None:
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")

        if not url or not key:
            raise SupabaseError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        # Server-side service role: no user session to persist or refresh
        options = ClientOptions(
            auto_refresh_token=False,
            persist_session=False,
        )

        _client = create_client(url, key, options)
        logger.info("Supabase client initialized", extra={"url": url})

    return _client


class SupabaseClient:
    """Async context manager for Supabase client."""

    def __init__(self):
        self.client: Optional[Client] = None

    async def __aenter__(self) -> Client:
        self.client = get_supabase_client()
        return self.client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.error(
                "Supabase operation error",
                extra={"error": str(exc_val), "type": exc_type.__name__}
            )
        return False


# Notifications table operations
async def insert_notifications(rows: list[dict]) -> list[dict]:
    """Insert one or more notification rows."""
    if not rows:
        return []
    async with SupabaseClient() as client:
        try:
            result = client.table(TABLES["NOTIFICATIONS"]).insert(rows).execute()
            return result.data if result.data else []
        except Exception as e:
            raise SupabaseError(f"Failed to insert notifications: {e}")


# Users table operations
async def get_volunteers_in_district(district: str) -> list[dict]:
    """Get volunteers registered in a district."""
    async with SupabaseClient() as client:
        try:
            result = (
                client.table(TABLES["USERS"])
                .select("id, name, district")
                .eq("role", "volunteer")
                .eq("district", district)
                .execute()
            )
            return result.data if result.data else []
        except Exception as e:
            raise SupabaseError(f"Failed to get volunteers for district {district}: {e}")
