"""Environment-driven settings."""

import os


# Supabase tables
TABLES = {
    "USERS": "users",
    "FOOD_LISTINGS": "food_listings",
    "FOOD_CATEGORIES": "food_categories",
    "FOOD_CLAIMS": "food_claims",
    "FOOD_REQUESTS": "food_requests",
    "DELIVERY_REQUESTS": "delivery_requests",
    "NOTIFICATIONS": "notifications",
}


class Settings:
    """Runtime settings read from the environment."""

    # "supabase" in deployments, "memory" for local runs
    STORE_BACKEND = os.environ.get("FOODSHARE_STORE_BACKEND", "supabase").lower()

    # Automatic re-read/retry after an optimistic-lock conflict
    CLAIM_CONFLICT_RETRIES = int(os.environ.get("CLAIM_CONFLICT_RETRIES", "1"))

    # Delivery pricing (LKR)
    DELIVERY_DEFAULT_FEE = int(os.environ.get("DELIVERY_DEFAULT_FEE", "300"))
    DELIVERY_URGENT_SURCHARGE = int(os.environ.get("DELIVERY_URGENT_SURCHARGE", "100"))

    @classmethod
    def use_memory_store(cls) -> bool:
        return cls.STORE_BACKEND == "memory"
