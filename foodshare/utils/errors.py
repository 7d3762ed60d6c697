"""Error handling utilities."""

from typing import Optional


class FoodShareError(Exception):
    """Base exception for FoodShare backend."""
    pass


class SupabaseError(FoodShareError):
    """Supabase operation error."""
    pass


class ListingNotFoundError(FoodShareError):
    """Listing does not exist."""

    def __init__(self, listing_id: str):
        self.listing_id = listing_id
        super().__init__(f"Listing not found: {listing_id}")


class ClaimNotFoundError(FoodShareError):
    """Claim, purchase request or delivery request does not exist."""

    def __init__(self, claim_id: str):
        self.claim_id = claim_id
        super().__init__(f"Claim not found: {claim_id}")


class PermissionDeniedError(FoodShareError):
    """Actor is not allowed to modify the record."""
    pass


class InvalidClaimError(FoodShareError):
    """Claim request is malformed (e.g. quantity below one)."""
    pass


class ListingUpdateError(FoodShareError):
    """Listing submission or donor edit rejected."""
    pass


class InsufficientQuantityError(FoodShareError):
    """Requested amount exceeds what is left on the listing."""

    def __init__(self, available: int, requested: Optional[int] = None):
        self.available = available
        self.requested = requested
        super().__init__(f"Only {available} portions available.")


class InvalidTransitionError(FoodShareError):
    """Listing or delivery status change is not defined."""

    def __init__(self, current: str, target: str, message: Optional[str] = None):
        self.current = current
        self.target = target
        super().__init__(message or f"Cannot move from {current} to {target}")


class StaleListingError(InvalidTransitionError):
    """Action attempted against a completed or expired listing."""

    def __init__(self, listing_id: str, status: str):
        self.listing_id = listing_id
        super().__init__(
            status,
            status,
            f"Listing {listing_id} is {status} and can no longer be changed",
        )


class ConcurrentModificationError(FoodShareError):
    """Listing version changed between read and write."""

    def __init__(self, listing_id: str, expected_version: int):
        self.listing_id = listing_id
        self.expected_version = expected_version
        super().__init__(
            f"Listing {listing_id} was modified concurrently (expected version {expected_version})"
        )


class PartialCommitError(FoodShareError):
    """Listing write and ledger append disagree after a fault."""

    def __init__(self, listing_id: str, compensated: bool, cause: Optional[Exception] = None):
        self.listing_id = listing_id
        self.compensated = compensated
        self.cause = cause
        state = "rolled back" if compensated else "NOT rolled back"
        super().__init__(f"Claim on listing {listing_id} failed after listing write ({state})")
