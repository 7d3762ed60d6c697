"""Reconciliation result models."""

from typing import Optional
from pydantic import BaseModel, Field
from foodshare.models.listing import ListingStatus


class ReconciliationOutcome(BaseModel):
    """Result of one claim attempt, handed to the notification dispatcher."""
    listing_id: str
    claimant_id: str
    donor_id: Optional[str] = None
    listing_title: Optional[str] = None
    accepted: bool
    remaining: int = Field(..., ge=0)
    new_status: ListingStatus
    quantity_requested: int = Field(default=0, ge=0)
    claim_id: Optional[str] = Field(None, description="Ledger record for accepted claims")
    kind: Optional[str] = None
    reason: Optional[str] = Field(None, description="User-facing rejection message")


class ReconciliationReport(BaseModel):
    """Stored listing state compared against its ledger."""
    listing_id: str
    quantity_total: int
    stored_remaining: int
    ledger_consumed: int
    expected_remaining: int
    stored_status: ListingStatus
    expected_status: ListingStatus
    claim_count: int

    @property
    def consistent(self) -> bool:
        return (
            self.stored_remaining == self.expected_remaining
            and self.stored_status == self.expected_status
        )
