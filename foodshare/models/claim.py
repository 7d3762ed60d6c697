"""Claim ledger models - claims, purchase requests and delivery requests."""

from enum import Enum
from typing import Optional, Any
from datetime import datetime, timezone
from pydantic import BaseModel, Field, field_validator


class ClaimKind(str, Enum):
    """How the claimant wants to receive the food."""
    CLAIM = "claim"
    PURCHASE = "purchase"
    DELIVERY = "delivery"


class ClaimStatus(str, Enum):
    """Donor review status of a claim."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    COMPLETED = "completed"


class ReviewDecision(str, Enum):
    """Donor action on a pending claim."""
    ACCEPT = "accept"
    DECLINE = "decline"
    COMPLETE = "complete"


class DeliveryStatus(str, Enum):
    """Volunteer-side delivery progress."""
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ContactMethod(str, Enum):
    PHONE = "phone"
    EMAIL = "email"


class ClaimRecord(BaseModel):
    """A recipient's request to consume part of a listing."""
    id: str = Field(..., description="Claim ID (text)")
    listing_id: str = Field(..., description="Listing ID (text FK)")
    claimant_id: str = Field(..., description="Claimant user ID")
    quantity_requested: int = Field(..., ge=1, description="Units consumed by this claim")
    kind: ClaimKind = Field(default=ClaimKind.CLAIM)
    status: ClaimStatus = Field(default=ClaimStatus.PENDING)
    total_price: Optional[float] = Field(None, ge=0, description="Purchase total (half-price listings)")
    pickup_at: Optional[datetime] = None
    contact_method: Optional[ContactMethod] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    reviewed_at: Optional[datetime] = None

    @field_validator("created_at", "reviewed_at", "pickup_at")
    @classmethod
    def _ensure_aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class DeliveryRecord(ClaimRecord):
    """Claim that also books a volunteer to deliver the food."""
    kind: ClaimKind = Field(default=ClaimKind.DELIVERY)
    delivery_address: str = Field(..., description="Drop-off address")
    city: str = Field(default="", description="Drop-off city")
    district: str = Field(..., description="Drop-off district (drives the fee)")
    urgent: bool = Field(default=False)
    delivery_fee_amount: int = Field(..., ge=0, description="Fee in LKR")
    assigned_volunteer_id: Optional[str] = None
    delivery_status: DeliveryStatus = Field(default=DeliveryStatus.PENDING)
    assigned_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None

    def model_post_init(self, __context: Any) -> None:
        """Assigned deliveries must name their volunteer."""
        if self.delivery_status != DeliveryStatus.PENDING and not self.assigned_volunteer_id:
            raise ValueError("assigned_volunteer_id is required once a delivery leaves pending")
