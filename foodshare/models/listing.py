"""Food listing models."""

from enum import Enum
from typing import Optional, Union, Any
from datetime import datetime, timezone
from pydantic import BaseModel, Field, field_validator


class ListingStatus(str, Enum):
    """Listing availability status."""
    AVAILABLE = "available"
    CLAIMED = "claimed"
    COMPLETED = "completed"
    EXPIRED = "expired"


TERMINAL_STATUSES = frozenset({
    ListingStatus.CLAIMED,
    ListingStatus.COMPLETED,
    ListingStatus.EXPIRED,
})


class ListingType(str, Enum):
    """Free giveaway or half-price sale."""
    FREE = "free"
    HALF_PRICE = "half-price"


class FoodCategory(BaseModel):
    """Food category (inline form)."""
    id: str = Field(..., description="Category ID")
    name: str = Field(..., description="Display name")
    icon: Optional[str] = None
    color: Optional[str] = None


class CategoryId(BaseModel):
    """Category referenced by ID only."""
    kind: str = Field(default="id")
    id: str = Field(..., description="Category ID")


class CategoryInline(BaseModel):
    """Category embedded in the listing row."""
    kind: str = Field(default="inline")
    category: FoodCategory

    @property
    def id(self) -> str:
        return self.category.id


CategoryRef = Union[CategoryId, CategoryInline]


def normalize_category(raw: Any) -> Optional[CategoryRef]:
    """Resolve a raw category value (id string, dict, or ref) into a CategoryRef."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, (CategoryId, CategoryInline)):
        return raw
    if isinstance(raw, FoodCategory):
        return CategoryInline(category=raw)
    if isinstance(raw, dict):
        if raw.get("kind") == "id":
            return CategoryId(id=str(raw["id"]))
        if raw.get("kind") == "inline":
            return CategoryInline(category=FoodCategory(**raw["category"]))
        if raw.get("name"):
            return CategoryInline(category=FoodCategory(**raw))
        return CategoryId(id=str(raw["id"]))
    return CategoryId(id=str(raw))


class Location(BaseModel):
    """Pickup location."""
    address: str = Field(default="", description="Street address")
    city: str = Field(default="", description="City")
    district: str = Field(default="", description="District")
    lat: Optional[float] = None
    lng: Optional[float] = None


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Listing(BaseModel):
    """Food donation listing with a mutable remaining quantity."""
    id: str = Field(..., description="Listing ID (text)")
    donor_id: str = Field(..., description="Owning donor user ID")
    title: str = Field(..., description="Listing title")
    description: Optional[str] = Field(None, description="Listing description")
    category: Optional[CategoryRef] = Field(None, description="Category reference")
    images: list[str] = Field(default_factory=list, description="Image URLs")
    pickup_location: Optional[Location] = None
    listing_type: ListingType = Field(default=ListingType.FREE, description="free or half-price")
    price: Optional[float] = Field(None, ge=0, description="Unit price for half-price listings")
    quantity_text: str = Field(..., description="Free-text quantity as entered by the donor")
    quantity_total: int = Field(..., ge=0, description="Parsed baseline quantity")
    quantity_remaining: int = Field(..., ge=0, description="Units still claimable")
    status: ListingStatus = Field(default=ListingStatus.AVAILABLE)
    expiry_timestamp: datetime = Field(..., description="No longer claimable after this instant")
    version: int = Field(default=1, ge=1, description="Optimistic concurrency token")
    claimed_by: Optional[str] = None
    claimed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, value: Any) -> Optional[CategoryRef]:
        return normalize_category(value)

    @field_validator("expiry_timestamp", "claimed_at", "created_at", "updated_at")
    @classmethod
    def _ensure_aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    def model_post_init(self, __context: Any) -> None:
        """Validate quantity bounds and the zero-remaining status rule."""
        if self.quantity_remaining > self.quantity_total:
            raise ValueError("quantity_remaining cannot exceed quantity_total")
        if self.quantity_remaining == 0 and self.status not in (
            ListingStatus.CLAIMED,
            ListingStatus.COMPLETED,
        ):
            raise ValueError("a listing with nothing remaining must be claimed or completed")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def category_id(self) -> Optional[str]:
        return self.category.id if self.category else None

    def is_past_expiry(self, now: datetime) -> bool:
        return _as_utc(now) > self.expiry_timestamp
