"""Notification models."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class NotificationType(str, Enum):
    """Notification types written to the notifications table."""
    FOOD_CLAIM = "food_claim"
    FOOD_REQUEST = "food_request"
    DELIVERY_REQUEST = "delivery_request"
    DELIVERY_NEEDED = "delivery_needed"
    DELIVERY_ASSIGNED = "delivery_assigned"
    DELIVERY_COMPLETED = "delivery_completed"
    REQUEST_ACCEPTED = "request_accepted"
    REQUEST_DECLINED = "request_declined"


class Notification(BaseModel):
    """In-app notification row."""
    user_id: str = Field(..., description="Recipient user ID")
    type: NotificationType
    title: str
    message: str
    read: bool = False
    related_id: Optional[str] = Field(None, description="Claim/request/delivery ID")
