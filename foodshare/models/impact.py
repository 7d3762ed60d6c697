"""Donor impact models."""

from pydantic import BaseModel, Field


class Badge(BaseModel):
    """Achievement badge shown on the donor dashboard."""
    name: str
    icon: str
    description: str = ""


class DonorImpact(BaseModel):
    """Aggregate donation stats for one donor."""
    donor_id: str
    total_donations: int = Field(default=0, ge=0)
    active_donations: int = Field(default=0, ge=0)
    completed_donations: int = Field(default=0, ge=0)
    total_meals_shared: int = Field(default=0, ge=0)
    impact_score: int = Field(default=0, ge=0)
    badges: list[Badge] = Field(default_factory=list)
