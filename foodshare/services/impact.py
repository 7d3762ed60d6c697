"""Donor impact stats and badges."""

from typing import Iterable
from foodshare.models.impact import Badge, DonorImpact
from foodshare.models.listing import Listing, ListingStatus
from foodshare.services.quantity_parser import parse_quantity

MEAL_POINTS = 10
COMPLETION_POINTS = 5

# (badge, stat it is measured on, threshold)
BADGES = [
    (Badge(name="First Donation", icon="🎉", description="Shared your first listing"), "total", 1),
    (Badge(name="Generous Giver", icon="💝", description="Shared 5 listings"), "total", 5),
    (Badge(name="Food Hero", icon="🦸", description="Shared 10 listings"), "total", 10),
    (Badge(name="Reliable Donor", icon="⭐", description="Completed 5 donations"), "completed", 5),
]


def donor_impact(donor_id: str, listings: Iterable[Listing]) -> DonorImpact:
    """Aggregate a donor's listings into dashboard stats."""
    own = [listing for listing in listings if listing.donor_id == donor_id]

    total = len(own)
    active = sum(1 for listing in own if listing.status == ListingStatus.AVAILABLE)
    completed = sum(1 for listing in own if listing.status == ListingStatus.COMPLETED)
    meals = sum(parse_quantity(listing.quantity_text) for listing in own)

    stats = {"total": total, "completed": completed}
    badges = [badge for badge, stat, threshold in BADGES if stats[stat] >= threshold]

    return DonorImpact(
        donor_id=donor_id,
        total_donations=total,
        active_donations=active,
        completed_donations=completed,
        total_meals_shared=meals,
        impact_score=meals * MEAL_POINTS + completed * COMPLETION_POINTS,
        badges=badges,
    )
