"""Notification dispatch for reconciliation outcomes, reviews and deliveries.

Dispatchers run after the reconciliation has committed. A failing dispatcher
is logged by the caller and never undoes the claim.
"""

from abc import ABC, abstractmethod
from typing import Optional
from foodshare.models.claim import ClaimKind, ClaimRecord, ClaimStatus, DeliveryRecord
from foodshare.models.listing import Listing
from foodshare.models.notification import Notification, NotificationType
from foodshare.models.outcome import ReconciliationOutcome
from foodshare.services.supabase_client import get_volunteers_in_district, insert_notifications
from foodshare.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)

# Donor notification per claim kind: (type, title)
NEW_CLAIM_NOTIFICATIONS = {
    ClaimKind.CLAIM.value: (NotificationType.FOOD_CLAIM, "New Food Claim Request"),
    ClaimKind.PURCHASE.value: (NotificationType.FOOD_REQUEST, "New Food Purchase Request"),
    ClaimKind.DELIVERY.value: (NotificationType.DELIVERY_REQUEST, "New Delivery Request"),
}


def build_new_claim_notification(outcome: ReconciliationOutcome) -> Optional[Notification]:
    """Tell the donor about an accepted claim. Rejected attempts notify nobody."""
    if not outcome.accepted or not outcome.donor_id:
        return None

    ntype, title = NEW_CLAIM_NOTIFICATIONS.get(
        outcome.kind or ClaimKind.CLAIM.value, NEW_CLAIM_NOTIFICATIONS[ClaimKind.CLAIM.value]
    )
    listing_title = outcome.listing_title or "your listing"
    if outcome.kind == ClaimKind.PURCHASE.value:
        message = f"Someone wants to buy your food: {listing_title} ({outcome.quantity_requested} servings)"
    elif outcome.kind == ClaimKind.DELIVERY.value:
        message = f"Someone requested delivery for: {listing_title}"
    else:
        message = f"Someone wants to claim your food: {listing_title}"

    return Notification(
        user_id=outcome.donor_id,
        type=ntype,
        title=title,
        message=message,
        related_id=outcome.claim_id,
    )


def build_review_notification(claim: ClaimRecord, listing: Listing) -> Optional[Notification]:
    """Tell the claimant the donor accepted or declined their request."""
    if claim.status == ClaimStatus.ACCEPTED:
        return Notification(
            user_id=claim.claimant_id,
            type=NotificationType.REQUEST_ACCEPTED,
            title="Request Accepted",
            message=f"Your request for {listing.title} was accepted.",
            related_id=claim.id,
        )
    if claim.status == ClaimStatus.DECLINED:
        return Notification(
            user_id=claim.claimant_id,
            type=NotificationType.REQUEST_DECLINED,
            title="Request Declined",
            message=f"Your request for {listing.title} was declined.",
            related_id=claim.id,
        )
    return None


def build_delivery_needed_notifications(delivery: DeliveryRecord, volunteer_ids: list[str]) -> list[Notification]:
    """One notification per volunteer in the delivery's district."""
    return [
        Notification(
            user_id=volunteer_id,
            type=NotificationType.DELIVERY_NEEDED,
            title="New Delivery Opportunity",
            message=f"Delivery needed in {delivery.district} - Fee: LKR {delivery.delivery_fee_amount}",
            related_id=delivery.id,
        )
        for volunteer_id in volunteer_ids
    ]


def build_delivery_assigned_notification(delivery: DeliveryRecord) -> Notification:
    return Notification(
        user_id=delivery.claimant_id,
        type=NotificationType.DELIVERY_ASSIGNED,
        title="Volunteer Assigned",
        message=f"A volunteer will deliver your food to {delivery.city or delivery.district}.",
        related_id=delivery.id,
    )


def build_delivery_completed_notification(delivery: DeliveryRecord) -> Notification:
    return Notification(
        user_id=delivery.claimant_id,
        type=NotificationType.DELIVERY_COMPLETED,
        title="Delivery Completed",
        message=f"Your food delivery to {delivery.city or delivery.district} has been completed successfully!",
        related_id=delivery.id,
    )


class NotificationDispatcher(ABC):
    """Outbound hooks called by the claim and delivery services."""

    @abstractmethod
    async def on_reconciled(self, outcome: ReconciliationOutcome) -> None:
        ...

    @abstractmethod
    async def on_claim_reviewed(self, claim: ClaimRecord, listing: Listing) -> None:
        ...

    @abstractmethod
    async def on_delivery_requested(self, delivery: DeliveryRecord) -> None:
        ...

    @abstractmethod
    async def on_delivery_assigned(self, delivery: DeliveryRecord) -> None:
        ...

    @abstractmethod
    async def on_delivery_completed(self, delivery: DeliveryRecord) -> None:
        ...


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Keeps notifications in memory and logs them. Used with the memory backend."""

    def __init__(self):
        self.sent: list[Notification] = []

    def _emit(self, notification: Optional[Notification]) -> None:
        if notification is None:
            return
        self.sent.append(notification)
        logger.info(
            "Notification",
            user_id=mask_user_id(notification.user_id),
            notification_type=notification.type.value,
            related_id=notification.related_id,
        )

    async def on_reconciled(self, outcome: ReconciliationOutcome) -> None:
        self._emit(build_new_claim_notification(outcome))

    async def on_claim_reviewed(self, claim: ClaimRecord, listing: Listing) -> None:
        self._emit(build_review_notification(claim, listing))

    async def on_delivery_requested(self, delivery: DeliveryRecord) -> None:
        logger.info("Delivery needed", delivery_id=delivery.id, district=delivery.district)

    async def on_delivery_assigned(self, delivery: DeliveryRecord) -> None:
        self._emit(build_delivery_assigned_notification(delivery))

    async def on_delivery_completed(self, delivery: DeliveryRecord) -> None:
        self._emit(build_delivery_completed_notification(delivery))


def notification_to_row(notification: Notification) -> dict:
    """notifications table row (`read` is stored as `is_read`)."""
    row = notification.model_dump(mode="json", exclude={"read"})
    row["is_read"] = notification.read
    return row


class SupabaseNotificationDispatcher(NotificationDispatcher):
    """Writes notifications to the Supabase notifications table."""

    async def _insert(self, notifications: list[Notification]) -> None:
        rows = [notification_to_row(n) for n in notifications if n is not None]
        if rows:
            await insert_notifications(rows)
            logger.debug("Notifications inserted", count=len(rows))

    async def on_reconciled(self, outcome: ReconciliationOutcome) -> None:
        await self._insert([build_new_claim_notification(outcome)])

    async def on_claim_reviewed(self, claim: ClaimRecord, listing: Listing) -> None:
        await self._insert([build_review_notification(claim, listing)])

    async def on_delivery_requested(self, delivery: DeliveryRecord) -> None:
        volunteers = await get_volunteers_in_district(delivery.district)
        volunteer_ids = [str(v["id"]) for v in volunteers if v.get("id")]
        await self._insert(build_delivery_needed_notifications(delivery, volunteer_ids))

    async def on_delivery_assigned(self, delivery: DeliveryRecord) -> None:
        await self._insert([build_delivery_assigned_notification(delivery)])

    async def on_delivery_completed(self, delivery: DeliveryRecord) -> None:
        await self._insert([build_delivery_completed_notification(delivery)])
