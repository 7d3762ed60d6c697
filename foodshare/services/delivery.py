"""Volunteer side of delivery requests: taking, starting and completing deliveries."""

from typing import Optional
from datetime import datetime, timezone
from foodshare.models.claim import ClaimKind, ClaimStatus, DeliveryRecord, DeliveryStatus
from foodshare.services.claim_ledger import ClaimLedger
from foodshare.services.claim_service import get_dispatcher, get_stores
from foodshare.services.notifications import NotificationDispatcher, LoggingNotificationDispatcher
from foodshare.services.store import ClaimStore
from foodshare.utils.errors import InvalidTransitionError, PermissionDeniedError
from foodshare.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)

# target -> statuses it can be reached from
DELIVERY_TRANSITIONS = {
    DeliveryStatus.ASSIGNED: frozenset({DeliveryStatus.PENDING}),
    DeliveryStatus.IN_PROGRESS: frozenset({DeliveryStatus.ASSIGNED}),
    DeliveryStatus.COMPLETED: frozenset({DeliveryStatus.ASSIGNED, DeliveryStatus.IN_PROGRESS}),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeliveryService:
    """Moves delivery requests through pending -> assigned -> in_progress -> completed."""

    def __init__(self, claims: ClaimStore, dispatcher: Optional[NotificationDispatcher] = None):
        self.claims = claims
        self.ledger = ClaimLedger(claims)
        self.dispatcher = dispatcher or LoggingNotificationDispatcher()

    async def _get(self, delivery_id: str) -> DeliveryRecord:
        return await self.ledger.get(delivery_id, ClaimKind.DELIVERY)

    async def _notify(self, hook: str, delivery: DeliveryRecord) -> None:
        try:
            await getattr(self.dispatcher, hook)(delivery)
        except Exception as e:
            logger.error("Notification dispatch failed", hook=hook, delivery_id=delivery.id, error=str(e), exc_info=True)

    async def list_open_deliveries(self, district: Optional[str] = None) -> list[DeliveryRecord]:
        """Unassigned pending deliveries, optionally limited to one district."""
        return await self.claims.list_open_deliveries(district)

    async def assign_volunteer(
        self,
        delivery_id: str,
        volunteer_id: str,
        now: Optional[datetime] = None,
    ) -> DeliveryRecord:
        """
        Give an unassigned delivery to a volunteer.

        The write is conditional on the delivery still being pending with no
        volunteer, so only one of two volunteers racing for it wins.
        """
        delivery = await self._get(delivery_id)
        if delivery.delivery_status != DeliveryStatus.PENDING or delivery.assigned_volunteer_id:
            raise InvalidTransitionError(
                delivery.delivery_status.value,
                DeliveryStatus.ASSIGNED.value,
                f"Delivery {delivery_id} is already taken",
            )

        updated = await self.claims.update_claim(
            delivery,
            {
                "delivery_status": DeliveryStatus.ASSIGNED,
                "assigned_volunteer_id": volunteer_id,
                "assigned_at": now or _utcnow(),
            },
            expected={"delivery_status": DeliveryStatus.PENDING, "assigned_volunteer_id": None},
        )
        if updated is None:
            raise InvalidTransitionError(
                DeliveryStatus.PENDING.value,
                DeliveryStatus.ASSIGNED.value,
                f"Delivery {delivery_id} is already taken",
            )

        logger.info(
            "Delivery assigned",
            delivery_id=delivery_id,
            volunteer_id=mask_user_id(volunteer_id),
            district=updated.district,
        )
        await self._notify("on_delivery_assigned", updated)
        return updated

    async def _advance(
        self,
        delivery_id: str,
        volunteer_id: str,
        target: DeliveryStatus,
        extra: dict,
    ) -> DeliveryRecord:
        delivery = await self._get(delivery_id)
        if delivery.assigned_volunteer_id != volunteer_id:
            raise PermissionDeniedError(f"Delivery {delivery_id} is not assigned to this volunteer")
        if delivery.delivery_status not in DELIVERY_TRANSITIONS[target]:
            raise InvalidTransitionError(delivery.delivery_status.value, target.value)

        updated = await self.claims.update_claim(
            delivery,
            {"delivery_status": target, **extra},
            expected={"delivery_status": delivery.delivery_status},
        )
        if updated is None:
            current = await self._get(delivery_id)
            raise InvalidTransitionError(current.delivery_status.value, target.value)

        logger.info(
            "Delivery status changed",
            delivery_id=delivery_id,
            delivery_status=target.value,
        )
        return updated

    async def start(self, delivery_id: str, volunteer_id: str) -> DeliveryRecord:
        return await self._advance(delivery_id, volunteer_id, DeliveryStatus.IN_PROGRESS, {})

    async def complete(
        self,
        delivery_id: str,
        volunteer_id: str,
        now: Optional[datetime] = None,
    ) -> DeliveryRecord:
        """Mark the delivery done. The underlying claim is completed with it."""
        updated = await self._advance(
            delivery_id,
            volunteer_id,
            DeliveryStatus.COMPLETED,
            {"delivered_at": now or _utcnow(), "status": ClaimStatus.COMPLETED},
        )
        await self._notify("on_delivery_completed", updated)
        return updated


def get_delivery_service() -> DeliveryService:
    """DeliveryService over the configured backend."""
    _, claims = get_stores()
    return DeliveryService(claims, get_dispatcher())
