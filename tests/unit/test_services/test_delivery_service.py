"""Tests for volunteer delivery workflow."""

import asyncio
import pytest
from foodshare.models.claim import ClaimKind, ClaimStatus, DeliveryStatus
from foodshare.models.notification import NotificationType
from foodshare.utils.errors import ClaimNotFoundError, InvalidTransitionError, PermissionDeniedError
from tests.utils.factories import make_claim


@pytest.fixture
def add_delivery(claim_store):
    async def _add(district="Colombo", **overrides):
        delivery = make_claim("listing-1", kind=ClaimKind.DELIVERY, district=district, **overrides)
        return await claim_store.insert_claim(delivery)

    return _add


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_open_deliveries_by_district(delivery_service, add_delivery):
    colombo = await add_delivery("Colombo")
    galle = await add_delivery("Galle")
    await add_delivery("Colombo", delivery_status="assigned", assigned_volunteer_id="vol-9")

    assert [d.id for d in await delivery_service.list_open_deliveries()] == [colombo.id, galle.id]
    assert [d.id for d in await delivery_service.list_open_deliveries("Galle")] == [galle.id]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_assign_volunteer(delivery_service, dispatcher, add_delivery, now):
    delivery = await add_delivery()

    assigned = await delivery_service.assign_volunteer(delivery.id, "vol-1", now)

    assert assigned.delivery_status == DeliveryStatus.ASSIGNED
    assert assigned.assigned_volunteer_id == "vol-1"
    assert assigned.assigned_at == now
    assert dispatcher.sent[-1].type == NotificationType.DELIVERY_ASSIGNED
    assert dispatcher.sent[-1].user_id == delivery.claimant_id
    assert await delivery_service.list_open_deliveries() == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_assign_taken_delivery(delivery_service, add_delivery):
    delivery = await add_delivery()
    await delivery_service.assign_volunteer(delivery.id, "vol-1")

    with pytest.raises(InvalidTransitionError):
        await delivery_service.assign_volunteer(delivery.id, "vol-2")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_two_volunteers_race_for_one_delivery(delivery_service, add_delivery):
    delivery = await add_delivery()

    results = await asyncio.gather(
        delivery_service.assign_volunteer(delivery.id, "vol-1"),
        delivery_service.assign_volunteer(delivery.id, "vol-2"),
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    assert len(winners) == 1
    assert isinstance([r for r in results if isinstance(r, Exception)][0], InvalidTransitionError)

    stored = await delivery_service.ledger.get(delivery.id, ClaimKind.DELIVERY)
    assert stored.assigned_volunteer_id == winners[0].assigned_volunteer_id


@pytest.mark.unit
@pytest.mark.asyncio
async def test_start_and_complete(delivery_service, dispatcher, add_delivery, now):
    delivery = await add_delivery()
    await delivery_service.assign_volunteer(delivery.id, "vol-1")

    started = await delivery_service.start(delivery.id, "vol-1")
    assert started.delivery_status == DeliveryStatus.IN_PROGRESS

    completed = await delivery_service.complete(delivery.id, "vol-1", now)
    assert completed.delivery_status == DeliveryStatus.COMPLETED
    assert completed.status == ClaimStatus.COMPLETED
    assert completed.delivered_at == now
    assert dispatcher.sent[-1].type == NotificationType.DELIVERY_COMPLETED


@pytest.mark.unit
@pytest.mark.asyncio
async def test_complete_straight_from_assigned(delivery_service, add_delivery):
    delivery = await add_delivery()
    await delivery_service.assign_volunteer(delivery.id, "vol-1")

    completed = await delivery_service.complete(delivery.id, "vol-1")
    assert completed.delivery_status == DeliveryStatus.COMPLETED


@pytest.mark.unit
@pytest.mark.asyncio
async def test_only_assigned_volunteer_can_progress(delivery_service, add_delivery):
    delivery = await add_delivery()
    await delivery_service.assign_volunteer(delivery.id, "vol-1")

    with pytest.raises(PermissionDeniedError):
        await delivery_service.start(delivery.id, "vol-2")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cannot_start_completed_delivery(delivery_service, add_delivery):
    delivery = await add_delivery()
    await delivery_service.assign_volunteer(delivery.id, "vol-1")
    await delivery_service.complete(delivery.id, "vol-1")

    with pytest.raises(InvalidTransitionError):
        await delivery_service.start(delivery.id, "vol-1")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unknown_delivery(delivery_service):
    with pytest.raises(ClaimNotFoundError):
        await delivery_service.assign_volunteer("missing", "vol-1")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_plain_claim_is_not_a_delivery(delivery_service, claim_store):
    claim = await claim_store.insert_claim(make_claim("listing-1"))
    with pytest.raises(ClaimNotFoundError):
        await delivery_service.start(claim.id, "vol-1")
