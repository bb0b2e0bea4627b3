"""Application tests for delivery scheduling through the service."""

from datetime import UTC, datetime

import pytest
from group_orders.delivery.schedule import DeliverySchedule
from group_orders.errors import ItemAlreadyScheduledError, ItemNotDeliverableError
from group_orders.service import GroupOrderAggregateService
from protean import current_domain
from protean.exceptions import ObjectNotFoundError

DELIVERY_DATE = datetime(2026, 12, 19, 14, 0, tzinfo=UTC)


@pytest.fixture()
def service():
    return GroupOrderAggregateService()


def _make_ready_group(service, count=3, ready=3, strategy="ALL_TOGETHER"):
    snapshot = service.create_group_order(
        group_name="Ofori Church Event",
        organizer_id="org-001",
        delivery_strategy=strategy,
    )
    gid = snapshot.group_order_id
    for _ in range(count):
        snapshot = service.add_item(gid, garment_type="Suit", base_amount="400.00")
    snapshot = service.confirm(gid)
    for item in snapshot.items[:ready]:
        for status in ("DEPOSIT_PAID", "IN_PRODUCTION", "READY_FOR_DELIVERY"):
            snapshot = service.update_item_status(gid, item.item_id, status)
    return snapshot


def _ids(snapshot):
    return [item.item_id for item in snapshot.items]


class TestProposeSchedule:
    def test_schedule_is_persisted(self, service):
        group = _make_ready_group(service)
        snapshot = service.propose_schedule(group.group_order_id, _ids(group)[:2], DELIVERY_DATE, notes="Call ahead")
        assert len(snapshot.schedules) == 1
        assert snapshot.schedules[0].status == "SCHEDULED"
        assert snapshot.schedules[0].item_ids == tuple(_ids(group)[:2])
        stored = current_domain.repository_for(DeliverySchedule).find_by_group(group.group_order_id)
        assert len(stored) == 1

    def test_overlapping_schedules_are_rejected(self, service):
        group = _make_ready_group(service)
        first, second, third = _ids(group)
        service.propose_schedule(group.group_order_id, [first, second], DELIVERY_DATE)
        with pytest.raises(ItemAlreadyScheduledError):
            service.propose_schedule(group.group_order_id, [second, third], DELIVERY_DATE)
        assert len(service.snapshot(group.group_order_id).schedules) == 1

    def test_unready_items_are_rejected(self, service):
        group = _make_ready_group(service, ready=1)
        with pytest.raises(ItemNotDeliverableError):
            service.propose_schedule(group.group_order_id, _ids(group), DELIVERY_DATE)

    def test_staggered_default_proposal(self, service):
        group = _make_ready_group(service, ready=2, strategy="STAGGERED")
        snapshot = service.propose_default_schedule(group.group_order_id, DELIVERY_DATE)
        assert snapshot.schedules[0].item_ids == tuple(_ids(group)[:2])


class TestScheduleLifecycle:
    def test_courier_delivery_updates_items(self, service):
        group = _make_ready_group(service)
        gid = group.group_order_id
        snapshot = service.propose_default_schedule(gid, DELIVERY_DATE)
        schedule_id = snapshot.schedules[0].schedule_id

        service.mark_schedule_ready(gid, schedule_id)
        service.dispatch_schedule(gid, schedule_id)
        delivered = {item_id: DELIVERY_DATE for item_id in _ids(group)}
        snapshot = service.mark_schedule_delivered(gid, schedule_id, delivered)

        assert snapshot.schedules[0].status == "DELIVERED"
        assert snapshot.schedules[0].actual_delivery_date == DELIVERY_DATE
        assert all(item.status == "DELIVERED" for item in snapshot.items)
        assert snapshot.progress["completed"] == 3

    def test_failed_schedule_frees_items(self, service):
        group = _make_ready_group(service)
        gid = group.group_order_id
        snapshot = service.propose_default_schedule(gid, DELIVERY_DATE)
        snapshot = service.mark_schedule_failed(gid, snapshot.schedules[0].schedule_id, reason="Venue locked")
        assert snapshot.schedules[0].status == "FAILED"
        assert snapshot.schedules[0].failure_reason == "Venue locked"

        snapshot = service.propose_default_schedule(gid, DELIVERY_DATE)
        assert [s.status for s in snapshot.schedules] == ["FAILED", "SCHEDULED"]

    def test_unknown_schedule(self, service):
        group = _make_ready_group(service)
        with pytest.raises(ObjectNotFoundError):
            service.dispatch_schedule(group.group_order_id, "missing")
