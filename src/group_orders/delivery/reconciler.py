"""Delivery schedule reconciliation for one group order.

Only items that are READY_FOR_DELIVERY or COMPLETED may be scheduled, and an
item is claimed by at most one schedule that has not FAILED. The group's
delivery strategy only shapes the default proposal; the per-item rules are
the same for both strategies.
"""

from datetime import UTC, datetime

from protean.exceptions import ObjectNotFoundError, ValidationError

from group_orders.delivery.schedule import DeliverySchedule, as_utc
from group_orders.errors import ItemAlreadyScheduledError, ItemNotDeliverableError
from group_orders.group_order.group_order import GroupOrderStatus, ItemStatus
from group_orders.utils.logging import get_logger

logger = get_logger(__name__)


class DeliveryScheduleReconciler:
    def __init__(self, group, schedules=None) -> None:
        self.group = group
        self.schedules: list[DeliverySchedule] = list(schedules or [])

    def claims(self) -> dict[str, str]:
        """item id → id of the live schedule that holds it."""
        return {
            item_id: str(schedule.id)
            for schedule in self.schedules
            if schedule.is_live
            for item_id in schedule.item_id_list
        }

    def schedule(self, schedule_id: str) -> DeliverySchedule:
        found = next((s for s in self.schedules if str(s.id) == str(schedule_id)), None)
        if found is None:
            raise ObjectNotFoundError(
                {"schedule_id": [f"Delivery schedule {schedule_id} not found for group order {self.group.id}"]}
            )
        return found

    def _assert_schedulable(self, item_ids: list[str]) -> None:
        if self.group.status != GroupOrderStatus.CONFIRMED.value:
            raise ValidationError({"status": ["Only confirmed group orders can be scheduled for delivery"]})

        not_ready = {
            item_id: self.group.item(item_id).status
            for item_id in item_ids
            if not self.group.item(item_id).is_deliverable
        }
        if not_ready:
            raise ItemNotDeliverableError(not_ready)

        claims = self.claims()
        taken = {item_id: claims[item_id] for item_id in item_ids if item_id in claims}
        if taken:
            raise ItemAlreadyScheduledError(taken)

    def propose_schedule(
        self,
        item_ids: list[str],
        scheduled_date: datetime,
        notes: str | None = None,
    ) -> DeliverySchedule:
        if not item_ids:
            raise ValidationError({"item_ids": ["A delivery schedule needs at least one item"]})
        wanted = [str(i) for i in item_ids]
        if len(set(wanted)) != len(wanted):
            raise ValidationError({"item_ids": ["Duplicate item ids"]})
        self._assert_schedulable(wanted)

        schedule = DeliverySchedule.create(
            group_order_id=str(self.group.id),
            item_ids=wanted,
            scheduled_date=scheduled_date,
            notes=notes,
        )
        self.schedules.append(schedule)
        logger.info(
            "delivery_scheduled",
            group_order_id=str(self.group.id),
            schedule_id=str(schedule.id),
            item_count=len(wanted),
        )
        return schedule

    def propose_default(self, scheduled_date: datetime, notes: str | None = None) -> DeliverySchedule:
        """Proposal shaped by the group's delivery strategy.

        ALL_TOGETHER waits until every undelivered active item is deliverable
        and schedules them in one go. STAGGERED schedules whatever is
        deliverable and not yet claimed.
        """
        outstanding = [
            item for item in self.group.active_items if item.status != ItemStatus.DELIVERED.value
        ]
        if self.group.is_staggered:
            claims = self.claims()
            candidates = [str(i.id) for i in outstanding if i.is_deliverable and str(i.id) not in claims]
            if not candidates:
                raise ValidationError({"item_ids": ["No deliverable items are waiting for a schedule"]})
            return self.propose_schedule(candidates, scheduled_date, notes)

        waiting = {str(i.id): i.status for i in outstanding if not i.is_deliverable}
        if waiting:
            raise ItemNotDeliverableError(waiting)
        return self.propose_schedule([str(i.id) for i in outstanding], scheduled_date, notes)

    def mark_ready(self, schedule_id: str) -> DeliverySchedule:
        schedule = self.schedule(schedule_id)
        schedule.mark_ready()
        return schedule

    def dispatch(self, schedule_id: str) -> DeliverySchedule:
        schedule = self.schedule(schedule_id)
        schedule.dispatch()
        return schedule

    def mark_failed(self, schedule_id: str, reason: str) -> DeliverySchedule:
        schedule = self.schedule(schedule_id)
        schedule.mark_failed(reason)
        logger.warning(
            "delivery_failed",
            group_order_id=str(self.group.id),
            schedule_id=str(schedule.id),
            reason=reason,
        )
        return schedule

    def mark_delivered(
        self,
        schedule_id: str,
        actual_delivery_timestamps: dict[str, datetime] | None = None,
    ) -> DeliverySchedule:
        """Record deliveries on a schedule and on the group's items.

        Without timestamps every pending item on the schedule is delivered now.
        """
        schedule = self.schedule(schedule_id)
        if actual_delivery_timestamps is None:
            now = datetime.now(UTC)
            actual_delivery_timestamps = {item_id: now for item_id in schedule.pending_id_list}
        delivered = {str(item_id): as_utc(ts) for item_id, ts in actual_delivery_timestamps.items()}
        not_ready = {
            item_id: self.group.item(item_id).status
            for item_id in delivered
            if not self.group.item(item_id).is_deliverable
        }
        if not_ready:
            raise ItemNotDeliverableError(not_ready)

        schedule.record_delivered(delivered)
        for item_id, delivered_at in delivered.items():
            self.group.record_item_delivered(item_id, delivered_at)

        logger.info(
            "delivery_recorded",
            group_order_id=str(self.group.id),
            schedule_id=str(schedule.id),
            item_count=len(delivered),
            schedule_status=schedule.status,
        )
        return schedule
