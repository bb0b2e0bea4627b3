"""DeliverySchedule aggregate (CQRS) — one delivery event for a subset of items.

State Machine:
    SCHEDULED → READY → IN_TRANSIT → DELIVERED
    {SCHEDULED, READY} → DELIVERED  (hand delivery, no courier)
    {SCHEDULED, READY, IN_TRANSIT} → FAILED

A FAILED schedule no longer claims its items.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String, Text

from group_orders.delivery.events import (
    DeliveryFailed,
    DeliveryScheduled,
    DeliveryStatusChanged,
    ScheduledItemsDelivered,
)
from group_orders.domain import group_orders


def as_utc(moment: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    return moment.replace(tzinfo=UTC) if moment.tzinfo is None else moment


class ScheduleStatus(Enum):
    SCHEDULED = "SCHEDULED"
    READY = "READY"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"


_VALID_TRANSITIONS = {
    ScheduleStatus.SCHEDULED: {ScheduleStatus.READY, ScheduleStatus.DELIVERED, ScheduleStatus.FAILED},
    ScheduleStatus.READY: {ScheduleStatus.IN_TRANSIT, ScheduleStatus.DELIVERED, ScheduleStatus.FAILED},
    ScheduleStatus.IN_TRANSIT: {ScheduleStatus.DELIVERED, ScheduleStatus.FAILED},
    ScheduleStatus.DELIVERED: set(),  # terminal
    ScheduleStatus.FAILED: set(),  # terminal
}


@group_orders.aggregate
class DeliverySchedule:
    group_order_id = Identifier(required=True)
    scheduled_date = DateTime(required=True)
    item_ids = Text(required=True)  # JSON list of OrderItem IDs
    delivered_item_ids = Text(default="[]")  # JSON list
    notes = Text()
    status = String(max_length=20, choices=ScheduleStatus, default=ScheduleStatus.SCHEDULED.value)
    actual_delivery_date = DateTime()
    failure_reason = String(max_length=500)
    revision = Integer(default=0)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, group_order_id: str, item_ids: list[str], scheduled_date: datetime, notes: str | None = None):
        now = datetime.now(UTC)
        schedule = cls(
            group_order_id=group_order_id,
            scheduled_date=scheduled_date,
            item_ids=json.dumps(item_ids),
            delivered_item_ids="[]",
            notes=notes,
            status=ScheduleStatus.SCHEDULED.value,
            created_at=now,
            updated_at=now,
        )
        schedule.raise_(
            DeliveryScheduled(
                schedule_id=str(schedule.id),
                group_order_id=group_order_id,
                item_ids=json.dumps(item_ids),
                item_count=len(item_ids),
                scheduled_date=scheduled_date,
                scheduled_at=now,
            )
        )
        return schedule

    @property
    def item_id_list(self) -> list[str]:
        return json.loads(self.item_ids) if self.item_ids else []

    @property
    def delivered_id_list(self) -> list[str]:
        return json.loads(self.delivered_item_ids) if self.delivered_item_ids else []

    @property
    def pending_id_list(self) -> list[str]:
        delivered = set(self.delivered_id_list)
        return [item_id for item_id in self.item_id_list if item_id not in delivered]

    @property
    def is_live(self) -> bool:
        return self.status != ScheduleStatus.FAILED.value

    def _transition(self, target: ScheduleStatus) -> datetime:
        current = ScheduleStatus(self.status)
        if target not in _VALID_TRANSITIONS[current]:
            raise ValidationError({"status": [f"Cannot transition schedule from {current.value} to {target.value}"]})
        now = datetime.now(UTC)
        self.status = target.value
        self.updated_at = now
        self.raise_(
            DeliveryStatusChanged(
                schedule_id=str(self.id),
                group_order_id=str(self.group_order_id),
                from_status=current.value,
                to_status=target.value,
                changed_at=now,
            )
        )
        return now

    def mark_ready(self) -> None:
        self._transition(ScheduleStatus.READY)

    def dispatch(self) -> None:
        self._transition(ScheduleStatus.IN_TRANSIT)

    def mark_failed(self, reason: str) -> None:
        if not reason:
            raise ValidationError({"reason": ["A failure reason is required"]})
        now = self._transition(ScheduleStatus.FAILED)
        self.failure_reason = reason
        self.raise_(
            DeliveryFailed(
                schedule_id=str(self.id),
                group_order_id=str(self.group_order_id),
                reason=reason,
                failed_at=now,
            )
        )

    def record_delivered(self, delivered: dict[str, datetime]) -> None:
        """Mark items delivered; the schedule closes once every item is."""
        current = ScheduleStatus(self.status)
        if current in (ScheduleStatus.DELIVERED, ScheduleStatus.FAILED):
            raise ValidationError({"status": [f"Schedule is already {current.value}"]})

        if not delivered:
            raise ValidationError({"item_ids": ["At least one delivered item is required"]})
        pending = set(self.pending_id_list)
        unknown = sorted(item_id for item_id in delivered if item_id not in pending)
        if unknown:
            raise ValidationError({"item_ids": [f"Item(s) not pending on this schedule: {', '.join(unknown)}"]})

        delivered = {item_id: as_utc(moment) for item_id, moment in delivered.items()}
        now = datetime.now(UTC)
        self.delivered_item_ids = json.dumps(self.delivered_id_list + list(delivered))
        latest = max(delivered.values())
        self.actual_delivery_date = latest
        self.updated_at = now
        remaining = self.pending_id_list
        self.raise_(
            ScheduledItemsDelivered(
                schedule_id=str(self.id),
                group_order_id=str(self.group_order_id),
                item_ids=json.dumps(list(delivered)),
                remaining_count=len(remaining),
                delivered_at=latest,
            )
        )
        if not remaining:
            self._transition(ScheduleStatus.DELIVERED)
