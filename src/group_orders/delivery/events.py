"""Delivery schedule events."""

from protean.fields import DateTime, Identifier, Integer, String, Text

from group_orders.domain import group_orders


@group_orders.event(part_of="DeliverySchedule")
class DeliveryScheduled:
    __version__ = 1

    schedule_id = Identifier(required=True)
    group_order_id = Identifier(required=True)
    item_ids = Text(required=True)  # JSON list
    item_count = Integer(required=True)
    scheduled_date = DateTime(required=True)
    scheduled_at = DateTime(required=True)


@group_orders.event(part_of="DeliverySchedule")
class DeliveryStatusChanged:
    __version__ = 1

    schedule_id = Identifier(required=True)
    group_order_id = Identifier(required=True)
    from_status = String(required=True)
    to_status = String(required=True)
    changed_at = DateTime(required=True)


@group_orders.event(part_of="DeliverySchedule")
class ScheduledItemsDelivered:
    """Some or all items of a schedule reached their recipients."""

    __version__ = 1

    schedule_id = Identifier(required=True)
    group_order_id = Identifier(required=True)
    item_ids = Text(required=True)  # JSON list
    remaining_count = Integer(required=True)
    delivered_at = DateTime(required=True)


@group_orders.event(part_of="DeliverySchedule")
class DeliveryFailed:
    """A delivery attempt failed; its items may be scheduled again."""

    __version__ = 1

    schedule_id = Identifier(required=True)
    group_order_id = Identifier(required=True)
    reason = String(required=True)
    failed_at = DateTime(required=True)
