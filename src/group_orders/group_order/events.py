"""Group order events — immutable facts about group setup and item lifecycle."""

from protean.fields import DateTime, Identifier, Integer, String, Text

from group_orders.domain import group_orders


@group_orders.event(part_of="GroupOrder")
class GroupOrderCreated:
    """An organizer started a new group order."""

    __version__ = 1

    group_order_id = Identifier(required=True)
    group_order_number = String(required=True)
    group_name = String(required=True)
    organizer_id = Identifier(required=True)
    payment_mode = String(required=True)
    delivery_strategy = String(required=True)
    created_at = DateTime(required=True)


@group_orders.event(part_of="GroupOrder")
class GroupOrderItemAdded:
    """A garment was added to a draft group order."""

    __version__ = 1

    group_order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    garment_type = String(required=True)
    base_amount = String(required=True)
    delivery_priority = Integer(required=True)
    added_at = DateTime(required=True)


@group_orders.event(part_of="GroupOrder")
class PayerAssigned:
    """A payer took responsibility for a set of items (split payment)."""

    __version__ = 1

    group_order_id = Identifier(required=True)
    payer_id = Identifier(required=True)
    item_ids = Text(required=True)  # JSON list of item ids
    assigned_at = DateTime(required=True)


@group_orders.event(part_of="GroupOrder")
class GroupOrderConfirmed:
    """Items were priced with the bulk discount and the order was confirmed."""

    __version__ = 1

    group_order_id = Identifier(required=True)
    item_count = Integer(required=True)
    discount_percentage = Integer(required=True)
    original_total = String(required=True)
    discounted_total = String(required=True)
    confirmed_at = DateTime(required=True)


@group_orders.event(part_of="GroupOrder")
class ItemStatusChanged:
    """An item moved through its production lifecycle."""

    __version__ = 1

    group_order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    from_status = String(required=True)
    to_status = String(required=True)
    reason = String()
    changed_at = DateTime(required=True)


@group_orders.event(part_of="GroupOrder")
class ItemDelivered:
    """An item reached its recipient."""

    __version__ = 1

    group_order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    delivered_at = DateTime(required=True)


@group_orders.event(part_of="GroupOrder")
class GroupOrderCancelled:
    """A draft group order was abandoned."""

    __version__ = 1

    group_order_id = Identifier(required=True)
    reason = String(required=True)
    cancelled_at = DateTime(required=True)
