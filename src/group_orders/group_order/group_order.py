"""GroupOrder aggregate (CQRS) — a family or event order of many garments.

The organizer builds the group while it is DRAFT: garments are added with
their base price and a delivery priority, and in split-payment mode each
garment is assigned to exactly one payer. Confirmation prices every active
garment with the bulk discount engine; from then on items only move through
their production lifecycle.

Group State Machine:
    DRAFT → CONFIRMED
    DRAFT → CANCELLED

Item State Machine:
    PENDING → DEPOSIT_PAID → IN_PRODUCTION → FITTING_READY → FITTING_APPROVED
        → READY_FOR_DELIVERY → {COMPLETED, DELIVERED}
    {PENDING, DEPOSIT_PAID, IN_PRODUCTION} → CANCELLED
    any active status ⇄ DISPUTED (restores the status held before the dispute)
"""

import json
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String, Text

from group_orders.discount.engine import (
    MAX_ITEMS_PER_GROUP,
    BulkDiscountResult,
    ItemDiscount,
    compute_discount,
    tier_for,
)
from group_orders.domain import group_orders
from group_orders.group_order.events import (
    GroupOrderCancelled,
    GroupOrderConfirmed,
    GroupOrderCreated,
    GroupOrderItemAdded,
    ItemDelivered,
    ItemStatusChanged,
    PayerAssigned,
)
from group_orders.shared.money import from_minor, parse_amount, to_minor

MIN_PARTICIPANTS = 2


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class GroupOrderStatus(Enum):
    DRAFT = "DRAFT"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class PaymentMode(Enum):
    SINGLE_PAYER = "SINGLE_PAYER"
    SPLIT_PAYMENT = "SPLIT_PAYMENT"


class DeliveryStrategy(Enum):
    ALL_TOGETHER = "ALL_TOGETHER"
    STAGGERED = "STAGGERED"


class EventType(Enum):
    WEDDING = "WEDDING"
    FUNERAL = "FUNERAL"
    NAMING_CEREMONY = "NAMING_CEREMONY"
    BIRTHDAY = "BIRTHDAY"
    CHURCH_EVENT = "CHURCH_EVENT"
    FESTIVAL = "FESTIVAL"
    OTHER = "OTHER"


class ItemStatus(Enum):
    PENDING = "PENDING"
    DEPOSIT_PAID = "DEPOSIT_PAID"
    IN_PRODUCTION = "IN_PRODUCTION"
    FITTING_READY = "FITTING_READY"
    FITTING_APPROVED = "FITTING_APPROVED"
    READY_FOR_DELIVERY = "READY_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    DISPUTED = "DISPUTED"


_ITEM_TRANSITIONS = {
    ItemStatus.PENDING: {ItemStatus.DEPOSIT_PAID, ItemStatus.CANCELLED},
    ItemStatus.DEPOSIT_PAID: {ItemStatus.IN_PRODUCTION, ItemStatus.CANCELLED, ItemStatus.DISPUTED},
    ItemStatus.IN_PRODUCTION: {
        ItemStatus.FITTING_READY,
        ItemStatus.READY_FOR_DELIVERY,
        ItemStatus.CANCELLED,
        ItemStatus.DISPUTED,
    },
    ItemStatus.FITTING_READY: {ItemStatus.FITTING_APPROVED, ItemStatus.IN_PRODUCTION, ItemStatus.DISPUTED},
    ItemStatus.FITTING_APPROVED: {ItemStatus.READY_FOR_DELIVERY, ItemStatus.DISPUTED},
    ItemStatus.READY_FOR_DELIVERY: {ItemStatus.COMPLETED, ItemStatus.DELIVERED, ItemStatus.DISPUTED},
    ItemStatus.COMPLETED: {ItemStatus.DELIVERED, ItemStatus.DISPUTED},
    ItemStatus.DELIVERED: {ItemStatus.DISPUTED},
    ItemStatus.DISPUTED: set(),  # left only through resolve_item_dispute
    ItemStatus.CANCELLED: set(),  # terminal
}

DELIVERABLE_STATUSES = frozenset({ItemStatus.READY_FOR_DELIVERY, ItemStatus.COMPLETED})

_PROGRESS_BUCKETS = {
    ItemStatus.PENDING: "pending",
    ItemStatus.DEPOSIT_PAID: "in_progress",
    ItemStatus.IN_PRODUCTION: "in_progress",
    ItemStatus.FITTING_READY: "in_progress",
    ItemStatus.FITTING_APPROVED: "in_progress",
    ItemStatus.DISPUTED: "in_progress",
    ItemStatus.READY_FOR_DELIVERY: "ready",
    ItemStatus.COMPLETED: "completed",
    ItemStatus.DELIVERED: "completed",
}


def _generate_group_order_number(now: datetime) -> str:
    return f"GRP-{now:%y%m%d}-{uuid4().hex[:6].upper()}"


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@group_orders.entity(part_of="GroupOrder")
class OrderItem:
    """A single garment within the group, priced individually."""

    garment_type = String(required=True, max_length=100)
    family_member_name = String(max_length=100)
    base_amount_minor = Integer(required=True, min_value=0)
    discount_minor = Integer(default=0, min_value=0)
    final_amount_minor = Integer(min_value=0)
    delivery_priority = Integer(required=True, min_value=1)
    status = String(max_length=30, choices=ItemStatus, default=ItemStatus.PENDING.value)
    status_before_dispute = String(max_length=30, choices=ItemStatus)
    cancellation_reason = String(max_length=500)
    estimated_delivery = DateTime()
    actual_delivery = DateTime()

    @property
    def base_amount(self) -> Decimal:
        return from_minor(self.base_amount_minor)

    @property
    def discount_amount(self) -> Decimal:
        return from_minor(self.discount_minor)

    @property
    def final_amount(self) -> Decimal:
        if self.final_amount_minor is None:
            return self.base_amount
        return from_minor(self.final_amount_minor)

    @property
    def is_active(self) -> bool:
        return self.status != ItemStatus.CANCELLED.value

    @property
    def is_deliverable(self) -> bool:
        return ItemStatus(self.status) in DELIVERABLE_STATUSES


@group_orders.entity(part_of="GroupOrder")
class PaymentResponsibility:
    """The items one payer has agreed to cover in split-payment mode."""

    payer_id = Identifier(required=True)
    payer_name = String(required=True, max_length=100)
    item_ids = Text(required=True)  # JSON list of OrderItem IDs

    @property
    def item_id_list(self) -> list[str]:
        return json.loads(self.item_ids) if self.item_ids else []


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@group_orders.aggregate
class GroupOrder:
    group_order_number = String(max_length=30)
    group_name = String(required=True, min_length=3, max_length=100)
    organizer_id = Identifier(required=True)
    event_type = String(max_length=30, choices=EventType)
    event_date = DateTime()
    payment_mode = String(max_length=20, choices=PaymentMode, default=PaymentMode.SINGLE_PAYER.value)
    delivery_strategy = String(
        max_length=20,
        choices=DeliveryStrategy,
        default=DeliveryStrategy.ALL_TOGETHER.value,
    )
    status = String(max_length=20, choices=GroupOrderStatus, default=GroupOrderStatus.DRAFT.value)
    discount_percentage = Integer(default=0, min_value=0, max_value=100)
    discount_tier = String(max_length=30)
    original_total_minor = Integer(default=0, min_value=0)
    discounted_total_minor = Integer(default=0, min_value=0)
    payment_due_date = DateTime()
    coordination_notes = Text()
    items = HasMany(OrderItem)
    payers = HasMany(PaymentResponsibility)
    cancellation_reason = String(max_length=500)
    revision = Integer(default=0)
    confirmed_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        group_name: str,
        organizer_id: str,
        payment_mode: str = PaymentMode.SINGLE_PAYER.value,
        delivery_strategy: str = DeliveryStrategy.ALL_TOGETHER.value,
        event_type: str | None = None,
        event_date: datetime | None = None,
        payment_due_date: datetime | None = None,
        coordination_notes: str | None = None,
    ):
        """Start a new draft group order for an organizer."""
        now = datetime.now(UTC)
        group = cls(
            group_order_number=_generate_group_order_number(now),
            group_name=group_name.strip() if group_name else group_name,
            organizer_id=organizer_id,
            event_type=event_type,
            event_date=event_date,
            payment_mode=payment_mode,
            delivery_strategy=delivery_strategy,
            status=GroupOrderStatus.DRAFT.value,
            payment_due_date=payment_due_date,
            coordination_notes=coordination_notes,
            created_at=now,
            updated_at=now,
        )
        group.raise_(
            GroupOrderCreated(
                group_order_id=str(group.id),
                group_order_number=group.group_order_number,
                group_name=group.group_name,
                organizer_id=organizer_id,
                payment_mode=group.payment_mode,
                delivery_strategy=group.delivery_strategy,
                created_at=now,
            )
        )
        return group

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    @property
    def is_split_payment(self) -> bool:
        return self.payment_mode == PaymentMode.SPLIT_PAYMENT.value

    @property
    def is_staggered(self) -> bool:
        return self.delivery_strategy == DeliveryStrategy.STAGGERED.value

    @property
    def ordered_items(self) -> list:
        return sorted(self.items or [], key=lambda i: i.delivery_priority)

    @property
    def active_items(self) -> list:
        return [item for item in self.ordered_items if item.is_active]

    @property
    def original_total(self) -> Decimal:
        return from_minor(self.original_total_minor)

    @property
    def discounted_total(self) -> Decimal:
        return from_minor(self.discounted_total_minor)

    def item(self, item_id: str):
        found = next((i for i in (self.items or []) if str(i.id) == str(item_id)), None)
        if found is None:
            raise ValidationError({"item_id": [f"Item {item_id} not found in this group order"]})
        return found

    def responsibility_for(self, payer_id: str):
        return next((p for p in (self.payers or []) if str(p.payer_id) == str(payer_id)), None)

    def responsibilities(self) -> list[tuple[str, str, list[str]]]:
        """(payer_id, payer_name, item_ids) for every payer of this group.

        In single-payer mode the organizer implicitly covers every item.
        """
        if not self.is_split_payment:
            return [(str(self.organizer_id), "Organizer", [str(i.id) for i in self.ordered_items])]
        return [(str(p.payer_id), p.payer_name, p.item_id_list) for p in (self.payers or [])]

    def progress_summary(self) -> dict[str, int]:
        """Counts of active items by production bucket."""
        summary = {"total": 0, "completed": 0, "in_progress": 0, "ready": 0, "pending": 0}
        for item in self.active_items:
            summary["total"] += 1
            summary[_PROGRESS_BUCKETS[ItemStatus(item.status)]] += 1
        return summary

    def pricing(self) -> BulkDiscountResult:
        """Bulk discount over the active items' base amounts, in priority order."""
        active = self.active_items
        return compute_discount(len(active), [item.base_amount for item in active])

    def discount_result(self) -> BulkDiscountResult:
        """Pricing as recorded at confirmation; a live preview before then.

        Items cancelled after confirmation keep the price they were given.
        """
        if self.status != GroupOrderStatus.CONFIRMED.value:
            return self.pricing()
        priced = [item for item in self.ordered_items if item.final_amount_minor is not None]
        return BulkDiscountResult(
            tier=tier_for(len(priced)),
            discount_percentage=self.discount_percentage,
            original_total=self.original_total,
            discounted_total=self.discounted_total,
            savings=self.original_total - self.discounted_total,
            item_discounts=tuple(
                ItemDiscount(
                    index=index,
                    original_amount=item.base_amount,
                    discount=item.discount_amount,
                    final_amount=item.final_amount,
                )
                for index, item in enumerate(priced)
            ),
        )

    # -------------------------------------------------------------------
    # Draft setup
    # -------------------------------------------------------------------
    def _assert_draft(self, action: str) -> None:
        if self.status != GroupOrderStatus.DRAFT.value:
            raise ValidationError({"status": [f"Cannot {action} a group order in {self.status} status"]})

    def add_item(
        self,
        garment_type: str,
        base_amount,
        delivery_priority: int | None = None,
        family_member_name: str | None = None,
        estimated_delivery: datetime | None = None,
    ):
        """Add a garment to the draft; returns the new item."""
        self._assert_draft("add items to")
        existing = self.items or []
        if len(existing) >= MAX_ITEMS_PER_GROUP:
            raise ValidationError({"items": [f"A group order holds at most {MAX_ITEMS_PER_GROUP} items"]})

        amount = parse_amount(base_amount, field="base_amount")
        taken = {i.delivery_priority for i in existing}
        if delivery_priority is None:
            delivery_priority = max(taken, default=0) + 1
        elif delivery_priority in taken:
            raise ValidationError(
                {"delivery_priority": [f"Delivery priority {delivery_priority} is already used in this group"]}
            )

        now = datetime.now(UTC)
        item = OrderItem(
            garment_type=garment_type,
            family_member_name=family_member_name,
            base_amount_minor=to_minor(amount),
            delivery_priority=delivery_priority,
            status=ItemStatus.PENDING.value,
            estimated_delivery=estimated_delivery,
        )
        self.add_items(item)
        self.updated_at = now
        self.raise_(
            GroupOrderItemAdded(
                group_order_id=str(self.id),
                item_id=str(item.id),
                garment_type=garment_type,
                base_amount=str(amount),
                delivery_priority=delivery_priority,
                added_at=now,
            )
        )
        return item

    def assign_payer(self, payer_id: str, payer_name: str, item_ids: list[str]) -> None:
        """Make ``payer_id`` responsible for ``item_ids`` (split payment only).

        Re-assigning a payer replaces their previous item set.
        """
        self._assert_draft("assign payers in")
        if not self.is_split_payment:
            raise ValidationError({"payment_mode": ["Payers can only be assigned in split-payment mode"]})
        if not item_ids:
            raise ValidationError({"item_ids": ["A payer must be responsible for at least one item"]})

        wanted = [str(i) for i in item_ids]
        for item_id in wanted:
            self.item(item_id)
        if len(set(wanted)) != len(wanted):
            raise ValidationError({"item_ids": ["Duplicate item ids in assignment"]})

        claimed = {
            item_id: str(p.payer_id)
            for p in (self.payers or [])
            if str(p.payer_id) != str(payer_id)
            for item_id in p.item_id_list
        }
        conflicts = sorted(item_id for item_id in wanted if item_id in claimed)
        if conflicts:
            raise ValidationError({"item_ids": [f"Item(s) already assigned to another payer: {', '.join(conflicts)}"]})

        now = datetime.now(UTC)
        existing = self.responsibility_for(payer_id)
        if existing is not None:
            existing.payer_name = payer_name
            existing.item_ids = json.dumps(wanted)
        else:
            self.add_payers(
                PaymentResponsibility(
                    payer_id=payer_id,
                    payer_name=payer_name,
                    item_ids=json.dumps(wanted),
                )
            )
        self.updated_at = now
        self.raise_(
            PayerAssigned(
                group_order_id=str(self.id),
                payer_id=payer_id,
                item_ids=json.dumps(wanted),
                assigned_at=now,
            )
        )

    def confirm(self) -> BulkDiscountResult:
        """Price every active item with the bulk discount and lock the group."""
        self._assert_draft("confirm")
        active = self.active_items
        if len(active) < MIN_PARTICIPANTS:
            raise ValidationError({"items": [f"A group order needs at least {MIN_PARTICIPANTS} items"]})

        if self.is_split_payment:
            assigned = {item_id for _, _, ids in self.responsibilities() for item_id in ids}
            unassigned = [str(i.id) for i in active if str(i.id) not in assigned]
            if unassigned:
                raise ValidationError(
                    {"payers": [f"Every item needs a payer in split-payment mode; unassigned: {', '.join(unassigned)}"]}
                )

        result = self.pricing()
        for item, allocation in zip(active, result.item_discounts, strict=True):
            item.discount_minor = to_minor(allocation.discount)
            item.final_amount_minor = to_minor(allocation.final_amount)

        now = datetime.now(UTC)
        self.discount_percentage = result.discount_percentage
        self.discount_tier = result.tier_name
        self.original_total_minor = to_minor(result.original_total)
        self.discounted_total_minor = to_minor(result.discounted_total)
        self.status = GroupOrderStatus.CONFIRMED.value
        self.confirmed_at = now
        self.updated_at = now
        self.raise_(
            GroupOrderConfirmed(
                group_order_id=str(self.id),
                item_count=len(active),
                discount_percentage=result.discount_percentage,
                original_total=str(result.original_total),
                discounted_total=str(result.discounted_total),
                confirmed_at=now,
            )
        )
        return result

    def cancel(self, reason: str) -> None:
        self._assert_draft("cancel")
        now = datetime.now(UTC)
        self.status = GroupOrderStatus.CANCELLED.value
        self.cancellation_reason = reason
        self.updated_at = now
        self.raise_(GroupOrderCancelled(group_order_id=str(self.id), reason=reason, cancelled_at=now))

    # -------------------------------------------------------------------
    # Item lifecycle
    # -------------------------------------------------------------------
    def _assert_confirmed(self) -> None:
        if self.status != GroupOrderStatus.CONFIRMED.value:
            raise ValidationError({"status": ["Item lifecycle starts once the group order is confirmed"]})

    def _move_item(self, item, target: ItemStatus, reason: str | None = None) -> None:
        current = ItemStatus(item.status)
        if target not in _ITEM_TRANSITIONS[current]:
            raise ValidationError({"status": [f"Cannot transition item from {current.value} to {target.value}"]})

        now = datetime.now(UTC)
        if target == ItemStatus.DISPUTED:
            item.status_before_dispute = current.value
        if target == ItemStatus.CANCELLED:
            item.cancellation_reason = reason or ""
        item.status = target.value
        self.updated_at = now
        self.raise_(
            ItemStatusChanged(
                group_order_id=str(self.id),
                item_id=str(item.id),
                from_status=current.value,
                to_status=target.value,
                reason=reason or "",
                changed_at=now,
            )
        )

    def update_item_status(self, item_id: str, status: str, reason: str | None = None) -> None:
        self._assert_confirmed()
        try:
            target = ItemStatus(status)
        except ValueError as exc:
            raise ValidationError({"status": [f"Unknown item status: {status!r}"]}) from exc
        if target == ItemStatus.DELIVERED:
            raise ValidationError({"status": ["Items are marked delivered through their delivery schedule"]})
        self._move_item(self.item(item_id), target, reason)

    def cancel_item(self, item_id: str, reason: str) -> None:
        self._assert_confirmed()
        self._move_item(self.item(item_id), ItemStatus.CANCELLED, reason)

    def dispute_item(self, item_id: str, reason: str) -> None:
        self._assert_confirmed()
        self._move_item(self.item(item_id), ItemStatus.DISPUTED, reason)

    def resolve_item_dispute(self, item_id: str) -> None:
        """Return a disputed item to the status it held before the dispute."""
        item = self.item(item_id)
        if item.status != ItemStatus.DISPUTED.value:
            raise ValidationError({"status": [f"Item {item_id} is not disputed"]})

        now = datetime.now(UTC)
        restored = item.status_before_dispute or ItemStatus.PENDING.value
        item.status = restored
        item.status_before_dispute = None
        self.updated_at = now
        self.raise_(
            ItemStatusChanged(
                group_order_id=str(self.id),
                item_id=str(item.id),
                from_status=ItemStatus.DISPUTED.value,
                to_status=restored,
                reason="dispute resolved",
                changed_at=now,
            )
        )

    def mark_deposit_paid(self, item_id: str) -> bool:
        """Move a PENDING item to DEPOSIT_PAID; returns whether it moved."""
        item = self.item(item_id)
        if item.status != ItemStatus.PENDING.value:
            return False
        self._move_item(item, ItemStatus.DEPOSIT_PAID)
        return True

    def record_item_delivered(self, item_id: str, delivered_at: datetime) -> None:
        item = self.item(item_id)
        current = ItemStatus(item.status)
        if current not in DELIVERABLE_STATUSES:
            raise ValidationError({"status": [f"Item in {current.value} status cannot be delivered"]})

        self._move_item(item, ItemStatus.DELIVERED)
        item.actual_delivery = delivered_at
        self.raise_(
            ItemDelivered(
                group_order_id=str(self.id),
                item_id=str(item.id),
                delivered_at=delivered_at,
            )
        )
