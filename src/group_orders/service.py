"""GroupOrderAggregateService — read/write façade over the Group Orders core.

Every call loads fresh aggregates from the store, delegates to the component
that owns the rule, saves the touched aggregates with a revision check, and
returns a new snapshot. The service holds no state of its own.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from group_orders.delivery.reconciler import DeliveryScheduleReconciler
from group_orders.discount.engine import BulkDiscountResult, estimate_discount
from group_orders.errors import ConcurrentModificationError, PaymentDeclinedError, PaymentNotRecordedError
from group_orders.escrow.display import display_for
from group_orders.escrow.ledger import PAYABLE_STAGES
from group_orders.gateway import get_gateway
from group_orders.group_order.coordinator import (
    GroupPaymentCoordinator,
    LedgerDiscrepancy,
    PayerSummary,
    PaymentSummary,
)
from group_orders.group_order.group_order import GroupOrder
from group_orders.persistence import get_store
from group_orders.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class LedgerSnapshot:
    ledger_id: str
    stage: str
    stage_label: str
    stage_color: str
    total_payable: Decimal
    total_paid: Decimal
    outstanding: Decimal
    progress_percentage: Decimal
    disputed: bool
    disputed_by: str | None
    paid_by_stage: dict[str, Decimal]


@dataclass(frozen=True)
class ItemSnapshot:
    item_id: str
    garment_type: str
    family_member_name: str | None
    base_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    delivery_priority: int
    status: str
    estimated_delivery: datetime | None
    actual_delivery: datetime | None
    ledger: LedgerSnapshot | None


@dataclass(frozen=True)
class ScheduleSnapshot:
    schedule_id: str
    scheduled_date: datetime
    status: str
    item_ids: tuple[str, ...]
    delivered_item_ids: tuple[str, ...]
    notes: str | None
    actual_delivery_date: datetime | None
    failure_reason: str | None


@dataclass(frozen=True)
class GroupOrderSnapshot:
    group_order_id: str
    group_order_number: str
    group_name: str
    organizer_id: str
    event_type: str | None
    event_date: datetime | None
    payment_mode: str
    delivery_strategy: str
    status: str
    payment_due_date: datetime | None
    revision: int
    items: tuple[ItemSnapshot, ...]
    discount: BulkDiscountResult
    estimated_discount: BulkDiscountResult
    payment: PaymentSummary
    payers: tuple[PayerSummary, ...]
    schedules: tuple[ScheduleSnapshot, ...]
    progress: dict[str, int]


def _ledger_snapshot(ledger) -> LedgerSnapshot:
    display = display_for(ledger.current_stage)
    return LedgerSnapshot(
        ledger_id=str(ledger.id),
        stage=ledger.stage,
        stage_label=display.label,
        stage_color=display.color,
        total_payable=ledger.total_payable,
        total_paid=ledger.total_paid,
        outstanding=ledger.outstanding,
        progress_percentage=ledger.progress_percentage(),
        disputed=bool(ledger.disputed),
        disputed_by=ledger.disputed_by,
        paid_by_stage={stage.value: ledger.paid_at(stage) for stage in PAYABLE_STAGES},
    )


def _schedule_snapshot(schedule) -> ScheduleSnapshot:
    return ScheduleSnapshot(
        schedule_id=str(schedule.id),
        scheduled_date=schedule.scheduled_date,
        status=schedule.status,
        item_ids=tuple(schedule.item_id_list),
        delivered_item_ids=tuple(schedule.delivered_id_list),
        notes=schedule.notes,
        actual_delivery_date=schedule.actual_delivery_date,
        failure_reason=schedule.failure_reason,
    )


class GroupOrderAggregateService:
    """Sequences calls into the core components and persists the results."""

    def __init__(self, store=None, gateway=None) -> None:
        self._store = store
        self._gateway = gateway

    @property
    def store(self):
        return self._store or get_store()

    @property
    def gateway(self):
        return self._gateway or get_gateway()

    # -------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------
    def _coordinator(self, group_order_id: str) -> GroupPaymentCoordinator:
        group = self.store.load_group_order(group_order_id)
        return GroupPaymentCoordinator(group, self.store.load_ledgers(group_order_id))

    def _reconciler(self, group_order_id: str) -> DeliveryScheduleReconciler:
        group = self.store.load_group_order(group_order_id)
        return DeliveryScheduleReconciler(group, self.store.load_schedules(group_order_id))

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def snapshot(self, group_order_id: str, as_of: datetime | None = None) -> GroupOrderSnapshot:
        group = self.store.load_group_order(group_order_id)
        coordinator = GroupPaymentCoordinator(group, self.store.load_ledgers(group_order_id))
        schedules = self.store.load_schedules(group_order_id)
        ledgers = {str(ledger.order_item_id): ledger for ledger in coordinator.ledgers}

        items = tuple(
            ItemSnapshot(
                item_id=str(item.id),
                garment_type=item.garment_type,
                family_member_name=item.family_member_name,
                base_amount=item.base_amount,
                discount_amount=item.discount_amount,
                final_amount=item.final_amount,
                delivery_priority=item.delivery_priority,
                status=item.status,
                estimated_delivery=item.estimated_delivery,
                actual_delivery=item.actual_delivery,
                ledger=_ledger_snapshot(ledgers[str(item.id)]) if str(item.id) in ledgers else None,
            )
            for item in group.ordered_items
        )
        active_count = len(group.active_items)

        return GroupOrderSnapshot(
            group_order_id=str(group.id),
            group_order_number=group.group_order_number,
            group_name=group.group_name,
            organizer_id=str(group.organizer_id),
            event_type=group.event_type,
            event_date=group.event_date,
            payment_mode=group.payment_mode,
            delivery_strategy=group.delivery_strategy,
            status=group.status,
            payment_due_date=group.payment_due_date,
            revision=group.revision or 0,
            items=items,
            discount=group.discount_result(),
            estimated_discount=estimate_discount(active_count),
            payment=coordinator.summary(),
            payers=tuple(coordinator.payer_summaries(as_of)),
            schedules=tuple(_schedule_snapshot(schedule) for schedule in schedules),
            progress=group.progress_summary(),
        )

    def required_amount(self, group_order_id: str, item_ids: list[str], stage) -> Decimal:
        return self._coordinator(group_order_id).required_amount(item_ids, stage)

    def payer_summary(self, group_order_id: str, payer_id: str, as_of: datetime | None = None) -> PayerSummary:
        return self._coordinator(group_order_id).payer_summary(payer_id, as_of)

    def discrepancies(self, group_order_id: str) -> list[LedgerDiscrepancy]:
        return self._coordinator(group_order_id).discrepancies()

    # -------------------------------------------------------------------
    # Group setup
    # -------------------------------------------------------------------
    def create_group_order(
        self,
        group_name: str,
        organizer_id: str,
        payment_mode: str = "SINGLE_PAYER",
        delivery_strategy: str = "ALL_TOGETHER",
        event_type: str | None = None,
        event_date: datetime | None = None,
        payment_due_date: datetime | None = None,
        coordination_notes: str | None = None,
    ) -> GroupOrderSnapshot:
        group = GroupOrder.create(
            group_name=group_name,
            organizer_id=organizer_id,
            payment_mode=payment_mode,
            delivery_strategy=delivery_strategy,
            event_type=event_type,
            event_date=event_date,
            payment_due_date=payment_due_date,
            coordination_notes=coordination_notes,
        )
        self.store.save_group_order(group)
        logger.info("group_order_created", group_order_id=str(group.id), organizer_id=organizer_id)
        return self.snapshot(str(group.id))

    def add_item(
        self,
        group_order_id: str,
        garment_type: str,
        base_amount,
        delivery_priority: int | None = None,
        family_member_name: str | None = None,
        estimated_delivery: datetime | None = None,
    ) -> GroupOrderSnapshot:
        group = self.store.load_group_order(group_order_id)
        item = group.add_item(
            garment_type=garment_type,
            base_amount=base_amount,
            delivery_priority=delivery_priority,
            family_member_name=family_member_name,
            estimated_delivery=estimated_delivery,
        )
        self.store.save_group_order(group)
        logger.info("group_order_item_added", group_order_id=group_order_id, item_id=str(item.id))
        return self.snapshot(group_order_id)

    def assign_payer(
        self,
        group_order_id: str,
        payer_id: str,
        payer_name: str,
        item_ids: list[str],
    ) -> GroupOrderSnapshot:
        group = self.store.load_group_order(group_order_id)
        group.assign_payer(payer_id, payer_name, item_ids)
        self.store.save_group_order(group)
        return self.snapshot(group_order_id)

    def confirm(self, group_order_id: str) -> GroupOrderSnapshot:
        """Price the items, lock the group and open a ledger per item."""
        coordinator = self._coordinator(group_order_id)
        result = coordinator.group.confirm()
        opened = coordinator.attach()
        self.store.save_changes(group_order=coordinator.group, ledgers=opened)
        logger.info(
            "group_order_confirmed",
            group_order_id=group_order_id,
            discount_percentage=result.discount_percentage,
            discounted_total=str(result.discounted_total),
        )
        return self.snapshot(group_order_id)

    def cancel_group_order(self, group_order_id: str, reason: str) -> GroupOrderSnapshot:
        group = self.store.load_group_order(group_order_id)
        group.cancel(reason)
        self.store.save_group_order(group)
        return self.snapshot(group_order_id)

    # -------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------
    def record_payment(
        self,
        group_order_id: str,
        item_ids: list[str],
        amount,
        stage,
        payer_id: str | None = None,
        reference: str | None = None,
    ) -> GroupOrderSnapshot:
        coordinator = self._coordinator(group_order_id)
        credited = coordinator.record_group_payment(item_ids, amount, stage, payer_id=payer_id, reference=reference)
        self.store.save_ledgers(credited)
        return self.snapshot(group_order_id)

    def pay(
        self,
        group_order_id: str,
        item_ids: list[str],
        stage,
        payer_id: str,
        method: str,
        amount=None,
    ) -> GroupOrderSnapshot:
        """Charge the payer through the gateway, then credit the ledgers.

        Without ``amount`` the exact amount due for ``item_ids`` at ``stage``
        is charged. A declined charge leaves every ledger untouched. A charge
        that succeeds but loses the ledger save to a concurrent writer raises
        PaymentNotRecordedError carrying the gateway reference.
        """
        coordinator = self._coordinator(group_order_id)
        if amount is None:
            amount = coordinator.required_amount(item_ids, stage)
        parsed = coordinator.check_group_payment(item_ids, amount, stage, payer_id)

        result = self.gateway.attempt_charge(payer_id, parsed, method)
        if not result.success:
            logger.warning(
                "payment_declined",
                group_order_id=group_order_id,
                payer_id=payer_id,
                amount=str(parsed),
                failure_reason=result.failure_reason,
            )
            raise PaymentDeclinedError(payer_id, parsed, result)

        credited = coordinator.record_group_payment(
            item_ids, parsed, stage, payer_id=payer_id, reference=result.reference
        )
        try:
            self.store.save_ledgers(credited)
        except ConcurrentModificationError as exc:
            logger.error(
                "charge_not_recorded",
                group_order_id=group_order_id,
                payer_id=payer_id,
                amount=str(parsed),
                reference=result.reference,
                entity_id=exc.entity_id,
            )
            raise PaymentNotRecordedError(payer_id, parsed, result, exc) from exc
        return self.snapshot(group_order_id)

    def advance_stage(self, group_order_id: str, item_id: str, actor: str = "system") -> GroupOrderSnapshot:
        coordinator = self._coordinator(group_order_id)
        coordinator.advance_stage(item_id, actor)
        self.store.save_changes(group_order=coordinator.group, ledgers=[coordinator.ledger_for(item_id)])
        return self.snapshot(group_order_id)

    def flag_dispute(
        self,
        group_order_id: str,
        item_id: str,
        actor: str,
        reason: str | None = None,
    ) -> GroupOrderSnapshot:
        ledger = self._coordinator(group_order_id).ledger_for(item_id)
        ledger.flag_dispute(actor, reason)
        self.store.save_ledger(ledger)
        logger.warning("escrow_dispute_flagged", group_order_id=group_order_id, item_id=item_id, actor=actor)
        return self.snapshot(group_order_id)

    def clear_dispute(self, group_order_id: str, item_id: str, actor: str) -> GroupOrderSnapshot:
        ledger = self._coordinator(group_order_id).ledger_for(item_id)
        ledger.clear_dispute(actor)
        self.store.save_ledger(ledger)
        logger.info("escrow_dispute_cleared", group_order_id=group_order_id, item_id=item_id, actor=actor)
        return self.snapshot(group_order_id)

    # -------------------------------------------------------------------
    # Item lifecycle
    # -------------------------------------------------------------------
    def update_item_status(
        self,
        group_order_id: str,
        item_id: str,
        status: str,
        reason: str | None = None,
    ) -> GroupOrderSnapshot:
        group = self.store.load_group_order(group_order_id)
        group.update_item_status(item_id, status, reason)
        self.store.save_group_order(group)
        return self.snapshot(group_order_id)

    def resolve_item_dispute(self, group_order_id: str, item_id: str) -> GroupOrderSnapshot:
        group = self.store.load_group_order(group_order_id)
        group.resolve_item_dispute(item_id)
        self.store.save_group_order(group)
        return self.snapshot(group_order_id)

    def cancel_item(self, group_order_id: str, item_id: str, reason: str) -> GroupOrderSnapshot:
        group = self.store.load_group_order(group_order_id)
        group.cancel_item(item_id, reason)
        self.store.save_group_order(group)
        logger.info("group_order_item_cancelled", group_order_id=group_order_id, item_id=item_id)
        return self.snapshot(group_order_id)

    # -------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------
    def propose_schedule(
        self,
        group_order_id: str,
        item_ids: list[str],
        scheduled_date: datetime,
        notes: str | None = None,
    ) -> GroupOrderSnapshot:
        schedule = self._reconciler(group_order_id).propose_schedule(item_ids, scheduled_date, notes)
        self.store.save_schedule(schedule)
        return self.snapshot(group_order_id)

    def propose_default_schedule(
        self,
        group_order_id: str,
        scheduled_date: datetime,
        notes: str | None = None,
    ) -> GroupOrderSnapshot:
        schedule = self._reconciler(group_order_id).propose_default(scheduled_date, notes)
        self.store.save_schedule(schedule)
        return self.snapshot(group_order_id)

    def mark_schedule_ready(self, group_order_id: str, schedule_id: str) -> GroupOrderSnapshot:
        self.store.save_schedule(self._reconciler(group_order_id).mark_ready(schedule_id))
        return self.snapshot(group_order_id)

    def dispatch_schedule(self, group_order_id: str, schedule_id: str) -> GroupOrderSnapshot:
        self.store.save_schedule(self._reconciler(group_order_id).dispatch(schedule_id))
        return self.snapshot(group_order_id)

    def mark_schedule_failed(self, group_order_id: str, schedule_id: str, reason: str) -> GroupOrderSnapshot:
        self.store.save_schedule(self._reconciler(group_order_id).mark_failed(schedule_id, reason))
        return self.snapshot(group_order_id)

    def mark_schedule_delivered(
        self,
        group_order_id: str,
        schedule_id: str,
        actual_delivery_timestamps: dict[str, datetime] | None = None,
    ) -> GroupOrderSnapshot:
        reconciler = self._reconciler(group_order_id)
        schedule = reconciler.mark_delivered(schedule_id, actual_delivery_timestamps)
        self.store.save_changes(group_order=reconciler.group, schedules=[schedule])
        return self.snapshot(group_order_id)

