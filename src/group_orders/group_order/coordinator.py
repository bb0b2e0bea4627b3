"""Group payment coordination across the escrow ledgers of one group order.

The coordinator works on already-loaded aggregates: a GroupOrder and the
ledgers attached to its items. It never persists anything itself; the
aggregate service saves whatever the coordinator hands back.

Payer totals are always recomputed from ledger state, never stored.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum

from protean.exceptions import ValidationError

from group_orders.errors import InvalidStageError, LedgerAlreadyAttachedError, PaymentMismatchError
from group_orders.escrow.ledger import PAYABLE_STAGES, EscrowLedger, EscrowStage, coerce_stage
from group_orders.group_order.group_order import GroupOrderStatus, ItemStatus
from group_orders.shared.money import CENT, ZERO, parse_amount
from group_orders.utils.logging import get_logger

logger = get_logger(__name__)

_STAGE_ORDER = {stage: position for position, stage in enumerate(EscrowStage)}


class PayerStatus(Enum):
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    COMPLETED = "COMPLETED"
    OVERDUE = "OVERDUE"


@dataclass(frozen=True)
class PaymentSummary:
    total_payable: Decimal
    total_paid: Decimal
    outstanding: Decimal
    progress_percentage: Decimal
    ledger_count: int
    released_count: int
    paid_by_stage: dict[str, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class PayerSummary:
    payer_id: str
    payer_name: str
    item_ids: tuple[str, ...]
    total_responsible: Decimal
    paid: Decimal
    outstanding: Decimal
    status: PayerStatus
    paid_by_stage: dict[str, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class LedgerDiscrepancy:
    ledger_id: str
    order_item_id: str
    errors: tuple[str, ...]

    @property
    def severity(self) -> str:
        return "high" if len(self.errors) > 2 else "medium"


def _percentage(part: Decimal, whole: Decimal) -> Decimal:
    if whole == ZERO:
        return Decimal("100.00")
    return (part / whole * 100).quantize(CENT)


class GroupPaymentCoordinator:
    """Aggregate payment state for a group order and its ledgers."""

    def __init__(self, group, ledgers=None) -> None:
        self.group = group
        self.ledgers: list[EscrowLedger] = list(ledgers or [])

    # -------------------------------------------------------------------
    # Ledger lookup
    # -------------------------------------------------------------------
    def _ledgers_by_item(self) -> dict[str, EscrowLedger]:
        return {str(ledger.order_item_id): ledger for ledger in self.ledgers}

    def ledger_for(self, item_id: str) -> EscrowLedger:
        ledger = self._ledgers_by_item().get(str(item_id))
        if ledger is None:
            raise ValidationError({"item_id": [f"No escrow ledger attached for item {item_id}"]})
        return ledger

    def _selected(self, item_ids: list[str]) -> list[EscrowLedger]:
        if not item_ids:
            raise ValidationError({"item_ids": ["At least one item is required"]})
        wanted = [str(i) for i in item_ids]
        if len(set(wanted)) != len(wanted):
            raise ValidationError({"item_ids": ["Duplicate item ids"]})
        return [self.ledger_for(item_id) for item_id in wanted]

    # -------------------------------------------------------------------
    # Attachment
    # -------------------------------------------------------------------
    def attach(self, items=None) -> list[EscrowLedger]:
        """Open one ledger per item at its final (post-discount) amount.

        Defaults to every active item. Nothing is opened if any item
        already has a ledger.
        """
        items = self.group.active_items if items is None else list(items)
        attached = self._ledgers_by_item()
        duplicates = [str(item.id) for item in items if str(item.id) in attached]
        if duplicates:
            raise LedgerAlreadyAttachedError(duplicates)

        opened = [
            EscrowLedger.open(
                order_item_id=str(item.id),
                total_payable=item.final_amount,
                group_order_id=str(self.group.id),
            )
            for item in items
        ]
        self.ledgers.extend(opened)
        logger.info(
            "escrow_ledgers_attached",
            group_order_id=str(self.group.id),
            ledger_count=len(opened),
        )
        return opened

    # -------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------
    def required_amount(self, item_ids: list[str], stage) -> Decimal:
        """What a payment for ``item_ids`` at ``stage`` must be, to the penny."""
        stage = coerce_stage(stage)
        return sum((ledger.remaining_at(stage) for ledger in self._selected(item_ids)), ZERO)

    def _assert_payer_may_cover(self, payer_id: str | None, item_ids: list[str]) -> None:
        if not self.group.is_split_payment or payer_id is None:
            return
        if str(payer_id) == str(self.group.organizer_id):
            return
        responsibility = self.group.responsibility_for(payer_id)
        covered = set(responsibility.item_id_list) if responsibility else set()
        foreign = [str(i) for i in item_ids if str(i) not in covered]
        if foreign:
            raise ValidationError(
                {"payer_id": [f"Payer {payer_id} is not responsible for item(s): {', '.join(foreign)}"]}
            )

    def check_group_payment(
        self,
        item_ids: list[str],
        amount,
        stage,
        payer_id: str | None = None,
    ) -> Decimal:
        """Validate a group payment without applying it; returns the parsed amount."""
        stage = coerce_stage(stage)
        parsed = parse_amount(amount)
        ledgers = self._selected(item_ids)

        if self.group.status != GroupOrderStatus.CONFIRMED.value:
            raise ValidationError({"status": ["Payments are accepted once the group order is confirmed"]})
        cancelled = [str(i) for i in item_ids if self.group.item(i).status == ItemStatus.CANCELLED.value]
        if cancelled:
            raise ValidationError({"item_ids": [f"Cancelled item(s) cannot receive payments: {', '.join(cancelled)}"]})
        self._assert_payer_may_cover(payer_id, item_ids)

        for ledger in ledgers:
            if ledger.is_released or ledger.current_stage != stage:
                raise InvalidStageError(str(ledger.id), ledger.stage, stage.value)

        expected = sum((ledger.remaining_at(stage) for ledger in ledgers), ZERO)
        if parsed != expected:
            raise PaymentMismatchError(stage.value, expected, parsed, [str(i) for i in item_ids])
        return parsed

    def record_group_payment(
        self,
        item_ids: list[str],
        amount,
        stage,
        payer_id: str | None = None,
        reference: str | None = None,
    ) -> list[EscrowLedger]:
        """Credit one payment across several items at the same stage.

        Every ledger is validated before any is touched; the amount must
        equal the sum of each item's remaining share at ``stage``. Returns
        the ledgers that received money.
        """
        stage = coerce_stage(stage)
        parsed = self.check_group_payment(item_ids, amount, stage, payer_id)
        ledgers = self._selected(item_ids)

        credited = []
        for ledger in ledgers:
            share = ledger.remaining_at(stage)
            if share == ZERO:
                continue
            ledger.record_payment(stage, share, payer_id=payer_id, reference=reference)
            credited.append(ledger)

        logger.info(
            "group_payment_recorded",
            group_order_id=str(self.group.id),
            stage=stage.value,
            amount=str(parsed),
            payer_id=payer_id,
            item_count=len(ledgers),
        )
        return credited

    def advance_stage(self, item_id: str, actor: str = "system") -> EscrowStage:
        """Advance one item's ledger; a closed deposit moves a PENDING item on."""
        ledger = self.ledger_for(item_id)
        if self.group.item(item_id).status == ItemStatus.CANCELLED.value:
            raise ValidationError({"item_id": [f"Item {item_id} is cancelled"]})
        target = ledger.advance_stage(actor)
        if target == EscrowStage.FITTING:
            self.group.mark_deposit_paid(item_id)
        logger.info(
            "escrow_stage_advanced",
            group_order_id=str(self.group.id),
            item_id=str(item_id),
            stage=target.value,
            actor=actor,
        )
        return target

    # -------------------------------------------------------------------
    # Summaries
    # -------------------------------------------------------------------
    def summary(self) -> PaymentSummary:
        total = sum((ledger.total_payable for ledger in self.ledgers), ZERO)
        paid = sum((ledger.total_paid for ledger in self.ledgers), ZERO)
        by_stage = {
            stage.value: sum((ledger.paid_at(stage) for ledger in self.ledgers), ZERO) for stage in PAYABLE_STAGES
        }
        return PaymentSummary(
            total_payable=total,
            total_paid=paid,
            outstanding=total - paid,
            progress_percentage=_percentage(paid, total) if self.ledgers else ZERO,
            ledger_count=len(self.ledgers),
            released_count=sum(1 for ledger in self.ledgers if ledger.is_released),
            paid_by_stage=by_stage,
        )

    def _payer_summary(self, payer_id: str, payer_name: str, item_ids: list[str], as_of: datetime) -> PayerSummary:
        attached = self._ledgers_by_item()
        ledgers = [attached[i] for i in item_ids if i in attached]
        total = sum((ledger.total_payable for ledger in ledgers), ZERO)
        paid = sum((ledger.total_paid for ledger in ledgers), ZERO)
        outstanding = total - paid

        due = self.group.payment_due_date
        if due is not None and due.tzinfo is None:
            due = due.replace(tzinfo=UTC)
        if outstanding > ZERO and due is not None and as_of > due:
            status = PayerStatus.OVERDUE
        elif outstanding == ZERO and ledgers:
            status = PayerStatus.COMPLETED
        elif paid == ZERO:
            status = PayerStatus.PENDING
        else:
            status = PayerStatus.PARTIAL

        return PayerSummary(
            payer_id=payer_id,
            payer_name=payer_name,
            item_ids=tuple(item_ids),
            total_responsible=total,
            paid=paid,
            outstanding=outstanding,
            status=status,
            paid_by_stage={
                stage.value: sum((ledger.paid_at(stage) for ledger in ledgers), ZERO) for stage in PAYABLE_STAGES
            },
        )

    def payer_summaries(self, as_of: datetime | None = None) -> list[PayerSummary]:
        as_of = as_of or datetime.now(UTC)
        if as_of.tzinfo is None:
            as_of = as_of.replace(tzinfo=UTC)
        return [
            self._payer_summary(payer_id, payer_name, item_ids, as_of)
            for payer_id, payer_name, item_ids in self.group.responsibilities()
        ]

    def payer_summary(self, payer_id: str, as_of: datetime | None = None) -> PayerSummary:
        for summary in self.payer_summaries(as_of):
            if summary.payer_id == str(payer_id):
                return summary
        raise ValidationError({"payer_id": [f"Payer {payer_id} has no responsibility in this group order"]})

    # -------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------
    def discrepancies(self) -> list[LedgerDiscrepancy]:
        """Ledgers whose payment records or stage do not agree with their totals."""
        found = []
        for ledger in self.ledgers:
            errors = []
            for stage in PAYABLE_STAGES:
                recorded = sum((p.amount for p in ledger.payment_records if p.stage == stage.value), ZERO)
                if recorded != ledger.paid_at(stage):
                    errors.append(f"{stage.value} records total {recorded} but ledger shows {ledger.paid_at(stage)}")
                if _STAGE_ORDER[ledger.current_stage] > _STAGE_ORDER[stage] and not ledger.is_stage_complete(stage):
                    errors.append(f"Ledger is past {stage.value} with {ledger.remaining_at(stage)} unpaid")
            if ledger.is_released and ledger.outstanding != ZERO:
                errors.append(f"Released ledger still has {ledger.outstanding} outstanding")
            if errors:
                found.append(
                    LedgerDiscrepancy(
                        ledger_id=str(ledger.id),
                        order_item_id=str(ledger.order_item_id),
                        errors=tuple(errors),
                    )
                )
        return found
