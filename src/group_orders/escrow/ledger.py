"""EscrowLedger aggregate (CQRS) — staged payment state for one order item.

Every priced order item owns exactly one ledger. Funds are collected in three
fixed phases and released to the tailor once the last phase is paid.

State Machine:
    DEPOSIT (25%) → FITTING (50%) → FINAL (25%) → RELEASED

A stage only advances once its share has been paid in full. Payments are
accepted for the current stage only and never clamped: an amount that would
overshoot the stage share is rejected outright. A dispute flag, raised and
cleared by an external moderator, freezes advancement without touching the
amounts paid. Once RELEASED the ledger is immutable.
"""

from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, HasMany, Identifier, Integer, String

from group_orders.domain import group_orders
from group_orders.errors import (
    InvalidStageError,
    LedgerDisputedError,
    OverpaymentError,
    StageNotReadyError,
)
from group_orders.escrow.events import (
    EscrowDisputeCleared,
    EscrowDisputeFlagged,
    EscrowLedgerOpened,
    EscrowPaymentRecorded,
    EscrowStageAdvanced,
)
from group_orders.shared.money import CENT, ZERO, from_minor, parse_amount, to_minor, to_money


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class EscrowStage(Enum):
    DEPOSIT = "DEPOSIT"
    FITTING = "FITTING"
    FINAL = "FINAL"
    RELEASED = "RELEASED"


PAYABLE_STAGES = (EscrowStage.DEPOSIT, EscrowStage.FITTING, EscrowStage.FINAL)

# Percentage of the item total collected at each stage
STAGE_WEIGHTS = {
    EscrowStage.DEPOSIT: Decimal("25"),
    EscrowStage.FITTING: Decimal("50"),
    EscrowStage.FINAL: Decimal("25"),
}

_NEXT_STAGE = {
    EscrowStage.DEPOSIT: EscrowStage.FITTING,
    EscrowStage.FITTING: EscrowStage.FINAL,
    EscrowStage.FINAL: EscrowStage.RELEASED,
}

_PAID_FIELDS = {
    EscrowStage.DEPOSIT: "deposit_paid_minor",
    EscrowStage.FITTING: "fitting_paid_minor",
    EscrowStage.FINAL: "final_paid_minor",
}


def coerce_stage(value) -> EscrowStage:
    """Accept an EscrowStage or its value; anything else is a validation error."""
    try:
        return EscrowStage(value.value if isinstance(value, EscrowStage) else value)
    except ValueError as exc:
        raise ValidationError({"stage": [f"Unknown escrow stage: {value!r}"]}) from exc


def stage_shares(total: Decimal) -> dict[EscrowStage, Decimal]:
    """Split ``total`` into deposit/fitting/final shares that sum exactly to it.

    Deposit and fitting are rounded half-up; final takes the remainder.
    """
    deposit = to_money(total * STAGE_WEIGHTS[EscrowStage.DEPOSIT] / 100)
    fitting = to_money(total * STAGE_WEIGHTS[EscrowStage.FITTING] / 100)
    return {
        EscrowStage.DEPOSIT: deposit,
        EscrowStage.FITTING: fitting,
        EscrowStage.FINAL: total - deposit - fitting,
    }


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@group_orders.entity(part_of="EscrowLedger")
class StageTransition:
    """One forward move of the ledger's stage."""

    sequence = Integer(required=True, min_value=1)
    from_stage = String(max_length=20, required=True, choices=EscrowStage)
    to_stage = String(max_length=20, required=True, choices=EscrowStage)
    actor = String(max_length=255, required=True)
    transitioned_at = DateTime(required=True)


@group_orders.entity(part_of="EscrowLedger")
class LedgerPayment:
    """A payment credited to one stage, kept for reconciliation."""

    sequence = Integer(required=True, min_value=1)
    stage = String(max_length=20, required=True, choices=EscrowStage)
    amount_minor = Integer(required=True, min_value=1)
    payer_id = String(max_length=255)
    reference = String(max_length=255)
    recorded_at = DateTime(required=True)

    @property
    def amount(self) -> Decimal:
        return from_minor(self.amount_minor)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@group_orders.aggregate
class EscrowLedger:
    order_item_id = Identifier(required=True)
    group_order_id = Identifier()
    total_payable_minor = Integer(required=True, min_value=0)
    deposit_paid_minor = Integer(default=0, min_value=0)
    fitting_paid_minor = Integer(default=0, min_value=0)
    final_paid_minor = Integer(default=0, min_value=0)
    stage = String(max_length=20, choices=EscrowStage, default=EscrowStage.DEPOSIT.value)
    disputed = Boolean(default=False)
    disputed_by = String(max_length=255)
    dispute_reason = String(max_length=500)
    transitions = HasMany(StageTransition)
    payments = HasMany(LedgerPayment)
    revision = Integer(default=0)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def phase_payments_never_exceed_their_share(self):
        if self.total_payable_minor is None:
            return
        shares = stage_shares(self.total_payable)
        for stage in PAYABLE_STAGES:
            if self.paid_at(stage) > shares[stage]:
                raise ValidationError(
                    {"ledger": [f"Paid {self.paid_at(stage)} at {stage.value} exceeds its share {shares[stage]}"]}
                )
        if self.total_paid > self.total_payable:
            raise ValidationError({"ledger": [f"Paid {self.total_paid} exceeds total payable {self.total_payable}"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def open(cls, order_item_id: str, total_payable, group_order_id: str | None = None):
        """Open a ledger for a priced item; ``total_payable`` is post-discount."""
        total = parse_amount(total_payable, field="total_payable", allow_zero=True)
        now = datetime.now(UTC)
        ledger = cls(
            order_item_id=order_item_id,
            group_order_id=group_order_id,
            total_payable_minor=to_minor(total),
            stage=EscrowStage.DEPOSIT.value,
            created_at=now,
            updated_at=now,
        )
        ledger.raise_(
            EscrowLedgerOpened(
                ledger_id=str(ledger.id),
                order_item_id=order_item_id,
                group_order_id=group_order_id,
                total_payable=str(total),
                opened_at=now,
            )
        )
        return ledger

    # -------------------------------------------------------------------
    # Derived reads
    # -------------------------------------------------------------------
    @property
    def current_stage(self) -> EscrowStage:
        return EscrowStage(self.stage)

    @property
    def is_released(self) -> bool:
        return self.current_stage == EscrowStage.RELEASED

    @property
    def total_payable(self) -> Decimal:
        return from_minor(self.total_payable_minor)

    @property
    def total_paid(self) -> Decimal:
        return sum((self.paid_at(stage) for stage in PAYABLE_STAGES), ZERO)

    @property
    def outstanding(self) -> Decimal:
        return self.total_payable - self.total_paid

    @property
    def history(self) -> list:
        return sorted(self.transitions or [], key=lambda t: t.sequence)

    @property
    def payment_records(self) -> list:
        return sorted(self.payments or [], key=lambda p: p.sequence)

    def paid_at(self, stage: EscrowStage) -> Decimal:
        if stage not in _PAID_FIELDS:
            return ZERO
        return from_minor(getattr(self, _PAID_FIELDS[stage]))

    def share_for(self, stage: EscrowStage) -> Decimal:
        if stage not in PAYABLE_STAGES:
            return ZERO
        return stage_shares(self.total_payable)[stage]

    def remaining_at(self, stage: EscrowStage) -> Decimal:
        return self.share_for(stage) - self.paid_at(stage)

    def is_stage_complete(self, stage: EscrowStage) -> bool:
        return stage in PAYABLE_STAGES and self.remaining_at(stage) == ZERO

    def progress_percentage(self) -> Decimal:
        """Continuous 0–100 progress: full weight for paid stages, pro rata for the rest."""
        if self.is_released:
            return Decimal("100.00")
        progress = ZERO
        reached = PAYABLE_STAGES.index(self.current_stage)
        for position, stage in enumerate(PAYABLE_STAGES):
            share = self.share_for(stage)
            if share == ZERO:
                # Empty shares count once the ledger has moved past them
                fraction = Decimal(1) if position < reached else ZERO
            else:
                fraction = min(self.paid_at(stage) / share, Decimal(1))
            progress += STAGE_WEIGHTS[stage] * fraction
        return progress.quantize(CENT)

    # -------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------
    def check_payment(self, stage: EscrowStage, amount) -> Decimal:
        """Validate a payment without applying it; returns the parsed amount."""
        stage = coerce_stage(stage)
        parsed = parse_amount(amount)
        current = self.current_stage
        if current == EscrowStage.RELEASED or stage != current:
            raise InvalidStageError(str(self.id), current.value, stage.value)
        remaining = self.remaining_at(stage)
        if parsed > remaining:
            raise OverpaymentError(str(self.id), stage.value, remaining, parsed)
        return parsed

    def record_payment(
        self,
        stage: EscrowStage,
        amount,
        payer_id: str | None = None,
        reference: str | None = None,
    ) -> None:
        """Credit ``amount`` to the current stage."""
        stage = coerce_stage(stage)
        parsed = self.check_payment(stage, amount)

        now = datetime.now(UTC)
        paid = self.paid_at(stage) + parsed
        setattr(self, _PAID_FIELDS[stage], to_minor(paid))
        self.add_payments(
            LedgerPayment(
                sequence=len(self.payments or []) + 1,
                stage=stage.value,
                amount_minor=to_minor(parsed),
                payer_id=payer_id or "",
                reference=reference or "",
                recorded_at=now,
            )
        )
        self.updated_at = now
        self.raise_(
            EscrowPaymentRecorded(
                ledger_id=str(self.id),
                order_item_id=str(self.order_item_id),
                stage=stage.value,
                amount=str(parsed),
                paid_at_stage=str(paid),
                payer_id=payer_id or "",
                reference=reference or "",
                recorded_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Stage advancement
    # -------------------------------------------------------------------
    def advance_stage(self, actor: str = "system") -> EscrowStage:
        """Move to the next stage once the current one is paid in full."""
        current = self.current_stage
        if current == EscrowStage.RELEASED:
            raise InvalidStageError(str(self.id), current.value)
        if self.disputed:
            raise LedgerDisputedError(str(self.id), current.value, self.disputed_by)
        remaining = self.remaining_at(current)
        if remaining > ZERO:
            raise StageNotReadyError(str(self.id), current.value, remaining)

        target = _NEXT_STAGE[current]
        now = datetime.now(UTC)
        self.stage = target.value
        self.add_transitions(
            StageTransition(
                sequence=len(self.transitions or []) + 1,
                from_stage=current.value,
                to_stage=target.value,
                actor=actor,
                transitioned_at=now,
            )
        )
        self.updated_at = now
        self.raise_(
            EscrowStageAdvanced(
                ledger_id=str(self.id),
                order_item_id=str(self.order_item_id),
                from_stage=current.value,
                to_stage=target.value,
                actor=actor,
                advanced_at=now,
            )
        )
        return target

    # -------------------------------------------------------------------
    # Disputes
    # -------------------------------------------------------------------
    def flag_dispute(self, actor: str, reason: str | None = None) -> None:
        if self.is_released:
            raise InvalidStageError(str(self.id), self.stage)
        if self.disputed:
            raise ValidationError({"ledger": [f"Ledger is already under dispute raised by {self.disputed_by}"]})

        now = datetime.now(UTC)
        self.disputed = True
        self.disputed_by = actor
        self.dispute_reason = reason or ""
        self.updated_at = now
        self.raise_(
            EscrowDisputeFlagged(
                ledger_id=str(self.id),
                order_item_id=str(self.order_item_id),
                stage=self.stage,
                actor=actor,
                reason=reason or "",
                flagged_at=now,
            )
        )

    def clear_dispute(self, actor: str) -> None:
        if not self.disputed:
            raise ValidationError({"ledger": ["Ledger is not under dispute"]})
        if actor != self.disputed_by:
            raise ValidationError({"ledger": [f"Only {self.disputed_by} can clear this dispute"]})

        now = datetime.now(UTC)
        self.disputed = False
        self.disputed_by = None
        self.dispute_reason = None
        self.updated_at = now
        self.raise_(
            EscrowDisputeCleared(
                ledger_id=str(self.id),
                order_item_id=str(self.order_item_id),
                actor=actor,
                cleared_at=now,
            )
        )
