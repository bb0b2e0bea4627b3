"""Error taxonomy for the Group Orders domain.

Exception Hierarchy:
    protean ValidationError
    ├── OverpaymentError            - payment exceeds a stage's share
    ├── PaymentMismatchError        - group payment does not reconcile to the penny
    ├── InvalidStageError           - payment or advance targets the wrong stage
    ├── StageNotReadyError          - current stage not fully paid
    │   └── LedgerDisputedError     - advance blocked by an open dispute
    ├── LedgerAlreadyAttachedError  - item already has an escrow ledger
    ├── ItemNotDeliverableError     - item status does not allow scheduling
    └── ItemAlreadyScheduledError   - item claimed by another live schedule
    GroupOrderError
    ├── ConcurrentModificationError - stale revision on save
    ├── PaymentDeclinedError        - gateway refused the charge
    └── PaymentNotRecordedError     - charge taken but the ledger save lost a race

Invariant errors keep protean's ``messages`` dict (keyed by the entity that
failed) and expose the numbers a caller needs for a corrective retry as
attributes.
"""

from decimal import Decimal

from protean.exceptions import ValidationError


class DomainInvariantError(ValidationError):
    """Base for rejected operations that would break a domain invariant."""

    entity = "group_order"

    def __init__(self, message: str, entity_id: str | None = None, **details) -> None:
        self.entity_id = entity_id
        self.details = details
        super().__init__({self.entity: [message]})


class OverpaymentError(DomainInvariantError):
    entity = "ledger"

    def __init__(self, ledger_id: str, stage: str, remaining: Decimal, attempted: Decimal) -> None:
        self.stage = stage
        self.remaining = remaining
        self.attempted = attempted
        super().__init__(
            f"Payment of {attempted} exceeds the {remaining} still due at stage {stage}",
            entity_id=ledger_id,
            stage=stage,
            remaining=str(remaining),
            attempted=str(attempted),
        )


class PaymentMismatchError(DomainInvariantError):
    entity = "payment"

    def __init__(self, stage: str, expected: Decimal, actual: Decimal, item_ids: list[str]) -> None:
        self.stage = stage
        self.expected = expected
        self.actual = actual
        self.item_ids = item_ids
        super().__init__(
            f"Payment of {actual} does not match {expected} due at stage {stage} for {len(item_ids)} item(s)",
            stage=stage,
            expected=str(expected),
            actual=str(actual),
            item_ids=item_ids,
        )


class InvalidStageError(DomainInvariantError):
    entity = "ledger"

    def __init__(self, ledger_id: str, current_stage: str, requested_stage: str | None = None) -> None:
        self.current_stage = current_stage
        self.requested_stage = requested_stage
        if requested_stage is None:
            message = f"Ledger is at terminal stage {current_stage}"
        else:
            message = f"Cannot act on stage {requested_stage} while ledger is at {current_stage}"
        super().__init__(
            message,
            entity_id=ledger_id,
            current_stage=current_stage,
            requested_stage=requested_stage,
        )


class StageNotReadyError(DomainInvariantError):
    entity = "ledger"

    def __init__(self, ledger_id: str, stage: str, remaining: Decimal, message: str | None = None) -> None:
        self.stage = stage
        self.remaining = remaining
        super().__init__(
            message or f"Stage {stage} still has {remaining} outstanding",
            entity_id=ledger_id,
            stage=stage,
            remaining=str(remaining),
        )


class LedgerDisputedError(StageNotReadyError):
    def __init__(self, ledger_id: str, stage: str, disputed_by: str) -> None:
        self.disputed_by = disputed_by
        super().__init__(
            ledger_id,
            stage,
            Decimal("0.00"),
            message=f"Ledger is under dispute raised by {disputed_by}; stage {stage} cannot advance",
        )


class LedgerAlreadyAttachedError(DomainInvariantError):
    entity = "ledger"

    def __init__(self, item_ids: list[str]) -> None:
        self.item_ids = item_ids
        super().__init__(
            f"Escrow ledger already attached for item(s): {', '.join(item_ids)}",
            item_ids=item_ids,
        )


class ItemNotDeliverableError(DomainInvariantError):
    entity = "delivery_schedule"

    def __init__(self, item_statuses: dict[str, str]) -> None:
        self.item_statuses = item_statuses
        listed = ", ".join(f"{item_id} ({status})" for item_id, status in item_statuses.items())
        super().__init__(f"Item(s) not ready for delivery: {listed}", item_statuses=item_statuses)


class ItemAlreadyScheduledError(DomainInvariantError):
    entity = "delivery_schedule"

    def __init__(self, claims: dict[str, str]) -> None:
        self.claims = claims
        listed = ", ".join(f"{item_id} (schedule {schedule_id})" for item_id, schedule_id in claims.items())
        super().__init__(f"Item(s) already scheduled: {listed}", claims=claims)


class GroupOrderError(Exception):
    """Base for failures that are not input or invariant violations."""

    def __init__(self, message: str, **details) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ConcurrentModificationError(GroupOrderError):
    def __init__(self, entity: str, entity_id: str, expected_revision: int, actual_revision: int) -> None:
        self.entity = entity
        self.entity_id = entity_id
        self.expected_revision = expected_revision
        self.actual_revision = actual_revision
        super().__init__(
            f"{entity} {entity_id} was modified concurrently "
            f"(expected revision {expected_revision}, found {actual_revision})",
            entity=entity,
            entity_id=entity_id,
            expected_revision=expected_revision,
            actual_revision=actual_revision,
        )


class PaymentDeclinedError(GroupOrderError):
    def __init__(self, payer_id: str, amount: Decimal, result) -> None:
        self.payer_id = payer_id
        self.amount = amount
        self.result = result
        super().__init__(
            f"Charge of {amount} for payer {payer_id} was declined: {result.failure_reason}",
            payer_id=payer_id,
            amount=str(amount),
            failure_reason=result.failure_reason,
        )


class PaymentNotRecordedError(GroupOrderError):
    """The gateway took the charge but the ledgers could not be saved."""

    def __init__(self, payer_id: str, amount: Decimal, result, cause: ConcurrentModificationError) -> None:
        self.payer_id = payer_id
        self.amount = amount
        self.result = result
        self.cause = cause
        super().__init__(
            f"Charge {result.reference} of {amount} for payer {payer_id} succeeded but was not recorded: "
            f"{cause.message}",
            payer_id=payer_id,
            amount=str(amount),
            reference=result.reference,
            conflict=cause.details,
        )
