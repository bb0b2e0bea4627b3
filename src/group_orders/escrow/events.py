"""Escrow ledger events — immutable facts about staged payments.

Amounts are carried as 2-place decimal strings.
"""

from protean.fields import DateTime, Identifier, String

from group_orders.domain import group_orders


@group_orders.event(part_of="EscrowLedger")
class EscrowLedgerOpened:
    """An escrow ledger was opened for a priced order item."""

    __version__ = 1

    ledger_id = Identifier(required=True)
    order_item_id = Identifier(required=True)
    group_order_id = Identifier()
    total_payable = String(required=True)
    opened_at = DateTime(required=True)


@group_orders.event(part_of="EscrowLedger")
class EscrowPaymentRecorded:
    """A payment was credited to the ledger's current stage."""

    __version__ = 1

    ledger_id = Identifier(required=True)
    order_item_id = Identifier(required=True)
    stage = String(required=True)
    amount = String(required=True)
    paid_at_stage = String(required=True)
    payer_id = String()
    reference = String()
    recorded_at = DateTime(required=True)


@group_orders.event(part_of="EscrowLedger")
class EscrowStageAdvanced:
    """The ledger moved to its next escrow stage."""

    __version__ = 1

    ledger_id = Identifier(required=True)
    order_item_id = Identifier(required=True)
    from_stage = String(required=True)
    to_stage = String(required=True)
    actor = String(required=True)
    advanced_at = DateTime(required=True)


@group_orders.event(part_of="EscrowLedger")
class EscrowDisputeFlagged:
    """A moderator froze stage advancement on the ledger."""

    __version__ = 1

    ledger_id = Identifier(required=True)
    order_item_id = Identifier(required=True)
    stage = String(required=True)
    actor = String(required=True)
    reason = String()
    flagged_at = DateTime(required=True)


@group_orders.event(part_of="EscrowLedger")
class EscrowDisputeCleared:
    """The moderator who raised a dispute lifted it."""

    __version__ = 1

    ledger_id = Identifier(required=True)
    order_item_id = Identifier(required=True)
    actor = String(required=True)
    cleared_at = DateTime(required=True)
