"""Shared BDD fixtures and step definitions for the Group Orders domain."""

from decimal import Decimal

import pytest
from group_orders.delivery.reconciler import DeliveryScheduleReconciler
from group_orders.errors import (
    InvalidStageError,
    ItemAlreadyScheduledError,
    LedgerDisputedError,
    OverpaymentError,
    PaymentMismatchError,
    StageNotReadyError,
)
from group_orders.escrow.ledger import EscrowLedger
from group_orders.group_order.coordinator import GroupPaymentCoordinator
from group_orders.group_order.group_order import GroupOrder
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then

# Map error name strings to classes for dynamic lookup
_ERROR_CLASSES = {
    "InvalidStageError": InvalidStageError,
    "ItemAlreadyScheduledError": ItemAlreadyScheduledError,
    "LedgerDisputedError": LedgerDisputedError,
    "OverpaymentError": OverpaymentError,
    "PaymentMismatchError": PaymentMismatchError,
    "StageNotReadyError": StageNotReadyError,
    "ValidationError": ValidationError,
}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def error():
    """Container for captured validation errors."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse("an escrow ledger with a total of {total}"), target_fixture="ledger")
def escrow_ledger(total):
    ledger = EscrowLedger.open(order_item_id="item-bdd-001", total_payable=Decimal(total))
    ledger._events.clear()
    return ledger


@given(parsers.cfparse('a draft "{payment_mode}" group order'), target_fixture="group")
def draft_group(payment_mode):
    group = GroupOrder.create(
        group_name="Family Reunion",
        organizer_id="org-bdd-001",
        payment_mode=payment_mode,
    )
    group._events.clear()
    return group


@given(parsers.cfparse("a confirmed group order with {count:d} items of {amount} each"), target_fixture="group")
def confirmed_group(count, amount):
    group = GroupOrder.create(group_name="Family Reunion", organizer_id="org-bdd-001")
    for _ in range(count):
        group.add_item(garment_type="Kaba", base_amount=Decimal(amount))
    group.confirm()
    group._events.clear()
    return group


@given("escrow ledgers are attached to every item", target_fixture="coordinator")
def attached_ledgers(group):
    coordinator = GroupPaymentCoordinator(group)
    coordinator.attach()
    return coordinator


@given("every item is ready for delivery", target_fixture="reconciler")
def every_item_ready(group):
    for item in group.ordered_items:
        for status in ("DEPOSIT_PAID", "IN_PRODUCTION", "READY_FOR_DELIVERY"):
            group.update_item_status(str(item.id), status)
    return DeliveryScheduleReconciler(group)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the action fails with {error_name}"))
def action_fails_with(error, error_name):
    assert error["exc"] is not None, f"Expected {error_name} but nothing was raised"
    assert isinstance(error["exc"], _ERROR_CLASSES[error_name]), f"Got {type(error['exc']).__name__}"


@then("the action succeeds")
def action_succeeds(error):
    assert error["exc"] is None, f"Unexpected error: {error['exc']}"
