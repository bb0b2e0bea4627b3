"""Application tests for escrow payments, stage advancement and disputes."""

from decimal import Decimal

import pytest
from group_orders.errors import (
    InvalidStageError,
    LedgerDisputedError,
    PaymentDeclinedError,
    PaymentMismatchError,
    PaymentNotRecordedError,
)
from group_orders.escrow.ledger import EscrowLedger
from group_orders.gateway import set_gateway
from group_orders.gateway.fake_adapter import FakeGateway
from group_orders.service import GroupOrderAggregateService
from protean import current_domain
from protean.exceptions import ValidationError


class RacingGateway(FakeGateway):
    """Runs a competing write while the charge is in flight."""

    def __init__(self, competing) -> None:
        super().__init__()
        self.competing = competing

    def attempt_charge(self, payer_id, amount, method):
        self.competing()
        return super().attempt_charge(payer_id, amount, method)


@pytest.fixture()
def gateway():
    fake = FakeGateway()
    set_gateway(fake)
    return fake


@pytest.fixture()
def service():
    return GroupOrderAggregateService()


@pytest.fixture()
def group(service):
    snapshot = service.create_group_order(group_name="Adjei Birthday", organizer_id="org-001")
    for _ in range(3):
        snapshot = service.add_item(snapshot.group_order_id, garment_type="Dress", base_amount="200.00")
    return service.confirm(snapshot.group_order_id)


def _ids(snapshot):
    return [item.item_id for item in snapshot.items]


class TestRecordPayment:
    def test_required_amount(self, service, group):
        amount = service.required_amount(group.group_order_id, _ids(group), "DEPOSIT")
        assert amount == Decimal("127.50")

    def test_exact_payment_is_persisted(self, service, group):
        snapshot = service.record_payment(
            group.group_order_id, _ids(group), "127.50", "DEPOSIT", reference="bank-001"
        )
        assert snapshot.payment.total_paid == Decimal("127.50")
        assert snapshot.payment.progress_percentage == Decimal("25.00")
        ledger = current_domain.repository_for(EscrowLedger).find_by_item(_ids(group)[0])
        assert ledger.total_paid == Decimal("42.50")
        assert ledger.revision == 2

    def test_mismatch_is_rejected_and_nothing_is_saved(self, service, group):
        with pytest.raises(PaymentMismatchError):
            service.record_payment(group.group_order_id, _ids(group), "127.00", "DEPOSIT")
        assert service.snapshot(group.group_order_id).payment.total_paid == Decimal("0.00")

    def test_payment_for_wrong_stage(self, service, group):
        with pytest.raises(InvalidStageError):
            service.record_payment(group.group_order_id, _ids(group)[:1], "85.00", "FITTING")


class TestPayThroughGateway:
    def test_successful_charge_credits_ledgers(self, service, group, gateway):
        snapshot = service.pay(group.group_order_id, _ids(group)[:2], "DEPOSIT", "org-001", "MTN_MOMO")
        assert snapshot.payment.total_paid == Decimal("85.00")
        assert gateway.calls == [{"method": "MTN_MOMO", "payer_id": "org-001", "amount": Decimal("85.00")}]
        ledger = current_domain.repository_for(EscrowLedger).find_by_item(_ids(group)[0])
        assert ledger.payment_records[0].reference.startswith("fake_txn_")

    def test_declined_charge_changes_nothing(self, service, group, gateway):
        gateway.configure(should_succeed=False, failure_reason="Insufficient funds")
        with pytest.raises(PaymentDeclinedError) as exc:
            service.pay(group.group_order_id, _ids(group), "DEPOSIT", "org-001", "VODAFONE_CASH")
        assert exc.value.amount == Decimal("127.50")
        assert exc.value.details["failure_reason"] == "Insufficient funds"
        assert service.snapshot(group.group_order_id).payment.total_paid == Decimal("0.00")

    def test_invalid_payment_never_reaches_gateway(self, service, group, gateway):
        with pytest.raises(PaymentMismatchError):
            service.pay(group.group_order_id, _ids(group), "DEPOSIT", "org-001", "MTN_MOMO", amount="1.00")
        assert gateway.calls == []

    def test_charge_that_loses_the_ledger_race_keeps_its_reference(self, service, group):
        gid = group.group_order_id
        item_id = _ids(group)[0]

        def competing_payment():
            service.record_payment(gid, [item_id], "42.50", "DEPOSIT", reference="bank-9")

        set_gateway(RacingGateway(competing_payment))

        with pytest.raises(PaymentNotRecordedError) as exc:
            service.pay(gid, [item_id], "DEPOSIT", "org-001", "MTN_MOMO")

        assert exc.value.result.success is True
        assert exc.value.details["reference"] == exc.value.result.reference
        assert exc.value.details["reference"].startswith("fake_txn_")
        assert exc.value.details["conflict"]["entity"] == "EscrowLedger"
        ledger = current_domain.repository_for(EscrowLedger).find_by_item(item_id)
        assert ledger.total_paid == Decimal("42.50")
        assert [payment.reference for payment in ledger.payment_records] == ["bank-9"]


class TestAdvanceStage:
    def test_full_escrow_cycle(self, service, group):
        gid = group.group_order_id
        item_id = _ids(group)[0]
        for stage in ("DEPOSIT", "FITTING", "FINAL"):
            amount = service.required_amount(gid, [item_id], stage)
            service.record_payment(gid, [item_id], amount, stage)
            snapshot = service.advance_stage(gid, item_id, actor="tailor-1")

        item = snapshot.items[0]
        assert item.ledger.stage == "RELEASED"
        assert item.ledger.stage_color == "green"
        assert item.ledger.outstanding == Decimal("0.00")
        assert item.status == "DEPOSIT_PAID"
        assert snapshot.payment.released_count == 1

    def test_advance_requires_full_stage_payment(self, service, group):
        gid = group.group_order_id
        with pytest.raises(ValidationError):
            service.advance_stage(gid, _ids(group)[0])

    def test_late_deposit_after_advance_is_rejected(self, service, group):
        gid = group.group_order_id
        item_id = _ids(group)[0]
        service.record_payment(gid, [item_id], "42.50", "DEPOSIT")
        service.advance_stage(gid, item_id)
        with pytest.raises(InvalidStageError):
            service.record_payment(gid, [item_id], "1.00", "DEPOSIT")


class TestDisputes:
    def test_dispute_blocks_advance_until_cleared(self, service, group):
        gid = group.group_order_id
        item_id = _ids(group)[0]
        service.record_payment(gid, [item_id], "42.50", "DEPOSIT")
        snapshot = service.flag_dispute(gid, item_id, actor="moderator-1", reason="Fabric mismatch")
        assert snapshot.items[0].ledger.disputed is True
        assert snapshot.items[0].ledger.disputed_by == "moderator-1"

        with pytest.raises(LedgerDisputedError):
            service.advance_stage(gid, item_id)
        with pytest.raises(ValidationError):
            service.clear_dispute(gid, item_id, actor="moderator-2")

        service.clear_dispute(gid, item_id, actor="moderator-1")
        snapshot = service.advance_stage(gid, item_id)
        assert snapshot.items[0].ledger.stage == "FITTING"


class TestDiscrepancies:
    def test_clean_group_has_no_discrepancies(self, service, group):
        service.record_payment(group.group_order_id, _ids(group), "127.50", "DEPOSIT")
        assert service.discrepancies(group.group_order_id) == []
