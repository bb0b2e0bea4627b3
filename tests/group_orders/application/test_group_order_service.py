"""Application tests for group order setup through GroupOrderAggregateService."""

from decimal import Decimal

import pytest
from group_orders.escrow.ledger import EscrowLedger
from group_orders.group_order.group_order import GroupOrder, GroupOrderStatus
from group_orders.service import GroupOrderAggregateService
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError


def _create_group(service, **overrides):
    defaults = {
        "group_name": "Darko Wedding",
        "organizer_id": "org-001",
        "event_type": "WEDDING",
    }
    defaults.update(overrides)
    return service.create_group_order(**defaults)


def _create_confirmed_group(service, amounts=("200.00", "200.00", "200.00")):
    snapshot = _create_group(service)
    for amount in amounts:
        snapshot = service.add_item(snapshot.group_order_id, garment_type="Kaba", base_amount=amount)
    return service.confirm(snapshot.group_order_id)


class TestCreateGroupOrder:
    def test_create_persists_draft(self):
        service = GroupOrderAggregateService()
        snapshot = _create_group(service)
        group = current_domain.repository_for(GroupOrder).get(snapshot.group_order_id)
        assert group.status == GroupOrderStatus.DRAFT.value
        assert snapshot.revision == 1
        assert snapshot.items == ()

    def test_empty_snapshot_reads(self):
        service = GroupOrderAggregateService()
        snapshot = _create_group(service)
        assert snapshot.payment.ledger_count == 0
        assert snapshot.payment.progress_percentage == Decimal("0.00")
        assert snapshot.discount.discount_percentage == 0
        assert snapshot.progress["total"] == 0

    def test_unknown_group_order(self):
        service = GroupOrderAggregateService()
        with pytest.raises(ObjectNotFoundError):
            service.snapshot("missing")


class TestAddItems:
    def test_items_show_live_discount_preview(self):
        service = GroupOrderAggregateService()
        snapshot = _create_group(service)
        for _ in range(3):
            snapshot = service.add_item(snapshot.group_order_id, garment_type="Kaba", base_amount="200.00")
        assert [item.delivery_priority for item in snapshot.items] == [1, 2, 3]
        assert snapshot.discount.discounted_total == Decimal("510.00")
        assert snapshot.estimated_discount.estimated is True
        assert snapshot.estimated_discount.discount_percentage == 15
        assert all(item.ledger is None for item in snapshot.items)

    def test_bad_amount_is_not_persisted(self):
        service = GroupOrderAggregateService()
        snapshot = _create_group(service)
        with pytest.raises(ValidationError):
            service.add_item(snapshot.group_order_id, garment_type="Kaba", base_amount="-5")
        assert service.snapshot(snapshot.group_order_id).items == ()


class TestConfirm:
    def test_confirm_opens_one_ledger_per_item(self):
        service = GroupOrderAggregateService()
        snapshot = _create_confirmed_group(service)
        assert snapshot.status == GroupOrderStatus.CONFIRMED.value
        assert snapshot.discount.discounted_total == Decimal("510.00")
        assert snapshot.payment.ledger_count == 3
        assert snapshot.payment.total_payable == Decimal("510.00")
        for item in snapshot.items:
            assert item.final_amount == Decimal("170.00")
            assert item.ledger.stage == "DEPOSIT"
            assert item.ledger.stage_label == "Deposit (25%)"
            assert item.ledger.stage_color == "yellow"

        ledgers = current_domain.repository_for(EscrowLedger).find_by_group(snapshot.group_order_id)
        assert len(ledgers) == 3

    def test_two_items_confirm_without_discount(self):
        service = GroupOrderAggregateService()
        snapshot = _create_confirmed_group(service, amounts=("200.00", "200.00"))
        assert snapshot.discount.discount_percentage == 0
        assert snapshot.payment.total_payable == Decimal("400.00")

    def test_single_item_cannot_confirm(self):
        service = GroupOrderAggregateService()
        snapshot = _create_group(service)
        service.add_item(snapshot.group_order_id, garment_type="Kaba", base_amount="200.00")
        with pytest.raises(ValidationError):
            service.confirm(snapshot.group_order_id)
        assert current_domain.repository_for(EscrowLedger).find_by_group(snapshot.group_order_id) == []

    def test_single_payer_summary_is_the_organizer(self):
        service = GroupOrderAggregateService()
        snapshot = _create_confirmed_group(service)
        assert len(snapshot.payers) == 1
        assert snapshot.payers[0].payer_id == "org-001"
        assert snapshot.payers[0].total_responsible == Decimal("510.00")


class TestSplitPayment:
    def test_assign_payers_then_confirm(self):
        service = GroupOrderAggregateService()
        snapshot = _create_group(service, payment_mode="SPLIT_PAYMENT")
        gid = snapshot.group_order_id
        service.add_item(gid, garment_type="Kaba", base_amount="200.00", family_member_name="Ama")
        snapshot = service.add_item(gid, garment_type="Smock", base_amount="300.00", family_member_name="Kwame")
        first, second = (item.item_id for item in snapshot.items)
        service.assign_payer(gid, "payer-1", "Ama", [first])
        service.assign_payer(gid, "payer-2", "Kwame", [second])
        snapshot = service.confirm(gid)

        payers = {payer.payer_id: payer for payer in snapshot.payers}
        assert payers["payer-1"].total_responsible == Decimal("200.00")
        assert payers["payer-2"].total_responsible == Decimal("300.00")

    def test_payer_summary_lookup(self):
        service = GroupOrderAggregateService()
        snapshot = _create_group(service, payment_mode="SPLIT_PAYMENT")
        gid = snapshot.group_order_id
        service.add_item(gid, garment_type="Kaba", base_amount="200.00")
        snapshot = service.add_item(gid, garment_type="Kaba", base_amount="200.00")
        service.assign_payer(gid, "payer-1", "Ama", [item.item_id for item in snapshot.items])
        service.confirm(gid)
        summary = service.payer_summary(gid, "payer-1")
        assert summary.outstanding == Decimal("400.00")
        assert summary.status.value == "PENDING"


class TestCancel:
    def test_cancel_draft(self):
        service = GroupOrderAggregateService()
        snapshot = _create_group(service)
        snapshot = service.cancel_group_order(snapshot.group_order_id, reason="Event called off")
        assert snapshot.status == GroupOrderStatus.CANCELLED.value

    def test_cancel_item_keeps_its_ledger(self):
        service = GroupOrderAggregateService()
        snapshot = _create_confirmed_group(service)
        first = snapshot.items[0].item_id
        snapshot = service.cancel_item(snapshot.group_order_id, first, reason="Guest withdrew")
        assert snapshot.items[0].status == "CANCELLED"
        assert snapshot.items[0].ledger is not None
        assert snapshot.progress["total"] == 2
        assert snapshot.discount.discounted_total == Decimal("510.00")
