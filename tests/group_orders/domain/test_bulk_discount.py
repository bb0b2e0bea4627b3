"""Tests for the bulk discount engine — tiers, rounding and allocation."""

from decimal import Decimal

import pytest
from group_orders.discount.engine import (
    BULK_DISCOUNT_TIERS,
    compute_discount,
    estimate_discount,
    potential_savings,
    qualifies_for_bulk_discount,
    tier_for,
    tier_info,
)
from protean.exceptions import ValidationError


class TestTierLookup:
    @pytest.mark.parametrize(
        "count,expected",
        [(0, None), (2, None), (3, 15), (5, 15), (6, 20), (9, 20), (10, 25), (20, 25)],
    )
    def test_tier_boundaries_are_inclusive(self, count, expected):
        tier = tier_for(count)
        assert (tier.percentage if tier else None) == expected

    def test_tiers_are_contiguous(self):
        for lower, upper in zip(BULK_DISCOUNT_TIERS, BULK_DISCOUNT_TIERS[1:], strict=False):
            assert upper.min_items == lower.max_items + 1
        assert BULK_DISCOUNT_TIERS[-1].max_items is None

    def test_qualification_threshold(self):
        assert qualifies_for_bulk_discount(2) is False
        assert qualifies_for_bulk_discount(3) is True


class TestComputeDiscount:
    def test_three_items_get_tier_one(self):
        result = compute_discount(3, [200, 200, 200])
        assert result.discount_percentage == 15
        assert result.tier_name == "Tier 1"
        assert result.original_total == Decimal("600.00")
        assert result.discounted_total == Decimal("510.00")
        assert result.savings == Decimal("90.00")

    def test_two_items_get_no_discount(self):
        result = compute_discount(2, [200, 200])
        assert result.discount_percentage == 0
        assert result.tier is None
        assert result.tier_name == "No Discount"
        assert result.discounted_total == Decimal("400.00")
        assert result.savings == Decimal("0.00")

    def test_discounted_total_rounds_half_up(self):
        # 3 × 0.10 at 15% → 0.255 → 0.26
        result = compute_discount(3, ["0.10", "0.10", "0.10"])
        assert result.discounted_total == Decimal("0.26")
        assert result.savings == Decimal("0.04")

    def test_savings_plus_discounted_equals_original(self):
        result = compute_discount(7, ["99.99", "120.50", "33.33", "80.00", "75.25", "10.01", "199.95"])
        assert result.discounted_total + result.savings == result.original_total

    def test_item_allocation_sums_to_discounted_total(self):
        result = compute_discount(3, ["33.33", "33.33", "33.34"])
        finals = sum((item.final_amount for item in result.item_discounts), Decimal("0"))
        assert finals == result.discounted_total
        assert [item.index for item in result.item_discounts] == [0, 1, 2]

    def test_allocation_keeps_each_item_discount_non_negative(self):
        result = compute_discount(4, ["0.00", "150.00", "0.01", "89.99"])
        for item in result.item_discounts:
            assert item.discount >= 0
            assert item.final_amount >= 0
            assert item.final_amount + item.discount == item.original_amount

    def test_deterministic(self):
        amounts = ["12.34", "56.78", "90.12", "34.56"]
        assert compute_discount(4, amounts) == compute_discount(4, amounts)

    def test_empty_group(self):
        result = compute_discount(0, [])
        assert result.original_total == Decimal("0.00")
        assert result.item_discounts == ()

    def test_count_mismatch_is_rejected(self):
        with pytest.raises(ValidationError) as exc:
            compute_discount(3, [200, 200])
        assert "item_count" in exc.value.messages

    def test_negative_amount_is_rejected(self):
        with pytest.raises(ValidationError):
            compute_discount(3, [200, -1, 200])

    def test_sub_cent_amount_is_rejected(self):
        with pytest.raises(ValidationError):
            compute_discount(3, [200, "10.005", 200])

    def test_non_integer_count_is_rejected(self):
        with pytest.raises(ValidationError):
            compute_discount("3", [200, 200, 200])

    def test_result_serializes_money_as_strings(self):
        data = compute_discount(3, [200, 200, 200]).to_dict()
        assert data["discounted_total"] == "510.00"
        assert data["items"][0]["final_amount"] == "170.00"
        assert data["estimated"] is False


class TestEstimateDiscount:
    def test_estimate_uses_placeholder_amount(self):
        result = estimate_discount(3)
        assert result.estimated is True
        assert result.original_total == Decimal("600.00")
        assert result.discounted_total == Decimal("510.00")

    def test_estimate_with_custom_placeholder(self):
        result = estimate_discount(6, placeholder_amount=Decimal("100.00"))
        assert result.discount_percentage == 20
        assert result.discounted_total == Decimal("480.00")


class TestTierInfo:
    def test_below_threshold_points_to_first_tier(self):
        info = tier_info(2)
        assert info.tier_name == "No Discount"
        assert info.next_tier_at == 3
        assert info.next_tier_discount == 15

    def test_middle_tier_points_to_next(self):
        info = tier_info(7)
        assert info.tier_name == "Tier 2"
        assert info.next_tier_at == 10
        assert info.next_tier_discount == 25

    def test_top_tier_has_no_next(self):
        info = tier_info(12)
        assert info.discount_percentage == 25
        assert info.next_tier_at is None


class TestPotentialSavings:
    def test_savings_now_and_at_next_tier(self):
        savings = potential_savings(4, "800.00")
        assert savings.current_discount == 15
        assert savings.current_savings == Decimal("120.00")
        assert savings.next_tier_at == 6
        assert savings.next_tier_potential_savings == Decimal("160.00")

    def test_top_tier_has_no_next_savings(self):
        savings = potential_savings(10, "1000.00")
        assert savings.current_savings == Decimal("250.00")
        assert savings.next_tier_potential_savings is None
