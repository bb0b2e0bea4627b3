"""Bulk discount engine — pure tier lookup and discount arithmetic.

Tiers are contiguous, inclusive item-count bands:

    3–5 items  → 15%
    6–9 items  → 20%
    10+ items  → 25%

Below three items no discount applies. Discounted totals are rounded to two
places with ROUND_HALF_UP, and the per-item allocation is adjusted cent by
cent so that item finals always add up to the discounted total.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from protean.exceptions import ValidationError

from group_orders.shared.money import ZERO, parse_amount, percentage_of, to_money

MIN_ITEMS_FOR_BULK_DISCOUNT = 3
MAX_ITEMS_PER_GROUP = 20
ESTIMATE_PLACEHOLDER_AMOUNT = Decimal("200.00")


@dataclass(frozen=True)
class DiscountTier:
    name: str
    min_items: int
    max_items: int | None  # None: open-ended
    percentage: int

    def includes(self, item_count: int) -> bool:
        if item_count < self.min_items:
            return False
        return self.max_items is None or item_count <= self.max_items


BULK_DISCOUNT_TIERS: tuple[DiscountTier, ...] = (
    DiscountTier(name="Tier 1", min_items=3, max_items=5, percentage=15),
    DiscountTier(name="Tier 2", min_items=6, max_items=9, percentage=20),
    DiscountTier(name="Tier 3", min_items=10, max_items=None, percentage=25),
)


@dataclass(frozen=True)
class ItemDiscount:
    index: int
    original_amount: Decimal
    discount: Decimal
    final_amount: Decimal


@dataclass(frozen=True)
class BulkDiscountResult:
    tier: DiscountTier | None
    discount_percentage: int
    original_total: Decimal
    discounted_total: Decimal
    savings: Decimal
    item_discounts: tuple[ItemDiscount, ...] = field(default_factory=tuple)
    estimated: bool = False

    @property
    def tier_name(self) -> str:
        return self.tier.name if self.tier else "No Discount"

    def to_dict(self) -> dict:
        return {
            "tier": self.tier_name,
            "discount_percentage": self.discount_percentage,
            "original_total": str(self.original_total),
            "discounted_total": str(self.discounted_total),
            "savings": str(self.savings),
            "estimated": self.estimated,
            "items": [
                {
                    "index": item.index,
                    "original_amount": str(item.original_amount),
                    "discount": str(item.discount),
                    "final_amount": str(item.final_amount),
                }
                for item in self.item_discounts
            ],
        }


@dataclass(frozen=True)
class TierInfo:
    tier_name: str
    discount_percentage: int
    min_items: int
    max_items: int | None
    next_tier_at: int | None = None
    next_tier_discount: int | None = None


@dataclass(frozen=True)
class PotentialSavings:
    current_discount: int
    current_savings: Decimal
    next_tier_at: int | None = None
    next_tier_discount: int | None = None
    next_tier_potential_savings: Decimal | None = None


def tier_for(item_count: int) -> DiscountTier | None:
    """Return the tier whose inclusive bounds contain ``item_count``."""
    for tier in BULK_DISCOUNT_TIERS:
        if tier.includes(item_count):
            return tier
    return None


def qualifies_for_bulk_discount(item_count: int) -> bool:
    return item_count >= MIN_ITEMS_FOR_BULK_DISCOUNT


def _validate(item_count: int, per_item_amounts) -> list[Decimal]:
    if isinstance(item_count, bool) or not isinstance(item_count, int):
        raise ValidationError({"item_count": [f"Item count must be an integer, got {item_count!r}"]})
    if item_count < 0:
        raise ValidationError({"item_count": [f"Item count must be non-negative, got {item_count}"]})
    amounts = list(per_item_amounts)
    if item_count != len(amounts):
        raise ValidationError(
            {"item_count": [f"Item count {item_count} does not match {len(amounts)} item amount(s)"]}
        )
    return [parse_amount(amount, field=f"per_item_amounts[{i}]", allow_zero=True) for i, amount in enumerate(amounts)]


def _allocate(amounts: list[Decimal], percentage: int, discounted_total: Decimal) -> tuple[ItemDiscount, ...]:
    """Split ``discounted_total`` across items proportionally to their amounts.

    Each item is discounted independently, then the rounding residue is
    handed out one cent at a time, largest item first (ties by position).
    """
    finals = [amount - percentage_of(amount, percentage) for amount in amounts]
    residue = discounted_total - sum(finals, ZERO)
    step = Decimal("0.01") if residue > 0 else Decimal("-0.01")
    order = sorted(range(len(amounts)), key=lambda i: (-amounts[i], i))
    cursor = 0
    while residue != 0 and order:
        index = order[cursor % len(order)]
        if step > 0 or finals[index] > 0:
            finals[index] += step
            residue -= step
        cursor += 1
    return tuple(
        ItemDiscount(
            index=i,
            original_amount=amount,
            discount=amount - finals[i],
            final_amount=finals[i],
        )
        for i, amount in enumerate(amounts)
    )


def compute_discount(item_count: int, per_item_amounts) -> BulkDiscountResult:
    """Compute the bulk discount for a group of priced items."""
    amounts = _validate(item_count, per_item_amounts)
    original_total = sum(amounts, ZERO)
    tier = tier_for(item_count)
    percentage = tier.percentage if tier else 0

    discounted_total = to_money(original_total * (100 - Decimal(percentage)) / 100)
    savings = original_total - discounted_total

    return BulkDiscountResult(
        tier=tier,
        discount_percentage=percentage,
        original_total=original_total,
        discounted_total=discounted_total,
        savings=savings,
        item_discounts=_allocate(amounts, percentage, discounted_total),
    )


def estimate_discount(item_count: int, placeholder_amount=ESTIMATE_PLACEHOLDER_AMOUNT) -> BulkDiscountResult:
    """Discount preview before items are priced, using a flat per-item amount.

    The result is flagged ``estimated`` so callers never mistake it for the
    figure ledgers are opened with.
    """
    result = compute_discount(item_count, [placeholder_amount] * item_count)
    return BulkDiscountResult(
        tier=result.tier,
        discount_percentage=result.discount_percentage,
        original_total=result.original_total,
        discounted_total=result.discounted_total,
        savings=result.savings,
        item_discounts=result.item_discounts,
        estimated=True,
    )


def tier_info(item_count: int) -> TierInfo:
    """Describe the tier for ``item_count`` and what the next tier offers."""
    if not qualifies_for_bulk_discount(item_count):
        first = BULK_DISCOUNT_TIERS[0]
        return TierInfo(
            tier_name="No Discount",
            discount_percentage=0,
            min_items=0,
            max_items=MIN_ITEMS_FOR_BULK_DISCOUNT - 1,
            next_tier_at=first.min_items,
            next_tier_discount=first.percentage,
        )

    for position, tier in enumerate(BULK_DISCOUNT_TIERS):
        if tier.includes(item_count):
            following = BULK_DISCOUNT_TIERS[position + 1] if position + 1 < len(BULK_DISCOUNT_TIERS) else None
            return TierInfo(
                tier_name=tier.name,
                discount_percentage=tier.percentage,
                min_items=tier.min_items,
                max_items=tier.max_items,
                next_tier_at=following.min_items if following else None,
                next_tier_discount=following.percentage if following else None,
            )
    raise AssertionError(f"No tier covers item count {item_count}")


def potential_savings(item_count: int, current_total) -> PotentialSavings:
    """Savings now, and what reaching the next tier would save on the same total."""
    total = parse_amount(current_total, field="current_total", allow_zero=True)
    info = tier_info(item_count)
    current_savings = percentage_of(total, info.discount_percentage)
    if info.next_tier_at is None:
        return PotentialSavings(current_discount=info.discount_percentage, current_savings=current_savings)
    return PotentialSavings(
        current_discount=info.discount_percentage,
        current_savings=current_savings,
        next_tier_at=info.next_tier_at,
        next_tier_discount=info.next_tier_discount,
        next_tier_potential_savings=percentage_of(total, info.next_tier_discount),
    )
