"""Fixed-point money helpers.

Amounts cross every boundary as ``Decimal`` with two fractional digits and are
stored on aggregates as integer minor units (pesewas for GHS). Rounding is
always ROUND_HALF_UP.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from protean.exceptions import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value, field: str = "amount") -> Decimal:
    """Coerce ``value`` to a 2-place Decimal, rounding half-up.

    Use for derived amounts (percentages of a total). Caller-supplied
    payment amounts go through ``parse_amount`` instead, which refuses to
    round.
    """
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationError({field: [f"Not a valid amount: {value!r}"]}) from exc
    if not amount.is_finite():
        raise ValidationError({field: [f"Not a valid amount: {value!r}"]})
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_amount(value, field: str = "amount", allow_zero: bool = False) -> Decimal:
    """Validate an externally supplied amount without silently rounding it."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationError({field: [f"Not a valid amount: {value!r}"]}) from exc
    if not amount.is_finite():
        raise ValidationError({field: [f"Not a valid amount: {value!r}"]})
    if amount != amount.quantize(CENT):
        raise ValidationError({field: [f"Amount {amount} has more than 2 decimal places"]})
    if amount < 0 or (amount == 0 and not allow_zero):
        qualifier = "non-negative" if allow_zero else "positive"
        raise ValidationError({field: [f"Amount must be {qualifier}, got {amount}"]})
    return amount.quantize(CENT)


def to_minor(amount: Decimal) -> int:
    return int((amount.quantize(CENT) * 100).to_integral_value())


def from_minor(minor: int | None) -> Decimal:
    return (Decimal(minor or 0) / 100).quantize(CENT)


def percentage_of(amount: Decimal, percentage) -> Decimal:
    """``amount × percentage / 100`` rounded to currency precision."""
    return to_money(amount * Decimal(str(percentage)) / 100)
