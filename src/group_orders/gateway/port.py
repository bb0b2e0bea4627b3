"""Payment gateway port (abstract interface).

The core only needs to know whether a charge went through. Mobile money and
card processor protocols live entirely behind adapters.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class ChargeResult:
    """Result of a payment charge attempt."""

    success: bool
    reference: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def attempt_charge(self, payer_id: str, amount: Decimal, method: str) -> ChargeResult:
        """Charge ``payer_id`` for ``amount`` using ``method`` (e.g. MTN_MOMO)."""
        ...
