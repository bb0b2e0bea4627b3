"""Configurable fake payment gateway for development and testing.

Simulates a mobile money or card charge without any external call. It can be
told to decline the next charges, so the declined path of a payment is as
easy to exercise as the happy path.
"""

from decimal import Decimal
from uuid import uuid4

from group_orders.gateway.port import ChargeResult, PaymentGateway


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Insufficient funds"
        self.calls: list[dict] = []

    def configure(self, should_succeed: bool, failure_reason: str = "Insufficient funds") -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def attempt_charge(self, payer_id: str, amount: Decimal, method: str) -> ChargeResult:
        self.calls.append(
            {
                "method": method,
                "payer_id": payer_id,
                "amount": amount,
            }
        )

        if self.should_succeed:
            return ChargeResult(success=True, reference=f"fake_txn_{uuid4().hex[:12]}")
        return ChargeResult(success=False, failure_reason=self.failure_reason)
