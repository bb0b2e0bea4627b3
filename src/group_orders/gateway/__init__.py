"""Payment gateway factory.

Provides get_gateway() / set_gateway() to swap implementations. The adapter
is chosen by the PAYMENT_GATEWAY_ADAPTER environment variable; FakeGateway
is the only adapter shipped.
"""

from group_orders.config import settings
from group_orders.gateway.port import ChargeResult, PaymentGateway

__all__ = ["ChargeResult", "PaymentGateway", "get_gateway", "reset_gateway", "set_gateway"]

_current_gateway: PaymentGateway | None = None


def get_gateway() -> PaymentGateway:
    """Return the current payment gateway (singleton)."""
    global _current_gateway
    if _current_gateway is None:
        adapter = settings.payment_gateway_adapter
        if adapter == "fake":
            from group_orders.gateway.fake_adapter import FakeGateway

            _current_gateway = FakeGateway()
        else:
            raise ValueError(f"Unknown payment gateway adapter: {adapter}")
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to default gateway."""
    global _current_gateway
    _current_gateway = None
