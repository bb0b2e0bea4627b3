"""Group Orders domain API package."""

from group_orders.api.handlers import register_exception_handlers
from group_orders.api.routes import group_order_router

__all__ = ["group_order_router", "register_exception_handlers"]
