"""Group Orders bounded context — escrow staging, group payments and delivery.

Coordinates bulk-discounted group orders of tailored garments: every item is
paid through a three-phase escrow ledger, payers share responsibility for the
group, and finished items are released into delivery schedules.
"""

from protean.domain import Domain

from group_orders.utils.logging import configure_logging, get_logger

configure_logging()

logger = get_logger(__name__)

group_orders = Domain(name="group_orders")
