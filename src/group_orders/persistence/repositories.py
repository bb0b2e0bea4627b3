"""Repositories for the Group Orders aggregates.

The base repository provides standard CRUD operations; the methods here are
the group-scoped lookups the store needs.
"""

from group_orders.delivery.schedule import DeliverySchedule
from group_orders.domain import group_orders
from group_orders.escrow.ledger import EscrowLedger


@group_orders.repository(part_of=EscrowLedger)
class EscrowLedgerRepository:
    def find_by_item(self, order_item_id: str) -> EscrowLedger | None:
        items = self._dao.query.filter(order_item_id=order_item_id).all().items
        return items[0] if items else None

    def find_by_group(self, group_order_id: str) -> list[EscrowLedger]:
        return self._dao.query.filter(group_order_id=group_order_id).all().items


@group_orders.repository(part_of=DeliverySchedule)
class DeliveryScheduleRepository:
    def find_by_group(self, group_order_id: str) -> list[DeliverySchedule]:
        return self._dao.query.filter(group_order_id=group_order_id).all().items
