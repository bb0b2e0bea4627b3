"""GroupOrderStore backed by protean repositories.

Revisions are checked and bumped under a process-wide lock, so two writers
that loaded the same revision cannot both succeed. Multi-aggregate saves
verify every revision before the first write, and a new schedule is checked
against the stored live claims for its group under the same lock.
"""

import threading

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from group_orders.delivery.schedule import DeliverySchedule
from group_orders.errors import ConcurrentModificationError, ItemAlreadyScheduledError
from group_orders.escrow.ledger import EscrowLedger
from group_orders.group_order.group_order import GroupOrder
from group_orders.persistence.port import GroupOrderStore
from group_orders.utils.logging import get_logger

logger = get_logger(__name__)


class ProteanGroupOrderStore(GroupOrderStore):
    def __init__(self) -> None:
        self._lock = threading.RLock()

    # -------------------------------------------------------------------
    # Loads
    # -------------------------------------------------------------------
    def load_group_order(self, group_order_id: str) -> GroupOrder:
        return current_domain.repository_for(GroupOrder).get(group_order_id)

    def load_order_items(self, group_order_id: str) -> list:
        return self.load_group_order(group_order_id).ordered_items

    def load_ledger(self, order_item_id: str) -> EscrowLedger:
        ledger = current_domain.repository_for(EscrowLedger).find_by_item(str(order_item_id))
        if ledger is None:
            raise ObjectNotFoundError({"order_item_id": [f"No escrow ledger for item {order_item_id}"]})
        return ledger

    def load_ledgers(self, group_order_id: str) -> list[EscrowLedger]:
        ledgers = current_domain.repository_for(EscrowLedger).find_by_group(str(group_order_id))
        return sorted(ledgers, key=lambda ledger: ledger.created_at)

    def load_schedules(self, group_order_id: str) -> list[DeliverySchedule]:
        schedules = current_domain.repository_for(DeliverySchedule).find_by_group(str(group_order_id))
        return sorted(schedules, key=lambda schedule: schedule.created_at)

    # -------------------------------------------------------------------
    # Conditional saves
    # -------------------------------------------------------------------
    def _stored_revision(self, aggregate) -> int:
        try:
            stored = current_domain.repository_for(type(aggregate)).get(aggregate.id)
        except ObjectNotFoundError:
            return 0
        return stored.revision or 0

    def _assert_unclaimed(self, schedules) -> None:
        """New live schedules may not claim items another live schedule already holds."""
        for schedule in schedules:
            if schedule.revision or not schedule.is_live:
                continue
            claims = {
                item_id: str(other.id)
                for other in self.load_schedules(str(schedule.group_order_id))
                if other.is_live and str(other.id) != str(schedule.id)
                for item_id in other.item_id_list
            }
            taken = {item_id: claims[item_id] for item_id in schedule.item_id_list if item_id in claims}
            if taken:
                logger.warning(
                    "schedule_claim_rejected",
                    group_order_id=str(schedule.group_order_id),
                    schedule_id=str(schedule.id),
                    claims=taken,
                )
                raise ItemAlreadyScheduledError(taken)

    def save_changes(self, group_order=None, ledgers=(), schedules=()) -> None:
        """Save any mix of aggregates, all or nothing on revision conflicts."""
        pending = [aggregate for aggregate in (group_order, *ledgers, *schedules) if aggregate is not None]
        with self._lock:
            for aggregate in pending:
                expected = aggregate.revision or 0
                actual = self._stored_revision(aggregate)
                if actual != expected:
                    logger.warning(
                        "stale_write_rejected",
                        entity=type(aggregate).__name__,
                        entity_id=str(aggregate.id),
                        expected_revision=expected,
                        actual_revision=actual,
                    )
                    raise ConcurrentModificationError(type(aggregate).__name__, str(aggregate.id), expected, actual)

            self._assert_unclaimed(schedules)

            for aggregate in pending:
                aggregate.revision = (aggregate.revision or 0) + 1
                current_domain.repository_for(type(aggregate)).add(aggregate)

    def save_group_order(self, group_order) -> None:
        self.save_changes(group_order=group_order)

    def save_ledger(self, ledger) -> None:
        self.save_changes(ledgers=[ledger])

    def save_ledgers(self, ledgers: list) -> None:
        self.save_changes(ledgers=ledgers)

    def save_schedule(self, schedule) -> None:
        self.save_changes(schedules=[schedule])
