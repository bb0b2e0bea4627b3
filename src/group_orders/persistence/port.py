"""Persistence port for the Group Orders core.

Every save is conditional on the ``revision`` the aggregate carried when it
was loaded; a stale write raises ConcurrentModificationError and leaves the
stored state untouched.
"""

from abc import ABC, abstractmethod


class GroupOrderStore(ABC):
    """Abstract store for group orders, escrow ledgers and delivery schedules."""

    @abstractmethod
    def load_group_order(self, group_order_id: str):
        """Return the GroupOrder or raise ObjectNotFoundError."""
        ...

    @abstractmethod
    def save_group_order(self, group_order) -> None: ...

    @abstractmethod
    def load_order_items(self, group_order_id: str) -> list:
        """Items of the group in delivery priority order."""
        ...

    @abstractmethod
    def load_ledger(self, order_item_id: str):
        """Return the item's EscrowLedger or raise ObjectNotFoundError."""
        ...

    @abstractmethod
    def load_ledgers(self, group_order_id: str) -> list: ...

    @abstractmethod
    def save_ledger(self, ledger) -> None: ...

    @abstractmethod
    def save_ledgers(self, ledgers: list) -> None:
        """Save several ledgers; every revision is checked before any write."""
        ...

    @abstractmethod
    def load_schedules(self, group_order_id: str) -> list: ...

    @abstractmethod
    def save_schedule(self, schedule) -> None: ...

    @abstractmethod
    def save_changes(self, group_order=None, ledgers=(), schedules=()) -> None:
        """Save any mix of aggregates; all revisions are checked first."""
        ...
