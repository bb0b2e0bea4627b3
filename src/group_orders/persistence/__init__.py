"""Store factory.

Provides get_store() / set_store() so tests can swap in their own store.
"""

from group_orders.persistence.port import GroupOrderStore

_current_store: GroupOrderStore | None = None


def get_store() -> GroupOrderStore:
    """Return the current store. Defaults to ProteanGroupOrderStore."""
    global _current_store
    if _current_store is None:
        from group_orders.persistence.protean_store import ProteanGroupOrderStore

        _current_store = ProteanGroupOrderStore()
    return _current_store


def set_store(store: GroupOrderStore) -> None:
    """Override the active store (useful for tests)."""
    global _current_store
    _current_store = store


def reset_store() -> None:
    """Reset to default store."""
    global _current_store
    _current_store = None
