"""Bill store factory.

Provides get_store() / set_store() to swap implementations:
- FakeBillStore for development and testing (default)
- SqlBillStore for SQLite/PostgreSQL, selected with BILL_STORE_ADAPTER=sql
"""

import os

from billing.store.port import BillStore

_current_store: BillStore | None = None


def get_store() -> BillStore:
    """Return the current bill store, creating the configured one on first use."""
    global _current_store
    if _current_store is None:
        adapter = os.environ.get("BILL_STORE_ADAPTER", "fake")
        if adapter == "fake":
            from billing.store.fake_adapter import FakeBillStore

            _current_store = FakeBillStore()
        elif adapter == "sql":
            from billing.store.sql_adapter import SqlBillStore

            _current_store = SqlBillStore(os.environ.get("BILL_STORE_DATABASE_URI", "sqlite:///billing.db"))
        else:
            raise ValueError(f"Unknown bill store adapter: {adapter}")
    return _current_store


def set_store(store: BillStore) -> None:
    """Override the active bill store (useful for tests)."""
    global _current_store
    _current_store = store


def reset_store() -> None:
    """Reset to the configured default store."""
    global _current_store
    _current_store = None
