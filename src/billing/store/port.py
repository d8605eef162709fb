"""Bill store port (abstract interface).

Defines the write contract the bill actor drives as side effects. The store
receives copies of actor state for durability; it is never authoritative.
Implementations signal failure by raising; the actor decides what a failure
means (fatal for the initial upsert, logged and ignored otherwise).
"""

from abc import ABC, abstractmethod
from datetime import datetime


class BillStore(ABC):
    """Abstract persistence gateway for bills and their line items."""

    @abstractmethod
    def upsert_bill(
        self,
        bill_id: str,
        customer_id: str,
        currency: str,
        status: str,
        created_at: datetime,
    ) -> None:
        """Insert a bill row, or update it if the id exists.

        On conflict the stored total_amount and created_at are preserved.
        Safe to call more than once.
        """
        ...

    @abstractmethod
    def save_line_item(
        self,
        line_item_id: str,
        bill_id: str,
        description: str,
        amount: float,
        created_at: datetime,
    ) -> None:
        """Insert a line item row. A repeated id is rejected, not merged."""
        ...

    @abstractmethod
    def finalize_bill(
        self,
        bill_id: str,
        status: str,
        total_amount: float,
        closed_at: datetime,
    ) -> None:
        """Record the closed status, final total and close time."""
        ...

    @abstractmethod
    def fetch_bill(self, bill_id: str) -> dict | None:
        """Return the stored bill with a `line_items` list, or None."""
        ...
