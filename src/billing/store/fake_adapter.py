"""Configurable in-memory bill store for development and testing.

Honors the same conflict semantics as the SQL adapter and records every call.
It can be configured at runtime to fail or to stall selected operations, which
is how the actor's failure and timeout policies are exercised.
"""

import time
from datetime import datetime

from billing.store.port import BillStore

OPERATIONS = ("upsert_bill", "save_line_item", "finalize_bill")


class StoreUnavailable(Exception):
    """Raised by the fake store when an operation is configured to fail."""


class FakeBillStore(BillStore):
    """Configurable fake bill store."""

    def __init__(self) -> None:
        self.bills: dict[str, dict] = {}
        self.line_items: dict[str, dict] = {}
        self.calls: list[dict] = []
        self.fail_on: set[str] = set()
        self.failure_reason: str = "Store unavailable"
        self.delay: float = 0.0

    def configure(
        self,
        fail_on: set[str] | None = None,
        failure_reason: str = "Store unavailable",
        delay: float = 0.0,
    ) -> None:
        """Configure store behavior at runtime."""
        unknown = set(fail_on or ()) - set(OPERATIONS)
        if unknown:
            raise ValueError(f"Unknown store operations: {sorted(unknown)}")
        self.fail_on = set(fail_on or ())
        self.failure_reason = failure_reason
        self.delay = delay

    def calls_to(self, method: str) -> list[dict]:
        return [call for call in self.calls if call["method"] == method]

    def _enter(self, method: str, **params) -> None:
        self.calls.append({"method": method, **params})
        if self.delay:
            time.sleep(self.delay)
        if method in self.fail_on:
            raise StoreUnavailable(f"{method}: {self.failure_reason}")

    def upsert_bill(
        self,
        bill_id: str,
        customer_id: str,
        currency: str,
        status: str,
        created_at: datetime,
    ) -> None:
        self._enter(
            "upsert_bill",
            bill_id=bill_id,
            customer_id=customer_id,
            currency=currency,
            status=status,
            created_at=created_at,
        )
        existing = self.bills.get(bill_id)
        if existing is not None:
            existing.update(customer_id=customer_id, currency=currency, status=status)
            return

        self.bills[bill_id] = {
            "id": bill_id,
            "customer_id": customer_id,
            "currency": currency,
            "status": status,
            "created_at": created_at,
            "closed_at": None,
            "total_amount": 0.0,
        }

    def save_line_item(
        self,
        line_item_id: str,
        bill_id: str,
        description: str,
        amount: float,
        created_at: datetime,
    ) -> None:
        self._enter(
            "save_line_item",
            line_item_id=line_item_id,
            bill_id=bill_id,
            description=description,
            amount=amount,
            created_at=created_at,
        )
        if bill_id not in self.bills:
            raise StoreUnavailable(f"save_line_item: bill {bill_id} does not exist")
        if line_item_id in self.line_items:
            raise StoreUnavailable(f"save_line_item: line item {line_item_id} already exists")

        self.line_items[line_item_id] = {
            "id": line_item_id,
            "bill_id": bill_id,
            "description": description,
            "amount": amount,
            "created_at": created_at,
        }

    def finalize_bill(
        self,
        bill_id: str,
        status: str,
        total_amount: float,
        closed_at: datetime,
    ) -> None:
        self._enter(
            "finalize_bill",
            bill_id=bill_id,
            status=status,
            total_amount=total_amount,
            closed_at=closed_at,
        )
        row = self.bills.get(bill_id)
        if row is None:
            return
        row.update(status=status, total_amount=total_amount, closed_at=closed_at)

    def fetch_bill(self, bill_id: str) -> dict | None:
        row = self.bills.get(bill_id)
        if row is None:
            return None
        items = [dict(item) for item in self.line_items.values() if item["bill_id"] == bill_id]
        return {**row, "line_items": items}
