"""Immutable point-in-time views of a bill, returned by actor queries."""

from dataclasses import asdict, dataclass, field
from datetime import datetime

from billing.bill.bill import Bill, BillStatus


@dataclass(frozen=True)
class LineItemSnapshot:
    id: str
    description: str
    amount: float
    created_at: datetime | None = None


@dataclass(frozen=True)
class BillSnapshot:
    """A value copy of a bill's state.

    Holding a snapshot never lets a caller observe later mutations: every
    field is immutable and line items are a tuple of frozen records.
    """

    id: str
    customer_id: str
    currency: str
    status: str
    line_items: tuple[LineItemSnapshot, ...] = field(default_factory=tuple)
    total_amount: float = 0.0
    created_at: datetime | None = None
    closed_at: datetime | None = None

    @classmethod
    def from_bill(cls, bill: Bill) -> "BillSnapshot":
        return cls(
            id=str(bill.id),
            customer_id=bill.customer_id or "",
            currency=bill.currency or "",
            status=bill.status,
            line_items=tuple(
                LineItemSnapshot(
                    id=str(item.id),
                    description=item.description or "",
                    amount=item.amount,
                    created_at=item.created_at,
                )
                for item in (bill.line_items or [])
            ),
            total_amount=bill.total_amount or 0.0,
            created_at=bill.created_at,
            closed_at=bill.closed_at,
        )

    @property
    def is_open(self) -> bool:
        return BillStatus(self.status) == BillStatus.OPEN

    def has_line_item(self, line_item_id: str) -> bool:
        return any(item.id == str(line_item_id) for item in self.line_items)

    def sum_line_items(self) -> float:
        return sum((item.amount for item in self.line_items), 0.0)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["line_items"] = list(data["line_items"])
        return data
