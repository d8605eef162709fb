"""Bill aggregate (Event Sourced) — the core of the billing domain.

State lives only in the @apply handlers: the live path raises an event and the
replay path applies the same event, so both arrive at identical state.

State Machine:
    OPEN → CLOSED (terminal)

Invalid commands are not errors here. Adding to a closed bill, adding a line
item id that is already present, and closing twice are silent no-ops; the
methods report whether anything was recorded.
"""

from enum import Enum

from protean import apply
from protean.fields import DateTime, Float, HasMany, String, Text

from billing.bill.events import BillClosed, BillOpened, LineItemAdded
from billing.domain import billing


class BillStatus(Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


@billing.entity(part_of="Bill")
class LineItem:
    """An individual charge on a bill."""

    description = Text(default="")
    amount = Float(required=True)
    created_at = DateTime()


@billing.aggregate(is_event_sourced=True)
class Bill:
    customer_id = Text(default="")
    currency = Text(default="")
    status = String(
        choices=BillStatus,
        default=BillStatus.OPEN.value,
    )
    line_items = HasMany(LineItem)
    total_amount = Float(default=0.0)
    created_at = DateTime()
    closed_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, bill_id: str, customer_id: str, currency: str, opened_at):
        """Open a new, empty bill.

        All other state is set by the BillOpened @apply handler.
        `bill_id` and `opened_at` must come from recorded effects; they are
        stored in the BillOpened event and reused verbatim on replay.
        """
        # Identity is fixed up front so the event lands in this bill's stream
        bill = cls(id=bill_id)
        bill.raise_(
            BillOpened(
                bill_id=bill_id,
                customer_id=customer_id,
                currency=currency,
                opened_at=opened_at,
            )
        )
        return bill

    # -------------------------------------------------------------------
    # Queries on current state
    # -------------------------------------------------------------------
    @property
    def is_open(self) -> bool:
        return BillStatus(self.status) == BillStatus.OPEN

    def has_line_item(self, line_item_id: str) -> bool:
        return any(str(item.id) == str(line_item_id) for item in (self.line_items or []))

    def sum_line_items(self) -> float:
        """Full sum over all line items, never an incremental running total."""
        return sum((item.amount for item in (self.line_items or [])), 0.0)

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def add_line_item(self, line_item_id: str, description: str, amount: float, added_at) -> bool:
        """Append a line item. Returns False when the command is discarded."""
        if not self.is_open or self.has_line_item(line_item_id):
            return False

        self.raise_(
            LineItemAdded(
                bill_id=str(self.id),
                line_item_id=str(line_item_id),
                description=description,
                amount=amount,
                added_at=added_at,
            )
        )
        return True

    def close(self, closed_at) -> bool:
        """Close the bill with its final total. Returns False if already closed."""
        if not self.is_open:
            return False

        self.raise_(
            BillClosed(
                bill_id=str(self.id),
                total_amount=self.sum_line_items(),
                closed_at=closed_at,
            )
        )
        return True

    # -------------------------------------------------------------------
    # @apply methods — rebuild state during event replay
    # -------------------------------------------------------------------
    @apply
    def _on_bill_opened(self, event: BillOpened):
        self.id = event.bill_id
        self.customer_id = event.customer_id
        self.currency = event.currency
        self.status = BillStatus.OPEN.value
        self.total_amount = 0.0
        self.created_at = event.opened_at
        self.closed_at = None

    @apply
    def _on_line_item_added(self, event: LineItemAdded):
        if not self.has_line_item(event.line_item_id):
            self.add_line_items(
                LineItem(
                    id=event.line_item_id,
                    description=event.description,
                    amount=event.amount,
                    created_at=event.added_at,
                )
            )
        self.total_amount = self.sum_line_items()

    @apply
    def _on_bill_closed(self, event: BillClosed):
        self.status = BillStatus.CLOSED.value
        self.total_amount = event.total_amount
        self.closed_at = event.closed_at
