"""Domain events for the Bill aggregate.

All events are versioned, immutable facts. Every identifier and timestamp a
bill ever uses is carried here, so replaying a bill's stream never has to
generate a fresh one.
"""

from protean.fields import DateTime, Float, Identifier, Text

from billing.domain import billing


@billing.event(part_of="Bill")
class BillOpened:
    """A new bill was opened for a customer."""

    __version__ = "v1"

    bill_id = Identifier(required=True)
    customer_id = Text(default="")
    currency = Text(default="")
    opened_at = DateTime(required=True)


@billing.event(part_of="Bill")
class LineItemAdded:
    """A charge was appended to an open bill."""

    __version__ = "v1"

    bill_id = Identifier(required=True)
    line_item_id = Identifier(required=True)
    description = Text(default="")
    amount = Float(required=True)
    added_at = DateTime(required=True)


@billing.event(part_of="Bill")
class BillClosed:
    """The bill was closed and its total finalized."""

    __version__ = "v1"

    bill_id = Identifier(required=True)
    total_amount = Float(required=True)
    closed_at = DateTime(required=True)
