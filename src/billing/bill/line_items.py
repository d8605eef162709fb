"""Line item addition — command and handler."""

from protean import handle
from protean.fields import DateTime, Float, Identifier, Text
from protean.utils.globals import current_domain

from billing.bill.bill import Bill
from billing.domain import billing


@billing.command(part_of="Bill")
class AddLineItem:
    """Append a line item to an open bill."""

    bill_id = Identifier(required=True)
    line_item_id = Identifier(required=True)
    description = Text(default="")
    amount = Float(required=True)
    added_at = DateTime(required=True)


@billing.command_handler(part_of=Bill)
class AddLineItemHandler:
    @handle(AddLineItem)
    def add_line_item(self, command):
        repo = current_domain.repository_for(Bill)
        bill = repo.get(command.bill_id)
        added = bill.add_line_item(
            line_item_id=str(command.line_item_id),
            description=command.description or "",
            amount=command.amount,
            added_at=command.added_at,
        )
        if added:
            repo.add(bill)
        return bill
