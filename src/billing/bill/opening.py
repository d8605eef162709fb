"""Bill opening — command and handler."""

from protean import handle
from protean.fields import DateTime, Identifier, Text
from protean.utils.globals import current_domain

from billing.bill.bill import Bill
from billing.domain import billing


@billing.command(part_of="Bill")
class OpenBill:
    """Open a new bill. Identity and timestamp are supplied by the caller."""

    bill_id = Identifier(required=True)
    customer_id = Text(default="")
    currency = Text(default="")
    opened_at = DateTime(required=True)


@billing.command_handler(part_of=Bill)
class OpenBillHandler:
    @handle(OpenBill)
    def open_bill(self, command):
        bill = Bill.create(
            bill_id=str(command.bill_id),
            customer_id=command.customer_id or "",
            currency=command.currency or "",
            opened_at=command.opened_at,
        )
        current_domain.repository_for(Bill).add(bill)
        return bill
