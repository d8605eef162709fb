"""Bill closing — command and handler."""

from protean import handle
from protean.fields import DateTime, Identifier
from protean.utils.globals import current_domain

from billing.bill.bill import Bill
from billing.domain import billing


@billing.command(part_of="Bill")
class CloseBill:
    """Close an open bill, freezing its total."""

    bill_id = Identifier(required=True)
    closed_at = DateTime(required=True)


@billing.command_handler(part_of=Bill)
class CloseBillHandler:
    @handle(CloseBill)
    def close_bill(self, command):
        repo = current_domain.repository_for(Bill)
        bill = repo.get(command.bill_id)
        if bill.close(closed_at=command.closed_at):
            repo.add(bill)
        return bill
