"""Shared BDD fixtures and step definitions for the Billing domain."""

import asyncio

import pytest
from pytest_bdd import given, parsers, then, when
from structlog.testing import capture_logs

from billing.bill.bill import BillStatus


class BillScenario:
    """Collects the steps of a scenario and plays them against one actor.

    Steps run in order on the first `Then`, each command waiting until the
    actor has applied it, so outcomes do not depend on tie-breaks.
    """

    def __init__(self, make_actor, add_and_wait):
        self._make_actor = make_actor
        self._add_and_wait = add_and_wait
        self.opening = {}
        self.steps = []
        self.outcome = None
        self.logs = []

    def run(self):
        if self.outcome is None:
            with capture_logs() as logs:
                self.outcome = asyncio.run(self._play())
            self.logs = logs
        return self.outcome

    async def _play(self):
        actor = self._make_actor()
        await actor.initialize(**self.opening)
        actor.start()
        for step in self.steps:
            await step(actor)

        snapshot = await actor.query()
        await actor.stop()
        return snapshot


@pytest.fixture()
def bill_scenario(make_actor, add_and_wait):
    return BillScenario(make_actor, add_and_wait)


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a bill "{bill_id}" is opened for customer "{customer_id}" in "{currency}"'))
def _open_bill(bill_scenario, bill_id, customer_id, currency):
    bill_scenario.opening = {"bill_id": bill_id, "customer_id": customer_id, "currency": currency}


@given(parsers.cfparse('the bill store rejects "{operation}"'))
def _store_rejects(store, operation):
    store.configure(fail_on={operation})


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('a line item "{description}" of {amount:f} is added'))
def _add_line_item(bill_scenario, description, amount):
    async def step(actor):
        await bill_scenario._add_and_wait(actor, description, amount)

    bill_scenario.steps.append(step)


@when(parsers.cfparse('a line item "{description}" of {amount:f} is added with id "{line_item_id}"'))
def _add_line_item_with_id(bill_scenario, description, amount, line_item_id):
    async def step(actor):
        await bill_scenario._add_and_wait(actor, description, amount, line_item_id=line_item_id)

    bill_scenario.steps.append(step)


@when(parsers.cfparse('a line item "{description}" of {amount:f} is sent'))
def _send_line_item(bill_scenario, description, amount):
    async def step(actor):
        actor.add_line_item(description, amount)

    bill_scenario.steps.append(step)


@when(parsers.cfparse('a line item "{description}" of {amount:f} is sent with id "{line_item_id}"'))
def _send_line_item_with_id(bill_scenario, description, amount, line_item_id):
    async def step(actor):
        actor.add_line_item(description, amount, line_item_id=line_item_id)

    bill_scenario.steps.append(step)


@when("the bill is closed")
def _close_bill(bill_scenario):
    async def step(actor):
        actor.close()
        await actor.result()

    bill_scenario.steps.append(step)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the bill status is "{status}"'))
def _status_is(bill_scenario, status):
    assert bill_scenario.run().status == BillStatus(status).value


@then(parsers.cfparse("the bill has {count:d} line items"))
def _line_item_count(bill_scenario, count):
    assert len(bill_scenario.run().line_items) == count


@then(parsers.cfparse("the bill total is {total:f}"))
def _total_is(bill_scenario, total):
    assert bill_scenario.run().total_amount == pytest.approx(total)


@then("the bill has a close time")
def _has_close_time(bill_scenario):
    assert bill_scenario.run().closed_at is not None


@then(parsers.cfparse('a "{operation}" store failure was logged'))
def _store_failure_logged(bill_scenario, operation):
    bill_scenario.run()
    failures = [log for log in bill_scenario.logs if log["event"] == "Bill store write failed"]
    assert [log["operation"] for log in failures] == [operation]
