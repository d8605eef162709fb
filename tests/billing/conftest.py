import asyncio

import pytest
from protean import current_domain
from protean.integrations.pytest import DomainFixture

from billing.actor import reset_registry
from billing.actor.actor import BillActor
from billing.store import reset_store
from billing.store.fake_adapter import FakeBillStore


@pytest.fixture(scope="session")
def billing_bed():
    from billing.domain import billing

    bed = DomainFixture(billing)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(billing_bed):
    with billing_bed.domain_context():
        yield

        for _, provider in current_domain.providers.items():
            provider._data_reset()
        current_domain.event_store.store._data_reset()

    reset_registry()
    reset_store()


@pytest.fixture()
def store():
    return FakeBillStore()


@pytest.fixture()
def make_actor(store):
    """Build an unstarted actor over the fake store with a short store timeout."""
    from billing.domain import billing

    def _make(**kwargs):
        kwargs.setdefault("side_effect_timeout", 1.0)
        return BillActor(billing, store, **kwargs)

    return _make


async def _wait_until(actor, predicate, timeout=2.0):
    """Poll the actor with queries until `predicate(snapshot)` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        snapshot = await actor.query()
        if predicate(snapshot):
            return snapshot
        if loop.time() > deadline:
            raise AssertionError(f"Condition not reached, last state: {snapshot}")
        await asyncio.sleep(0.01)


async def _open_bill(actor, bill_id="B1", customer_id="C1", currency="USD"):
    await actor.initialize(bill_id=bill_id, customer_id=customer_id, currency=currency)
    actor.start()
    return actor


async def _add_and_wait(actor, description, amount, line_item_id=None):
    """Deliver one AddLineItem and wait until the actor has applied it."""
    before = len((await actor.query()).line_items)
    actor.add_line_item(description, amount, line_item_id=line_item_id)
    return await _wait_until(actor, lambda snapshot: len(snapshot.line_items) > before)


@pytest.fixture()
def wait_until():
    return _wait_until


@pytest.fixture()
def open_bill():
    return _open_bill


@pytest.fixture()
def add_and_wait():
    return _add_and_wait
