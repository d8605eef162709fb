"""Application tests for the bill actor: lifecycle, store policies, queries."""

import asyncio
import random

import pytest
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError
from structlog.testing import capture_logs

from billing.actor import actor as actor_module
from billing.actor.actor import BillActor
from billing.actor.errors import BillActorFailed, BillCreationFailed
from billing.bill.bill import Bill, BillStatus
from billing.domain import billing

pytestmark = pytest.mark.asyncio


def _event_types(bill_id):
    messages = current_domain.event_store.store.read(f"billing::bill-{bill_id}")
    return [message.metadata.headers.type for message in messages]


class TestInitialize:
    async def test_initialize_returns_open_bill(self, make_actor):
        actor = make_actor()
        snapshot = await actor.initialize(bill_id="B1", customer_id="C1", currency="USD")

        assert snapshot.id == "B1"
        assert snapshot.customer_id == "C1"
        assert snapshot.currency == "USD"
        assert snapshot.status == BillStatus.OPEN.value
        assert snapshot.line_items == ()
        assert snapshot.total_amount == 0.0
        assert snapshot.created_at is not None
        assert snapshot.closed_at is None

    async def test_initialize_upserts_the_bill(self, make_actor, store):
        await make_actor().initialize(bill_id="B1", customer_id="C1", currency="USD")

        calls = store.calls_to("upsert_bill")
        assert len(calls) == 1
        assert calls[0]["status"] == BillStatus.OPEN.value
        assert store.fetch_bill("B1")["currency"] == "USD"

    async def test_initialize_records_bill_opened(self, make_actor):
        await make_actor().initialize(bill_id="B1", customer_id="C1", currency="USD")

        bill = current_domain.repository_for(Bill).get("B1")
        assert bill.status == BillStatus.OPEN.value

    async def test_initialize_generates_an_id(self, make_actor):
        snapshot = await make_actor().initialize(currency="EUR")
        assert snapshot.id
        assert snapshot.customer_id == ""

    async def test_upsert_failure_means_no_bill(self, make_actor, store):
        store.configure(fail_on={"upsert_bill"})
        actor = make_actor()

        with pytest.raises(BillCreationFailed) as exc_info:
            await actor.initialize(bill_id="B1", customer_id="C1", currency="USD")

        assert exc_info.value.bill_id == "B1"
        assert actor.snapshot is None
        with pytest.raises(ObjectNotFoundError):
            current_domain.repository_for(Bill).get("B1")

    async def test_upsert_timeout_means_no_bill(self, make_actor, store):
        store.configure(delay=0.2)
        actor = make_actor(side_effect_timeout=0.05)

        with pytest.raises(BillCreationFailed) as exc_info:
            await actor.initialize(bill_id="B1", customer_id="C1", currency="USD")

        assert exc_info.value.reason == "TimeoutError"
        assert actor.snapshot is None

    async def test_long_customer_id_and_currency_are_accepted(self, make_actor, store):
        customer_id = "C" * 1000
        currency = "X" * 500
        snapshot = await make_actor().initialize(bill_id="B1", customer_id=customer_id, currency=currency)

        assert snapshot.customer_id == customer_id
        assert snapshot.currency == currency
        assert store.fetch_bill("B1")["customer_id"] == customer_id

    async def test_invalid_bill_is_rejected_before_the_store_is_touched(self, make_actor, store, monkeypatch):
        def _reject(**kwargs):
            raise ValidationError({"currency": ["is invalid"]})

        monkeypatch.setattr(actor_module, "OpenBill", _reject)
        with pytest.raises(BillCreationFailed):
            await make_actor().initialize(bill_id="B1", currency="USD")

        assert store.calls_to("upsert_bill") == []
        assert store.fetch_bill("B1") is None

    async def test_cannot_start_before_initialize(self, make_actor):
        with pytest.raises(RuntimeError):
            make_actor().start()


class TestLifecycleScenarios:
    async def test_items_then_close(self, make_actor, store, open_bill, add_and_wait):
        actor = await open_bill(make_actor())
        await add_and_wait(actor, "Item1", 100.50)
        await add_and_wait(actor, "Item2", 50.25)
        actor.close()
        final = await actor.result()

        assert final.status == BillStatus.CLOSED.value
        assert [item.description for item in final.line_items] == ["Item1", "Item2"]
        assert final.total_amount == 150.75
        assert final.closed_at is not None
        assert store.fetch_bill("B1")["total_amount"] == 150.75
        assert len(store.fetch_bill("B1")["line_items"]) == 2

    async def test_empty_bill_closes_at_zero(self, make_actor, open_bill):
        actor = await open_bill(make_actor())
        actor.close()
        final = await actor.result()

        assert final.status == BillStatus.CLOSED.value
        assert final.line_items == ()
        assert final.total_amount == 0.0
        assert final.closed_at is not None

    async def test_finalize_failure_still_closes(self, make_actor, store, open_bill, add_and_wait):
        store.configure(fail_on={"finalize_bill"})
        actor = await open_bill(make_actor())
        await add_and_wait(actor, "Item1", 20.0)

        with capture_logs() as logs:
            actor.close()
            final = await actor.result()

        assert final.status == BillStatus.CLOSED.value
        assert final.total_amount == 20.0
        assert store.fetch_bill("B1")["status"] == BillStatus.OPEN.value
        failures = [log for log in logs if log["event"] == "Bill store write failed"]
        assert len(failures) == 1
        assert failures[0]["operation"] == "finalize_bill"
        assert failures[0]["log_level"] == "error"

    async def test_save_line_item_failure_keeps_item(self, make_actor, store, open_bill, add_and_wait):
        store.configure(fail_on={"save_line_item"})
        actor = await open_bill(make_actor())

        with capture_logs() as logs:
            snapshot = await add_and_wait(actor, "Item1", 10.0)

        assert len(snapshot.line_items) == 1
        assert store.fetch_bill("B1")["line_items"] == []
        assert any(log.get("operation") == "save_line_item" for log in logs)
        await actor.stop()

    async def test_save_line_item_timeout_keeps_item(self, make_actor, store, open_bill, add_and_wait):
        actor = await open_bill(make_actor(side_effect_timeout=0.05))
        store.configure(delay=0.2)

        with capture_logs() as logs:
            snapshot = await add_and_wait(actor, "Item1", 10.0)

        assert len(snapshot.line_items) == 1
        failures = [log for log in logs if log["event"] == "Bill store write failed"]
        assert failures[0]["error"] == "TimeoutError"
        await actor.stop()


class TestAmounts:
    @pytest.mark.parametrize(
        "amounts",
        [[0.0], [-5.0], [-5.0, 5.0], [10.5, -2.25, 0.0], [0.0, 0.0, -0.5]],
    )
    async def test_zero_and_negative_amounts(self, make_actor, store, open_bill, add_and_wait, amounts):
        actor = await open_bill(make_actor())
        for index, amount in enumerate(amounts):
            await add_and_wait(actor, f"Item{index}", amount)
        actor.close()
        final = await actor.result()

        assert final.status == BillStatus.CLOSED.value
        assert [item.amount for item in final.line_items] == amounts
        assert final.total_amount == sum(amounts)
        assert final.closed_at is not None
        assert store.fetch_bill("B1")["total_amount"] == sum(amounts)


class TestInvalidCommands:
    async def test_long_description_is_a_valid_line_item(self, make_actor, open_bill, add_and_wait):
        description = "x" * 5000
        actor = await open_bill(make_actor())
        await add_and_wait(actor, description, 5.0)
        actor.close()
        final = await actor.result()

        assert final.status == BillStatus.CLOSED.value
        assert final.line_items[0].description == description
        assert final.total_amount == 5.0

    async def test_line_item_that_fails_validation_is_ignored(self, make_actor, store, open_bill, add_and_wait):
        actor = await open_bill(make_actor())

        with capture_logs() as logs:
            actor.add_line_item("Broken", "not-a-number", line_item_id="li-bad")
            await add_and_wait(actor, "Item1", 10.0, line_item_id="li-1")

        actor.close()
        final = await actor.result()
        assert [item.id for item in final.line_items] == ["li-1"]
        assert final.total_amount == 10.0
        assert [call["line_item_id"] for call in store.calls_to("save_line_item")] == ["li-1"]
        assert any(log["event"] == "Invalid line item received, ignoring" for log in logs)

    async def test_duplicate_line_item_id_is_ignored(self, make_actor, store, open_bill, add_and_wait):
        actor = await open_bill(make_actor())
        await add_and_wait(actor, "Item1", 10.0, line_item_id="li-1")

        with capture_logs() as logs:
            actor.add_line_item("Item1 again", 99.0, line_item_id="li-1")
            await add_and_wait(actor, "Item2", 5.0, line_item_id="li-2")

        snapshot = await actor.query()
        assert [item.id for item in snapshot.line_items] == ["li-1", "li-2"]
        assert snapshot.total_amount == 15.0
        assert [call["line_item_id"] for call in store.calls_to("save_line_item")] == ["li-1", "li-2"]
        assert any(log["event"] == "Duplicate line item id received, ignoring" for log in logs)
        await actor.stop()

    async def test_add_after_close_is_dropped(self, make_actor, open_bill):
        actor = await open_bill(make_actor())
        actor.close()
        final = await actor.result()

        with capture_logs() as logs:
            actor.add_line_item("Late", 1.0)

        snapshot = await actor.query()
        assert snapshot == final
        assert snapshot.line_items == ()
        assert logs[0]["log_level"] == "warning"

    async def test_second_close_changes_nothing(self, make_actor, store, open_bill):
        actor = await open_bill(make_actor())
        actor.close()
        actor.close()
        final = await actor.result()
        actor.close()

        assert (await actor.query()).closed_at == final.closed_at
        assert len(store.calls_to("finalize_bill")) == 1
        messages = current_domain.event_store.store.read("billing::bill-B1")
        closed = [m for m in messages if m.metadata.headers.type == "Billing.BillClosed.v1"]
        assert len(closed) == 1


class TestQueries:
    async def test_query_before_start_returns_initial_state(self, make_actor):
        actor = make_actor()
        await actor.initialize(bill_id="B1", currency="USD")
        snapshot = await actor.query()
        assert snapshot.id == "B1"

    async def test_query_during_slow_store_write_sees_complete_items(self, make_actor, store, open_bill):
        actor = await open_bill(make_actor())
        store.configure(delay=0.1)

        actor.add_line_item("Item1", 10.0, line_item_id="li-1")
        await asyncio.sleep(0.02)
        snapshot = await actor.query()

        for item in snapshot.line_items:
            assert item.id
            assert item.amount is not None
        assert snapshot.total_amount == snapshot.sum_line_items()
        await actor.stop()

    async def test_concurrent_queries_all_answered(self, make_actor, open_bill, add_and_wait):
        actor = await open_bill(make_actor())
        await add_and_wait(actor, "Item1", 10.0)

        snapshots = await asyncio.gather(*(actor.query() for _ in range(10)))
        assert {len(snapshot.line_items) for snapshot in snapshots} == {1}
        await actor.stop()

    async def test_returned_snapshot_is_not_live(self, make_actor, open_bill, add_and_wait):
        actor = await open_bill(make_actor())
        before = await actor.query()
        await add_and_wait(actor, "Item1", 10.0)

        assert before.line_items == ()
        await actor.stop()


class TestInterleaving:
    @pytest.mark.parametrize("seed", range(10))
    async def test_close_racing_adds_keeps_total_consistent(self, make_actor, open_bill, seed):
        actor = await open_bill(make_actor(rng=random.Random(seed)))
        submitted = [f"li-{i}" for i in range(4)]
        for index, line_item_id in enumerate(submitted):
            actor.add_line_item(f"Item{index}", float(index + 1), line_item_id=line_item_id)
        actor.close()

        final = await actor.result()
        ids = [item.id for item in final.line_items]
        assert final.status == BillStatus.CLOSED.value
        assert ids == submitted[: len(ids)]
        assert final.total_amount == sum(item.amount for item in final.line_items)

    async def test_bills_are_independent(self, make_actor, open_bill, add_and_wait):
        first = await open_bill(make_actor(), bill_id="B1")
        second = await open_bill(make_actor(), bill_id="B2")

        await add_and_wait(first, "Item1", 10.0)
        first.close()
        await first.result()

        snapshot = await second.query()
        assert snapshot.is_open
        assert snapshot.line_items == ()
        await second.stop()


class TestFaults:
    async def test_unexpected_fault_fails_the_actor(self, make_actor, open_bill, add_and_wait, monkeypatch):
        actor = await open_bill(make_actor())
        before = await add_and_wait(actor, "Item1", 10.0)

        def _boom(command):
            raise RuntimeError("event store unavailable")

        monkeypatch.setattr(actor, "_execute", _boom)
        with capture_logs():
            actor.add_line_item("Item2", 5.0)
            with pytest.raises(BillActorFailed) as exc_info:
                await actor.result()

        assert "event store unavailable" in exc_info.value.reason
        assert not actor.accepting
        assert await actor.query() == before

    async def test_stop_cancels_the_loop(self, make_actor, open_bill):
        actor = await open_bill(make_actor())
        await actor.stop()

        assert actor.task.cancelled()
        assert not actor.accepting

    async def test_stop_during_finalize_leaves_bill_open_and_recoverable(
        self, make_actor, store, open_bill, add_and_wait
    ):
        actor = await open_bill(make_actor())
        await add_and_wait(actor, "Item1", 10.0)
        store.configure(delay=0.3)
        actor.close()

        loop = asyncio.get_running_loop()
        deadline = loop.time() + 2.0
        while not store.calls_to("finalize_bill"):
            assert loop.time() < deadline
            await asyncio.sleep(0.01)
        await actor.stop()

        assert actor.task.cancelled()
        assert actor.snapshot.is_open
        assert "Billing.BillClosed.v1" not in _event_types("B1")

        store.configure()
        recovered = BillActor.recover(billing, store, "B1", side_effect_timeout=1.0)
        assert recovered.snapshot.status == BillStatus.OPEN.value
        assert [item.description for item in recovered.snapshot.line_items] == ["Item1"]

        recovered.start()
        recovered.close()
        final = await recovered.result()
        assert final.status == BillStatus.CLOSED.value
        assert final.total_amount == 10.0
        assert _event_types("B1").count("Billing.BillClosed.v1") == 1
