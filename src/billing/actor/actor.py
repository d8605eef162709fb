"""Bill lifecycle actor.

One actor owns one bill. It processes its mailbox strictly one input at a
time, records every accepted command as a domain event through a Protean
command, and mirrors state into the bill store as side effects.

Store failure policy:
    upsert_bill during initialize  → fatal, the bill is never created
    save_line_item / finalize_bill → logged only, actor state stays authoritative

Store calls run in a worker thread under a timeout; a timeout counts as a
failure. The actor never retries a store call itself. A timed-out call is
abandoned, not interrupted: its worker thread runs to completion, so a late
save_line_item can overlap the next store write and a late initial upsert can
still land after BillCreationFailed was raised.

Invalid commands (anything after close, a line item id already on the bill,
a line item whose fields do not validate, a second close) are dropped
without telling the sender. Callers learn the outcome with a query.
"""

import asyncio
import contextlib
import os
import random
from collections.abc import Callable

import structlog
from protean.domain import Domain
from protean.exceptions import ObjectNotFoundError, ValidationError

from billing.actor.dispatcher import (
    AddLineItemSignal,
    CloseSignal,
    CommandDispatcher,
    InputKind,
    QueryRequest,
)
from billing.actor.effects import RecordedEffects
from billing.actor.errors import BillActorFailed, BillCreationFailed, BillNotFound
from billing.bill.bill import Bill, BillStatus
from billing.bill.closing import CloseBill
from billing.bill.line_items import AddLineItem
from billing.bill.opening import OpenBill
from billing.bill.snapshot import BillSnapshot
from billing.store.port import BillStore

logger = structlog.get_logger(__name__)

SIDE_EFFECT_TIMEOUT = float(os.environ.get("BILL_SIDE_EFFECT_TIMEOUT", "10"))


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class BillActor:
    def __init__(
        self,
        domain: Domain,
        store: BillStore,
        effects: RecordedEffects | None = None,
        rng: random.Random | None = None,
        side_effect_timeout: float | None = None,
    ) -> None:
        self._domain = domain
        self._store = store
        self.effects = effects or RecordedEffects()
        self._dispatcher = CommandDispatcher(rng=rng)
        self._timeout = SIDE_EFFECT_TIMEOUT if side_effect_timeout is None else side_effect_timeout
        self._snapshot: BillSnapshot | None = None
        self._task: asyncio.Task | None = None

    @classmethod
    def recover(cls, domain: Domain, store: BillStore, bill_id: str, **kwargs) -> "BillActor":
        """Rebuild an actor from the bill's event history.

        State comes from replaying recorded events, so no identifier or
        timestamp is generated again.
        """
        actor = cls(domain, store, **kwargs)
        with domain.domain_context():
            try:
                bill = domain.repository_for(Bill).get(bill_id)
            except ObjectNotFoundError:
                raise BillNotFound(bill_id) from None
        actor._snapshot = BillSnapshot.from_bill(bill)
        logger.info("Bill actor recovered", bill_id=bill_id, status=bill.status)
        return actor

    # -------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------
    @property
    def bill_id(self) -> str | None:
        return self._snapshot.id if self._snapshot else None

    @property
    def snapshot(self) -> BillSnapshot | None:
        return self._snapshot

    @property
    def task(self) -> asyncio.Task | None:
        return self._task

    @property
    def accepting(self) -> bool:
        """True while the processing loop is alive."""
        return self._task is not None and not self._task.done()

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    async def initialize(self, currency: str, customer_id: str = "", bill_id: str | None = None) -> BillSnapshot:
        """Create the bill. Raises BillCreationFailed if the store rejects it."""
        if self._snapshot is not None:
            raise RuntimeError(f"Bill actor {self.bill_id} is already initialized")

        bill_id = bill_id or self.effects.new_id()
        created_at = self.effects.now()

        # Validated before the store sees anything, so a rejected bill leaves no row behind
        try:
            command = OpenBill(
                bill_id=bill_id,
                customer_id=customer_id,
                currency=currency,
                opened_at=created_at,
            )
        except ValidationError as exc:
            logger.error("Invalid bill, bill not created", bill_id=bill_id, error=_describe(exc))
            raise BillCreationFailed(bill_id, _describe(exc)) from exc

        try:
            await self._call_store(
                self._store.upsert_bill,
                bill_id=bill_id,
                customer_id=customer_id,
                currency=currency,
                status=BillStatus.OPEN.value,
                created_at=created_at,
            )
        except Exception as exc:
            logger.error("Failed to upsert bill, bill not created", bill_id=bill_id, error=_describe(exc))
            raise BillCreationFailed(bill_id, _describe(exc)) from exc

        bill = self._execute(command)
        self._snapshot = BillSnapshot.from_bill(bill)
        logger.info("Bill actor started", bill_id=bill_id, customer_id=customer_id, currency=currency)
        return self._snapshot

    def start(self) -> asyncio.Task:
        if self._snapshot is None:
            raise RuntimeError("Bill actor must be initialized or recovered before it is started")
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"bill-{self.bill_id}")
        return self._task

    async def result(self) -> BillSnapshot:
        """Wait for the terminal outcome: the closed bill, or BillActorFailed."""
        if self._task is None:
            raise RuntimeError("Bill actor was never started")
        return await self._task

    async def stop(self) -> None:
        """Cancel the processing loop at its current await point."""
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task

    # -------------------------------------------------------------------
    # Mailbox
    # -------------------------------------------------------------------
    def add_line_item(self, description: str, amount: float, line_item_id: str | None = None) -> None:
        self._deliver(
            InputKind.ADD_LINE_ITEM,
            AddLineItemSignal(description=description, amount=amount, line_item_id=line_item_id),
        )

    def close(self) -> None:
        self._deliver(InputKind.CLOSE, CloseSignal())

    async def query(self) -> BillSnapshot:
        """Current state, after every command processed ahead of this query."""
        if not self.accepting:
            return self._snapshot

        request = QueryRequest()
        self._dispatcher.deliver(InputKind.QUERY, request)
        return await request.reply

    def _deliver(self, kind: InputKind, message) -> None:
        if self._task is not None and self._task.done():
            logger.warning(
                "Command delivered to a terminated bill actor, ignoring",
                bill_id=self.bill_id,
                command=kind.value,
                bill_status=self._snapshot.status if self._snapshot else None,
            )
            return
        self._dispatcher.deliver(kind, message)

    # -------------------------------------------------------------------
    # Processing loop
    # -------------------------------------------------------------------
    async def _run(self) -> BillSnapshot:
        try:
            while self._snapshot.is_open:
                kind, message = await self._dispatcher.next()
                if kind is InputKind.QUERY:
                    self._reply(message)
                elif kind is InputKind.ADD_LINE_ITEM:
                    await self._handle_add_line_item(message)
                else:
                    await self._handle_close()
        except asyncio.CancelledError:
            logger.info("Bill actor cancelled", bill_id=self.bill_id, status=self._snapshot.status)
            raise
        except Exception as exc:
            logger.exception("Bill actor failed", bill_id=self.bill_id)
            raise BillActorFailed(self.bill_id, _describe(exc)) from exc
        finally:
            self._discard_pending()

        logger.info(
            "Bill actor completed",
            bill_id=self.bill_id,
            status=self._snapshot.status,
            total_amount=self._snapshot.total_amount,
        )
        return self._snapshot

    def _reply(self, request: QueryRequest) -> None:
        # The asker may have given up waiting
        if not request.reply.done():
            request.reply.set_result(self._snapshot)

    def _discard_pending(self) -> None:
        pending = self._dispatcher.drain()
        for request in pending[InputKind.QUERY]:
            self._reply(request)

        discarded = len(pending[InputKind.ADD_LINE_ITEM]) + len(pending[InputKind.CLOSE])
        if discarded:
            logger.warning(
                "Discarding commands queued behind bill termination",
                bill_id=self.bill_id,
                bill_status=self._snapshot.status,
                discarded=discarded,
            )

    async def _handle_add_line_item(self, signal: AddLineItemSignal) -> None:
        if not self._snapshot.is_open:
            logger.warning(
                "AddLineItem received for a non-open bill, ignoring",
                bill_id=self.bill_id,
                bill_status=self._snapshot.status,
                line_item_id=signal.line_item_id,
            )
            return

        line_item_id = signal.line_item_id or self.effects.new_id()
        if self._snapshot.has_line_item(line_item_id):
            logger.info("Duplicate line item id received, ignoring", bill_id=self.bill_id, line_item_id=line_item_id)
            return

        added_at = self.effects.now()
        try:
            command = AddLineItem(
                bill_id=self.bill_id,
                line_item_id=line_item_id,
                description=signal.description,
                amount=signal.amount,
                added_at=added_at,
            )
        except ValidationError as exc:
            logger.warning(
                "Invalid line item received, ignoring",
                bill_id=self.bill_id,
                line_item_id=line_item_id,
                error=_describe(exc),
            )
            return

        previous = self._snapshot
        bill = self._execute(command)
        self._snapshot = BillSnapshot.from_bill(bill)
        if len(self._snapshot.line_items) == len(previous.line_items):
            return

        logger.info(
            "Line item added",
            bill_id=self.bill_id,
            line_item_id=line_item_id,
            amount=signal.amount,
            total_amount=self._snapshot.total_amount,
        )
        await self._best_effort(
            self._store.save_line_item,
            line_item_id=line_item_id,
            bill_id=self.bill_id,
            description=signal.description,
            amount=signal.amount,
            created_at=added_at,
        )

    async def _handle_close(self) -> None:
        if not self._snapshot.is_open:
            logger.info("Close received for a closed bill, ignoring", bill_id=self.bill_id)
            return

        total = self._snapshot.sum_line_items()
        closed_at = self.effects.now()
        finalized = await self._best_effort(
            self._store.finalize_bill,
            bill_id=self.bill_id,
            status=BillStatus.CLOSED.value,
            total_amount=total,
            closed_at=closed_at,
        )

        # Closed regardless of whether the store accepted the final numbers
        bill = self._execute(CloseBill(bill_id=self.bill_id, closed_at=closed_at))
        self._snapshot = BillSnapshot.from_bill(bill)
        logger.info(
            "Bill closed",
            bill_id=self.bill_id,
            total_amount=self._snapshot.total_amount,
            store_finalized=finalized,
        )

    # -------------------------------------------------------------------
    # Effects
    # -------------------------------------------------------------------
    def _execute(self, command) -> Bill:
        """Apply a command and record its event in one unit of work."""
        with self._domain.domain_context():
            return self._domain.process(command, asynchronous=False)

    async def _call_store(self, operation: Callable, **params) -> None:
        await asyncio.wait_for(asyncio.to_thread(operation, **params), timeout=self._timeout)

    async def _best_effort(self, operation: Callable, **params) -> bool:
        try:
            await self._call_store(operation, **params)
        except Exception as exc:
            logger.error(
                "Bill store write failed",
                bill_id=self.bill_id,
                operation=operation.__name__,
                error=_describe(exc),
            )
            return False
        return True
