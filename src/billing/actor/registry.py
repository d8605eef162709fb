"""Actor registry — one bill actor per bill id.

Routes commands and queries to the actor that owns a bill and keeps
terminated actors around so their final state stays queryable. Actors for
different bills run as independent tasks and share nothing.

Retention: a terminated actor is kept for the life of the registry, which is
the life of the process. It holds only its final snapshot, and listing reads
that snapshot directly instead of going through the actor's mailbox. Bills
from an earlier process come back through `recover`.
"""

import asyncio
import os
import random

import structlog
from protean.domain import Domain
from protean.exceptions import ObjectNotFoundError

from billing.actor.actor import BillActor
from billing.actor.effects import RecordedEffects
from billing.actor.errors import BillActorStopped, BillAlreadyExists, BillNotFound
from billing.bill.bill import Bill, BillStatus
from billing.bill.snapshot import BillSnapshot
from billing.store import get_store
from billing.store.port import BillStore

logger = structlog.get_logger(__name__)

CLOSE_WAIT_TIMEOUT = float(os.environ.get("BILL_CLOSE_WAIT_TIMEOUT", "10"))


class BillActorRegistry:
    def __init__(
        self,
        domain: Domain,
        store: BillStore | None = None,
        side_effect_timeout: float | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._domain = domain
        self.store = store or get_store()
        self._side_effect_timeout = side_effect_timeout
        self._rng = rng
        self._actors: dict[str, BillActor] = {}
        self._reserved: set[str] = set()

    def _new_actor(self, effects: RecordedEffects | None = None) -> BillActor:
        return BillActor(
            self._domain,
            self.store,
            effects=effects,
            rng=self._rng,
            side_effect_timeout=self._side_effect_timeout,
        )

    def _get(self, bill_id: str) -> BillActor:
        try:
            return self._actors[bill_id]
        except KeyError:
            raise BillNotFound(bill_id) from None

    def _recorded_in_history(self, bill_id: str) -> bool:
        with self._domain.domain_context():
            try:
                self._domain.repository_for(Bill).get(bill_id)
            except ObjectNotFoundError:
                return False
        return True

    def _register(self, actor: BillActor) -> None:
        self._actors[actor.bill_id] = actor
        actor.start().add_done_callback(self._on_actor_done)

    @staticmethod
    def _on_actor_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Bill actor terminated with failure", actor=task.get_name(), error=str(exc))

    def __contains__(self, bill_id: str) -> bool:
        return bill_id in self._actors

    def actor(self, bill_id: str) -> BillActor:
        return self._get(bill_id)

    # -------------------------------------------------------------------
    # Creation and recovery
    # -------------------------------------------------------------------
    async def create(
        self,
        currency: str,
        customer_id: str = "",
        bill_id: str | None = None,
        effects: RecordedEffects | None = None,
    ) -> BillSnapshot:
        """Start an actor for a new bill and return its initial state.

        BillCreationFailed propagates when the initial store write fails; in
        that case no actor is registered.
        """
        if bill_id is not None:
            if bill_id in self._actors or bill_id in self._reserved or self._recorded_in_history(bill_id):
                raise BillAlreadyExists(bill_id)
            self._reserved.add(bill_id)

        actor = self._new_actor(effects)
        try:
            snapshot = await actor.initialize(currency=currency, customer_id=customer_id, bill_id=bill_id)
        finally:
            self._reserved.discard(bill_id)

        self._register(actor)
        return snapshot

    async def recover(self, bill_id: str) -> BillSnapshot:
        """Bring a bill's actor back from its event history, e.g. after a restart."""
        if bill_id in self._actors:
            return await self._actors[bill_id].query()

        actor = BillActor.recover(
            self._domain,
            self.store,
            bill_id,
            rng=self._rng,
            side_effect_timeout=self._side_effect_timeout,
        )
        self._register(actor)
        return actor.snapshot

    # -------------------------------------------------------------------
    # Commands (fire-and-forget)
    # -------------------------------------------------------------------
    def add_line_item(
        self,
        bill_id: str,
        description: str,
        amount: float,
        line_item_id: str | None = None,
    ) -> None:
        self._get(bill_id).add_line_item(description=description, amount=amount, line_item_id=line_item_id)

    def close(self, bill_id: str) -> None:
        self._get(bill_id).close()

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    async def query(self, bill_id: str) -> BillSnapshot:
        return await self._get(bill_id).query()

    async def wait_closed(self, bill_id: str, timeout: float | None = None) -> BillSnapshot:
        """Wait for a bill's actor to finish and return the closed bill.

        Raises TimeoutError if it does not finish in time, in which case the
        actor keeps running, and BillActorStopped if the actor was cancelled.
        """
        actor = self._get(bill_id)
        timeout = CLOSE_WAIT_TIMEOUT if timeout is None else timeout
        try:
            return await asyncio.wait_for(asyncio.shield(actor.task), timeout=timeout)
        except asyncio.CancelledError:
            # Only the actor's own cancellation is translated; ours propagates
            if actor.task.cancelled():
                raise BillActorStopped(bill_id) from None
            raise

    async def list_bills(
        self,
        status: str | None = None,
        currency: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> tuple[list[BillSnapshot], int]:
        """Bills known to this registry, oldest first, with the unpaginated count."""
        if status:
            status = BillStatus(status).value

        live = [actor for actor in self._actors.values() if actor.accepting]
        snapshots = [actor.snapshot for actor in self._actors.values() if not actor.accepting]
        snapshots += await asyncio.gather(*(actor.query() for actor in live))
        matching = [
            snapshot
            for snapshot in snapshots
            if (not status or snapshot.status == status) and (not currency or snapshot.currency == currency)
        ]
        matching.sort(key=lambda snapshot: (snapshot.created_at is None, snapshot.created_at, snapshot.id))

        page = matching[offset:] if limit is None else matching[offset : offset + limit]
        return page, len(matching)

    async def shutdown(self) -> None:
        """Stop every running actor at its current await point."""
        for actor in list(self._actors.values()):
            await actor.stop()
        logger.info("Bill actor registry shut down", actors=len(self._actors))
