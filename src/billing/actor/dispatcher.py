"""Per-actor mailbox and selection loop.

Each bill actor owns one `CommandDispatcher`. Senders deliver into per-kind
FIFO queues; the actor awaits `next()` to get exactly one ready input.

Selection rules:
    - A ready query is always taken first, so it waits at most for the
      command already in flight.
    - When AddLineItem and Close are both ready, the pick between them is a
      random choice. This tie-break is intentionally nondeterministic; only
      the order within one kind is guaranteed (FIFO as delivered).
"""

import asyncio
import random
from collections import deque
from dataclasses import dataclass, field
from enum import Enum


class InputKind(Enum):
    ADD_LINE_ITEM = "AddLineItem"
    CLOSE = "Close"
    QUERY = "GetBillDetails"


_COMMAND_KINDS = (InputKind.ADD_LINE_ITEM, InputKind.CLOSE)


@dataclass(frozen=True)
class AddLineItemSignal:
    description: str
    amount: float
    line_item_id: str | None = None


@dataclass(frozen=True)
class CloseSignal:
    pass


@dataclass
class QueryRequest:
    reply: asyncio.Future = field(default_factory=lambda: asyncio.get_running_loop().create_future())


class CommandDispatcher:
    def __init__(self, rng: random.Random | None = None) -> None:
        self._queues: dict[InputKind, deque] = {kind: deque() for kind in InputKind}
        self._rng = rng or random.Random()
        self._ready = asyncio.Event()

    def deliver(self, kind: InputKind, message) -> None:
        self._queues[kind].append(message)
        self._ready.set()

    def pending(self, kind: InputKind) -> int:
        return len(self._queues[kind])

    def _select(self):
        if self._queues[InputKind.QUERY]:
            return InputKind.QUERY, self._queues[InputKind.QUERY].popleft()

        ready = [kind for kind in _COMMAND_KINDS if self._queues[kind]]
        if not ready:
            return None

        kind = ready[0] if len(ready) == 1 else self._rng.choice(ready)
        return kind, self._queues[kind].popleft()

    async def next(self) -> tuple[InputKind, object]:
        """Wait for and remove the next input to process."""
        while True:
            selected = self._select()
            if selected is not None:
                return selected
            self._ready.clear()
            await self._ready.wait()

    def drain(self) -> dict[InputKind, list]:
        """Remove and return everything still queued, per kind."""
        drained = {kind: list(queue) for kind, queue in self._queues.items()}
        for queue in self._queues.values():
            queue.clear()
        return drained
