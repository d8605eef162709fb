"""Recorded effects — the only source of nondeterminism for a bill actor.

Wall-clock reads and identifier generation go through `RecordedEffects`. Each
value is produced once and appended to a journal. An actor built with an
earlier journal gets the journaled values back, in order, instead of fresh
ones, so replaying the same commands reproduces the same ids and timestamps.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from billing.actor.errors import NonDeterministicEffectError


def utc_now() -> datetime:
    return datetime.now(UTC)


def new_uuid() -> str:
    return str(uuid4())


@dataclass(frozen=True)
class RecordedEffect:
    name: str
    value: Any


class RecordedEffects:
    def __init__(
        self,
        history: Iterable[RecordedEffect] = (),
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = new_uuid,
    ) -> None:
        self._journal: list[RecordedEffect] = list(history)
        self._cursor = 0
        self._clock = clock
        self._id_factory = id_factory

    @property
    def journal(self) -> tuple[RecordedEffect, ...]:
        return tuple(self._journal)

    @property
    def replaying(self) -> bool:
        return self._cursor < len(self._journal)

    def record(self, name: str, fn: Callable[[], Any]) -> Any:
        """Return the journaled value for this step, or run `fn` and journal it."""
        if self.replaying:
            effect = self._journal[self._cursor]
            if effect.name != name:
                raise NonDeterministicEffectError(
                    f"Effect #{self._cursor} was recorded as {effect.name!r}, replay requested {name!r}"
                )
        else:
            effect = RecordedEffect(name=name, value=fn())
            self._journal.append(effect)

        self._cursor += 1
        return effect.value

    def now(self) -> datetime:
        return self.record("now", self._clock)

    def new_id(self) -> str:
        return self.record("new_id", self._id_factory)
