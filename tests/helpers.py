"""Deterministic time and randomness doubles shared by the test suite."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Iterable, List

# Draws against the default 40/30/30 distribution.
SUCCESS_DRAW = 0.1
FAILURE_DRAW = 0.5
DELAYED_DRAW = 0.9

START_MS = 1_700_000_000_000


@dataclass
class ManualClock:
    value_ms: int = START_MS

    def __call__(self) -> int:
        return self.value_ms

    def advance(self, seconds: float) -> None:
        self.value_ms += int(round(seconds * 1000))


@dataclass
class RecordingSleep:
    clock: ManualClock
    calls: List[float] = field(default_factory=list)

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.clock.advance(seconds)
        await asyncio.sleep(0)


class ScriptedRandom:
    """Random source replaying fixed draws; running out is a test failure."""

    def __init__(self, draws: Iterable[float] = (), delays: Iterable[float] = ()) -> None:
        self._draws = list(draws)
        self._delays = list(delays)
        self.consumed = 0

    def extend(self, *draws: float) -> None:
        self._draws.extend(draws)

    def random(self) -> float:
        if not self._draws:
            raise AssertionError("unexpected random draw")
        self.consumed += 1
        return self._draws.pop(0)

    def uniform(self, a: float, b: float) -> float:
        if self._delays:
            return self._delays.pop(0)
        return a
