# SPDX-License-Identifier: MIT
from __future__ import annotations

from dataclasses import dataclass

import pytest

from core.idempotency import IdempotencyKeyFactory, IdempotencyStore
from core.submission import SimulatedEndpoint, SubmissionCoordinator
from tests.helpers import START_MS, ManualClock, RecordingSleep, ScriptedRandom


@dataclass
class Harness:
    clock: ManualClock
    sleep: RecordingSleep
    rng: ScriptedRandom
    store: IdempotencyStore
    endpoint: SimulatedEndpoint
    coordinator: SubmissionCoordinator

    def script(self, *draws: float) -> None:
        self.rng.extend(*draws)

    @property
    def elapsed_seconds(self) -> float:
        return (self.clock.value_ms - START_MS) / 1000


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def recording_sleep(clock: ManualClock) -> RecordingSleep:
    return RecordingSleep(clock)


@pytest.fixture()
def harness(clock: ManualClock, recording_sleep: RecordingSleep) -> Harness:
    rng = ScriptedRandom()
    store = IdempotencyStore()
    endpoint = SimulatedEndpoint(store, rng=rng, sleep=recording_sleep, clock=clock)
    coordinator = SubmissionCoordinator(
        endpoint,
        key_factory=IdempotencyKeyFactory(clock=clock),
        sleep=recording_sleep,
    )
    return Harness(
        clock=clock,
        sleep=recording_sleep,
        rng=rng,
        store=store,
        endpoint=endpoint,
        coordinator=coordinator,
    )
