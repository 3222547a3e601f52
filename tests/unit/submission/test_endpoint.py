from __future__ import annotations

import asyncio

import pytest

from core.idempotency import IdempotencyStore, derive_idempotency_key
from core.submission import (
    EndpointSettings,
    EndpointSuccess,
    SimulatedEndpoint,
    TemporaryFailure,
    parse_submission,
)
from tests.helpers import (
    DELAYED_DRAW,
    FAILURE_DRAW,
    START_MS,
    SUCCESS_DRAW,
    ManualClock,
    RecordingSleep,
    ScriptedRandom,
)

KEY = derive_idempotency_key("a@x.com", START_MS)


def _endpoint(
    rng: ScriptedRandom,
    *,
    store: IdempotencyStore | None = None,
    sleep=None,
) -> SimulatedEndpoint:
    clock = ManualClock()
    return SimulatedEndpoint(
        store or IdempotencyStore(),
        rng=rng,
        sleep=sleep or RecordingSleep(clock),
        clock=clock,
    )


@pytest.mark.asyncio
async def test_immediate_success_commits_record() -> None:
    endpoint = _endpoint(ScriptedRandom([SUCCESS_DRAW]))
    request = parse_submission("a@x.com", "50")

    outcome = await endpoint.call(request, KEY)

    assert isinstance(outcome, EndpointSuccess)
    assert outcome.from_cache is False
    assert outcome.record.identity == "a@x.com"
    assert outcome.record.created_at_ms == START_MS
    assert await endpoint.store.lookup(KEY) is outcome.record
    assert endpoint.draws == 1


@pytest.mark.asyncio
async def test_temporary_failure_is_not_cached() -> None:
    endpoint = _endpoint(ScriptedRandom([FAILURE_DRAW]))

    outcome = await endpoint.call(parse_submission("a@x.com", "50"), KEY)

    assert isinstance(outcome, TemporaryFailure)
    assert outcome.status_code == 503
    assert outcome.message == "Service temporarily unavailable"
    assert await endpoint.store.lookup(KEY) is None


@pytest.mark.asyncio
async def test_delayed_success_waits_before_committing() -> None:
    clock = ManualClock()
    sleep = RecordingSleep(clock)
    endpoint = _endpoint(ScriptedRandom([DELAYED_DRAW], delays=[7.5]), sleep=sleep)

    outcome = await endpoint.call(parse_submission("a@x.com", "50"), KEY)

    assert isinstance(outcome, EndpointSuccess)
    assert sleep.calls == [7.5]
    assert await endpoint.store.lookup(KEY) is outcome.record


@pytest.mark.asyncio
async def test_delay_is_drawn_within_configured_bounds() -> None:
    class BoundsRecorder(ScriptedRandom):
        bounds: tuple[float, float] | None = None

        def uniform(self, a: float, b: float) -> float:
            self.bounds = (a, b)
            return b

    rng = BoundsRecorder([DELAYED_DRAW])
    settings = EndpointSettings(min_delay=1.0, max_delay=3.0)
    sleep = RecordingSleep(ManualClock())
    endpoint = SimulatedEndpoint(IdempotencyStore(), settings, rng=rng, sleep=sleep)

    await endpoint.call(parse_submission("a@x.com", "50"), KEY)

    assert rng.bounds == (1.0, 3.0)
    assert sleep.calls == [3.0]


@pytest.mark.asyncio
async def test_committed_key_replays_without_random_draw() -> None:
    rng = ScriptedRandom([SUCCESS_DRAW])
    endpoint = _endpoint(rng)
    request = parse_submission("a@x.com", "50")

    first = await endpoint.call(request, KEY)
    replay = await endpoint.call(request, KEY)

    assert isinstance(replay, EndpointSuccess)
    assert replay.from_cache is True
    assert replay.record is first.record
    assert rng.consumed == 1
    assert endpoint.draws == 1
    assert endpoint.calls == 2
    assert len(endpoint.store) == 1


@pytest.mark.asyncio
async def test_call_during_delay_is_not_deduplicated_but_records_once() -> None:
    gate = asyncio.Event()
    sleeps: list[float] = []

    async def gated_sleep(seconds: float) -> None:
        sleeps.append(seconds)
        await gate.wait()

    rng = ScriptedRandom([DELAYED_DRAW, DELAYED_DRAW], delays=[5.0, 6.0])
    endpoint = _endpoint(rng, sleep=gated_sleep)
    request = parse_submission("a@x.com", "50")

    first = asyncio.create_task(endpoint.call(request, KEY))
    second = asyncio.create_task(endpoint.call(request, KEY))
    while len(sleeps) < 2:
        await asyncio.sleep(0)
    assert await endpoint.store.lookup(KEY) is None

    gate.set()
    outcomes = await asyncio.gather(first, second)

    assert endpoint.draws == 2
    assert len(endpoint.store) == 1
    assert outcomes[0].record is outcomes[1].record
    assert sorted(outcome.from_cache for outcome in outcomes) == [False, True]
