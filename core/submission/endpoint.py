"""Endpoint contract and the simulated flaky service behind it."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Callable, Protocol, Union, runtime_checkable

from core.idempotency.keys import wall_clock_ms
from core.idempotency.records import SubmissionRecord, new_record_id
from core.idempotency.store import IdempotencyStore
from core.utils.logging import get_logger

from .models import SubmissionRequest
from .settings import EndpointSettings, SleepFn

logger = get_logger(__name__)

TEMPORARY_FAILURE_MESSAGE = "Service temporarily unavailable"


@dataclass(frozen=True, slots=True)
class EndpointSuccess:
    record: SubmissionRecord
    from_cache: bool = False


@dataclass(frozen=True, slots=True)
class TemporaryFailure:
    message: str
    status_code: int = 503


EndpointOutcome = Union[EndpointSuccess, TemporaryFailure]


@runtime_checkable
class SubmissionEndpoint(Protocol):
    """Remote service that records a submission under an idempotency key.

    Implementations return :class:`EndpointSuccess` or
    :class:`TemporaryFailure`, or raise. Raised exceptions are treated as
    transient unless they are :class:`~core.submission.errors.FatalEndpointError`.
    """

    async def call(self, request: SubmissionRequest, idempotency_key: str) -> EndpointOutcome:
        ...


class RandomSource(Protocol):
    def random(self) -> float:
        ...

    def uniform(self, a: float, b: float) -> float:
        ...


class SimulatedEndpoint:
    """In-process stand-in for the unreliable remote endpoint.

    Each call whose key is not yet committed makes exactly one draw from the
    random source and answers with an immediate success, an immediate 503, or
    a success after a random delay. Keys already present in the store replay
    the committed record without touching the random source.
    """

    def __init__(
        self,
        store: IdempotencyStore,
        settings: EndpointSettings | None = None,
        *,
        rng: RandomSource | None = None,
        sleep: SleepFn | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._store = store
        self._settings = settings or EndpointSettings()
        self._rng: RandomSource = rng or random.Random()
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or wall_clock_ms
        self._calls = 0
        self._draws = 0

    @property
    def store(self) -> IdempotencyStore:
        return self._store

    @property
    def settings(self) -> EndpointSettings:
        return self._settings

    @property
    def calls(self) -> int:
        return self._calls

    @property
    def draws(self) -> int:
        """Number of random decisions made; cached replays do not count."""

        return self._draws

    async def call(self, request: SubmissionRequest, idempotency_key: str) -> EndpointOutcome:
        self._calls += 1
        cached = await self._store.lookup(idempotency_key)
        if cached is not None:
            logger.debug(
                "Replaying committed submission",
                idempotency_key=idempotency_key,
                record_id=cached.id,
            )
            return EndpointSuccess(record=cached, from_cache=True)

        settings = self._settings
        draw = self._rng.random()
        self._draws += 1
        created_at_ms = int(self._clock())
        record = SubmissionRecord(
            id=new_record_id(created_at_ms),
            identity=request.identity,
            amount=request.amount,
            created_at_ms=created_at_ms,
        )

        if draw < settings.success_rate:
            return await self._commit(idempotency_key, record)

        if draw < settings.success_rate + settings.failure_rate:
            logger.info(
                "Simulated temporary failure",
                idempotency_key=idempotency_key,
                status_code=503,
            )
            return TemporaryFailure(message=TEMPORARY_FAILURE_MESSAGE)

        delay = self._rng.uniform(float(settings.min_delay), float(settings.max_delay))
        logger.info(
            "Simulated delayed success",
            idempotency_key=idempotency_key,
            delay_seconds=round(delay, 3),
        )
        await self._sleep(delay)
        return await self._commit(idempotency_key, record)

    async def _commit(self, idempotency_key: str, record: SubmissionRecord) -> EndpointSuccess:
        stored, created = await self._store.commit_if_absent(idempotency_key, record)
        return EndpointSuccess(record=stored, from_cache=not created)


__all__ = [
    "EndpointOutcome",
    "EndpointSuccess",
    "RandomSource",
    "SimulatedEndpoint",
    "SubmissionEndpoint",
    "TEMPORARY_FAILURE_MESSAGE",
    "TemporaryFailure",
]
