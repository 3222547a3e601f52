"""Drive one logical submission from dispatch to a terminal state.

The coordinator owns two independent deduplication mechanisms:

* an in-flight token per ``identity:amount`` pair, rejecting a second
  dispatch while the first is still running, before any network call;
* the idempotency key, derived once per submission and sent with every
  attempt so the endpoint can replay an already committed success.

Transient endpoint failures never escape :meth:`SubmissionCoordinator.submit`;
they surface as ``retrying`` snapshots and, once the budget is spent, as the
terminal ``failed`` snapshot.
"""

from __future__ import annotations

import asyncio
import threading
from collections import deque
from typing import AsyncIterator, Callable, Deque, Optional

from tenacity import RetryCallState

from core.idempotency.keys import IdempotencyKeyFactory, in_flight_token
from core.idempotency.records import SubmissionRecord
from core.utils.logging import get_logger

from .endpoint import EndpointSuccess, SubmissionEndpoint, TemporaryFailure
from .errors import (
    AlreadyInProgressError,
    FatalEndpointError,
    RetriesExhaustedError,
    SubmissionError,
    TransientEndpointFailure,
)
from .models import SubmissionRequest, SubmissionState
from .settings import RetryPolicy, SleepFn

logger = get_logger(__name__)

StateListener = Callable[[SubmissionState], None]

MAX_RETRIES = 3
RETRY_DELAY = 2.0


class SubmissionCoordinator:
    """Submit requests to an endpoint with in-flight dedupe and fixed-delay retries."""

    def __init__(
        self,
        endpoint: SubmissionEndpoint,
        *,
        policy: RetryPolicy | None = None,
        key_factory: IdempotencyKeyFactory | None = None,
        sleep: SleepFn | None = None,
        history_limit: int = 100,
    ) -> None:
        if history_limit <= 0:
            raise ValueError("history_limit must be positive")
        self._endpoint = endpoint
        self._policy = policy or RetryPolicy(max_retries=MAX_RETRIES, retry_delay=RETRY_DELAY)
        self._keys = key_factory or IdempotencyKeyFactory()
        self._sleep = sleep or asyncio.sleep
        self._in_flight: set[str] = set()
        self._tasks: set[asyncio.Task[SubmissionState]] = set()
        self._lock = threading.Lock()
        self._history: Deque[SubmissionRecord] = deque(maxlen=history_limit)
        self._current: Optional[SubmissionState] = None

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def is_submitting(self) -> bool:
        with self._lock:
            return bool(self._in_flight)

    @property
    def current(self) -> Optional[SubmissionState]:
        """Most recent snapshot emitted by any submission."""

        return self._current

    def in_flight(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._in_flight)

    def history(self) -> list[SubmissionRecord]:
        """Successful submissions, newest first."""

        with self._lock:
            return list(self._history)

    async def submit(
        self,
        request: SubmissionRequest,
        *,
        listener: StateListener | None = None,
    ) -> SubmissionState:
        """Run ``request`` to a terminal state and return the final snapshot.

        ``listener`` receives every snapshot in order, ending with exactly one
        ``succeeded`` or ``failed`` state.

        Raises:
            AlreadyInProgressError: the same identity and amount are already in
                flight. No snapshot is emitted in that case.
        """

        token = self._claim(request)
        return await self._drive(request, token, listener)

    def stream(self, request: SubmissionRequest) -> AsyncIterator[SubmissionState]:
        """Start ``request`` immediately and return an iterator over its snapshots.

        Must be called from a running event loop. The submission proceeds to
        completion even if the iterator is abandoned.

        Raises:
            AlreadyInProgressError: synchronously, before anything is scheduled.
            RuntimeError: no event loop is running; the request is not claimed.
        """

        loop = asyncio.get_running_loop()
        token = self._claim(request)
        queue: asyncio.Queue[Optional[SubmissionState]] = asyncio.Queue()
        try:
            task = loop.create_task(self._drive(request, token, queue.put_nowait))
        except BaseException:
            self._release(token)
            raise
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        # None marks the end of the task, whether or not a terminal state was queued.
        task.add_done_callback(lambda _: queue.put_nowait(None))
        return self._drain(queue, task)

    async def _drain(
        self,
        queue: asyncio.Queue[Optional[SubmissionState]],
        task: asyncio.Task[SubmissionState],
    ) -> AsyncIterator[SubmissionState]:
        while True:
            state = await queue.get()
            if state is None:
                break
            yield state
            if state.terminal:
                break
        await task

    def _claim(self, request: SubmissionRequest) -> str:
        token = in_flight_token(request.identity, request.amount)
        with self._lock:
            if token in self._in_flight:
                logger.warning("Rejected duplicate submission", token=token)
                raise AlreadyInProgressError(
                    "Request already in progress. Please wait.",
                    detail={"token": token},
                )
            self._in_flight.add(token)
        return token

    def _release(self, token: str) -> None:
        with self._lock:
            self._in_flight.discard(token)

    async def _drive(
        self,
        request: SubmissionRequest,
        token: str,
        listener: StateListener | None,
    ) -> SubmissionState:
        emit = self._emitter(listener)
        try:
            key = self._keys.build(request.identity)
        except Exception as exc:
            self._release(token)
            logger.error(
                "Idempotency key derivation failed",
                identity=request.identity,
                error_type=type(exc).__name__,
                error_message=str(exc),
            )
            state = SubmissionState.in_flight(request, "").failed(_unexpected_detail(exc))
            emit(state)
            return state

        state = SubmissionState.in_flight(request, key)
        with logger.operation(
            "submit", identity=request.identity, idempotency_key=key
        ) as op:
            try:
                emit(state)
                state = await self._run(state, emit)
            except Exception as exc:
                logger.error(
                    "Submission aborted by unexpected fault",
                    error_type=type(exc).__name__,
                    error_message=str(exc),
                )
                state = state.failed(_unexpected_detail(exc))
            finally:
                self._release(token)
            op["status"] = state.status.value
            op["attempt"] = state.attempt
            if state.record is not None:
                with self._lock:
                    self._history.appendleft(state.record)
            emit(state)
        return state

    async def _run(
        self,
        state: SubmissionState,
        emit: StateListener,
    ) -> SubmissionState:
        request, key = state.request, state.idempotency_key
        snapshot = state

        def before_sleep(retry_state: RetryCallState) -> None:
            nonlocal snapshot
            error = retry_state.outcome.exception() if retry_state.outcome else None
            detail = _retry_detail(error)
            snapshot = snapshot.retrying(retry_state.attempt_number, detail)
            logger.warning(
                "Submission attempt failed, retrying",
                attempt=retry_state.attempt_number,
                retry_delay=float(self._policy.retry_delay),
                detail=detail,
            )
            emit(snapshot)

        retrying = self._policy.build(sleep=self._sleep, before_sleep=before_sleep)
        number = 0
        outcome: EndpointSuccess | None = None
        try:
            async for attempt in retrying:
                with attempt:
                    number = attempt.retry_state.attempt_number - 1
                    outcome = await self._call_endpoint(request, key)
        except TransientEndpointFailure as exc:
            exhausted = RetriesExhaustedError(
                _exhausted_detail(exc, int(self._policy.max_retries)),
                attempts=self._policy.max_attempts,
                last_error=exc.message,
                detail={"idempotency_key": key},
            )
            logger.error("Submission failed after retry budget", detail=exhausted.message)
            return snapshot.failed(exhausted.message, error=exhausted)
        except FatalEndpointError as exc:
            logger.error("Submission rejected by endpoint", detail=exc.message)
            return snapshot.failed(f"Rejected: {exc.message}", error=exc)

        logger.info(
            "Submission recorded",
            attempt=number,
            record_id=outcome.record.id,
            from_cache=outcome.from_cache,
        )
        return snapshot.succeeded(outcome.record, number)

    async def _call_endpoint(self, request: SubmissionRequest, key: str) -> EndpointSuccess:
        try:
            outcome = await self._endpoint.call(request, key)
        except SubmissionError:
            raise
        except Exception as exc:
            raise TransientEndpointFailure(
                str(exc) or "Network error",
                raised=True,
                detail={"error_type": type(exc).__name__},
            ) from exc
        if isinstance(outcome, TemporaryFailure):
            raise TransientEndpointFailure(
                outcome.message or "Unknown error occurred",
                detail={"status_code": outcome.status_code},
            )
        if not isinstance(outcome, EndpointSuccess):
            raise FatalEndpointError(
                "Unrecognised endpoint response",
                detail={"response_type": type(outcome).__name__},
            )
        return outcome

    def _emitter(self, listener: StateListener | None) -> StateListener:
        def emit(state: SubmissionState) -> None:
            self._current = state
            if listener is not None:
                listener(state)

        return emit


def _retry_detail(error: BaseException | None) -> str:
    if isinstance(error, TransientEndpointFailure) and error.raised:
        return f"Error: {error.message}. Retrying..."
    if isinstance(error, SubmissionError):
        return f"Failed: {error.message}. Retrying..."
    return f"Error: {str(error or '') or 'Network error'}. Retrying..."


def _unexpected_detail(error: BaseException) -> str:
    return f"Unexpected error: {str(error) or type(error).__name__}"


def _exhausted_detail(error: TransientEndpointFailure, max_retries: int) -> str:
    prefix = "Error" if error.raised else "Failed"
    return f"{prefix} after {max_retries} retries: {error.message}"


__all__ = [
    "MAX_RETRIES",
    "RETRY_DELAY",
    "StateListener",
    "SubmissionCoordinator",
]
