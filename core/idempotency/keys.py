"""Stable identifiers for logical submissions.

Two identifiers with overlapping purposes live here and must stay distinct:

* the *idempotency key* (identity plus submit time truncated to the second)
  is what the endpoint caches outcomes under, so that a retry issued a few
  milliseconds after the original attempt lands in the same bucket;
* the *in-flight token* (identity plus amount, no time component) is used by
  the coordinator only to refuse a second dispatch while the first is still
  running.
"""

from __future__ import annotations

import time
from decimal import Decimal
from typing import Callable

_WINDOW_MS = 1000


def wall_clock_ms() -> int:
    """Return the current wall-clock time in integer milliseconds."""

    return time.time_ns() // 1_000_000


def canonical_amount(amount: Decimal) -> str:
    """Render ``amount`` without exponent or trailing zeros (``50.00`` -> ``50``)."""

    normalised = amount.normalize()
    if normalised == normalised.to_integral_value():
        normalised = normalised.quantize(Decimal(1))
    return format(normalised, "f")


def derive_idempotency_key(identity: str, timestamp_ms: int) -> str:
    """Return the idempotency key for ``identity`` submitted at ``timestamp_ms``.

    The timestamp is floored to its whole second, so every call made inside
    the same one-second window collapses onto one key. A person resubmitting
    the same form within that second is therefore treated as the same
    logical request as an automatic retry.
    """

    window_start = (int(timestamp_ms) // _WINDOW_MS) * _WINDOW_MS
    return f"{identity}:{window_start}"


def in_flight_token(identity: str, amount: Decimal) -> str:
    """Return the coarse token used to reject concurrent duplicate dispatches."""

    return f"{identity}:{canonical_amount(amount)}"


class IdempotencyKeyFactory:
    """Derive idempotency keys against an injectable millisecond clock."""

    def __init__(self, *, clock: Callable[[], int] | None = None) -> None:
        self._clock = clock or wall_clock_ms

    def now_ms(self) -> int:
        return int(self._clock())

    def build(self, identity: str, *, timestamp_ms: int | None = None) -> str:
        if not identity:
            raise ValueError("identity must be provided")
        moment = self.now_ms() if timestamp_ms is None else timestamp_ms
        return derive_idempotency_key(identity, moment)


__all__ = [
    "IdempotencyKeyFactory",
    "canonical_amount",
    "derive_idempotency_key",
    "in_flight_token",
    "wall_clock_ms",
]
