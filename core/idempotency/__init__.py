"""Idempotency keys and the ledger of committed submissions."""

from .keys import (
    IdempotencyKeyFactory,
    canonical_amount,
    derive_idempotency_key,
    in_flight_token,
)
from .records import RecordStatus, SubmissionRecord
from .store import (
    IdempotencyConflictError,
    IdempotencyError,
    IdempotencyStore,
    IdempotencyStoreSnapshot,
)

__all__ = [
    "IdempotencyConflictError",
    "IdempotencyError",
    "IdempotencyKeyFactory",
    "IdempotencyStore",
    "IdempotencyStoreSnapshot",
    "RecordStatus",
    "SubmissionRecord",
    "canonical_amount",
    "derive_idempotency_key",
    "in_flight_token",
]
