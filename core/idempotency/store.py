"""In-memory ledger of committed submissions keyed by idempotency key.

Only successful outcomes are ever stored. Caching a failure would make every
retry of the same key replay that failure forever, which would defeat the
retry loop entirely. Records live for the lifetime of the process.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Mapping

from core.utils.logging import get_logger

from .records import SubmissionRecord

logger = get_logger(__name__)


class IdempotencyError(RuntimeError):
    """Base class for idempotency ledger violations."""

    def __init__(self, message: str, *, detail: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.detail = dict(detail or {})


class IdempotencyConflictError(IdempotencyError):
    """Raised when a key that already holds a record is committed again."""


@dataclass(slots=True)
class IdempotencyStoreSnapshot:
    """Observability snapshot for the idempotency store."""

    entries: int
    commits: int
    replays: int
    rejected_commits: int


class IdempotencyStore:
    """Async-safe keyed record cache.

    ``lookup`` followed by ``commit_if_absent`` is the endpoint's check-then-act
    sequence; the insert re-checks under the lock so two first-time calls for
    the same key can never both create a record.
    """

    def __init__(self) -> None:
        self._records: dict[str, SubmissionRecord] = {}
        self._lock = asyncio.Lock()
        self._commits = 0
        self._replays = 0
        self._rejected = 0

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key: object) -> bool:
        return key in self._records

    async def lookup(self, key: str) -> SubmissionRecord | None:
        async with self._lock:
            record = self._records.get(key)
            if record is not None:
                self._replays += 1
                logger.debug("Idempotency cache hit", idempotency_key=key, record_id=record.id)
            return record

    async def commit(self, key: str, record: SubmissionRecord) -> SubmissionRecord:
        """Store ``record`` under ``key``; the key must not hold a record yet."""

        stored, created = await self.commit_if_absent(key, record)
        if not created:
            raise IdempotencyConflictError(
                "Idempotency key already holds a committed record.",
                detail={"idempotency_key": key, "record_id": stored.id},
            )
        return stored

    async def commit_if_absent(
        self, key: str, record: SubmissionRecord
    ) -> tuple[SubmissionRecord, bool]:
        """Atomically insert ``record`` unless ``key`` is taken.

        Returns the record that ends up stored under ``key`` and whether it is
        the one supplied by this call. Existing records are never overwritten.
        """

        if not key:
            raise ValueError("idempotency key must be provided")
        if not record.succeeded:
            raise IdempotencyError(
                "Only successful outcomes may be committed.",
                detail={"idempotency_key": key, "status": record.status.value},
            )
        async with self._lock:
            existing = self._records.get(key)
            if existing is not None:
                self._rejected += 1
                logger.info(
                    "Commit lost race for idempotency key",
                    idempotency_key=key,
                    record_id=existing.id,
                    rejected_record_id=record.id,
                )
                return existing, False
            self._records[key] = record
            self._commits += 1
        logger.info("Committed submission record", idempotency_key=key, record_id=record.id)
        return record, True

    async def records(self) -> list[SubmissionRecord]:
        """Return every committed record, oldest first."""

        async with self._lock:
            return list(self._records.values())

    async def clear(self) -> None:
        async with self._lock:
            self._records.clear()
            self._commits = 0
            self._replays = 0
            self._rejected = 0

    async def snapshot(self) -> IdempotencyStoreSnapshot:
        async with self._lock:
            return IdempotencyStoreSnapshot(
                entries=len(self._records),
                commits=self._commits,
                replays=self._replays,
                rejected_commits=self._rejected,
            )


__all__ = [
    "IdempotencyConflictError",
    "IdempotencyError",
    "IdempotencyStore",
    "IdempotencyStoreSnapshot",
]
