"""Records persisted by the idempotency store."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import uuid4


class RecordStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


def new_record_id(created_ms: int) -> str:
    """Return an opaque identifier unique to one committed submission."""

    return f"{created_ms}-{uuid4().hex[:12]}"


@dataclass(frozen=True, slots=True)
class SubmissionRecord:
    """Terminal outcome recorded for one idempotency key."""

    id: str
    identity: str
    amount: Decimal
    created_at_ms: int
    status: RecordStatus = RecordStatus.SUCCESS
    error_detail: str | None = None

    @property
    def created_at(self) -> datetime:
        return datetime.fromtimestamp(self.created_at_ms / 1000, tz=timezone.utc)

    @property
    def succeeded(self) -> bool:
        return self.status is RecordStatus.SUCCESS

    def asdict(self) -> dict[str, Any]:
        """Return a JSON-serialisable representation of the record."""

        payload: dict[str, Any] = {
            "id": self.id,
            "identity": self.identity,
            "amount": format(self.amount, "f"),
            "timestamp": self.created_at_ms,
            "status": self.status.value,
        }
        if self.error_detail is not None:
            payload["error_detail"] = self.error_detail
        return payload


__all__ = ["RecordStatus", "SubmissionRecord", "new_record_id"]
