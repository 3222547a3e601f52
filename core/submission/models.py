"""Request and state models for the submission coordinator."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from core.idempotency.records import SubmissionRecord

from .errors import SubmissionError, SubmissionValidationError


class SubmissionRequest(BaseModel):
    """Immutable ``identity`` + ``amount`` pair supplied by the caller."""

    model_config = ConfigDict(frozen=True)

    identity: str
    amount: Decimal

    @field_validator("identity", mode="before")
    @classmethod
    def _validate_identity(cls, value: Any) -> str:
        text = "" if value is None else str(value).strip()
        if not text:
            raise ValueError("Email is required")
        if "@" not in text:
            raise ValueError("Please enter a valid email")
        return text

    @field_validator("amount", mode="before")
    @classmethod
    def _validate_amount(cls, value: Any) -> Decimal:
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValueError("Amount is required")
        if isinstance(value, bool):
            raise ValueError("Amount must be a positive number")
        try:
            amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError("Amount must be a positive number") from None
        if not amount.is_finite() or amount <= 0:
            raise ValueError("Amount must be a positive number")
        return amount


def parse_submission(identity: Any, amount: Any) -> SubmissionRequest:
    """Validate raw caller input and return a :class:`SubmissionRequest`.

    Raises:
        SubmissionValidationError: carrying the first human-readable problem
            and the full list of field errors in ``detail``.
    """

    try:
        return SubmissionRequest(identity=identity, amount=amount)
    except ValidationError as exc:
        errors = exc.errors()
        messages = [_error_message(error) for error in errors]
        raise SubmissionValidationError(
            messages[0] if messages else "Invalid submission",
            detail={
                "errors": [
                    {"field": ".".join(str(part) for part in error["loc"]), "message": message}
                    for error, message in zip(errors, messages)
                ]
            },
        ) from exc


def _error_message(error: Any) -> str:
    original = (error.get("ctx") or {}).get("error")
    if original is not None:
        return str(original)
    return str(error.get("msg", "Invalid value"))


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (SubmissionStatus.SUCCEEDED, SubmissionStatus.FAILED)


@dataclass(frozen=True, slots=True)
class SubmissionState:
    """Caller-visible snapshot of one logical submission.

    A new instance is produced on every transition; snapshots already handed
    out are never mutated.
    """

    request: SubmissionRequest
    idempotency_key: str
    status: SubmissionStatus = SubmissionStatus.PENDING
    attempt: int = 0
    detail: str | None = None
    record: SubmissionRecord | None = None
    error: SubmissionError | None = field(default=None, compare=False)

    @classmethod
    def in_flight(
        cls,
        request: SubmissionRequest,
        idempotency_key: str,
        *,
        attempt: int = 0,
        detail: str | None = None,
    ) -> "SubmissionState":
        status = SubmissionStatus.PENDING if attempt == 0 else SubmissionStatus.RETRYING
        return cls(
            request=request,
            idempotency_key=idempotency_key,
            status=status,
            attempt=attempt,
            detail=detail,
        )

    @property
    def terminal(self) -> bool:
        return self.status.terminal

    def retrying(self, attempt: int, detail: str) -> "SubmissionState":
        if attempt < self.attempt:
            raise ValueError("attempt counter cannot move backwards")
        return replace(self, status=SubmissionStatus.RETRYING, attempt=attempt, detail=detail)

    def succeeded(self, record: SubmissionRecord, attempt: int) -> "SubmissionState":
        return replace(
            self,
            status=SubmissionStatus.SUCCEEDED,
            attempt=max(attempt, self.attempt),
            detail=None,
            record=record,
        )

    def failed(self, detail: str, *, error: SubmissionError | None = None) -> "SubmissionState":
        return replace(self, status=SubmissionStatus.FAILED, detail=detail, error=error)

    def asdict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "identity": self.request.identity,
            "amount": format(self.request.amount, "f"),
            "idempotency_key": self.idempotency_key,
            "status": self.status.value,
            "attempt": self.attempt,
        }
        if self.detail is not None:
            payload["detail"] = self.detail
        if self.record is not None:
            payload["record"] = self.record.asdict()
        return payload


__all__ = [
    "SubmissionRequest",
    "SubmissionState",
    "SubmissionStatus",
    "parse_submission",
]
