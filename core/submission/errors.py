"""Error taxonomy for submissions."""

from __future__ import annotations

from typing import Any, Mapping


class SubmissionError(RuntimeError):
    """Base class for submission failures."""

    retryable: bool = False

    def __init__(self, message: str, *, detail: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = dict(detail or {})


class SubmissionValidationError(SubmissionError, ValueError):
    """Raised when a caller-supplied request is malformed."""


class AlreadyInProgressError(SubmissionError):
    """Raised when the same identity and amount are already being submitted."""


class TransientEndpointFailure(SubmissionError):
    """Retryable rejection from the endpoint (503-equivalent or network fault)."""

    retryable = True

    def __init__(
        self,
        message: str,
        *,
        raised: bool = False,
        detail: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message, detail=detail)
        self.raised = raised


class FatalEndpointError(SubmissionError):
    """Non-retryable rejection from the endpoint."""


class RetriesExhaustedError(SubmissionError):
    """Terminal failure after the retry budget is spent."""

    def __init__(
        self,
        message: str,
        *,
        attempts: int,
        last_error: str,
        detail: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message, detail=detail)
        self.attempts = attempts
        self.last_error = last_error


__all__ = [
    "AlreadyInProgressError",
    "FatalEndpointError",
    "RetriesExhaustedError",
    "SubmissionError",
    "SubmissionValidationError",
    "TransientEndpointFailure",
]
