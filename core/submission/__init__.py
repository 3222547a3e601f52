"""Submission coordination: retries, in-flight dedupe and endpoint simulation."""

from .coordinator import MAX_RETRIES, RETRY_DELAY, StateListener, SubmissionCoordinator
from .endpoint import (
    EndpointOutcome,
    EndpointSuccess,
    SimulatedEndpoint,
    SubmissionEndpoint,
    TemporaryFailure,
)
from .errors import (
    AlreadyInProgressError,
    FatalEndpointError,
    RetriesExhaustedError,
    SubmissionError,
    SubmissionValidationError,
    TransientEndpointFailure,
)
from .models import SubmissionRequest, SubmissionState, SubmissionStatus, parse_submission
from .settings import EndpointSettings, RetryPolicy

__all__ = [
    "AlreadyInProgressError",
    "EndpointOutcome",
    "EndpointSettings",
    "EndpointSuccess",
    "FatalEndpointError",
    "MAX_RETRIES",
    "RETRY_DELAY",
    "RetriesExhaustedError",
    "RetryPolicy",
    "SimulatedEndpoint",
    "StateListener",
    "SubmissionCoordinator",
    "SubmissionEndpoint",
    "SubmissionError",
    "SubmissionRequest",
    "SubmissionState",
    "SubmissionStatus",
    "SubmissionValidationError",
    "TemporaryFailure",
    "TransientEndpointFailure",
    "parse_submission",
]
