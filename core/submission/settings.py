"""Configuration for the simulated endpoint and the coordinator retry policy."""

from __future__ import annotations

import asyncio
import math
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, Field, NonNegativeFloat, NonNegativeInt, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from .errors import SubmissionError

SleepFn = Callable[[float], Awaitable[None]]

_RATE_TOLERANCE = 1e-9


class EndpointSettings(BaseSettings):
    """Failure distribution of the simulated endpoint.

    Values may be overridden with ``SUBMISSION_ENDPOINT_*`` environment
    variables or keyword arguments; unspecified fields keep their defaults.
    """

    model_config = SettingsConfigDict(env_prefix="SUBMISSION_ENDPOINT_", extra="ignore")

    success_rate: float = Field(0.4, ge=0.0, le=1.0, description="Share of immediate successes.")
    failure_rate: float = Field(
        0.3, ge=0.0, le=1.0, description="Share of immediate temporary failures (503)."
    )
    delayed_rate: float = Field(
        0.3, ge=0.0, le=1.0, description="Share of successes returned after a delay."
    )
    min_delay: NonNegativeFloat = Field(5.0, description="Lower bound of the delayed success, seconds.")
    max_delay: NonNegativeFloat = Field(10.0, description="Upper bound of the delayed success, seconds.")

    @model_validator(mode="after")
    def _validate_distribution(self) -> "EndpointSettings":
        total = self.success_rate + self.failure_rate + self.delayed_rate
        if not math.isclose(total, 1.0, abs_tol=_RATE_TOLERANCE):
            raise ValueError(
                f"success_rate, failure_rate and delayed_rate must sum to 1.0 (got {total:.6f})"
            )
        if self.min_delay > self.max_delay:
            raise ValueError("min_delay must not exceed max_delay")
        return self

    def with_overrides(self, **overrides: Any) -> "EndpointSettings":
        """Return a validated copy with ``overrides`` merged over this configuration."""

        return type(self)(**{**self.model_dump(), **overrides})


class RetryPolicy(BaseModel):
    """Fixed-delay retry budget applied to every endpoint call."""

    max_retries: NonNegativeInt = Field(
        3, description="Retries after the first attempt; total calls are max_retries + 1."
    )
    retry_delay: NonNegativeFloat = Field(2.0, description="Pause between attempts, seconds.")

    @property
    def max_attempts(self) -> int:
        return int(self.max_retries) + 1

    def build(
        self,
        *,
        sleep: SleepFn | None = None,
        before_sleep: Callable[[RetryCallState], None] | None = None,
    ) -> AsyncRetrying:
        """Return a configured :class:`~tenacity.AsyncRetrying` instance.

        The caller inspects the final outcome itself, so the last exception is
        re-raised once the budget is spent instead of being wrapped in
        :class:`tenacity.RetryError`.
        """

        options: dict[str, Any] = {}
        if before_sleep is not None:
            options["before_sleep"] = before_sleep
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(float(self.retry_delay)),
            retry=retry_if_exception(self._is_retryable),
            sleep=sleep or asyncio.sleep,
            reraise=True,
            **options,
        )

    @staticmethod
    def _is_retryable(error: BaseException) -> bool:
        if isinstance(error, SubmissionError):
            return error.retryable
        return isinstance(error, Exception)


__all__ = ["EndpointSettings", "RetryPolicy", "SleepFn"]
