"""Command line driver running submissions against the simulated endpoint."""

from __future__ import annotations

import asyncio
import json
import random
from typing import Any, Dict, List, Optional

import click
from pydantic import ValidationError

from core.idempotency import IdempotencyStore
from core.submission import (
    MAX_RETRIES,
    RETRY_DELAY,
    AlreadyInProgressError,
    EndpointSettings,
    RetryPolicy,
    SimulatedEndpoint,
    SubmissionCoordinator,
    SubmissionRequest,
    SubmissionState,
    SubmissionStatus,
    SubmissionValidationError,
    parse_submission,
)
from core.utils.logging import configure_logging


class CLIError(click.ClickException):
    """Base class for typed CLI failures with deterministic exit codes."""

    exit_code = 1


class InputError(CLIError):
    exit_code = 2


class SubmissionFailedError(CLIError):
    exit_code = 3


def _render(state: SubmissionState, output: str) -> str:
    if output == "json":
        return json.dumps(state.asdict(), sort_keys=True)
    line = f"[{state.status.value}] attempt={state.attempt} key={state.idempotency_key}"
    if state.detail:
        line += f" detail={state.detail}"
    if state.record is not None:
        line += f" record={state.record.id}"
    return line


def _endpoint_settings(overrides: Dict[str, Any]) -> EndpointSettings:
    provided = {name: value for name, value in overrides.items() if value is not None}
    try:
        return EndpointSettings().with_overrides(**provided)
    except ValidationError as exc:
        problems = "; ".join(error["msg"] for error in exc.errors())
        raise InputError(f"Invalid endpoint configuration: {problems}") from exc


async def _run_submissions(
    coordinator: SubmissionCoordinator,
    request: SubmissionRequest,
    *,
    repeat: int,
    duplicates: int,
    output: str,
) -> List[SubmissionState]:
    finals: List[SubmissionState] = []
    for _ in range(repeat):
        snapshots = coordinator.stream(request)
        for _ in range(duplicates):
            try:
                coordinator.stream(request)
            except AlreadyInProgressError as exc:
                click.echo(f"[rejected] {exc.message}", err=True)
        last: Optional[SubmissionState] = None
        async for state in snapshots:
            click.echo(_render(state, output))
            last = state
        if last is not None:
            finals.append(last)
    return finals


@click.command(name="submission-sim")
@click.option("--email", "identity", required=True, help="Identity recorded with the amount.")
@click.option("--amount", required=True, help="Positive amount to record.")
@click.option("--repeat", default=1, show_default=True, type=click.IntRange(min=1),
              help="Number of sequential submissions of the same request.")
@click.option("--duplicates", default=0, show_default=True, type=click.IntRange(min=0),
              help="Extra dispatches issued while the first submission is in flight.")
@click.option("--seed", type=int, default=None, help="Seed for the endpoint's random source.")
@click.option("--success-rate", type=float, default=None)
@click.option("--failure-rate", type=float, default=None)
@click.option("--delayed-rate", type=float, default=None)
@click.option("--min-delay", type=float, default=None, help="Seconds.")
@click.option("--max-delay", type=float, default=None, help="Seconds.")
@click.option("--max-retries", default=MAX_RETRIES, show_default=True, type=click.IntRange(min=0))
@click.option("--retry-delay", default=RETRY_DELAY, show_default=True, type=click.FloatRange(min=0.0))
@click.option("--output", type=click.Choice(["text", "json"]), default="text", show_default=True)
@click.option("--log-level", default="WARNING", show_default=True,
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False))
@click.option("--json-logs/--plain-logs", default=True, show_default=True)
def cli(
    identity: str,
    amount: str,
    repeat: int,
    duplicates: int,
    seed: Optional[int],
    success_rate: Optional[float],
    failure_rate: Optional[float],
    delayed_rate: Optional[float],
    min_delay: Optional[float],
    max_delay: Optional[float],
    max_retries: int,
    retry_delay: float,
    output: str,
    log_level: str,
    json_logs: bool,
) -> None:
    """Submit EMAIL/AMOUNT through the retrying coordinator and print each state."""

    configure_logging(level=log_level, use_json=json_logs)
    try:
        request = parse_submission(identity, amount)
    except SubmissionValidationError as exc:
        raise InputError(exc.message) from exc

    settings = _endpoint_settings(
        {
            "success_rate": success_rate,
            "failure_rate": failure_rate,
            "delayed_rate": delayed_rate,
            "min_delay": min_delay,
            "max_delay": max_delay,
        }
    )
    endpoint = SimulatedEndpoint(IdempotencyStore(), settings, rng=random.Random(seed))
    coordinator = SubmissionCoordinator(
        endpoint,
        policy=RetryPolicy(max_retries=max_retries, retry_delay=retry_delay),
    )

    finals = asyncio.run(
        _run_submissions(
            coordinator, request, repeat=repeat, duplicates=duplicates, output=output
        )
    )
    failed = [state for state in finals if state.status is SubmissionStatus.FAILED]
    if failed:
        raise SubmissionFailedError(f"Submission failed: {failed[-1].detail}")


def main() -> None:  # pragma: no cover - console entry point
    cli()


if __name__ == "__main__":  # pragma: no cover
    main()
