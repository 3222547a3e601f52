"""Behavioural tests for the ``submission-sim`` command."""

from __future__ import annotations

import json
import logging
from typing import Iterator, List

import pytest
from click.testing import CliRunner

from cli.submission_cli import cli

ALWAYS_SUCCEED = ["--success-rate", "1", "--failure-rate", "0", "--delayed-rate", "0"]
ALWAYS_FAIL = ["--success-rate", "0", "--failure-rate", "1", "--delayed-rate", "0"]


@pytest.fixture(autouse=True)
def _restore_root_logger() -> Iterator[None]:
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def _invoke(args: List[str]):
    return CliRunner().invoke(cli, ["--log-level", "ERROR", *args])


def test_successful_submission_prints_trajectory() -> None:
    result = _invoke(["--email", "a@x.com", "--amount", "50", "--seed", "7", *ALWAYS_SUCCEED])

    assert result.exit_code == 0, result.output
    assert "[pending] attempt=0 key=a@x.com:" in result.output
    assert "[succeeded] attempt=0" in result.output


def test_exhausted_retries_exit_with_failure_code() -> None:
    result = _invoke(
        ["--email", "a@x.com", "--amount", "50", "--retry-delay", "0", *ALWAYS_FAIL]
    )

    assert result.exit_code == 3
    assert result.output.count("[retrying]") == 3
    assert "Failed after 3 retries: Service temporarily unavailable" in result.output


def test_retry_budget_is_configurable() -> None:
    result = _invoke(
        [
            "--email", "a@x.com", "--amount", "50",
            "--max-retries", "1", "--retry-delay", "0",
            *ALWAYS_FAIL,
        ]
    )

    assert result.exit_code == 3
    assert result.output.count("[retrying]") == 1
    assert "Failed after 1 retries" in result.output


@pytest.mark.parametrize(
    "email, amount, message",
    [
        ("not-an-email", "10", "Please enter a valid email"),
        ("a@x.com", "-3", "Amount must be a positive number"),
    ],
)
def test_invalid_input_is_rejected_before_submitting(email: str, amount: str, message: str) -> None:
    result = _invoke(["--email", email, "--amount", amount])

    assert result.exit_code == 2
    assert message in result.output
    assert "[pending]" not in result.output


def test_invalid_endpoint_distribution_is_rejected() -> None:
    result = _invoke(["--email", "a@x.com", "--amount", "10", "--success-rate", "0.9"])

    assert result.exit_code == 2
    assert "Invalid endpoint configuration" in result.output


def test_duplicate_dispatches_are_rejected_while_in_flight() -> None:
    result = _invoke(
        ["--email", "a@x.com", "--amount", "50", "--duplicates", "2", *ALWAYS_SUCCEED]
    )

    assert result.exit_code == 0, result.output
    assert result.output.count("[rejected] Request already in progress. Please wait.") == 2
    assert result.output.count("[succeeded]") == 1


def test_repeat_runs_each_submission_to_success() -> None:
    result = _invoke(
        [
            "--email", "a@x.com", "--amount", "50", "--repeat", "2",
            "--output", "json", *ALWAYS_SUCCEED,
        ]
    )

    assert result.exit_code == 0, result.output
    payloads = [json.loads(line) for line in result.output.splitlines() if line.startswith("{")]
    assert [payload["status"] for payload in payloads] == [
        "pending",
        "succeeded",
        "pending",
        "succeeded",
    ]
    records = [payload["record"] for payload in payloads if payload["status"] == "succeeded"]
    assert all(record["identity"] == "a@x.com" for record in records)
    assert all(record["amount"] == "50" for record in records)
