"""Submission coordination core: idempotency ledger, retrying coordinator and utilities."""
