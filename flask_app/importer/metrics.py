"""Prometheus metrics helpers for the importer."""

from __future__ import annotations

from typing import Literal

from prometheus_client import Counter, Histogram

_import_rows_counter = Counter(
    "importer_stripe_rows_total",
    "Stripe CSV rows processed by outcome.",
    ["outcome"],
)
_import_runs_counter = Counter(
    "importer_stripe_runs_total",
    "Stripe CSV import runs by status.",
    ["status"],
)
_import_run_duration = Histogram(
    "importer_stripe_run_duration_seconds",
    "Duration of Stripe CSV import runs in seconds.",
    buckets=(0.5, 1, 2, 5, 10, 30, 60, 120, 300),
)
_donor_merges_counter = Counter(
    "importer_donor_merges_total",
    "Donor records merged into a canonical donor.",
)


def record_import_row(outcome: Literal["succeeded", "skipped", "failed", "needs_attention"]) -> None:
    """Increment the per-row outcome counter."""

    _import_rows_counter.labels(outcome=outcome).inc()


def record_import_run(*, status: Literal["success", "partial", "fatal"], duration_seconds: float) -> None:
    """Capture metrics for a completed or aborted import run."""

    _import_runs_counter.labels(status=status).inc()
    _import_run_duration.observe(duration_seconds)


def record_donor_merge(count: int) -> None:
    _donor_merges_counter.inc(count)
