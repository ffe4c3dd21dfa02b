"""Prometheus instrumentation for the attestation service.

Labels stay low-cardinality: outcome kinds only, never content or subject ids.
"""
from __future__ import annotations

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
)

# Registry must be created before metric objects reference it.
REGISTRY = CollectorRegistry()

VERIFICATIONS = Counter(
    "attestor_verifications_total",
    "Verification requests by terminal state.",
    ["state", "kind"],
    registry=REGISTRY,
)
FETCH_SECONDS = Histogram(
    "attestor_store_fetch_seconds",
    "Wall-clock time of content store fetches.",
    ["result"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 20, 30, 60),
    registry=REGISTRY,
)
FETCH_BYTES = Histogram(
    "attestor_store_fetch_bytes",
    "Size of successfully fetched blobs.",
    buckets=(16, 256, 1024, 16384, 131072, 1048576, 4194304, 10485760),
    registry=REGISTRY,
)
SUBMISSIONS = Counter(
    "attestor_ledger_submissions_total",
    "Attestation submissions to the ledger.",
    ["result"],
    registry=REGISTRY,
)
RATE_LIMITED = Counter(
    "attestor_rate_limited_total",
    "Requests rejected by the admission limiter.",
    registry=REGISTRY,
)


def observe_fetch(*, result: str, seconds: float, size: int) -> None:
    FETCH_SECONDS.labels(result=result).observe(seconds)
    if result == "ok":
        FETCH_BYTES.observe(size)


def observe_verification(*, state: str, kind: str = "") -> None:
    VERIFICATIONS.labels(state=state, kind=kind or "none").inc()


def observe_submission(ok: bool) -> None:
    SUBMISSIONS.labels(result="ok" if ok else "fail").inc()


def prometheus_latest() -> tuple[bytes, str]:
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
