"""Prometheus metrics definitions for Tripfolio."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "tripfolio_http_requests_total",
    "Total number of HTTP requests processed by the Tripfolio API",
    ["method", "path", "status"],
)

REQUEST_LATENCY = Histogram(
    "tripfolio_http_request_duration_seconds",
    "Latency of HTTP requests processed by the Tripfolio API",
    ["method", "path"],
)

SYNC_TRANSITIONS = Counter(
    "tripfolio_sync_transitions_total",
    "Receipts moved to a new sync status",
    ["status"],
)

RATE_LOOKUPS = Counter(
    "tripfolio_rate_lookups_total",
    "Exchange-rate lookups by outcome",
    ["result"],
)

BLOB_FAILURES = Counter(
    "tripfolio_blob_failures_total",
    "Receipt image store operations that failed",
    ["operation"],
)

__all__ = [
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "SYNC_TRANSITIONS",
    "RATE_LOOKUPS",
    "BLOB_FAILURES",
]
