"""Application metrics using the Prometheus client library.

Every metric the portal records is defined here, in one inventory.
Other modules import the specific metric and increment/observe it at
the point of action.  Prometheus scrapes them from GET /metrics.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Upstream LMS API (populated by LmsApiClient)
# ---------------------------------------------------------------------------

UPSTREAM_REQUESTS = Counter(
    "upstream_requests_total",
    "Calls to the LMS REST API by method and response status",
    ["method", "status"],  # status is "error" when no response arrived
)

UPSTREAM_DURATION = Histogram(
    "upstream_request_duration_seconds",
    "LMS REST API call duration in seconds",
    ["method"],
    # Upstream calls include a network hop, so the buckets start higher
    # than the in-process HTTP histogram and stop at the client timeout.
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# ---------------------------------------------------------------------------
# Application-specific metrics
# ---------------------------------------------------------------------------

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache get operations by result",
    ["operation"],  # "hit" or "miss"
)

PROGRESS_SYNCS = Counter(
    "progress_syncs_total",
    "Lecture progress sync attempts by outcome",
    ["result"],  # "sent", "skipped" (nothing changed), "failed"
)

LECTURE_COMPLETIONS = Counter(
    "lecture_completions_total",
    "Mark-complete calls sent for lecture completion transitions",
)

SUBJECT_ACCESS_CHECKS = Counter(
    "subject_access_checks_total",
    "Subject access gate decisions",
    ["decision"],  # "allowed", "denied", "error_allowed"
)

OPEN_LECTURE_SESSIONS = Gauge(
    "open_lecture_sessions",
    "Lecture views with a live progress synchronizer",
)
