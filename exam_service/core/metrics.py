"""Application metrics using the Prometheus client library.

One inventory of everything the service measures.  Other modules import
specific metrics and increment/observe them at the point of action.

  COUNTER   — only goes up; rate() gives per-second throughput
  GAUGE     — goes up and down; a snapshot of current state
  HISTOGRAM — observations grouped into buckets; percentiles via
              histogram_quantile()
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
# Exam engine metrics
# ---------------------------------------------------------------------------

VERSION_GENERATIONS = Counter(
    "exam_version_generations_total",
    "Version regeneration runs by outcome",
    ["result"],  # "ok" or "insufficient_questions"
)

ATTEMPTS_STARTED = Counter(
    "exam_attempts_started_total",
    "Attempts created by AttemptLifecycle.start",
)

ATTEMPTS_REJECTED = Counter(
    "exam_attempts_rejected_total",
    "Attempt starts refused, by error code",
    ["reason"],
)

ATTEMPTS_GRADED = Counter(
    "exam_attempts_graded_total",
    "Attempts moved to the terminated state",
    ["passed"],  # "true" or "false"
)

EXAM_SCORE = Histogram(
    "exam_score",
    "Distribution of attempt scores (0-100)",
    # Ten-point buckets, matching the reporting distribution
    buckets=[10, 20, 30, 40, 50, 60, 70, 80, 90, 100],
)

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache get operations by result",
    ["operation"],  # "hit" or "miss"
)

AUDIT_FAILURES = Counter(
    "audit_failures_total",
    "Audit events that could not be handed to the audit collaborator",
)
