from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    generate_latest,
    CONTENT_TYPE_LATEST,
)

# ---------------------------------------------------------------------------
# Scrape pipeline
# ---------------------------------------------------------------------------
scrape_requests_total = Counter(
    "scrape_requests_total",
    "Total number of scrape requests by final status",
    ["status"],
)
scrape_backend_attempts_total = Counter(
    "scrape_backend_attempts_total",
    "Backend invocations by backend and outcome",
    ["backend", "outcome"],
)
scrape_duration_seconds = Histogram(
    "scrape_duration_seconds",
    "Time spent serving a single scrape request (all attempts)",
    buckets=[0.5, 1, 2, 5, 10, 30, 60, 120],
)
challenge_pages_total = Counter(
    "challenge_pages_total",
    "Challenge pages encountered, by whether remediation cleared them",
    ["resolved"],
)

# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------
active_browser_contexts = Gauge(
    "active_browser_contexts",
    "Number of currently open browser contexts",
)
admission_denied_total = Counter(
    "admission_denied_total",
    "Requests rejected by the per-client rate limiter",
)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
