"""Prometheus metrics shared by the API layer and services"""

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "chatbridge_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "chatbridge_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
AUTH_EVENTS = Counter(
    "chatbridge_auth_events_total",
    "Authentication and credential lifecycle events",
    ["event", "outcome"],
)
RATE_LIMIT_REJECTIONS = Counter(
    "chatbridge_rate_limit_rejections_total",
    "Requests rejected by a rate limiter",
    ["limiter"],
)
