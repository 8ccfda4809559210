"""
Prometheus Metrics
Collectors shared by the HTTP middleware and the services.
"""

from prometheus_client import CollectorRegistry, Counter, Histogram


# Create a global registry for metrics
metrics_registry = CollectorRegistry()

# HTTP Metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status'],
    registry=metrics_registry
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0),
    registry=metrics_registry
)

# Authentication Metrics
auth_attempts_total = Counter(
    'auth_attempts_total',
    'Total authentication attempts',
    ['method', 'outcome'],
    registry=metrics_registry
)

# Error Metrics
errors_total = Counter(
    'errors_total',
    'Total errors by type',
    ['error_type', 'endpoint'],
    registry=metrics_registry
)

# API Rate Limiting Metrics
rate_limit_exceeded_total = Counter(
    'rate_limit_exceeded_total',
    'Total rate limit exceeded responses',
    ['window_type'],
    registry=metrics_registry
)

usage_events_failed_total = Counter(
    'usage_events_failed_total',
    'API key usage events that could not be recorded',
    registry=metrics_registry
)
