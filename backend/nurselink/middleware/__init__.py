"""
Middleware Package

Contains FastAPI middleware and metric definitions for:
- Prometheus HTTP metrics collection
- Matching engine metrics
"""

from nurselink.middleware.metrics import (
    PrometheusMiddleware,
    setup_metrics,
    REQUEST_LATENCY,
    REQUEST_COUNT,
    ACTIVE_REQUESTS,
    MATCHING_RUNS,
    WRITE_FAILURES,
)

__all__ = [
    "PrometheusMiddleware",
    "setup_metrics",
    "REQUEST_LATENCY",
    "REQUEST_COUNT",
    "ACTIVE_REQUESTS",
    "MATCHING_RUNS",
    "WRITE_FAILURES",
]
