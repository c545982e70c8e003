"""
Prometheus Metrics

HTTP metrics (via middleware):
- Request latency and count by endpoint and status
- Active request gauge

Matching engine metrics (recorded by the orchestrator):
- Run duration and terminal state
- Candidates dropped by the eligibility filter, by reason
- Applications and notifications created
- Write and delivery failures
- Matching triggers that could not be enqueued

Usage:
    from nurselink.middleware.metrics import setup_metrics

    app = FastAPI()
    setup_metrics(app)

Metrics Endpoint:
    GET /metrics - Prometheus-format metrics
"""

import time
import logging
from typing import Callable, Dict

from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse
from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    CONTENT_TYPE_LATEST,
    generate_latest,
    REGISTRY,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.routing import Match

logger = logging.getLogger(__name__)

# ==================== HTTP Metrics ====================

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint", "status"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)

ACTIVE_REQUESTS = Gauge(
    "http_requests_active",
    "Number of active HTTP requests",
    ["method", "endpoint"]
)

# ==================== Matching Metrics ====================

MATCHING_RUN_DURATION = Histogram(
    "matching_run_duration_seconds",
    "Time spent in one matching orchestrator run",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

MATCHING_RUNS = Counter(
    "matching_runs_total",
    "Matching runs by terminal state",
    ["state"]  # completed, failed
)

CANDIDATES_FILTERED = Counter(
    "matching_candidates_filtered_total",
    "Candidates dropped before scoring",
    ["reason"]
)

MATCHES_RANKED = Histogram(
    "matching_ranked_candidates",
    "Number of ranked candidates per run",
    buckets=[0, 1, 2, 5, 10, 20, 50]
)

RECORDS_CREATED = Counter(
    "matching_records_created_total",
    "Applications and notifications created by the engine",
    ["kind"]  # application, notification
)

WRITE_FAILURES = Counter(
    "matching_write_failures_total",
    "Per-candidate write or delivery failures",
    ["operation"]  # application, notification, delivery
)

TRIGGER_FAILURES = Counter(
    "matching_trigger_failures_total",
    "Matching runs that could not be enqueued"
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    FastAPI middleware for Prometheus metrics collection.

    Records:
    - Request latency
    - Request count by status code
    - Active request count
    """

    def __init__(self, app: FastAPI, app_name: str = "nurselink"):
        super().__init__(app)
        self.app_name = app_name

    async def dispatch(
        self,
        request: Request,
        call_next: Callable
    ) -> Response:
        endpoint = self._get_endpoint(request)
        method = request.method

        if endpoint == "/metrics":
            return await call_next(request)

        ACTIVE_REQUESTS.labels(method=method, endpoint=endpoint).inc()
        start_time = time.perf_counter()
        status = "500"

        try:
            response = await call_next(request)
            status = str(response.status_code)
        except Exception as e:
            logger.error(f"Request error: {e}")
            raise
        finally:
            duration = time.perf_counter() - start_time
            REQUEST_LATENCY.labels(method=method, endpoint=endpoint, status=status).observe(duration)
            REQUEST_COUNT.labels(method=method, endpoint=endpoint, status=status).inc()
            ACTIVE_REQUESTS.labels(method=method, endpoint=endpoint).dec()

        return response

    def _get_endpoint(self, request: Request) -> str:
        """Route pattern (e.g., /matching/missions/{mission_id}/status) to bound label cardinality."""
        for route in request.app.routes:
            match, _ = route.matches(request.scope)
            if match == Match.FULL:
                return route.path

        return request.url.path


def metrics_endpoint(request: Request) -> Response:
    return PlainTextResponse(
        content=generate_latest(REGISTRY),
        media_type=CONTENT_TYPE_LATEST
    )


def setup_metrics(app: FastAPI) -> None:
    """Add the metrics middleware and the /metrics route to an app."""
    app.add_middleware(PrometheusMiddleware, app_name="nurselink")
    app.add_route("/metrics", metrics_endpoint, methods=["GET"])
    logger.info("Prometheus metrics configured")


# ==================== Helper Functions ====================

def record_run(state: str, duration: float, ranked: int) -> None:
    MATCHING_RUNS.labels(state=state).inc()
    MATCHING_RUN_DURATION.observe(duration)
    MATCHES_RANKED.observe(ranked)


def record_filtered(dropped: Dict[str, int]) -> None:
    for reason, count in dropped.items():
        CANDIDATES_FILTERED.labels(reason=reason).inc(count)


def record_created(kind: str, count: int) -> None:
    if count:
        RECORDS_CREATED.labels(kind=kind).inc(count)


def record_write_failure(operation: str) -> None:
    WRITE_FAILURES.labels(operation=operation).inc()


def record_trigger_failure() -> None:
    TRIGGER_FAILURES.inc()
