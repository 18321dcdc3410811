"""
Prometheus Metrics Configuration
HTTP request metrics and approval engine action counters
"""

import time
from typing import Callable

from fastapi import Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware

# Request metrics
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
)

ACTIVE_CONNECTIONS = Gauge("active_connections", "Number of active connections")

# Business metrics
ENGINE_ACTIONS = Counter(
    "chainflow_engine_actions_total",
    "Approval engine actions by outcome (success, rejected, conflict, error, noop)",
    ["action", "outcome"],
)

SECTIONS_SPAWNED = Counter(
    "chainflow_sections_spawned_total",
    "Next-section requests created automatically",
    ["auto_submitted"],
)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to collect HTTP metrics"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        ACTIVE_CONNECTIONS.inc()

        try:
            response = await call_next(request)

            duration = time.time() - start_time
            # Route template keeps label cardinality bounded
            route = request.scope.get("route")
            endpoint = getattr(route, "path", request.url.path)
            REQUEST_COUNT.labels(
                method=request.method,
                endpoint=endpoint,
                status_code=response.status_code,
            ).inc()
            REQUEST_DURATION.labels(method=request.method, endpoint=endpoint).observe(
                duration
            )

            return response

        finally:
            ACTIVE_CONNECTIONS.dec()


def get_metrics() -> bytes:
    """Get current metrics in Prometheus format"""
    return generate_latest()


def record_engine_action(action: str, outcome: str):
    """Record the outcome of an approval engine action"""
    ENGINE_ACTIONS.labels(action=action, outcome=outcome).inc()


def record_section_spawned(auto_submitted: bool):
    SECTIONS_SPAWNED.labels(auto_submitted=str(auto_submitted).lower()).inc()


__all__ = [
    "CONTENT_TYPE_LATEST",
    "MetricsMiddleware",
    "get_metrics",
    "record_engine_action",
    "record_section_spawned",
]
