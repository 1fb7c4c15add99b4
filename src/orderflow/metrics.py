"""
Prometheus Metrics for the orderflow service.
"""
import time
import logging
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

logger = logging.getLogger("orderflow.metrics")

# --- Counters ---
ORDERS_TOTAL = Counter(
    "orderflow_orders_total",
    "Create-order outcomes by response status",
    ["status"]
)

NOTIFICATIONS_TOTAL = Counter(
    "orderflow_notifications_total",
    "Notification invocation outcomes",
    ["outcome"]
)

REQUESTS_TOTAL = Counter(
    "orderflow_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"]
)

# --- Histograms ---
REQUEST_LATENCY = Histogram(
    "orderflow_request_latency_seconds",
    "Request latency in seconds",
    ["method", "path"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Label paths by route template so /orders/{orderId} stays one series
def _route_path(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to record request metrics."""

    async def dispatch(self, request: Request, call_next: Callable):
        # Skip metrics endpoint itself to avoid recursion
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        method = request.method
        path = _route_path(request)

        REQUESTS_TOTAL.labels(
            method=method,
            path=path,
            status=response.status_code
        ).inc()

        REQUEST_LATENCY.labels(
            method=method,
            path=path
        ).observe(duration)

        return response


def record_order(status_code: int):
    """Record the outcome of a create-order request."""
    ORDERS_TOTAL.labels(status=str(status_code)).inc()


def record_notification(outcome: str):
    """Record a notification outcome (OK, PARTIAL, FAILED)."""
    NOTIFICATIONS_TOTAL.labels(outcome=outcome).inc()


async def metrics_endpoint():
    """Generate Prometheus metrics output."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )
