"""
shared/middleware/metrics.py
Prometheus metrics on a private registry, served at /metrics.
Request metrics are labelled with the route template, not the raw path.
"""

import time

from fastapi import APIRouter, Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

http_requests_total = Counter(
    "alumni_connect_http_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
)

http_request_duration_seconds = Histogram(
    "alumni_connect_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    registry=REGISTRY,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

bookings_total = Counter(
    "alumni_connect_bookings_total",
    "Booking attempts by outcome",
    ["outcome"],
    registry=REGISTRY,
)

metrics_router = APIRouter(tags=["Monitoring"])


def _endpoint(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", "unmatched")


async def prometheus_middleware(request: Request, call_next):
    if request.url.path == "/metrics":
        return await call_next(request)
    start = time.perf_counter()
    response = await call_next(request)
    endpoint = _endpoint(request)
    http_request_duration_seconds.labels(request.method, endpoint).observe(
        time.perf_counter() - start
    )
    http_requests_total.labels(request.method, endpoint, str(response.status_code)).inc()
    return response


@metrics_router.get("/metrics", include_in_schema=False)
async def metrics():
    return Response(content=generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)
