from __future__ import annotations

import time
from typing import cast

from fastapi import APIRouter, Request
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

metrics_router = APIRouter(tags=["metrics"])

# IMPORTANT (healthcare safety):
# - Never put user ids, report ids or file keys in labels.
# - Route label MUST be a route template (e.g. /reports/{report_id}) or a fixed value.

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=("method", "route", "status_code"),
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    labelnames=("method", "route", "status_code"),
    # Uploads and processing calls are slower than plain CRUD.
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

document_processing_total = Counter(
    "document_processing_total",
    "Document processing attempts by outcome",
    labelnames=("outcome",),
)

edge_function_calls_total = Counter(
    "edge_function_calls_total",
    "Edge function invocations by function name and outcome",
    labelnames=("function", "outcome"),
)

quota_denials_total = Counter(
    "quota_denials_total",
    "Requests denied because a usage quota was exhausted",
    labelnames=("usage_type",),
)

file_consistency_issues_total = Counter(
    "file_consistency_issues_total",
    "File consistency issues found by issue type",
    labelnames=("issue_type",),
)


def _safe_route_label(request: Request) -> str:
    """
    Return the route template, or "unmatched" when routing didn't match.

    Raw paths carry report/user identifiers and must not become label values.
    """

    route = request.scope.get("route")
    path = getattr(route, "path", None)
    if isinstance(path, str) and path:
        return path
    return "unmatched"


class PrometheusMetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            route_label = _safe_route_label(request)
            method = request.method
            code = str(int(status_code))
            duration = time.perf_counter() - started
            http_requests_total.labels(method=method, route=route_label, status_code=code).inc()
            http_request_duration_seconds.labels(
                method=method, route=route_label, status_code=code
            ).observe(duration)


@metrics_router.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    payload = generate_latest()
    return Response(content=cast(bytes, payload), media_type=CONTENT_TYPE_LATEST)
