"""Request logging middleware.

Only request metadata is logged. Bodies, query strings and headers are skipped because
uploads, search filters and auth headers all carry PHI or credentials.
"""

from __future__ import annotations

import logging
import re
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

logger = logging.getLogger("healthvault.http")

REQUEST_ID_HEADER = "X-Request-ID"
_SAFE_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")


def _get_or_create_request_id(*, request: Request) -> str:
    """Propagate a well-formed X-Request-ID, otherwise generate a new one.

    Anything outside a narrow charset/length is replaced to prevent log injection.
    """

    candidate = request.headers.get(REQUEST_ID_HEADER)
    if candidate and _SAFE_REQUEST_ID_PATTERN.fullmatch(candidate):
        return candidate
    return uuid.uuid4().hex


def _safe_route_label(*, request: Request) -> str:
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    if isinstance(path, str) and path:
        return path
    return "unmatched"


def request_id_from(request: Request) -> str | None:
    """Correlation id for handler-level logs (set by the middleware)."""

    return getattr(request.state, "request_id", None) or request.headers.get(REQUEST_ID_HEADER)


class HttpLoggingMiddleware(BaseHTTPMiddleware):
    """Log one line per request and echo the correlation id on the response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _get_or_create_request_id(request=request)
        started = time.perf_counter()
        request.state.request_id = request_id

        try:
            response = await call_next(request)
        except Exception:  # noqa: BLE001 - logged with stack trace, then re-raised
            duration_ms = (time.perf_counter() - started) * 1000.0
            logger.exception(
                "Unhandled exception while processing request",
                extra={
                    "request_id": request_id,
                    "http_method": request.method,
                    "request_path": _safe_route_label(request=request),
                    "status_code": 500,
                    "duration_ms": round(duration_ms, 2),
                },
            )
            raise

        duration_ms = (time.perf_counter() - started) * 1000.0
        response.headers[REQUEST_ID_HEADER] = request_id

        logger.info(
            "Request completed",
            extra={
                "request_id": request_id,
                "http_method": request.method,
                "request_path": _safe_route_label(request=request),
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
        return response
