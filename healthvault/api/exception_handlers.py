from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from healthvault.core.metrics import quota_denials_total
from healthvault.core.middleware.http_logging import request_id_from
from healthvault.domain.exceptions import (
    BusinessValidationError,
    ConflictError,
    NoActiveSubscriptionError,
    QuotaExceededError,
)

logger = logging.getLogger("healthvault.errors")


def _log_extra(request: Request, *, status_code: int, error: str) -> dict:
    # IMPORTANT: request.url.path only; no query string, body or headers.
    return {
        "request_id": request_id_from(request),
        "http_method": request.method,
        "request_path": request.url.path,
        "status_code": status_code,
        "error": error,
    }


def register_exception_handlers(app: FastAPI) -> None:
    """Register application exception handlers."""

    @app.exception_handler(BusinessValidationError)
    async def handle_business_validation_error(
        request: Request,
        exc: BusinessValidationError,
    ) -> JSONResponse:
        status_code = 409 if isinstance(exc, ConflictError) else 400
        logger.info(
            "Business validation failed",
            extra=_log_extra(request, status_code=status_code, error="business_validation"),
        )
        return JSONResponse(status_code=status_code, content={"detail": exc.message})

    @app.exception_handler(QuotaExceededError)
    async def handle_quota_exceeded(request: Request, exc: QuotaExceededError) -> JSONResponse:
        quota_denials_total.labels(usage_type=exc.usage_type).inc()
        logger.info(
            "Quota exceeded",
            extra={
                **_log_extra(request, status_code=429, error="quota_exceeded"),
                "usage_type": exc.usage_type,
            },
        )
        return JSONResponse(
            status_code=429,
            content={
                "detail": exc.message,
                "usage_type": exc.usage_type,
                "limit": exc.limit,
                "current": exc.current,
                "requested": exc.requested,
            },
        )

    @app.exception_handler(NoActiveSubscriptionError)
    async def handle_no_subscription(
        request: Request, exc: NoActiveSubscriptionError
    ) -> JSONResponse:
        logger.info(
            "No active subscription",
            extra=_log_extra(request, status_code=403, error="no_subscription"),
        )
        return JSONResponse(status_code=403, content={"detail": exc.message})
