from __future__ import annotations

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.openapi.docs import get_redoc_html

from healthvault.admin.router import router as admin_router
from healthvault.api.exception_handlers import register_exception_handlers
from healthvault.api.schemas import HealthOut
from healthvault.billing.router import router as billing_router
from healthvault.core.db import close_db, init_db
from healthvault.core.logging import setup_logging
from healthvault.core.metrics import PrometheusMetricsMiddleware, metrics_router
from healthvault.core.middleware.http_logging import HttpLoggingMiddleware
from healthvault.core.settings import get_settings
from healthvault.doctor_notes.router import router as doctor_notes_router
from healthvault.emergency.router import contacts_router, sos_router
from healthvault.family_members.router import router as family_members_router
from healthvault.internal.router import router as internal_router
from healthvault.notifications.router import router as notifications_router
from healthvault.prescriptions.router import router as prescriptions_router
from healthvault.quota.router import router as usage_router
from healthvault.reports.router import router as reports_router
from healthvault.summaries.router import router as summaries_router

setup_logging()

_REDOC_JS_URL = "https://cdn.jsdelivr.net/npm/redoc@2.1.4/bundles/redoc.standalone.js"


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Settings are read at startup so importing the module needs no DATABASE_URL.
        settings = get_settings()
        init_db(app=app, database_url=str(settings.database_url))
        yield
        await close_db(app=app)

    app = FastAPI(
        title="HealthVault API",
        description=(
            "Backend for a personal health-records vault.\n\n"
            "- Uploaded documents are the source of truth; parsed data, tags and AI "
            "summaries are derived and best-effort.\n"
            "- Document processing and metadata extraction run in external functions; "
            "this API orchestrates them and tracks progress.\n"
            "- Logging and metrics avoid PHI by using route templates and metadata only."
        ),
        lifespan=lifespan,
        docs_url="/swagger",
        redoc_url=None,
        openapi_tags=[
            {"name": "health", "description": "Uptime check for load balancers and monitoring."},
            {
                "name": "reports",
                "description": (
                    "Upload medical documents, run processing, track progress and check "
                    "stored files for consistency."
                ),
            },
            {"name": "summaries", "description": "AI summaries across one or more reports."},
            {"name": "family-members", "description": "Family member profiles and photos."},
            {"name": "prescriptions", "description": "Medication records."},
            {"name": "doctor-notes", "description": "Notes from consultations and follow-ups."},
            {"name": "emergency", "description": "Emergency contacts and SOS activations."},
            {"name": "notifications", "description": "In-app notifications."},
            {"name": "usage", "description": "Subscription plans and monthly usage quotas."},
            {"name": "billing", "description": "GSTIN validation and GST calculation."},
            {"name": "admin", "description": "Operational endpoints (admin key required)."},
            {"name": "internal", "description": "Callbacks from processing functions."},
            {"name": "metrics", "description": "Prometheus-compatible metrics endpoint."},
        ],
    )

    app.add_middleware(PrometheusMetricsMiddleware)
    app.add_middleware(HttpLoggingMiddleware)

    register_exception_handlers(app)

    @app.get("/docs", include_in_schema=False)
    async def redoc_docs():
        return get_redoc_html(
            openapi_url=app.openapi_url or "/openapi.json",
            title=f"{app.title} - ReDoc",
            redoc_js_url=_REDOC_JS_URL,
        )

    @app.get(
        "/health",
        response_model=HealthOut,
        tags=["health"],
        summary="Health check",
        description="Verifies the API process is running; downstream services are not checked.",
    )
    async def health() -> HealthOut:
        return HealthOut(status="ok")

    app.include_router(metrics_router)
    app.include_router(reports_router)
    app.include_router(summaries_router)
    app.include_router(family_members_router)
    app.include_router(prescriptions_router)
    app.include_router(doctor_notes_router)
    app.include_router(contacts_router)
    app.include_router(sos_router)
    app.include_router(notifications_router)
    app.include_router(usage_router)
    app.include_router(billing_router)
    app.include_router(admin_router)
    app.include_router(internal_router)
    return app


app = create_app()


def main() -> None:
    """Console entry point: serve the app with uvicorn on HOST:PORT."""

    settings = get_settings()
    uvicorn.run(
        "healthvault.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        # Logging is configured by setup_logging(); keep uvicorn from replacing it.
        log_config=None,
        proxy_headers=True,
    )
