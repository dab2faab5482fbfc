from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from healthvault.api.deps import require_admin
from healthvault.audit.schemas import AuditLogOut
from healthvault.audit.service import list_audit_logs, record_audit
from healthvault.core.db import get_session
from healthvault.core.middleware.http_logging import request_id_from
from healthvault.core.settings import get_settings
from healthvault.quota.schemas import (
    SubscriptionPlanCreate,
    SubscriptionPlanOut,
    UserSubscriptionOut,
    UserSubscriptionUpdate,
)
from healthvault.quota.service import assign_subscription, create_plan, get_plan, list_plans
from healthvault.reports.consistency import check_file_consistency, generate_consistency_report
from healthvault.reports.processing.service import processing_queue, reset_failed_processing
from healthvault.reports.schemas import (
    ConsistencyReportOut,
    ProcessingQueueOut,
    ProcessingResetOut,
)
from healthvault.storage.deps import get_storage
from healthvault.storage.local import LocalFileStorage

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])
logger = logging.getLogger("healthvault.admin")


@router.get("/file-consistency", response_model=ConsistencyReportOut)
async def get_all_file_consistency(
    user_id: uuid.UUID | None = Query(default=None, description="Limit the check to one user."),
    session: AsyncSession = Depends(get_session),
    storage: LocalFileStorage = Depends(get_storage),
) -> ConsistencyReportOut:
    result = await check_file_consistency(session=session, storage=storage, user_id=user_id)
    return ConsistencyReportOut.model_validate(result)


@router.get("/file-consistency/report", response_class=PlainTextResponse)
async def get_all_file_consistency_text(
    session: AsyncSession = Depends(get_session),
    storage: LocalFileStorage = Depends(get_storage),
) -> PlainTextResponse:
    result = await check_file_consistency(session=session, storage=storage, user_id=None)
    filename = f"file-consistency-report-{result.checked_at.date().isoformat()}.txt"
    return PlainTextResponse(
        generate_consistency_report(result),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/processing/reset", response_model=ProcessingResetOut)
async def post_processing_reset(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ProcessingResetOut:
    failed, stuck = await reset_failed_processing(
        session=session, stuck_minutes=get_settings().stuck_processing_minutes
    )
    record_audit(
        session=session,
        user_id=None,
        action="processing.reset",
        resource_type="report",
        details={"reset_failed": failed, "reset_stuck": stuck},
    )
    await session.commit()
    logger.info(
        "Processing reset requested",
        extra={"request_id": request_id_from(request), "success": True},
    )
    return ProcessingResetOut(reset_failed=failed, reset_stuck=stuck)


@router.get("/processing/queue", response_model=ProcessingQueueOut)
async def get_processing_queue(
    session: AsyncSession = Depends(get_session),
) -> ProcessingQueueOut:
    counts = await processing_queue(
        session=session, stuck_minutes=get_settings().stuck_processing_minutes
    )
    return ProcessingQueueOut(**counts)


@router.get("/audit-logs", response_model=list[AuditLogOut])
async def get_audit_logs(
    limit: int = Query(default=100, ge=1, le=500),
    action: str | None = None,
    user_id: uuid.UUID | None = None,
    session: AsyncSession = Depends(get_session),
) -> list[AuditLogOut]:
    rows = await list_audit_logs(session=session, limit=limit, action=action, user_id=user_id)
    return [AuditLogOut.model_validate(r) for r in rows]


@router.get("/subscription-plans", response_model=list[SubscriptionPlanOut])
async def get_subscription_plans(
    session: AsyncSession = Depends(get_session),
) -> list[SubscriptionPlanOut]:
    return [SubscriptionPlanOut.model_validate(p) for p in await list_plans(session=session)]


@router.post(
    "/subscription-plans", status_code=status.HTTP_201_CREATED, response_model=SubscriptionPlanOut
)
async def post_subscription_plan(
    payload: SubscriptionPlanCreate,
    session: AsyncSession = Depends(get_session),
) -> SubscriptionPlanOut:
    plan = await create_plan(
        session=session,
        name=payload.name,
        display_name=payload.display_name,
        price_monthly=payload.price_monthly,
        features=payload.features,
    )
    return SubscriptionPlanOut.model_validate(plan)


@router.put("/users/{user_id}/subscription", response_model=UserSubscriptionOut)
async def put_user_subscription(
    user_id: uuid.UUID,
    payload: UserSubscriptionUpdate,
    session: AsyncSession = Depends(get_session),
) -> UserSubscriptionOut:
    plan = await get_plan(session=session, plan_id=payload.subscription_plan_id)
    if plan is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Subscription plan not found"
        )
    subscription = await assign_subscription(
        session=session, user_id=user_id, plan=plan, status=payload.status
    )
    return UserSubscriptionOut.model_validate(subscription)
