from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from healthvault.api.deps import get_current_user_id
from healthvault.core.db import get_session
from healthvault.quota.schemas import (
    QuotaCheckOut,
    SubscriptionPlanOut,
    UsageItemOut,
    UsageOverviewOut,
    UsageTypeParam,
)
from healthvault.quota.service import (
    check_quota,
    get_user_subscription,
    list_plans,
    usage_overview,
)

router = APIRouter(prefix="/usage", tags=["usage"])


@router.get("", response_model=UsageOverviewOut)
async def get_usage_overview(
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> UsageOverviewOut:
    # usage_overview raises NoActiveSubscriptionError before a missing plan is dereferenced.
    items = await usage_overview(session=session, user_id=user_id)
    subscription = await get_user_subscription(session=session, user_id=user_id)
    return UsageOverviewOut(
        plan_name=subscription.subscription_plan.name if subscription else "",
        items=[UsageItemOut.model_validate(i) for i in items],
    )


@router.get("/plans", response_model=list[SubscriptionPlanOut])
async def get_plans(session: AsyncSession = Depends(get_session)) -> list[SubscriptionPlanOut]:
    plans = await list_plans(session=session)
    return [SubscriptionPlanOut.model_validate(p) for p in plans]


@router.get("/{usage_type}/check", response_model=QuotaCheckOut)
async def get_quota_check(
    usage_type: UsageTypeParam,
    amount: int = Query(default=1, ge=1, le=1000),
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> QuotaCheckOut:
    result = await check_quota(
        session=session, user_id=user_id, usage_type=usage_type, requested=amount
    )
    return QuotaCheckOut(
        usage_type=result.usage_type,
        allowed=result.allowed,
        remaining=result.remaining,
        limit=result.limit,
        current=result.current,
    )
