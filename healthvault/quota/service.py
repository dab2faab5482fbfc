"""Monthly usage quotas.

Limits come from the user's plan (`features["<kind>_per_month"]`, `-1` = unlimited) and
usage is summed per calendar month (UTC) in `usage_tracking`.

`track_usage_and_enforce` checks and then increments in two steps, so two concurrent
requests can both pass the check. The increment itself is applied in SQL, so no usage is
lost, but a plan limit can be overshot by concurrent requests.
"""

from __future__ import annotations

import calendar
import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Literal

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from healthvault.domain.exceptions import (
    ConflictError,
    NoActiveSubscriptionError,
    QuotaExceededError,
)
from healthvault.quota.models import SubscriptionPlan, UsageTracking, UserSubscription

logger = logging.getLogger("healthvault.quota")

UsageType = Literal["documents_processed", "ai_queries", "storage_mb", "reports_generated"]
USAGE_TYPES: tuple[UsageType, ...] = (
    "documents_processed",
    "ai_queries",
    "storage_mb",
    "reports_generated",
)
UNLIMITED = -1
ACTIVE_SUBSCRIPTION_STATUSES = frozenset({"active", "trialing"})


@dataclass(frozen=True)
class BillingPeriod:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class QuotaCheckResult:
    allowed: bool
    # None means unlimited.
    remaining: int | None
    limit: int | None
    current: int
    usage_type: str


def current_period(now: datetime | None = None) -> BillingPeriod:
    """First instant of the month through 23:59:59 on its last day (UTC)."""

    now = now or datetime.now(UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    now = now.astimezone(UTC)
    last_day = calendar.monthrange(now.year, now.month)[1]
    return BillingPeriod(
        start=datetime(now.year, now.month, 1, tzinfo=UTC),
        end=datetime(now.year, now.month, last_day, 23, 59, 59, tzinfo=UTC),
    )


def feature_key_for(usage_type: str) -> str:
    # documents_processed -> documents_per_month, reports_generated -> reports_per_month
    base = usage_type.replace("_processed", "").replace("_generated", "")
    return f"{base}_per_month"


def plan_limit(*, plan: SubscriptionPlan, usage_type: str) -> int:
    raw = (plan.features or {}).get(feature_key_for(usage_type), 0)
    try:
        return int(raw)
    except (TypeError, ValueError):
        return 0


async def get_user_subscription(
    *, session: AsyncSession, user_id: uuid.UUID
) -> UserSubscription | None:
    stmt = select(UserSubscription).where(UserSubscription.user_id == user_id)
    return (await session.execute(stmt)).scalars().first()


async def _get_active_plan(*, session: AsyncSession, user_id: uuid.UUID) -> SubscriptionPlan:
    subscription = await get_user_subscription(session=session, user_id=user_id)
    if (
        subscription is None
        or subscription.subscription_plan is None
        or subscription.status not in ACTIVE_SUBSCRIPTION_STATUSES
    ):
        raise NoActiveSubscriptionError()
    return subscription.subscription_plan


async def _get_usage_row(
    *, session: AsyncSession, user_id: uuid.UUID, usage_type: str, period: BillingPeriod
) -> UsageTracking | None:
    stmt = (
        select(UsageTracking)
        .where(
            UsageTracking.user_id == user_id,
            UsageTracking.usage_type == usage_type,
            UsageTracking.period_start == period.start,
        )
        .execution_options(populate_existing=True)
    )
    return (await session.execute(stmt)).scalars().first()


async def get_current_usage(
    *,
    session: AsyncSession,
    user_id: uuid.UUID,
    usage_type: str,
    period: BillingPeriod | None = None,
) -> int:
    period = period or current_period()
    row = await _get_usage_row(
        session=session, user_id=user_id, usage_type=usage_type, period=period
    )
    return int(row.usage_count) if row is not None else 0


async def check_quota(
    *,
    session: AsyncSession,
    user_id: uuid.UUID,
    usage_type: str,
    requested: int = 1,
    now: datetime | None = None,
) -> QuotaCheckResult:
    plan = await _get_active_plan(session=session, user_id=user_id)
    limit = plan_limit(plan=plan, usage_type=usage_type)

    if limit == UNLIMITED:
        return QuotaCheckResult(
            allowed=True, remaining=None, limit=None, current=0, usage_type=usage_type
        )

    current = await get_current_usage(
        session=session, user_id=user_id, usage_type=usage_type, period=current_period(now)
    )
    return QuotaCheckResult(
        allowed=(current + requested) <= limit,
        remaining=max(0, limit - current),
        limit=limit,
        current=current,
        usage_type=usage_type,
    )


async def enforce_quota(
    *,
    session: AsyncSession,
    user_id: uuid.UUID,
    usage_type: str,
    requested: int = 1,
    now: datetime | None = None,
) -> QuotaCheckResult:
    result = await check_quota(
        session=session, user_id=user_id, usage_type=usage_type, requested=requested, now=now
    )
    if not result.allowed:
        raise QuotaExceededError(
            usage_type=usage_type,
            limit=int(result.limit or 0),
            current=result.current,
            requested=requested,
        )
    return result


async def track_usage(
    *,
    session: AsyncSession,
    user_id: uuid.UUID,
    usage_type: str,
    amount: int = 1,
    now: datetime | None = None,
) -> int:
    """Add `amount` to the current period's usage row (creating it) and return the new count."""

    period = current_period(now)
    row = await _get_usage_row(
        session=session, user_id=user_id, usage_type=usage_type, period=period
    )
    if row is None:
        session.add(
            UsageTracking(
                user_id=user_id,
                usage_type=usage_type,
                usage_count=amount,
                period_start=period.start,
                period_end=period.end,
            )
        )
        try:
            await session.commit()
            return amount
        except IntegrityError:
            # Another request created the row first; fall through to the increment.
            await session.rollback()

    await session.execute(
        update(UsageTracking)
        .where(
            UsageTracking.user_id == user_id,
            UsageTracking.usage_type == usage_type,
            UsageTracking.period_start == period.start,
        )
        .values(usage_count=UsageTracking.usage_count + amount)
    )
    await session.commit()
    return await get_current_usage(
        session=session, user_id=user_id, usage_type=usage_type, period=period
    )


async def track_usage_and_enforce(
    *,
    session: AsyncSession,
    user_id: uuid.UUID,
    usage_type: str,
    amount: int = 1,
    now: datetime | None = None,
) -> int:
    await enforce_quota(
        session=session, user_id=user_id, usage_type=usage_type, requested=amount, now=now
    )
    count = await track_usage(
        session=session, user_id=user_id, usage_type=usage_type, amount=amount, now=now
    )
    logger.info("Usage tracked", extra={"usage_type": usage_type, "success": True})
    return count


@dataclass(frozen=True)
class UsageSnapshot:
    usage_type: str
    usage_count: int
    limit: int | None
    percentage: float
    period_start: datetime
    period_end: datetime


async def usage_overview(
    *, session: AsyncSession, user_id: uuid.UUID, now: datetime | None = None
) -> list[UsageSnapshot]:
    plan = await _get_active_plan(session=session, user_id=user_id)
    period = current_period(now)

    stmt = select(UsageTracking).where(
        UsageTracking.user_id == user_id, UsageTracking.period_start == period.start
    )
    counts = {
        row.usage_type: int(row.usage_count) for row in (await session.execute(stmt)).scalars()
    }

    out: list[UsageSnapshot] = []
    for usage_type in USAGE_TYPES:
        limit = plan_limit(plan=plan, usage_type=usage_type)
        used = counts.get(usage_type, 0)
        if limit == UNLIMITED:
            percentage = 0.0
        elif limit <= 0:
            percentage = 100.0 if used > 0 else 0.0
        else:
            percentage = min(used / limit * 100.0, 100.0)
        out.append(
            UsageSnapshot(
                usage_type=usage_type,
                usage_count=used,
                limit=None if limit == UNLIMITED else limit,
                percentage=round(percentage, 2),
                period_start=period.start,
                period_end=period.end,
            )
        )
    return out


async def create_plan(
    *,
    session: AsyncSession,
    name: str,
    display_name: str,
    price_monthly: int,
    features: dict,
) -> SubscriptionPlan:
    plan = SubscriptionPlan(
        name=name, display_name=display_name, price_monthly=price_monthly, features=features
    )
    session.add(plan)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise ConflictError("A plan with this name already exists.") from None
    await session.refresh(plan)
    return plan


async def get_plan(*, session: AsyncSession, plan_id: uuid.UUID) -> SubscriptionPlan | None:
    return await session.get(SubscriptionPlan, plan_id)


async def list_plans(*, session: AsyncSession) -> list[SubscriptionPlan]:
    stmt = (
        select(SubscriptionPlan)
        .where(SubscriptionPlan.is_active.is_(True))
        .order_by(SubscriptionPlan.price_monthly.asc(), SubscriptionPlan.name.asc())
    )
    return list((await session.execute(stmt)).scalars().all())


async def assign_subscription(
    *,
    session: AsyncSession,
    user_id: uuid.UUID,
    plan: SubscriptionPlan,
    status: str,
    now: datetime | None = None,
) -> UserSubscription:
    period = current_period(now)
    subscription = await get_user_subscription(session=session, user_id=user_id)
    if subscription is None:
        subscription = UserSubscription(user_id=user_id)
        session.add(subscription)
    subscription.subscription_plan_id = plan.id
    subscription.subscription_plan = plan
    subscription.status = status
    subscription.current_period_start = period.start
    subscription.current_period_end = period.end
    await session.commit()
    await session.refresh(subscription)
    return subscription
