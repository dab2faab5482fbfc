"""Quota rules checked directly against the service layer."""

from __future__ import annotations

import asyncio
import uuid
from datetime import UTC, datetime

import pytest

from healthvault.core.db import create_engine, create_sessionmaker
from healthvault.domain.exceptions import NoActiveSubscriptionError, QuotaExceededError
from healthvault.quota.service import (
    assign_subscription,
    check_quota,
    create_plan,
    current_period,
    enforce_quota,
    feature_key_for,
    get_current_usage,
    track_usage,
    track_usage_and_enforce,
)


def _run(database_url: str, scenario):
    async def run():
        engine = create_engine(database_url=database_url)
        sessionmaker = create_sessionmaker(engine=engine)
        try:
            async with sessionmaker() as session:
                return await scenario(session)
        finally:
            await engine.dispose()

    return asyncio.run(run())


async def _subscribed_user(session, features: dict) -> uuid.UUID:
    user_id = uuid.uuid4()
    plan = await create_plan(
        session=session,
        name=f"plan-{uuid.uuid4().hex[:8]}",
        display_name="Plan",
        price_monthly=0,
        features=features,
    )
    await assign_subscription(session=session, user_id=user_id, plan=plan, status="active")
    return user_id


def test_current_period_spans_the_calendar_month() -> None:
    period = current_period(datetime(2024, 2, 14, 9, 30, tzinfo=UTC))
    assert period.start == datetime(2024, 2, 1, tzinfo=UTC)
    assert period.end == datetime(2024, 2, 29, 23, 59, 59, tzinfo=UTC)

    december = current_period(datetime(2025, 12, 31, 23, 0, tzinfo=UTC))
    assert december.start == datetime(2025, 12, 1, tzinfo=UTC)
    assert december.end == datetime(2025, 12, 31, 23, 59, 59, tzinfo=UTC)


@pytest.mark.parametrize(
    ("usage_type", "key"),
    [
        ("documents_processed", "documents_per_month"),
        ("reports_generated", "reports_per_month"),
        ("ai_queries", "ai_queries_per_month"),
        ("storage_mb", "storage_mb_per_month"),
    ],
)
def test_feature_key_for_usage_type(usage_type: str, key: str) -> None:
    assert feature_key_for(usage_type) == key


def test_check_denies_when_usage_plus_request_exceeds_limit(database_url: str) -> None:
    async def scenario(session):
        user_id = await _subscribed_user(session, {"documents_per_month": 3})
        await track_usage(
            session=session, user_id=user_id, usage_type="documents_processed", amount=2
        )
        fits = await check_quota(
            session=session, user_id=user_id, usage_type="documents_processed", requested=1
        )
        too_many = await check_quota(
            session=session, user_id=user_id, usage_type="documents_processed", requested=2
        )
        return fits, too_many

    fits, too_many = _run(database_url, scenario)
    assert fits.allowed is True
    assert fits.current == 2
    assert fits.remaining == 1
    assert fits.limit == 3
    assert too_many.allowed is False
    assert too_many.remaining == 1


def test_unlimited_plan_always_allows(database_url: str) -> None:
    async def scenario(session):
        user_id = await _subscribed_user(session, {"reports_per_month": -1})
        await track_usage(
            session=session, user_id=user_id, usage_type="reports_generated", amount=500
        )
        return await check_quota(
            session=session, user_id=user_id, usage_type="reports_generated", requested=1000
        )

    result = _run(database_url, scenario)
    assert result.allowed is True
    assert result.limit is None
    assert result.remaining is None
    assert result.current == 0


def test_missing_feature_key_means_zero_limit(database_url: str) -> None:
    async def scenario(session):
        user_id = await _subscribed_user(session, {"documents_per_month": 10})
        return await check_quota(
            session=session, user_id=user_id, usage_type="ai_queries", requested=1
        )

    result = _run(database_url, scenario)
    assert result.allowed is False
    assert result.limit == 0
    assert result.remaining == 0


def test_user_without_subscription_raises(database_url: str) -> None:
    async def scenario(session):
        await check_quota(
            session=session, user_id=uuid.uuid4(), usage_type="documents_processed"
        )

    with pytest.raises(NoActiveSubscriptionError):
        _run(database_url, scenario)


def test_cancelled_subscription_is_not_active(database_url: str) -> None:
    async def scenario(session):
        user_id = uuid.uuid4()
        plan = await create_plan(
            session=session,
            name="basic",
            display_name="Basic",
            price_monthly=0,
            features={"documents_per_month": 10},
        )
        await assign_subscription(session=session, user_id=user_id, plan=plan, status="cancelled")
        await check_quota(session=session, user_id=user_id, usage_type="documents_processed")

    with pytest.raises(NoActiveSubscriptionError):
        _run(database_url, scenario)


def test_enforce_raises_with_details(database_url: str) -> None:
    async def scenario(session):
        user_id = await _subscribed_user(session, {"reports_per_month": 1})
        await track_usage(
            session=session, user_id=user_id, usage_type="reports_generated", amount=1
        )
        await enforce_quota(
            session=session, user_id=user_id, usage_type="reports_generated", requested=1
        )

    with pytest.raises(QuotaExceededError) as excinfo:
        _run(database_url, scenario)
    assert excinfo.value.limit == 1
    assert excinfo.value.current == 1
    assert excinfo.value.requested == 1
    assert "Quota exceeded for reports_generated" in excinfo.value.message


def test_track_usage_accumulates_in_one_row(database_url: str) -> None:
    async def scenario(session):
        user_id = await _subscribed_user(session, {"documents_per_month": 10})
        for _ in range(3):
            await track_usage_and_enforce(
                session=session, user_id=user_id, usage_type="documents_processed", amount=2
            )
        return await get_current_usage(
            session=session,
            user_id=user_id,
            usage_type="documents_processed",
            period=current_period(None),
        )

    assert _run(database_url, scenario) == 6
