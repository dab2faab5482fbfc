from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

UsageTypeParam = Literal["documents_processed", "ai_queries", "storage_mb", "reports_generated"]
SubscriptionStatus = Literal["active", "cancelled", "past_due", "unpaid", "trialing"]


class QuotaCheckOut(BaseModel):
    usage_type: str
    allowed: bool
    remaining: int | None = Field(default=None, description="Null when the plan is unlimited.")
    limit: int | None = Field(default=None, description="Null when the plan is unlimited.")
    current: int


class UsageItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    usage_type: str
    usage_count: int
    limit: int | None = Field(default=None, description="Null when the plan is unlimited.")
    percentage: float = Field(description="Share of the monthly limit used (0..100).")
    period_start: datetime
    period_end: datetime


class UsageOverviewOut(BaseModel):
    plan_name: str
    items: list[UsageItemOut]


class SubscriptionPlanCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50, examples=["premium"])
    display_name: str = Field(min_length=1, max_length=100, examples=["Premium"])
    price_monthly: int = Field(
        default=0, ge=0, description="Monthly price in paise.", examples=[29900]
    )
    features: dict[str, Any] = Field(
        default_factory=dict,
        description="Per-month limits keyed like `documents_per_month`; -1 means unlimited.",
        examples=[{"documents_per_month": 50, "reports_per_month": 10, "family_members": 5}],
    )


class SubscriptionPlanOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    display_name: str
    price_monthly: int
    features: dict[str, Any]
    is_active: bool


class UserSubscriptionUpdate(BaseModel):
    subscription_plan_id: uuid.UUID
    status: SubscriptionStatus = "active"


class UserSubscriptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    status: str
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    subscription_plan: SubscriptionPlanOut
