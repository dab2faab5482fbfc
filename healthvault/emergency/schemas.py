from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

SosStatus = Literal["triggered", "cancelled", "completed"]


class EmergencyContactCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255, examples=["Ravi Kumar"])
    relationship: str = Field(min_length=1, max_length=50, examples=["brother"])
    phone_number: str = Field(min_length=3, max_length=30, examples=["+919812345678"])
    priority: int | None = Field(
        default=None, ge=1, description="Defaults to one after the current number of contacts."
    )


class EmergencyContactUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    relationship: str | None = Field(default=None, min_length=1, max_length=50)
    phone_number: str | None = Field(default=None, min_length=3, max_length=30)
    priority: int | None = Field(default=None, ge=1)


class EmergencyContactOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    relationship: str
    phone_number: str
    priority: int
    created_at: datetime
    updated_at: datetime


class SosTriggerIn(BaseModel):
    location_data: dict[str, Any] | None = Field(
        default=None, examples=[{"latitude": 12.97, "longitude": 77.59, "accuracy": 15}]
    )


class SosActivationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    status: SosStatus
    triggered_at: datetime
    cancelled_at: datetime | None = None
    completed_at: datetime | None = None
    location_data: dict[str, Any] | None = None
    sms_sent: bool
