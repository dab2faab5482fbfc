from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

PrescriptionStatus = Literal["active", "completed", "discontinued"]


class PrescriptionCreate(BaseModel):
    medication_name: str = Field(min_length=1, max_length=255, examples=["Metformin"])
    dosage: str | None = Field(default=None, max_length=100, examples=["500 mg"])
    frequency: str | None = Field(default=None, max_length=100, examples=["twice daily"])
    duration: str | None = Field(default=None, max_length=100, examples=["3 months"])
    prescribing_doctor: str | None = Field(default=None, max_length=255)
    pharmacy: str | None = Field(default=None, max_length=255)
    status: PrescriptionStatus = "active"
    notes: str | None = Field(default=None, max_length=5000)
    start_date: date | None = None
    end_date: date | None = None
    report_id: uuid.UUID | None = None
    family_member_id: uuid.UUID | None = None

    @model_validator(mode="after")
    def _end_not_before_start(self) -> PrescriptionCreate:
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class PrescriptionUpdate(BaseModel):
    medication_name: str | None = Field(default=None, min_length=1, max_length=255)
    dosage: str | None = Field(default=None, max_length=100)
    frequency: str | None = Field(default=None, max_length=100)
    duration: str | None = Field(default=None, max_length=100)
    prescribing_doctor: str | None = Field(default=None, max_length=255)
    pharmacy: str | None = Field(default=None, max_length=255)
    status: PrescriptionStatus | None = None
    notes: str | None = Field(default=None, max_length=5000)
    start_date: date | None = None
    end_date: date | None = None
    report_id: uuid.UUID | None = None
    family_member_id: uuid.UUID | None = None


class PrescriptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    medication_name: str
    dosage: str | None = None
    frequency: str | None = None
    duration: str | None = None
    prescribing_doctor: str | None = None
    pharmacy: str | None = None
    status: str
    notes: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    report_id: uuid.UUID | None = None
    family_member_id: uuid.UUID | None = None
    created_at: datetime
    updated_at: datetime
