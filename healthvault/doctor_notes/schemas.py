from __future__ import annotations

import uuid
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field


class DoctorNoteCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255, examples=["Follow-up with cardiologist"])
    content: str | None = Field(default=None, max_length=20_000)
    note_type: str = Field(default="consultation", min_length=1, max_length=50)
    note_date: date | None = Field(default=None, description="Defaults to today (UTC).")
    physician_name: str | None = Field(default=None, max_length=255)
    facility_name: str | None = Field(default=None, max_length=255)
    tags: list[str] = Field(default_factory=list)
    related_report_ids: list[uuid.UUID] = Field(default_factory=list)
    attached_file_url: str | None = Field(default=None, max_length=1024)


class DoctorNoteUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    content: str | None = Field(default=None, max_length=20_000)
    note_type: str | None = Field(default=None, min_length=1, max_length=50)
    note_date: date | None = None
    physician_name: str | None = Field(default=None, max_length=255)
    facility_name: str | None = Field(default=None, max_length=255)
    tags: list[str] | None = None
    related_report_ids: list[uuid.UUID] | None = None
    attached_file_url: str | None = Field(default=None, max_length=1024)


class DoctorNoteOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    content: str | None = None
    note_type: str
    note_date: date
    physician_name: str | None = None
    facility_name: str | None = None
    tags: list[str] = Field(default_factory=list)
    related_report_ids: list[uuid.UUID] = Field(default_factory=list)
    attached_file_url: str | None = None
    created_at: datetime
    updated_at: datetime
