from __future__ import annotations

import uuid
from datetime import date

from sqlalchemy import JSON, Date, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from healthvault.core.db import Base, TimestampMixin


class DoctorNote(TimestampMixin, Base):
    __tablename__ = "doctor_notes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    note_type: Mapped[str] = mapped_column(String(50), nullable=False, default="consultation")
    note_date: Mapped[date] = mapped_column(Date, nullable=False)
    physician_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    facility_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    related_report_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    attached_file_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
