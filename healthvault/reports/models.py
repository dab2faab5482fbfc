from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from healthvault.core.db import Base, TimestampMixin

PARSING_STATUSES = ("pending", "processing", "completed", "failed")


class Report(TimestampMixin, Base):
    """
    A medical document uploaded by a user.

    `file_path` is the storage key in the `medical-documents` bucket; it is cleared when a
    report is marked for re-upload. Processing columns are written by this service and by
    the external processing function through the internal callback endpoint.
    """

    __tablename__ = "reports"
    __table_args__ = (
        CheckConstraint(
            "parsing_status IN ('pending', 'processing', 'completed', 'failed')",
            name="reports_parsing_status",
        ),
        CheckConstraint(
            "progress_percentage >= 0 AND progress_percentage <= 100",
            name="reports_progress_range",
        ),
        CheckConstraint(
            "(file_path IS NULL) OR (file_path NOT LIKE '/%' AND file_path NOT LIKE '%..%')",
            name="reports_file_path_relative",
        ),
        Index("ix_reports_user_id_created_at_id", "user_id", "created_at", "id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    family_member_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("family_members.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    report_type: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    report_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    physician_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    facility_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    is_critical: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # File metadata (file_path is NULL once marked for re-upload).
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    file_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    file_size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    content_mime_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    checksum_sha256: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Processing state
    parsing_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending", index=True
    )
    processing_phase: Mapped[str | None] = mapped_column(String(50), nullable=True)
    progress_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processing_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    processing_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Processing results (derived, non-authoritative)
    extracted_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    parsed_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    parsing_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    extraction_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)

    @property
    def has_file(self) -> bool:
        return self.file_path is not None
