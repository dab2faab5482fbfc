from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

ParsingStatus = Literal["pending", "processing", "completed", "failed"]
ReportSortOrder = Literal["asc", "desc"]


class ReportUpdate(BaseModel):
    """Editable report metadata. Omitted fields keep their current value."""

    title: str | None = Field(
        default=None,
        min_length=1,
        max_length=255,
        description="Display title.",
        examples=["CBC - March"],
    )
    report_type: str | None = Field(
        default=None, min_length=1, max_length=50, examples=["lab"]
    )
    report_date: date | None = Field(default=None, examples=["2024-03-01"])
    description: str | None = Field(default=None, max_length=5000)
    notes: str | None = Field(default=None, max_length=5000)
    physician_name: str | None = Field(default=None, max_length=255)
    facility_name: str | None = Field(default=None, max_length=255)
    tags: list[str] | None = Field(default=None, max_length=50)
    is_critical: bool | None = None
    family_member_id: uuid.UUID | None = None


class ReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID = Field(description="Report identifier (UUID).")
    user_id: uuid.UUID
    family_member_id: uuid.UUID | None = None
    title: str
    report_type: str
    report_date: date | None = None
    description: str | None = None
    notes: str | None = None
    physician_name: str | None = None
    facility_name: str | None = None
    tags: list[str] = Field(default_factory=list)
    is_critical: bool

    file_name: str | None = None
    file_path: str | None = Field(
        default=None, description="Storage key; null once the report is marked for re-upload."
    )
    file_size: int | None = None
    content_mime_type: str | None = None
    checksum_sha256: str | None = None

    parsing_status: str
    processing_phase: str | None = None
    progress_percentage: int
    processing_error: str | None = None
    processing_started_at: datetime | None = None
    retry_count: int

    parsed_data: dict[str, Any] | None = None
    parsing_confidence: float | None = None
    extraction_confidence: float | None = None

    created_at: datetime
    updated_at: datetime


class ReportListItemOut(BaseModel):
    """List items leave out extracted text and parsed data."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    report_type: str
    report_date: date | None = None
    physician_name: str | None = None
    facility_name: str | None = None
    tags: list[str] = Field(default_factory=list)
    is_critical: bool
    file_name: str | None = None
    has_file: bool
    parsing_status: str
    family_member_id: uuid.UUID | None = None
    created_at: datetime


class ReportListOut(BaseModel):
    items: list[ReportListItemOut] = Field(description="Page of reports, newest first.")
    limit: int = Field(description="Page size requested.", examples=[50])
    next_cursor: str | None = Field(
        default=None,
        description="Opaque cursor for the next page. Null when there are no more results.",
    )


class FixFilePathIn(BaseModel):
    file_path: str = Field(
        min_length=1,
        max_length=1024,
        description="Existing key in the medical-documents bucket.",
    )


class ExtractedMetadataOut(BaseModel):
    title: str | None = None
    report_type: str | None = None
    physician_name: str | None = None
    facility_name: str | None = None
    description: str | None = None


class ConsistencyIssueOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    report_id: uuid.UUID
    title: str
    file_name: str | None = None
    file_path: str
    issue_type: Literal["missing_file", "corrupted_file", "invalid_path", "access_denied"]
    can_reupload: bool
    alternative_files: list[str] = Field(
        default_factory=list,
        description="Other keys stored under the same user folder (recovery candidates).",
    )


class ConsistencyReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_reports: int
    valid_files: int
    issues: list[ConsistencyIssueOut]
    checked_at: datetime


class ProcessingProgressOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ocr_complete: bool
    aws_entities_extracted: bool
    terminology_validated: bool
    llm_enhanced: bool
    results_merged: bool


class PipelineOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    stage1_textract: Literal["completed", "failed"]
    stage2_comprehend: Literal["completed", "failed"]
    stage3_llm: Literal["completed", "failed"]
    stage4_validation: Literal["completed", "failed"]


class ProcessingStatusOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    report_id: uuid.UUID
    parsing_status: str
    processing_phase: str | None = None
    progress_percentage: int
    stage: str = Field(
        description=(
            "Display stage: initializing, entity_extraction, llm_enhancement, "
            "merging_results, completed or error."
        )
    )
    progress: ProcessingProgressOut
    processing_error: str | None = None
    retry_count: int


class ProcessingResultOut(BaseModel):
    report_id: uuid.UUID
    success: bool
    parsing_status: str
    confidence: float | None = None
    hybrid: bool = Field(
        description="True when the hybrid OCR + entity pipeline produced the result."
    )
    pipeline: PipelineOut
    tags: list[str] = Field(default_factory=list)
    attempts: int
    processing_time_ms: int | None = None
    validation_errors: list[str] = Field(default_factory=list)
    validation_warnings: list[str] = Field(default_factory=list)
    validation_confidence: float | None = Field(
        default=None, description="Confidence after completeness checks on the parsed data."
    )


class DuplicateCheckOut(BaseModel):
    is_duplicate: bool
    similarity: float = 0.0
    matched_report_id: uuid.UUID | None = None
    matched_title: str | None = None


class ReprocessItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    report_id: uuid.UUID
    status: Literal["completed", "failed", "skipped"]
    error: str | None = None


class ReprocessOut(BaseModel):
    total: int
    completed: int
    failed: int
    skipped: int
    items: list[ReprocessItemOut]


class ProcessingUpdateIn(BaseModel):
    """Progress reported by the external processing function."""

    processing_phase: Literal[
        "pending",
        "ocr_completed",
        "aws_processing_completed",
        "llm_enhancement",
        "completed",
        "failed",
    ]
    progress_percentage: int | None = Field(default=None, ge=0, le=100)
    parsed_data: dict[str, Any] | None = None
    extracted_text: str | None = None
    extraction_confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    error: str | None = Field(default=None, max_length=2000)


class ProcessingResetOut(BaseModel):
    reset_failed: int
    reset_stuck: int


class ProcessingQueueOut(BaseModel):
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    stuck: int = Field(default=0, description="Processing longer than the stuck threshold.")
