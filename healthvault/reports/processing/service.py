"""
Document processing orchestration.

The heavy lifting (OCR, medical entity extraction, LLM structuring) happens in the
`process-medical-document` edge function. This module:
- guards and marks the report as processing,
- invokes the function with bounded retries for transient failures,
- persists results or a user-facing failure message,
- accepts phase updates that the function reports back while it runs.

IMPORTANT (healthcare safety):
- Parsed data and extracted text are never logged.
- Error messages stored on the report are fixed, user-facing strings.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from healthvault.core.functions.client import (
    PROCESS_MEDICAL_DOCUMENT,
    EdgeFunctionClient,
    EdgeFunctionError,
)
from healthvault.core.metrics import document_processing_total
from healthvault.core.settings import Settings
from healthvault.domain.exceptions import (
    BusinessValidationError,
    ConflictError,
    QuotaExceededError,
)
from healthvault.notifications.service import notify
from healthvault.quota.service import enforce_quota, track_usage
from healthvault.reports.models import Report
from healthvault.reports.processing.phases import (
    FAILED,
    PHASE_PROGRESS,
    HybridProgress,
    display_stage,
    is_valid_transition,
    progress_for_phase,
)
from healthvault.reports.processing.tags import generate_smart_tags, is_critical_result
from healthvault.reports.processing.validation import (
    DuplicateMatch,
    ValidationResult,
    find_duplicate,
    validate_medical_data,
)

logger = logging.getLogger("healthvault.processing")

DOCUMENTS_PROCESSED = "documents_processed"
TERMINAL_STATUSES = frozenset({"completed", "failed"})

_RETRYABLE_MARKERS = (
    "API error",
    "timeout",
    "network",
    "500",
    "CPU Time exceeded",
    "Processing timeout",
)


class DocumentProcessingError(Exception):
    """Raised after a failed processing run has been persisted (safe to map to 502)."""

    def __init__(self, *, user_message: str, attempts: int):
        super().__init__(user_message)
        self.user_message = user_message
        self.attempts = attempts


@dataclass(frozen=True)
class PipelineSummary:
    stage1_textract: str
    stage2_comprehend: str
    stage3_llm: str
    stage4_validation: str


@dataclass(frozen=True)
class ProcessingOutcome:
    report: Report
    confidence: float | None
    hybrid: bool
    pipeline: PipelineSummary
    attempts: int
    processing_time_ms: int | None
    tags: list[str] = field(default_factory=list)
    validation: ValidationResult | None = None


@dataclass(frozen=True)
class ProcessingSnapshot:
    report_id: uuid.UUID
    parsing_status: str
    processing_phase: str | None
    progress_percentage: int
    stage: str
    progress: HybridProgress
    processing_error: str | None
    retry_count: int


def is_retryable(message: str) -> bool:
    return any(marker in message for marker in _RETRYABLE_MARKERS)


def retry_delay_seconds(*, attempt: int, base: float, cap: float) -> float:
    return min((attempt + 1) * base, cap)


def user_facing_error(*, message: str, attempt: int) -> str:
    """Map an internal failure message to what the user sees. `attempt` is zero-based."""

    if "CPU Time exceeded" in message:
        return (
            "Document processing timed out. This document may be too large or complex. "
            "Try uploading a smaller section or contact support."
        )
    if "Processing timeout" in message:
        return "Processing took too long. Please try again or upload a smaller document."
    if "Unable to extract text" in message:
        return "Could not read text from this PDF. Try uploading it as an image instead."
    if attempt > 0:
        return (
            f"Failed to process the document after {attempt + 1} attempts. "
            "Please try again later."
        )
    return "Failed to process the document. Please try again."


def _is_hybrid_result(data: dict[str, Any], parsed: dict[str, Any] | None) -> bool:
    if data.get("hybrid") is True:
        return True
    if not parsed:
        return False
    if parsed.get("hybrid") is True or parsed.get("awsEnhanced") is True:
        return True
    pipeline = parsed.get("processingPipeline")
    return isinstance(pipeline, list) and "aws_textract" in pipeline


def pipeline_summary(*, success: bool, hybrid: bool) -> PipelineSummary:
    if not success:
        return PipelineSummary("failed", "failed", "failed", "failed")
    aws = "completed" if hybrid else "failed"
    return PipelineSummary(
        stage1_textract=aws, stage2_comprehend=aws, stage3_llm="completed", stage4_validation=aws
    )


def _merge_tags(existing: list[str] | None, new: list[str]) -> list[str]:
    merged = dict.fromkeys(existing or [])
    merged.update(dict.fromkeys(new))
    return list(merged)


def _apply_parsed_result(
    *,
    report: Report,
    parsed: dict[str, Any] | None,
    extracted_text: str | None,
    confidence: float | None,
    extraction_confidence: float | None,
) -> list[str]:
    if parsed is not None:
        report.parsed_data = parsed
    if extracted_text is not None:
        report.extracted_text = extracted_text
    if confidence is not None:
        report.parsing_confidence = confidence
    if extraction_confidence is not None:
        report.extraction_confidence = extraction_confidence

    report.parsing_status = "completed"
    report.processing_phase = "completed"
    report.progress_percentage = 100
    report.processing_error = None

    smart_tags = generate_smart_tags(report.parsed_data)
    if smart_tags:
        report.tags = _merge_tags(report.tags, smart_tags)
    if is_critical_result(report.parsed_data):
        report.is_critical = True
    return smart_tags


def _as_float(value: Any) -> float | None:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


async def start_processing(
    *,
    session: AsyncSession,
    report: Report,
    client: EdgeFunctionClient,
    settings: Settings,
) -> ProcessingOutcome:
    if not report.file_path:
        raise BusinessValidationError("Report has no file to process.")
    if report.parsing_status == "processing":
        raise ConflictError("Report is already being processed.")

    await enforce_quota(
        session=session, user_id=report.user_id, usage_type=DOCUMENTS_PROCESSED, requested=1
    )

    report.parsing_status = "processing"
    report.processing_phase = "pending"
    report.progress_percentage = 0
    report.processing_error = None
    report.retry_count = 0
    report.processing_started_at = datetime.now(UTC)
    await session.commit()

    report_id = str(report.id)
    body = {"reportId": report_id, "filePath": report.file_path}
    max_retries = int(settings.processing_max_retries)
    started = time.perf_counter()

    attempt = 0
    while True:
        try:
            data = await client.invoke(PROCESS_MEDICAL_DOCUMENT, body=body)
            break
        except EdgeFunctionError as exc:
            message = str(exc)
            if attempt < max_retries and is_retryable(message):
                delay = retry_delay_seconds(
                    attempt=attempt,
                    base=settings.processing_retry_base_seconds,
                    cap=settings.processing_retry_max_seconds,
                )
                logger.info(
                    "Document processing retry scheduled",
                    extra={"report_id": report_id, "attempt": attempt + 1, "success": False},
                )
                report.retry_count = attempt + 1
                await session.commit()
                await asyncio.sleep(delay)
                attempt += 1
                continue
            user_message = await _persist_failure(
                session=session, report=report, message=message, attempt=attempt
            )
            raise DocumentProcessingError(user_message=user_message, attempts=attempt + 1) from None

    # The function may have reported phases through the callback while we waited.
    await session.refresh(report)

    parsed = data.get("parsedData")
    if not isinstance(parsed, dict):
        parsed = None
    confidence = _as_float(data.get("confidence"))
    extracted_text = data.get("extractedText")
    hybrid = _is_hybrid_result(data, parsed)
    validation = validate_medical_data(parsed) if parsed is not None else None
    if validation is not None and not validation.is_valid:
        logger.warning(
            "Parsed document failed validation",
            extra={"report_id": report_id, "success": False},
        )

    smart_tags = _apply_parsed_result(
        report=report,
        parsed=parsed,
        extracted_text=extracted_text if isinstance(extracted_text, str) else None,
        confidence=confidence,
        extraction_confidence=_as_float(data.get("extractionConfidence")),
    )
    await session.commit()
    await session.refresh(report)

    await track_usage(
        session=session, user_id=report.user_id, usage_type=DOCUMENTS_PROCESSED, amount=1
    )
    document_processing_total.labels(outcome="completed").inc()
    logger.info(
        "Document processing completed",
        extra={"report_id": report_id, "attempt": attempt + 1, "success": True},
    )
    await notify(
        session=session,
        user_id=report.user_id,
        title="Processing Complete",
        message=(
            "Your document was processed using the "
            f"{'hybrid OCR + AI' if hybrid else 'AI-only'} pipeline."
        ),
        type="success",
        category="processing",
        metadata={"report_id": report_id},
    )

    processing_time_ms = data.get("processingTime")
    if not isinstance(processing_time_ms, int):
        processing_time_ms = int((time.perf_counter() - started) * 1000)
    return ProcessingOutcome(
        report=report,
        confidence=confidence,
        hybrid=hybrid,
        pipeline=pipeline_summary(success=True, hybrid=hybrid),
        attempts=attempt + 1,
        processing_time_ms=processing_time_ms,
        tags=smart_tags,
        validation=validation,
    )


async def _persist_failure(
    *, session: AsyncSession, report: Report, message: str, attempt: int
) -> str:
    user_message = user_facing_error(message=message, attempt=attempt)
    report.parsing_status = "failed"
    report.processing_phase = FAILED
    report.processing_error = user_message
    report.retry_count = attempt
    await session.commit()

    document_processing_total.labels(outcome="failed").inc()
    logger.warning(
        "Document processing failed",
        extra={"report_id": str(report.id), "attempt": attempt + 1, "success": False},
    )
    await notify(
        session=session,
        user_id=report.user_id,
        title="Processing Failed",
        message=user_message,
        type="error",
        category="processing",
        metadata={"report_id": str(report.id)},
    )
    return user_message


def snapshot(report: Report) -> ProcessingSnapshot:
    return ProcessingSnapshot(
        report_id=report.id,
        parsing_status=report.parsing_status,
        processing_phase=report.processing_phase,
        progress_percentage=report.progress_percentage,
        stage=display_stage(phase=report.processing_phase, parsing_status=report.parsing_status),
        progress=progress_for_phase(report.processing_phase),
        processing_error=report.processing_error,
        retry_count=report.retry_count,
    )


async def processing_status(
    *,
    session: AsyncSession,
    report: Report,
    wait_seconds: float,
    poll_interval_seconds: float,
) -> ProcessingSnapshot:
    """Current status; with `wait_seconds > 0`, poll at a fixed interval until terminal."""

    deadline = time.monotonic() + max(0.0, wait_seconds)
    while True:
        await session.refresh(report)
        if report.parsing_status in TERMINAL_STATUSES or time.monotonic() >= deadline:
            return snapshot(report)
        await asyncio.sleep(poll_interval_seconds)


async def check_duplicate_report(*, session: AsyncSession, report: Report) -> DuplicateMatch | None:
    """Compare a parsed report with the owner's other parsed reports, newest first."""

    if not report.parsed_data:
        return None
    stmt = (
        select(Report.id, Report.title, Report.parsed_data)
        .where(
            Report.user_id == report.user_id,
            Report.id != report.id,
            Report.parsing_status == "completed",
        )
        .order_by(Report.created_at.desc(), Report.id.desc())
    )
    candidates = [tuple(row) for row in (await session.execute(stmt)).all()]
    return find_duplicate(report.parsed_data, candidates)


@dataclass(frozen=True)
class ReprocessItem:
    report_id: uuid.UUID
    status: str
    error: str | None = None


async def reprocess_reports(
    *,
    session: AsyncSession,
    user_id: uuid.UUID,
    client: EdgeFunctionClient,
    settings: Settings,
) -> list[ReprocessItem]:
    """
    Process every pending or failed report of the user that still has a file, oldest
    first, one at a time. A failed document does not stop the run; running out of
    quota marks the remaining reports as skipped.
    """

    stmt = (
        select(Report)
        .where(
            Report.user_id == user_id,
            Report.parsing_status.in_(("pending", "failed")),
            Report.file_path.is_not(None),
        )
        .order_by(Report.created_at.asc(), Report.id.asc())
    )
    reports = list((await session.execute(stmt)).scalars().all())

    items: list[ReprocessItem] = []
    quota_exhausted = False
    for report in reports:
        if quota_exhausted:
            items.append(ReprocessItem(report_id=report.id, status="skipped"))
            continue
        try:
            await start_processing(session=session, report=report, client=client, settings=settings)
        except DocumentProcessingError as exc:
            items.append(
                ReprocessItem(report_id=report.id, status="failed", error=exc.user_message)
            )
        except QuotaExceededError:
            quota_exhausted = True
            items.append(
                ReprocessItem(report_id=report.id, status="skipped", error="Quota exceeded")
            )
        else:
            items.append(ReprocessItem(report_id=report.id, status="completed"))

    logger.info(
        "Bulk reprocessing finished",
        extra={"success": all(i.status == "completed" for i in items)},
    )
    return items


async def record_processing_update(
    *,
    session: AsyncSession,
    report: Report,
    processing_phase: str,
    progress_percentage: int | None = None,
    parsed_data: dict[str, Any] | None = None,
    extracted_text: str | None = None,
    extraction_confidence: float | None = None,
    error: str | None = None,
) -> Report:
    if not is_valid_transition(report.processing_phase, processing_phase):
        raise ConflictError(
            f"Processing phase cannot move from {report.processing_phase} to {processing_phase}."
        )

    if processing_phase == FAILED:
        report.parsing_status = "failed"
        report.processing_phase = FAILED
        report.processing_error = user_facing_error(message=error or "", attempt=0)
    elif processing_phase == "completed":
        _apply_parsed_result(
            report=report,
            parsed=parsed_data,
            extracted_text=extracted_text,
            confidence=None,
            extraction_confidence=extraction_confidence,
        )
    else:
        report.parsing_status = "processing"
        report.processing_phase = processing_phase
        report.progress_percentage = (
            progress_percentage
            if progress_percentage is not None
            else PHASE_PROGRESS[processing_phase]
        )
        if extracted_text is not None:
            report.extracted_text = extracted_text
        if extraction_confidence is not None:
            report.extraction_confidence = extraction_confidence

    await session.commit()
    await session.refresh(report)
    logger.info(
        "Processing update recorded",
        extra={"report_id": str(report.id), "success": processing_phase != FAILED},
    )
    return report


def _stuck_cutoff(*, stuck_minutes: int, now: datetime | None) -> datetime:
    return (now or datetime.now(UTC)) - timedelta(minutes=stuck_minutes)


_RESET_VALUES = {
    "parsing_status": "pending",
    "processing_phase": None,
    "progress_percentage": 0,
    "processing_error": None,
    "retry_count": 0,
    "processing_started_at": None,
}


async def reset_failed_processing(
    *, session: AsyncSession, stuck_minutes: int, now: datetime | None = None
) -> tuple[int, int]:
    """Reset failed reports and reports stuck in processing. Returns (failed, stuck)."""

    cutoff = _stuck_cutoff(stuck_minutes=stuck_minutes, now=now)
    failed = await session.execute(
        update(Report)
        .where(Report.parsing_status == "failed")
        .values(**_RESET_VALUES)
        .execution_options(synchronize_session=False)
    )
    stuck = await session.execute(
        update(Report)
        .where(
            Report.parsing_status == "processing",
            Report.processing_started_at.is_not(None),
            Report.processing_started_at < cutoff,
        )
        .values(**_RESET_VALUES)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    counts = (int(failed.rowcount or 0), int(stuck.rowcount or 0))
    logger.info("Processing reset", extra={"success": True})
    return counts


async def processing_queue(
    *, session: AsyncSession, stuck_minutes: int, now: datetime | None = None
) -> dict[str, int]:
    stmt = select(Report.parsing_status, func.count(Report.id)).group_by(Report.parsing_status)
    counts = {status: 0 for status in ("pending", "processing", "completed", "failed")}
    for status, count in (await session.execute(stmt)).all():
        counts[status] = int(count)

    cutoff = _stuck_cutoff(stuck_minutes=stuck_minutes, now=now)
    stuck_stmt = select(func.count(Report.id)).where(
        Report.parsing_status == "processing",
        Report.processing_started_at.is_not(None),
        Report.processing_started_at < cutoff,
    )
    counts["stuck"] = int((await session.execute(stuck_stmt)).scalar_one())
    return counts
