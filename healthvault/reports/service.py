from __future__ import annotations

import hashlib
import logging
import uuid
from datetime import date
from typing import Any

from sqlalchemy import Select, and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from healthvault.audit.service import record_audit
from healthvault.domain.exceptions import BusinessValidationError
from healthvault.family_members.models import FamilyMember
from healthvault.prescriptions.models import Prescription
from healthvault.reports.cursor_pagination import (
    ReportCursor,
    decode_report_cursor,
    encode_report_cursor,
)
from healthvault.reports.models import Report
from healthvault.storage.local import (
    MEDICAL_DOCUMENTS_BUCKET,
    LocalFileStorage,
    StorageIOError,
    StorageNotFoundError,
    StoredFile,
)

logger = logging.getLogger("healthvault.reports")


async def _ensure_family_member_owned(
    *, session: AsyncSession, user_id: uuid.UUID, family_member_id: uuid.UUID | None
) -> None:
    if family_member_id is None:
        return
    member = await session.get(FamilyMember, family_member_id)
    if member is None or member.user_id != user_id:
        raise BusinessValidationError(
            "family_member_id does not reference one of your family members."
        )


async def create_report(
    *,
    session: AsyncSession,
    user_id: uuid.UUID,
    report_id: uuid.UUID,
    title: str,
    report_type: str,
    report_date: date | None,
    description: str | None,
    family_member_id: uuid.UUID | None,
    file_name: str | None,
    content_mime_type: str,
    stored_file: StoredFile,
) -> Report:
    await _ensure_family_member_owned(
        session=session, user_id=user_id, family_member_id=family_member_id
    )
    report = Report(
        id=report_id,
        user_id=user_id,
        family_member_id=family_member_id,
        title=title,
        report_type=report_type,
        report_date=report_date,
        description=description,
        tags=[],
        is_critical=False,
        file_name=file_name,
        file_path=stored_file.key,
        file_size=stored_file.size_bytes,
        content_mime_type=content_mime_type,
        checksum_sha256=stored_file.sha256_hex,
        parsing_status="pending",
        progress_percentage=0,
        retry_count=0,
    )
    session.add(report)
    record_audit(
        session=session,
        user_id=user_id,
        action="report.uploaded",
        resource_type="report",
        resource_id=report_id,
        details={"size_bytes": stored_file.size_bytes, "mime_type": content_mime_type},
    )
    await session.commit()
    await session.refresh(report)
    return report


def _apply_report_filters(
    *,
    stmt: Select[tuple[Report]],
    parsing_status: str | None,
    report_type: str | None,
    family_member_id: uuid.UUID | None,
    is_critical: bool | None,
    q: str | None,
) -> Select[tuple[Report]]:
    if parsing_status:
        stmt = stmt.where(Report.parsing_status == parsing_status)
    if report_type:
        stmt = stmt.where(Report.report_type == report_type)
    if family_member_id:
        stmt = stmt.where(Report.family_member_id == family_member_id)
    if is_critical is not None:
        stmt = stmt.where(Report.is_critical.is_(is_critical))
    if q:
        normalized = q.strip().lower()
        if normalized:
            stmt = stmt.where(
                or_(
                    func.lower(Report.title).contains(normalized),
                    func.lower(Report.physician_name).contains(normalized),
                    func.lower(Report.facility_name).contains(normalized),
                )
            )
    return stmt


async def list_reports(
    *,
    session: AsyncSession,
    user_id: uuid.UUID,
    limit: int,
    cursor: str | None = None,
    parsing_status: str | None = None,
    report_type: str | None = None,
    family_member_id: uuid.UUID | None = None,
    is_critical: bool | None = None,
    q: str | None = None,
) -> tuple[list[Report], str | None]:
    stmt = select(Report).where(Report.user_id == user_id)
    stmt = _apply_report_filters(
        stmt=stmt,
        parsing_status=parsing_status,
        report_type=report_type,
        family_member_id=family_member_id,
        is_critical=is_critical,
        q=q,
    )

    if cursor:
        decoded = decode_report_cursor(raw=cursor)
        if decoded.user_id != user_id:
            raise ValueError("Invalid cursor")
        stmt = stmt.where(
            or_(
                Report.created_at < decoded.last_created_at,
                and_(Report.created_at == decoded.last_created_at, Report.id < decoded.last_id),
            )
        )

    stmt = stmt.order_by(Report.created_at.desc(), Report.id.desc()).limit(limit + 1)
    fetched = (await session.execute(stmt)).scalars().all()
    has_more = len(fetched) > limit
    items = list(fetched[:limit])

    next_cursor: str | None = None
    if has_more and items:
        last = items[-1]
        next_cursor = encode_report_cursor(
            cursor=ReportCursor(
                user_id=user_id, last_created_at=last.created_at, last_id=last.id
            )
        )
    return items, next_cursor


async def get_report(
    *, session: AsyncSession, user_id: uuid.UUID, report_id: uuid.UUID
) -> Report | None:
    report = await session.get(Report, report_id)
    if report is None or report.user_id != user_id:
        return None
    return report


async def get_report_any_user(*, session: AsyncSession, report_id: uuid.UUID) -> Report | None:
    return await session.get(Report, report_id)


async def update_report(
    *, session: AsyncSession, report: Report, changes: dict[str, Any]
) -> Report:
    if "title" in changes and changes["title"] is None:
        raise BusinessValidationError("title must not be null.")
    if "report_type" in changes and changes["report_type"] is None:
        raise BusinessValidationError("report_type must not be null.")
    if "family_member_id" in changes:
        await _ensure_family_member_owned(
            session=session,
            user_id=report.user_id,
            family_member_id=changes["family_member_id"],
        )
    if "tags" in changes:
        changes["tags"] = list(changes["tags"] or [])
    if "is_critical" in changes and changes["is_critical"] is None:
        changes["is_critical"] = False

    for field, value in changes.items():
        setattr(report, field, value)

    await session.commit()
    await session.refresh(report)
    return report


async def delete_report(
    *, session: AsyncSession, storage: LocalFileStorage, report: Report
) -> None:
    """
    Remove the stored file (best-effort) and then the row.

    A file that cannot be removed is logged and left behind; the consistency checker no
    longer sees it because the row is gone.
    """

    if report.file_path:
        try:
            await storage.delete(bucket=MEDICAL_DOCUMENTS_BUCKET, key=report.file_path)
        except StorageIOError as exc:
            logger.warning(
                "Report file removal failed",
                extra={
                    "report_id": str(report.id),
                    "error": exc.__class__.__name__,
                    "success": False,
                },
            )

    report_id = report.id
    user_id = report.user_id
    await session.execute(
        update(Prescription)
        .where(Prescription.report_id == report_id)
        .values(report_id=None)
        .execution_options(synchronize_session=False)
    )
    await session.delete(report)
    record_audit(
        session=session,
        user_id=user_id,
        action="report.deleted",
        resource_type="report",
        resource_id=report_id,
    )
    await session.commit()


async def read_report_file(*, storage: LocalFileStorage, report: Report) -> bytes:
    """Raises StorageNotFoundError when the report has no file or it is gone."""

    if not report.file_path:
        raise StorageNotFoundError("Report has no file")
    return await storage.download(bucket=MEDICAL_DOCUMENTS_BUCKET, key=report.file_path)


async def mark_report_for_reupload(*, session: AsyncSession, report: Report) -> Report:
    """Clear the file reference and derived results so a new file can be attached."""

    report.file_path = None
    report.file_size = None
    report.checksum_sha256 = None
    report.parsing_status = "pending"
    report.processing_phase = None
    report.progress_percentage = 0
    report.processing_error = None
    report.extracted_text = None
    report.parsed_data = None
    report.parsing_confidence = None
    report.extraction_confidence = None
    record_audit(
        session=session,
        user_id=report.user_id,
        action="report.marked_for_reupload",
        resource_type="report",
        resource_id=report.id,
    )
    await session.commit()
    await session.refresh(report)
    return report


async def fix_report_file_path(
    *, session: AsyncSession, storage: LocalFileStorage, report: Report, file_path: str
) -> Report:
    key = file_path.strip()
    if not key.startswith(f"{report.user_id}/"):
        raise BusinessValidationError("file_path must point to a file in your own folder.")
    try:
        exists = await storage.exists(bucket=MEDICAL_DOCUMENTS_BUCKET, key=key)
    except StorageIOError:
        exists = False
    if not exists:
        raise BusinessValidationError("file_path does not reference an existing file.")

    data = await storage.download(bucket=MEDICAL_DOCUMENTS_BUCKET, key=key)
    report.file_path = key
    report.file_size = len(data)
    report.checksum_sha256 = hashlib.sha256(data).hexdigest()
    record_audit(
        session=session,
        user_id=report.user_id,
        action="report.file_path_fixed",
        resource_type="report",
        resource_id=report.id,
    )
    await session.commit()
    await session.refresh(report)
    return report
