"""
File consistency checks between report rows and the medical-documents bucket.

Every report with a file reference gets one download attempt. Failures are classified:

- missing_file: the download failed and the parent folder does not list the file
- access_denied: the download failed but the file is listed
- corrupted_file: the download worked but the bytes no longer match the stored checksum
- invalid_path: anything else (for example a key that escapes the bucket)

Checks run sequentially without retries; one report costs one or two storage calls.
"""

from __future__ import annotations

import hashlib
import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Literal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from healthvault.core.metrics import file_consistency_issues_total
from healthvault.reports.models import Report
from healthvault.storage.local import (
    MEDICAL_DOCUMENTS_BUCKET,
    InvalidStorageKeyError,
    LocalFileStorage,
    StorageIOError,
)

logger = logging.getLogger("healthvault.consistency")

IssueType = Literal["missing_file", "corrupted_file", "invalid_path", "access_denied"]

_ISSUE_LABELS = {
    "missing_file": "File Missing",
    "corrupted_file": "File Corrupted",
    "invalid_path": "Invalid Path",
    "access_denied": "Access Denied",
}


@dataclass(frozen=True)
class ConsistencyIssue:
    report_id: uuid.UUID
    title: str
    file_name: str | None
    file_path: str
    issue_type: IssueType
    can_reupload: bool = True
    alternative_files: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ConsistencyReport:
    total_reports: int
    valid_files: int
    issues: list[ConsistencyIssue]
    checked_at: datetime


async def _classify_download_failure(*, storage: LocalFileStorage, file_path: str) -> IssueType:
    folder, _, name = file_path.rpartition("/")
    try:
        listed = await storage.list_folder(
            bucket=MEDICAL_DOCUMENTS_BUCKET, prefix=folder, search=name
        )
    except StorageIOError:
        return "missing_file"
    return "access_denied" if name in listed else "missing_file"


async def _alternative_files(
    *, storage: LocalFileStorage, user_id: uuid.UUID, exclude: str
) -> list[str]:
    try:
        keys = await storage.list_recursive(bucket=MEDICAL_DOCUMENTS_BUCKET, prefix=str(user_id))
    except StorageIOError:
        return []
    return [k for k in keys if k != exclude]


async def _check_one(*, storage: LocalFileStorage, report: Report) -> IssueType | None:
    file_path = report.file_path or ""
    try:
        data = await storage.download(bucket=MEDICAL_DOCUMENTS_BUCKET, key=file_path)
    except InvalidStorageKeyError:
        return "invalid_path"
    except StorageIOError:
        return await _classify_download_failure(storage=storage, file_path=file_path)

    if report.checksum_sha256 and hashlib.sha256(data).hexdigest() != report.checksum_sha256:
        return "corrupted_file"
    return None


async def check_file_consistency(
    *,
    session: AsyncSession,
    storage: LocalFileStorage,
    user_id: uuid.UUID | None,
    report_id: uuid.UUID | None = None,
) -> ConsistencyReport:
    """
    Check reports that reference a file. `user_id=None` checks every user (admin use);
    `report_id` narrows the check to one report.
    """

    stmt = select(Report).where(Report.file_path.is_not(None))
    if user_id is not None:
        stmt = stmt.where(Report.user_id == user_id)
    if report_id is not None:
        stmt = stmt.where(Report.id == report_id)
    stmt = stmt.order_by(Report.created_at.asc(), Report.id.asc())
    reports = list((await session.execute(stmt)).scalars().all())

    issues: list[ConsistencyIssue] = []
    valid = 0
    for report in reports:
        issue_type = await _check_one(storage=storage, report=report)
        if issue_type is None:
            valid += 1
            continue

        file_consistency_issues_total.labels(issue_type=issue_type).inc()
        alternatives: list[str] = []
        if issue_type != "invalid_path":
            alternatives = await _alternative_files(
                storage=storage, user_id=report.user_id, exclude=report.file_path or ""
            )
        issues.append(
            ConsistencyIssue(
                report_id=report.id,
                title=report.title,
                file_name=report.file_name,
                file_path=report.file_path or "",
                issue_type=issue_type,
                can_reupload=True,
                alternative_files=alternatives,
            )
        )

    logger.info(
        "File consistency check complete",
        extra={"success": not issues},
    )
    return ConsistencyReport(
        total_reports=len(reports),
        valid_files=valid,
        issues=issues,
        checked_at=datetime.now(UTC),
    )


def generate_consistency_report(report: ConsistencyReport) -> str:
    """Plain-text rendering of a check result (for downloads and the ops script)."""

    lines = [
        f"File Consistency Report - {report.checked_at.isoformat(timespec='seconds')}",
        "=" * 50,
        "",
        f"Total Reports Checked: {report.total_reports}",
        f"Valid Files: {report.valid_files}",
        f"Issues Found: {len(report.issues)}",
        "",
    ]

    if report.issues:
        lines.append("Issues Details:")
        lines.append("-" * 30)
        for index, issue in enumerate(report.issues, start=1):
            lines.append(f"{index}. {issue.title}")
            lines.append(f"   File: {issue.file_name or '-'}")
            lines.append(f"   Issue: {_ISSUE_LABELS[issue.issue_type]}")
            lines.append(f"   Can Re-upload: {'Yes' if issue.can_reupload else 'No'}")
            if issue.alternative_files:
                lines.append(f"   Alternative Files: {len(issue.alternative_files)}")
            lines.append("")

    return "\n".join(lines)
