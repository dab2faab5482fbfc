from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from healthvault.doctor_notes.models import DoctorNote
from healthvault.domain.exceptions import BusinessValidationError
from healthvault.reports.models import Report


async def _ensure_reports_owned(
    *, session: AsyncSession, user_id: uuid.UUID, report_ids: list[uuid.UUID]
) -> list[str]:
    unique_ids = list(dict.fromkeys(report_ids))
    if not unique_ids:
        return []
    stmt = select(Report.id).where(Report.id.in_(unique_ids), Report.user_id == user_id)
    found = set((await session.execute(stmt)).scalars().all())
    if len(found) != len(unique_ids):
        raise BusinessValidationError(
            "related_report_ids must only reference your own reports."
        )
    return [str(rid) for rid in unique_ids]


async def list_doctor_notes(
    *, session: AsyncSession, user_id: uuid.UUID, note_type: str | None = None
) -> list[DoctorNote]:
    stmt = select(DoctorNote).where(DoctorNote.user_id == user_id)
    if note_type:
        stmt = stmt.where(DoctorNote.note_type == note_type)
    stmt = stmt.order_by(DoctorNote.note_date.desc(), DoctorNote.created_at.desc())
    return list((await session.execute(stmt)).scalars().all())


async def get_doctor_note(
    *, session: AsyncSession, user_id: uuid.UUID, note_id: uuid.UUID
) -> DoctorNote | None:
    note = await session.get(DoctorNote, note_id)
    if note is None or note.user_id != user_id:
        return None
    return note


async def create_doctor_note(
    *, session: AsyncSession, user_id: uuid.UUID, fields: dict[str, Any]
) -> DoctorNote:
    data = dict(fields)
    data["related_report_ids"] = await _ensure_reports_owned(
        session=session, user_id=user_id, report_ids=data.get("related_report_ids") or []
    )
    if data.get("note_date") is None:
        data["note_date"] = datetime.now(UTC).date()
    note = DoctorNote(user_id=user_id, **data)
    session.add(note)
    await session.commit()
    await session.refresh(note)
    return note


async def update_doctor_note(
    *, session: AsyncSession, note: DoctorNote, changes: dict[str, Any]
) -> DoctorNote:
    for required in ("title", "note_type", "note_date"):
        if required in changes and changes[required] is None:
            raise BusinessValidationError(f"{required} must not be null.")
    if "related_report_ids" in changes:
        changes["related_report_ids"] = await _ensure_reports_owned(
            session=session,
            user_id=note.user_id,
            report_ids=changes["related_report_ids"] or [],
        )
    if "tags" in changes:
        changes["tags"] = list(changes["tags"] or [])

    for field, value in changes.items():
        setattr(note, field, value)

    await session.commit()
    await session.refresh(note)
    return note


async def delete_doctor_note(*, session: AsyncSession, note: DoctorNote) -> None:
    await session.delete(note)
    await session.commit()
