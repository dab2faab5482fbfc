from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from healthvault.domain.exceptions import BusinessValidationError
from healthvault.family_members.models import FamilyMember
from healthvault.prescriptions.models import Prescription
from healthvault.reports.models import Report


async def _ensure_links_owned(
    *,
    session: AsyncSession,
    user_id: uuid.UUID,
    report_id: uuid.UUID | None,
    family_member_id: uuid.UUID | None,
) -> None:
    if report_id is not None:
        report = await session.get(Report, report_id)
        if report is None or report.user_id != user_id:
            raise BusinessValidationError("report_id does not reference one of your reports.")
    if family_member_id is not None:
        member = await session.get(FamilyMember, family_member_id)
        if member is None or member.user_id != user_id:
            raise BusinessValidationError(
                "family_member_id does not reference one of your family members."
            )


async def list_prescriptions(
    *,
    session: AsyncSession,
    user_id: uuid.UUID,
    status: str | None = None,
    family_member_id: uuid.UUID | None = None,
) -> list[Prescription]:
    stmt = select(Prescription).where(Prescription.user_id == user_id)
    if status:
        stmt = stmt.where(Prescription.status == status)
    if family_member_id:
        stmt = stmt.where(Prescription.family_member_id == family_member_id)
    stmt = stmt.order_by(Prescription.created_at.desc(), Prescription.id.desc())
    return list((await session.execute(stmt)).scalars().all())


async def get_prescription(
    *, session: AsyncSession, user_id: uuid.UUID, prescription_id: uuid.UUID
) -> Prescription | None:
    prescription = await session.get(Prescription, prescription_id)
    if prescription is None or prescription.user_id != user_id:
        return None
    return prescription


async def create_prescription(
    *, session: AsyncSession, user_id: uuid.UUID, fields: dict[str, Any]
) -> Prescription:
    await _ensure_links_owned(
        session=session,
        user_id=user_id,
        report_id=fields.get("report_id"),
        family_member_id=fields.get("family_member_id"),
    )
    prescription = Prescription(user_id=user_id, **fields)
    session.add(prescription)
    await session.commit()
    await session.refresh(prescription)
    return prescription


async def update_prescription(
    *, session: AsyncSession, prescription: Prescription, changes: dict[str, Any]
) -> Prescription:
    for required in ("medication_name", "status"):
        if required in changes and changes[required] is None:
            raise BusinessValidationError(f"{required} must not be null.")
    await _ensure_links_owned(
        session=session,
        user_id=prescription.user_id,
        report_id=changes.get("report_id"),
        family_member_id=changes.get("family_member_id"),
    )

    start_date = changes.get("start_date", prescription.start_date)
    end_date = changes.get("end_date", prescription.end_date)
    if start_date and end_date and end_date < start_date:
        raise BusinessValidationError("end_date must not be before start_date.")

    for field, value in changes.items():
        setattr(prescription, field, value)

    await session.commit()
    await session.refresh(prescription)
    return prescription


async def delete_prescription(*, session: AsyncSession, prescription: Prescription) -> None:
    await session.delete(prescription)
    await session.commit()
