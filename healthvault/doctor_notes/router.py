from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from healthvault.api.deps import get_current_user_id
from healthvault.core.db import get_session
from healthvault.doctor_notes.models import DoctorNote
from healthvault.doctor_notes.schemas import DoctorNoteCreate, DoctorNoteOut, DoctorNoteUpdate
from healthvault.doctor_notes.service import (
    create_doctor_note,
    delete_doctor_note,
    get_doctor_note,
    list_doctor_notes,
    update_doctor_note,
)

router = APIRouter(prefix="/doctor-notes", tags=["doctor-notes"])


async def _get_owned(
    *, session: AsyncSession, user_id: uuid.UUID, note_id: uuid.UUID
) -> DoctorNote:
    note = await get_doctor_note(session=session, user_id=user_id, note_id=note_id)
    if note is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Doctor note not found")
    return note


@router.get("", response_model=list[DoctorNoteOut])
async def get_doctor_notes(
    note_type: str | None = None,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> list[DoctorNoteOut]:
    notes = await list_doctor_notes(session=session, user_id=user_id, note_type=note_type)
    return [DoctorNoteOut.model_validate(n) for n in notes]


@router.post("", status_code=status.HTTP_201_CREATED, response_model=DoctorNoteOut)
async def post_doctor_note(
    payload: DoctorNoteCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> DoctorNoteOut:
    note = await create_doctor_note(session=session, user_id=user_id, fields=payload.model_dump())
    return DoctorNoteOut.model_validate(note)


@router.get("/{note_id}", response_model=DoctorNoteOut)
async def get_doctor_note_by_id(
    note_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> DoctorNoteOut:
    note = await _get_owned(session=session, user_id=user_id, note_id=note_id)
    return DoctorNoteOut.model_validate(note)


@router.patch("/{note_id}", response_model=DoctorNoteOut)
async def patch_doctor_note(
    note_id: uuid.UUID,
    payload: DoctorNoteUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> DoctorNoteOut:
    note = await _get_owned(session=session, user_id=user_id, note_id=note_id)
    updated = await update_doctor_note(
        session=session, note=note, changes=payload.model_dump(exclude_unset=True)
    )
    return DoctorNoteOut.model_validate(updated)


@router.delete("/{note_id}", status_code=status.HTTP_204_NO_CONTENT, response_model=None)
async def delete_doctor_note_by_id(
    note_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> None:
    note = await _get_owned(session=session, user_id=user_id, note_id=note_id)
    await delete_doctor_note(session=session, note=note)
    return None
