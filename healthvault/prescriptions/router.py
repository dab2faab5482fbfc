from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from healthvault.api.deps import get_current_user_id
from healthvault.core.db import get_session
from healthvault.prescriptions.models import Prescription
from healthvault.prescriptions.schemas import (
    PrescriptionCreate,
    PrescriptionOut,
    PrescriptionStatus,
    PrescriptionUpdate,
)
from healthvault.prescriptions.service import (
    create_prescription,
    delete_prescription,
    get_prescription,
    list_prescriptions,
    update_prescription,
)

router = APIRouter(prefix="/prescriptions", tags=["prescriptions"])


async def _get_owned(
    *, session: AsyncSession, user_id: uuid.UUID, prescription_id: uuid.UUID
) -> Prescription:
    prescription = await get_prescription(
        session=session, user_id=user_id, prescription_id=prescription_id
    )
    if prescription is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Prescription not found")
    return prescription


@router.get("", response_model=list[PrescriptionOut])
async def get_prescriptions(
    status_filter: PrescriptionStatus | None = Query(default=None, alias="status"),
    family_member_id: uuid.UUID | None = None,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> list[PrescriptionOut]:
    rows = await list_prescriptions(
        session=session,
        user_id=user_id,
        status=status_filter,
        family_member_id=family_member_id,
    )
    return [PrescriptionOut.model_validate(r) for r in rows]


@router.post("", status_code=status.HTTP_201_CREATED, response_model=PrescriptionOut)
async def post_prescription(
    payload: PrescriptionCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> PrescriptionOut:
    prescription = await create_prescription(
        session=session, user_id=user_id, fields=payload.model_dump()
    )
    return PrescriptionOut.model_validate(prescription)


@router.get("/{prescription_id}", response_model=PrescriptionOut)
async def get_prescription_by_id(
    prescription_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> PrescriptionOut:
    prescription = await _get_owned(
        session=session, user_id=user_id, prescription_id=prescription_id
    )
    return PrescriptionOut.model_validate(prescription)


@router.patch("/{prescription_id}", response_model=PrescriptionOut)
async def patch_prescription(
    prescription_id: uuid.UUID,
    payload: PrescriptionUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> PrescriptionOut:
    prescription = await _get_owned(
        session=session, user_id=user_id, prescription_id=prescription_id
    )
    updated = await update_prescription(
        session=session,
        prescription=prescription,
        changes=payload.model_dump(exclude_unset=True),
    )
    return PrescriptionOut.model_validate(updated)


@router.delete(
    "/{prescription_id}", status_code=status.HTTP_204_NO_CONTENT, response_model=None
)
async def delete_prescription_by_id(
    prescription_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> None:
    prescription = await _get_owned(
        session=session, user_id=user_id, prescription_id=prescription_id
    )
    await delete_prescription(session=session, prescription=prescription)
    return None
