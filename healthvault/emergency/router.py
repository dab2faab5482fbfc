from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from healthvault.api.deps import get_current_user_id
from healthvault.core.db import get_session
from healthvault.emergency.models import EmergencyContact, SosActivation
from healthvault.emergency.schemas import (
    EmergencyContactCreate,
    EmergencyContactOut,
    EmergencyContactUpdate,
    SosActivationOut,
    SosTriggerIn,
)
from healthvault.emergency.service import (
    cancel_sos,
    complete_sos,
    create_emergency_contact,
    delete_emergency_contact,
    get_emergency_contact,
    get_sos_activation,
    list_emergency_contacts,
    list_sos_activations,
    trigger_sos,
    update_emergency_contact,
)

contacts_router = APIRouter(prefix="/emergency-contacts", tags=["emergency"])
sos_router = APIRouter(prefix="/sos", tags=["emergency"])


async def _get_owned_contact(
    *, session: AsyncSession, user_id: uuid.UUID, contact_id: uuid.UUID
) -> EmergencyContact:
    contact = await get_emergency_contact(session=session, user_id=user_id, contact_id=contact_id)
    if contact is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Emergency contact not found"
        )
    return contact


async def _get_owned_activation(
    *, session: AsyncSession, user_id: uuid.UUID, activation_id: uuid.UUID
) -> SosActivation:
    activation = await get_sos_activation(
        session=session, user_id=user_id, activation_id=activation_id
    )
    if activation is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="SOS activation not found"
        )
    return activation


@contacts_router.get("", response_model=list[EmergencyContactOut])
async def get_emergency_contacts(
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> list[EmergencyContactOut]:
    contacts = await list_emergency_contacts(session=session, user_id=user_id)
    return [EmergencyContactOut.model_validate(c) for c in contacts]


@contacts_router.post("", status_code=status.HTTP_201_CREATED, response_model=EmergencyContactOut)
async def post_emergency_contact(
    payload: EmergencyContactCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> EmergencyContactOut:
    contact = await create_emergency_contact(
        session=session, user_id=user_id, fields=payload.model_dump()
    )
    return EmergencyContactOut.model_validate(contact)


@contacts_router.patch("/{contact_id}", response_model=EmergencyContactOut)
async def patch_emergency_contact(
    contact_id: uuid.UUID,
    payload: EmergencyContactUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> EmergencyContactOut:
    contact = await _get_owned_contact(session=session, user_id=user_id, contact_id=contact_id)
    updated = await update_emergency_contact(
        session=session, contact=contact, changes=payload.model_dump(exclude_unset=True)
    )
    return EmergencyContactOut.model_validate(updated)


@contacts_router.delete(
    "/{contact_id}", status_code=status.HTTP_204_NO_CONTENT, response_model=None
)
async def delete_emergency_contact_by_id(
    contact_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> None:
    contact = await _get_owned_contact(session=session, user_id=user_id, contact_id=contact_id)
    await delete_emergency_contact(session=session, contact=contact)
    return None


@sos_router.post("", status_code=status.HTTP_201_CREATED, response_model=SosActivationOut)
async def post_sos(
    payload: SosTriggerIn,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> SosActivationOut:
    activation = await trigger_sos(
        session=session, user_id=user_id, location_data=payload.location_data
    )
    return SosActivationOut.model_validate(activation)


@sos_router.get("", response_model=list[SosActivationOut])
async def get_sos_activations(
    limit: int = Query(default=20, ge=1, le=100),
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> list[SosActivationOut]:
    rows = await list_sos_activations(session=session, user_id=user_id, limit=limit)
    return [SosActivationOut.model_validate(r) for r in rows]


@sos_router.post("/{activation_id}/cancel", response_model=SosActivationOut)
async def post_sos_cancel(
    activation_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> SosActivationOut:
    activation = await _get_owned_activation(
        session=session, user_id=user_id, activation_id=activation_id
    )
    return SosActivationOut.model_validate(await cancel_sos(session=session, activation=activation))


@sos_router.post("/{activation_id}/complete", response_model=SosActivationOut)
async def post_sos_complete(
    activation_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> SosActivationOut:
    activation = await _get_owned_activation(
        session=session, user_id=user_id, activation_id=activation_id
    )
    return SosActivationOut.model_validate(
        await complete_sos(session=session, activation=activation)
    )
