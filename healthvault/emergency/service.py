"""Emergency contacts and SOS activations.

An activation starts as `triggered` and moves exactly once, to `cancelled` or
`completed`. Completing an activation marks the SMS fan-out as sent.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from healthvault.domain.exceptions import BusinessValidationError, ConflictError
from healthvault.emergency.models import EmergencyContact, SosActivation
from healthvault.notifications.service import notify

logger = logging.getLogger("healthvault.emergency")

SOS_TRIGGERED = "triggered"
SOS_CANCELLED = "cancelled"
SOS_COMPLETED = "completed"


async def list_emergency_contacts(
    *, session: AsyncSession, user_id: uuid.UUID
) -> list[EmergencyContact]:
    stmt = (
        select(EmergencyContact)
        .where(EmergencyContact.user_id == user_id)
        .order_by(EmergencyContact.priority.asc(), EmergencyContact.created_at.asc())
    )
    return list((await session.execute(stmt)).scalars().all())


async def get_emergency_contact(
    *, session: AsyncSession, user_id: uuid.UUID, contact_id: uuid.UUID
) -> EmergencyContact | None:
    contact = await session.get(EmergencyContact, contact_id)
    if contact is None or contact.user_id != user_id:
        return None
    return contact


async def create_emergency_contact(
    *, session: AsyncSession, user_id: uuid.UUID, fields: dict[str, Any]
) -> EmergencyContact:
    data = dict(fields)
    if data.get("priority") is None:
        count_stmt = select(func.count(EmergencyContact.id)).where(
            EmergencyContact.user_id == user_id
        )
        data["priority"] = int((await session.execute(count_stmt)).scalar_one()) + 1
    contact = EmergencyContact(user_id=user_id, **data)
    session.add(contact)
    await session.commit()
    await session.refresh(contact)
    return contact


async def update_emergency_contact(
    *, session: AsyncSession, contact: EmergencyContact, changes: dict[str, Any]
) -> EmergencyContact:
    for field, value in changes.items():
        if value is None:
            raise BusinessValidationError(f"{field} must not be null.")
        setattr(contact, field, value)
    await session.commit()
    await session.refresh(contact)
    return contact


async def delete_emergency_contact(*, session: AsyncSession, contact: EmergencyContact) -> None:
    await session.delete(contact)
    await session.commit()


async def trigger_sos(
    *, session: AsyncSession, user_id: uuid.UUID, location_data: dict[str, Any] | None
) -> SosActivation:
    activation = SosActivation(
        user_id=user_id,
        status=SOS_TRIGGERED,
        triggered_at=datetime.now(UTC),
        location_data=location_data,
        sms_sent=False,
    )
    session.add(activation)
    await session.commit()
    await session.refresh(activation)

    logger.warning(
        "SOS triggered",
        extra={"activation_id": str(activation.id), "success": True},
    )
    await notify(
        session=session,
        user_id=user_id,
        title="SOS Activated",
        message="Emergency alert has been triggered.",
        type="error",
        category="sos",
        metadata={"activation_id": str(activation.id)},
    )
    return activation


async def list_sos_activations(
    *, session: AsyncSession, user_id: uuid.UUID, limit: int = 20
) -> list[SosActivation]:
    stmt = (
        select(SosActivation)
        .where(SosActivation.user_id == user_id)
        .order_by(SosActivation.triggered_at.desc(), SosActivation.id.desc())
        .limit(limit)
    )
    return list((await session.execute(stmt)).scalars().all())


async def get_sos_activation(
    *, session: AsyncSession, user_id: uuid.UUID, activation_id: uuid.UUID
) -> SosActivation | None:
    activation = await session.get(SosActivation, activation_id)
    if activation is None or activation.user_id != user_id:
        return None
    return activation


def _ensure_triggered(activation: SosActivation) -> None:
    if activation.status != SOS_TRIGGERED:
        raise ConflictError(f"SOS activation is already {activation.status}.")


async def cancel_sos(*, session: AsyncSession, activation: SosActivation) -> SosActivation:
    _ensure_triggered(activation)
    activation.status = SOS_CANCELLED
    activation.cancelled_at = datetime.now(UTC)
    await session.commit()
    await session.refresh(activation)

    await notify(
        session=session,
        user_id=activation.user_id,
        title="SOS Cancelled",
        message="Emergency alert has been cancelled.",
        category="sos",
        metadata={"activation_id": str(activation.id)},
    )
    return activation


async def complete_sos(*, session: AsyncSession, activation: SosActivation) -> SosActivation:
    _ensure_triggered(activation)
    activation.status = SOS_COMPLETED
    activation.completed_at = datetime.now(UTC)
    activation.sms_sent = True
    await session.commit()
    await session.refresh(activation)
    return activation
