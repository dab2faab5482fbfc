from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from healthvault.domain.exceptions import BusinessValidationError
from healthvault.family_members.models import FamilyMember
from healthvault.prescriptions.models import Prescription
from healthvault.reports.models import Report
from healthvault.storage.local import (
    PROFILE_IMAGES_BUCKET,
    LocalFileStorage,
    StorageIOError,
    StoredFile,
)

logger = logging.getLogger("healthvault.family")

_PHOTO_EXTENSIONS = {"image/png": ".png", "image/jpeg": ".jpg"}
_REQUIRED_FIELDS = ("first_name", "last_name", "relationship")


def photo_key(*, user_id: uuid.UUID, member_id: uuid.UUID, mime_type: str) -> str:
    return f"{user_id}/{member_id}/{uuid.uuid4()}{_PHOTO_EXTENSIONS.get(mime_type, '')}"


async def list_family_members(
    *, session: AsyncSession, user_id: uuid.UUID
) -> list[FamilyMember]:
    stmt = (
        select(FamilyMember)
        .where(FamilyMember.user_id == user_id)
        .order_by(FamilyMember.created_at.asc(), FamilyMember.id.asc())
    )
    return list((await session.execute(stmt)).scalars().all())


async def get_family_member(
    *, session: AsyncSession, user_id: uuid.UUID, member_id: uuid.UUID
) -> FamilyMember | None:
    member = await session.get(FamilyMember, member_id)
    if member is None or member.user_id != user_id:
        return None
    return member


async def create_family_member(
    *, session: AsyncSession, user_id: uuid.UUID, fields: dict[str, Any]
) -> FamilyMember:
    member = FamilyMember(user_id=user_id, **fields)
    session.add(member)
    await session.commit()
    await session.refresh(member)
    return member


async def update_family_member(
    *, session: AsyncSession, member: FamilyMember, changes: dict[str, Any]
) -> FamilyMember:
    for name in _REQUIRED_FIELDS:
        if name in changes and changes[name] is None:
            raise BusinessValidationError(f"{name} must not be null.")
    for name, value in changes.items():
        setattr(member, name, value)
    await session.commit()
    await session.refresh(member)
    return member


async def _remove_photo(*, storage: LocalFileStorage, key: str) -> None:
    try:
        await storage.delete(bucket=PROFILE_IMAGES_BUCKET, key=key)
    except StorageIOError as exc:
        logger.warning(
            "Profile photo removal failed",
            extra={"error": exc.__class__.__name__, "success": False},
        )


async def set_family_member_photo(
    *,
    session: AsyncSession,
    storage: LocalFileStorage,
    member: FamilyMember,
    stored_file: StoredFile,
) -> FamilyMember:
    previous = member.photo_url
    member.photo_url = stored_file.key
    await session.commit()
    await session.refresh(member)
    if previous and previous != stored_file.key:
        await _remove_photo(storage=storage, key=previous)
    return member


async def delete_family_member(
    *, session: AsyncSession, storage: LocalFileStorage, member: FamilyMember
) -> None:
    """Delete the member; linked reports and prescriptions are kept and unlinked."""

    if member.photo_url:
        await _remove_photo(storage=storage, key=member.photo_url)

    for model in (Report, Prescription):
        await session.execute(
            update(model)
            .where(model.family_member_id == member.id)
            .values(family_member_id=None)
            .execution_options(synchronize_session=False)
        )
    await session.delete(member)
    await session.commit()
