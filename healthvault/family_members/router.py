from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from healthvault.api.deps import get_current_user_id
from healthvault.core.db import get_session
from healthvault.core.settings import get_settings
from healthvault.family_members.models import FamilyMember
from healthvault.family_members.schemas import (
    FamilyMemberCreate,
    FamilyMemberOut,
    FamilyMemberUpdate,
)
from healthvault.family_members.service import (
    create_family_member,
    delete_family_member,
    get_family_member,
    list_family_members,
    photo_key,
    set_family_member_photo,
    update_family_member,
)
from healthvault.storage.deps import determine_mime_type, get_storage
from healthvault.storage.local import (
    PROFILE_IMAGES_BUCKET,
    LocalFileStorage,
    PayloadTooLargeError,
    StorageIOError,
    StorageNotFoundError,
)

router = APIRouter(prefix="/family-members", tags=["family-members"])


async def _get_owned_member(
    *, session: AsyncSession, user_id: uuid.UUID, member_id: uuid.UUID
) -> FamilyMember:
    member = await get_family_member(session=session, user_id=user_id, member_id=member_id)
    if member is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Family member not found"
        )
    return member


@router.get("", response_model=list[FamilyMemberOut])
async def get_family_members(
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> list[FamilyMemberOut]:
    members = await list_family_members(session=session, user_id=user_id)
    return [FamilyMemberOut.model_validate(m) for m in members]


@router.post("", status_code=status.HTTP_201_CREATED, response_model=FamilyMemberOut)
async def post_family_member(
    payload: FamilyMemberCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> FamilyMemberOut:
    member = await create_family_member(
        session=session, user_id=user_id, fields=payload.model_dump()
    )
    return FamilyMemberOut.model_validate(member)


@router.get("/{member_id}", response_model=FamilyMemberOut)
async def get_family_member_by_id(
    member_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> FamilyMemberOut:
    member = await _get_owned_member(session=session, user_id=user_id, member_id=member_id)
    return FamilyMemberOut.model_validate(member)


@router.patch("/{member_id}", response_model=FamilyMemberOut)
async def patch_family_member(
    member_id: uuid.UUID,
    payload: FamilyMemberUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> FamilyMemberOut:
    member = await _get_owned_member(session=session, user_id=user_id, member_id=member_id)
    updated = await update_family_member(
        session=session, member=member, changes=payload.model_dump(exclude_unset=True)
    )
    return FamilyMemberOut.model_validate(updated)


@router.delete("/{member_id}", status_code=status.HTTP_204_NO_CONTENT, response_model=None)
async def delete_family_member_by_id(
    member_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    storage: LocalFileStorage = Depends(get_storage),
) -> None:
    member = await _get_owned_member(session=session, user_id=user_id, member_id=member_id)
    await delete_family_member(session=session, storage=storage, member=member)
    return None


@router.put("/{member_id}/photo", response_model=FamilyMemberOut)
async def put_family_member_photo(
    member_id: uuid.UUID,
    file: UploadFile = File(...),
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    storage: LocalFileStorage = Depends(get_storage),
) -> FamilyMemberOut:
    member = await _get_owned_member(session=session, user_id=user_id, member_id=member_id)

    settings = get_settings()
    allowed = set(settings.photo_allowed_mime_types)
    mime_type = determine_mime_type(upload=file, allowed=allowed)
    if mime_type not in allowed:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail=f"Unsupported media type: {mime_type}",
        )

    try:
        stored = await storage.save(
            bucket=PROFILE_IMAGES_BUCKET,
            key=photo_key(user_id=user_id, member_id=member.id, mime_type=mime_type),
            upload=file,
            max_bytes=settings.max_upload_bytes,
        )
    except PayloadTooLargeError as exc:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="Uploaded file is too large",
        ) from exc
    except StorageIOError as exc:
        raise HTTPException(status_code=500, detail="File storage failed") from exc

    updated = await set_family_member_photo(
        session=session, storage=storage, member=member, stored_file=stored
    )
    return FamilyMemberOut.model_validate(updated)


@router.get("/{member_id}/photo")
async def get_family_member_photo(
    member_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    storage: LocalFileStorage = Depends(get_storage),
) -> Response:
    member = await _get_owned_member(session=session, user_id=user_id, member_id=member_id)
    if not member.photo_url:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Photo not found")
    try:
        data = await storage.download(bucket=PROFILE_IMAGES_BUCKET, key=member.photo_url)
    except StorageNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Photo not found"
        ) from exc
    except StorageIOError as exc:
        raise HTTPException(status_code=500, detail="File retrieval failed") from exc

    media_type = "image/png" if member.photo_url.endswith(".png") else "image/jpeg"
    return Response(content=data, media_type=media_type, headers={"Cache-Control": "no-store"})
