from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from healthvault.api.deps import get_current_user_id
from healthvault.core.db import get_session
from healthvault.notifications.schemas import (
    MarkAllReadOut,
    NotificationListOut,
    NotificationOut,
    UnreadCountOut,
)
from healthvault.notifications.service import (
    delete_notification,
    get_notification,
    list_notifications,
    mark_all_read,
    mark_read,
    unread_count,
)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListOut)
async def get_notifications(
    unread_only: bool = Query(default=False),
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> NotificationListOut:
    items = await list_notifications(session=session, user_id=user_id, unread_only=unread_only)
    count = await unread_count(session=session, user_id=user_id)
    return NotificationListOut(
        items=[NotificationOut.model_validate(n) for n in items], unread_count=count
    )


@router.get("/unread-count", response_model=UnreadCountOut)
async def get_unread_count(
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> UnreadCountOut:
    return UnreadCountOut(unread_count=await unread_count(session=session, user_id=user_id))


@router.post("/read-all", response_model=MarkAllReadOut)
async def post_mark_all_read(
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> MarkAllReadOut:
    return MarkAllReadOut(updated=await mark_all_read(session=session, user_id=user_id))


@router.post("/{notification_id}/read", response_model=NotificationOut)
async def post_mark_read(
    notification_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> NotificationOut:
    notification = await get_notification(
        session=session, user_id=user_id, notification_id=notification_id
    )
    if notification is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    notification = await mark_read(session=session, notification=notification)
    return NotificationOut.model_validate(notification)


@router.delete(
    "/{notification_id}", status_code=status.HTTP_204_NO_CONTENT, response_model=None
)
async def delete_notification_by_id(
    notification_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> None:
    notification = await get_notification(
        session=session, user_id=user_id, notification_id=notification_id
    )
    if notification is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    await delete_notification(session=session, notification=notification)
    return None
