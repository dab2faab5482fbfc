from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from healthvault.notifications.models import Notification

logger = logging.getLogger("healthvault.notifications")

LIST_LIMIT = 50


def _not_expired(now: datetime):
    return or_(Notification.expires_at.is_(None), Notification.expires_at > now)


def _build_notification(
    *,
    user_id: uuid.UUID,
    title: str,
    message: str,
    type: str,
    category: str,
    metadata: dict[str, Any] | None,
) -> Notification:
    return Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=type,
        category=category,
        is_read=False,
        priority=0,
        metadata_=metadata or {},
    )


async def notify(
    *,
    session: AsyncSession,
    user_id: uuid.UUID,
    title: str,
    message: str,
    type: str = "info",
    category: str = "general",
    metadata: dict[str, Any] | None = None,
) -> Notification | None:
    """
    Create a notification; failures are logged and never propagate to the caller.

    The insert runs in a SAVEPOINT so a failure rolls back only the notification. Rows
    the caller already loaded stay usable.
    """

    notification = _build_notification(
        user_id=user_id,
        title=title,
        message=message,
        type=type,
        category=category,
        metadata=metadata,
    )
    try:
        async with session.begin_nested():
            session.add(notification)
        await session.commit()
    except SQLAlchemyError as exc:
        logger.warning(
            "Notification could not be created",
            extra={"error": exc.__class__.__name__, "success": False},
        )
        return None
    return notification


async def list_notifications(
    *, session: AsyncSession, user_id: uuid.UUID, unread_only: bool = False
) -> list[Notification]:
    now = datetime.now(UTC)
    stmt = select(Notification).where(Notification.user_id == user_id, _not_expired(now))
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(LIST_LIMIT)
    return list((await session.execute(stmt)).scalars().all())


async def unread_count(*, session: AsyncSession, user_id: uuid.UUID) -> int:
    now = datetime.now(UTC)
    stmt = select(func.count(Notification.id)).where(
        Notification.user_id == user_id,
        Notification.is_read.is_(False),
        _not_expired(now),
    )
    return int((await session.execute(stmt)).scalar_one())


async def get_notification(
    *, session: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID
) -> Notification | None:
    notification = await session.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        return None
    return notification


async def mark_read(*, session: AsyncSession, notification: Notification) -> Notification:
    notification.is_read = True
    await session.commit()
    await session.refresh(notification)
    return notification


async def mark_all_read(*, session: AsyncSession, user_id: uuid.UUID) -> int:
    result = await session.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    return int(result.rowcount or 0)


async def delete_notification(*, session: AsyncSession, notification: Notification) -> None:
    await session.execute(delete(Notification).where(Notification.id == notification.id))
    await session.commit()
