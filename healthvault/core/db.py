from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import Any

from fastapi import Request
from sqlalchemy import DateTime, MetaData, func
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _create_naming_convention() -> dict[str, str]:
    return {
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_name)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }


metadata_obj = MetaData(naming_convention=_create_naming_convention())


class Base(DeclarativeBase):
    metadata = metadata_obj


def utcnow() -> datetime:
    return datetime.now(UTC)


class TimestampMixin:
    # Python-side defaults keep microsecond precision (keyset cursors compare on created_at).
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )


def create_engine(*, database_url: str) -> AsyncEngine:
    return create_async_engine(database_url, pool_pre_ping=True)


def create_sessionmaker(*, engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


def init_db(*, app: Any, database_url: str) -> None:
    engine = create_engine(database_url=database_url)
    app.state.db_engine = engine
    app.state.db_sessionmaker = create_sessionmaker(engine=engine)


async def close_db(*, app: Any) -> None:
    engine: AsyncEngine | None = getattr(app.state, "db_engine", None)
    if engine is None:
        return
    await engine.dispose()


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    sessionmaker: async_sessionmaker[AsyncSession] = request.app.state.db_sessionmaker
    async with sessionmaker() as session:
        yield session


def import_all_models() -> None:
    """Import every model module so `Base.metadata` is fully populated."""

    from healthvault.audit import models as _audit  # noqa: F401
    from healthvault.doctor_notes import models as _doctor_notes  # noqa: F401
    from healthvault.emergency import models as _emergency  # noqa: F401
    from healthvault.family_members import models as _family  # noqa: F401
    from healthvault.notifications import models as _notifications  # noqa: F401
    from healthvault.prescriptions import models as _prescriptions  # noqa: F401
    from healthvault.quota import models as _quota  # noqa: F401
    from healthvault.reports import models as _reports  # noqa: F401
    from healthvault.summaries import models as _summaries  # noqa: F401
