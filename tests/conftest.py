from __future__ import annotations

import asyncio

import pytest

from healthvault.core.db import Base, create_engine, import_all_models
from tests._helpers import ADMIN_KEY, SERVICE_KEY


@pytest.fixture()
def database_url(tmp_path) -> str:
    db_file = tmp_path / "test.sqlite3"
    return f"sqlite+aiosqlite:///{db_file}"


@pytest.fixture()
def storage_dir(tmp_path):
    return tmp_path / "storage"


@pytest.fixture(autouse=True)
def _set_test_environment(database_url: str, storage_dir, monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", database_url)
    monkeypatch.setenv("LOCAL_STORAGE_BASE_PATH", str(storage_dir))
    monkeypatch.setenv("ADMIN_API_KEY", ADMIN_KEY)
    monkeypatch.setenv("SERVICE_API_KEY", SERVICE_KEY)
    monkeypatch.setenv("PROCESSING_RETRY_BASE_SECONDS", "0")
    monkeypatch.setenv("PROCESSING_POLL_INTERVAL_SECONDS", "0.01")
    for name in ("OPENAI_API_KEY", "FUNCTIONS_BASE_URL"):
        monkeypatch.delenv(name, raising=False)
    # Settings are cached via @lru_cache; clear so each test sees its own environment.
    from healthvault.core.settings import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _create_test_schema(database_url: str) -> None:
    async def run() -> None:
        import_all_models()
        engine = create_engine(database_url=database_url)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        await engine.dispose()

    asyncio.run(run())


@pytest.fixture
def client():
    from fastapi.testclient import TestClient

    from healthvault.main import create_app

    app = create_app()
    with TestClient(app) as c:
        yield c


@pytest.fixture
def failing_notifications(monkeypatch):
    """Every notification insert violates the NOT NULL constraint on `title`."""
    from healthvault.notifications import service as notifications_service

    build = notifications_service._build_notification

    def _without_title(**kwargs):
        notification = build(**kwargs)
        notification.title = None
        return notification

    monkeypatch.setattr(notifications_service, "_build_notification", _without_title)
