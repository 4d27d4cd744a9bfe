from __future__ import annotations

import asyncio
from collections.abc import Generator
from pathlib import Path
from types import SimpleNamespace
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from backend.app.core import config
from backend.db import create_engine, create_session_factory, init_db


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def test_client(monkeypatch: pytest.MonkeyPatch) -> Generator[TestClient, None, None]:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setenv("VERSION", "0.1.0-test")

    db_path = Path("data") / f"test_{uuid4().hex}.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{db_path}")
    config.get_settings.cache_clear()

    from backend.app.main import app

    try:
        with TestClient(app) as client:
            client.headers.update({"X-Journal-User": "user-123"})
            yield client
    finally:
        config.get_settings.cache_clear()
        db_path.unlink(missing_ok=True)


@pytest.fixture()
def temp_session_factory(tmp_path: Path):
    db_path = tmp_path / f"unit_{uuid4().hex}.db"
    database_url = f"sqlite+aiosqlite:///{db_path}"
    engine = create_engine(database_url)
    session_factory = create_session_factory(engine)
    asyncio.run(init_db(engine, session_factory, "test", database_url))
    try:
        yield session_factory
    finally:
        asyncio.run(engine.dispose())


@pytest.fixture()
def insight_settings() -> SimpleNamespace:
    return SimpleNamespace(
        openai_model_insights="gpt-4o-mini",
        insights_max_tokens=400,
        insights_generation_timeout_seconds=5.0,
        insights_retry_attempts=1,
        insights_retry_delay_seconds=0,
        insights_max_entry_chars=500,
    )