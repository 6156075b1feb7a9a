"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import os
from collections.abc import AsyncIterator, Iterator
from pathlib import Path

import pytest
from prometheus_client import REGISTRY
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from catalink.core.config import reload_settings
from catalink.core.database import create_database_engine, create_session_factory


@pytest.fixture(autouse=True)
def reset_prometheus_registry():
    """Reset Prometheus registry before each test to avoid duplicate metric registration.

    setup_metrics() registers the instrumentator metrics in the global Prometheus
    registry, and creating the app in several tests would register them twice.
    """
    collectors = list(REGISTRY._collector_to_names.keys())
    for collector in collectors:
        REGISTRY.unregister(collector)

    yield

    collectors = list(REGISTRY._collector_to_names.keys())
    for collector in collectors:
        REGISTRY.unregister(collector)


@pytest.fixture(autouse=True)
def isolated_data_dir(tmp_path: Path) -> Iterator[Path]:
    """Point CATALINK_DATA_DIR at a temporary directory for each test."""
    data_dir = tmp_path / "data"
    previous = {key: os.environ.get(key) for key in ("CATALINK_DATA_DIR", "CATALINK_ENV")}
    os.environ["CATALINK_DATA_DIR"] = str(data_dir)
    os.environ["CATALINK_ENV"] = "testing"
    reload_settings()

    yield data_dir

    for key, value in previous.items():
        if value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = value
    reload_settings()


@pytest.fixture
async def session_factory(tmp_path: Path) -> AsyncIterator[async_sessionmaker[SQLModelAsyncSession]]:
    """Session factory bound to a fresh temporary SQLite database."""
    engine = create_database_engine(tmp_path / "test.db", echo=False)

    from catalink.db.models import metadata

    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    yield create_session_factory(engine)

    await engine.dispose()


@pytest.fixture
async def session(
    session_factory: async_sessionmaker[SQLModelAsyncSession],
) -> AsyncIterator[SQLModelAsyncSession]:
    """Create a database session for testing."""
    async with session_factory() as session:
        yield session
