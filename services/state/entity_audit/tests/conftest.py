"""Shared SQLite fixtures for Entity Audit repository tests."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.pool import StaticPool

from services.state.entity_audit.config import EntityAuditSettings
from services.state.entity_audit.data import (
    EntityAuditPostgresRuntime,
    SqlEntityAuditStore,
)
from services.state.entity_audit.data.schema import metadata


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    """Provide one in-memory SQLite database with the audit tables."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def file_engine(tmp_path: Path) -> Iterator[Engine]:
    """Provide a file-backed SQLite database allowing several connections."""
    engine = create_engine(f"sqlite:///{tmp_path / 'entity_audit.db'}")
    metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sql_store(sqlite_engine: Engine) -> SqlEntityAuditStore:
    """Provide the SQL audit store over the in-memory database."""
    return _store_for(sqlite_engine)


@pytest.fixture
def store_factory() -> Callable[[Engine], SqlEntityAuditStore]:
    """Provide a builder for SQL audit stores over arbitrary engines."""
    return _store_for


def _store_for(engine: Engine) -> SqlEntityAuditStore:
    runtime = EntityAuditPostgresRuntime.from_engine(
        engine, service_settings=EntityAuditSettings()
    )
    return SqlEntityAuditStore(runtime.schema_sessions)
