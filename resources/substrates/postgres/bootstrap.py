"""Pre-migration bootstrap for service-owned schemas."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import Engine, text

from packages.backoffice_shared.config import BackofficeSettings, load_settings
from resources.substrates.postgres.config import resolve_postgres_settings
from resources.substrates.postgres.engine import create_postgres_engine


@dataclass(frozen=True)
class BootstrapResult:
    """Summary of pre-migration bootstrap actions."""

    provisioned_schemas: tuple[str, ...]


def bootstrap_service_schemas(
    schemas: Iterable[str],
    *,
    settings: BackofficeSettings | None = None,
    engine: Engine | None = None,
) -> BootstrapResult:
    """Create each named schema when missing.

    Non-Postgres engines have no schemas to provision and report none.
    """
    owned_engine = engine is None
    if engine is None:
        resolved = load_settings() if settings is None else settings
        engine = create_postgres_engine(resolve_postgres_settings(resolved))
    try:
        if engine.dialect.name != "postgresql":
            return BootstrapResult(provisioned_schemas=())
        provisioned: list[str] = []
        with engine.begin() as connection:
            for schema in schemas:
                if not schema.replace("_", "").isalnum():
                    raise ValueError(f"invalid schema name: {schema!r}")
                connection.execute(text(f"CREATE SCHEMA IF NOT EXISTS {schema}"))
                provisioned.append(schema)
    finally:
        if owned_engine:
            engine.dispose()
    return BootstrapResult(provisioned_schemas=tuple(provisioned))
