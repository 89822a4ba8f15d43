"""Entity-audit-owned Postgres runtime wiring."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from packages.backoffice_shared.config import BackofficeSettings
from resources.substrates.postgres import (
    ServiceSchemaSessionProvider,
    create_postgres_engine,
    create_session_factory,
    resolve_postgres_settings,
)
from services.state.entity_audit.component import SERVICE_SCHEMA_NAME
from services.state.entity_audit.config import EntityAuditSettings


@dataclass(frozen=True)
class EntityAuditPostgresRuntime:
    """Concrete handle for schema-scoped access to the audit tables."""

    engine: Engine
    session_factory: sessionmaker[Session]
    schema_sessions: ServiceSchemaSessionProvider

    @classmethod
    def from_settings(
        cls,
        settings: BackofficeSettings,
        *,
        service_settings: EntityAuditSettings,
    ) -> "EntityAuditPostgresRuntime":
        """Build the DB runtime from typed application settings."""
        return cls.from_engine(
            create_postgres_engine(resolve_postgres_settings(settings)),
            service_settings=service_settings,
        )

    @classmethod
    def from_engine(
        cls, engine: Engine, *, service_settings: EntityAuditSettings
    ) -> "EntityAuditPostgresRuntime":
        """Wrap an existing engine, applying the configured wait bounds."""
        session_factory = create_session_factory(engine)
        return cls(
            engine=engine,
            session_factory=session_factory,
            schema_sessions=ServiceSchemaSessionProvider(
                session_factory=session_factory,
                schema=SERVICE_SCHEMA_NAME,
                lock_timeout_seconds=service_settings.lock_timeout_seconds,
                statement_timeout_seconds=service_settings.statement_timeout_seconds,
            ),
        )
