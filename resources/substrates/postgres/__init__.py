"""Shared Postgres substrate primitives for back-office services."""

from resources.substrates.postgres.bootstrap import (
    BootstrapResult,
    bootstrap_service_schemas,
)
from resources.substrates.postgres.config import (
    RESOURCE_COMPONENT_ID,
    PostgresSettings,
    resolve_postgres_settings,
)
from resources.substrates.postgres.engine import create_postgres_engine
from resources.substrates.postgres.errors import (
    is_timeout_error,
    is_unique_violation,
    normalize_postgres_error,
)
from resources.substrates.postgres.schema_session import ServiceSchemaSessionProvider
from resources.substrates.postgres.session import (
    create_session_factory,
    transactional_session,
)

__all__ = [
    "BootstrapResult",
    "PostgresSettings",
    "RESOURCE_COMPONENT_ID",
    "ServiceSchemaSessionProvider",
    "bootstrap_service_schemas",
    "create_postgres_engine",
    "create_session_factory",
    "is_timeout_error",
    "is_unique_violation",
    "normalize_postgres_error",
    "resolve_postgres_settings",
    "transactional_session",
]
