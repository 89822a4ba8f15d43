"""Schema provisioning and Alembic upgrade for the Entity Audit Service."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from alembic import command
from alembic.config import Config

from packages.backoffice_shared.config import BackofficeSettings, load_settings
from packages.backoffice_shared.logging import configure_logging_from_settings, get_logger
from resources.substrates.postgres.bootstrap import bootstrap_service_schemas
from resources.substrates.postgres.config import resolve_postgres_settings
from services.state.entity_audit.component import SERVICE_SCHEMA_NAME

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "migrations"

_LOGGER = get_logger(__name__)


class MigrationExecutionError(RuntimeError):
    """Raised when the entity audit migration run fails."""


def alembic_config(settings: BackofficeSettings) -> Config:
    """Return the Alembic config pointed at the configured database."""
    config = Config(str(MIGRATIONS_DIR / "alembic.ini"))
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    config.set_main_option(
        "sqlalchemy.url",
        resolve_postgres_settings(settings).dsn.replace("%", "%%"),
    )
    return config


def run_migrations(
    *,
    settings: BackofficeSettings,
    upgrade_fn: Callable[[Config, str], None] = command.upgrade,
    bootstrap_fn: Callable[..., object] = bootstrap_service_schemas,
) -> Config:
    """Provision the service schema, then upgrade it to the latest revision."""
    bootstrap_fn((SERVICE_SCHEMA_NAME,), settings=settings)
    config = alembic_config(settings)
    try:
        upgrade_fn(config, "head")
    except Exception as exc:
        raise MigrationExecutionError("entity audit migration failed") from exc
    return config


def main() -> None:
    """Configure logging from settings and upgrade the audit schema."""
    settings = load_settings()
    configure_logging_from_settings(settings)
    run_migrations(settings=settings)
    _LOGGER.info("entity audit migrations completed")


if __name__ == "__main__":
    main()
