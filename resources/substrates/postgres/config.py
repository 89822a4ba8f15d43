"""Configuration model for shared Postgres substrate access."""

from __future__ import annotations

from typing import Literal
from urllib.parse import quote_plus

from pydantic import BaseModel, ConfigDict, Field, model_validator

from packages.backoffice_shared.config import (
    BackofficeSettings,
    resolve_component_settings,
)

RESOURCE_COMPONENT_ID = "substrate_postgres"


class PostgresSettings(BaseModel):
    """Runtime settings for constructing Postgres engines and pools.

    ``url`` wins when set; otherwise it is assembled from the split
    host/port/database/user/password values.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    url: str = ""
    host: str = "postgres"
    port: int = Field(default=5432, gt=0)
    database: str = "backoffice"
    user: str = "backoffice"
    password: str = "backoffice"
    pool_size: int = Field(default=5, gt=0)
    max_overflow: int = Field(default=10, ge=0)
    pool_timeout_seconds: float = Field(default=30.0, gt=0)
    pool_pre_ping: bool = True
    connect_timeout_seconds: float = Field(default=10.0, gt=0)
    sslmode: Literal[
        "disable", "allow", "prefer", "require", "verify-ca", "verify-full"
    ] = "prefer"

    @model_validator(mode="after")
    def _require_url_parts(self) -> "PostgresSettings":
        """Require connection parts whenever ``url`` is left unset."""
        if self.url.strip():
            return self
        for name in ("host", "database", "user"):
            if not getattr(self, name).strip():
                raise ValueError(f"postgres.{name} is required when postgres.url is unset")
        return self

    @property
    def dsn(self) -> str:
        """Return the SQLAlchemy URL used to build engines."""
        if self.url.strip():
            return self.url.strip()
        return (
            "postgresql+psycopg://"
            f"{quote_plus(self.user)}:{quote_plus(self.password)}"
            f"@{self.host}:{self.port}/{quote_plus(self.database)}"
        )


def resolve_postgres_settings(settings: BackofficeSettings) -> PostgresSettings:
    """Resolve Postgres settings from ``components.substrate.postgres``."""
    return resolve_component_settings(
        settings=settings,
        component_id=RESOURCE_COMPONENT_ID,
        model=PostgresSettings,
    )
