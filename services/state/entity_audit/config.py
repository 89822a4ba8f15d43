"""Pydantic settings for Entity Audit Service behavior."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from packages.backoffice_shared.config import (
    BackofficeSettings,
    resolve_component_settings,
)
from services.state.entity_audit.component import SERVICE_COMPONENT_ID


class EntityAuditSettings(BaseModel):
    """Entity Audit Service runtime behavior settings."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    default_page_size: int = Field(default=20, gt=0)
    max_page_size: int = Field(default=200, gt=0)
    oversized_page_policy: Literal["clamp", "reject"] = "clamp"
    lock_timeout_seconds: float = Field(default=5.0, gt=0)
    statement_timeout_seconds: float = Field(default=30.0, gt=0)
    max_label_length: int = Field(default=200, gt=0)
    max_value_length: int = Field(default=1000, gt=0)

    @model_validator(mode="after")
    def _validate_page_bounds(self) -> "EntityAuditSettings":
        """Keep the default page size inside the configured maximum."""
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size must be <= max_page_size")
        return self


def resolve_entity_audit_settings(settings: BackofficeSettings) -> EntityAuditSettings:
    """Resolve settings from ``components.service.entity_audit``."""
    return resolve_component_settings(
        settings=settings,
        component_id=SERVICE_COMPONENT_ID,
        model=EntityAuditSettings,
    )
