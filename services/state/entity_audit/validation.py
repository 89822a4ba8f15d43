"""Pydantic request-validation models for the Entity Audit Service API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator, model_validator

from packages.backoffice_shared.envelope import to_utc
from services.state.entity_audit.domain import ChangeType, FeedSortKey


class _ValidationModel(BaseModel):
    """Base request model with strict shape semantics."""

    model_config = ConfigDict(frozen=True, extra="forbid")


def _required_text(value: str, info: ValidationInfo) -> str:
    normalized = value.strip()
    if normalized == "":
        raise ValueError(f"{info.field_name} is required")
    return normalized


def _optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None


class EntityKeyRequest(_ValidationModel):
    """Validated identity of one tracked entity."""

    entity_type: str
    entity_id: str

    @field_validator("entity_type", "entity_id")
    @classmethod
    def _validate_identity(cls, value: str, info: ValidationInfo) -> str:
        return _required_text(value, info)


class CommitRequest(EntityKeyRequest):
    """Validated commit request shape."""

    change_type: ChangeType
    version_token: str | None = None
    actor_id: str | None = None
    actor_name: str | None = None
    display_label: str | None = None

    @field_validator("version_token", "actor_id", "actor_name", "display_label")
    @classmethod
    def _normalize_optional_text(cls, value: str | None) -> str | None:
        """Treat blank optional text as missing."""
        return _optional_text(value)


class FeedRequest(_ValidationModel):
    """Validated global feed filter shape."""

    entity_type: str | None = None
    actor_ids: tuple[str, ...] = ()
    change_type: ChangeType | None = None
    label_query: str | None = None
    from_utc: datetime | None = None
    to_utc: datetime | None = None
    sort_by: FeedSortKey = FeedSortKey.TIMESTAMP
    descending: bool = True

    @field_validator("entity_type", "label_query")
    @classmethod
    def _normalize_optional_text(cls, value: str | None) -> str | None:
        return _optional_text(value)

    @field_validator("actor_ids")
    @classmethod
    def _normalize_actor_ids(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        """Drop blanks and duplicates, keeping first-seen order."""
        return tuple(dict.fromkeys(actor.strip() for actor in value if actor.strip()))

    @field_validator("from_utc", "to_utc")
    @classmethod
    def _normalize_timestamp(cls, value: datetime | None) -> datetime | None:
        return None if value is None else to_utc(value)

    @model_validator(mode="after")
    def _validate_range(self) -> "FeedRequest":
        if (
            self.from_utc is not None
            and self.to_utc is not None
            and self.from_utc > self.to_utc
        ):
            raise ValueError("from_utc must not be after to_utc")
        return self
