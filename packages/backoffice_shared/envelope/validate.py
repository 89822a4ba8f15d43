"""Validation helpers for envelope metadata."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .meta import EnvelopeKind, EnvelopeMeta

_REQUIRED_FIELDS = frozenset(
    {"envelope_id", "trace_id", "timestamp", "source", "principal"}
)


class _ValidatedEnvelopeMeta(BaseModel):
    """Validation-only envelope metadata model used by ``validate_meta``."""

    model_config = ConfigDict(extra="forbid")

    envelope_id: str = Field(min_length=1)
    trace_id: str = Field(min_length=1)
    parent_id: str
    timestamp: datetime
    kind: EnvelopeKind
    source: str = Field(min_length=1)
    principal: str = Field(min_length=1)


def validate_meta(meta: EnvelopeMeta) -> None:
    """Validate required envelope metadata fields.

    Raises ``ValueError`` with a stable message naming the first bad field.
    """
    try:
        _ValidatedEnvelopeMeta.model_validate(meta.model_dump(mode="python"))
    except ValidationError as exc:
        first_error = exc.errors()[0]
        location = first_error.get("loc", ())
        field_name = str(location[0]) if location else ""
        if field_name in _REQUIRED_FIELDS:
            raise ValueError(f"metadata.{field_name} is required") from None
        if field_name == "kind":
            raise ValueError("metadata.kind must be specified") from None
        raise ValueError(str(first_error.get("msg", "invalid metadata"))) from None
    if meta.kind == EnvelopeKind.UNSPECIFIED:
        raise ValueError("metadata.kind must be specified")
