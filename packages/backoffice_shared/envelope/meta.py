"""Envelope metadata primitives shared across back-office services."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict

from packages.backoffice_shared.ids import generate_ulid_str


class EnvelopeKind(str, Enum):
    """Envelope kinds used for intent classification."""

    UNSPECIFIED = "unspecified"
    COMMAND = "command"
    QUERY = "query"
    RESULT = "result"


class EnvelopeMeta(BaseModel):
    """Canonical metadata attached to every envelope result.

    ``principal`` names the acting user or ``"system"``; it is carried for
    correlation only and does not replace explicit actor arguments.
    """

    model_config = ConfigDict(frozen=True)

    envelope_id: str
    trace_id: str
    parent_id: str
    timestamp: datetime
    kind: EnvelopeKind
    source: str
    principal: str


def new_meta(
    *,
    kind: EnvelopeKind,
    source: str,
    principal: str,
    trace_id: str | None = None,
    parent_id: str = "",
    envelope_id: str | None = None,
    timestamp: datetime | None = None,
) -> EnvelopeMeta:
    """Build ``EnvelopeMeta`` with ULID ids and a UTC timestamp by default."""
    return EnvelopeMeta(
        envelope_id=envelope_id or generate_ulid_str(),
        trace_id=trace_id or generate_ulid_str(),
        parent_id=parent_id,
        timestamp=datetime.now(UTC) if timestamp is None else to_utc(timestamp),
        kind=kind,
        source=source,
        principal=principal,
    )


def to_utc(value: datetime) -> datetime:
    """Normalize naive/aware datetimes to UTC, treating naive as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
