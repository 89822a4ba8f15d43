"""Typed envelope response model for in-process service calls."""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from packages.backoffice_shared.errors import ErrorDetail, http_status_for_errors

from .meta import EnvelopeMeta

T = TypeVar("T")


class Payload(BaseModel, Generic[T]):
    """Container for domain payload data carried by an envelope."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    value: T


class Envelope(BaseModel, Generic[T]):
    """Canonical typed envelope with metadata, payload, and errors."""

    model_config = ConfigDict(frozen=True)

    metadata: EnvelopeMeta
    payload: Payload[T] | None
    errors: list[ErrorDetail] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        """Return ``True`` when no errors are present."""
        return len(self.errors) == 0

    @property
    def value(self) -> T | None:
        """Return the payload value, or ``None`` when absent."""
        return None if self.payload is None else self.payload.value

    @property
    def http_status(self) -> int:
        """Return the wire status a REST layer should answer with."""
        return http_status_for_errors(self.errors)
