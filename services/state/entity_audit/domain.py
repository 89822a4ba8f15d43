"""Domain contracts for the Entity Audit Service.

Core values (tokens, field changes, change records) are frozen dataclasses
used inside the service; the pydantic models at the bottom are the JSON-ready
payloads returned through envelopes.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from packages.backoffice_shared.ids import generate_ulid_bytes

SYSTEM_ACTOR = "system"
"""Actor filter value selecting system-initiated records (null actor id)."""

VERSION_TOKEN_BYTES = 16


class ChangeType(str, Enum):
    """Kind of mutation documented by one change record."""

    CREATED = "Created"
    MODIFIED = "Modified"
    DELETED = "Deleted"


class Absent(Enum):
    """Marker for a field with no value on one side of a change."""

    ABSENT = "absent"

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = Absent.ABSENT

FieldValue = str | Absent
"""Canonical field representation: a normalized string or ``ABSENT``."""


class InvalidVersionTokenError(ValueError):
    """Raised when a client-supplied token string cannot be decoded."""


@dataclass(frozen=True)
class VersionToken:
    """Opaque optimistic-concurrency token attached to one tracked entity.

    Equality is the only supported comparison. Clients see the unpadded
    URL-safe base64 form and must echo it back verbatim.
    """

    value: bytes

    def __post_init__(self) -> None:
        if len(self.value) != VERSION_TOKEN_BYTES:
            raise InvalidVersionTokenError(
                f"version token must be {VERSION_TOKEN_BYTES} bytes"
            )

    @classmethod
    def generate(cls, *, distinct_from: "VersionToken | None" = None) -> "VersionToken":
        """Return a fresh token that never equals ``distinct_from``."""
        while True:
            candidate = cls(generate_ulid_bytes())
            if candidate != distinct_from:
                return candidate

    @classmethod
    def decode(cls, text: str) -> "VersionToken":
        """Parse the wire form produced by ``encode``.

        Only the URL-safe alphabet is accepted; any other character makes
        the token malformed instead of being skipped.
        """
        candidate = text.strip()
        if not candidate:
            raise InvalidVersionTokenError("version token is empty")
        if "+" in candidate or "/" in candidate:
            raise InvalidVersionTokenError("version token is malformed")
        try:
            raw = base64.b64decode(
                candidate + "=" * (-len(candidate) % 4),
                altchars=b"-_",
                validate=True,
            )
        except (binascii.Error, ValueError):
            raise InvalidVersionTokenError("version token is malformed") from None
        return cls(raw)

    def encode(self) -> str:
        """Return the opaque wire form exchanged with clients."""
        return base64.urlsafe_b64encode(self.value).rstrip(b"=").decode("ascii")

    def __str__(self) -> str:
        return self.encode()


@dataclass(frozen=True)
class RelatedEntity:
    """Owned entity whose field changes ride along in a root record."""

    entity_type: str
    entity_id: str
    change_type: ChangeType
    display_label: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.entity_type, self.entity_id)


@dataclass(frozen=True)
class FieldChange:
    """One field's before/after representation within a change record.

    ``related`` is set when the field belongs to an owned entity changed in
    the same operation rather than to the record's root entity.
    """

    field_name: str
    old_value: FieldValue
    new_value: FieldValue
    related: RelatedEntity | None = None

    def reversed(self) -> "FieldChange":
        """Return the same change seen from the opposite direction."""
        return FieldChange(
            field_name=self.field_name,
            old_value=self.new_value,
            new_value=self.old_value,
            related=self.related,
        )


@dataclass(frozen=True)
class RelatedEntityChange:
    """Owned-entity mutation committed together with its root entity.

    Owned entities carry no version token of their own; the root's token
    guards them. Their snapshots are diffed through their registered schema.
    """

    entity_type: str
    entity_id: str
    change_type: ChangeType
    before: object | None = None
    after: object | None = None
    display_label: str | None = None


@dataclass(frozen=True)
class ChangeRecord:
    """Append-only audit entry for one create, modify, or delete operation."""

    operation_id: str
    entity_type: str
    entity_id: str
    change_type: ChangeType
    actor_id: str | None
    actor_name: str | None
    timestamp: datetime
    field_changes: tuple[FieldChange, ...] = ()
    entity_display_label: str | None = None

    @property
    def system_initiated(self) -> bool:
        return self.actor_id is None


@dataclass(frozen=True)
class FeedFilter:
    """Conjunctive filters for the global cross-entity feed.

    ``actor_ids`` matches any of the listed actors; ``SYSTEM_ACTOR`` in the
    list selects records without an actor. Both ``from_utc`` and ``to_utc``
    are inclusive.
    """

    entity_type: str | None = None
    actor_ids: tuple[str, ...] = ()
    change_type: ChangeType | None = None
    label_query: str | None = None
    from_utc: datetime | None = None
    to_utc: datetime | None = None


class FeedSortKey(str, Enum):
    """Column the global feed can be ordered by."""

    TIMESTAMP = "timestamp"
    LABEL = "label"
    ACTOR = "actor"
    ENTITY_TYPE = "entity_type"


@dataclass(frozen=True)
class FeedOrder:
    """Global feed ordering; operation id breaks ties in the same direction.

    Records lacking the sort value (no label, no actor name) come last in
    either direction.
    """

    key: FeedSortKey = FeedSortKey.TIMESTAMP
    descending: bool = True


NEWEST_FIRST = FeedOrder()


@dataclass(frozen=True)
class PageWindow:
    """Validated page position passed down to the audit store."""

    page: int
    page_size: int
    snapshot: int | None = None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


@dataclass(frozen=True)
class RecordPage:
    """One page of change records pinned to a store snapshot."""

    records: tuple[ChangeRecord, ...]
    total_count: int
    snapshot: int


@dataclass(frozen=True)
class CommitOutcome:
    """Result of one recorder commit."""

    version_token: VersionToken
    operation_id: str | None = None
    recorded: bool = False
    field_changes: tuple[FieldChange, ...] = field(default=())


class _PayloadModel(BaseModel):
    """Strict JSON-ready payload exposing camelCase aliases on the wire."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class FieldChangeView(_PayloadModel):
    """Wire form of one field change; ``None`` marks an absent value."""

    field_name: str
    old_value: str | None
    new_value: str | None

    @classmethod
    def from_change(cls, change: FieldChange) -> "FieldChangeView":
        return cls(
            field_name=change.field_name,
            old_value=None if change.old_value is ABSENT else change.old_value,
            new_value=None if change.new_value is ABSENT else change.new_value,
        )


class RelatedChangeGroupView(_PayloadModel):
    """Field changes of one owned entity, grouped under its root record."""

    entity_type: str
    entity_id: str
    change_type: ChangeType
    entity_display_label: str | None
    field_changes: list[FieldChangeView]


class ChangeRecordView(_PayloadModel):
    """Wire form of one change record.

    ``field_changes`` holds the root entity's fields only; owned-entity
    fields are grouped per entity in ``related_changes``.
    """

    operation_id: str
    entity_type: str
    entity_id: str
    change_type: ChangeType
    actor_id: str | None
    actor_name: str | None
    timestamp: datetime
    entity_display_label: str | None
    field_changes: list[FieldChangeView]
    related_changes: list[RelatedChangeGroupView] = []

    @classmethod
    def from_record(cls, record: ChangeRecord) -> "ChangeRecordView":
        groups: dict[tuple[str, str], RelatedEntity] = {}
        grouped: dict[tuple[str, str], list[FieldChangeView]] = {}
        for change in record.field_changes:
            if change.related is None:
                continue
            groups.setdefault(change.related.key, change.related)
            grouped.setdefault(change.related.key, []).append(
                FieldChangeView.from_change(change)
            )
        return cls(
            operation_id=record.operation_id,
            entity_type=record.entity_type,
            entity_id=record.entity_id,
            change_type=record.change_type,
            actor_id=record.actor_id,
            actor_name=record.actor_name,
            timestamp=record.timestamp,
            entity_display_label=record.entity_display_label,
            field_changes=[
                FieldChangeView.from_change(change)
                for change in record.field_changes
                if change.related is None
            ],
            related_changes=[
                RelatedChangeGroupView(
                    entity_type=related.entity_type,
                    entity_id=related.entity_id,
                    change_type=related.change_type,
                    entity_display_label=related.display_label,
                    field_changes=grouped[key],
                )
                for key, related in groups.items()
            ],
        )


class ChangeRecordPage(_PayloadModel):
    """Paginated history payload shared by entity history and global feed.

    ``snapshot`` must be passed back when fetching further pages so records
    appended meanwhile do not shift the page boundaries.
    """

    items: list[ChangeRecordView]
    page: int
    page_size: int
    total_count: int
    snapshot: int


class CommitResult(_PayloadModel):
    """Commit payload with the token the caller must present next time."""

    version_token: str
    operation_id: str | None
    recorded: bool


class HealthStatus(_PayloadModel):
    """Entity Audit Service and owned store readiness."""

    service_ready: bool
    substrate_ready: bool
    detail: str
