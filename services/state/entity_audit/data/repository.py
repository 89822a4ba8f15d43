"""Authoritative SQL store for entity versions and change records."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    ColumnElement,
    and_,
    delete,
    false,
    func,
    insert,
    or_,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from packages.backoffice_shared.errors import codes
from packages.backoffice_shared.ids import ulid_bytes_to_str, ulid_str_to_bytes
from resources.substrates.postgres.errors import (
    is_unique_violation,
    normalize_postgres_error,
)
from resources.substrates.postgres.schema_session import ServiceSchemaSessionProvider
from services.state.entity_audit.domain import (
    ABSENT,
    NEWEST_FIRST,
    SYSTEM_ACTOR,
    ChangeRecord,
    ChangeType,
    FeedFilter,
    FeedOrder,
    FeedSortKey,
    FieldChange,
    PageWindow,
    RecordPage,
    RelatedEntity,
    VersionToken,
)
from services.state.entity_audit.errors import (
    EntityAlreadyExistsError,
    EntityAuditError,
    StoreTimeoutError,
    StoreUnavailableError,
)

from .schema import change_records, entity_versions

_LIKE_ESCAPE = "\\"

# Transaction-scoped advisory lock serializing change-record appends.
_APPEND_LOCK_KEY = 0x456E74417564

_SORT_COLUMNS = {
    FeedSortKey.TIMESTAMP: change_records.c.timestamp_utc,
    FeedSortKey.LABEL: change_records.c.entity_display_label,
    FeedSortKey.ACTOR: change_records.c.actor_name,
    FeedSortKey.ENTITY_TYPE: change_records.c.entity_type,
}


class SqlAuditTransaction:
    """One SQL transaction scope implementing ``AuditTransaction``."""

    def __init__(self, session: Session) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    def lock_version(self, *, entity_type: str, entity_id: str) -> VersionToken | None:
        """Read the token with ``SELECT ... FOR UPDATE`` where supported."""
        value = self._session.execute(
            select(entity_versions.c.version_token)
            .where(_version_key(entity_type, entity_id))
            .with_for_update()
        ).scalar_one_or_none()
        return None if value is None else VersionToken(bytes(value))

    def insert_version(
        self,
        *,
        entity_type: str,
        entity_id: str,
        token: VersionToken,
        display_label: str | None,
    ) -> None:
        try:
            self._session.execute(
                insert(entity_versions).values(
                    entity_type=entity_type,
                    entity_id=entity_id,
                    version_token=token.value,
                    display_label=display_label,
                )
            )
        except IntegrityError as exc:
            if not is_unique_violation(exc):
                raise
            raise EntityAlreadyExistsError(
                f"{entity_type} '{entity_id}' is already tracked",
                entity_type=entity_type,
                entity_id=entity_id,
            ) from exc

    def swap_version(
        self,
        *,
        entity_type: str,
        entity_id: str,
        expected: VersionToken,
        token: VersionToken,
        display_label: str | None,
    ) -> bool:
        """Compare-and-swap the token; ``False`` when it no longer matches."""
        result = self._session.execute(
            update(entity_versions)
            .where(
                _version_key(entity_type, entity_id),
                entity_versions.c.version_token == expected.value,
            )
            .values(version_token=token.value, display_label=display_label)
        )
        return int(result.rowcount or 0) == 1

    def delete_version(
        self, *, entity_type: str, entity_id: str, expected: VersionToken
    ) -> bool:
        result = self._session.execute(
            delete(entity_versions).where(
                _version_key(entity_type, entity_id),
                entity_versions.c.version_token == expected.value,
            )
        )
        return int(result.rowcount or 0) == 1

    def append(self, record: ChangeRecord) -> None:
        """Insert one change record.

        On Postgres the append first takes a transaction-level advisory
        lock, so ``seq`` values become visible in allocation order: a
        reader's ``max(seq)`` never has an uncommitted lower ``seq`` behind
        it. SQLite already serializes writers on the database lock.
        """
        if self._session.get_bind().dialect.name == "postgresql":
            self._session.execute(select(func.pg_advisory_xact_lock(_APPEND_LOCK_KEY)))
        self._session.execute(
            insert(change_records).values(
                operation_id=ulid_str_to_bytes(record.operation_id),
                entity_type=record.entity_type,
                entity_id=record.entity_id,
                change_type=record.change_type.value,
                actor_id=record.actor_id,
                actor_name=record.actor_name,
                timestamp_utc=record.timestamp,
                entity_display_label=record.entity_display_label,
                field_changes=[_change_to_json(change) for change in record.field_changes],
            )
        )


class SqlEntityAuditStore:
    """SQL store over service-owned schema tables.

    Driver failures are normalized through ``normalize_postgres_error``.
    They leave as ``StoreTimeoutError`` when a lock or statement timeout ran
    out, otherwise as ``StoreUnavailableError`` carrying the normalized code
    and retryability.
    """

    def __init__(self, sessions: ServiceSchemaSessionProvider) -> None:
        self._sessions = sessions

    @contextmanager
    def transaction(self) -> Iterator[SqlAuditTransaction]:
        with _translated_errors(), self._sessions.session() as session:
            yield SqlAuditTransaction(session)

    def current_version(
        self, *, entity_type: str, entity_id: str
    ) -> VersionToken | None:
        with _translated_errors(), self._sessions.session() as session:
            value = session.execute(
                select(entity_versions.c.version_token).where(
                    _version_key(entity_type, entity_id)
                )
            ).scalar_one_or_none()
        return None if value is None else VersionToken(bytes(value))

    def by_entity(
        self, *, entity_type: str, entity_id: str, window: PageWindow
    ) -> RecordPage:
        return self._page(
            [
                change_records.c.entity_type == entity_type,
                change_records.c.entity_id == entity_id,
            ],
            window,
            _ordering(NEWEST_FIRST),
        )

    def global_feed(
        self,
        *,
        filters: FeedFilter,
        window: PageWindow,
        order: FeedOrder = NEWEST_FIRST,
    ) -> RecordPage:
        return self._page(_feed_conditions(filters), window, _ordering(order))

    def ping(self) -> bool:
        with _translated_errors(), self._sessions.session() as session:
            session.execute(select(func.count()).select_from(entity_versions))
        return True

    def _page(
        self,
        conditions: list[ColumnElement[bool]],
        window: PageWindow,
        ordering: Sequence[ColumnElement[Any]],
    ) -> RecordPage:
        """Read one ordered page pinned to a ``seq`` snapshot.

        Rows appended after the snapshot stay invisible to later pages of
        the same listing, so page boundaries never shift. Appends are
        serialized in ``SqlAuditTransaction.append``, so no uncommitted row
        can hold a ``seq`` below a snapshot read from committed rows.
        """
        with _translated_errors(), self._sessions.session() as session:
            snapshot = window.snapshot
            if snapshot is None:
                snapshot = int(
                    session.execute(
                        select(func.coalesce(func.max(change_records.c.seq), 0))
                    ).scalar_one()
                )
            pinned = and_(change_records.c.seq <= snapshot, *conditions)
            total = int(
                session.execute(
                    select(func.count()).select_from(change_records).where(pinned)
                ).scalar_one()
            )
            rows = (
                session.execute(
                    select(change_records)
                    .where(pinned)
                    .order_by(*ordering)
                    .offset(window.offset)
                    .limit(window.page_size)
                )
                .mappings()
                .all()
            )
        return RecordPage(
            records=tuple(_to_record(row) for row in rows),
            total_count=total,
            snapshot=snapshot,
        )


@contextmanager
def _translated_errors() -> Iterator[None]:
    try:
        yield
    except EntityAuditError:
        raise
    except SQLAlchemyError as exc:
        detail = normalize_postgres_error(exc)
        if detail.code == codes.DEPENDENCY_TIMEOUT:
            raise StoreTimeoutError(
                f"entity audit store wait timed out: {type(exc).__name__}"
            ) from exc
        raise StoreUnavailableError(
            f"entity audit store failed: {type(exc).__name__}",
            retryable=detail.retryable,
            code=detail.code,
        ) from exc


def _version_key(entity_type: str, entity_id: str) -> ColumnElement[bool]:
    return and_(
        entity_versions.c.entity_type == entity_type,
        entity_versions.c.entity_id == entity_id,
    )


def _feed_conditions(filters: FeedFilter) -> list[ColumnElement[bool]]:
    conditions: list[ColumnElement[bool]] = []
    if filters.entity_type is not None:
        conditions.append(change_records.c.entity_type == filters.entity_type)
    if filters.actor_ids:
        named = [actor for actor in filters.actor_ids if actor != SYSTEM_ACTOR]
        matches: list[ColumnElement[bool]] = []
        if named:
            matches.append(change_records.c.actor_id.in_(named))
        if SYSTEM_ACTOR in filters.actor_ids:
            matches.append(change_records.c.actor_id.is_(None))
        conditions.append(or_(*matches) if matches else false())
    if filters.change_type is not None:
        conditions.append(change_records.c.change_type == filters.change_type.value)
    if filters.label_query:
        conditions.append(
            func.lower(change_records.c.entity_display_label).like(
                f"%{escape_like(filters.label_query.lower())}%",
                escape=_LIKE_ESCAPE,
            )
        )
    if filters.from_utc is not None:
        conditions.append(change_records.c.timestamp_utc >= filters.from_utc)
    if filters.to_utc is not None:
        conditions.append(change_records.c.timestamp_utc <= filters.to_utc)
    return conditions


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so user text matches literally."""
    return (
        text.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", f"{_LIKE_ESCAPE}%")
        .replace("_", f"{_LIKE_ESCAPE}_")
    )


def _ordering(order: FeedOrder) -> list[ColumnElement[Any]]:
    column = _SORT_COLUMNS[order.key]
    if order.descending:
        primary, tiebreak = column.desc(), change_records.c.operation_id.desc()
    else:
        primary, tiebreak = column.asc(), change_records.c.operation_id.asc()
    if column.nullable:
        primary = primary.nulls_last()
    return [primary, tiebreak]


def _change_to_json(change: FieldChange) -> dict[str, Any]:
    item: dict[str, Any] = {
        "field": change.field_name,
        "old": None if change.old_value is ABSENT else change.old_value,
        "new": None if change.new_value is ABSENT else change.new_value,
    }
    if change.related is not None:
        item["related"] = {
            "type": change.related.entity_type,
            "id": change.related.entity_id,
            "change": change.related.change_type.value,
            "label": change.related.display_label,
        }
    return item


def _change_from_json(item: dict[str, Any]) -> FieldChange:
    old_value, new_value = item.get("old"), item.get("new")
    related = item.get("related")
    return FieldChange(
        field_name=str(item["field"]),
        old_value=ABSENT if old_value is None else str(old_value),
        new_value=ABSENT if new_value is None else str(new_value),
        related=None
        if related is None
        else RelatedEntity(
            entity_type=str(related["type"]),
            entity_id=str(related["id"]),
            change_type=ChangeType(related["change"]),
            display_label=related.get("label"),
        ),
    )


def _to_record(row: Any) -> ChangeRecord:
    """Map one SQL row to a strict domain change record."""
    return ChangeRecord(
        operation_id=ulid_bytes_to_str(bytes(row["operation_id"])),
        entity_type=str(row["entity_type"]),
        entity_id=str(row["entity_id"]),
        change_type=ChangeType(row["change_type"]),
        actor_id=row["actor_id"],
        actor_name=row["actor_name"],
        timestamp=_row_dt(row["timestamp_utc"]),
        field_changes=tuple(_change_from_json(item) for item in row["field_changes"] or ()),
        entity_display_label=row["entity_display_label"],
    )


def _row_dt(value: object) -> datetime:
    """Normalize one stored timestamp into an aware UTC datetime."""
    if not isinstance(value, datetime):
        raise ValueError("expected datetime column for timestamp_utc")
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
