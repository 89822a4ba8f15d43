"""Process-local entity audit store for tests and single-process runs."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from threading import RLock

from services.state.entity_audit.domain import (
    NEWEST_FIRST,
    SYSTEM_ACTOR,
    ChangeRecord,
    FeedFilter,
    FeedOrder,
    FeedSortKey,
    PageWindow,
    RecordPage,
    VersionToken,
)

_DELETED = object()


class InMemoryAuditTransaction:
    """Staged writes applied to the owning store only on success.

    Reads fall through to the store's live state for keys this transaction
    has not written, so a writer that committed in between is visible to
    the compare-and-swap checks.
    """

    def __init__(self, store: "InMemoryEntityAuditStore") -> None:
        self._store = store
        self.staged_versions: dict[tuple[str, str], object] = {}
        self.staged_labels: dict[tuple[str, str], str | None] = {}
        self.appended: list[ChangeRecord] = []

    @property
    def session(self) -> "InMemoryAuditTransaction":
        return self

    def lock_version(self, *, entity_type: str, entity_id: str) -> VersionToken | None:
        key = (entity_type, entity_id)
        staged = self.staged_versions.get(key)
        if staged is _DELETED:
            return None
        if isinstance(staged, VersionToken):
            return staged
        return self._store.versions.get(key)

    def insert_version(
        self,
        *,
        entity_type: str,
        entity_id: str,
        token: VersionToken,
        display_label: str | None,
    ) -> None:
        key = (entity_type, entity_id)
        self.staged_versions[key] = token
        self.staged_labels[key] = display_label

    def swap_version(
        self,
        *,
        entity_type: str,
        entity_id: str,
        expected: VersionToken,
        token: VersionToken,
        display_label: str | None,
    ) -> bool:
        if self.lock_version(entity_type=entity_type, entity_id=entity_id) != expected:
            return False
        self.insert_version(
            entity_type=entity_type,
            entity_id=entity_id,
            token=token,
            display_label=display_label,
        )
        return True

    def delete_version(
        self, *, entity_type: str, entity_id: str, expected: VersionToken
    ) -> bool:
        if self.lock_version(entity_type=entity_type, entity_id=entity_id) != expected:
            return False
        self.staged_versions[(entity_type, entity_id)] = _DELETED
        return True

    def append(self, record: ChangeRecord) -> None:
        self.appended.append(record)


class InMemoryEntityAuditStore:
    """Dictionary-backed store with the same ordering and snapshot rules."""

    def __init__(self) -> None:
        self.versions: dict[tuple[str, str], VersionToken] = {}
        self.labels: dict[tuple[str, str], str | None] = {}
        self.records: list[tuple[int, ChangeRecord]] = []
        self._lock = RLock()

    @contextmanager
    def transaction(self) -> Iterator[InMemoryAuditTransaction]:
        with self._lock:
            tx = InMemoryAuditTransaction(self)
            yield tx
            for key, value in tx.staged_versions.items():
                if value is _DELETED:
                    self.versions.pop(key, None)
                    self.labels.pop(key, None)
                else:
                    assert isinstance(value, VersionToken)
                    self.versions[key] = value
                    self.labels[key] = tx.staged_labels.get(key)
            for record in tx.appended:
                self.records.append((len(self.records) + 1, record))

    def current_version(
        self, *, entity_type: str, entity_id: str
    ) -> VersionToken | None:
        with self._lock:
            return self.versions.get((entity_type, entity_id))

    def by_entity(
        self, *, entity_type: str, entity_id: str, window: PageWindow
    ) -> RecordPage:
        return self._page(
            lambda record: record.entity_type == entity_type
            and record.entity_id == entity_id,
            window,
            NEWEST_FIRST,
        )

    def global_feed(
        self,
        *,
        filters: FeedFilter,
        window: PageWindow,
        order: FeedOrder = NEWEST_FIRST,
    ) -> RecordPage:
        return self._page(lambda record: _matches(record, filters), window, order)

    def ping(self) -> bool:
        return True

    def _page(
        self,
        predicate: Callable[[ChangeRecord], bool],
        window: PageWindow,
        order: FeedOrder,
    ) -> RecordPage:
        with self._lock:
            snapshot = len(self.records) if window.snapshot is None else window.snapshot
            matching = [
                record
                for seq, record in self.records
                if seq <= snapshot and predicate(record)
            ]
        matching = _sorted(matching, order)
        return RecordPage(
            records=tuple(matching[window.offset : window.offset + window.page_size]),
            total_count=len(matching),
            snapshot=snapshot,
        )


def _matches(record: ChangeRecord, filters: FeedFilter) -> bool:
    if filters.entity_type is not None and record.entity_type != filters.entity_type:
        return False
    if filters.actor_ids:
        wants_system = SYSTEM_ACTOR in filters.actor_ids
        if record.actor_id is None:
            if not wants_system:
                return False
        elif record.actor_id not in filters.actor_ids or record.actor_id == SYSTEM_ACTOR:
            return False
    if filters.change_type is not None and record.change_type != filters.change_type:
        return False
    if filters.label_query:
        label = (record.entity_display_label or "").lower()
        if filters.label_query.lower() not in label:
            return False
    if filters.from_utc is not None and record.timestamp < filters.from_utc:
        return False
    if filters.to_utc is not None and record.timestamp > filters.to_utc:
        return False
    return True


_SORT_VALUES: dict[FeedSortKey, Callable[[ChangeRecord], object]] = {
    FeedSortKey.TIMESTAMP: lambda record: record.timestamp,
    FeedSortKey.LABEL: lambda record: record.entity_display_label,
    FeedSortKey.ACTOR: lambda record: record.actor_name,
    FeedSortKey.ENTITY_TYPE: lambda record: record.entity_type,
}


def _sorted(records: list[ChangeRecord], order: FeedOrder) -> list[ChangeRecord]:
    """Order like the SQL store: operation id breaks ties, missing values last."""
    value_of = _SORT_VALUES[order.key]
    present = [record for record in records if value_of(record) is not None]
    missing = [record for record in records if value_of(record) is None]
    present.sort(
        key=lambda record: (value_of(record), record.operation_id),
        reverse=order.descending,
    )
    missing.sort(key=lambda record: record.operation_id, reverse=order.descending)
    return present + missing
