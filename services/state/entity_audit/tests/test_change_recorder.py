"""Change recorder behavior tests against the in-memory store."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import pytest

from packages.backoffice_shared.ids import ulid_datetime, ulid_str_to_bytes
from services.state.entity_audit.data.memory import InMemoryEntityAuditStore
from services.state.entity_audit.domain import (
    ABSENT,
    NEWEST_FIRST,
    SYSTEM_ACTOR,
    ChangeRecordView,
    ChangeType,
    FeedFilter,
    FieldChange,
    PageWindow,
    RelatedEntity,
    RelatedEntityChange,
    VersionToken,
)
from services.state.entity_audit.errors import (
    EntityAlreadyExistsError,
    EntityNotFoundError,
    MissingVersionTokenError,
    UnknownEntitySchemaError,
    VersionConflictError,
)
from services.state.entity_audit.recorder import ChangeRecorder
from services.state.entity_audit.replay import replay_field_values
from services.state.entity_audit.schema_registry import (
    EntitySchemaRegistry,
    FieldDescriptor,
)

_WINDOW = PageWindow(page=1, page_size=50)


class _Clock:
    """Deterministic millisecond clock advancing one step per read."""

    def __init__(self, start: int = 1_760_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        self.now += 1
        return self.now


def _recorder(
    store: InMemoryEntityAuditStore, **kwargs: Any
) -> ChangeRecorder:
    registry = EntitySchemaRegistry()
    registry.register(
        "Account",
        ["status", "tariff", "comment"],
        label_resolver=lambda entity: entity.get("number"),
    )
    return ChangeRecorder(registry=registry, store=store, clock=_Clock(), **kwargs)


def _create(recorder: ChangeRecorder, values: dict[str, Any]) -> VersionToken:
    return recorder.commit(
        entity_type="Account",
        entity_id="ACC-001",
        change_type=ChangeType.CREATED,
        before=None,
        after=values,
        supplied_token=None,
        actor_id="u1",
        actor_name="User One",
    ).version_token


def _history(store: InMemoryEntityAuditStore) -> list[Any]:
    return list(
        store.by_entity(entity_type="Account", entity_id="ACC-001", window=_WINDOW).records
    )


def test_create_then_two_updates_scenario() -> None:
    """Create, update, then a stale update should leave exactly two records."""
    store = InMemoryEntityAuditStore()
    recorder = _recorder(store)
    created = {"number": "ACC-001", "status": "Active", "tariff": "Basic"}
    first_token = _create(recorder, created)

    records = _history(store)
    assert len(records) == 1
    assert records[0].change_type is ChangeType.CREATED
    assert records[0].field_changes == (
        FieldChange("status", ABSENT, "Active"),
        FieldChange("tariff", ABSENT, "Basic"),
    )
    assert records[0].entity_display_label == "ACC-001"

    blocked = {**created, "status": "Blocked"}
    outcome = recorder.commit(
        entity_type="Account",
        entity_id="ACC-001",
        change_type=ChangeType.MODIFIED,
        before=created,
        after=blocked,
        supplied_token=first_token,
        actor_id="u1",
    )
    assert outcome.recorded is True
    records = _history(store)
    assert len(records) == 2
    assert records[0].change_type is ChangeType.MODIFIED
    assert records[0].field_changes == (FieldChange("status", "Active", "Blocked"),)

    with pytest.raises(VersionConflictError) as caught:
        recorder.commit(
            entity_type="Account",
            entity_id="ACC-001",
            change_type=ChangeType.MODIFIED,
            before=blocked,
            after={**blocked, "tariff": "Pro"},
            supplied_token=first_token,
            actor_id="u1",
        )
    assert caught.value.supplied_token == first_token
    assert caught.value.current_token == outcome.version_token
    assert len(_history(store)) == 2
    assert store.versions[("Account", "ACC-001")] == outcome.version_token


def test_noop_update_keeps_token_and_writes_nothing() -> None:
    """An update with identical snapshots should not record or apply."""
    store = InMemoryEntityAuditStore()
    recorder = _recorder(store)
    values = {"number": "ACC-001", "status": "Active"}
    token = _create(recorder, values)
    applied: list[object] = []

    outcome = recorder.commit(
        entity_type="Account",
        entity_id="ACC-001",
        change_type=ChangeType.MODIFIED,
        before=values,
        after=dict(values),
        supplied_token=token,
        apply=applied.append,
    )

    assert outcome.version_token == token
    assert outcome.recorded is False
    assert outcome.operation_id is None
    assert applied == []
    assert len(_history(store)) == 1


def test_sequential_commits_issue_pairwise_distinct_tokens() -> None:
    """Every successful commit should hand out a never-seen token."""
    store = InMemoryEntityAuditStore()
    recorder = _recorder(store)
    before: dict[str, Any] = {"status": "s0"}
    tokens = [_create(recorder, before)]

    for step in range(1, 10):
        after = {"status": f"s{step}"}
        tokens.append(
            recorder.commit(
                entity_type="Account",
                entity_id="ACC-001",
                change_type=ChangeType.MODIFIED,
                before=before,
                after=after,
                supplied_token=tokens[-1],
            ).version_token
        )
        before = after

    assert len(set(tokens)) == len(tokens)
    records = _history(store)
    assert len(records) == 10
    assert [record.field_changes[0].new_value for record in records] == [
        f"s{step}" for step in range(9, -1, -1)
    ]


def test_delete_removes_version_but_keeps_history() -> None:
    """Deletion should record removed values and untrack the entity."""
    store = InMemoryEntityAuditStore()
    recorder = _recorder(store)
    values = {"number": "ACC-001", "status": "Active", "tariff": "Basic"}
    token = _create(recorder, values)

    outcome = recorder.commit(
        entity_type="Account",
        entity_id="ACC-001",
        change_type=ChangeType.DELETED,
        before=values,
        after=values,
        supplied_token=token,
    )

    records = _history(store)
    assert outcome.recorded is True
    assert len(records) == 2
    assert records[0].change_type is ChangeType.DELETED
    assert records[0].field_changes == (
        FieldChange("status", "Active", ABSENT),
        FieldChange("tariff", "Basic", ABSENT),
    )
    assert records[0].entity_display_label == "ACC-001"
    assert store.current_version(entity_type="Account", entity_id="ACC-001") is None


def test_update_without_token_is_rejected() -> None:
    """Modifications must carry a version token."""
    store = InMemoryEntityAuditStore()
    recorder = _recorder(store)
    _create(recorder, {"status": "Active"})

    with pytest.raises(MissingVersionTokenError):
        recorder.commit(
            entity_type="Account",
            entity_id="ACC-001",
            change_type=ChangeType.MODIFIED,
            before={"status": "Active"},
            after={"status": "Blocked"},
            supplied_token=None,
        )


def test_update_of_untracked_entity_is_not_found() -> None:
    """Updating an entity that was never created should fail."""
    recorder = _recorder(InMemoryEntityAuditStore())

    with pytest.raises(EntityNotFoundError):
        recorder.commit(
            entity_type="Account",
            entity_id="ACC-404",
            change_type=ChangeType.MODIFIED,
            before={"status": "Active"},
            after={"status": "Blocked"},
            supplied_token=VersionToken.generate(),
        )


def test_second_create_of_same_entity_is_rejected() -> None:
    """Creating an already-tracked entity should fail without a record."""
    store = InMemoryEntityAuditStore()
    recorder = _recorder(store)
    _create(recorder, {"status": "Active"})

    with pytest.raises(EntityAlreadyExistsError):
        _create(recorder, {"status": "Active"})
    assert len(_history(store)) == 1


def test_unknown_entity_type_propagates() -> None:
    """Mutating an unregistered entity type is a programmer error."""
    recorder = _recorder(InMemoryEntityAuditStore())

    with pytest.raises(UnknownEntitySchemaError):
        recorder.commit(
            entity_type="Ghost",
            entity_id="1",
            change_type=ChangeType.CREATED,
            before=None,
            after={"status": "x"},
            supplied_token=None,
        )


def test_failing_apply_rolls_back_token_and_record() -> None:
    """An error inside the mutation callback should leave no trace."""
    store = InMemoryEntityAuditStore()
    recorder = _recorder(store)
    token = _create(recorder, {"status": "Active"})

    def _explode(session: object) -> None:
        raise RuntimeError("business write failed")

    with pytest.raises(RuntimeError):
        recorder.commit(
            entity_type="Account",
            entity_id="ACC-001",
            change_type=ChangeType.MODIFIED,
            before={"status": "Active"},
            after={"status": "Blocked"},
            supplied_token=token,
            apply=_explode,
        )

    assert store.versions[("Account", "ACC-001")] == token
    assert len(_history(store)) == 1


def test_long_values_and_labels_are_truncated() -> None:
    """Stored values and labels should be cut to the configured maxima."""
    store = InMemoryEntityAuditStore()
    recorder = _recorder(store, max_value_length=5, max_label_length=3)

    _create(recorder, {"number": "ACC-001", "comment": "abcdefghij"})

    record = _history(store)[0]
    assert record.field_changes == (FieldChange("comment", ABSENT, "abcde"),)
    assert record.entity_display_label == "ACC"


def test_operation_id_timestamp_matches_record_timestamp() -> None:
    """The operation id should embed the record's millisecond timestamp."""
    store = InMemoryEntityAuditStore()
    recorder = _recorder(store)
    _create(recorder, {"status": "Active"})

    record = _history(store)[0]
    assert ulid_datetime(ulid_str_to_bytes(record.operation_id)) == record.timestamp
    assert record.actor_id == "u1"
    assert record.system_initiated is False


def test_projection_is_applied_once_per_commit() -> None:
    """A formatting projection should see raw values only, never its output."""
    store = InMemoryEntityAuditStore()
    registry = EntitySchemaRegistry()
    registry.register(
        "Instrument",
        ["symbol", FieldDescriptor(name="tick_size", projection=lambda v: f"{v:.2f}")],
    )
    recorder = ChangeRecorder(registry=registry, store=store, clock=_Clock())

    outcome = recorder.commit(
        entity_type="Instrument",
        entity_id="AAPL",
        change_type=ChangeType.CREATED,
        before=None,
        after={"symbol": "AAPL", "tick_size": Decimal("0.5")},
        supplied_token=None,
    )
    recorder.commit(
        entity_type="Instrument",
        entity_id="AAPL",
        change_type=ChangeType.MODIFIED,
        before={"symbol": "AAPL", "tick_size": Decimal("0.5")},
        after={"symbol": "AAPL", "tick_size": Decimal("0.25")},
        supplied_token=outcome.version_token,
    )

    records = store.by_entity(
        entity_type="Instrument", entity_id="AAPL", window=_WINDOW
    ).records
    assert records[0].field_changes == (FieldChange("tick_size", "0.50", "0.25"),)
    assert records[1].field_changes == (
        FieldChange("symbol", ABSENT, "AAPL"),
        FieldChange("tick_size", ABSENT, "0.50"),
    )


def _holder_recorder(store: InMemoryEntityAuditStore) -> ChangeRecorder:
    registry = EntitySchemaRegistry()
    registry.register(
        "Account",
        ["status", "tariff", "comment"],
        label_resolver=lambda entity: entity.get("number"),
    )
    registry.register(
        "AccountHolder",
        ["role", "is_primary"],
        label_resolver=lambda entity: entity.get("client_id"),
    )
    return ChangeRecorder(registry=registry, store=store, clock=_Clock())


def test_owned_entity_changes_ride_along_with_root_record() -> None:
    """Holder changes should be stored in the account's record, tagged per holder."""
    store = InMemoryEntityAuditStore()
    recorder = _holder_recorder(store)
    holder = {"client_id": "c-7", "role": "Owner", "is_primary": True}

    token = recorder.commit(
        entity_type="Account",
        entity_id="ACC-001",
        change_type=ChangeType.CREATED,
        before=None,
        after={"number": "ACC-001", "status": "Active"},
        supplied_token=None,
        related=[
            RelatedEntityChange(
                entity_type="AccountHolder",
                entity_id="c-7",
                change_type=ChangeType.CREATED,
                after=holder,
            )
        ],
    ).version_token

    created = _history(store)[0]
    owner = RelatedEntity("AccountHolder", "c-7", ChangeType.CREATED, "c-7")
    assert created.field_changes == (
        FieldChange("status", ABSENT, "Active"),
        FieldChange("role", ABSENT, "Owner", related=owner),
        FieldChange("is_primary", ABSENT, "True", related=owner),
    )

    outcome = recorder.commit(
        entity_type="Account",
        entity_id="ACC-001",
        change_type=ChangeType.MODIFIED,
        before={"number": "ACC-001", "status": "Active"},
        after={"number": "ACC-001", "status": "Active"},
        supplied_token=token,
        related=[
            RelatedEntityChange(
                entity_type="AccountHolder",
                entity_id="c-7",
                change_type=ChangeType.MODIFIED,
                before=holder,
                after={**holder, "role": "Trustee"},
            )
        ],
    )

    assert outcome.recorded is True
    assert outcome.version_token != token
    view = ChangeRecordView.from_record(_history(store)[0])
    assert view.field_changes == []
    assert len(view.related_changes) == 1
    group = view.related_changes[0]
    assert (group.entity_type, group.entity_id) == ("AccountHolder", "c-7")
    assert group.change_type is ChangeType.MODIFIED
    assert [(c.field_name, c.old_value, c.new_value) for c in group.field_changes] == [
        ("role", "Owner", "Trustee")
    ]
    assert replay_field_values(_history(store)) == {"status": "Active"}


def test_update_with_unchanged_owned_entities_is_a_noop() -> None:
    """No root and no owned changes should record nothing."""
    store = InMemoryEntityAuditStore()
    recorder = _holder_recorder(store)
    token = _create(recorder, {"number": "ACC-001", "status": "Active"})
    holder = {"client_id": "c-7", "role": "Owner", "is_primary": True}

    outcome = recorder.commit(
        entity_type="Account",
        entity_id="ACC-001",
        change_type=ChangeType.MODIFIED,
        before={"status": "Active"},
        after={"status": "Active"},
        supplied_token=token,
        related=[
            RelatedEntityChange(
                entity_type="AccountHolder",
                entity_id="c-7",
                change_type=ChangeType.MODIFIED,
                before=holder,
                after=dict(holder),
            )
        ],
    )

    assert outcome.recorded is False
    assert outcome.version_token == token
    assert len(_history(store)) == 1


def test_system_actor_id_is_stored_as_system_initiated() -> None:
    """Commits naming the system actor should match the system feed filter."""
    store = InMemoryEntityAuditStore()
    recorder = _recorder(store)

    recorder.commit(
        entity_type="Account",
        entity_id="ACC-001",
        change_type=ChangeType.CREATED,
        before=None,
        after={"status": "Active"},
        supplied_token=None,
        actor_id=SYSTEM_ACTOR,
        actor_name="Nightly import",
    )

    record = _history(store)[0]
    assert record.actor_id is None
    assert record.system_initiated is True
    feed = store.global_feed(
        filters=FeedFilter(actor_ids=(SYSTEM_ACTOR,)),
        window=_WINDOW,
        order=NEWEST_FIRST,
    )
    assert [item.operation_id for item in feed.records] == [record.operation_id]
