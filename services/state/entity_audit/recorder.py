"""Atomic commit of one entity mutation together with its audit record."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

from packages.backoffice_shared.ids import (
    MonotonicUlidFactory,
    current_timestamp_ms,
    ulid_bytes_to_str,
    ulid_datetime,
)
from services.state.entity_audit.canonical import truncate
from services.state.entity_audit.differ import diff_entities
from services.state.entity_audit.domain import (
    SYSTEM_ACTOR,
    ChangeRecord,
    ChangeType,
    CommitOutcome,
    FieldChange,
    RelatedEntity,
    RelatedEntityChange,
    VersionToken,
)
from services.state.entity_audit.errors import EntityAlreadyExistsError
from services.state.entity_audit.guard import ConcurrencyGuard, conflict
from services.state.entity_audit.interfaces import AuditTransaction, EntityAuditStore
from services.state.entity_audit.schema_registry import EntitySchemaRegistry

EntityMutation = Callable[[Any], None]
"""Callback writing the entity's business fields through the store session."""


class ChangeRecorder:
    """Run check, diff, entity write, token advance, and append as one unit.

    Failures propagate unchanged after the transaction rolls back:
    ``VersionConflictError`` when another writer got there first, store
    errors when persistence fails. Nothing is retried here.
    """

    def __init__(
        self,
        *,
        registry: EntitySchemaRegistry,
        store: EntityAuditStore,
        guard: ConcurrencyGuard | None = None,
        max_value_length: int = 1000,
        max_label_length: int = 200,
        clock: Callable[[], int] = current_timestamp_ms,
    ) -> None:
        self._registry = registry
        self._store = store
        self._guard = guard or ConcurrencyGuard()
        self._max_value_length = max_value_length
        self._max_label_length = max_label_length
        self._clock = clock
        self._operation_ids = MonotonicUlidFactory()

    def commit(
        self,
        *,
        entity_type: str,
        entity_id: str,
        change_type: ChangeType | str,
        before: Any | None,
        after: Any | None,
        supplied_token: VersionToken | None,
        actor_id: str | None = None,
        actor_name: str | None = None,
        display_label: str | None = None,
        apply: EntityMutation | None = None,
        related: Sequence[RelatedEntityChange] = (),
    ) -> CommitOutcome:
        """Commit one create, modify, or delete of a tracked entity.

        ``before`` is ignored for creations and ``after`` for deletions. An
        update whose snapshots are identical, root and ``related`` alike,
        writes nothing, skips ``apply``, and returns the unchanged token.
        The actor id ``"system"`` is stored as a system-initiated change.
        """
        schema = self._registry.require(entity_type)
        kind = ChangeType(change_type)
        if kind is ChangeType.CREATED:
            before = None
        elif kind is ChangeType.DELETED:
            after = None
        changes = diff_entities(schema, before, after)
        for owned in related:
            changes.extend(self._related_changes(owned))
        label = display_label or schema.display_label(
            before if after is None else after
        )
        if actor_id == SYSTEM_ACTOR:
            actor_id = None

        with self._store.transaction() as tx:
            if kind is ChangeType.CREATED:
                current = self._ensure_untracked(tx, entity_type, entity_id)
            else:
                current = self._guard.check(
                    tx,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    supplied=supplied_token,
                )
                if kind is ChangeType.MODIFIED and not changes:
                    return CommitOutcome(version_token=current)

            token = VersionToken.generate(distinct_from=current)
            operation_bytes = self._operation_ids.next_bytes(timestamp_ms=self._clock())
            operation_id = ulid_bytes_to_str(operation_bytes)

            if apply is not None:
                apply(tx.session)
            self._advance(
                tx,
                kind=kind,
                entity_type=entity_type,
                entity_id=entity_id,
                current=current,
                token=token,
                label=label,
            )
            tx.append(
                ChangeRecord(
                    operation_id=operation_id,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    change_type=kind,
                    actor_id=actor_id,
                    actor_name=actor_name,
                    timestamp=ulid_datetime(operation_bytes),
                    field_changes=tuple(self._stored(change) for change in changes),
                    entity_display_label=self._stored_label(label),
                )
            )

        return CommitOutcome(
            version_token=token,
            operation_id=operation_id,
            recorded=True,
            field_changes=tuple(changes),
        )

    def _ensure_untracked(
        self, tx: AuditTransaction, entity_type: str, entity_id: str
    ) -> None:
        if tx.lock_version(entity_type=entity_type, entity_id=entity_id) is not None:
            raise EntityAlreadyExistsError(
                f"{entity_type} '{entity_id}' is already tracked",
                entity_type=entity_type,
                entity_id=entity_id,
            )

    def _advance(
        self,
        tx: AuditTransaction,
        *,
        kind: ChangeType,
        entity_type: str,
        entity_id: str,
        current: VersionToken | None,
        token: VersionToken,
        label: str | None,
    ) -> None:
        """Persist the new token, failing when the stored one moved meanwhile."""
        if kind is ChangeType.CREATED:
            tx.insert_version(
                entity_type=entity_type,
                entity_id=entity_id,
                token=token,
                display_label=self._stored_label(label),
            )
            return

        assert current is not None
        if kind is ChangeType.MODIFIED:
            swapped = tx.swap_version(
                entity_type=entity_type,
                entity_id=entity_id,
                expected=current,
                token=token,
                display_label=self._stored_label(label),
            )
        else:
            swapped = tx.delete_version(
                entity_type=entity_type, entity_id=entity_id, expected=current
            )
        if not swapped:
            raise conflict(
                entity_type=entity_type,
                entity_id=entity_id,
                supplied=current,
                current=tx.lock_version(entity_type=entity_type, entity_id=entity_id),
            )

    def _related_changes(self, owned: RelatedEntityChange) -> list[FieldChange]:
        schema = self._registry.require(owned.entity_type)
        kind = ChangeType(owned.change_type)
        before = None if kind is ChangeType.CREATED else owned.before
        after = None if kind is ChangeType.DELETED else owned.after
        label = owned.display_label or schema.display_label(
            before if after is None else after
        )
        entity = RelatedEntity(
            entity_type=owned.entity_type,
            entity_id=owned.entity_id,
            change_type=kind,
            display_label=self._stored_label(label),
        )
        return [
            FieldChange(
                field_name=change.field_name,
                old_value=change.old_value,
                new_value=change.new_value,
                related=entity,
            )
            for change in diff_entities(schema, before, after)
        ]

    def _stored(self, change: FieldChange) -> FieldChange:
        return FieldChange(
            field_name=change.field_name,
            old_value=truncate(change.old_value, self._max_value_length),
            new_value=truncate(change.new_value, self._max_value_length),
            related=change.related,
        )

    def _stored_label(self, label: str | None) -> str | None:
        if label is None:
            return None
        return label[: self._max_label_length]
