"""Reconstruct field values from one entity's recorded history."""

from __future__ import annotations

from collections.abc import Iterable

from services.state.entity_audit.domain import ABSENT, ChangeRecord, ChangeType


def replay_field_values(records: Iterable[ChangeRecord]) -> dict[str, str]:
    """Return the latest recorded value of every field of one entity.

    Records may arrive in any order; they are applied oldest first. A
    deletion clears everything recorded so far. Changes of owned entities
    riding along in a record are skipped. Values longer than the storage
    limit come back truncated, since only the stored form exists.
    """
    ordered = sorted(records, key=lambda record: (record.timestamp, record.operation_id))
    identities = {(record.entity_type, record.entity_id) for record in ordered}
    if len(identities) > 1:
        raise ValueError("replay requires the history of exactly one entity")

    values: dict[str, str] = {}
    for record in ordered:
        if record.change_type is ChangeType.DELETED:
            values.clear()
            continue
        for change in record.field_changes:
            if change.related is not None:
                continue
            if change.new_value is ABSENT:
                values.pop(change.field_name, None)
            else:
                values[change.field_name] = change.new_value
    return values
