"""Field-level diffing over registered entity schemas."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from services.state.entity_audit.domain import ABSENT, FieldChange, FieldValue
from services.state.entity_audit.schema_registry import EntitySchema


def diff(
    field_names: Iterable[str],
    before: Mapping[str, FieldValue],
    after: Mapping[str, FieldValue],
) -> list[FieldChange]:
    """Return changes between two snapshots in field declaration order.

    Both snapshots hold canonical representations as produced by
    ``EntitySchema.snapshot``; they are compared as they are. A field
    missing from a snapshot reads as ``ABSENT``, and identical snapshots
    yield an empty list.
    """
    changes: list[FieldChange] = []
    for name in field_names:
        old_value = before.get(name, ABSENT)
        new_value = after.get(name, ABSENT)
        if old_value == new_value:
            continue
        changes.append(
            FieldChange(field_name=name, old_value=old_value, new_value=new_value)
        )
    return changes


def diff_entities(
    schema: EntitySchema, before: Any | None, after: Any | None
) -> list[FieldChange]:
    """Snapshot both entity states through ``schema`` and diff them."""
    return diff(schema.field_names, schema.snapshot(before), schema.snapshot(after))
