"""Static per-entity-type field descriptors used for diffing.

Each tracked entity type registers an ordered tuple of ``FieldDescriptor``
once at startup. Snapshots for both sides of a change are always built from
the same registered descriptors, so the differ never inspects entity types
at runtime.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from threading import Lock
from typing import Any

from services.state.entity_audit.canonical import canonical_repr
from services.state.entity_audit.domain import ABSENT, FieldValue
from services.state.entity_audit.errors import (
    SchemaDriftError,
    UnknownEntitySchemaError,
)

Accessor = Callable[[Any], Any]
Projection = Callable[[Any], FieldValue]
LabelResolver = Callable[[Any], "str | None"]


@dataclass(frozen=True)
class FieldDescriptor:
    """One audited field: its name, how to read it, and how to compare it.

    Without an explicit ``accessor`` the value is read by key from mappings
    and by attribute from other objects; a missing key or attribute reads as
    ``ABSENT``.
    """

    name: str
    accessor: Accessor | None = None
    projection: Projection = canonical_repr

    def value_of(self, entity: Any) -> FieldValue:
        if self.accessor is not None:
            raw = self.accessor(entity)
        elif isinstance(entity, Mapping):
            raw = entity.get(self.name, ABSENT)
        else:
            raw = getattr(entity, self.name, ABSENT)
        return self.projection(raw)


@dataclass(frozen=True)
class EntitySchema:
    """Registered descriptor table for one entity type."""

    entity_type: str
    fields: tuple[FieldDescriptor, ...]
    label_resolver: LabelResolver | None = None

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(descriptor.name for descriptor in self.fields)

    def snapshot(self, entity: Any | None) -> dict[str, FieldValue]:
        """Project one entity into ``{field: canonical value}``.

        ``None`` stands for the side of a creation or deletion where the
        entity does not exist, so every field is ``ABSENT``.
        """
        if entity is None:
            return {descriptor.name: ABSENT for descriptor in self.fields}
        return {descriptor.name: descriptor.value_of(entity) for descriptor in self.fields}

    def display_label(self, entity: Any | None) -> str | None:
        """Resolve the human-readable label for one entity, when configured."""
        if entity is None or self.label_resolver is None:
            return None
        label = self.label_resolver(entity)
        if label is None:
            return None
        label = str(label).strip()
        return label or None


class EntitySchemaRegistry:
    """Process-wide table of entity schemas keyed by entity type name."""

    def __init__(self) -> None:
        self._schemas: dict[str, EntitySchema] = {}
        self._lock = Lock()

    def register(
        self,
        entity_type: str,
        fields: Iterable[FieldDescriptor | str],
        *,
        label_resolver: LabelResolver | None = None,
    ) -> EntitySchema:
        """Register one entity type; plain strings become default descriptors.

        Registering the same type again with equal descriptors in the same
        order returns the existing schema. A different field set, or a field
        read through a different accessor or projection, raises
        ``SchemaDriftError``. Callables compare by identity, so repeated
        registration must pass the same function objects.
        """
        name = entity_type.strip()
        if not name:
            raise ValueError("entity_type is required")
        descriptors = tuple(
            item if isinstance(item, FieldDescriptor) else FieldDescriptor(name=item)
            for item in fields
        )
        if not descriptors:
            raise ValueError(f"entity schema '{name}' must declare at least one field")
        names = [descriptor.name for descriptor in descriptors]
        duplicates = sorted({field for field in names if names.count(field) > 1})
        if duplicates:
            raise ValueError(
                f"entity schema '{name}' declares duplicate fields: {', '.join(duplicates)}"
            )

        schema = EntitySchema(
            entity_type=name, fields=descriptors, label_resolver=label_resolver
        )
        with self._lock:
            existing = self._schemas.get(name)
            if existing is None:
                self._schemas[name] = schema
                return schema
        if existing.fields != schema.fields:
            raise SchemaDriftError(
                f"entity schema '{name}' re-registered with different field descriptors",
                entity_type=name,
            )
        return existing

    def resolve(self, entity_type: str) -> EntitySchema | None:
        """Return the schema for one entity type, or ``None`` when unknown."""
        return self._schemas.get(entity_type)

    def require(self, entity_type: str) -> EntitySchema:
        """Return the schema for one entity type or fail loudly."""
        schema = self.resolve(entity_type)
        if schema is None:
            raise UnknownEntitySchemaError(
                f"no entity schema registered for '{entity_type}'",
                entity_type=entity_type,
            )
        return schema

    def entity_types(self) -> tuple[str, ...]:
        return tuple(sorted(self._schemas))

    def __contains__(self, entity_type: object) -> bool:
        return entity_type in self._schemas
