"""SQLAlchemy table definitions owned by the Entity Audit Service.

``change_records`` carries no foreign key to ``entity_versions``: removing a
deleted entity's version row must leave its history in place.
"""

from __future__ import annotations

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    Identity,
    Index,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    func,
)

from packages.backoffice_shared.ids import ulid_column

metadata = MetaData()

# SQLite only auto-increments INTEGER PRIMARY KEY columns.
SequenceType = BigInteger().with_variant(Integer(), "sqlite")

entity_versions = Table(
    "entity_versions",
    metadata,
    Column("entity_type", String(64), nullable=False),
    Column("entity_id", String(128), nullable=False),
    ulid_column("version_token", table_name="entity_versions"),
    Column("display_label", String(200), nullable=True),
    Column(
        "created_at",
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    ),
    Column(
        "updated_at",
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    ),
    PrimaryKeyConstraint("entity_type", "entity_id", name="pk_entity_versions"),
)

change_records = Table(
    "change_records",
    metadata,
    Column("seq", SequenceType, Identity(always=False), primary_key=True),
    ulid_column("operation_id", table_name="change_records", unique=True),
    Column("entity_type", String(64), nullable=False),
    Column("entity_id", String(128), nullable=False),
    Column("change_type", String(16), nullable=False),
    Column("actor_id", String(128), nullable=True),
    Column("actor_name", String(200), nullable=True),
    Column("timestamp_utc", DateTime(timezone=True), nullable=False),
    Column("entity_display_label", String(200), nullable=True),
    Column("field_changes", JSON, nullable=False),
    CheckConstraint(
        "change_type IN ('Created', 'Modified', 'Deleted')",
        name="ck_change_records_change_type",
    ),
    Index("ix_change_records_entity", "entity_type", "entity_id"),
    Index("ix_change_records_timeline", "timestamp_utc", "operation_id"),
    Index("ix_change_records_actor_id", "actor_id"),
)
