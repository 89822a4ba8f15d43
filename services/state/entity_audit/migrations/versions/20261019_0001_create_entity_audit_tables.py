"""create entity audit tables"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

from services.state.entity_audit.component import SERVICE_SCHEMA_NAME

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def _ulid(name: str, table: str) -> list[sa.SchemaItem]:
    """Return a 16-byte ULID column plus its length check."""
    return [
        sa.Column(name, sa.LargeBinary(length=16), nullable=False),
        sa.CheckConstraint(f"length({name}) = 16", name=f"ck_{table}_{name}_ulid_16"),
    ]


def upgrade() -> None:
    """Create the version table and the append-only change log."""
    schema = SERVICE_SCHEMA_NAME

    op.create_table(
        "entity_versions",
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=128), nullable=False),
        *_ulid("version_token", "entity_versions"),
        sa.Column("display_label", sa.String(length=200), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("entity_type", "entity_id", name="pk_entity_versions"),
        schema=schema,
    )

    op.create_table(
        "change_records",
        sa.Column(
            "seq",
            sa.BigInteger(),
            sa.Identity(always=False),
            primary_key=True,
            nullable=False,
        ),
        *_ulid("operation_id", "change_records"),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=128), nullable=False),
        sa.Column("change_type", sa.String(length=16), nullable=False),
        sa.Column("actor_id", sa.String(length=128), nullable=True),
        sa.Column("actor_name", sa.String(length=200), nullable=True),
        sa.Column("timestamp_utc", sa.DateTime(timezone=True), nullable=False),
        sa.Column("entity_display_label", sa.String(length=200), nullable=True),
        sa.Column("field_changes", sa.JSON(), nullable=False),
        sa.UniqueConstraint("operation_id", name="uq_change_records_operation_id"),
        sa.CheckConstraint(
            "change_type IN ('Created', 'Modified', 'Deleted')",
            name="ck_change_records_change_type",
        ),
        schema=schema,
    )
    op.create_index(
        "ix_change_records_entity",
        "change_records",
        ["entity_type", "entity_id"],
        schema=schema,
    )
    op.create_index(
        "ix_change_records_timeline",
        "change_records",
        ["timestamp_utc", "operation_id"],
        schema=schema,
    )
    op.create_index(
        "ix_change_records_actor_id", "change_records", ["actor_id"], schema=schema
    )


def downgrade() -> None:
    """Drop entity audit tables."""
    schema = SERVICE_SCHEMA_NAME
    op.drop_index("ix_change_records_actor_id", table_name="change_records", schema=schema)
    op.drop_index("ix_change_records_timeline", table_name="change_records", schema=schema)
    op.drop_index("ix_change_records_entity", table_name="change_records", schema=schema)
    op.drop_table("change_records", schema=schema)
    op.drop_table("entity_versions", schema=schema)
