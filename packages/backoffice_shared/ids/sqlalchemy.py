"""SQLAlchemy helpers for ULID-backed binary columns."""

from __future__ import annotations

from sqlalchemy import CheckConstraint, Column, LargeBinary

ULID_BYTES_LENGTH = 16


def ulid_column(
    name: str,
    *,
    table_name: str,
    primary_key: bool = False,
    unique: bool = False,
    nullable: bool = False,
) -> Column[bytes]:
    """Return a 16-byte binary column carrying a named length check.

    ``LargeBinary`` renders as BYTEA on PostgreSQL and BLOB on SQLite, so the
    same table metadata serves production and repository tests.
    """
    return Column(
        name,
        LargeBinary(ULID_BYTES_LENGTH),
        ulid_length_check(name, f"ck_{table_name}_{name}_ulid_16"),
        primary_key=primary_key,
        unique=unique,
        nullable=nullable,
    )


def ulid_length_check(column_name: str, constraint_name: str) -> CheckConstraint:
    """Return a CHECK constraint enforcing fixed 16-byte ULID storage."""
    return CheckConstraint(
        f"length({column_name}) = {ULID_BYTES_LENGTH}",
        name=constraint_name,
    )
