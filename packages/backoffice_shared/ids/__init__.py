"""Shared ULID primitives for binary identifiers."""

from packages.backoffice_shared.ids.sqlalchemy import (
    ULID_BYTES_LENGTH,
    ulid_column,
    ulid_length_check,
)
from packages.backoffice_shared.ids.ulid import (
    MonotonicUlidFactory,
    current_timestamp_ms,
    generate_ulid_bytes,
    generate_ulid_str,
    require_ulid_bytes,
    ulid_bytes_to_str,
    ulid_datetime,
    ulid_str_to_bytes,
    ulid_timestamp_ms,
)

__all__ = [
    "MonotonicUlidFactory",
    "ULID_BYTES_LENGTH",
    "current_timestamp_ms",
    "generate_ulid_bytes",
    "generate_ulid_str",
    "require_ulid_bytes",
    "ulid_bytes_to_str",
    "ulid_column",
    "ulid_datetime",
    "ulid_length_check",
    "ulid_str_to_bytes",
    "ulid_timestamp_ms",
]
