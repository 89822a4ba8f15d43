"""Postgres/SQLAlchemy exception normalization helpers."""

from __future__ import annotations

from packages.backoffice_shared.errors import (
    ErrorDetail,
    codes,
    conflict_error,
    dependency_error,
    internal_error,
)

# lock_not_available, query_canceled (statement_timeout)
_TIMEOUT_SQLSTATES = frozenset({"55P03", "57014"})


def sqlstate_of(exc: BaseException) -> str | None:
    """Return the SQLSTATE carried by a driver error wrapped by SQLAlchemy."""
    original = getattr(exc, "orig", exc)
    for attribute in ("sqlstate", "pgcode"):
        value = getattr(original, attribute, None)
        if isinstance(value, str) and value:
            return value
    return None


def is_timeout_error(exc: BaseException) -> bool:
    """Return ``True`` when a DB error means a bounded wait ran out."""
    if sqlstate_of(exc) in _TIMEOUT_SQLSTATES:
        return True
    message = str(exc).lower()
    return (
        "lock timeout" in message
        or "statement timeout" in message
        or "database is locked" in message
    )


def is_unique_violation(exc: BaseException) -> bool:
    """Return ``True`` for unique/primary key violations on any dialect."""
    if sqlstate_of(exc) == "23505":
        return True
    message = str(exc)
    return (
        "UniqueViolation" in type(getattr(exc, "orig", exc)).__name__
        or "duplicate key value" in message
        or "UNIQUE constraint failed" in message
    )


def normalize_postgres_error(exc: Exception) -> ErrorDetail:
    """Map low-level DB exceptions into shared structured error semantics."""
    exc_type_name = type(exc).__name__
    metadata = {"exception_type": exc_type_name}
    sqlstate = sqlstate_of(exc)
    if sqlstate is not None:
        metadata["sqlstate"] = sqlstate

    if is_unique_violation(exc):
        return conflict_error(
            "resource already exists",
            code=codes.ALREADY_EXISTS,
            metadata=metadata,
        )

    if is_timeout_error(exc):
        return dependency_error(
            "postgres wait exceeded its timeout",
            code=codes.DEPENDENCY_TIMEOUT,
            retryable=True,
            metadata=metadata,
        )

    if "OperationalError" in exc_type_name or "timeout" in str(exc).lower():
        return dependency_error(
            "postgres unavailable",
            code=codes.DEPENDENCY_UNAVAILABLE,
            retryable=True,
            metadata=metadata,
        )

    if "InterfaceError" in exc_type_name or "ProgrammingError" in exc_type_name:
        return dependency_error(
            "postgres request failed",
            code=codes.DEPENDENCY_FAILURE,
            retryable=False,
            metadata=metadata,
        )

    return internal_error(
        "unexpected postgres failure",
        code=codes.UNEXPECTED_EXCEPTION,
        metadata=metadata,
    )
