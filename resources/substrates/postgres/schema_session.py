"""Service-schema scoped session helpers for Postgres shared infrastructure."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.orm import Session, sessionmaker

from resources.substrates.postgres.session import transactional_session


class ServiceSchemaSessionProvider:
    """Provide transactional sessions pinned to one service-owned schema.

    On Postgres each transaction gets ``SET LOCAL`` statements for the
    search path and, when configured, lock and statement timeouts. Other
    dialects (SQLite in tests) get plain transactional sessions.
    """

    def __init__(
        self,
        *,
        session_factory: sessionmaker[Session],
        schema: str,
        lock_timeout_seconds: float | None = None,
        statement_timeout_seconds: float | None = None,
    ) -> None:
        self._validate_schema(schema)
        self._session_factory = session_factory
        self._schema = schema
        self._lock_timeout_seconds = lock_timeout_seconds
        self._statement_timeout_seconds = statement_timeout_seconds

    @property
    def schema(self) -> str:
        """Return the owned schema name for this provider."""
        return self._schema

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Yield a transaction-scoped session with local settings applied."""
        with transactional_session(self._session_factory) as db:
            if db.get_bind().dialect.name == "postgresql":
                for statement in self._local_statements():
                    db.execute(text(statement))
            yield db

    def _local_statements(self) -> list[str]:
        statements = [f"SET LOCAL search_path TO {self._schema}, public"]
        if self._lock_timeout_seconds is not None:
            statements.append(
                f"SET LOCAL lock_timeout = '{_milliseconds(self._lock_timeout_seconds)}ms'"
            )
        if self._statement_timeout_seconds is not None:
            statements.append(
                "SET LOCAL statement_timeout = "
                f"'{_milliseconds(self._statement_timeout_seconds)}ms'"
            )
        return statements

    def _validate_schema(self, schema: str) -> None:
        """Validate schema names to prevent malformed search_path statements."""
        if not schema:
            raise ValueError("postgres schema is required")
        if not schema.replace("_", "").isalnum():
            raise ValueError("postgres schema must be alphanumeric/underscore")


def _milliseconds(seconds: float) -> int:
    return max(1, int(seconds * 1000))
