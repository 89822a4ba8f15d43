"""Context propagation helpers for structured logging.

Fields bound here ride along on every log line emitted from the same
``contextvars`` context, so request correlation does not need repeating at
each call site.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Mapping

_LOG_CONTEXT: ContextVar[dict[str, str]] = ContextVar(
    "backoffice_log_context", default={}
)


def get_context() -> dict[str, str]:
    """Return a shallow copy of current logging context."""
    return dict(_LOG_CONTEXT.get())


def bind_context(**values: object) -> None:
    """Bind stringified values into the current logging context.

    ``None`` values are skipped.
    """
    bound = {str(key): str(value) for key, value in values.items() if value is not None}
    if bound:
        _LOG_CONTEXT.set({**_LOG_CONTEXT.get(), **bound})


def clear_context(*keys: str) -> None:
    """Clear selected keys or the entire logging context."""
    if not keys:
        _LOG_CONTEXT.set({})
        return
    remaining = {
        key: value for key, value in _LOG_CONTEXT.get().items() if key not in keys
    }
    _LOG_CONTEXT.set(remaining)


@contextmanager
def log_context(values: Mapping[str, object]) -> Iterator[None]:
    """Temporarily bind logging context for the duration of a block."""
    token = _LOG_CONTEXT.set(dict(_LOG_CONTEXT.get()))
    try:
        bind_context(**dict(values))
        yield
    finally:
        _LOG_CONTEXT.reset(token)
