"""Configuration loading with deterministic precedence.

The cascade is always:
1) CLI/init params
2) Environment variables
3) ~/.config/backoffice/backoffice.yaml
4) Model defaults

Environment variable format:
- Prefix: ``BACKOFFICE_``
- Nested keys: ``__`` separator
- Example: ``BACKOFFICE_LOGGING__LEVEL=DEBUG`` -> ``logging.level = "DEBUG"``
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

from .models import _ACTIVE_CONFIG_PATH, DEFAULT_CONFIG_PATH, BackofficeSettings


def load_settings(
    *,
    cli_params: Mapping[str, Any] | None = None,
    config_path: str | Path | None = None,
) -> BackofficeSettings:
    """Load settings by applying the standard precedence cascade."""
    resolved_path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    token = _ACTIVE_CONFIG_PATH.set(resolved_path)
    try:
        return BackofficeSettings(**_as_plain_dict(cli_params or {}))
    finally:
        _ACTIVE_CONFIG_PATH.reset(token)


def _as_plain_dict(value: Mapping[str, Any]) -> dict[str, Any]:
    """Copy a mapping into plain ``dict`` values recursively."""
    output: dict[str, Any] = {}
    for key, subvalue in value.items():
        if isinstance(subvalue, Mapping):
            output[str(key)] = _as_plain_dict(subvalue)
        else:
            output[str(key)] = subvalue
    return output
