"""Public API for shared back-office configuration utilities."""

from .loader import load_settings
from .models import (
    DEFAULT_CONFIG_PATH,
    BackofficeSettings,
    ComponentsSettings,
    LoggingSettings,
    ObservabilitySettings,
    resolve_component_settings,
)

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "BackofficeSettings",
    "ComponentsSettings",
    "LoggingSettings",
    "ObservabilitySettings",
    "resolve_component_settings",
    "load_settings",
]
