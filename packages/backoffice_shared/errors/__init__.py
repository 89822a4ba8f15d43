"""Public shared error API for back-office services."""

from . import codes
from .factories import (
    conflict_error,
    dependency_error,
    internal_error,
    not_found_error,
    policy_error,
    validation_error,
)
from .status import http_status_for, http_status_for_errors
from .types import ErrorCategory, ErrorDetail

__all__ = [
    "ErrorCategory",
    "ErrorDetail",
    "codes",
    "conflict_error",
    "dependency_error",
    "http_status_for",
    "http_status_for_errors",
    "internal_error",
    "not_found_error",
    "policy_error",
    "validation_error",
]
