"""HTTP status mapping for shared error categories.

REST layers built on top of service envelopes use this mapping so conflicts,
validation failures, and missing resources stay distinguishable on the wire.
"""

from __future__ import annotations

from typing import Iterable

from .types import ErrorCategory, ErrorDetail

_STATUS_BY_CATEGORY: dict[ErrorCategory, int] = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.POLICY: 403,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.CONFLICT: 409,
    ErrorCategory.DEPENDENCY: 503,
    ErrorCategory.INTERNAL: 500,
    ErrorCategory.UNSPECIFIED: 500,
}


def http_status_for(error: ErrorDetail) -> int:
    """Return the HTTP status code for one error."""
    if error.category == ErrorCategory.DEPENDENCY and not error.retryable:
        return 502
    return _STATUS_BY_CATEGORY[error.category]


def http_status_for_errors(errors: Iterable[ErrorDetail]) -> int:
    """Return the status for the first error, or 200 when there are none."""
    for error in errors:
        return http_status_for(error)
    return 200
