"""Canonical string representation of field values.

Every value compared by the differ goes through ``canonical_repr`` so that
equivalent values share one form regardless of how they were produced:

- ``None`` and binary payloads are ``ABSENT``; a null field and a missing
  field are the same thing, and binary content is not audited.
- Numbers are plain decimal strings without exponent or trailing zeros
  (``Decimal("1.50")``, ``1.5`` and ``Decimal("1.500")`` all become
  ``"1.5"``; ``-0`` becomes ``"0"``).
- Datetimes are converted to UTC (naive values are taken as UTC) and
  rendered as ``YYYY-MM-DDTHH:MM:SS[.ffffff]Z`` with trailing fractional
  zeros removed. Dates are ISO ``YYYY-MM-DD``.
- Booleans are ``"True"``/``"False"``; enum members render their name.
"""

from __future__ import annotations

import math
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from uuid import UUID

from services.state.entity_audit.domain import ABSENT, Absent, FieldValue


def canonical_repr(value: object) -> FieldValue:
    """Return the canonical representation of one field value."""
    if value is None or value is ABSENT:
        return ABSENT
    if isinstance(value, (bytes, bytearray, memoryview)):
        return ABSENT
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, Enum):
        return value.name
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        return _decimal_repr(Decimal(repr(value)))
    if isinstance(value, Decimal):
        if value.is_nan():
            return "NaN"
        if value.is_infinite():
            return "Infinity" if value > 0 else "-Infinity"
        return _decimal_repr(value)
    if isinstance(value, datetime):
        return _datetime_repr(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, time):
        return _trim_fraction(value.replace(tzinfo=None).isoformat())
    if isinstance(value, UUID):
        return str(value)
    return str(value)


def truncate(value: FieldValue, limit: int) -> FieldValue:
    """Cut a representation down to ``limit`` characters for storage."""
    if isinstance(value, Absent) or len(value) <= limit:
        return value
    return value[:limit]


def _decimal_repr(value: Decimal) -> str:
    if value.is_zero():
        return "0"
    text = format(value.normalize(), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _datetime_repr(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    utc = value.astimezone(timezone.utc).replace(tzinfo=None)
    return _trim_fraction(utc.isoformat()) + "Z"


def _trim_fraction(text: str) -> str:
    if "." not in text:
        return text
    head, fraction = text.split(".", 1)
    fraction = fraction.rstrip("0")
    return f"{head}.{fraction}" if fraction else head
