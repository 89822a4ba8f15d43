"""Canonical value representation tests for field diffing."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum

import pytest

from services.state.entity_audit.canonical import canonical_repr, truncate
from services.state.entity_audit.domain import ABSENT


class _Status(Enum):
    ACTIVE = 1
    BLOCKED = 2


@pytest.mark.parametrize(
    "value",
    [Decimal("1.50"), Decimal("1.500"), 1.5, Decimal("15E-1")],
)
def test_equivalent_numbers_share_one_form(value: object) -> None:
    """Numerically equal values should render identically."""
    assert canonical_repr(value) == "1.5"


def test_numbers_render_without_exponent_or_negative_zero() -> None:
    """Large, integral, and zero numbers should render as plain decimals."""
    assert canonical_repr(Decimal("1E+3")) == "1000"
    assert canonical_repr(Decimal("100.00")) == "100"
    assert canonical_repr(Decimal("-0.00")) == "0"
    assert canonical_repr(-0.0) == "0"
    assert canonical_repr(42) == "42"


def test_datetimes_render_in_utc_with_trimmed_fraction() -> None:
    """Aware datetimes should convert to UTC; naive ones count as UTC."""
    offset = timezone(timedelta(hours=3))
    assert (
        canonical_repr(datetime(2024, 5, 1, 15, 30, tzinfo=offset))
        == "2024-05-01T12:30:00Z"
    )
    assert canonical_repr(datetime(2024, 5, 1, 12, 30, 0, 250000)) == (
        "2024-05-01T12:30:00.25Z"
    )
    assert canonical_repr(date(2024, 5, 1)) == "2024-05-01"


def test_booleans_and_enums_have_stable_names() -> None:
    """Booleans and enum members should render by name, not by value."""
    assert canonical_repr(True) == "True"
    assert canonical_repr(False) == "False"
    assert canonical_repr(_Status.BLOCKED) == "BLOCKED"


def test_null_and_binary_values_are_absent() -> None:
    """None and binary payloads should both read as absent."""
    assert canonical_repr(None) is ABSENT
    assert canonical_repr(b"\x00\x01") is ABSENT
    assert canonical_repr(ABSENT) is ABSENT
    assert canonical_repr("") == ""


def test_truncate_cuts_long_values_and_keeps_absent() -> None:
    """truncate should only shorten strings above the limit."""
    assert truncate("x" * 12, 10) == "x" * 10
    assert truncate("short", 10) == "short"
    assert truncate(ABSENT, 10) is ABSENT
