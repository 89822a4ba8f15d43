"""Tests for ULID generation and conversion helpers."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from packages.backoffice_shared.ids import (
    MonotonicUlidFactory,
    generate_ulid_bytes,
    generate_ulid_str,
    require_ulid_bytes,
    ulid_bytes_to_str,
    ulid_datetime,
    ulid_str_to_bytes,
    ulid_timestamp_ms,
)


def test_string_and_bytes_forms_convert_both_ways() -> None:
    """Canonical strings and 16-byte values should convert losslessly."""
    value = generate_ulid_bytes()
    text = ulid_bytes_to_str(value)

    assert len(text) == 26
    assert ulid_str_to_bytes(text) == value
    assert ulid_str_to_bytes(text.lower()) == value


def test_timestamp_is_embedded_in_high_bits() -> None:
    """The first 48 bits should carry the millisecond timestamp."""
    value = generate_ulid_bytes(timestamp_ms=1_767_225_600_000)

    assert ulid_timestamp_ms(value) == 1_767_225_600_000
    assert ulid_datetime(value) == datetime(2026, 1, 1, tzinfo=UTC)


def test_ulids_sort_by_timestamp() -> None:
    """Later timestamps should sort after earlier ones as strings."""
    earlier = generate_ulid_str(timestamp_ms=1_000)
    later = generate_ulid_str(timestamp_ms=2_000)

    assert earlier < later


@pytest.mark.parametrize("text", ["short", "I" * 26, "8" + "0" * 25])
def test_invalid_strings_are_rejected(text: str) -> None:
    """Bad length, alphabet, or overflow should raise ValueError."""
    with pytest.raises(ValueError):
        ulid_str_to_bytes(text)


def test_require_ulid_bytes_checks_length() -> None:
    """Only 16-byte binary values should pass."""
    assert require_ulid_bytes(bytearray(16)) == bytes(16)
    with pytest.raises(ValueError):
        require_ulid_bytes(b"\x00" * 15)
    with pytest.raises(ValueError):
        require_ulid_bytes("0" * 16)


def test_out_of_range_timestamp_is_rejected() -> None:
    """Timestamps outside 48 bits cannot be encoded."""
    with pytest.raises(ValueError):
        generate_ulid_bytes(timestamp_ms=-1)
    with pytest.raises(ValueError):
        generate_ulid_bytes(timestamp_ms=1 << 48)


def test_monotonic_factory_orders_values_within_one_millisecond() -> None:
    """Values from the same millisecond should still strictly increase."""
    factory = MonotonicUlidFactory()

    values = [factory.next_bytes(timestamp_ms=5_000) for _ in range(50)]

    assert values == sorted(values)
    assert len(set(values)) == 50
    assert {ulid_timestamp_ms(value) for value in values} == {5_000}


def test_monotonic_factory_survives_clock_stepping_back() -> None:
    """A smaller timestamp should not produce a smaller value."""
    factory = MonotonicUlidFactory()

    first = factory.next_bytes(timestamp_ms=9_000)
    second = factory.next_bytes(timestamp_ms=8_000)

    assert second > first
    assert ulid_timestamp_ms(second) == 9_000
