"""ULID conversion and generation helpers.

Canonical big-endian ULID handling shared by every component. The string form
is 26 Crockford Base32 characters representing exactly 128 bits; the binary
form is 16 bytes with the millisecond timestamp in the high 48 bits.
"""

from __future__ import annotations

import secrets
import time
from datetime import datetime, timezone
from threading import Lock

_ULID_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_DECODE_TABLE = {char: index for index, char in enumerate(_ULID_ALPHABET)}
_MAX_ULID_INT = (1 << 128) - 1
_MAX_TIMESTAMP_MS = (1 << 48) - 1


def ulid_str_to_bytes(value: str) -> bytes:
    """Decode canonical 26-char ULID string into 16-byte big-endian form."""
    candidate = value.strip().upper()
    if len(candidate) != 26:
        raise ValueError("ULID string must be exactly 26 characters")

    number = 0
    for char in candidate:
        index = _DECODE_TABLE.get(char)
        if index is None:
            raise ValueError(f"Invalid ULID character: {char!r}")
        number = (number << 5) | index

    # 26 base32 chars encode 130 bits; the top two must be zero.
    if number > _MAX_ULID_INT:
        raise ValueError("ULID value exceeds 128-bit range")
    return number.to_bytes(16, byteorder="big", signed=False)


def ulid_bytes_to_str(value: bytes) -> str:
    """Encode 16-byte big-endian ULID into canonical 26-char Base32 string."""
    if len(value) != 16:
        raise ValueError("ULID bytes must be exactly 16 bytes")

    number = int.from_bytes(value, byteorder="big", signed=False)
    chars = ["0"] * 26
    for position in range(25, -1, -1):
        number, remainder = divmod(number, 32)
        chars[position] = _ULID_ALPHABET[remainder]
    return "".join(chars)


def generate_ulid_bytes(*, timestamp_ms: int | None = None) -> bytes:
    """Generate a new ULID as canonical 16-byte big-endian binary.

    The timestamp defaults to the current wall clock in milliseconds; the
    remaining 80 bits come from ``secrets``.
    """
    ts_ms = current_timestamp_ms() if timestamp_ms is None else int(timestamp_ms)
    if ts_ms < 0 or ts_ms > _MAX_TIMESTAMP_MS:
        raise ValueError("timestamp_ms out of ULID 48-bit range")

    entropy = int.from_bytes(secrets.token_bytes(10), byteorder="big", signed=False)
    return ((ts_ms << 80) | entropy).to_bytes(16, byteorder="big", signed=False)


def generate_ulid_str(*, timestamp_ms: int | None = None) -> str:
    """Generate a new ULID in canonical 26-char string format."""
    return ulid_bytes_to_str(generate_ulid_bytes(timestamp_ms=timestamp_ms))


def ulid_timestamp_ms(value: bytes) -> int:
    """Return the embedded millisecond timestamp of one binary ULID."""
    return int.from_bytes(require_ulid_bytes(value)[:6], byteorder="big", signed=False)


def ulid_datetime(value: bytes) -> datetime:
    """Return the embedded timestamp of one binary ULID as aware UTC datetime."""
    return datetime.fromtimestamp(ulid_timestamp_ms(value) / 1000, tz=timezone.utc)


def current_timestamp_ms() -> int:
    """Return wall-clock milliseconds since the epoch."""
    return time.time_ns() // 1_000_000


def require_ulid_bytes(value: object, *, field_name: str = "id") -> bytes:
    """Validate and normalize a value as canonical 16-byte ULID binary."""
    if isinstance(value, (bytes, bytearray, memoryview)) and len(value) == 16:
        return bytes(value)
    raise ValueError(f"{field_name} must be 16-byte ULID binary")


class MonotonicUlidFactory:
    """Generate strictly increasing ULIDs within one process.

    Within one millisecond, or when the clock steps backwards, the previous
    value is incremented instead of drawing fresh entropy, so generation
    order and sort order agree.
    """

    def __init__(self) -> None:
        self._last = 0
        self._lock = Lock()

    def next_bytes(self, *, timestamp_ms: int | None = None) -> bytes:
        """Return the next ULID, never smaller than the previous one."""
        candidate = int.from_bytes(
            generate_ulid_bytes(timestamp_ms=timestamp_ms), byteorder="big"
        )
        with self._lock:
            if candidate >> 80 <= self._last >> 80:
                candidate = self._last + 1
                if candidate > _MAX_ULID_INT:
                    raise OverflowError("ULID space exhausted")
            self._last = candidate
        return candidate.to_bytes(16, byteorder="big", signed=False)
