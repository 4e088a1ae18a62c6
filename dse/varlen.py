"""Variable-length integer parameter codec.

PlayNote events carry their key-down duration as 0-3 little-endian bytes,
with the byte count stored separately in the top two bits of the note byte.
The count is authoritative on decode: corpus files sometimes spend more
bytes than needed (most often a lone ``00`` byte for a zero duration), so
the decoder must never guess the width from the value.

Encoding always produces the canonical (minimal) form:

  0                  -> no bytes
  1 .. 0xFF          -> 1 byte
  0x100 .. 0xFFFF    -> 2 bytes
  0x10000 .. 0xFFFFFF -> 3 bytes
  larger             -> 4 bytes

A file that used a padded encoding therefore re-encodes to a functionally
equivalent but shorter track.
"""

from __future__ import annotations

from typing import Tuple

MAX_WIDTH = 4
MAX_VALUE = (1 << (8 * MAX_WIDTH)) - 1


def canonical_size(value: int) -> int:
    """Return the minimal number of bytes needed to store ``value``."""
    if value < 0 or value > MAX_VALUE:
        raise ValueError(f"value out of range: {value}")
    size = 0
    while value:
        size += 1
        value >>= 8
    return size


def decode(data: bytes, declared_count: int) -> int:
    """Zero-extend the first ``declared_count`` bytes of ``data``."""
    if declared_count < 0 or declared_count > MAX_WIDTH:
        raise ValueError(f"declared byte count must be 0-{MAX_WIDTH}, got {declared_count}")
    if len(data) < declared_count:
        raise ValueError(
            f"need {declared_count} parameter bytes, only {len(data)} available"
        )
    return int.from_bytes(data[:declared_count], "little")


def encode_canonical(value: int) -> Tuple[bytes, int]:
    """Return ``(bytes, declared_count)`` in canonical minimal form."""
    size = canonical_size(value)
    return value.to_bytes(size, "little"), size


def is_canonical(value: int, declared_count: int) -> bool:
    return canonical_size(value) == declared_count
