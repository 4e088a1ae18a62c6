from pathlib import Path
import sys

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from dse import varlen  # noqa: E402


def test_zero_encodes_to_no_bytes() -> None:
    assert varlen.encode_canonical(0) == (b"", 0)


@pytest.mark.parametrize(
    "value, expected",
    [
        (1, b"\x01"),
        (0xFF, b"\xff"),
        (0x100, b"\x00\x01"),
        (0xFFFF, b"\xff\xff"),
        (0x10000, b"\x00\x00\x01"),
        (0xFFFFFF, b"\xff\xff\xff"),
        (0x1000000, b"\x00\x00\x00\x01"),
        (0xFFFFFFFF, b"\xff\xff\xff\xff"),
    ],
)
def test_canonical_width_boundaries(value: int, expected: bytes) -> None:
    data, count = varlen.encode_canonical(value)
    assert data == expected
    assert count == len(expected)
    assert varlen.decode(data, count) == value


def test_decode_is_driven_by_declared_count() -> None:
    """A padded zero still decodes to zero."""
    assert varlen.decode(b"\x00", 1) == 0
    assert not varlen.is_canonical(0, 1)
    # Extra bytes beyond the declared count are not consumed.
    assert varlen.decode(b"\x05\x07", 1) == 5
    assert varlen.decode(b"\x05\x00\x00", 3) == 5


def test_decode_rejects_short_input() -> None:
    with pytest.raises(ValueError):
        varlen.decode(b"\x01", 2)


def test_out_of_range_values() -> None:
    with pytest.raises(ValueError):
        varlen.encode_canonical(-1)
    with pytest.raises(ValueError):
        varlen.encode_canonical(1 << 32)
    with pytest.raises(ValueError):
        varlen.decode(b"\x00" * 5, 5)
