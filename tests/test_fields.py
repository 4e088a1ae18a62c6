from pathlib import Path
import sys

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from builders import keygroup, sample_info  # noqa: E402
from dse.errors import SchemaMismatch, Truncated  # noqa: E402
from dse.fields import Known, Opaque, Schema, derived, known, opaque, text  # noqa: E402
from dse.schemas import KEYGROUP, SAMPLE_INFO, SCHEMAS, SONG, SWDL_HEADER  # noqa: E402


def test_schema_sizes() -> None:
    sizes = {name: schema.size for name, schema in SCHEMAS.items()}
    assert sizes == {
        "swdl_header": 0x4C,
        "smdl_header": 0x3C,
        "swdl_chunk_header": 8,
        "smdl_chunk_header": 8,
        "sample_info": 0x40,
        "program_header": 0x10,
        "lfo": 0x10,
        "split": 0x30,
        "keygroup": 8,
        "song": 60,
        "track_preamble": 4,
    }


def test_parse_then_encode_reproduces_span() -> None:
    """Known + opaque fields cover every byte of the record."""
    raw = sample_info(7, rootkey=-3, unk13=b"\xde\xad\xbe\xef")
    record = SAMPLE_INFO.parse(raw)
    assert record["id"] == 7
    assert record["rootkey"] == -3
    assert record["smplloop"] is True
    assert record["unk13"] == b"\xde\xad\xbe\xef"
    assert record.field("unk13") == Opaque(b"\xde\xad\xbe\xef", 0x1C)
    assert record.to_bytes() == raw


def test_parse_at_offset_and_truncation() -> None:
    data = b"\x00" * 3 + keygroup(4)
    assert KEYGROUP.parse(data, 3)["id"] == 4
    with pytest.raises(Truncated) as excinfo:
        KEYGROUP.parse(data, 4, tag="kgrp")
    assert excinfo.value.chunk_tag == "kgrp"
    assert excinfo.value.expected == 8
    assert excinfo.value.available == 7


def test_known_field_edit_validates() -> None:
    record = KEYGROUP.parse(keygroup(1))
    record["priority"] = 99
    assert record.to_bytes()[3] == 99
    with pytest.raises(SchemaMismatch):
        record["priority"] = 256
    with pytest.raises(SchemaMismatch):
        record["poly"] = "x"
    with pytest.raises(SchemaMismatch):
        record["missing"] = 1


def test_opaque_field_replacement_keeps_size() -> None:
    record = KEYGROUP.parse(keygroup(1))
    record["unk50"] = b"\x7f"
    assert record.to_bytes()[6] == 0x7F
    with pytest.raises(SchemaMismatch):
        record["unk50"] = b"\x00\x00"


def test_equality_ignores_derived_fields() -> None:
    raw = bytearray(SONG.size)
    first = SONG.parse(bytes(raw))
    raw[SONG.spec("nbtrks").offset] = 5
    second = SONG.parse(bytes(raw))
    assert second["nbtrks"] == 5
    assert first == second
    assert "nbtrks" not in second.known_values()


def test_bool_field_keeps_unusual_bytes() -> None:
    schema = Schema("flags", [known("on", "bool"), opaque("rest", 1)])
    record = schema.parse(b"\x02\xaa")
    assert record["on"] == 2
    assert record.to_bytes() == b"\x02\xaa"


def test_text_field_fill() -> None:
    schema = Schema("named", [text("name", 8, pad=0xAA)])
    record = schema.parse(b"abc\x00\xaa\xaa\xaa\xaa")
    assert record["name"] == "abc"
    record["name"] = "hello"
    assert record.to_bytes() == b"hello\x00\xaa\xaa"
    with pytest.raises(SchemaMismatch):
        record["name"] = "much too long"


def test_new_fills_opaque_fields_from_registry(registry) -> None:
    record = KEYGROUP.new(registry, id=3, poly=-1)
    assert record.field("unk50") == Opaque(b"\x00", 6)
    assert record.field("id") == Known(3, "u16")
    assert record["priority"] == 0


def test_new_without_default_is_an_error() -> None:
    schema = Schema("bare", [derived("count", "u8"), opaque("mystery", 2)])
    with pytest.raises(SchemaMismatch):
        schema.new()
    assert schema.new(mystery=b"\x01\x02").to_bytes() == b"\x00\x01\x02"


def test_header_schema_field_offsets() -> None:
    assert SWDL_HEADER.spec("flen").offset == 0x04
    assert SWDL_HEADER.spec("fname").offset == 0x1C
    assert SWDL_HEADER.spec("pcmdlen").offset == 0x3C
    assert SWDL_HEADER.spec("wavilen").offset == 0x48


def test_text_field_keeps_unusual_fill_until_edited() -> None:
    schema = Schema("named", [text("name", 8, pad=0xAA)])
    raw = b"abc\x00\x41\xaa\xaa\xaa"
    record = schema.parse(raw)
    assert record["name"] == "abc"
    assert record.field("name") == Known("abc", "text", raw)
    assert record.to_bytes() == raw

    record.set_text("name", "abc", raw)
    assert record.to_bytes() == raw
    record.set_text("name", "abd", raw)  # stored bytes no longer match the value
    assert record.to_bytes() == b"abd\x00\xaa\xaa\xaa\xaa"
    with pytest.raises(SchemaMismatch):
        KEYGROUP.parse(keygroup(1)).set_text("id", "x")
