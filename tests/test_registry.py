from pathlib import Path
import json
import sys

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from dse.errors import RegistryMiss, SchemaMismatch  # noqa: E402
from dse.registry import Registry  # noqa: E402


def test_bundled_registry_lookups(registry: Registry) -> None:
    assert registry.version == 1
    assert registry.lookup("sample_info", "unk1") == b"\x01\xaa"
    assert registry.lookup("song", "unkpad") == b"\xff" * 16
    assert registry.lookup("keygroup", "id") is None
    assert registry.lookup("nonexistent", "unk1") is None


def test_bundled_registry_is_shared(registry: Registry) -> None:
    assert Registry.bundled() is registry


def test_require_raises_registry_miss(registry: Registry) -> None:
    with pytest.raises(RegistryMiss) as excinfo:
        registry.require("keygroup", "priority")
    assert excinfo.value.record_type == "keygroup"
    assert excinfo.value.field_id == "priority"
    # Not fatal in the ValueError sense: callers handle it locally.
    assert not isinstance(excinfo.value, ValueError)


def test_strippable_flags(registry: Registry) -> None:
    assert registry.is_strippable("sample_info", "unk13")
    assert not registry.is_strippable("swdl_header", "unk17")
    assert not registry.is_strippable("lfo", "unk32")
    assert not registry.is_strippable("keygroup", "priority")
    assert registry.can_omit("keygroup", "unk50", b"\x00")
    assert not registry.can_omit("keygroup", "unk50", b"\x01")
    assert not registry.can_omit("swdl_header", "unk17", bytes.fromhex("0c02"))


def test_registry_is_read_only(registry: Registry) -> None:
    with pytest.raises(TypeError):
        registry._entries[("keygroup", "unk50")] = None  # type: ignore[index]


def test_from_path(tmp_path: Path) -> None:
    path = tmp_path / "defaults.json"
    path.write_text(
        json.dumps({"version": 2, "records": {"keygroup": {"unk50": {"default": "7f", "strippable": False}}}}),
        encoding="utf-8",
    )
    custom = Registry.from_path(path)
    assert custom.version == 2
    assert len(custom) == 1
    assert custom.lookup("keygroup", "unk50") == b"\x7f"
    assert not custom.is_strippable("keygroup", "unk50")
    assert custom.lookup("keygroup", "unk51") is None


@pytest.mark.parametrize(
    "records",
    [
        {"unknown_record": {"unk1": {"default": "00"}}},
        {"keygroup": {"nope": {"default": "00"}}},
        {"keygroup": {"priority": {"default": "00"}}},
        {"keygroup": {"unk50": {"default": "0000"}}},
        {"keygroup": {"unk50": {"default": "zz"}}},
        {"keygroup": {"unk50": {}}},
    ],
)
def test_invalid_documents_are_rejected(records: dict) -> None:
    with pytest.raises(SchemaMismatch):
        Registry.from_mapping({"version": 1, "records": records})


@pytest.mark.parametrize(
    "document",
    [
        ["not", "a", "mapping"],
        {"version": 1, "records": ["keygroup"]},
        {"version": 1, "records": {"keygroup": ["unk50"]}},
        {"version": 1, "records": {"keygroup": {"unk50": "00"}}},
        {"version": 1, "records": {"keygroup": {"unk50": {"default": "00", "strippable": "no"}}}},
        {"version": "1", "records": {}},
    ],
)
def test_malformed_documents_are_schema_mismatches(document: object) -> None:
    with pytest.raises(SchemaMismatch):
        Registry.from_mapping(document)  # type: ignore[arg-type]
