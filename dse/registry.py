"""Default values for opaque fields.

The registry maps ``(record_type, field_id)`` to the raw bytes most often
seen for that field in surveyed files, plus a flag telling the compact text
exporter whether a field at its default may be left out.  It is loaded once
from a versioned JSON asset and never changes afterwards, so a single
instance can be shared by every container in the process.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import RegistryMiss, SchemaMismatch
from .schemas import SCHEMAS

log = logging.getLogger(__name__)

DEFAULT_ASSET = "defaults_v1.json"


def _require_mapping(value: object, *, where: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise SchemaMismatch(f"{where} must be an object")
    return value


@dataclass(frozen=True)
class RegistryEntry:
    default: bytes
    strippable: bool = True


class Registry:
    """Read-only table of opaque-field defaults."""

    def __init__(self, entries: Mapping[Tuple[str, str], RegistryEntry], *, version: int = 1) -> None:
        self._entries = MappingProxyType(dict(entries))
        self.version = version

    @classmethod
    def from_mapping(cls, document: Mapping[str, Any]) -> "Registry":
        """Build a registry from the decoded JSON asset.

        Every entry must name an opaque field of a known schema and carry a
        default of exactly that field's size.
        """
        document = _require_mapping(document, where="registry document")
        records = _require_mapping(document.get("records"), where="registry 'records'")
        entries: Dict[Tuple[str, str], RegistryEntry] = {}
        for record_type, fields in records.items():
            schema = SCHEMAS.get(record_type)
            if schema is None:
                raise SchemaMismatch(f"registry names unknown record type {record_type!r}")
            fields = _require_mapping(fields, where=f"registry record {record_type!r}")
            for field_id, item in fields.items():
                item = _require_mapping(item, where=f"registry entry {record_type}.{field_id}")
                spec = schema.spec(field_id)
                if not spec.is_opaque:
                    raise SchemaMismatch(f"registry entry {record_type}.{field_id} is not opaque")
                try:
                    default = bytes.fromhex(item["default"])
                except (KeyError, TypeError, ValueError) as exc:
                    raise SchemaMismatch(
                        f"registry entry {record_type}.{field_id} has no valid hex default"
                    ) from exc
                if len(default) != spec.size:
                    raise SchemaMismatch(
                        f"registry default for {record_type}.{field_id} is {len(default)} bytes, "
                        f"field is {spec.size}"
                    )
                strippable = item.get("strippable", True)
                if not isinstance(strippable, bool):
                    raise SchemaMismatch(
                        f"registry entry {record_type}.{field_id}: 'strippable' must be a boolean"
                    )
                entries[(record_type, field_id)] = RegistryEntry(default, strippable)
        version = document.get("version", 1)
        if isinstance(version, bool) or not isinstance(version, int):
            raise SchemaMismatch("registry 'version' must be an integer")
        log.debug("loaded %d registry entries (version %d)", len(entries), version)
        return cls(entries, version=version)

    @classmethod
    def from_path(cls, path: Path | str) -> "Registry":
        with open(path, "r", encoding="utf-8") as handle:
            return cls.from_mapping(json.load(handle))

    @classmethod
    def bundled(cls) -> "Registry":
        """Return the registry shipped with the package."""
        return _bundled()

    @classmethod
    def empty(cls) -> "Registry":
        return cls({})

    def lookup(self, record_type: str, field_id: str) -> Optional[bytes]:
        entry = self._entries.get((record_type, field_id))
        return entry.default if entry is not None else None

    def require(self, record_type: str, field_id: str) -> bytes:
        entry = self._entries.get((record_type, field_id))
        if entry is None:
            raise RegistryMiss(record_type, field_id)
        return entry.default

    def is_strippable(self, record_type: str, field_id: str) -> bool:
        # No entry means no default to regenerate from, so never strippable.
        entry = self._entries.get((record_type, field_id))
        return entry is not None and entry.strippable

    def can_omit(self, record_type: str, field_id: str, raw: bytes) -> bool:
        """True when compact text may leave out a field holding ``raw``."""
        entry = self._entries.get((record_type, field_id))
        return entry is not None and entry.strippable and entry.default == raw

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __repr__(self) -> str:
        return f"Registry(version={self.version}, entries={len(self._entries)})"


_BUNDLED: Optional[Registry] = None


def _bundled() -> Registry:
    global _BUNDLED
    if _BUNDLED is None:
        asset = resources.files("dse").joinpath("data").joinpath(DEFAULT_ASSET)
        _BUNDLED = Registry.from_mapping(json.loads(asset.read_text(encoding="utf-8")))
    return _BUNDLED
