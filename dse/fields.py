"""Field preservation ledger.

Every record type is described by a :class:`Schema`: an ordered list of
:class:`FieldSpec` descriptors covering the record's byte span with no gaps.
Each descriptor is either

* **known** -- decoded into a Python value (int, bool, str) that callers may
  edit, or
* **opaque** -- kept as the raw bytes read from the file, meaning unknown.

Known descriptors may additionally be *derived* (lengths, counts, copies the
engine regenerates).  Derived values are read and kept for inspection, but
they are recomputed on encode and ignored by record equality.

Promoting a field from opaque to known only means changing its descriptor;
parse and encode are driven entirely by the schema.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from .errors import SchemaMismatch, Truncated

if TYPE_CHECKING:
    from .registry import Registry

log = logging.getLogger(__name__)


class FieldKind(Enum):
    KNOWN = "known"
    OPAQUE = "opaque"


_INT_TYPES: Dict[str, Tuple[str, int, int]] = {
    # type -> (struct format, min, max)
    "u8": ("<B", 0, 0xFF),
    "i8": ("<b", -0x80, 0x7F),
    "u16": ("<H", 0, 0xFFFF),
    "i16": ("<h", -0x8000, 0x7FFF),
    "u32": ("<I", 0, 0xFFFFFFFF),
    "i32": ("<i", -0x80000000, 0x7FFFFFFF),
}


@dataclass(frozen=True)
class FieldSpec:
    name: str
    kind: FieldKind
    type: str  # u8/i8/u16/i16/u32/i32/bool/text/raw
    size: int
    derived: bool = False
    pad: int = 0  # fill byte after the terminator of a text field
    offset: int = 0  # assigned by Schema

    @property
    def is_opaque(self) -> bool:
        return self.kind is FieldKind.OPAQUE

    def decode(self, raw: bytes) -> Any:
        if self.type in _INT_TYPES:
            return struct.unpack(_INT_TYPES[self.type][0], raw)[0]
        if self.type == "bool":
            # Bytes other than 0/1 stay integers so they survive re-encoding.
            return bool(raw[0]) if raw[0] in (0, 1) else raw[0]
        if self.type == "text":
            end = raw.find(b"\x00")
            text = raw if end < 0 else raw[:end]
            return text.decode("latin-1")
        return bytes(raw)

    def encode(self, value: Any) -> bytes:
        if self.type in _INT_TYPES:
            return struct.pack(_INT_TYPES[self.type][0], value)
        if self.type == "bool":
            return bytes([int(value)])
        if self.type == "text":
            body = value.encode("latin-1")
            if len(body) < self.size:
                body += b"\x00"
            return body + bytes([self.pad]) * (self.size - len(body))
        return bytes(value)

    def validate(self, value: Any) -> Any:
        """Return ``value`` normalised for this field or raise ``SchemaMismatch``."""
        where = self.name
        if self.type in _INT_TYPES:
            _, low, high = _INT_TYPES[self.type]
            if isinstance(value, bool) or not isinstance(value, int):
                raise SchemaMismatch(f"{where} must be an integer, got {value!r}")
            if not (low <= value <= high):
                raise SchemaMismatch(f"{where} must be in [{low}, {high}], got {value}")
            return value
        if self.type == "bool":
            if isinstance(value, bool):
                return value
            if isinstance(value, int) and 0 <= value <= 0xFF:
                return bool(value) if value in (0, 1) else value
            raise SchemaMismatch(f"{where} must be a boolean, got {value!r}")
        if self.type == "text":
            if not isinstance(value, str):
                raise SchemaMismatch(f"{where} must be a string, got {value!r}")
            try:
                encoded = value.encode("latin-1")
            except UnicodeEncodeError as exc:
                raise SchemaMismatch(f"{where} is not representable: {value!r}") from exc
            if len(encoded) > self.size or b"\x00" in encoded:
                raise SchemaMismatch(f"{where} must be at most {self.size} bytes without NUL")
            return value
        if not isinstance(value, (bytes, bytearray)) or len(value) != self.size:
            raise SchemaMismatch(f"{where} must be {self.size} raw bytes, got {value!r}")
        return bytes(value)


def known(name: str, type_: str) -> FieldSpec:
    return FieldSpec(name, FieldKind.KNOWN, type_, _size_of(type_))


def derived(name: str, type_: str) -> FieldSpec:
    return FieldSpec(name, FieldKind.KNOWN, type_, _size_of(type_), derived=True)


def text(name: str, size: int, *, pad: int) -> FieldSpec:
    return FieldSpec(name, FieldKind.KNOWN, "text", size, pad=pad)


def opaque(name: str, size: int) -> FieldSpec:
    return FieldSpec(name, FieldKind.OPAQUE, "raw", size)


def embed(specs: Sequence[FieldSpec], prefix: str) -> List[FieldSpec]:
    """Inline another schema's descriptors under a name prefix."""
    return [replace(spec, name=f"{prefix}{spec.name}", offset=0) for spec in specs]


def _size_of(type_: str) -> int:
    if type_ in _INT_TYPES:
        return struct.calcsize(_INT_TYPES[type_][0])
    if type_ == "bool":
        return 1
    raise ValueError(f"type {type_!r} needs an explicit size")


@dataclass(frozen=True)
class Known:
    value: Any
    type: str
    stored: Optional[bytes] = None  # exact text bytes when the fill is not the usual pad


@dataclass(frozen=True)
class Opaque:
    raw: bytes
    offset: int


Field = Union[Known, Opaque]


class Record:
    """One decoded record: a value per descriptor of its schema."""

    __slots__ = ("schema", "_fields")

    def __init__(self, schema: "Schema", fields: Dict[str, Field]) -> None:
        self.schema = schema
        self._fields = fields

    @property
    def record_type(self) -> str:
        return self.schema.name

    def field(self, name: str) -> Field:
        try:
            return self._fields[name]
        except KeyError:
            raise SchemaMismatch(f"{self.schema.name} has no field {name!r}") from None

    def __getitem__(self, name: str) -> Any:
        fld = self.field(name)
        return fld.raw if isinstance(fld, Opaque) else fld.value

    def __setitem__(self, name: str, value: Any) -> None:
        spec = self.schema.spec(name)
        value = spec.validate(value)
        if spec.is_opaque:
            self._fields[name] = Opaque(value, spec.offset)
        else:
            self._fields[name] = Known(value, spec.type)

    def __contains__(self, name: object) -> bool:
        return name in self._fields

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def raw(self, name: str) -> bytes:
        """Return the encoded bytes of one field."""
        spec = self.schema.spec(name)
        fld = self._fields[name]
        if isinstance(fld, Opaque):
            return fld.raw
        return fld.stored if fld.stored is not None else spec.encode(fld.value)

    def known_values(self) -> Dict[str, Any]:
        return {
            name: fld.value
            for name, fld in self._fields.items()
            if isinstance(fld, Known) and not self.schema.spec(name).derived
        }

    def opaque_fields(self) -> Dict[str, bytes]:
        return {name: fld.raw for name, fld in self._fields.items() if isinstance(fld, Opaque)}

    def to_bytes(self) -> bytes:
        return self.schema.encode(self)

    def set_text(self, name: str, value: str, stored: Optional[bytes] = None) -> None:
        """Set a text field, keeping ``stored`` as its bytes while they decode to ``value``."""
        spec = self.schema.spec(name)
        if spec.type != "text":
            raise SchemaMismatch(f"{self.schema.name}.{name} is not a text field")
        value = spec.validate(value)
        if stored is not None:
            stored = bytes(stored)
            if len(stored) != spec.size or spec.decode(stored) != value or spec.encode(value) == stored:
                stored = None
        self._fields[name] = Known(value, spec.type, stored)

    def copy(self) -> "Record":
        return Record(self.schema, dict(self._fields))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Record):
            return NotImplemented
        if self.schema.name != other.schema.name:
            return False
        for spec in self.schema.fields:
            if spec.derived:
                continue
            if self._fields[spec.name] != other._fields[spec.name]:
                return False
        return True

    def __repr__(self) -> str:
        parts = []
        for name, fld in self._fields.items():
            if isinstance(fld, Opaque):
                parts.append(f"{name}=<{fld.raw.hex()}>")
            else:
                parts.append(f"{name}={fld.value!r}")
        return f"Record({self.schema.name}: {', '.join(parts)})"


class Schema:
    """Ordered, gap-free layout of one record type."""

    def __init__(self, name: str, fields: Sequence[FieldSpec]) -> None:
        self.name = name
        laid_out: List[FieldSpec] = []
        offset = 0
        for spec in fields:
            laid_out.append(replace(spec, offset=offset))
            offset += spec.size
        self.fields: Tuple[FieldSpec, ...] = tuple(laid_out)
        self.size = offset
        self._by_name: Dict[str, FieldSpec] = {spec.name: spec for spec in self.fields}
        if len(self._by_name) != len(self.fields):
            raise ValueError(f"duplicate field names in schema {name}")

    def spec(self, name: str) -> FieldSpec:
        try:
            return self._by_name[name]
        except KeyError:
            raise SchemaMismatch(f"{self.name} has no field {name!r}") from None

    def has_field(self, name: str) -> bool:
        return name in self._by_name

    @property
    def opaque_specs(self) -> Tuple[FieldSpec, ...]:
        return tuple(spec for spec in self.fields if spec.is_opaque)

    @property
    def known_specs(self) -> Tuple[FieldSpec, ...]:
        return tuple(spec for spec in self.fields if not spec.is_opaque)

    def parse(self, data: bytes, offset: int = 0, *, tag: Optional[str] = None) -> Record:
        available = len(data) - offset
        if available < self.size:
            raise Truncated(tag or self.name, self.size, max(available, 0), offset=offset)
        fields: Dict[str, Field] = {}
        for spec in self.fields:
            start = offset + spec.offset
            raw = bytes(data[start : start + spec.size])
            if spec.is_opaque:
                fields[spec.name] = Opaque(raw, spec.offset)
                continue
            value = spec.decode(raw)
            if spec.type == "text" and spec.encode(value) != raw:
                log.debug("%s.%s: keeping non-standard text fill %s", self.name, spec.name, raw.hex())
                fields[spec.name] = Known(value, spec.type, raw)
                continue
            fields[spec.name] = Known(value, spec.type)
        return Record(self, fields)

    def encode(self, record: Record) -> bytes:
        if record.schema is not self and record.schema.name != self.name:
            raise SchemaMismatch(f"cannot encode {record.schema.name} with schema {self.name}")
        return b"".join(record.raw(spec.name) for spec in self.fields)

    def new(self, registry: Optional["Registry"] = None, **values: Any) -> Record:
        """Build a fresh record.

        Known fields default to zero (empty string for text).  Opaque fields
        come from ``values`` or the registry; a missing default is an error.
        """
        unknown = set(values) - set(self._by_name)
        if unknown:
            raise SchemaMismatch(f"{self.name} has no field(s) {sorted(unknown)}")
        fields: Dict[str, Field] = {}
        for spec in self.fields:
            if spec.name in values:
                value = spec.validate(values[spec.name])
            elif spec.is_opaque:
                default = registry.lookup(self.name, spec.name) if registry is not None else None
                if default is None:
                    raise SchemaMismatch(
                        f"{self.name}.{spec.name} is opaque and has no registry default"
                    )
                value = spec.validate(default)
            elif spec.type == "text":
                value = ""
            elif spec.type == "bool":
                value = False
            else:
                value = 0
            if spec.is_opaque:
                fields[spec.name] = Opaque(value, spec.offset)
            else:
                fields[spec.name] = Known(value, spec.type)
        return Record(self, fields)

    def __repr__(self) -> str:
        return f"Schema({self.name}, {self.size} bytes)"
