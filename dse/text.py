"""JSON text form of a container.

Known fields are written by name, opaque fields as ``{"raw": "<hex>"}`` and
derived fields not at all.  A text field whose fill is not the usual pad
byte is written as ``{"text": ..., "raw": "<hex>"}`` so the fill survives.

In compact mode an opaque field is left out when the registry says it holds
the common default; import puts the default back.

Example (compact, abridged)::

    {
      "format": "smdl",
      "version": 1,
      "verbosity": "compact",
      "header": {"version": 1045, "link1": 0, "fname": "bgm0001.smd", ...},
      "chunks": [
        {"tag": "song", "record": {"tpqn": 48, "nbchans": 1}},
        {"tag": "trk ", "header": {}, "preamble": {"trkid": 0, "chanid": 0},
         "events": [{"SetTempo": [120]},
                    {"PlayNote": {"velocity": 100, "octave_mod": 2, "note": 0, "duration": 48}},
                    {"EndOfTrack": []}]},
        {"tag": "eoc ", "header": {}}
      ]
    }
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .container import (
    POINTER_ENTRY,
    SMDL_TAGS,
    SWDL_TAGS,
    Chunk,
    Container,
    EmptyPayload,
    FormatKind,
    Payload,
    PointerTable,
    RawPayload,
    RecordTable,
    SampleData,
    SongInfo,
    TrackPayload,
)
from .errors import ParseError, RegistryMiss, SchemaMismatch
from .events import FIXED_PAUSE, PLAY_NOTE, Event, opcode_for_name
from .fields import Known, Record, Schema
from .registry import Registry
from .schemas import KEYGROUP, LFO, PROGRAM_HEADER, SAMPLE_INFO, SONG, SPLIT, TRACK_PREAMBLE
from .tables import Program

log = logging.getLogger(__name__)

TEXT_VERSION = 1


class Verbosity(Enum):
    FULL = "full"
    COMPACT = "compact"


# --- export ---


def to_document(
    container: Container, mode: Verbosity = Verbosity.FULL, registry: Optional[Registry] = None
) -> Dict[str, Any]:
    registry = registry if registry is not None else Registry.bundled()
    exporter = _Exporter(mode, registry)
    doc: Dict[str, Any] = {
        "format": container.kind.value,
        "version": TEXT_VERSION,
        "verbosity": mode.value,
        "header": exporter.record(container.header),
        "chunks": [exporter.chunk(chunk) for chunk in container.chunks],
    }
    if container.trailer:
        doc["trailer"] = _b64(container.trailer)
    if exporter.retained:
        log.debug("compact export kept %d opaque field(s) with no registry default", exporter.retained)
    return doc


def to_text(
    container: Container, mode: Verbosity = Verbosity.FULL, registry: Optional[Registry] = None
) -> str:
    return json.dumps(to_document(container, mode, registry), indent=2) + "\n"


class _Exporter:
    def __init__(self, mode: Verbosity, registry: Registry) -> None:
        self.mode = mode
        self.registry = registry
        self.retained = 0

    def omit(self, record: Record, name: str, raw: bytes) -> bool:
        if self.mode is not Verbosity.COMPACT:
            return False
        try:
            default = self.registry.require(record.record_type, name)
        except RegistryMiss:
            self.retained += 1
            return False
        return raw == default and self.registry.is_strippable(record.record_type, name)

    def record(self, record: Record) -> Dict[str, Any]:
        obj: Dict[str, Any] = {}
        for spec in record.schema.fields:
            if spec.derived:
                continue
            if spec.is_opaque:
                raw = record.raw(spec.name)
                if not self.omit(record, spec.name, raw):
                    obj[spec.name] = {"raw": raw.hex()}
            else:
                fld = record.field(spec.name)
                if isinstance(fld, Known) and fld.stored is not None:
                    obj[spec.name] = {"text": fld.value, "raw": fld.stored.hex()}
                else:
                    obj[spec.name] = fld.value
        return obj

    def chunk(self, chunk: Chunk) -> Dict[str, Any]:
        obj: Dict[str, Any] = {"tag": chunk.tag}
        if chunk.header is not None:
            obj["header"] = self.record(chunk.header)
        payload = chunk.payload
        if isinstance(payload, RawPayload):
            obj["raw"] = _b64(payload.data)
        elif isinstance(payload, PointerTable):
            obj["slots"] = [None if entry is None else self.entry(entry) for entry in payload.slots]
        elif isinstance(payload, RecordTable):
            obj["records"] = [self.record(record) for record in payload.records]
        elif isinstance(payload, SampleData):
            obj["data"] = _b64(payload.data)
        elif isinstance(payload, SongInfo):
            obj["record"] = self.record(payload.record)
        elif isinstance(payload, TrackPayload):
            obj["preamble"] = self.record(payload.preamble)
            obj["events"] = [event_to_obj(event) for event in payload.events]
        return obj

    def entry(self, entry) -> Dict[str, Any]:
        if isinstance(entry, Program):
            return {
                "header": self.record(entry.header),
                "lfos": [self.record(lfo) for lfo in entry.lfos],
                "splits": [self.record(split) for split in entry.splits],
            }
        return self.record(entry)


def event_to_obj(event: Event) -> Dict[str, Any]:
    if event.is_note:
        body: Dict[str, Any] = {
            "velocity": event.velocity,
            "octave_mod": event.octave_mod,
            "note": event.note_value,
            "duration": event.duration,
        }
        if not event.is_canonical:
            body["duration_size"] = event.duration_size
        return {PLAY_NOTE: body}
    if event.is_pause:
        return {FIXED_PAUSE: event.pause_index}
    return {event.name: list(event.params)}


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


# --- import ---


def _require_dict(value: object, *, where: str) -> dict:
    if not isinstance(value, dict):
        raise SchemaMismatch(f"{where} must be an object")
    return value


def _require_list(value: object, *, where: str) -> list:
    if not isinstance(value, list):
        raise SchemaMismatch(f"{where} must be an array")
    return value


def _int_in_range(value: object, *, where: str, low: int, high: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise SchemaMismatch(f"{where} must be an integer")
    if not (low <= value <= high):
        raise SchemaMismatch(f"{where} must be in [{low}, {high}]")
    return value


def _unb64(value: object, *, where: str) -> bytes:
    if not isinstance(value, str):
        raise SchemaMismatch(f"{where} must be a base64 string")
    try:
        return base64.b64decode(value, validate=True)
    except binascii.Error as exc:
        raise SchemaMismatch(f"{where} is not valid base64") from exc


class _Importer:
    def __init__(self, registry: Registry, mode: Verbosity) -> None:
        self.registry = registry
        self.mode = mode

    def record(self, schema: Schema, raw_obj: object, *, where: str) -> Record:
        obj = _require_dict(raw_obj, where=where)
        unknown = [name for name in obj if not schema.has_field(name)]
        if unknown:
            raise SchemaMismatch(f"{where}: {schema.name} has no field(s) {sorted(unknown)}")
        values: Dict[str, Any] = {}
        stored: Dict[str, bytes] = {}
        for spec in schema.fields:
            name = spec.name
            if spec.derived:
                continue  # recomputed on encode
            if spec.is_opaque:
                if name in obj:
                    values[name] = self.opaque(obj[name], where=f"{where}.{name}")
                    continue
                try:
                    values[name] = self.registry.require(schema.name, name)
                except RegistryMiss as exc:
                    raise SchemaMismatch(
                        f"{where}.{name} is missing and has no registry default"
                    ) from exc
                if self.mode is Verbosity.FULL:
                    log.warning("%s.%s missing from full text; using registry default", where, name)
                continue
            if name not in obj:
                raise SchemaMismatch(f"{where}.{name} is missing")
            value = obj[name]
            if spec.type == "text" and isinstance(value, dict):
                value, stored[name] = self.text(value, where=f"{where}.{name}")
            try:
                values[name] = spec.validate(value)
            except SchemaMismatch as exc:
                raise SchemaMismatch(f"{where}: {exc}") from None
        record = schema.new(self.registry, **values)
        for name, raw in stored.items():
            record.set_text(name, values[name], raw)
        return record

    def text(self, value: dict, *, where: str) -> Tuple[object, bytes]:
        if set(value) != {"text", "raw"} or not isinstance(value["raw"], str):
            raise SchemaMismatch(f"{where} must be a string or {{\"text\": ..., \"raw\": \"<hex>\"}}")
        try:
            return value["text"], bytes.fromhex(value["raw"])
        except ValueError as exc:
            raise SchemaMismatch(f"{where} is not valid hex") from exc

    def opaque(self, value: object, *, where: str) -> bytes:
        marker = _require_dict(value, where=where)
        if set(marker) != {"raw"} or not isinstance(marker["raw"], str):
            raise SchemaMismatch(f"{where} must be {{\"raw\": \"<hex>\"}}")
        try:
            return bytes.fromhex(marker["raw"])
        except ValueError as exc:
            raise SchemaMismatch(f"{where} is not valid hex") from exc

    def records(self, schema: Schema, value: object, *, where: str) -> List[Record]:
        items = _require_list(value, where=where)
        return [self.record(schema, item, where=f"{where}[{i}]") for i, item in enumerate(items)]

    def entry(self, entry_type: str, value: object, *, where: str):
        if value is None:
            return None
        if entry_type == "sample_info":
            return self.record(SAMPLE_INFO, value, where=where)
        obj = _require_dict(value, where=where)
        extra = set(obj) - {"header", "lfos", "splits"}
        if extra:
            raise SchemaMismatch(f"{where}: unexpected key(s) {sorted(extra)}")
        return Program(
            self.record(PROGRAM_HEADER, obj.get("header"), where=f"{where}.header"),
            self.records(LFO, obj.get("lfos", []), where=f"{where}.lfos"),
            self.records(SPLIT, obj.get("splits", []), where=f"{where}.splits"),
        )

    def chunk(self, kind: FormatKind, value: object, *, where: str) -> Chunk:
        obj = _require_dict(value, where=where)
        tag = obj.get("tag")
        if not isinstance(tag, str):
            raise SchemaMismatch(f"{where}.tag must be a 4-character string")
        try:
            encoded = tag.encode("latin-1")
        except UnicodeEncodeError:
            raise SchemaMismatch(f"{where}.tag must be latin-1, got {tag!r}") from None
        if len(encoded) != 4:
            raise SchemaMismatch(f"{where}.tag must be a 4-character string")
        tags = SWDL_TAGS if kind is FormatKind.SWDL else SMDL_TAGS
        variant = tags.get(tag)
        header = None
        if variant is not SongInfo:
            header = self.record(kind.chunk_header_schema, obj.get("header", {}), where=f"{where}.header")
        payload = self.payload(tag, variant, obj, where=where)
        return Chunk(tag, header, payload)

    def payload(self, tag: str, variant: Optional[type], obj: dict, *, where: str) -> Payload:
        if "raw" in obj:
            return RawPayload(_unb64(obj["raw"], where=f"{where}.raw"))
        if variant is None:
            raise SchemaMismatch(f"{where}: unknown chunk {tag!r} needs a 'raw' payload")
        if variant is PointerTable:
            entry_type = POINTER_ENTRY[tag]
            slots = _require_list(obj.get("slots"), where=f"{where}.slots")
            return PointerTable(
                entry_type,
                [self.entry(entry_type, item, where=f"{where}.slots[{i}]") for i, item in enumerate(slots)],
            )
        if variant is RecordTable:
            return RecordTable(self.records(KEYGROUP, obj.get("records"), where=f"{where}.records"))
        if variant is SampleData:
            return SampleData(_unb64(obj.get("data"), where=f"{where}.data"))
        if variant is SongInfo:
            return SongInfo(self.record(SONG, obj.get("record"), where=f"{where}.record"))
        if variant is TrackPayload:
            events = _require_list(obj.get("events"), where=f"{where}.events")
            return TrackPayload(
                self.record(TRACK_PREAMBLE, obj.get("preamble"), where=f"{where}.preamble"),
                [event_from_obj(item, where=f"{where}.events[{i}]") for i, item in enumerate(events)],
            )
        return EmptyPayload()


def event_from_obj(value: object, *, where: str = "event") -> Event:
    obj = _require_dict(value, where=where)
    if len(obj) != 1:
        raise SchemaMismatch(f"{where} must have exactly one key naming the event")
    ((name, body),) = obj.items()
    if name == PLAY_NOTE:
        fields = _require_dict(body, where=f"{where}.{name}")
        extra = set(fields) - {"velocity", "octave_mod", "note", "duration", "duration_size"}
        if extra:
            raise SchemaMismatch(f"{where}.{name}: unexpected key(s) {sorted(extra)}")
        velocity = _int_in_range(fields.get("velocity"), where=f"{where}.velocity", low=0, high=0x7F)
        octave_mod = _int_in_range(fields.get("octave_mod"), where=f"{where}.octave_mod", low=0, high=3)
        note = _int_in_range(fields.get("note"), where=f"{where}.note", low=0, high=0xF)
        duration = _int_in_range(fields.get("duration", 0), where=f"{where}.duration", low=0, high=0xFFFFFF)
        size = fields.get("duration_size")
        if size is not None:
            size = _int_in_range(size, where=f"{where}.duration_size", low=0, high=3)
        return Event(velocity, bytes([(octave_mod << 4) | note]), duration, size)
    if name == FIXED_PAUSE:
        index = _int_in_range(body, where=f"{where}.{name}", low=0, high=15)
        return Event.pause(index)
    params = _require_list(body, where=f"{where}.{name}")
    values = [_int_in_range(p, where=f"{where}.{name}[{i}]", low=0, high=0xFF) for i, p in enumerate(params)]
    return Event(opcode_for_name(name), bytes(values))


def from_document(doc: object, registry: Optional[Registry] = None) -> Container:
    registry = registry if registry is not None else Registry.bundled()
    obj = _require_dict(doc, where="document")
    try:
        kind = FormatKind(obj.get("format"))
    except ValueError:
        raise SchemaMismatch(f"format must be one of {[k.value for k in FormatKind]}") from None
    version = _int_in_range(obj.get("version", TEXT_VERSION), where="version", low=1, high=TEXT_VERSION)
    try:
        mode = Verbosity(obj.get("verbosity", Verbosity.FULL.value))
    except ValueError:
        raise SchemaMismatch("verbosity must be 'full' or 'compact'") from None
    log.debug("importing %s text (version %d, %s)", kind.value, version, mode.value)
    importer = _Importer(registry, mode)
    header = importer.record(kind.header_schema, obj.get("header"), where="header")
    chunks = [
        importer.chunk(kind, item, where=f"chunks[{i}]")
        for i, item in enumerate(_require_list(obj.get("chunks"), where="chunks"))
    ]
    trailer = _unb64(obj["trailer"], where="trailer") if "trailer" in obj else b""
    container = Container(kind, header, chunks, trailer)
    container.refresh()
    return container


def from_text(text: str, registry: Optional[Registry] = None) -> Container:
    try:
        doc = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(f"text is not valid JSON: {exc}") from exc
    return from_document(doc, registry)


def load(path: Path | str, registry: Optional[Registry] = None) -> Container:
    return from_text(Path(path).read_text(encoding="utf-8"), registry)


def dump(
    container: Container,
    path: Path | str,
    mode: Verbosity = Verbosity.FULL,
    registry: Optional[Registry] = None,
) -> None:
    Path(path).write_text(to_text(container, mode, registry), encoding="utf-8")
