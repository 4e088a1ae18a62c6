"""Chunked container model for SWDL and SMDL files.

A file is a fixed header followed by chunks up to a terminator chunk.  Every
chunk except ``song`` has a 16-byte header (tag, 8 format-specific bytes,
u32 length).  Lengths read from the file are kept for reporting only; the
encoder always recomputes them from the payload it writes.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple, Union

from .errors import BadSignature, SchemaMismatch, Truncated
from .events import END_OF_TRACK, Event, decode_events, encode_events
from .fields import Record, Schema
from .registry import Registry
from .schemas import (
    DSE_VERSION,
    KEYGROUP,
    SMDL_CHUNK_HEADER,
    SMDL_HEADER,
    SONG,
    SWDL_CHUNK_HEADER,
    SWDL_HEADER,
    TRACK_PREAMBLE,
)
from .tables import (
    ENTRY_PARSERS,
    KGRP_FILL,
    PCMD_FILL,
    TRACK_FILL,
    Entry,
    Program,
    encode_keygroups,
    encode_pointer_table,
    fill,
    parse_keygroups,
    parse_pointer_table,
)

log = logging.getLogger(__name__)

CHUNK_HEADER_SIZE = 16
MAGIC_SIZE = 4
EXTERNAL_PCMD = 0xAAAA0000
MAIN_BANK_PRGI_SLOTS = 128


class FormatKind(Enum):
    SWDL = "swdl"
    SMDL = "smdl"

    @property
    def magic(self) -> bytes:
        return self.value.encode("ascii")

    @property
    def header_schema(self) -> Schema:
        return SWDL_HEADER if self is FormatKind.SWDL else SMDL_HEADER

    @property
    def chunk_header_schema(self) -> Schema:
        return SWDL_CHUNK_HEADER if self is FormatKind.SWDL else SMDL_CHUNK_HEADER

    @property
    def terminator(self) -> str:
        return "eod " if self is FormatKind.SWDL else "eoc "

    @property
    def header_size(self) -> int:
        return MAGIC_SIZE + self.header_schema.size

    @classmethod
    def from_magic(cls, magic: bytes) -> "FormatKind":
        for kind in cls:
            if kind.magic == magic:
                return kind
        raise BadSignature(b"swdl or smdl", bytes(magic))


# --- payload variants ---


@dataclass
class RawPayload:
    """Bytes kept verbatim: unknown tags and tables that do not re-encode exactly."""

    data: bytes


@dataclass
class PointerTable:
    entry_type: str  # "sample_info" or "program"
    slots: List[Optional[Entry]] = field(default_factory=list)

    def entries(self) -> Iterator[Entry]:
        return (entry for entry in self.slots if entry is not None)


@dataclass
class RecordTable:
    records: List[Record] = field(default_factory=list)


@dataclass
class SampleData:
    data: bytes = b""


@dataclass
class SongInfo:
    record: Record


@dataclass
class TrackPayload:
    preamble: Record
    events: List[Event] = field(default_factory=list)


@dataclass
class EmptyPayload:
    pass


Payload = Union[RawPayload, PointerTable, RecordTable, SampleData, SongInfo, TrackPayload, EmptyPayload]

# Structured payload per tag; anything else is kept raw.
SWDL_TAGS: Dict[str, type] = {
    "wavi": PointerTable,
    "prgi": PointerTable,
    "kgrp": RecordTable,
    "pcmd": SampleData,
    "eod ": EmptyPayload,
}
SMDL_TAGS: Dict[str, type] = {
    "song": SongInfo,
    "trk ": TrackPayload,
    "eoc ": EmptyPayload,
}
POINTER_ENTRY = {"wavi": "sample_info", "prgi": "program"}


@dataclass
class Chunk:
    tag: str
    header: Optional[Record]  # None for the fixed-size song chunk
    payload: Payload
    declared_length: Optional[int] = field(default=None, compare=False)

    @property
    def is_raw(self) -> bool:
        return isinstance(self.payload, RawPayload)


@dataclass(frozen=True)
class Diagnostic:
    """A tolerated deviation found while parsing."""

    kind: str
    tag: str
    offset: int
    message: str
    declared: Optional[int] = None
    actual: Optional[int] = None

    def __str__(self) -> str:
        return f"{self.kind} in {self.tag!r} at 0x{self.offset:X}: {self.message}"


@dataclass
class Container:
    kind: FormatKind
    header: Record
    chunks: List[Chunk] = field(default_factory=list)
    trailer: bytes = b""
    diagnostics: List[Diagnostic] = field(default_factory=list, compare=False)

    @classmethod
    def new(cls, kind: FormatKind, registry: Optional[Registry] = None, *, fname: str = "") -> "Container":
        """Create an empty bank or sequence with registry defaults for opaque fields."""
        registry = registry if registry is not None else Registry.bundled()
        header = kind.header_schema.new(registry, version=DSE_VERSION, fname=fname)
        container = cls(kind, header)
        if kind is FormatKind.SWDL:
            header["pcmdlen"] = EXTERNAL_PCMD
            header["nbprgislots"] = MAIN_BANK_PRGI_SLOTS
            container.chunks.append(container.new_chunk("wavi", PointerTable("sample_info"), registry))
        else:
            container.chunks.append(Chunk("song", None, SongInfo(SONG.new(registry, tpqn=48))))
        container.chunks.append(container.new_chunk(kind.terminator, EmptyPayload(), registry))
        container.refresh()
        return container

    def new_chunk(self, tag: str, payload: Payload, registry: Optional[Registry] = None) -> Chunk:
        registry = registry if registry is not None else Registry.bundled()
        return Chunk(tag, self.kind.chunk_header_schema.new(registry), payload)

    def add_track(
        self,
        trkid: int,
        chanid: int,
        events: Optional[List[Event]] = None,
        registry: Optional[Registry] = None,
    ) -> int:
        """Insert a track before the terminator and return its chunk index."""
        if self.kind is not FormatKind.SMDL:
            raise SchemaMismatch("only SMDL files hold tracks")
        registry = registry if registry is not None else Registry.bundled()
        preamble = TRACK_PREAMBLE.new(registry, trkid=trkid, chanid=chanid)
        if events is None:
            events = [Event.command("EndOfTrack")]
        chunk = self.new_chunk("trk ", TrackPayload(preamble, list(events)), registry)
        index = len(self.chunks)
        for i, existing in enumerate(self.chunks):
            if existing.tag == self.kind.terminator:
                index = i
                break
        self.chunks.insert(index, chunk)
        return index

    def chunk(self, tag: str) -> Optional[Chunk]:
        for chunk in self.chunks:
            if chunk.tag == tag:
                return chunk
        return None

    def indexes(self, tag: str) -> List[int]:
        return [i for i, chunk in enumerate(self.chunks) if chunk.tag == tag]

    def refresh(self) -> int:
        """Recompute lengths, counts and derived header fields in place.

        Returns the encoded file size.
        """
        total = self.kind.header_size
        for chunk in self.chunks:
            body, length = _encode_payload(chunk)
            chunk.declared_length = length
            total += _chunk_size(chunk, body)
        header = self.header
        header["flen"] = total
        if self.kind is FormatKind.SWDL:
            self._refresh_swdl()
        else:
            song = self.chunk("song")
            if song is not None:
                song.payload.record["nbtrks"] = len(self.indexes("trk "))
        return total

    def _refresh_swdl(self) -> None:
        header = self.header
        wavi = self.chunk("wavi")
        if wavi is not None:
            header["wavilen"] = wavi.declared_length
            if isinstance(wavi.payload, PointerTable):
                header["nbwavislots"] = len(wavi.payload.slots)
        prgi = self.chunk("prgi")
        if prgi is not None and isinstance(prgi.payload, PointerTable):
            header["nbprgislots"] = len(prgi.payload.slots)
        pcmd = self.chunk("pcmd")
        if pcmd is not None:
            header["pcmdlen"] = pcmd.declared_length

    def to_bytes(self) -> bytes:
        return encode(self)

    @classmethod
    def from_bytes(cls, data: bytes, kind: Optional[FormatKind] = None) -> "Container":
        return parse(data, kind)


# --- encode ---


def _encode_payload(chunk: Chunk) -> Tuple[bytes, int]:
    """Return ``(payload bytes without padding, length field value)``."""
    payload = chunk.payload
    if isinstance(payload, RawPayload):
        return payload.data, len(payload.data)
    if isinstance(payload, PointerTable):
        for entry in payload.entries():
            if isinstance(entry, Program):
                entry.refresh()
        body = encode_pointer_table(payload.slots)
        return body, len(body)
    if isinstance(payload, RecordTable):
        body = encode_keygroups(payload.records)
        return body, len(body)
    if isinstance(payload, SampleData):
        return payload.data, len(payload.data)
    if isinstance(payload, SongInfo):
        return payload.record.to_bytes(), SONG.size
    if isinstance(payload, TrackPayload):
        body = payload.preamble.to_bytes() + encode_events(payload.events)
        return body, len(body)
    if isinstance(payload, EmptyPayload):
        return b"", 0
    raise SchemaMismatch(f"chunk {chunk.tag!r} has unsupported payload {type(payload).__name__}")


def _padding(chunk: Chunk, body: bytes) -> bytes:
    if chunk.is_raw:
        return b""
    if chunk.tag == "kgrp":
        return fill(len(body), 16, KGRP_FILL)
    if chunk.tag == "pcmd":
        return fill(len(body), 16, PCMD_FILL)
    if chunk.tag == "trk ":
        return fill(len(body), 4, TRACK_FILL)
    return b""


def _chunk_size(chunk: Chunk, body: bytes) -> int:
    head = MAGIC_SIZE if chunk.header is None else CHUNK_HEADER_SIZE
    return head + len(body) + len(_padding(chunk, body))


def encode(container: Container) -> bytes:
    """Serialize ``container``; lengths and derived fields are refreshed first."""
    container.refresh()
    out = bytearray(container.kind.magic)
    out += container.header.to_bytes()
    for chunk in container.chunks:
        body, length = _encode_payload(chunk)
        out += chunk.tag.encode("latin-1")
        if chunk.header is not None:
            out += chunk.header.to_bytes()
            out += struct.pack("<I", length)
        out += body
        out += _padding(chunk, body)
    out += container.trailer
    return bytes(out)


# --- parse ---


def _looks_like_tag(raw: bytes) -> bool:
    # Chunk tags are four printable ASCII characters ("trk ", "eod ", ...).
    return len(raw) == MAGIC_SIZE and all(0x20 <= b <= 0x7E for b in raw)


class _Reader:
    """Chunk walk state for one parse call."""

    def __init__(self, data: bytes, kind: FormatKind, header: Record) -> None:
        self.data = data
        self.kind = kind
        self.header = header
        self.diagnostics: List[Diagnostic] = []
        self.tags = SWDL_TAGS if kind is FormatKind.SWDL else SMDL_TAGS

    def report(self, kind: str, tag: str, offset: int, message: str, declared=None, actual=None) -> None:
        diag = Diagnostic(kind, tag, offset, message, declared, actual)
        log.warning("%s", diag)
        self.diagnostics.append(diag)

    def walk(self) -> Tuple[List[Chunk], int]:
        data = self.data
        pos = self.kind.header_size
        chunks: List[Chunk] = []
        terminator = self.kind.terminator
        while True:
            if pos + MAGIC_SIZE > len(data):
                raise Truncated(terminator, MAGIC_SIZE, len(data) - pos, offset=pos)
            tag = data[pos : pos + MAGIC_SIZE].decode("latin-1")
            if tag == "song" and self.kind is FormatKind.SMDL:
                record = SONG.parse(data, pos + MAGIC_SIZE, tag=tag)
                chunks.append(Chunk(tag, None, SongInfo(record), SONG.size))
                pos += MAGIC_SIZE + SONG.size
                continue
            chunk, pos = self.read_chunk(tag, pos)
            chunks.append(chunk)
            if tag == terminator:
                return chunks, pos

    def read_chunk(self, tag: str, pos: int) -> Tuple[Chunk, int]:
        data = self.data
        if pos + CHUNK_HEADER_SIZE > len(data):
            raise Truncated(tag, CHUNK_HEADER_SIZE, len(data) - pos, offset=pos)
        header = self.kind.chunk_header_schema.parse(data, pos + MAGIC_SIZE, tag=tag)
        (declared,) = struct.unpack_from("<I", data, pos + 12)
        start = pos + CHUNK_HEADER_SIZE
        variant = self.tags.get(tag)

        if variant is TrackPayload:
            return self.read_track(tag, header, declared, start)
        if variant is EmptyPayload:
            if declared:
                self.report("length", tag, pos, "terminator declares a payload", declared, 0)
            return Chunk(tag, header, EmptyPayload(), declared), start

        available = len(data) - start
        if declared > available:
            raise Truncated(tag, declared, available, offset=start)
        body = data[start : start + declared]
        end = start + declared

        if variant is None:
            log.debug("keeping unknown chunk %r (%d bytes) at 0x%X", tag, declared, pos)
            return Chunk(tag, header, RawPayload(body), declared), end
        if variant is PointerTable:
            payload = self.read_pointer_table(tag, body, start)
        elif variant is RecordTable:
            payload = self.read_keygroups(body, declared, start)
        else:
            payload = SampleData(body)
        chunk = Chunk(tag, header, payload, declared)
        return chunk, self.skip_padding(chunk, body, end)

    def read_pointer_table(self, tag: str, body: bytes, start: int) -> Payload:
        if tag == "wavi":
            nslots = self.header["nbwavislots"]
        else:
            nslots = self.header["nbprgislots"]
        entry_type = POINTER_ENTRY[tag]
        slots = parse_pointer_table(body, nslots, ENTRY_PARSERS[entry_type], tag=tag, base_offset=start)
        table = PointerTable(entry_type, slots)
        if encode_pointer_table(table.slots) != body:
            self.report(
                "raw-fallback", tag, start,
                "table layout does not re-encode exactly; keeping the payload verbatim",
            )
            return RawPayload(body)
        return table

    def read_keygroups(self, body: bytes, declared: int, start: int) -> RecordTable:
        count, extra = divmod(declared, KEYGROUP.size)
        if extra:
            self.report(
                "length", "kgrp", start, "length is not a whole number of key groups",
                declared, count * KEYGROUP.size,
            )
        return RecordTable(parse_keygroups(body, count, base_offset=start))

    def skip_padding(self, chunk: Chunk, body: bytes, end: int) -> int:
        expected = _padding(chunk, body)
        if not expected:
            return end
        window = end + len(expected)
        found = self.data[end:window]
        if found == expected:
            return window
        # Resync only inside the padding window so a following chunk is never skipped.
        resume = self.next_tag(end, window)
        if resume is None:
            resume = end if _looks_like_tag(self.data[end : end + MAGIC_SIZE]) else end + len(found)
        self.report(
            "padding", chunk.tag, end,
            f"padding {self.data[end:resume].hex()} differs from {expected.hex()}; "
            "it will be regenerated",
            len(expected), resume - end,
        )
        return resume

    def next_tag(self, pos: int, limit: int) -> Optional[int]:
        """First known tag starting in ``[pos, limit]``."""
        hits = [
            self.data.find(tag.encode("latin-1"), pos, limit + MAGIC_SIZE)
            for tag in self.tags
        ]
        hits = [hit for hit in hits if hit >= 0]
        return min(hits) if hits else None

    def read_track(self, tag: str, header: Record, declared: int, start: int) -> Tuple[Chunk, int]:
        data = self.data
        preamble = TRACK_PREAMBLE.parse(data, start, tag=tag)
        events_start = start + TRACK_PREAMBLE.size
        events_end = start + max(declared, TRACK_PREAMBLE.size)
        if events_end > len(data):
            raise Truncated(tag, declared, len(data) - start, offset=start)
        events, pos = decode_events(data, events_start, events_end, base_offset=0, tag=tag)
        actual = pos - start
        if actual != declared:
            self.report("length", tag, start, "declared length does not match events", declared, actual)
        chunk = Chunk(tag, header, TrackPayload(preamble, events), declared)
        pad_start = pos
        while pos < len(data) and data[pos] == END_OF_TRACK:
            pos += 1
        expected = len(fill(actual, 4, TRACK_FILL))
        if pos - pad_start != expected:
            self.report(
                "padding", tag, pad_start, "end-of-track padding will be regenerated",
                expected, pos - pad_start,
            )
        return chunk, pos

    def check_header(self, chunks: List[Chunk], end: int) -> None:
        header = self.header
        if header["flen"] != end:
            self.report("length", self.kind.value, 0, "file length field", header["flen"], end)
        if self.kind is FormatKind.SMDL:
            tracks = sum(1 for chunk in chunks if chunk.tag == "trk ")
            for chunk in chunks:
                if chunk.tag == "song" and chunk.payload.record["nbtrks"] != tracks:
                    self.report("count", "song", 0, "track count", chunk.payload.record["nbtrks"], tracks)
            return
        wavi = next((chunk for chunk in chunks if chunk.tag == "wavi"), None)
        if wavi is not None and header["wavilen"] != wavi.declared_length:
            self.report("length", "wavi", 0, "wavi length in file header", header["wavilen"], wavi.declared_length)
        pcmd = next((chunk for chunk in chunks if chunk.tag == "pcmd"), None)
        if pcmd is not None and header["pcmdlen"] != pcmd.declared_length:
            self.report("length", "pcmd", 0, "pcmd length in file header", header["pcmdlen"], pcmd.declared_length)


def parse(data: bytes, kind: Optional[FormatKind] = None) -> Container:
    """Decode a SWDL or SMDL file.

    ``kind`` is detected from the magic when omitted; when given, the magic
    must match it.
    """
    data = bytes(data)
    if len(data) < MAGIC_SIZE:
        raise Truncated("header", MAGIC_SIZE, len(data))
    magic = data[:MAGIC_SIZE]
    if kind is None:
        kind = FormatKind.from_magic(magic)
    elif magic != kind.magic:
        raise BadSignature(kind.magic, magic)
    header = kind.header_schema.parse(data, MAGIC_SIZE, tag="header")
    if header["version"] != DSE_VERSION:
        raise BadSignature(
            struct.pack("<H", DSE_VERSION), struct.pack("<H", header["version"]), field="version"
        )
    reader = _Reader(data, kind, header)
    chunks, end = reader.walk()
    for chunk in chunks:
        if isinstance(chunk.payload, TrackPayload):
            padded = sum(1 for event in chunk.payload.events if not event.is_canonical)
            if padded:
                reader.report(
                    "duration", chunk.tag, 0,
                    f"{padded} note(s) store their duration in more bytes than needed; "
                    "they will be re-encoded in minimal form",
                )
    reader.check_header(chunks, end)
    trailer = data[end:]
    if trailer:
        reader.report("trailer", kind.terminator, end, f"{len(trailer)} byte(s) after the terminator")
    return Container(kind, header, chunks, trailer, reader.diagnostics)
