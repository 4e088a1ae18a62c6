"""Tables inside SWDL chunks and the padding rules between chunks.

``wavi`` and ``prgi`` hold a pointer table: one ``u16`` per slot giving the
offset of the slot's record from the start of the table (0 for an empty
slot), padded with ``0xAA`` to a multiple of 16, followed by the records in
slot order.  ``kgrp`` is a flat array of 8-byte records.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, TypeVar, Union

from .errors import Truncated
from .fields import Record
from .schemas import KEYGROUP, LFO, PROGRAM_HEADER, SAMPLE_INFO, SPLIT

T = TypeVar("T")

POINTER_FILL = 0xAA
KGRP_FILL = bytes([0x67, 0xC0, 0x40, 0x00, 0x88, 0x00, 0xFF, 0x04])
PCMD_FILL = b"\x00"
TRACK_FILL = b"\x98"
DELIMITER_SIZE = 16


def align(length: int, multiple: int) -> int:
    return -(-length // multiple) * multiple


def fill(length: int, multiple: int, pattern: bytes) -> bytes:
    """Padding that brings ``length`` up to ``multiple``, cycling ``pattern``."""
    needed = align(length, multiple) - length
    if not needed:
        return b""
    return (pattern * (needed // len(pattern) + 1))[:needed]


@dataclass
class Program:
    """One ``prgi`` entry: header, LFO table, delimiter, split table."""

    header: Record
    lfos: List[Record] = field(default_factory=list)
    splits: List[Record] = field(default_factory=list)

    @property
    def size(self) -> int:
        return PROGRAM_HEADER.size + LFO.size * len(self.lfos) + DELIMITER_SIZE + SPLIT.size * len(self.splits)

    def refresh(self) -> None:
        self.header["nblfos"] = len(self.lfos)
        self.header["nbsplits"] = len(self.splits)

    def to_bytes(self) -> bytes:
        self.refresh()
        pad = bytes([self.header["pad_byte"]]) * DELIMITER_SIZE
        return (
            self.header.to_bytes()
            + b"".join(lfo.to_bytes() for lfo in self.lfos)
            + pad
            + b"".join(split.to_bytes() for split in self.splits)
        )

    @classmethod
    def parse(cls, data: bytes, offset: int, *, tag: str = "prgi") -> "Program":
        header = PROGRAM_HEADER.parse(data, offset, tag=tag)
        pos = offset + PROGRAM_HEADER.size
        lfos = []
        for _ in range(header["nblfos"]):
            lfos.append(LFO.parse(data, pos, tag=tag))
            pos += LFO.size
        if pos + DELIMITER_SIZE > len(data):
            raise Truncated(tag, DELIMITER_SIZE, len(data) - pos, offset=pos)
        pos += DELIMITER_SIZE
        splits = []
        for _ in range(header["nbsplits"]):
            splits.append(SPLIT.parse(data, pos, tag=tag))
            pos += SPLIT.size
        return cls(header, lfos, splits)


Entry = Union[Record, Program]


def _parse_sample(data: bytes, offset: int, tag: str) -> Record:
    return SAMPLE_INFO.parse(data, offset, tag=tag)


def _parse_program(data: bytes, offset: int, tag: str) -> Program:
    return Program.parse(data, offset, tag=tag)


ENTRY_PARSERS: Dict[str, Callable[[bytes, int, str], Entry]] = {
    "sample_info": _parse_sample,
    "program": _parse_program,
}


def pointer_table_size(nslots: int) -> int:
    return align(nslots * 2, 16)


def parse_pointer_table(
    data: bytes,
    nslots: int,
    parse_entry: Callable[[bytes, int, str], T],
    *,
    tag: str,
    base_offset: int = 0,
) -> List[Optional[T]]:
    """Read ``nslots`` pointers from the start of ``data`` and the entries they name."""
    if nslots * 2 > len(data):
        raise Truncated(tag, nslots * 2, len(data), offset=base_offset)
    pointers = struct.unpack_from(f"<{nslots}H", data, 0)
    slots: List[Optional[T]] = []
    for pointer in pointers:
        if pointer == 0:
            slots.append(None)
            continue
        try:
            slots.append(parse_entry(data, pointer, tag))
        except Truncated as exc:
            raise Truncated(tag, exc.expected, exc.available, offset=base_offset + exc.offset) from None
    return slots


def encode_pointer_table(slots: Sequence[Optional[Entry]]) -> bytes:
    table_size = pointer_table_size(len(slots))
    pointers: List[int] = []
    body = bytearray()
    for entry in slots:
        if entry is None:
            pointers.append(0)
            continue
        pointers.append(table_size + len(body))
        body += entry.to_bytes()
    table = struct.pack(f"<{len(pointers)}H", *pointers)
    table += bytes([POINTER_FILL]) * (table_size - len(table))
    return table + bytes(body)


def parse_keygroups(data: bytes, count: int, *, base_offset: int = 0) -> List[Record]:
    if count * KEYGROUP.size > len(data):
        raise Truncated("kgrp", count * KEYGROUP.size, len(data), offset=base_offset)
    return [KEYGROUP.parse(data, i * KEYGROUP.size, tag="kgrp") for i in range(count)]


def encode_keygroups(records: Sequence[Record]) -> bytes:
    return b"".join(record.to_bytes() for record in records)
