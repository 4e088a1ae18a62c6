"""Hand-assembled SWDL/SMDL byte strings for tests.

Everything here is written with ``struct`` directly so the parser is checked
against bytes that did not come from the encoder.  Opaque fields use the
bundled registry defaults unless a test overrides them.
"""

from __future__ import annotations

import struct
from typing import Iterable, List, Optional, Sequence

VERSION = 0x0415
SWDL_CHUNK_BYTES = bytes.fromhex("0000 1504 10000000")
SMDL_CHUNK_BYTES = bytes.fromhex("00000001 04ff0000")
DATE = struct.pack("<H6B", 2008, 5, 14, 12, 30, 0, 0)


def fname(name: str, fill: int) -> bytes:
    body = name.encode("latin-1") + b"\x00"
    return body + bytes([fill]) * (16 - len(body))


def swdl_header(
    *,
    flen: int,
    nbwavislots: int,
    nbprgislots: int = 0,
    pcmdlen: int = 0xAAAA0000,
    wavilen: int = 0,
    name: str = "bank.swd",
    unk18: bytes = b"\x00" * 4,
) -> bytes:
    out = b"swdl" + unk18 + struct.pack("<IHBB", flen, VERSION, 0, 0)
    out += b"\x00" * 8 + DATE + fname(name, 0xAA)
    out += bytes.fromhex("00aaaaaa 00000000 00000000 10000000")
    out += struct.pack("<I", pcmdlen) + bytes.fromhex("0000")
    out += struct.pack("<HH", nbwavislots, nbprgislots) + bytes.fromhex("0c02")
    out += struct.pack("<I", wavilen)
    assert len(out) == 0x50
    return out


def swdl_chunk(tag: bytes, payload: bytes, *, length: Optional[int] = None) -> bytes:
    declared = len(payload) if length is None else length
    return tag + SWDL_CHUNK_BYTES + struct.pack("<I", declared) + payload


def adsr(release: int = 40) -> bytes:
    return (
        b"\x01\x01"
        + bytes.fromhex("01 03 03ff ffff")
        + struct.pack("<7b", 127, 0, 0, 127, 0, 127, release)
        + b"\xff"
    )


def sample_info(
    sample_id: int, *, rootkey: int = 60, smplrate: int = 22050, unk13: bytes = b"\x00" * 4
) -> bytes:
    out = bytes.fromhex("01aa") + struct.pack("<HBbbbbb", sample_id, 0, 0, rootkey, 0, 127, 64)
    out += bytes.fromhex("00 02 0000 aaaa 1504") + struct.pack("<H", 0x0200)
    out += b"\x09\x01" + bytes.fromhex("0108 0004 0101") + unk13
    out += struct.pack("<IIII", smplrate, 0, 0, 100)
    out += adsr()
    assert len(out) == 0x40
    return out


def program(program_id: int, *, nlfos: int = 1, nsplits: int = 1, pad_byte: int = 0xAA) -> bytes:
    header = struct.pack("<HHbb", program_id, nsplits, 127, 64)
    header += bytes.fromhex("00 0f 0002 00") + struct.pack("<BB", nlfos, pad_byte)
    header += bytes.fromhex("00 00 00")
    assert len(header) == 0x10
    lfo = bytes.fromhex("00 00") + struct.pack("<BBH", 1, 1, 0) + bytes.fromhex("0000")
    lfo += struct.pack("<HH", 0, 0) + bytes.fromhex("0000 0000")
    assert len(lfo) == 0x10
    split = b"\x00" + struct.pack("<B", 0) + bytes.fromhex("02 01")
    split += struct.pack("<8b", 0, 127, 0, 127, 0, 127, 0, 127)
    split += bytes.fromhex("00000000 0000") + struct.pack("<HBbbbbbB", 0, 0, 0, 60, 0, 127, 64, 0)
    split += bytes.fromhex("02 0000 0000") + adsr()
    assert len(split) == 0x30
    return header + lfo * nlfos + bytes([pad_byte]) * 16 + split * nsplits


def pointer_table(entries: Sequence[Optional[bytes]]) -> bytes:
    table_size = -(-len(entries) * 2 // 16) * 16
    pointers: List[int] = []
    body = b""
    for entry in entries:
        if entry is None:
            pointers.append(0)
        else:
            pointers.append(table_size + len(body))
            body += entry
    table = struct.pack(f"<{len(pointers)}H", *pointers)
    return table + b"\xaa" * (table_size - len(table)) + body


def keygroup(kgrp_id: int) -> bytes:
    return struct.pack("<HbBbbBB", kgrp_id, -1, 8, 0, 15, 0, 0)


def minimal_swdl() -> bytes:
    """Header, an empty wave table and the terminator."""
    chunks = swdl_chunk(b"wavi", b"") + swdl_chunk(b"eod ", b"")
    return swdl_header(flen=0x50 + len(chunks), nbwavislots=0) + chunks


def sample_bank(*, unk13: bytes = b"\x00" * 4, pcm: bytes = b"\x01\x02\x03\x04\x05") -> bytes:
    """Three wave slots (middle one empty), two programs, three key groups and PCM data."""
    wavi = pointer_table([sample_info(0, unk13=unk13), None, sample_info(2, rootkey=48)])
    prgi = pointer_table([program(0), program(1, nlfos=0, nsplits=2, pad_byte=0x01)])
    kgrp = b"".join(keygroup(i) for i in range(3))
    chunks = swdl_chunk(b"wavi", wavi)
    chunks += swdl_chunk(b"prgi", prgi)
    chunks += swdl_chunk(b"kgrp", kgrp) + bytes.fromhex("67c0400088 00ff04")
    chunks += swdl_chunk(b"pcmd", pcm) + b"\x00" * (16 - len(pcm) % 16)
    chunks += swdl_chunk(b"eod ", b"")
    header = swdl_header(
        flen=0x50 + len(chunks),
        nbwavislots=3,
        nbprgislots=2,
        pcmdlen=len(pcm),
        wavilen=len(wavi),
    )
    return header + chunks


def smdl_header(*, flen: int, name: str = "song.smd") -> bytes:
    out = b"smdl" + b"\x00" * 4 + struct.pack("<IHBB", flen, VERSION, 0, 0)
    out += b"\x00" * 8 + DATE + fname(name, 0xFF)
    out += bytes.fromhex("01000000 01000000 ffffffff ffffffff")
    assert len(out) == 0x40
    return out


def song_chunk(*, nbtrks: int, nbchans: int = 1, tpqn: int = 48) -> bytes:
    out = b"song" + bytes.fromhex("00000001 10ff0000 b0ffffff 0100")
    out += struct.pack("<H", tpqn) + bytes.fromhex("01ff") + struct.pack("<BB", nbtrks, nbchans)
    out += bytes.fromhex("0000000f ffffffff 00000040 00404000 0002 0008 00ffffff")
    out += b"\xff" * 16
    assert len(out) == 64
    return out


def track_chunk(events: bytes, *, trkid: int = 0, chanid: int = 0, length: Optional[int] = None) -> bytes:
    body = bytes([trkid, chanid, 0, 0]) + events
    declared = len(body) if length is None else length
    pad = b"\x98" * (-len(body) % 4)
    return b"trk " + SMDL_CHUNK_BYTES + struct.pack("<I", declared) + body + pad


def smdl_file(tracks: Iterable[bytes], *, extra_chunks: bytes = b"") -> bytes:
    tracks = list(tracks)
    chunks = song_chunk(nbtrks=len(tracks)) + b"".join(tracks) + extra_chunks
    chunks += b"eoc " + SMDL_CHUNK_BYTES + struct.pack("<I", 0)
    return smdl_header(flen=0x40 + len(chunks)) + chunks


# SetTempo 120, SetProgram 1, PlayNote vel 100 (1 duration byte 0x30), fixed pause, EndOfTrack
SIMPLE_EVENTS = bytes.fromhex("a478 ac01 646030 80 98")


def simple_smdl() -> bytes:
    return smdl_file([track_chunk(SIMPLE_EVENTS)])
