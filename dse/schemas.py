"""Record layouts for SWDL (sound bank) and SMDL (sequence) files.

Offsets are relative to the start of each record.  Names follow the
community documentation of the DSE engine; ``unkNN`` fields have no known
meaning and are kept opaque.

SWDL header (after the 4-byte ``swdl`` magic), 0x4C bytes:
  0x04 unk18      0x08 flen*     0x0C version   0x0E link1/link2
  0x10 unk3       0x14 unk4      0x18 date (year u16 + 6 bytes)
  0x20 fname[16] (0xAA fill)     0x30 unk10..unk13
  0x40 pcmdlen    0x44 unk14     0x46 nbwavislots
  0x48 nbprgislots               0x4A unk17     0x4C wavilen*

SMDL header (after the 4-byte ``smdl`` magic), 0x3C bytes:
  0x04 unk7  0x08 flen*  0x0C version  0x0E link1/link2  0x10 unk3/unk4
  0x18 date  0x20 fname[16] (0xFF fill)  0x30 unk5 unk6 unk8 unk9

Fields marked ``*`` are derived and recomputed on encode.  ``pcmdlen``,
``nbwavislots`` and ``nbprgislots`` are kept as read but refreshed from their
chunk when it is structured.
"""

from __future__ import annotations

from typing import Dict

from .fields import Schema, derived, embed, known, opaque, text

DSE_VERSION = 0x0415

_DATE = [
    known("year", "u16"),
    known("month", "u8"),
    known("day", "u8"),
    known("hour", "u8"),
    known("minute", "u8"),
    known("second", "u8"),
    known("centisecond", "u8"),
]

SWDL_HEADER = Schema(
    "swdl_header",
    [
        opaque("unk18", 4),
        derived("flen", "u32"),
        known("version", "u16"),
        known("link1", "u8"),
        known("link2", "u8"),
        opaque("unk3", 4),
        opaque("unk4", 4),
        *_DATE,
        text("fname", 16, pad=0xAA),
        opaque("unk10", 4),
        opaque("unk11", 4),
        opaque("unk12", 4),
        opaque("unk13", 4),
        known("pcmdlen", "u32"),
        opaque("unk14", 2),
        known("nbwavislots", "u16"),
        known("nbprgislots", "u16"),
        opaque("unk17", 2),
        derived("wavilen", "u32"),
    ],
)

SMDL_HEADER = Schema(
    "smdl_header",
    [
        opaque("unk7", 4),
        derived("flen", "u32"),
        known("version", "u16"),
        known("link1", "u8"),
        known("link2", "u8"),
        opaque("unk3", 4),
        opaque("unk4", 4),
        *_DATE,
        text("fname", 16, pad=0xFF),
        opaque("unk5", 4),
        opaque("unk6", 4),
        opaque("unk8", 4),
        opaque("unk9", 4),
    ],
)

# The 8 bytes between a chunk's tag and its length field.
SWDL_CHUNK_HEADER = Schema(
    "swdl_chunk_header",
    [
        opaque("unk1", 2),
        opaque("unk2", 2),
        opaque("chunkbeg", 4),
    ],
)

SMDL_CHUNK_HEADER = Schema(
    "smdl_chunk_header",
    [
        opaque("param1", 4),
        opaque("param2", 4),
    ],
)

_ADSR = [
    known("envon", "bool"),
    known("envmult", "u8"),
    opaque("unk19", 1),
    opaque("unk20", 1),
    opaque("unk21", 2),
    opaque("unk22", 2),
    known("atkvol", "i8"),
    known("attack", "i8"),
    known("decay", "i8"),
    known("sustain", "i8"),
    known("hold", "i8"),
    known("decay2", "i8"),
    known("release", "i8"),
    opaque("unk57", 1),
]

SAMPLE_INFO = Schema(
    "sample_info",
    [
        opaque("unk1", 2),
        known("id", "u16"),
        known("ftune", "u8"),
        known("ctune", "i8"),
        known("rootkey", "i8"),
        known("ktps", "i8"),
        known("volume", "i8"),
        known("pan", "i8"),
        opaque("unk5", 1),
        opaque("unk58", 1),
        opaque("unk6", 2),
        opaque("unk7", 2),
        opaque("unk59", 2),
        known("smplfmt", "u16"),
        opaque("unk9", 1),
        known("smplloop", "bool"),
        opaque("unk10", 2),
        opaque("unk11", 2),
        opaque("unk12", 2),
        opaque("unk13", 4),
        known("smplrate", "u32"),
        known("smplpos", "u32"),
        known("loopbeg", "u32"),
        known("looplen", "u32"),
        *embed(_ADSR, "env_"),
    ],
)

PROGRAM_HEADER = Schema(
    "program_header",
    [
        known("id", "u16"),
        derived("nbsplits", "u16"),
        known("prgvol", "i8"),
        known("prgpan", "i8"),
        opaque("unk3", 1),
        opaque("unk_0f", 1),
        opaque("unk4", 2),
        opaque("unk5", 1),
        derived("nblfos", "u8"),
        known("pad_byte", "u8"),
        opaque("unk7", 1),
        opaque("unk8", 1),
        opaque("unk9", 1),
    ],
)

LFO = Schema(
    "lfo",
    [
        opaque("unk34", 1),
        opaque("unk52", 1),
        known("dest", "u8"),
        known("wshape", "u8"),
        known("rate", "u16"),
        opaque("unk29", 2),
        known("depth", "u16"),
        known("delay", "u16"),
        opaque("unk32", 2),
        opaque("unk33", 2),
    ],
)

SPLIT = Schema(
    "split",
    [
        opaque("unk10", 1),
        known("id", "u8"),
        opaque("unk11", 1),
        opaque("unk25", 1),
        known("lowkey", "i8"),
        known("hikey", "i8"),
        known("lowkey2", "i8"),
        known("hikey2", "i8"),
        known("lovel", "i8"),
        known("hivel", "i8"),
        known("lovel2", "i8"),
        known("hivel2", "i8"),
        opaque("unk16", 4),
        opaque("unk17", 2),
        known("smpl_id", "u16"),
        known("ftune", "u8"),
        known("ctune", "i8"),
        known("rootkey", "i8"),
        known("ktps", "i8"),
        known("smplvol", "i8"),
        known("smplpan", "i8"),
        known("kgrpid", "u8"),
        opaque("unk22", 1),
        opaque("unk23", 2),
        opaque("unk24", 2),
        *embed(_ADSR, "env_"),
    ],
)

KEYGROUP = Schema(
    "keygroup",
    [
        known("id", "u16"),
        known("poly", "i8"),
        known("priority", "u8"),
        known("vclow", "i8"),
        known("vchigh", "i8"),
        opaque("unk50", 1),
        opaque("unk51", 1),
    ],
)

# Song chunk body after the ``song`` tag; the chunk has no length field.
SONG = Schema(
    "song",
    [
        opaque("unk1", 4),
        opaque("unk2", 4),
        opaque("unk3", 4),
        opaque("unk4", 2),
        known("tpqn", "u16"),
        opaque("unk5", 2),
        derived("nbtrks", "u8"),
        known("nbchans", "u8"),
        opaque("unk6", 4),
        opaque("unk7", 4),
        opaque("unk8", 4),
        opaque("unk9", 4),
        opaque("unk10", 2),
        opaque("unk11", 2),
        opaque("unk12", 4),
        opaque("unkpad", 16),
    ],
)

TRACK_PREAMBLE = Schema(
    "track_preamble",
    [
        known("trkid", "u8"),
        known("chanid", "u8"),
        opaque("unk1", 1),
        opaque("unk2", 1),
    ],
)

SCHEMAS: Dict[str, Schema] = {
    schema.name: schema
    for schema in (
        SWDL_HEADER,
        SMDL_HEADER,
        SWDL_CHUNK_HEADER,
        SMDL_CHUNK_HEADER,
        SAMPLE_INFO,
        PROGRAM_HEADER,
        LFO,
        SPLIT,
        KEYGROUP,
        SONG,
        TRACK_PREAMBLE,
    )
}
