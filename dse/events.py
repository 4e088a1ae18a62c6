"""Track event codec.

A track body is a flat byte stream of events.  The first byte selects the
shape of each event:

* ``0x00-0x7F`` -- PlayNote.  The opcode is the velocity, followed by a note
  byte (``CCOO NNNN``: 2-bit duration byte count, 2-bit octave modifier,
  4-bit note) and then ``CC`` little-endian key-down duration bytes.
* ``0x80-0x8F`` -- pause of a fixed length, no parameters.
* ``0x90-0xFF`` -- command with a fixed number of parameter bytes taken from
  :data:`OPCODES`.  Codes missing from the table cannot be skipped because
  their length is unknown.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from . import varlen
from .errors import SchemaMismatch, Truncated, UnknownOpcode

log = logging.getLogger(__name__)

PLAY_NOTE = "PlayNote"
FIXED_PAUSE = "FixedPause"

NOTE_MAX = 0x7F
PAUSE_FIRST = 0x80
PAUSE_LAST = 0x8F
COMMAND_FIRST = 0x90

# PlayNote stores its duration byte count in two bits.
MAX_DURATION_BYTES = 3
MAX_DURATION = (1 << (8 * MAX_DURATION_BYTES)) - 1


@dataclass(frozen=True)
class OpcodeInfo:
    code: int
    name: str
    nparams: int


_TABLE: Tuple[Tuple[int, str, int], ...] = (
    (0x90, "RepeatLastPause", 0),
    (0x91, "AddToLastPause", 1),
    (0x92, "Pause8Bits", 1),
    (0x93, "Pause16Bits", 2),
    (0x94, "Pause24Bits", 3),
    (0x95, "PauseUntilRelease", 1),
    (0x98, "EndOfTrack", 0),
    (0x99, "LoopPoint", 0),
    (0x9C, "0x9C", 1),
    (0x9D, "0x9D", 0),
    (0x9E, "0x9E", 0),
    (0xA0, "SetTrackOctave", 1),
    (0xA1, "AddToTrackOctave", 1),
    (0xA4, "SetTempo", 1),
    (0xA5, "SetTempo2", 1),
    (0xA8, "0xA8", 2),
    (0xA9, "SetSwdl", 1),
    (0xAA, "SetBank", 1),
    (0xAB, "SkipNextByte", 1),
    (0xAC, "SetProgram", 1),
    (0xAF, "0xAF", 3),
    (0xB0, "0xB0", 0),
    (0xB1, "0xB1", 1),
    (0xB2, "0xB2", 1),
    (0xB3, "0xB3", 1),
    (0xB4, "0xB4", 2),
    (0xB5, "0xB5", 1),
    (0xB6, "0xB6", 1),
    (0xBC, "0xBC", 1),
    (0xBE, "0xBE", 1),
    (0xBF, "0xBF", 1),
    (0xC0, "0xC0", 1),
    (0xC3, "0xC3", 1),
    (0xCB, "SkipNext2Bytes", 2),
    (0xD0, "0xD0", 1),
    (0xD1, "0xD1", 1),
    (0xD2, "0xD2", 1),
    (0xD3, "0xD3", 2),
    (0xD4, "0xD4", 3),
    (0xD5, "0xD5", 2),
    (0xD6, "0xD6", 2),
    (0xD7, "PitchBend", 2),
    (0xD8, "0xD8", 2),
    (0xDB, "0xDB", 1),
    (0xDC, "0xDC", 5),
    (0xDD, "0xDD", 4),
    (0xDF, "0xDF", 1),
    (0xE0, "SetTrackVolume", 1),
    (0xE1, "0xE1", 1),
    (0xE2, "0xE2", 3),
    (0xE3, "SetTrackExpression", 1),
    (0xE4, "0xE4", 5),
    (0xE5, "0xE5", 4),
    (0xE7, "0xE7", 1),
    (0xE8, "SetTrackPan", 1),
    (0xE9, "0xE9", 1),
    (0xEA, "0xEA", 3),
    (0xEC, "0xEC", 5),
    (0xED, "0xED", 4),
    (0xEF, "0xEF", 1),
    (0xF0, "0xF0", 5),
    (0xF1, "0xF1", 4),
    (0xF2, "0xF2", 2),
    (0xF3, "0xF3", 3),
    (0xF6, "0xF6", 1),
    (0xF8, "SkipNext2Bytes2", 2),
)

OPCODES: Dict[int, OpcodeInfo] = {code: OpcodeInfo(code, name, n) for code, name, n in _TABLE}
_BY_NAME: Dict[str, OpcodeInfo] = {info.name: info for info in OPCODES.values()}

END_OF_TRACK = 0x98


def opcode_for_name(name: str) -> int:
    """Return the command opcode called ``name`` (``"0xNN"`` names included)."""
    try:
        return _BY_NAME[name].code
    except KeyError:
        raise SchemaMismatch(f"unknown event name {name!r}") from None


def opcode_name(code: int) -> str:
    if code <= NOTE_MAX:
        return PLAY_NOTE
    if code <= PAUSE_LAST:
        return FIXED_PAUSE
    info = OPCODES.get(code)
    if info is None:
        raise SchemaMismatch(f"opcode 0x{code:02X} has no table entry")
    return info.name


@dataclass
class Event:
    """One track event.

    For PlayNote events ``params`` is the single note byte without its
    byte-count bits (``octave_mod << 4 | note``), ``duration`` is the
    key-down duration and ``duration_size`` the byte count it was stored
    with.  Other events leave both ``None``.
    """

    opcode: int
    params: bytes = b""
    duration: Optional[int] = None
    duration_size: Optional[int] = None

    def __post_init__(self) -> None:
        self.params = bytes(self.params)
        if not 0 <= self.opcode <= 0xFF:
            raise SchemaMismatch(f"opcode out of range: {self.opcode}")
        if self.is_note:
            if len(self.params) != 1 or self.params[0] > 0x3F:
                raise SchemaMismatch(f"PlayNote needs one note byte below 0x40, got {self.params!r}")
            if self.duration is None:
                self.duration = 0
            if not 0 <= self.duration <= MAX_DURATION:
                raise SchemaMismatch(f"PlayNote duration out of range: {self.duration}")
            if self.duration_size is None:
                self.duration_size = varlen.canonical_size(self.duration)
            if not 0 <= self.duration_size <= MAX_DURATION_BYTES or (
                self.duration >> (8 * self.duration_size)
            ):
                raise SchemaMismatch(
                    f"duration {self.duration} does not fit in {self.duration_size} bytes"
                )
            return
        if self.duration is not None or self.duration_size is not None:
            raise SchemaMismatch(f"only PlayNote events carry a duration (opcode 0x{self.opcode:02X})")
        if self.is_pause:
            if self.params:
                raise SchemaMismatch("fixed pauses take no parameters")
            return
        info = OPCODES.get(self.opcode)
        if info is None:
            raise SchemaMismatch(f"opcode 0x{self.opcode:02X} has no table entry")
        if len(self.params) != info.nparams:
            raise SchemaMismatch(
                f"{info.name} takes {info.nparams} parameter bytes, got {len(self.params)}"
            )

    @classmethod
    def note(cls, velocity: int, note: int, *, octave_mod: int = 2, duration: int = 0) -> "Event":
        if not 0 <= velocity <= NOTE_MAX:
            raise SchemaMismatch(f"velocity out of range: {velocity}")
        if not 0 <= note <= 0xF or not 0 <= octave_mod <= 3:
            raise SchemaMismatch(f"note {note} / octave_mod {octave_mod} out of range")
        return cls(velocity, bytes([(octave_mod << 4) | note]), duration)

    @classmethod
    def pause(cls, index: int) -> "Event":
        if not 0 <= index <= PAUSE_LAST - PAUSE_FIRST:
            raise SchemaMismatch(f"fixed pause index out of range: {index}")
        return cls(PAUSE_FIRST + index)

    @classmethod
    def command(cls, name: str, *params: int) -> "Event":
        return cls(opcode_for_name(name), bytes(params))

    @property
    def is_note(self) -> bool:
        return self.opcode <= NOTE_MAX

    @property
    def is_pause(self) -> bool:
        return PAUSE_FIRST <= self.opcode <= PAUSE_LAST

    @property
    def name(self) -> str:
        return opcode_name(self.opcode)

    @property
    def velocity(self) -> int:
        return self.opcode

    @property
    def note_value(self) -> int:
        return self.params[0] & 0x0F

    @property
    def octave_mod(self) -> int:
        return (self.params[0] >> 4) & 0x03

    @property
    def pause_index(self) -> int:
        return self.opcode - PAUSE_FIRST

    @property
    def is_canonical(self) -> bool:
        return not self.is_note or varlen.is_canonical(self.duration, self.duration_size)

    def canonical(self) -> "Event":
        """Return the event as it will be written."""
        if self.is_canonical:
            return self
        return Event(self.opcode, self.params, self.duration)

    def to_bytes(self) -> bytes:
        if not self.is_note:
            return bytes([self.opcode]) + self.params
        body, count = varlen.encode_canonical(self.duration)
        return bytes([self.opcode, (count << 6) | self.params[0]]) + body

    def __repr__(self) -> str:
        if self.is_note:
            extra = "" if self.is_canonical else f", duration_size={self.duration_size}"
            return (
                f"Event(PlayNote vel={self.velocity} oct={self.octave_mod} "
                f"note={self.note_value} dur={self.duration}{extra})"
            )
        if self.is_pause:
            return f"Event(FixedPause {self.pause_index})"
        return f"Event({self.name} {self.params.hex()})"


def decode_event(data: bytes, pos: int, *, base_offset: int = 0, tag: str = "trk ") -> Tuple[Event, int]:
    """Decode the event at ``pos``; return it with the position after it."""
    code = data[pos]
    if code <= NOTE_MAX:
        if pos + 2 > len(data):
            raise Truncated(tag, 2, len(data) - pos, offset=base_offset + pos)
        note_byte = data[pos + 1]
        count = note_byte >> 6
        start = pos + 2
        if start + count > len(data):
            raise Truncated(tag, 2 + count, len(data) - pos, offset=base_offset + pos)
        duration = varlen.decode(data[start : start + count], count)
        return Event(code, bytes([note_byte & 0x3F]), duration, count), start + count
    if code <= PAUSE_LAST:
        return Event(code), pos + 1
    info = OPCODES.get(code)
    if info is None:
        raise UnknownOpcode(base_offset + pos, code, chunk_tag=tag)
    end = pos + 1 + info.nparams
    if end > len(data):
        raise Truncated(tag, 1 + info.nparams, len(data) - pos, offset=base_offset + pos)
    return Event(code, data[pos + 1 : end]), end


def decode_events(
    data: bytes, start: int = 0, end: Optional[int] = None, *, base_offset: int = 0, tag: str = "trk "
) -> Tuple[List[Event], int]:
    """Decode events starting at ``start`` while the cursor is before ``end``.

    The last event may run past ``end``; the returned position says where it
    actually stopped so the caller can compare it with the declared length.
    """
    if end is None:
        end = len(data)
    events: List[Event] = []
    pos = start
    while pos < end:
        event, pos = decode_event(data, pos, base_offset=base_offset, tag=tag)
        events.append(event)
    padded = sum(1 for event in events if not event.is_canonical)
    if padded:
        log.debug("%s at 0x%X: %d note(s) with non-minimal duration bytes", tag, base_offset + start, padded)
    return events, pos


def encode_events(events: Iterable[Event]) -> bytes:
    return b"".join(event.to_bytes() for event in events)
