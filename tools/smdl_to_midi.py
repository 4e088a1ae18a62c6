#!/usr/bin/env python3
"""Export an SMDL sequence as a Standard MIDI File.

Reads tracks through ``dse.tracks.EventStream`` only.  Covered: notes,
pauses, tempo, program changes, track volume/expression/pan, pitch bend
and the loop point (written as a ``LoopStart`` marker).  Every other
command is skipped.

Examples
--------
    python tools/smdl_to_midi.py bgm0001.smd
    python tools/smdl_to_midi.py "bgm/*.smd" -o midi/
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys
from typing import List, Optional, Tuple

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

import mido  # noqa: E402

from dse.container import Container, FormatKind, parse  # noqa: E402
from dse.tracks import EventStream, track_streams  # noqa: E402
from tools.roundtrip_dse import collect_paths  # noqa: E402

log = logging.getLogger("smdl_to_midi")

# Ticks for the 0x80-0x8F fixed pauses.
FIXED_PAUSES = [96, 72, 64, 48, 36, 32, 24, 18, 16, 12, 9, 8, 6, 4, 3, 2]
DEFAULT_OCTAVE = 4
DEFAULT_TPQN = 48

CONTROLLERS = {
    "SetTrackVolume": 7,
    "SetTrackPan": 10,
    "SetTrackExpression": 11,
}


def _signed8(value: int) -> int:
    return value - 0x100 if value & 0x80 else value


def convert_track(stream: EventStream) -> mido.MidiTrack:
    """Turn one event stream into a MIDI track with absolute timing resolved."""
    channel = stream.preamble["chanid"] & 0x0F
    timed: List[Tuple[int, int, mido.Message]] = []
    tick = 0
    octave = DEFAULT_OCTAVE
    last_pause = 0
    last_duration = 0
    last_note_end = 0
    seq = 0

    def emit(at: int, msg) -> None:
        nonlocal seq
        timed.append((at, seq, msg))
        seq += 1

    for event in stream:
        if event.is_note:
            octave += event.octave_mod - 2
            duration = event.duration if event.duration_size else last_duration
            last_duration = duration
            key = octave * 12 + event.note_value
            if not 0 <= key <= 127:
                log.warning("track %d: key %d out of MIDI range, skipped", stream.chunk_index, key)
                continue
            emit(tick, mido.Message("note_on", channel=channel, note=key, velocity=event.velocity))
            emit(tick + duration, mido.Message("note_off", channel=channel, note=key, velocity=0))
            last_note_end = max(last_note_end, tick + duration)
            continue
        if event.is_pause:
            last_pause = FIXED_PAUSES[event.pause_index]
            tick += last_pause
            continue

        name = event.name
        params = event.params
        if name == "EndOfTrack":
            break
        if name == "RepeatLastPause":
            tick += last_pause
        elif name == "AddToLastPause":
            last_pause += params[0]
            tick += last_pause
        elif name in ("Pause8Bits", "Pause16Bits", "Pause24Bits"):
            last_pause = int.from_bytes(params, "little")
            tick += last_pause
        elif name == "PauseUntilRelease":
            tick = max(tick, last_note_end)
        elif name == "SetTrackOctave":
            octave = params[0]
        elif name == "AddToTrackOctave":
            octave += _signed8(params[0])
        elif name in ("SetTempo", "SetTempo2"):
            if params[0]:
                emit(tick, mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(params[0])))
        elif name == "SetProgram":
            emit(tick, mido.Message("program_change", channel=channel, program=params[0] & 0x7F))
        elif name in CONTROLLERS:
            emit(
                tick,
                mido.Message("control_change", channel=channel, control=CONTROLLERS[name], value=params[0] & 0x7F),
            )
        elif name == "PitchBend":
            bend = int.from_bytes(params, "big", signed=True)
            emit(tick, mido.Message("pitchwheel", channel=channel, pitch=max(-8192, min(8191, bend))))
        elif name == "LoopPoint":
            emit(tick, mido.MetaMessage("marker", text="LoopStart"))

    track = mido.MidiTrack()
    now = 0
    for at, _, msg in sorted(timed, key=lambda item: (item[0], item[1])):
        track.append(msg.copy(time=at - now))
        now = at
    end = max(tick, last_note_end)
    track.append(mido.MetaMessage("end_of_track", time=end - now))
    return track


def smdl_to_midi(container: Container) -> mido.MidiFile:
    if container.kind is not FormatKind.SMDL:
        raise ValueError("MIDI export needs an SMDL sequence")
    song = container.chunk("song")
    tpqn = song.payload.record["tpqn"] if song is not None else DEFAULT_TPQN
    midi = mido.MidiFile(type=1, ticks_per_beat=tpqn or DEFAULT_TPQN)
    for stream in track_streams(container):
        midi.tracks.append(convert_track(stream))
    return midi


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Export .smd sequences as MIDI files.")
    parser.add_argument("paths", nargs="+", help="File paths or glob patterns.")
    parser.add_argument("-o", "--output", type=Path, help="Output folder (default: next to input).")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    paths = collect_paths(args.paths, (".smd",))
    if not paths:
        parser.error("No files matched the provided paths/patterns.")

    failures = 0
    for path in paths:
        try:
            midi = smdl_to_midi(parse(path.read_bytes(), FormatKind.SMDL))
        except ValueError as exc:
            failures += 1
            print(f"ERR  {path}: {exc}")
            continue
        folder = args.output if args.output is not None else path.parent
        folder.mkdir(parents=True, exist_ok=True)
        target = folder / (path.stem + ".mid")
        midi.save(str(target))
        print(f"OK   {path} -> {target} ({len(midi.tracks)} tracks)")
    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
