from pathlib import Path
import sys

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

import builders  # noqa: E402
from dse.container import parse  # noqa: E402
from dse.errors import SchemaMismatch  # noqa: E402
from dse.events import Event  # noqa: E402
from dse.tracks import EventStream, track_streams  # noqa: E402


def test_read_and_iterate(simple_smdl: bytes) -> None:
    stream = EventStream(parse(simple_smdl), 1)
    assert len(stream) == 5
    assert stream.read(0).name == "SetTempo"
    assert stream[2].is_note
    assert [event.name for event in stream][-1] == "EndOfTrack"
    assert stream.preamble["trkid"] == 0


def test_edits_are_visible_in_encoded_bytes(simple_smdl: bytes) -> None:
    container = parse(simple_smdl)
    stream = EventStream(container, 1)

    old = stream.replace(0, Event.command("SetTempo", 0x60))
    assert old.params == b"\x78"
    assert container.chunks[1].payload.events[0].params == b"\x60"

    removed = stream.remove(3)
    assert removed.is_pause
    stream.insert(1, Event.command("SetTrackVolume", 90))

    rebuilt = container.to_bytes()
    body = parse(rebuilt).chunks[1].payload.events
    assert [event.name for event in body] == [
        "SetTempo", "SetTrackVolume", "SetProgram", "PlayNote", "EndOfTrack",
    ]
    assert body[0].params == b"\x60"


def test_append_does_not_reorder(simple_smdl: bytes) -> None:
    container = parse(simple_smdl)
    stream = EventStream(container, 1)
    stream.append(Event.pause(2))
    assert stream[-1].is_pause
    assert stream[-2].name == "EndOfTrack"
    reparsed = parse(container.to_bytes())
    assert reparsed.chunks[1].payload.events[-1] == Event.pause(2)


def test_stream_rejects_non_tracks_and_non_events(simple_smdl: bytes) -> None:
    container = parse(simple_smdl)
    with pytest.raises(SchemaMismatch):
        EventStream(container, 0)
    with pytest.raises(SchemaMismatch):
        EventStream(container, 9)
    stream = EventStream(container, 1)
    with pytest.raises(SchemaMismatch):
        stream.append(b"\x98")  # type: ignore[arg-type]


def test_track_streams_in_file_order() -> None:
    data = builders.smdl_file(
        [
            builders.track_chunk(builders.SIMPLE_EVENTS, trkid=0),
            builders.track_chunk(bytes.fromhex("e840 98"), trkid=1, chanid=1),
        ]
    )
    streams = track_streams(parse(data))
    assert [stream.chunk_index for stream in streams] == [1, 2]
    assert [stream.preamble["trkid"] for stream in streams] == [0, 1]
    assert streams[1][0] == Event.command("SetTrackPan", 0x40)
