"""Editable view over the events of one track chunk.

An :class:`EventStream` does not copy anything: it looks the chunk up in its
container on every call, so edits land in the model that will be encoded.
"""

from __future__ import annotations

from typing import Iterator, List

from .container import Container, TrackPayload
from .errors import SchemaMismatch
from .events import Event
from .fields import Record


class EventStream:
    def __init__(self, container: Container, chunk_index: int) -> None:
        self.container = container
        self.chunk_index = chunk_index
        self._payload()  # fail early on a non-track chunk

    def _payload(self) -> TrackPayload:
        try:
            chunk = self.container.chunks[self.chunk_index]
        except IndexError:
            raise SchemaMismatch(f"no chunk at index {self.chunk_index}") from None
        if not isinstance(chunk.payload, TrackPayload):
            raise SchemaMismatch(f"chunk {self.chunk_index} ({chunk.tag!r}) is not a track")
        return chunk.payload

    @property
    def events(self) -> List[Event]:
        return self._payload().events

    @property
    def preamble(self) -> Record:
        return self._payload().preamble

    def read(self, index: int) -> Event:
        return self.events[index]

    def insert(self, index: int, event: Event) -> None:
        self.events.insert(index, _check(event))

    def replace(self, index: int, event: Event) -> Event:
        events = self.events
        old = events[index]
        events[index] = _check(event)
        return old

    def remove(self, index: int) -> Event:
        return self.events.pop(index)

    def append(self, event: Event) -> None:
        self.events.append(_check(event))

    def __len__(self) -> int:
        return len(self.events)

    def __iter__(self) -> Iterator[Event]:
        return iter(list(self.events))

    def __getitem__(self, index: int) -> Event:
        return self.read(index)

    def __repr__(self) -> str:
        return f"EventStream(chunk={self.chunk_index}, events={len(self)})"


def _check(event: Event) -> Event:
    if not isinstance(event, Event):
        raise SchemaMismatch(f"expected an Event, got {type(event).__name__}")
    return event


def track_streams(container: Container) -> List[EventStream]:
    """One stream per ``trk `` chunk, in file order."""
    return [EventStream(container, index) for index in container.indexes("trk ")]
