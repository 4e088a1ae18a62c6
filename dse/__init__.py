"""Shared utilities for reading, editing and writing DSE sound banks and sequences."""

from .container import (  # noqa: F401
    Chunk,
    Container,
    Diagnostic,
    EmptyPayload,
    FormatKind,
    PointerTable,
    RawPayload,
    RecordTable,
    SampleData,
    SongInfo,
    TrackPayload,
    encode,
    parse,
)
from .errors import (  # noqa: F401
    BadSignature,
    DSEError,
    ParseError,
    RegistryMiss,
    SchemaMismatch,
    Truncated,
    UnknownOpcode,
)
from .events import OPCODES, Event, decode_events, encode_events, opcode_for_name  # noqa: F401
from .fields import FieldKind, FieldSpec, Known, Opaque, Record, Schema  # noqa: F401
from .registry import Registry  # noqa: F401
from .tables import Program  # noqa: F401
from .text import Verbosity, from_text, to_text  # noqa: F401
from .tracks import EventStream, track_streams  # noqa: F401
