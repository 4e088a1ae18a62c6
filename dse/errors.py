"""Exception types raised while decoding or importing DSE files.

Every error derives from ``ValueError`` so callers that only know about
malformed input (the tools catch ``ValueError``) keep working.
"""

from __future__ import annotations


class DSEError(ValueError):
    """Base class for every error raised by the ``dse`` package."""


class ParseError(DSEError):
    """The binary input cannot be decoded into a container."""


class BadSignature(ParseError):
    def __init__(self, expected: bytes | str, found: bytes, *, field: str = "magic") -> None:
        self.expected = expected
        self.found = found
        self.field = field
        super().__init__(f"bad {field}: expected {expected!r}, found {found!r}")


class Truncated(ParseError):
    def __init__(self, chunk_tag: str, expected: int, available: int, *, offset: int = 0) -> None:
        self.chunk_tag = chunk_tag
        self.expected = expected
        self.available = available
        self.offset = offset
        super().__init__(
            f"truncated {chunk_tag!r} at 0x{offset:X}: "
            f"need {expected} bytes, {available} available"
        )


class UnknownOpcode(ParseError):
    def __init__(self, offset: int, byte: int, *, chunk_tag: str = "trk ") -> None:
        self.offset = offset
        self.byte = byte
        self.chunk_tag = chunk_tag
        super().__init__(f"unknown event opcode 0x{byte:02X} at 0x{offset:X} in {chunk_tag!r}")


class SchemaMismatch(DSEError):
    """Text or programmatic input names a record/field the schemas do not define."""


class RegistryMiss(LookupError):
    """No registry default exists for ``(record_type, field_id)``.

    Never fatal: callers fall back to keeping the field explicitly.
    """

    def __init__(self, record_type: str, field_id: str) -> None:
        self.record_type = record_type
        self.field_id = field_id
        super().__init__(f"no registry default for {record_type}.{field_id}")
