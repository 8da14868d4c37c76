"""Errors raised while decoding mesh files.

Every failure caused by the content of a file (or by failing to read it) is a
MeshError. Programmer mistakes, such as a non-positive admission limit, are
plain ValueErrors and never MeshErrors.
"""
from enum import Enum
from typing import Hashable, Optional


class ErrorKind(Enum):
    """Classification of a per-file failure."""

    UNEXPECTED_EOF = "UnexpectedEof"
    INVALID_MAGIC = "InvalidMagic"
    UNSUPPORTED_VERSION = "UnsupportedVersion"
    SIZE_MISMATCH = "SizeMismatch"
    INDEX_OUT_OF_RANGE = "IndexOutOfRange"
    INVALID_RECORD = "InvalidRecord"
    IO_ERROR = "IoError"


class MeshError(ValueError):
    """Base class for per-file decode and load failures."""

    kind: ErrorKind

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
        # Filled in by the loader once the failing stage and source are known
        self.stage = None
        self.source: Optional[Hashable] = None

    def __str__(self) -> str:
        if self.source is not None:
            return f"{self.source}: {self.message}"
        return self.message


class UnexpectedEofError(MeshError):
    """A read needed more bytes than the buffer has left."""

    kind = ErrorKind.UNEXPECTED_EOF

    def __init__(self, offset: int, wanted: int, remaining: int):
        super().__init__(
            f"Unexpected end of data at offset {offset}: "
            f"needed {wanted} bytes, {remaining} left"
        )
        self.offset = offset
        self.wanted = wanted
        self.remaining = remaining


class InvalidMagicError(MeshError):
    """The leading bytes are not the mesh signature."""

    kind = ErrorKind.INVALID_MAGIC

    def __init__(self, found: bytes):
        super().__init__(f"Invalid mesh magic: {found!r}")
        self.found = found


class UnsupportedVersionError(MeshError):
    kind = ErrorKind.UNSUPPORTED_VERSION

    def __init__(self, version: int):
        super().__init__(f"Unsupported mesh version: {version}")
        self.version = version


class SizeMismatchError(MeshError):
    """Declared sizes, offsets or counts disagree with each other or the data."""

    kind = ErrorKind.SIZE_MISMATCH


class IndexOutOfRangeError(MeshError):
    """An index refers past the end of the sequence it indexes."""

    kind = ErrorKind.INDEX_OUT_OF_RANGE

    def __init__(self, message: str, position: int, value: int, bound: int):
        super().__init__(message)
        self.position = position
        self.value = value
        self.bound = bound


class InvalidRecordError(MeshError):
    """A record has the right size but malformed content."""

    kind = ErrorKind.INVALID_RECORD


class MeshIoError(MeshError):
    """The bytes of a file could not be obtained."""

    kind = ErrorKind.IO_ERROR
