"""Bounds-checked sequential reader over a fixed byte buffer."""
import struct
from typing import Tuple, Union

from mesh_errors import UnexpectedEofError

BufferLike = Union[bytes, bytearray, memoryview]

_U8 = struct.Struct("<B")
_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_I32 = struct.Struct("<i")
_F32 = struct.Struct("<f")


class ByteCursor:
    """Pull-based little-endian reader.

    Every read checks its width against the remaining bytes before touching
    the buffer. A read either consumes exactly its width or raises
    UnexpectedEofError with the offset left where it was.
    """

    def __init__(self, data: BufferLike):
        self._view = memoryview(data).cast("B").toreadonly()
        self._offset = 0

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def length(self) -> int:
        return len(self._view)

    @property
    def remaining(self) -> int:
        return len(self._view) - self._offset

    @property
    def at_end(self) -> bool:
        return self._offset == len(self._view)

    def _check(self, width: int):
        if width < 0:
            raise ValueError(f"Read width must be non-negative, got {width}")
        if width > self.remaining:
            raise UnexpectedEofError(self._offset, width, self.remaining)

    def read_bytes(self, count: int) -> bytes:
        """Read count raw bytes."""
        self._check(count)
        start = self._offset
        self._offset += count
        return self._view[start:self._offset].tobytes()

    def read_view(self, count: int) -> memoryview:
        """Read count bytes as a zero-copy view into the buffer."""
        self._check(count)
        start = self._offset
        self._offset += count
        return self._view[start:self._offset]

    def peek(self, count: int) -> bytes:
        """Return up to count bytes without advancing."""
        if count < 0:
            raise ValueError(f"Peek width must be non-negative, got {count}")
        return self._view[self._offset:self._offset + count].tobytes()

    def read_struct(self, layout: struct.Struct) -> Tuple:
        """Read one fixed-size record described by layout."""
        self._check(layout.size)
        values = layout.unpack_from(self._view, self._offset)
        self._offset += layout.size
        return values

    def read_u8(self) -> int:
        return self.read_struct(_U8)[0]

    def read_u16(self) -> int:
        return self.read_struct(_U16)[0]

    def read_u32(self) -> int:
        return self.read_struct(_U32)[0]

    def read_i32(self) -> int:
        return self.read_struct(_I32)[0]

    def read_f32(self) -> float:
        return self.read_struct(_F32)[0]

    def skip(self, count: int):
        """Advance count bytes without reading them."""
        self._check(count)
        self._offset += count

    def seek(self, offset: int):
        """Move to an absolute offset.

        Seeking to the very end is allowed; seeking past it is not.
        """
        if offset < 0:
            raise ValueError(f"Offset must be non-negative, got {offset}")
        if offset > len(self._view):
            raise UnexpectedEofError(self._offset, offset - self._offset, self.remaining)
        self._offset = offset
