# gguf_codec/model_formats/gguf/gguf_cursor.py
"""
Little-endian binary cursors over GGUF byte channels.

``ReadCursor`` reads forward-only from an in-memory buffer (zero-copy) or a
binary stream; ``WriteCursor`` appends to any object with ``write``. Both
track their position relative to where they started, which is what alignment
padding is computed from.
"""

from __future__ import annotations

import struct
from typing import Any, BinaryIO, Tuple, Union

from .gguf_errors import IntegerOverflowError, InvalidStringError, TruncatedInputError

U8 = struct.Struct("<B")
I8 = struct.Struct("<b")
U16 = struct.Struct("<H")
I16 = struct.Struct("<h")
U32 = struct.Struct("<I")
I32 = struct.Struct("<i")
U64 = struct.Struct("<Q")
I64 = struct.Struct("<q")
F32 = struct.Struct("<f")
F64 = struct.Struct("<d")

BytesLike = Union[bytes, bytearray, memoryview]

_STREAM_CHUNK = 1 << 20
_PAD_CHUNK = 1 << 16


def padding_for(position: int, alignment: int) -> int:
    """Number of zero bytes needed to move ``position`` to the next boundary."""
    return (alignment - position % alignment) % alignment


def align_up(position: int, alignment: int) -> int:
    return position + padding_for(position, alignment)


class ReadCursor:
    """Forward-only little-endian reader."""

    def __init__(self) -> None:
        self.position = 0

    @staticmethod
    def over(source: Any) -> "ReadCursor":
        """Pick a cursor for ``source``: a buffer (bytes, mmap, ...) or a stream."""
        if hasattr(source, "read") and not isinstance(source, (bytes, bytearray, memoryview)):
            try:
                view = memoryview(source)
            except TypeError:
                return StreamCursor(source)
            return BufferCursor(view)
        return BufferCursor(source)

    def _take(self, n: int) -> BytesLike:
        raise NotImplementedError

    def release(self) -> None:
        """Drop any reference to the underlying channel."""

    def __enter__(self) -> "ReadCursor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def _unpack(self, st: struct.Struct) -> Any:
        return st.unpack(self._take(st.size))[0]

    def raw(self, n: int) -> bytes:
        return bytes(self._take(n))

    def u8(self) -> int:
        return self._unpack(U8)

    def i8(self) -> int:
        return self._unpack(I8)

    def u16(self) -> int:
        return self._unpack(U16)

    def i16(self) -> int:
        return self._unpack(I16)

    def u32(self) -> int:
        return self._unpack(U32)

    def i32(self) -> int:
        return self._unpack(I32)

    def u64(self) -> int:
        return self._unpack(U64)

    def i64(self) -> int:
        return self._unpack(I64)

    def f32(self) -> float:
        return self._unpack(F32)

    def f64(self) -> float:
        return self._unpack(F64)

    def boolean(self) -> bool:
        return self.u8() != 0

    def string(self) -> str:
        start = self.position
        n = self.u64()
        raw = bytes(self._take(n))
        try:
            return str(raw, "utf-8")
        except UnicodeDecodeError as e:
            raise InvalidStringError(f"Invalid UTF-8 in string at offset {start}: {e}") from e

    def array(self, code: str, count: int) -> Tuple[Any, ...]:
        """Read ``count`` consecutive values of one struct ``code`` in a single call."""
        raw = self._take(struct.calcsize(code) * count)
        return struct.unpack(f"<{count}{code}", raw)


class BufferCursor(ReadCursor):
    """Zero-copy cursor over a buffer; slices share memory with the source."""

    def __init__(self, buf: Any):
        super().__init__()
        self._view = memoryview(buf).cast("B")

    def _take(self, n: int) -> memoryview:
        available = len(self._view) - self.position
        if n > available:
            raise TruncatedInputError(self.position, n, max(available, 0))
        chunk = self._view[self.position : self.position + n]
        self.position += n
        return chunk

    @property
    def remaining(self) -> int:
        return len(self._view) - self.position

    def release(self) -> None:
        self._view.release()


class StreamCursor(ReadCursor):
    """Cursor over a readable binary stream (file object, socket file, ...)."""

    def __init__(self, stream: BinaryIO):
        super().__init__()
        self._stream = stream

    def _take(self, n: int) -> bytes:
        chunks = []
        got = 0
        while got < n:
            # bounded reads so a corrupt length cannot force a huge allocation
            chunk = self._stream.read(min(n - got, _STREAM_CHUNK))
            if not chunk:
                raise TruncatedInputError(self.position, n, got)
            chunks.append(chunk)
            got += len(chunk)
        self.position += n
        return b"".join(chunks)


class WriteCursor:
    """Append-only little-endian writer over any ``write``-able sink."""

    def __init__(self, sink: Any):
        self._sink = sink
        self.position = 0

    def _pack(self, st: struct.Struct, value: Any) -> None:
        try:
            data = st.pack(value)
        except (struct.error, OverflowError) as e:
            raise IntegerOverflowError(
                f"Value {value!r} does not fit field '{st.format}' at offset {self.position}"
            ) from e
        self.write(data)

    def write(self, data: BytesLike) -> None:
        self._sink.write(data)
        self.position += len(data)

    def u8(self, v: int) -> None:
        self._pack(U8, v)

    def i8(self, v: int) -> None:
        self._pack(I8, v)

    def u16(self, v: int) -> None:
        self._pack(U16, v)

    def i16(self, v: int) -> None:
        self._pack(I16, v)

    def u32(self, v: int) -> None:
        self._pack(U32, v)

    def i32(self, v: int) -> None:
        self._pack(I32, v)

    def u64(self, v: int) -> None:
        self._pack(U64, v)

    def i64(self, v: int) -> None:
        self._pack(I64, v)

    def f32(self, v: float) -> None:
        self._pack(F32, v)

    def f64(self, v: float) -> None:
        self._pack(F64, v)

    def boolean(self, v: bool) -> None:
        self.u8(1 if v else 0)

    def string(self, s: str) -> None:
        raw = s.encode("utf-8")
        self.u64(len(raw))
        self.write(raw)

    def array(self, code: str, values: Tuple[Any, ...]) -> None:
        st = struct.Struct(f"<{len(values)}{code}")
        try:
            data = st.pack(*values)
        except (struct.error, OverflowError) as e:
            raise IntegerOverflowError(
                f"Array element does not fit field '{code}' at offset {self.position}"
            ) from e
        self.write(data)

    def pad_to(self, alignment: int) -> int:
        """Write zero bytes up to the next ``alignment`` boundary; return the count."""
        n = padding_for(self.position, alignment)
        left = n
        while left:
            chunk = min(left, _PAD_CHUNK)
            self.write(bytes(chunk))
            left -= chunk
        return n


class CountingSink:
    """A sink that only counts bytes, for measuring encoded sizes."""

    def __init__(self) -> None:
        self.nbytes = 0

    def write(self, data: BytesLike) -> int:
        self.nbytes += len(data)
        return len(data)
