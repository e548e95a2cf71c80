from __future__ import annotations

import struct
from typing import Protocol

from framelink.errors import FrameTooLarge


__all__ = [
    "DEFAULT_MAX_FRAME_SIZE",
    "DEFAULT_PREFIX_WIDTH",
    "FrameHeader",
    "Framer",
    "LengthPrefixedFramer",
]

DEFAULT_PREFIX_WIDTH: int = 4
DEFAULT_MAX_FRAME_SIZE: int = 8 * 1024 * 1024

_FORMATS: dict[int, str] = {1: "!B", 2: "!H", 4: "!I", 8: "!Q"}


class FrameHeader:
    """Big-endian unsigned length prefix of a fixed width.

    Parameters
    ----------
    width : int
        Prefix width in bytes: 1, 2, 4 or 8.

    Examples
    --------
    >>> header = FrameHeader(4)
    >>> header.pack(5)
    b'\\x00\\x00\\x00\\x05'
    >>> header.unpack(b"\\x00\\x00\\x00\\x05")
    5
    """

    __slots__ = ("_struct", "width")

    def __init__(self, width: int = DEFAULT_PREFIX_WIDTH) -> None:
        fmt = _FORMATS.get(width)
        if fmt is None:
            msg = f"Unsupported prefix width {width}; expected one of {sorted(_FORMATS)}"
            raise ValueError(msg)
        self.width = width
        self._struct = struct.Struct(fmt)

    @property
    def max_length(self) -> int:
        """Largest payload length the prefix can express."""
        return (1 << (8 * self.width)) - 1

    def pack(self, length: int) -> bytes:
        return self._struct.pack(length)

    def unpack(self, data: bytes | bytearray | memoryview) -> int:
        length: int = self._struct.unpack_from(data)[0]
        return length


class Framer(Protocol):
    def feed(self, data: bytes) -> list[bytes]: ...
    def encode(self, data: bytes) -> bytes: ...


class LengthPrefixedFramer:
    """Incremental frame decoder for callers that drive their own I/O.

    Bytes are fed as they arrive (e.g. from ``asyncio.Protocol.data_received``);
    every complete payload is returned in order.  A declared length above
    *max_frame_size* raises ``FrameTooLarge`` without buffering the payload.

    Examples
    --------
    >>> framer = LengthPrefixedFramer()
    >>> framer.feed(b"\\x00\\x00\\x00\\x02hi\\x00\\x00")
    [b'hi']
    >>> framer.pending
    2
    """

    def __init__(
        self,
        max_frame_size: int = DEFAULT_MAX_FRAME_SIZE,
        prefix_width: int = DEFAULT_PREFIX_WIDTH,
    ) -> None:
        self._header = FrameHeader(prefix_width)
        self._max_frame_size = max_frame_size
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet returned as a frame."""
        return len(self._buffer)

    @property
    def at_boundary(self) -> bool:
        """``True`` when end-of-stream now would be a clean close."""
        return not self._buffer

    def feed(self, data: bytes) -> list[bytes]:
        self._buffer.extend(data)
        width = self._header.width
        frames: list[bytes] = []
        while len(self._buffer) >= width:
            length = self._header.unpack(self._buffer[:width])
            if length > self._max_frame_size:
                if frames:
                    break
                raise FrameTooLarge(length, self._max_frame_size)
            if len(self._buffer) < width + length:
                break
            frames.append(bytes(self._buffer[width : width + length]))
            del self._buffer[: width + length]
        return frames

    def encode(self, data: bytes) -> bytes:
        if len(data) > self._max_frame_size:
            raise FrameTooLarge(len(data), self._max_frame_size)
        return self._header.pack(len(data)) + data
