"""Length-prefixed message connection over a duplex byte stream.

Provides ``Connection``, which sends and receives whole typed values over a
stream, and the ``FrameReader`` / ``FrameWriter`` halves it is made of.

Wire format: ``[payload_len:N][payload]`` with an ``N``-byte big-endian
unsigned prefix (``N = 4`` by default) covering the payload only.

Each direction keeps its own state.  A direction that fails mid-frame
(truncation, oversized prefix, stream error, cancellation) is marked broken
and every later call on it raises ``BrokenConnection``; a codec failure
leaves it usable because the whole frame was consumed before decoding.
"""

from __future__ import annotations

import asyncio
import logging
import ssl as _ssl
from collections.abc import AsyncIterator
from typing import Any, Final

from framelink.address import AddressLike
from framelink.codec import Codec, MsgpackCodec
from framelink.config import ConnectionConfig
from framelink.errors import (
    BrokenConnection,
    FrameTooLarge,
    StreamError,
    TruncatedFrame,
)
from framelink.framing import FrameHeader
from framelink.stream import AsyncioStream, DuplexStream, open_stream


__all__ = ["Connection", "FrameReader", "FrameWriter", "connect"]

logger = logging.getLogger("framelink.connection")


class _Eof:
    def __repr__(self) -> str:
        return "<EOF>"


_EOF: Final = _Eof()


class _SharedStream:
    """Stream handle owned jointly by a reader and a writer.

    The stream is closed when the last holder releases it.
    """

    def __init__(self, stream: DuplexStream, holders: int = 2) -> None:
        self.stream = stream
        self._holders = holders

    @property
    def closed(self) -> bool:
        return self._holders == 0

    async def release(self) -> None:
        if self._holders == 0:
            return
        self._holders -= 1
        if self._holders == 0:
            await self.stream.close()

    async def close(self) -> None:
        if self._holders == 0:
            return
        self._holders = 0
        await self.stream.close()


class FrameReader:
    """Read direction of a connection.

    Obtained from ``Connection.split()``; owned by exactly one task.  Keeps a
    scratch buffer that is reused for every frame.

    Examples
    --------
    >>> reader, writer = conn.split()
    >>> async for msg in reader.messages(Message):
    ...     print(msg)
    """

    def __init__(
        self,
        shared: _SharedStream,
        codec: Codec,
        config: ConnectionConfig,
    ) -> None:
        self._shared = shared
        self._codec = codec
        self._header = FrameHeader(config.prefix_width)
        self._max_frame_size = config.max_frame_size
        self._chunk_size = config.read_chunk_size
        self._timeout = config.read_timeout
        self._buffer = bytearray(config.read_buffer_size)
        self._filled = 0
        self._mid_frame = False
        self._eof = False
        self._closed = False
        self._broken: BaseException | None = None

    @property
    def eof(self) -> bool:
        """``True`` once the peer closed its side at a frame boundary."""
        return self._eof

    @property
    def usable(self) -> bool:
        return not self._closed and self._broken is None

    @property
    def buffer_capacity(self) -> int:
        """Current size of the scratch buffer; grows to the largest frame read."""
        return len(self._buffer)

    async def read[T](self, cls: type[T] = object) -> T | None:  # type: ignore[assignment]
        """Read the next frame and decode it as *cls*.

        Parameters
        ----------
        cls : type[T]
            Declared type of the next message. ``object`` returns whatever
            the codec produces.

        Returns
        -------
        T | None
            The decoded value, or ``None`` when the peer closed the stream
            cleanly between frames.

        Raises
        ------
        DecodeError
            The payload does not match *cls*; the next read is unaffected.
        TruncatedFrame
            The peer closed the stream mid-frame.
        FrameTooLarge
            The declared length exceeds ``max_frame_size``.
        StreamError
            The stream failed or ``read_timeout`` expired.
        BrokenConnection
            This reader is closed or an earlier failure left it unusable.
        """
        value = await self._next(cls)
        if value is _EOF:
            return None
        return value  # type: ignore[return-value]

    async def messages[T](self, cls: type[T] = object) -> AsyncIterator[T]:  # type: ignore[assignment]
        """Yield decoded messages until the peer closes cleanly.

        Unlike ``read``, a message that decodes to ``None`` is yielded rather
        than mistaken for end-of-stream.
        """
        while True:
            value = await self._next(cls)
            if value is _EOF:
                return
            yield value  # type: ignore[misc]

    async def close(self) -> None:
        """Give up the read direction. The stream closes once both halves are closed."""
        if self._closed:
            return
        self._closed = True
        await self._shared.release()

    def _mark_closed(self) -> None:
        self._closed = True

    def _check_usable(self) -> None:
        if self._broken is not None:
            msg = f"Read side unusable after {type(self._broken).__name__}: {self._broken}"
            raise BrokenConnection(msg) from self._broken
        if self._closed:
            msg = "Read side is closed"
            raise BrokenConnection(msg)

    async def _next(self, cls: Any) -> Any:
        self._check_usable()
        try:
            async with asyncio.timeout(self._timeout):
                length = await self._read_frame()
        except asyncio.CancelledError:
            if self._mid_frame:
                self._broken = BrokenConnection("read cancelled mid-frame")
            raise
        except (TruncatedFrame, FrameTooLarge) as exc:
            self._broken = exc
            raise
        except TimeoutError as exc:
            err = StreamError(f"Read timed out after {self._timeout}s")
            if self._mid_frame:
                self._broken = err
            raise err from exc
        except OSError as exc:
            err = StreamError(f"Read failed: {exc}")
            self._broken = err
            raise err from exc
        if length is None:
            self._eof = True
            logger.debug("Peer %s closed the stream", self._shared.stream.peername)
            return _EOF
        with memoryview(self._buffer) as view, view[:length] as payload:
            return self._codec.decode(payload, cls)

    async def _read_frame(self) -> int | None:
        self._filled = 0
        if not await self._fill(self._header.width, at_boundary=True):
            return None
        length = self._header.unpack(self._buffer)
        if length > self._max_frame_size:
            logger.warning(
                "Peer %s declared a %d-byte frame (limit %d)",
                self._shared.stream.peername, length, self._max_frame_size,
            )
            raise FrameTooLarge(length, self._max_frame_size)
        self._filled = 0
        await self._fill(length)
        self._mid_frame = False
        return length

    async def _fill(self, size: int, *, at_boundary: bool = False) -> bool:
        """Fill ``buffer[:size]``, looping over short reads.

        The buffer only grows.  Returns ``False`` on a clean end-of-stream
        before the first byte of a frame when *at_boundary* is set.
        """
        if len(self._buffer) < size:
            self._buffer.extend(bytes(size - len(self._buffer)))
        while self._filled < size:
            want = min(size - self._filled, self._chunk_size)
            chunk = await self._shared.stream.read_some(want)
            if not chunk:
                if at_boundary and self._filled == 0:
                    return False
                logger.warning(
                    "Peer %s closed mid-frame (%d of %d bytes)",
                    self._shared.stream.peername, self._filled, size,
                )
                raise TruncatedFrame(size, self._filled)
            self._mid_frame = True
            end = self._filled + len(chunk)
            self._buffer[self._filled : end] = chunk
            self._filled = end
        return True


class FrameWriter:
    """Write direction of a connection.

    Obtained from ``Connection.split()``; owned by exactly one task.
    """

    def __init__(
        self,
        shared: _SharedStream,
        codec: Codec,
        config: ConnectionConfig,
    ) -> None:
        self._shared = shared
        self._codec = codec
        self._header = FrameHeader(config.prefix_width)
        self._max_frame_size = config.max_frame_size
        self._timeout = config.write_timeout
        self._closed = False
        self._broken: BaseException | None = None

    @property
    def usable(self) -> bool:
        return not self._closed and self._broken is None

    async def write(self, value: Any) -> None:
        """Encode *value* and send it as one frame.

        Raises
        ------
        EncodeError
            The codec rejected the value; nothing was sent.
        FrameTooLarge
            The encoded payload exceeds ``max_frame_size``; nothing was sent
            and the writer stays usable.
        StreamError
            The stream failed or ``write_timeout`` expired.
        BrokenConnection
            This writer is closed or an earlier failure left it unusable.
        """
        self._check_usable()
        payload = self._codec.encode(value)
        if len(payload) > self._max_frame_size:
            logger.warning(
                "Refusing to send %d-byte frame to %s (limit %d)",
                len(payload), self._shared.stream.peername, self._max_frame_size,
            )
            raise FrameTooLarge(len(payload), self._max_frame_size)
        frame = self._header.pack(len(payload)) + payload
        try:
            async with asyncio.timeout(self._timeout):
                await self._shared.stream.write_all(frame)
                await self._shared.stream.flush()
        except asyncio.CancelledError:
            self._broken = BrokenConnection("write cancelled mid-frame")
            raise
        except TimeoutError as exc:
            err = StreamError(f"Write timed out after {self._timeout}s")
            self._broken = err
            raise err from exc
        except OSError as exc:
            err = StreamError(f"Write failed: {exc}")
            self._broken = err
            raise err from exc

    async def close(self) -> None:
        """Signal end-of-stream to the peer and give up the write direction.

        The peer's next read returns ``None``.  The stream closes once both
        halves are closed.
        """
        if self._closed:
            return
        self._closed = True
        try:
            await self._shared.stream.shutdown_write()
        except (ConnectionError, OSError):
            logger.debug("Peer %s went away before half-close", self._shared.stream.peername)
        await self._shared.release()

    def _mark_closed(self) -> None:
        self._closed = True

    def _check_usable(self) -> None:
        if self._broken is not None:
            msg = f"Write side unusable after {type(self._broken).__name__}: {self._broken}"
            raise BrokenConnection(msg) from self._broken
        if self._closed:
            msg = "Write side is closed"
            raise BrokenConnection(msg)


class Connection:
    """A stream connection that sends and receives typed values as frames.

    Parameters
    ----------
    stream : DuplexStream
        The stream to own. It is closed when the connection closes.
    config : ConnectionConfig | None
        Framing and timeout settings. Defaults to ``ConnectionConfig()``.
    codec : Codec | None
        Payload codec. Defaults to ``MsgpackCodec()``.

    Examples
    --------
    >>> async with await Connection.connect("127.0.0.1:8080") as conn:
    ...     await conn.write(Message(id=1, data="Hello, world!"))
    ...     reply = await conn.read(Message)
    """

    def __init__(
        self,
        stream: DuplexStream,
        *,
        config: ConnectionConfig | None = None,
        codec: Codec | None = None,
    ) -> None:
        self._config = config or ConnectionConfig()
        self._codec = codec or MsgpackCodec()
        self._shared = _SharedStream(stream)
        self._reader = FrameReader(self._shared, self._codec, self._config)
        self._writer = FrameWriter(self._shared, self._codec, self._config)
        self._split = False

    @classmethod
    async def connect(
        cls,
        address: AddressLike,
        *,
        config: ConnectionConfig | None = None,
        codec: Codec | None = None,
        ssl: _ssl.SSLContext | None = None,
    ) -> Connection:
        """Dial *address* and wrap the resulting stream.

        Parameters
        ----------
        address : AddressLike
            ``"host:port"``, ``(host, port)`` or ``Address``.
        config : ConnectionConfig | None
            Settings; ``connect_timeout`` and ``nodelay`` apply to dialing.
        codec : Codec | None
            Payload codec.
        ssl : ssl.SSLContext | None
            Passed through to the stream provider.

        Raises
        ------
        ConnectError
            Resolution failed, the peer refused, or the timeout expired.
        """
        cfg = config or ConnectionConfig()
        stream = await open_stream(
            address, timeout=cfg.connect_timeout, nodelay=cfg.nodelay, ssl=ssl,
        )
        logger.debug("Connected to %s", stream.peername)
        return cls(stream, config=cfg, codec=codec)

    @classmethod
    def from_stream(
        cls,
        stream: DuplexStream,
        *,
        config: ConnectionConfig | None = None,
        codec: Codec | None = None,
    ) -> Connection:
        """Wrap an already-open stream. Performs no I/O."""
        return cls(stream, config=config, codec=codec)

    @classmethod
    def from_asyncio(
        cls,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        config: ConnectionConfig | None = None,
        codec: Codec | None = None,
    ) -> Connection:
        """Wrap an asyncio reader/writer pair, e.g. from ``asyncio.start_server``."""
        return cls(AsyncioStream(reader, writer), config=config, codec=codec)

    @property
    def config(self) -> ConnectionConfig:
        return self._config

    @property
    def codec(self) -> Codec:
        return self._codec

    @property
    def max_frame_size(self) -> int:
        return self._config.max_frame_size

    @property
    def prefix_width(self) -> int:
        return self._config.prefix_width

    @property
    def peername(self) -> Any:
        return self._shared.stream.peername

    @property
    def closed(self) -> bool:
        return self._shared.closed

    @property
    def eof(self) -> bool:
        """``True`` once the peer closed its side at a frame boundary."""
        return self._reader.eof

    async def write(self, value: Any) -> None:
        """Send *value* as one frame. See ``FrameWriter.write``."""
        self._check_whole()
        await self._writer.write(value)

    async def read[T](self, cls: type[T] = object) -> T | None:  # type: ignore[assignment]
        """Receive the next frame as *cls*, or ``None`` at a clean close. See ``FrameReader.read``."""
        self._check_whole()
        return await self._reader.read(cls)

    async def messages[T](self, cls: type[T] = object) -> AsyncIterator[T]:  # type: ignore[assignment]
        """Yield decoded messages until the peer closes cleanly."""
        self._check_whole()
        async for value in self._reader.messages(cls):
            yield value

    def split(self) -> tuple[FrameReader, FrameWriter]:
        """Hand the read and write directions to independent owners.

        The connection itself is unusable afterwards; the stream closes once
        both halves are closed.

        Returns
        -------
        tuple[FrameReader, FrameWriter]
        """
        self._check_whole()
        self._split = True
        return self._reader, self._writer

    async def close(self) -> None:
        """Close both directions and the stream. Idempotent.

        After ``split()`` the halves own the stream and this is a no-op.
        """
        if self._split:
            return
        self._reader._mark_closed()
        self._writer._mark_closed()
        if not self._shared.closed:
            logger.debug("Closing connection to %s", self.peername)
        await self._shared.close()

    async def __aenter__(self) -> Connection:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def __repr__(self) -> str:
        state = "split" if self._split else ("closed" if self.closed else "open")
        return f"<Connection peer={self.peername!r} {state}>"

    def _check_whole(self) -> None:
        if self._split:
            msg = "Connection has been split; use its reader and writer"
            raise BrokenConnection(msg)


async def connect(
    address: AddressLike,
    *,
    config: ConnectionConfig | None = None,
    codec: Codec | None = None,
    ssl: _ssl.SSLContext | None = None,
) -> Connection:
    """Dial *address* and return a ``Connection``. Alias of ``Connection.connect``."""
    return await Connection.connect(address, config=config, codec=codec, ssl=ssl)
