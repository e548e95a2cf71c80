"""Duplex byte-stream abstraction consumed by framed connections.

Defines the ``DuplexStream`` protocol and ``AsyncioStream``, its
implementation over an asyncio ``StreamReader``/``StreamWriter`` pair, plus
``open_stream`` for dialing TCP endpoints.
"""

from __future__ import annotations

import asyncio
import logging
import socket
import ssl as _ssl
from typing import Any, Protocol, runtime_checkable

from framelink.address import Address, AddressLike
from framelink.errors import ConnectError


__all__ = ["AsyncioStream", "DuplexStream", "open_stream"]

logger = logging.getLogger("framelink.stream")


@runtime_checkable
class DuplexStream(Protocol):
    """Ordered, bidirectional byte stream.

    Read and write directions are independent: one task may read while
    another writes.  Failures surface as ``OSError`` (including
    ``ConnectionError``).
    """

    @property
    def peername(self) -> Any:
        """Remote endpoint, or ``None`` if unknown."""
        ...

    async def read_some(self, max_bytes: int) -> bytes:
        """Read up to *max_bytes*; ``b""`` signals clean end-of-stream."""
        ...

    async def write_all(self, data: bytes) -> None:
        """Queue all of *data* for sending, never a prefix of it."""
        ...

    async def flush(self) -> None:
        """Wait until queued data has been handed to the OS."""
        ...

    async def shutdown_write(self) -> None:
        """Signal end-of-stream to the peer, keeping the read side open."""
        ...

    async def close(self) -> None:
        """Release the stream. Idempotent."""
        ...


class AsyncioStream:
    """``DuplexStream`` over an asyncio reader/writer pair.

    Parameters
    ----------
    reader : asyncio.StreamReader
        Read side, e.g. from ``asyncio.open_connection`` or a
        ``start_server`` callback.
    writer : asyncio.StreamWriter
        Write side of the same connection.

    Examples
    --------
    >>> async def handle(reader, writer):
    ...     stream = AsyncioStream(reader, writer)
    ...     data = await stream.read_some(4096)
    """

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._reader = reader
        self._writer = writer
        self._closed = False

    @property
    def peername(self) -> Any:
        return self._writer.get_extra_info("peername")

    async def read_some(self, max_bytes: int) -> bytes:
        return await self._reader.read(max_bytes)

    async def write_all(self, data: bytes) -> None:
        if self._writer.is_closing():
            msg = "Stream is closing"
            raise ConnectionResetError(msg)
        self._writer.write(data)

    async def flush(self) -> None:
        await self._writer.drain()

    async def shutdown_write(self) -> None:
        if self._writer.can_write_eof() and not self._writer.is_closing():
            self._writer.write_eof()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (ConnectionError, OSError):
            logger.debug("Ignoring error while closing stream to %s", self.peername)

    @staticmethod
    def set_nodelay(writer: asyncio.StreamWriter) -> None:
        sock = writer.transport.get_extra_info("socket")
        if sock is not None and sock.family in (socket.AF_INET, socket.AF_INET6):
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)


async def open_stream(
    address: AddressLike,
    *,
    timeout: float | None = None,
    nodelay: bool = True,
    ssl: _ssl.SSLContext | None = None,
) -> AsyncioStream:
    """Dial a TCP endpoint and return it as a ``DuplexStream``.

    Parameters
    ----------
    address : AddressLike
        ``"host:port"``, ``(host, port)`` or ``Address``.
    timeout : float | None
        Seconds to wait for resolution and the handshake; ``None`` waits
        indefinitely.
    nodelay : bool
        Disable Nagle's algorithm on the socket.
    ssl : ssl.SSLContext | None
        Passed through to ``asyncio.open_connection``.

    Returns
    -------
    AsyncioStream

    Raises
    ------
    ConnectError
        If resolution fails, the peer refuses, or *timeout* expires.
    ValueError
        If *address* cannot be parsed.
    """
    addr = Address.parse(address)
    logger.debug("TCP connect -> %s", addr)
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(addr.host, addr.port, ssl=ssl),
            timeout=timeout,
        )
    except TimeoutError as exc:
        raise ConnectError(str(addr), f"timed out after {timeout}s") from exc
    except socket.gaierror as exc:
        raise ConnectError(str(addr), f"name resolution failed: {exc}") from exc
    except OSError as exc:
        raise ConnectError(str(addr), str(exc) or type(exc).__name__) from exc
    if nodelay:
        AsyncioStream.set_nodelay(writer)
    return AsyncioStream(reader, writer)
