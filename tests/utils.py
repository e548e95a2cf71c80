"""Test utilities for framelink tests."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from framelink import AsyncioStream, Codec, Connection, ConnectionConfig, open_stream


class FakeStream:
    """Scriptable in-memory ``DuplexStream``.

    Incoming bytes are served at most *chunk_size* at a time.  With
    ``eof=False`` reads block until ``feed`` or ``feed_eof`` is called.
    """

    def __init__(self, data: bytes = b"", *, chunk_size: int = 1 << 16, eof: bool = True) -> None:
        self._incoming = bytearray(data)
        self._eof = eof
        self._chunk_size = chunk_size
        self._readable = asyncio.Event()
        self.written = bytearray()
        self.requests: list[int] = []
        self.write_error: OSError | None = None
        self.write_shut = False
        self.closed = False

    @property
    def peername(self) -> Any:
        return ("fake", 0)

    @property
    def remaining(self) -> bytes:
        return bytes(self._incoming)

    def feed(self, data: bytes) -> None:
        self._incoming += data
        self._readable.set()

    def feed_eof(self) -> None:
        self._eof = True
        self._readable.set()

    async def read_some(self, max_bytes: int) -> bytes:
        self.requests.append(max_bytes)
        while not self._incoming and not self._eof:
            self._readable.clear()
            await self._readable.wait()
        n = min(max_bytes, self._chunk_size, len(self._incoming))
        chunk = bytes(self._incoming[:n])
        del self._incoming[:n]
        return chunk

    async def write_all(self, data: bytes) -> None:
        if self.write_error is not None:
            raise self.write_error
        self.written += data

    async def flush(self) -> None:
        pass

    async def shutdown_write(self) -> None:
        self.write_shut = True

    async def close(self) -> None:
        self.closed = True


@asynccontextmanager
async def stream_pair() -> AsyncIterator[tuple[AsyncioStream, AsyncioStream]]:
    """Yield ``(client, server)`` streams joined over loopback TCP."""
    accepted: asyncio.Queue[AsyncioStream] = asyncio.Queue()

    async def on_accept(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        await accepted.put(AsyncioStream(reader, writer))

    server = await asyncio.start_server(on_accept, "127.0.0.1", 0)
    port: int = server.sockets[0].getsockname()[1]
    client = await open_stream(("127.0.0.1", port), timeout=5.0)
    peer = await asyncio.wait_for(accepted.get(), timeout=5.0)
    try:
        yield client, peer
    finally:
        await client.close()
        await peer.close()
        server.close()
        await server.wait_closed()


@asynccontextmanager
async def connection_pair(
    *,
    config: ConnectionConfig | None = None,
    codec: Codec | None = None,
    peer_config: ConnectionConfig | None = None,
) -> AsyncIterator[tuple[Connection, Connection]]:
    """Yield ``(client, server)`` connections joined over loopback TCP."""
    async with stream_pair() as (client_stream, peer_stream):
        client = Connection.from_stream(client_stream, config=config, codec=codec)
        peer = Connection.from_stream(peer_stream, config=peer_config or config, codec=codec)
        yield client, peer


async def wait_for_eof(stream: AsyncioStream, *, timeout: float = 5.0) -> bytes:
    """Drain *stream* until the peer closes it and return everything read."""
    data = bytearray()
    async with asyncio.timeout(timeout):
        while chunk := await stream.read_some(4096):
            data += chunk
    return bytes(data)
