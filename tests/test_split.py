from __future__ import annotations

import asyncio

import pytest

from framelink import BrokenConnection, Connection
from tests.messages import Message
from tests.utils import FakeStream, connection_pair


async def test_split_halves_run_concurrently() -> None:
    async with connection_pair() as (client, server):
        reader, writer = client.split()

        async def echo() -> None:
            async for msg in server.messages(Message):
                await server.write(Message(id=msg.id * 10, data=msg.data))
            await server.close()

        async def send_all() -> None:
            for i in range(20):
                await writer.write(Message(id=i, data="x"))
            await writer.close()

        async def receive_all() -> list[int]:
            return [msg.id async for msg in reader.messages(Message)]

        _, _, replies = await asyncio.wait_for(
            asyncio.gather(echo(), send_all(), receive_all()), timeout=5.0,
        )

        assert replies == [i * 10 for i in range(20)]
        await reader.close()


async def test_writer_close_is_half_close() -> None:
    async with connection_pair() as (client, server):
        reader, writer = client.split()
        await writer.write(Message(id=1, data="last"))
        await writer.close()

        assert await server.read(Message) == Message(id=1, data="last")
        assert await server.read(Message) is None

        # The other direction still works after the half-close
        await server.write(Message(id=2, data="reply"))
        assert await reader.read(Message) == Message(id=2, data="reply")
        await reader.close()


async def test_connection_unusable_after_split() -> None:
    conn = Connection.from_stream(FakeStream())
    conn.split()
    with pytest.raises(BrokenConnection):
        await conn.write("x")
    with pytest.raises(BrokenConnection):
        await conn.read(str)
    with pytest.raises(BrokenConnection):
        conn.split()


async def test_stream_closes_after_both_halves() -> None:
    stream = FakeStream()
    conn = Connection.from_stream(stream)
    reader, writer = conn.split()

    await conn.close()
    assert not stream.closed

    await writer.close()
    assert stream.write_shut
    assert not stream.closed
    assert not conn.closed

    await reader.close()
    assert stream.closed
    assert conn.closed

    await reader.close()
    with pytest.raises(BrokenConnection):
        await writer.write("x")
