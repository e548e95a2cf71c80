"""
Echo server and client over framelink.

Demonstrates:
- Accepting with asyncio.start_server and wrapping via Connection.from_asyncio
- Dialing with framelink.connect
- Splitting a connection so reading and writing run in separate tasks
"""

import asyncio
import logging
from dataclasses import dataclass

import framelink
from framelink import Connection


@dataclass(frozen=True)
class Message:
    id: int
    data: str


async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    conn = Connection.from_asyncio(reader, writer)
    print(f"[server] connection from {conn.peername}")
    async with conn:
        async for msg in conn.messages(Message):
            await conn.write(msg)
    print("[server] peer closed")


async def main() -> None:
    logging.basicConfig(level=logging.INFO)
    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]

    async with server:
        conn = await framelink.connect(("127.0.0.1", port))
        reader, writer = conn.split()

        async def send() -> None:
            for i in range(5):
                await writer.write(Message(id=i, data=f"hello #{i}"))
            await writer.close()

        async def receive() -> None:
            async for msg in reader.messages(Message):
                print(f"[client] echoed {msg}")
            await reader.close()

        await asyncio.gather(send(), receive())


if __name__ == "__main__":
    asyncio.run(main())
