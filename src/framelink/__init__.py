from framelink.address import Address, AddressLike
from framelink.codec import (
    Codec,
    CompressedCodec,
    JsonCodec,
    MsgpackCodec,
    Payload,
    PickleCodec,
    build_codec,
)
from framelink.config import (
    CompressionConfig,
    ConnectionConfig,
    FramelinkConfig,
    SerializationConfig,
    discover_config,
    load_config,
)
from framelink.connection import Connection, FrameReader, FrameWriter, connect
from framelink.convert import from_builtins, to_builtins
from framelink.errors import (
    BrokenConnection,
    ConnectError,
    DecodeError,
    EncodeError,
    FrameTooLarge,
    FramelinkError,
    StreamError,
    TruncatedFrame,
)
from framelink.framing import FrameHeader, LengthPrefixedFramer
from framelink.stream import AsyncioStream, DuplexStream, open_stream

__all__ = [
    "Address",
    "AddressLike",
    "AsyncioStream",
    "BrokenConnection",
    "Codec",
    "CompressedCodec",
    "CompressionConfig",
    "ConnectError",
    "Connection",
    "ConnectionConfig",
    "DecodeError",
    "DuplexStream",
    "EncodeError",
    "FrameHeader",
    "FrameReader",
    "FrameTooLarge",
    "FrameWriter",
    "FramelinkConfig",
    "FramelinkError",
    "JsonCodec",
    "LengthPrefixedFramer",
    "MsgpackCodec",
    "Payload",
    "PickleCodec",
    "SerializationConfig",
    "StreamError",
    "TruncatedFrame",
    "build_codec",
    "connect",
    "discover_config",
    "from_builtins",
    "load_config",
    "open_stream",
    "to_builtins",
]
