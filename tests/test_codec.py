from __future__ import annotations

import msgpack
import pytest

from framelink.codec import (
    Codec,
    CompressedCodec,
    JsonCodec,
    MsgpackCodec,
    PickleCodec,
    build_codec,
)
from framelink.config import CompressionConfig, SerializationConfig
from framelink.errors import DecodeError, EncodeError
from tests.messages import Envelope, Greeting, Message, Priority


def _envelope() -> Envelope:
    return Envelope(
        sender="bob",
        priority=Priority.LOW,
        body=Message(id=9, data="body"),
        tags=frozenset({"x"}),
        attachments=[b"\xde\xad\xbe\xef"],
        headers={"h": 2},
        reply_to=4,
    )


@pytest.mark.parametrize("codec", [MsgpackCodec(), JsonCodec(), PickleCodec()])
def test_codecs_satisfy_protocol(codec: Codec) -> None:
    assert isinstance(codec, Codec)


@pytest.mark.parametrize("codec", [MsgpackCodec(), JsonCodec(), PickleCodec()])
def test_codec_roundtrip_nested(codec: Codec) -> None:
    original = _envelope()
    assert codec.decode(codec.encode(original), Envelope) == original


def test_msgpack_keeps_bytes_binary() -> None:
    data = MsgpackCodec().encode(b"\x00\x01")
    assert msgpack.unpackb(data) == b"\x00\x01"


def test_msgpack_int_keys() -> None:
    codec = MsgpackCodec()
    assert codec.decode(codec.encode({1: "a"}), dict[int, str]) == {1: "a"}


def test_msgpack_rejects_garbage() -> None:
    with pytest.raises(DecodeError):
        MsgpackCodec().decode(b"\xc1", object)


def test_msgpack_rejects_wrong_shape() -> None:
    codec = MsgpackCodec()
    with pytest.raises(DecodeError):
        codec.decode(codec.encode(Greeting(text="hi")), Message)


def test_msgpack_oversized_int_is_encode_error() -> None:
    with pytest.raises(EncodeError):
        MsgpackCodec().encode(2**70)


def test_json_compact_output() -> None:
    assert JsonCodec().encode(Message(id=1, data="Hello, world!")) == (
        b'{"id":1,"data":"Hello, world!"}'
    )


def test_json_rejects_invalid_utf8() -> None:
    with pytest.raises(DecodeError):
        JsonCodec().decode(b"\x80abc", object)


def test_json_rejects_malformed() -> None:
    with pytest.raises(DecodeError):
        JsonCodec().decode(b'{"id": ', Message)


def test_json_rejects_unencodable_keys() -> None:
    with pytest.raises(EncodeError):
        JsonCodec().encode({(1, 2): "tuple key"})


def test_pickle_checks_declared_class() -> None:
    codec = PickleCodec()
    data = codec.encode(Greeting(text="hi"))
    assert codec.decode(data, Greeting) == Greeting(text="hi")
    with pytest.raises(DecodeError, match="Expected Message"):
        codec.decode(data, Message)


def test_pickle_generic_alias_checks_origin() -> None:
    codec = PickleCodec()
    assert codec.decode(codec.encode([1, 2]), list[int]) == [1, 2]
    with pytest.raises(DecodeError):
        codec.decode(codec.encode((1, 2)), list[int])


def test_pickle_unpicklable_value() -> None:
    with pytest.raises(EncodeError):
        PickleCodec().encode(lambda: None)


@pytest.mark.parametrize("algorithm", ["zlib", "gzip", "bz2", "lzma"])
def test_compressed_codec_roundtrip(algorithm: str) -> None:
    codec = CompressedCodec(MsgpackCodec(), algorithm=algorithm, level=6)  # type: ignore[arg-type]
    message = Message(id=1, data="a" * 5000)
    encoded = codec.encode(message)
    assert len(encoded) < 5000
    assert codec.decode(encoded, Message) == message


def test_compressed_codec_rejects_corrupt_input() -> None:
    with pytest.raises(DecodeError, match="zlib decompression failed"):
        CompressedCodec(JsonCodec()).decode(b"not compressed", object)


def test_compressed_codec_unknown_algorithm() -> None:
    with pytest.raises(ValueError):
        CompressedCodec(JsonCodec(), algorithm="brotli")  # type: ignore[arg-type]


def test_build_codec_default_is_msgpack() -> None:
    assert isinstance(build_codec(), MsgpackCodec)
    assert isinstance(build_codec(SerializationConfig()), MsgpackCodec)


def test_build_codec_json() -> None:
    assert isinstance(build_codec(SerializationConfig(codec="json")), JsonCodec)


def test_build_codec_with_compression() -> None:
    codec = build_codec(
        SerializationConfig(codec="pickle", compression=CompressionConfig(algorithm="lzma")),
    )
    assert isinstance(codec, CompressedCodec)
    assert isinstance(codec.inner, PickleCodec)
    assert codec.decode(codec.encode({"k": 1}), dict) == {"k": 1}


def test_pickle_optional_declared_type() -> None:
    codec = PickleCodec()
    assert codec.decode(codec.encode(1), int | None) == 1
    assert codec.decode(codec.encode(None), int | None) is None
    with pytest.raises(DecodeError, match="Expected"):
        codec.decode(codec.encode("one"), int | None)


def test_pickle_accepts_memoryview() -> None:
    codec = PickleCodec()
    data = bytearray(codec.encode(Greeting(text="hi")))
    assert codec.decode(memoryview(data), Greeting) == Greeting(text="hi")


# --- Dict keys ---


def test_msgpack_rejects_sequence_keys() -> None:
    with pytest.raises(EncodeError, match="dict key"):
        MsgpackCodec().encode({(1, 2): "a"})


def test_json_bytes_keys_roundtrip() -> None:
    codec = JsonCodec()
    assert codec.decode(codec.encode({b"k": 1}), dict[bytes, int]) == {b"k": 1}


def test_msgpack_bytes_keys_roundtrip() -> None:
    codec = MsgpackCodec()
    assert codec.decode(codec.encode({b"k": 1}), dict[bytes, int]) == {b"k": 1}


# --- Decompression limits ---


@pytest.mark.parametrize("algorithm", ["zlib", "gzip", "bz2", "lzma"])
def test_compressed_codec_rejects_inflation_past_limit(algorithm: str) -> None:
    sender = CompressedCodec(MsgpackCodec(), algorithm=algorithm, max_size=1 << 20)  # type: ignore[arg-type]
    receiver = CompressedCodec(MsgpackCodec(), algorithm=algorithm, max_size=4096)  # type: ignore[arg-type]
    bomb = sender.encode(b"\x00" * 200_000)
    assert len(bomb) < 4096
    with pytest.raises(DecodeError, match="exceeds 4096"):
        receiver.decode(bomb, bytes)


def test_compressed_codec_accepts_payload_at_limit() -> None:
    codec = CompressedCodec(JsonCodec(), max_size=len(JsonCodec().encode("x" * 100)))
    assert codec.decode(codec.encode("x" * 100), str) == "x" * 100


def test_compressed_codec_rejects_truncated_stream() -> None:
    codec = CompressedCodec(MsgpackCodec(), algorithm="lzma")
    data = codec.encode(Message(id=1, data="a" * 1000))
    with pytest.raises(DecodeError, match="truncated"):
        codec.decode(data[: len(data) // 2], Message)


def test_compressed_codec_refuses_to_send_past_limit() -> None:
    codec = CompressedCodec(MsgpackCodec(), max_size=16)
    with pytest.raises(EncodeError):
        codec.encode(b"\x00" * 100)


def test_build_codec_passes_decompression_limit() -> None:
    codec = build_codec(SerializationConfig(compression=CompressionConfig(max_size=1024)))
    assert isinstance(codec, CompressedCodec)
    assert codec.max_size == 1024
