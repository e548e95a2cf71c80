"""Pluggable payload codecs.

Provides the ``Codec`` protocol and concrete implementations
(``MsgpackCodec``, ``JsonCodec``, ``PickleCodec``), the
``CompressedCodec`` wrapper, and ``build_codec`` for selecting one from
configuration.

A codec turns a value into payload bytes and back.  Decoding is keyed by the
*declared* type the reader asks for, so a payload of the wrong shape fails
with ``DecodeError`` instead of producing a half-built object.

``decode`` may be handed a ``memoryview`` over the connection's scratch
buffer.  It is only valid for the duration of the call; codecs must not
keep a reference to it.
"""

from __future__ import annotations

import bz2
import json
import logging
import lzma
import pickle
import types
import typing
import zlib
from typing import TYPE_CHECKING, Any, Protocol, get_args, get_origin, runtime_checkable

import msgpack
from msgpack.exceptions import UnpackException

from framelink.convert import from_builtins, to_builtins
from framelink.errors import DecodeError, EncodeError
from framelink.framing import DEFAULT_MAX_FRAME_SIZE

if TYPE_CHECKING:
    from framelink.config import CompressionAlgorithm, SerializationConfig


__all__ = [
    "Codec",
    "CompressedCodec",
    "JsonCodec",
    "MsgpackCodec",
    "Payload",
    "PickleCodec",
    "build_codec",
]

logger = logging.getLogger("framelink.codec")

type Payload = bytes | bytearray | memoryview


@runtime_checkable
class Codec(Protocol):
    """Protocol for encoding values to payload bytes and decoding them back.

    Implementations raise ``EncodeError`` and ``DecodeError`` rather than
    their library's native exceptions.

    Examples
    --------
    Minimal implementation:

    >>> class TextCodec:
    ...     def encode(self, value: object) -> bytes:
    ...         return str(value).encode()
    ...     def decode(self, data: Payload, cls: type) -> object:
    ...         return cls(str(data, "utf-8"))
    """

    def encode(self, value: Any) -> bytes:
        """Encode a value to bytes."""
        ...

    def decode[T](self, data: Payload, cls: type[T]) -> T:
        """Decode bytes as an instance of *cls*."""
        ...


class MsgpackCodec:
    """MessagePack codec with type-directed decoding.

    Values are lowered with ``to_builtins`` and packed with ``msgpack``;
    ``bytes`` travel as native binary.

    Examples
    --------
    >>> codec = MsgpackCodec()
    >>> codec.decode(codec.encode({"key": [1, 2]}), dict[str, list[int]])
    {'key': [1, 2]}
    """

    def encode(self, value: Any) -> bytes:
        payload = to_builtins(value)
        try:
            data: bytes = msgpack.packb(payload, use_bin_type=True)
        except (TypeError, ValueError, OverflowError) as exc:
            msg = f"msgpack encode failed: {exc}"
            raise EncodeError(msg) from exc
        return data

    def decode[T](self, data: Payload, cls: type[T]) -> T:
        try:
            payload: object = msgpack.unpackb(data, raw=False, strict_map_key=False)
        except (UnpackException, ValueError, TypeError) as exc:
            msg = f"msgpack decode failed: {exc}"
            raise DecodeError(msg) from exc
        return from_builtins(payload, cls)


class JsonCodec:
    """JSON codec with type-directed decoding.

    ``bytes`` are carried as base64 text.  Output is compact UTF-8.

    Examples
    --------
    >>> codec = JsonCodec()
    >>> codec.encode({"id": 1, "data": "Hello, world!"})
    b'{"id":1,"data":"Hello, world!"}'
    """

    def encode(self, value: Any) -> bytes:
        payload = to_builtins(value, bytes_as_str=True)
        try:
            text = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            msg = f"JSON encode failed: {exc}"
            raise EncodeError(msg) from exc
        return text.encode("utf-8")

    def decode[T](self, data: Payload, cls: type[T]) -> T:
        try:
            payload: object = json.loads(str(data, "utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            msg = f"JSON decode failed: {exc}"
            raise DecodeError(msg) from exc
        return from_builtins(payload, cls, bytes_as_str=True)


class PickleCodec:
    """Pickle codec (protocol 5) for trusted peers only.

    Unpickling runs arbitrary code; never use it with untrusted endpoints.
    The decoded object is checked against the declared class.
    """

    def encode(self, value: Any) -> bytes:
        try:
            return pickle.dumps(value, protocol=5)
        except (pickle.PicklingError, TypeError, AttributeError) as exc:
            msg = f"pickle encode failed: {exc}"
            raise EncodeError(msg) from exc

    def decode[T](self, data: Payload, cls: type[T]) -> T:
        try:
            value = pickle.loads(data)  # noqa: S301
        except Exception as exc:
            msg = f"pickle decode failed: {exc}"
            raise DecodeError(msg) from exc
        if not _is_instance(value, cls):
            msg = f"Expected {_type_name(cls)}, got {type(value).__name__}"
            raise DecodeError(msg)
        return value  # type: ignore[no-any-return]


def _is_instance(value: object, tp: Any) -> bool:
    """Shallow check of *value* against a declared type; unknown forms pass."""
    if isinstance(tp, typing.TypeAliasType):
        return _is_instance(value, tp.__value__)
    if tp is None or tp is type(None):
        return value is None
    if tp is Any or tp is object:
        return True
    origin = get_origin(tp)
    if origin is typing.Union or origin is types.UnionType:
        return any(_is_instance(value, arg) for arg in get_args(tp))
    if origin is typing.Annotated:
        return _is_instance(value, get_args(tp)[0])
    if origin is typing.Literal:
        return value in get_args(tp)
    expected = origin or tp
    if isinstance(expected, type):
        return isinstance(value, expected)
    return True


def _type_name(tp: Any) -> str:
    if isinstance(tp, type) and get_origin(tp) is None:
        return tp.__qualname__
    return repr(tp).replace("typing.", "")


class _Decompressor(Protocol):
    eof: bool

    def decompress(self, data: Payload, max_length: int = -1, /) -> bytes: ...


def _decompressor(algorithm: str) -> _Decompressor:
    match algorithm:
        case "zlib":
            return zlib.decompressobj()
        case "gzip":
            return zlib.decompressobj(wbits=16 + zlib.MAX_WBITS)
        case "bz2":
            return bz2.BZ2Decompressor()
        case "lzma":
            return lzma.LZMADecompressor()
        case _:
            msg = f"Unknown compression algorithm: {algorithm!r}"
            raise ValueError(msg)


def _compress(algorithm: str, data: bytes, level: int) -> bytes:
    match algorithm:
        case "zlib":
            return zlib.compress(data, level)
        case "gzip":
            compressor = zlib.compressobj(level, zlib.DEFLATED, 16 + zlib.MAX_WBITS)
            return compressor.compress(data) + compressor.flush()
        case "bz2":
            return bz2.compress(data, compresslevel=max(level, 1))
        case "lzma":
            return lzma.compress(data, preset=level)
        case _:
            msg = f"Unknown compression algorithm: {algorithm!r}"
            raise ValueError(msg)


class CompressedCodec:
    """Wraps any codec with stdlib compression.

    Parameters
    ----------
    inner : Codec
        Codec producing the uncompressed payload.
    algorithm : CompressionAlgorithm
        ``"zlib"``, ``"gzip"``, ``"bz2"`` or ``"lzma"``.
    level : int
        Compression level (0-9).
    max_size : int
        Largest decompressed payload accepted.  Inflating past it fails with
        ``DecodeError`` before more memory is spent.

    Examples
    --------
    >>> codec = CompressedCodec(JsonCodec(), algorithm="gzip", level=9)
    >>> codec.decode(codec.encode("x" * 100), str) == "x" * 100
    True
    """

    def __init__(
        self,
        inner: Codec,
        *,
        algorithm: CompressionAlgorithm = "zlib",
        level: int = 6,
        max_size: int = DEFAULT_MAX_FRAME_SIZE,
    ) -> None:
        _decompressor(algorithm)
        self._inner = inner
        self._algorithm = algorithm
        self._level = level
        self._max_size = max_size

    @property
    def inner(self) -> Codec:
        return self._inner

    @property
    def max_size(self) -> int:
        return self._max_size

    def encode(self, value: Any) -> bytes:
        raw = self._inner.encode(value)
        if len(raw) > self._max_size:
            msg = f"Uncompressed payload of {len(raw)} bytes exceeds {self._max_size}"
            raise EncodeError(msg)
        return _compress(self._algorithm, raw, self._level)

    def decode[T](self, data: Payload, cls: type[T]) -> T:
        decompressor = _decompressor(self._algorithm)
        try:
            raw = decompressor.decompress(data, self._max_size + 1)
        except (zlib.error, OSError, EOFError, ValueError, lzma.LZMAError) as exc:
            msg = f"{self._algorithm} decompression failed: {exc}"
            raise DecodeError(msg) from exc
        if len(raw) > self._max_size:
            logger.warning(
                "Rejecting %s payload inflating past %d bytes", self._algorithm, self._max_size,
            )
            msg = f"Decompressed payload exceeds {self._max_size} bytes"
            raise DecodeError(msg)
        if not decompressor.eof:
            msg = f"{self._algorithm} decompression failed: truncated stream"
            raise DecodeError(msg)
        return self._inner.decode(raw, cls)


def build_codec(config: SerializationConfig | None = None) -> Codec:
    """Build the codec described by a ``SerializationConfig``.

    Parameters
    ----------
    config : SerializationConfig | None
        Serialization settings; ``None`` gives the default msgpack codec.

    Returns
    -------
    Codec

    Examples
    --------
    >>> from framelink.config import CompressionConfig, SerializationConfig
    >>> build_codec(SerializationConfig(codec="json", compression=CompressionConfig()))
    <framelink.codec.CompressedCodec object at ...>
    """
    if config is None:
        return MsgpackCodec()
    codec: Codec
    match config.codec:
        case "msgpack":
            codec = MsgpackCodec()
        case "json":
            codec = JsonCodec()
        case "pickle":
            codec = PickleCodec()
        case other:
            msg = f"Unknown codec: {other!r}"
            raise ValueError(msg)
    if config.compression is not None:
        logger.debug(
            "Compressing %s payloads with %s level %d",
            config.codec, config.compression.algorithm, config.compression.level,
        )
        codec = CompressedCodec(
            codec,
            algorithm=config.compression.algorithm,
            level=config.compression.level,
            max_size=config.compression.max_size,
        )
    return codec
