"""TOML-based configuration for framed connections.

Provides ``load_config`` / ``discover_config`` for loading ``framelink.toml``
and the frozen dataclasses holding connection, serialization and compression
settings.

Example ``framelink.toml``::

    [connection]
    max_frame_size = 1048576
    prefix_width = 4
    read_timeout = 30.0

    [serialization]
    codec = "json"

    [serialization.compression]
    algorithm = "zlib"
    level = 6
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from framelink.framing import DEFAULT_MAX_FRAME_SIZE, DEFAULT_PREFIX_WIDTH, FrameHeader


__all__ = [
    "CodecKind",
    "CompressionAlgorithm",
    "CompressionConfig",
    "ConnectionConfig",
    "FramelinkConfig",
    "SerializationConfig",
    "discover_config",
    "load_config",
]

logger = logging.getLogger("framelink.config")

CONFIG_FILENAME = "framelink.toml"

type CompressionAlgorithm = Literal["zlib", "gzip", "bz2", "lzma"]
type CodecKind = Literal["msgpack", "json", "pickle"]

_ALGORITHMS = ("zlib", "gzip", "bz2", "lzma")
_CODECS = ("msgpack", "json", "pickle")


@dataclass(frozen=True)
class ConnectionConfig:
    """Framing and I/O settings for one connection.

    Both peers must agree on ``prefix_width``; ``max_frame_size`` only
    bounds what this side sends and accepts.

    Parameters
    ----------
    max_frame_size : int
        Largest payload accepted or sent, in bytes.
    prefix_width : int
        Length prefix width in bytes: 1, 2, 4 or 8.
    read_chunk_size : int
        Largest single read requested from the stream while filling a frame.
    read_buffer_size : int
        Initial capacity of the reusable read buffer.  It grows to fit the
        largest frame received and is not shrunk afterwards.
    connect_timeout : float | None
        Seconds allowed for dialing; ``None`` waits indefinitely.
    read_timeout : float | None
        Seconds allowed for one ``read``; ``None`` disables.
    write_timeout : float | None
        Seconds allowed for one ``write``; ``None`` disables.
    nodelay : bool
        Set ``TCP_NODELAY`` on dialed sockets.

    Examples
    --------
    >>> ConnectionConfig(max_frame_size=16)
    ConnectionConfig(max_frame_size=16, prefix_width=4, ...)
    """

    max_frame_size: int = DEFAULT_MAX_FRAME_SIZE
    prefix_width: int = DEFAULT_PREFIX_WIDTH
    read_chunk_size: int = 4096
    read_buffer_size: int = 4096
    connect_timeout: float | None = 10.0
    read_timeout: float | None = None
    write_timeout: float | None = None
    nodelay: bool = True

    def __post_init__(self) -> None:
        for name in ("max_frame_size", "prefix_width", "read_chunk_size", "read_buffer_size"):
            _require_int(name, getattr(self, name))
        for name in ("connect_timeout", "read_timeout", "write_timeout"):
            _require_number(name, getattr(self, name), optional=True)
        if not isinstance(self.nodelay, bool):
            msg = f"nodelay must be a bool, got {self.nodelay!r}"
            raise ValueError(msg)
        header = FrameHeader(self.prefix_width)
        if self.max_frame_size < 0:
            msg = f"max_frame_size must be non-negative, got {self.max_frame_size}"
            raise ValueError(msg)
        if self.max_frame_size > header.max_length:
            msg = (
                f"max_frame_size {self.max_frame_size} does not fit a "
                f"{self.prefix_width}-byte prefix (max {header.max_length})"
            )
            raise ValueError(msg)
        if self.read_chunk_size <= 0:
            msg = f"read_chunk_size must be positive, got {self.read_chunk_size}"
            raise ValueError(msg)
        if self.read_buffer_size < 0:
            msg = f"read_buffer_size must be non-negative, got {self.read_buffer_size}"
            raise ValueError(msg)
        for name in ("connect_timeout", "read_timeout", "write_timeout"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                msg = f"{name} must be positive or None, got {value}"
                raise ValueError(msg)


@dataclass(frozen=True)
class CompressionConfig:
    """Compression settings for payloads.

    Parameters
    ----------
    algorithm : CompressionAlgorithm
        ``"zlib"``, ``"gzip"``, ``"bz2"`` or ``"lzma"``.
    level : int
        Compression level (0-9).
    max_size : int
        Largest decompressed payload accepted by the receiver.

    Examples
    --------
    >>> CompressionConfig(algorithm="gzip", level=9)
    CompressionConfig(algorithm='gzip', level=9, max_size=8388608)
    """

    algorithm: CompressionAlgorithm = "zlib"
    level: int = 6
    max_size: int = DEFAULT_MAX_FRAME_SIZE

    def __post_init__(self) -> None:
        _require_int("level", self.level)
        _require_int("max_size", self.max_size)
        if self.algorithm not in _ALGORITHMS:
            msg = f"Unknown compression algorithm: {self.algorithm!r}"
            raise ValueError(msg)
        if not 0 <= self.level <= 9:
            msg = f"Compression level must be 0-9, got {self.level}"
            raise ValueError(msg)
        if self.max_size < 0:
            msg = f"max_size must be non-negative, got {self.max_size}"
            raise ValueError(msg)


@dataclass(frozen=True)
class SerializationConfig:
    """Payload codec selection.

    Parameters
    ----------
    codec : CodecKind
        ``"msgpack"``, ``"json"`` or ``"pickle"``.
    compression : CompressionConfig | None
        Compression settings. ``None`` means no compression (opt-in).
    """

    codec: CodecKind = "msgpack"
    compression: CompressionConfig | None = None

    def __post_init__(self) -> None:
        if self.codec not in _CODECS:
            msg = f"Unknown codec: {self.codec!r}"
            raise ValueError(msg)


@dataclass(frozen=True)
class FramelinkConfig:
    """Top-level configuration loaded from ``framelink.toml``."""

    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    serialization: SerializationConfig = field(default_factory=SerializationConfig)


def discover_config(start: Path | None = None) -> Path | None:
    """Walk up from *start* (default: cwd) looking for ``framelink.toml``.

    Parameters
    ----------
    start : Path | None
        Directory to start searching from.

    Returns
    -------
    Path | None
        Path to the discovered config file, or ``None`` if not found.
    """
    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def load_config(path: Path | None = None) -> FramelinkConfig:
    """Load a ``FramelinkConfig`` from a TOML file.

    If *path* is ``None``, auto-discovers ``framelink.toml`` by walking up
    from the current working directory.  Returns the default config if no
    file is found.

    Parameters
    ----------
    path : Path | None
        Explicit path to a TOML config file.

    Returns
    -------
    FramelinkConfig

    Raises
    ------
    FileNotFoundError
        If an explicit *path* is given but does not exist.
    ValueError
        If a setting is unknown or out of range.
    """
    if path is None:
        discovered = discover_config()
        if discovered is None:
            return FramelinkConfig()
        path = discovered

    if not path.exists():
        msg = f"Config file not found: {path}"
        raise FileNotFoundError(msg)

    with path.open("rb") as f:
        raw = tomllib.load(f)
    logger.debug("Loaded configuration from %s", path)

    connection = ConnectionConfig(**_section(raw, "connection", ConnectionConfig))

    serialization_raw = _section(raw, "serialization", SerializationConfig)
    compression = None
    if "compression" in serialization_raw:
        compression = CompressionConfig(
            **_section(serialization_raw, "compression", CompressionConfig, "serialization.")
        )
        del serialization_raw["compression"]
    serialization = SerializationConfig(**serialization_raw, compression=compression)

    return FramelinkConfig(connection=connection, serialization=serialization)


def _section(
    raw: dict[str, Any], name: str, target: type, prefix: str = ""
) -> dict[str, Any]:
    value = raw.get(name, {})
    if not isinstance(value, dict):
        msg = f"[{prefix}{name}] must be a table, got {type(value).__name__}"
        raise ValueError(msg)
    section = dict(value)
    unknown = set(section) - set(target.__dataclass_fields__)
    if unknown:
        msg = f"Unknown [{prefix}{name}] settings: {', '.join(sorted(unknown))}"
        raise ValueError(msg)
    return section


def _require_int(name: str, value: object) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        msg = f"{name} must be an integer, got {value!r}"
        raise ValueError(msg)


def _require_number(name: str, value: object, *, optional: bool = False) -> None:
    if value is None and optional:
        return
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        msg = f"{name} must be a number, got {value!r}"
        raise ValueError(msg)
