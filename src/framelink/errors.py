"""Error taxonomy for framed connections.

Every failure raised by ``framelink`` derives from ``FramelinkError``.  The
classes encode whether the direction that raised them is still usable:

- ``EncodeError`` / ``DecodeError`` leave frame boundaries intact.
- ``FrameTooLarge`` on write performs no I/O; on read it desynchronizes the
  stream.
- ``TruncatedFrame`` and ``StreamError`` are fatal to the direction.
"""

from __future__ import annotations


__all__ = [
    "BrokenConnection",
    "ConnectError",
    "DecodeError",
    "EncodeError",
    "FrameTooLarge",
    "FramelinkError",
    "StreamError",
    "TruncatedFrame",
]


class FramelinkError(Exception):
    """Base class for all ``framelink`` errors."""


class ConnectError(FramelinkError):
    """The underlying stream could not be established.

    Parameters
    ----------
    address : str
        The address that was being dialed.
    reason : str
        Human-readable cause (refused, timeout, resolution failure).
    """

    def __init__(self, address: str, reason: str) -> None:
        self.address = address
        self.reason = reason
        super().__init__(f"Cannot connect to {address}: {reason}")


class EncodeError(FramelinkError):
    """A value could not be encoded by the codec. No bytes were sent."""


class DecodeError(FramelinkError):
    """A payload could not be decoded as the requested type.

    The whole frame was consumed before decoding, so the next read starts
    at the next frame boundary.

    Parameters
    ----------
    message : str
        Description of the mismatch.
    path : str
        Dotted location of the offending field (``""`` for the root value).
    """

    def __init__(self, message: str, path: str = "") -> None:
        self.path = path
        where = f" at {path!r}" if path else ""
        super().__init__(f"{message}{where}")


class FrameTooLarge(FramelinkError):
    """A frame length exceeds the configured maximum.

    Parameters
    ----------
    length : int
        Declared (read) or computed (write) payload length.
    limit : int
        The configured maximum payload size.
    """

    def __init__(self, length: int, limit: int) -> None:
        self.length = length
        self.limit = limit
        super().__init__(f"Frame of {length} bytes exceeds limit of {limit} bytes")


class TruncatedFrame(FramelinkError):
    """The peer closed the stream in the middle of a frame.

    Parameters
    ----------
    expected : int
        Bytes required to complete the current prefix or payload.
    received : int
        Bytes actually received before end-of-stream.
    """

    def __init__(self, expected: int, received: int) -> None:
        self.expected = expected
        self.received = received
        super().__init__(
            f"Stream closed mid-frame: expected {expected} bytes, got {received}"
        )


class StreamError(FramelinkError):
    """The underlying stream failed (reset, broken pipe, timeout)."""


class BrokenConnection(FramelinkError):
    """A direction was used after it became unusable.

    Raised after a fatal error, a cancelled operation, ``split()`` or
    ``close()``.  ``__cause__`` carries the original failure when there is
    one.
    """
