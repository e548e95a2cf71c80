"""Network address parsing for outbound connections.

Provides ``Address``, a frozen ``(host, port)`` pair that accepts the
``host:port`` and ``[v6]:port`` text forms as well as tuples.
"""

from __future__ import annotations

import re
from dataclasses import dataclass


__all__ = ["Address", "AddressLike"]

_BRACKETED = re.compile(r"^\[(?P<host>[^\]]+)\]:(?P<port>\d+)$")
_PLAIN = re.compile(r"^(?P<host>[^:\[\]]+):(?P<port>\d+)$")


@dataclass(frozen=True)
class Address:
    """Immutable TCP endpoint.

    Parameters
    ----------
    host : str
        Hostname or IP literal (IPv6 without brackets).
    port : int
        TCP port, 0-65535.

    Examples
    --------
    >>> Address.parse("127.0.0.1:8080")
    Address(host='127.0.0.1', port=8080)
    >>> str(Address.parse("[::1]:9000"))
    '[::1]:9000'
    """

    host: str
    port: int

    def __post_init__(self) -> None:
        if not self.host:
            msg = "Address host must not be empty"
            raise ValueError(msg)
        if not 0 <= self.port <= 65535:
            msg = f"Port out of range: {self.port}"
            raise ValueError(msg)

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"

    @staticmethod
    def parse(raw: AddressLike) -> Address:
        """Build an ``Address`` from text, a ``(host, port)`` tuple, or an ``Address``.

        Parameters
        ----------
        raw : AddressLike
            ``"host:port"``, ``"[v6]:port"``, ``(host, port)`` or ``Address``.

        Returns
        -------
        Address

        Raises
        ------
        ValueError
            If *raw* cannot be parsed.
        """
        match raw:
            case Address():
                return raw
            case (str() as host, int() as port):
                return Address(host=host, port=port)
            case str():
                m = _BRACKETED.match(raw) or _PLAIN.match(raw)
                if m is None:
                    msg = f"Invalid address, expected 'host:port', got: {raw!r}"
                    raise ValueError(msg)
                return Address(host=m.group("host"), port=int(m.group("port")))
            case _:
                msg = f"Invalid address: {raw!r}"
                raise ValueError(msg)


type AddressLike = Address | str | tuple[str, int]
