from __future__ import annotations

import pytest

from framelink.address import Address


def test_parse_host_port() -> None:
    assert Address.parse("127.0.0.1:8080") == Address(host="127.0.0.1", port=8080)


def test_parse_hostname() -> None:
    assert Address.parse("localhost:25520") == Address(host="localhost", port=25520)


def test_parse_bracketed_ipv6() -> None:
    addr = Address.parse("[::1]:9000")
    assert addr.host == "::1"
    assert addr.port == 9000


def test_parse_tuple_and_address() -> None:
    addr = Address("example.com", 443)
    assert Address.parse(("example.com", 443)) == addr
    assert Address.parse(addr) is addr


def test_str_roundtrip() -> None:
    assert str(Address("10.0.0.1", 80)) == "10.0.0.1:80"
    assert str(Address("::1", 9000)) == "[::1]:9000"


@pytest.mark.parametrize(
    "raw",
    ["localhost", "localhost:", ":8080", "::1:9000", "[::1]9000", "host:port", 8080],
)
def test_parse_invalid(raw: object) -> None:
    with pytest.raises(ValueError):
        Address.parse(raw)  # type: ignore[arg-type]


def test_port_out_of_range() -> None:
    with pytest.raises(ValueError, match="Port out of range"):
        Address.parse("localhost:70000")
    with pytest.raises(ValueError):
        Address("localhost", -1)


def test_empty_host() -> None:
    with pytest.raises(ValueError):
        Address("", 80)
