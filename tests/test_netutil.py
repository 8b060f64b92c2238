import socket
from collections import namedtuple
from unittest import mock

import pytest

from rpcplugins import netutil
from rpcplugins.netutil import (
    convert_map_to_string,
    convert_meta_to_map,
    copy_meta,
    external_ipv4,
    external_ipv6,
    get_free_port,
    parse_rpcx_address,
)

Addr = namedtuple("Addr", "family address")
Stats = namedtuple("Stats", "isup flags")


def test_get_free_port():
    for _ in range(50):
        port = get_free_port()
        assert 0 < port < 65536


def test_free_port_is_bindable():
    port = get_free_port()
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", port))
        assert sock.getsockname()[1] == port


@pytest.mark.parametrize(
    "addr, expected",
    [
        ("tcp@127.0.0.1:8972", ("tcp", "127.0.0.1", 8972)),
        ("quic@192.168.1.1:9981", ("quic", "192.168.1.1", 9981)),
        ("tcp@[::1]:8972", ("tcp", "::1", 8972)),
    ],
)
def test_parse_rpcx_address(addr, expected):
    assert parse_rpcx_address(addr) == expected


@pytest.mark.parametrize(
    "addr",
    ["127.0.0.1:8972", "@127.0.0.1:8972", "tcp@127.0.0.1", "tcp@::1:80", "tcp@host:abc", "tcp@host:"],
)
def test_parse_rpcx_address_errors(addr):
    with pytest.raises(ValueError):
        parse_rpcx_address(addr)


def test_convert_meta_to_map_first_value_wins():
    assert convert_meta_to_map("a=1&b=2&a=3") == {"a": "1", "b": "2"}


def test_convert_meta_to_map_empty_and_invalid():
    assert convert_meta_to_map("") == {}
    assert convert_meta_to_map("a=%zz") == {}
    assert convert_meta_to_map("a=1;b=2") == {}


def test_convert_meta_to_map_unescapes():
    assert convert_meta_to_map("k=a+b%26c") == {"k": "a b&c"}


def test_convert_map_to_string_sorted_and_escaped():
    assert convert_map_to_string({"b": "2 3", "a": "x&y"}) == "a=x%26y&b=2+3"


def test_map_string_roundtrip():
    meta = {"weight": "10", "group": "a b", "path": "/x?y=z"}
    assert convert_meta_to_map(convert_map_to_string(meta)) == meta


def test_copy_meta():
    dst = {"a": "0", "c": "3"}
    copy_meta({"a": "1", "b": "2"}, dst)
    assert dst == {"a": "1", "b": "2", "c": "3"}


def test_copy_meta_to_none_is_noop():
    src = {"a": "1"}
    copy_meta(src, None)
    assert src == {"a": "1"}


def _patched(addrs, stats):
    return (
        mock.patch.object(netutil.psutil, "net_if_addrs", return_value=addrs),
        mock.patch.object(netutil.psutil, "net_if_stats", return_value=stats),
    )


def _interfaces():
    addrs = {
        "lo": [Addr(socket.AF_INET, "127.0.0.1"), Addr(socket.AF_INET6, "::1")],
        "down0": [Addr(socket.AF_INET, "10.9.9.9")],
        "eth0": [Addr(socket.AF_INET6, "fe80::1%eth0"), Addr(socket.AF_INET, "10.0.0.5")],
    }
    stats = {
        "lo": Stats(True, "up,loopback,running"),
        "down0": Stats(False, ""),
        "eth0": Stats(True, "up,broadcast,running"),
    }
    return addrs, stats


def test_external_ipv4():
    addrs, stats = _interfaces()
    p1, p2 = _patched(addrs, stats)
    with p1, p2:
        assert external_ipv4() == "10.0.0.5"


def test_external_ipv6_takes_first_address():
    addrs, stats = _interfaces()
    p1, p2 = _patched(addrs, stats)
    with p1, p2:
        assert external_ipv6() == "fe80::1"


def test_no_network_raises():
    addrs = {"lo": [Addr(socket.AF_INET, "127.0.0.1")]}
    stats = {"lo": Stats(True, "up,loopback")}
    p1, p2 = _patched(addrs, stats)
    with p1, p2:
        with pytest.raises(OSError):
            external_ipv4()
        with pytest.raises(OSError):
            external_ipv6()