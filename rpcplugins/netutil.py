"""Network helpers: free ports, rpcx addresses, metadata strings and local addresses."""

from __future__ import annotations

import ipaddress
import re
import socket
from collections.abc import Mapping, MutableMapping
from urllib.parse import quote_plus, unquote_to_bytes

import psutil

__all__ = [
    "get_free_port",
    "parse_rpcx_address",
    "convert_meta_to_map",
    "convert_map_to_string",
    "copy_meta",
    "external_ipv4",
    "external_ipv6",
]

_PORT_RE = re.compile(r"[+-]?[0-9]+")
_BAD_ESCAPE_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def get_free_port() -> int:
    """Return a TCP port on 127.0.0.1 that is free right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def _split_host_port(hostport: str) -> tuple[str, str]:
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0:
            raise ValueError(f"address {hostport}: missing ']' in address")
        rest = hostport[end + 1:]
        if not rest:
            raise ValueError(f"address {hostport}: missing port in address")
        if rest[0] != ":":
            raise ValueError(f"address {hostport}: missing port in address")
        host, port = hostport[1:end], rest[1:]
        if "[" in host:
            raise ValueError(f"address {hostport}: unexpected '[' in address")
    else:
        host, sep, port = hostport.rpartition(":")
        if not sep:
            raise ValueError(f"address {hostport}: missing port in address")
        if ":" in host:
            raise ValueError(f"address {hostport}: too many colons in address")
        if "[" in host or "]" in host:
            raise ValueError(f"address {hostport}: unexpected bracket in address")
    if "[" in port or "]" in port:
        raise ValueError(f"address {hostport}: unexpected bracket in address")
    return host, port


def parse_rpcx_address(addr: str) -> tuple[str, str, int]:
    """Split an address such as ``tcp@127.0.0.1:8972`` into (network, ip, port)."""
    at = addr.find("@")
    if at <= 0:
        raise ValueError(f"invalid rpcx address: {addr}")
    network = addr[:at]
    ip, port_text = _split_host_port(addr[at + 1:])
    if not _PORT_RE.fullmatch(port_text):
        raise ValueError(f"invalid port: {port_text!r}")
    return network, ip, int(port_text)


def _query_unescape(text: str) -> str:
    if _BAD_ESCAPE_RE.search(text):
        raise ValueError(f"invalid URL escape in {text!r}")
    return unquote_to_bytes(text.replace("+", " ")).decode("utf-8", "replace")


def _parse_query(query: str) -> dict[str, str]:
    result: dict[str, str] = {}
    for piece in query.split("&"):
        if not piece:
            continue
        if ";" in piece:
            raise ValueError("invalid semicolon separator in query")
        key, _, value = piece.partition("=")
        result.setdefault(_query_unescape(key), _query_unescape(value))
    return result


def convert_meta_to_map(meta: str) -> dict[str, str]:
    """Parse a query-encoded metadata string; the first value of a key wins.

    An empty or malformed string yields an empty dict.
    """
    if not meta:
        return {}
    try:
        return _parse_query(meta)
    except ValueError:
        return {}


def convert_map_to_string(meta: Mapping[str, str]) -> str:
    """Query-encode ``meta`` with keys in sorted order."""
    return "&".join(f"{quote_plus(key)}={quote_plus(meta[key])}" for key in sorted(meta))


def copy_meta(src: Mapping[str, str], dst: MutableMapping[str, str] | None) -> None:
    """Copy every entry of ``src`` into ``dst``; do nothing if ``dst`` is None."""
    if dst is None:
        return
    dst.update(src)


def _is_loopback_interface(stats) -> bool:
    flags = getattr(stats, "flags", "") or ""
    return "loopback" in flags.split(",")


def _candidate_addresses():
    """Yield non-loopback addresses of interfaces that are up, in interface order."""
    stats = psutil.net_if_stats()
    for name, addrs in psutil.net_if_addrs().items():
        iface = stats.get(name)
        if iface is None or not iface.isup or _is_loopback_interface(iface):
            continue
        for addr in addrs:
            if addr.family not in (socket.AF_INET, socket.AF_INET6):
                continue
            try:
                ip = ipaddress.ip_address(addr.address.split("%", 1)[0])
            except ValueError:
                continue
            if ip.is_loopback:
                continue
            yield ip


def external_ipv4() -> str:
    """Return the first external IPv4 address of this host."""
    for ip in _candidate_addresses():
        if ip.version == 4:
            return str(ip)
        if ip.ipv4_mapped is not None:
            return str(ip.ipv4_mapped)
    raise OSError("are you connected to the network?")


def external_ipv6() -> str:
    """Return the first external address of this host that has a 16-byte form.

    Every IPv4 address has one, so an IPv4 address listed first is returned.
    """
    for ip in _candidate_addresses():
        return str(ip)
    raise OSError("are you connected to the network?")