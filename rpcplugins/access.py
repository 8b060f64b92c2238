"""Plugins that accept or refuse connections by the client's IP address."""

from __future__ import annotations

import ipaddress
from collections.abc import Iterable
from typing import Any, Union

__all__ = ["BlacklistPlugin", "WhitelistPlugin"]

_Network = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]
_Address = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def _remote_ip(conn: Any) -> str | None:
    try:
        peer = conn.getpeername()
    except (OSError, AttributeError):
        return None
    if isinstance(peer, tuple) and len(peer) >= 2 and isinstance(peer[0], str):
        return peer[0]
    return None


def _parse_ip(host: str) -> _Address | None:
    try:
        ip = ipaddress.ip_address(host.split("%", 1)[0])
    except ValueError:
        return None
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    return ip


def _networks(masks: Iterable[str | _Network]) -> list[_Network]:
    return [ipaddress.ip_network(m, strict=False) if isinstance(m, str) else m for m in masks]


def _matches(host: str, addresses: frozenset[str], masks: list[_Network]) -> bool:
    if host in addresses:
        return True
    ip = _parse_ip(host)
    return ip is not None and any(ip in net for net in masks)


class BlacklistPlugin:
    """Refuses clients whose address is listed or inside a listed network."""

    def __init__(
        self,
        blacklist: Iterable[str] = (),
        blacklist_mask: Iterable[str | _Network] = (),
    ) -> None:
        self.blacklist = frozenset(blacklist)
        self.blacklist_mask = _networks(blacklist_mask)

    def handle_conn_accept(self, conn: Any) -> tuple[Any, bool]:
        host = _remote_ip(conn)
        if host is None:
            return conn, True
        return conn, not _matches(host, self.blacklist, self.blacklist_mask)


class WhitelistPlugin:
    """Accepts only clients whose address is listed or inside a listed network."""

    def __init__(
        self,
        whitelist: Iterable[str] = (),
        whitelist_mask: Iterable[str | _Network] = (),
    ) -> None:
        self.whitelist = frozenset(whitelist)
        self.whitelist_mask = _networks(whitelist_mask)

    def handle_conn_accept(self, conn: Any) -> tuple[Any, bool]:
        host = _remote_ip(conn)
        if host is None:
            return conn, False
        return conn, _matches(host, self.whitelist, self.whitelist_mask)