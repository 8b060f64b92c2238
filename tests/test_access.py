import ipaddress

from rpcplugins.access import BlacklistPlugin, WhitelistPlugin


class FakeConn:
    def __init__(self, peer):
        self.peer = peer

    def getpeername(self):
        if isinstance(self.peer, Exception):
            raise self.peer
        return self.peer


def test_blacklist_refuses_listed_address():
    p = BlacklistPlugin(blacklist={"10.0.0.1"})
    conn = FakeConn(("10.0.0.1", 5000))
    assert p.handle_conn_accept(conn) == (conn, False)


def test_blacklist_refuses_address_in_network():
    p = BlacklistPlugin(blacklist_mask=["172.17.0.0/16"])
    assert p.handle_conn_accept(FakeConn(("172.17.3.4", 1)))[1] is False
    assert p.handle_conn_accept(FakeConn(("172.18.3.4", 1)))[1] is True


def test_blacklist_accepts_unknown_peer():
    p = BlacklistPlugin(blacklist={"10.0.0.1"})
    conn = FakeConn(OSError("not connected"))
    assert p.handle_conn_accept(conn) == (conn, True)


def test_blacklist_accepts_other_address():
    p = BlacklistPlugin(blacklist={"10.0.0.1"})
    assert p.handle_conn_accept(FakeConn(("10.0.0.2", 80)))[1] is True


def test_whitelist_accepts_listed_address():
    p = WhitelistPlugin(whitelist={"127.0.0.1"})
    conn = FakeConn(("127.0.0.1", 9000))
    assert p.handle_conn_accept(conn) == (conn, True)


def test_whitelist_accepts_address_in_network_object():
    p = WhitelistPlugin(whitelist_mask=[ipaddress.ip_network("172.17.0.0/16")])
    assert p.handle_conn_accept(FakeConn(("172.17.0.9", 1)))[1] is True
    assert p.handle_conn_accept(FakeConn(("192.168.1.1", 1)))[1] is False


def test_whitelist_refuses_unknown_peer():
    p = WhitelistPlugin(whitelist={"127.0.0.1"})
    assert p.handle_conn_accept(FakeConn(OSError("gone")))[1] is False
    assert p.handle_conn_accept(FakeConn(""))[1] is False


def test_whitelist_matches_ipv4_mapped_ipv6_peer():
    p = WhitelistPlugin(whitelist_mask=["172.17.0.0/16"])
    assert p.handle_conn_accept(FakeConn(("::ffff:172.17.1.1", 1, 0, 0)))[1] is True


def test_whitelist_ipv6_network():
    p = WhitelistPlugin(whitelist_mask=["fd00::/8"])
    assert p.handle_conn_accept(FakeConn(("fd00::1", 1, 0, 0)))[1] is True
    assert p.handle_conn_accept(FakeConn(("10.0.0.1", 1)))[1] is False