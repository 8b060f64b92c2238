import pytest

from rpcplugins.ratelimit import (
    RateLimitingPlugin,
    ReqRateLimitingPlugin,
    ReqReachLimitError,
    TokenBucket,
)


class FakeTime:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def clock(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def make_bucket(fill_interval, capacity, t):
    return TokenBucket(fill_interval, capacity, clock=t.clock, sleep=t.sleep)


def test_bucket_starts_full():
    t = FakeTime()
    b = make_bucket(1.0, 3, t)
    assert b.take_available(5) == 3
    assert b.take_available(1) == 0


def test_bucket_refills_one_token_per_interval():
    t = FakeTime()
    b = make_bucket(1.0, 3, t)
    b.take_available(3)
    t.now += 1.0
    assert b.take_available(3) == 1


def test_bucket_refill_is_capped_at_capacity():
    t = FakeTime()
    b = make_bucket(1.0, 3, t)
    b.take_available(3)
    t.now += 100.0
    assert b.take_available(10) == 3


def test_bucket_rejects_bad_parameters():
    with pytest.raises(ValueError):
        TokenBucket(0, 1)
    with pytest.raises(ValueError):
        TokenBucket(1.0, 0)


def test_wait_does_not_sleep_when_tokens_available():
    t = FakeTime()
    b = make_bucket(1.0, 2, t)
    b.wait(1)
    assert t.sleeps == []


def test_wait_sleeps_until_next_token():
    t = FakeTime()
    b = make_bucket(1.0, 1, t)
    b.wait(1)
    b.wait(1)
    assert t.sleeps == [pytest.approx(1.0)]
    assert b.take_available(1) == 0


def test_conn_plugin_accepts_until_exhausted():
    t = FakeTime()
    p = RateLimitingPlugin(1.0, 2, clock=t.clock, sleep=t.sleep)
    conn = object()
    assert p.handle_conn_accept(conn) == (conn, True)
    assert p.handle_conn_accept(conn) == (conn, True)
    assert p.handle_conn_accept(conn) == (conn, False)
    t.now += 1.0
    assert p.handle_conn_accept(conn) == (conn, True)


def test_req_plugin_raises_when_limit_reached():
    t = FakeTime()
    p = ReqRateLimitingPlugin(1.0, 1, clock=t.clock, sleep=t.sleep)
    assert p.post_read_request(None, None, None) is None
    with pytest.raises(ReqReachLimitError):
        p.post_read_request(None, None, None)


def test_req_plugin_blocks_instead_of_raising():
    t = FakeTime()
    p = ReqRateLimitingPlugin(0.5, 1, block=True, clock=t.clock, sleep=t.sleep)
    p.post_read_request(None, None, None)
    p.post_read_request(None, None, None)
    assert t.sleeps == [pytest.approx(0.5)]