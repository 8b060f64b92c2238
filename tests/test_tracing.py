from rpcplugins.context import Context
from rpcplugins.shared import REQ_METADATA_KEY
from rpcplugins.tracing import MetadataCarrier, extract, inject

HEADER = "traceparent"
TRACE_VALUE = "00-aaaa-bbbb-01"


class FakePropagator:
    def __init__(self):
        self.carriers = []

    def inject(self, ctx, carrier):
        self.carriers.append(carrier)
        carrier.set(HEADER, TRACE_VALUE)

    def extract(self, ctx, carrier):
        self.carriers.append(carrier)
        return carrier.get(HEADER)


class PlainContext:
    def value(self, key):
        return None


def test_carrier_get_set_keys():
    carrier = MetadataCarrier({"a": "1"})
    carrier.set("b", "2")
    assert carrier.get("a") == "1"
    assert carrier.get("b") == "2"
    assert carrier.get("missing") == ""
    assert sorted(carrier.keys()) == ["a", "b"]


def test_inject_creates_and_stores_metadata():
    ctx = Context()
    inject(ctx, FakePropagator())
    assert ctx.value(REQ_METADATA_KEY) == {HEADER: TRACE_VALUE}


def test_inject_uses_existing_metadata():
    meta = {"other": "x"}
    ctx = Context()
    ctx.set_value(REQ_METADATA_KEY, meta)
    inject(ctx, FakePropagator())
    assert meta == {"other": "x", HEADER: TRACE_VALUE}
    assert ctx.value(REQ_METADATA_KEY) is meta


def test_inject_extract_roundtrip():
    ctx = Context()
    propagator = FakePropagator()
    inject(ctx, propagator)
    assert extract(ctx, propagator) == TRACE_VALUE


def test_extract_without_metadata_stores_empty_dict():
    ctx = Context()
    assert extract(ctx, FakePropagator()) == ""
    assert ctx.value(REQ_METADATA_KEY) == {}


def test_non_rpc_context_gets_transient_metadata():
    propagator = FakePropagator()
    inject(PlainContext(), propagator)
    assert propagator.carriers[0].metadata == {HEADER: TRACE_VALUE}