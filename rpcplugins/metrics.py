"""Server metrics: counters, meters, histograms and a plugin that records rpc traffic."""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable, Iterator
from typing import Any

from .shared import ContextKey

__all__ = [
    "START_REQUEST_CONTEXT_KEY",
    "Counter",
    "Meter",
    "Histogram",
    "Registry",
    "MetricsPlugin",
]

# Context key under which the server stores the request start time in nanoseconds.
START_REQUEST_CONTEXT_KEY = ContextKey("start_parse_request")

_MAX_CALL_TIME_NS = 30 * 60 * 1_000_000_000
_SAMPLE_SIZE = 1028


class Counter:
    """A thread-safe integer counter."""

    def __init__(self) -> None:
        self._count = 0
        self._lock = threading.Lock()

    @property
    def count(self) -> int:
        return self._count

    def inc(self, n: int = 1) -> None:
        with self._lock:
            self._count += n

    def dec(self, n: int = 1) -> None:
        with self._lock:
            self._count -= n


class Meter:
    """Counts events and reports their mean rate per second since creation."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._start = clock()
        self._count = 0
        self._lock = threading.Lock()

    @property
    def count(self) -> int:
        return self._count

    def mark(self, n: int = 1) -> None:
        with self._lock:
            self._count += n

    def rate_mean(self) -> float:
        """Events per second since the meter was created."""
        elapsed = self._clock() - self._start
        if elapsed <= 0:
            return 0.0
        return self._count / elapsed


class Histogram:
    """Records values in a bounded sample, keeping the most recent ones."""

    def __init__(self, sample_size: int = _SAMPLE_SIZE) -> None:
        self._sample: deque[float] = deque(maxlen=sample_size)
        self._count = 0
        self._lock = threading.Lock()

    @property
    def count(self) -> int:
        """Number of values ever recorded."""
        return self._count

    @property
    def values(self) -> list[float]:
        """The values currently held in the sample."""
        with self._lock:
            return list(self._sample)

    def update(self, value: float) -> None:
        with self._lock:
            self._sample.append(value)
            self._count += 1

    def mean(self) -> float:
        """Mean of the sampled values, or 0.0 when empty."""
        with self._lock:
            if not self._sample:
                return 0.0
            return sum(self._sample) / len(self._sample)


class Registry:
    """Named metrics, created on first use."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._metrics: dict[str, Any] = {}
        self._lock = threading.Lock()

    def _get_or_register(self, name: str, kind: type, factory: Callable[[], Any]) -> Any:
        with self._lock:
            metric = self._metrics.get(name)
            if metric is None:
                metric = factory()
                self._metrics[name] = metric
            elif not isinstance(metric, kind):
                raise TypeError(
                    f"metric {name!r} is a {type(metric).__name__}, not a {kind.__name__}"
                )
            return metric

    def get_or_register_counter(self, name: str) -> Counter:
        return self._get_or_register(name, Counter, Counter)

    def get_or_register_meter(self, name: str) -> Meter:
        return self._get_or_register(name, Meter, lambda: Meter(self._clock))

    def get_or_register_histogram(self, name: str) -> Histogram:
        return self._get_or_register(name, Histogram, Histogram)

    def each(self) -> Iterator[tuple[str, Any]]:
        """Yield ``(name, metric)`` pairs from a snapshot of the registry."""
        with self._lock:
            items = list(self._metrics.items())
        yield from items


def _describe(name: str, metric: Any) -> str:
    if isinstance(metric, Counter):
        return f"counter {name} count: {metric.count}"
    if isinstance(metric, Meter):
        return f"meter {name} count: {metric.count} mean rate: {metric.rate_mean():.2f}"
    if isinstance(metric, Histogram):
        return f"histogram {name} count: {metric.count} mean: {metric.mean():.2f}"
    return f"metric {name}: {metric!r}"


class _Reporter:
    """Logs every metric of a registry at a fixed interval on a background thread."""

    def __init__(self, registry: Registry, freq: float, logger: Any) -> None:
        if freq <= 0:
            raise ValueError("report interval must be positive")
        self._registry = registry
        self._freq = freq
        self._logger = logger
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stopped.wait(self._freq):
            self.report()

    def report(self) -> None:
        for name, metric in self._registry.each():
            self._logger.info(_describe(name, metric))

    def stop(self) -> None:
        self._stopped.set()
        self._thread.join()


class MetricsPlugin:
    """Collects metrics of an rpc server into a registry."""

    def __init__(self, registry: Registry | None = None, prefix: str = "") -> None:
        self.registry = registry if registry is not None else Registry()
        self.prefix = prefix

    def _name(self, metric: str) -> str:
        return self.prefix + metric

    def register(self, name: str, rcvr: Any, metadata: str) -> None:
        """Count a registered service."""
        self.registry.get_or_register_counter(self._name("serviceCounter")).inc(1)

    def handle_conn_accept(self, conn: Any) -> tuple[Any, bool]:
        """Count an accepted client connection; always accepts it."""
        self.registry.get_or_register_meter(self._name("clientMeter")).mark(1)
        return conn, True

    def pre_read_request(self, ctx: Any) -> None:
        return None

    def post_read_request(self, ctx: Any, request: Any, error: Any) -> None:
        """Count a request read for its service and method."""
        path = request.service_path
        if not path:
            return
        name = f"service.{path}.{request.service_method}.Read_Qps"
        self.registry.get_or_register_meter(self._name(name)).mark(1)

    def post_write_response(self, ctx: Any, request: Any, response: Any, error: Any) -> None:
        """Count a written response and record the call time."""
        path = response.service_path
        if not path:
            return
        method = response.service_method
        self.registry.get_or_register_meter(
            self._name(f"service.{path}.{method}.Write_Qps")
        ).mark(1)

        start = ctx.value(START_REQUEST_CONTEXT_KEY) if ctx is not None else None
        if not start or start <= 0:
            return
        elapsed = time.time_ns() - start
        if elapsed < _MAX_CALL_TIME_NS:
            self.registry.get_or_register_histogram(
                self._name(f"service.{path}.{method}.CallTime")
            ).update(elapsed)

    def log(self, freq: float, logger: Any) -> _Reporter:
        """Log all metrics every ``freq`` seconds; returns a reporter with ``stop()``."""
        return _Reporter(self.registry, freq, logger)