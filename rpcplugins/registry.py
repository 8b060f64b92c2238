"""Service registries that publish server addresses into a key/value store."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qsl, quote_plus

from .metrics import Registry

__all__ = [
    "StoreError",
    "KVPair",
    "MemoryStore",
    "RegisterPlugin",
    "ConsulRegisterPlugin",
    "RedisRegisterPlugin",
    "ZooKeeperRegisterPlugin",
]

log = logging.getLogger(__name__)

_PATH_MARKER = b"rpcx_path"


class StoreError(Exception):
    """Raised when a key/value store operation fails."""


@dataclass(frozen=True)
class KVPair:
    """A key, its value and the index of the write that produced it."""

    key: str
    value: bytes
    last_index: int


def _as_bytes(value: bytes | str) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else bytes(value)


class MemoryStore:
    """An in-process key/value store with per-key time to live."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[KVPair, float | None, bool]] = {}
        self._index = 0
        self._lock = threading.Lock()
        self.closed = False

    def _live(self, key: str) -> tuple[KVPair, float | None, bool] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires = entry[1]
        if expires is not None and self._clock() >= expires:
            del self._entries[key]
            return None
        return entry

    def _write(self, key: str, value: bytes | str, is_dir: bool, ttl: float) -> KVPair:
        self._index += 1
        pair = KVPair(key, _as_bytes(value), self._index)
        expires = self._clock() + ttl if ttl and ttl > 0 else None
        self._entries[key] = (pair, expires, is_dir)
        return pair

    def put(self, key: str, value: bytes | str, is_dir: bool = False, ttl: float = 0) -> None:
        """Store ``value`` under ``key``; a positive ``ttl`` makes it expire after that many seconds."""
        with self._lock:
            self._write(key, value, is_dir, ttl)

    def atomic_put(
        self, key: str, value: bytes | str, previous: KVPair | None = None, ttl: float = 0
    ) -> tuple[bool, KVPair]:
        """Create ``key`` if ``previous`` is None, else replace it only if unchanged since ``previous``."""
        with self._lock:
            current = self._live(key)
            if previous is None:
                if current is not None:
                    raise StoreError(f"Key already exists: {key}")
            else:
                if current is None:
                    raise StoreError(f"Key not found in store: {key}")
                if current[0].last_index != previous.last_index:
                    raise StoreError(f"Atomic CAS operation failed: {key}")
            return True, self._write(key, value, False, ttl)

    def get(self, key: str) -> KVPair:
        """Return the pair stored under ``key``; raise StoreError if there is none."""
        with self._lock:
            entry = self._live(key)
            if entry is None:
                raise StoreError(f"Key not found in store: {key}")
            return entry[0]

    def exists(self, key: str) -> bool:
        with self._lock:
            return self._live(key) is not None

    def delete(self, key: str) -> None:
        """Remove ``key``; raise StoreError if it is not there."""
        with self._lock:
            if self._live(key) is None:
                raise StoreError(f"Key not found in store: {key}")
            del self._entries[key]

    def close(self) -> None:
        self.closed = True


def _default_store_factory(servers: list[str], options: Any) -> MemoryStore:
    return MemoryStore()


def _parse_query(text: str) -> dict[str, list[str]]:
    values: dict[str, list[str]] = {}
    for key, value in parse_qsl(text, keep_blank_values=True):
        values.setdefault(key, []).append(value)
    return values


def _encode_query(values: dict[str, list[str]]) -> str:
    return "&".join(
        f"{quote_plus(key)}={quote_plus(value)}" for key in sorted(values) for value in values[key]
    )


class RegisterPlugin:
    """Registers services at ``base_path/<service>/<service_address>`` and keeps them alive.

    The store is ``kv`` if given, otherwise ``store_factory(servers, options)``.
    """

    _kind = "registry"
    _strip_leading_slash = True
    _tolerate_not_a_file = False

    def __init__(
        self,
        service_address: str,
        servers: Iterable[str] = (),
        base_path: str = "",
        metrics: Registry | None = None,
        update_interval: float = 0.0,
        options: Any = None,
        kv: Any = None,
        store_factory: Callable[[list[str], Any], Any] = _default_store_factory,
    ) -> None:
        self.service_address = service_address
        self.servers = list(servers)
        self.base_path = base_path
        self.metrics = metrics
        self.update_interval = update_interval
        self.options = options
        self.kv = kv
        self.services: list[str] = []
        self._store_factory = store_factory
        self._metas: dict[str, str] = {}
        self._metas_lock = threading.RLock()
        self._dying = threading.Event()
        self._done = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def metas(self) -> dict[str, str]:
        """A copy of the metadata of each registered service."""
        with self._metas_lock:
            return dict(self._metas)

    def _store(self) -> Any:
        if self.kv is None:
            try:
                self.kv = self._store_factory(self.servers, self.options)
            except StoreError as exc:
                log.error("cannot create %s registry: %s", self._kind, exc)
                raise
        return self.kv

    def _normalize_base_path(self) -> None:
        if self._strip_leading_slash and self.base_path.startswith("/"):
            self.base_path = self.base_path[1:]

    def _put_dir(self, path: str, value: bytes | str) -> None:
        try:
            self.kv.put(path, value, is_dir=True)
        except StoreError as exc:
            if self._tolerate_not_a_file and "Not a file" in str(exc):
                return
            log.error("cannot create %s path %s: %s", self._kind, path, exc)
            raise

    def _put_node(self, path: str, metadata: str) -> None:
        self.kv.put(path, metadata, ttl=self.update_interval * 2)

    def _node_path(self, name: str) -> str:
        return f"{self.base_path}/{name}/{self.service_address}"

    def start(self) -> None:
        """Create the base path and start refreshing services if ``update_interval`` is positive."""
        self._dying = threading.Event()
        self._done = threading.Event()
        try:
            self._store()
            self._normalize_base_path()
            self._put_dir(self.base_path, _PATH_MARKER)
        except StoreError:
            self._done.set()
            raise

        if self.update_interval > 0:
            self._thread = threading.Thread(target=self._run, daemon=True)
            self._thread.start()
        else:
            self._done.set()

    def _run(self) -> None:
        try:
            while not self._dying.wait(self.update_interval):
                self.refresh()
        finally:
            self.kv.close()
            self._done.set()

    def refresh(self) -> None:
        """Rewrite every service node with the current metrics, re-creating missing ones."""
        extra: dict[str, str] = {}
        if self.metrics is not None:
            calls = self.metrics.get_or_register_meter("calls").rate_mean()
            conns = self.metrics.get_or_register_meter("connections").rate_mean()
            extra["calls"] = f"{calls:.2f}"
            extra["connections"] = f"{conns:.2f}"

        ttl = self.update_interval * 2
        for name in list(self.services):
            node_path = self._node_path(name)
            try:
                pair = self.kv.get(node_path)
            except StoreError as exc:
                log.warning("can't get data of node: %s, will re-create, because of %s", node_path, exc)
                with self._metas_lock:
                    meta = self._metas.get(name, "")
                try:
                    self.kv.put(node_path, meta, ttl=ttl)
                except StoreError as put_exc:
                    log.error("cannot re-create %s path %s: %s", self._kind, node_path, put_exc)
                continue
            values = _parse_query(pair.value.decode("utf-8", "replace"))
            for key, value in extra.items():
                values[key] = [value]
            try:
                self.kv.put(node_path, _encode_query(values), ttl=ttl)
            except StoreError as exc:
                log.error("cannot update %s path %s: %s", self._kind, node_path, exc)

    def stop(self) -> None:
        """Delete every registered node and stop the refresh loop."""
        self._store()
        self._normalize_base_path()
        for name in self.services:
            node_path = self._node_path(name)
            try:
                exists = self.kv.exists(node_path)
            except StoreError as exc:
                log.error("cannot delete path %s: %s", node_path, exc)
                continue
            if exists:
                try:
                    self.kv.delete(node_path)
                except StoreError:
                    pass
                log.info("delete path %s", node_path)

        self._dying.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        self._done.wait()

    def handle_conn_accept(self, conn: Any) -> tuple[Any, bool]:
        """Count the connection; always accepts it."""
        if self.metrics is not None:
            self.metrics.get_or_register_meter("connections").mark(1)
        return conn, True

    def pre_call(self, ctx: Any, service_path: str, service_method: str, args: Any) -> Any:
        """Count the call and pass ``args`` through."""
        if self.metrics is not None:
            self.metrics.get_or_register_meter("calls").mark(1)
        return args

    def register(self, name: str, rcvr: Any, metadata: str) -> None:
        """Publish service ``name`` with ``metadata`` under this server's address."""
        if not name.strip():
            raise ValueError("Register service `name` can't be empty")
        self._store()
        self._normalize_base_path()
        self._put_dir(self.base_path, _PATH_MARKER)
        self._put_dir(f"{self.base_path}/{name}", name)

        node_path = self._node_path(name)
        try:
            self._put_node(node_path, metadata)
        except StoreError as exc:
            log.error("cannot create %s path %s: %s", self._kind, node_path, exc)
            raise

        self.services.append(name)
        with self._metas_lock:
            self._metas[name] = metadata

    def register_function(self, service_name: str, fname: str, fn: Any, metadata: str) -> None:
        self.register(service_name, fn, metadata)

    def unregister(self, name: str) -> None:
        """Remove service ``name``; does nothing when no service is registered."""
        if not self.services:
            return
        if not name.strip():
            raise ValueError("Unregister service `name` can't be empty")
        self._store()
        self._normalize_base_path()
        self._put_dir(self.base_path, _PATH_MARKER)
        self._put_dir(f"{self.base_path}/{name}", name)

        node_path = self._node_path(name)
        try:
            self.kv.delete(node_path)
        except StoreError as exc:
            log.error("cannot remove %s path %s: %s", self._kind, node_path, exc)
            raise

        self.services = [s for s in self.services if s != name]
        with self._metas_lock:
            self._metas.pop(name, None)


class ConsulRegisterPlugin(RegisterPlugin):
    """Registry backed by a Consul-style store."""

    _kind = "consul"


class RedisRegisterPlugin(RegisterPlugin):
    """Registry backed by a Redis-style store; the base path is kept as given."""

    _kind = "redis"
    _strip_leading_slash = False
    _tolerate_not_a_file = True


class ZooKeeperRegisterPlugin(RegisterPlugin):
    """Registry backed by a ZooKeeper-style store; service nodes are created atomically."""

    _kind = "zk"

    def _put_node(self, path: str, metadata: str) -> None:
        self.kv.atomic_put(path, metadata, None, self.update_interval * 2)