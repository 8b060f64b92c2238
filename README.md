# rpcplugins

Server-side plugins and helper utilities for RPC servers. Each plugin is a
plain object whose hook methods (`handle_conn_accept`, `post_read_request`,
`pre_write_response`, `register` and so on) a server calls at the matching
point of a connection or request.

The only runtime dependency is `psutil`, used to find the host's network
addresses. The `test` extra adds `pytest`.

## Utilities

- `rpcplugins.buffer_pool`
  - `LimitedPool(min_size, max_size)` keeps buffers in size classes that double
    from `min_size` up to `max_size` (a `ValueError` is raised if
    `max_size < min_size`). `get(size)` returns a writable `memoryview` of
    exactly `size` bytes, backed by a pooled `bytearray` when the size fits;
    `put(buf)` gives it back, and buffers smaller than `min_size` or larger
    than `max_size` are dropped. `find_pool(size)` and `find_put_pool(size)`
    report which size class serves or receives a given size.
  - `LevelPool(size)` is one thread-safe size class with `get()` and `put(buf)`.
- `rpcplugins.compress`: `compress(data)` gzips bytes; `decompress(data)`
  gunzips them and raises `ValueError` on empty or invalid input.
- `rpcplugins.netutil`
  - `get_free_port()` returns a TCP port free on 127.0.0.1.
  - `parse_rpcx_address("tcp@127.0.0.1:8972")` returns
    `("tcp", "127.0.0.1", 8972)`; malformed addresses raise `ValueError`.
  - `convert_meta_to_map(meta)` parses a query-encoded string into a dict
    (first value of a key wins; empty or malformed input gives `{}`).
  - `convert_map_to_string(meta)` query-encodes a dict with sorted keys.
  - `copy_meta(src, dst)` copies entries into `dst`, doing nothing if `dst` is `None`.
  - `external_ipv4()` and `external_ipv6()` return the first non-loopback
    address of an interface that is up, or raise `OSError`.
- `rpcplugins.context`: `Context(parent=None, tags=None)` holds thread-safe
  key/value tags and falls back to `parent.value(key)` on a miss. It has
  `value`, `set_value`, `delete_key` and a `tags` property (a copy).
  `with_value(parent, key, val)` returns a new context over `parent`;
  `with_local_value(ctx, key, val)` sets the key on `ctx` itself and returns it.
  Both raise `ValueError` for a `None` key and `TypeError` for an unhashable one.
- `rpcplugins.shared`: service-name and metadata-key constants
  (`DEFAULT_RPC_PATH`, `AUTH_KEY`, `SERVER_ADDRESS`, `SERVER_TIMEOUT`,
  `SEND_FILE_SERVICE_NAME`, `STREAM_SERVICE_NAME`), the `ContextKey` type with
  `REQ_METADATA_KEY` and `RES_METADATA_KEY`, the `CODECS` table with
  `register_codec(serialize_type, codec)`, and the dataclasses
  `FileTransferArgs`, `FileTransferReply`, `DownloadFileArgs`,
  `StreamServiceArgs` and `StreamServiceReply`.
- `rpcplugins.tracing`: `MetadataCarrier` exposes a metadata dict through
  `get`, `set` and `keys`. `inject(ctx, propagator)` and
  `extract(ctx, propagator)` hand the request metadata found in `ctx` under
  `REQ_METADATA_KEY` to any propagator object with `inject` and `extract`
  methods, creating and storing an empty dict when there is none.

## Server plugins

- `rpcplugins.metrics`: `Registry` creates `Counter`, `Meter` and `Histogram`
  metrics by name on first use (`get_or_register_counter`,
  `get_or_register_meter`, `get_or_register_histogram`) and lists them with
  `each()`. `MetricsPlugin(registry=None, prefix="")` counts registered
  services, accepted connections, and reads and writes per service method, and
  records call times from the start time (nanoseconds) stored in the context
  under `START_REQUEST_CONTEXT_KEY`. `log(freq, logger)` starts a background
  thread that logs every metric each `freq` seconds and returns a reporter
  with `stop()`.
- `rpcplugins.aliases`: `AliasPlugin.alias(alias_path, alias_method, path, method)`
  rewrites matching requests in `post_read_request` and restores the alias on
  the request and response in `pre_write_response`.
- `rpcplugins.access`: `BlacklistPlugin(blacklist, blacklist_mask)` refuses,
  and `WhitelistPlugin(whitelist, whitelist_mask)` only accepts, clients whose
  peer address (from `conn.getpeername()`) is listed or falls inside a listed
  network (given as strings such as `"172.17.0.0/16"` or `ipaddress` networks).
  A connection without a usable peer address is accepted by the blacklist and
  refused by the whitelist.
- `rpcplugins.ratelimit`: `TokenBucket(fill_interval, capacity)` starts full
  and gains one token every `fill_interval` seconds, with `take_available(n)`
  and `wait(n)`. `RateLimitingPlugin` refuses connections when no token is
  left; `ReqRateLimitingPlugin(..., block=False)` raises `ReqReachLimitError`,
  or with `block=True` waits for a token.
- `rpcplugins.tee`: `TeeConnPlugin(writer)` wraps each accepted connection in a
  `TeeConn` that copies whatever `recv` or `read` returns to `writer.write`;
  `update(writer)` changes the writer for later connections, `None` stops copying.
- `rpcplugins.registry`: `ConsulRegisterPlugin`, `RedisRegisterPlugin` and
  `ZooKeeperRegisterPlugin` publish each registered service at
  `base_path/<service>/<service_address>` in a key/value store, with a time to
  live of twice `update_interval`. With a positive `update_interval`, `start()`
  runs a background thread that calls `refresh()`, which re-creates missing
  nodes and writes the `calls` and `connections` mean rates from `metrics`
  into each node's query-encoded metadata. `stop()` deletes the nodes and ends
  the thread. `MemoryStore` is an in-process store with expiry;
  `StoreError` reports store failures.

## Example

```python
from rpcplugins.aliases import AliasPlugin
from rpcplugins.compress import compress, decompress
from rpcplugins.ratelimit import ReqRateLimitingPlugin, ReqReachLimitError
from rpcplugins.registry import ConsulRegisterPlugin, MemoryStore

aliases = AliasPlugin()
aliases.alias("anewpath", "method", "Arith", "Mul")

limiter = ReqRateLimitingPlugin(fill_interval=0.1, capacity=10, block=False)

assert decompress(compress(b"hello")) == b"hello"

store = MemoryStore()
registry = ConsulRegisterPlugin("tcp@127.0.0.1:8972", base_path="/rpcx_test", kv=store)
registry.start()
registry.register("Arith", None, "")
assert store.exists("rpcx_test/Arith/tcp@127.0.0.1:8972")
registry.stop()
```

## What this package does not do

- It contains no RPC server, client or wire protocol; the plugins expect a
  server to call their hooks and to pass request objects with
  `service_path`, `service_method` and `metadata` attributes.
- It has no network clients for Consul, Redis or ZooKeeper. The registry
  plugins use `MemoryStore` unless given another store through `kv` or
  `store_factory`; such a store must provide `put`, `get`, `exists`,
  `delete`, `close` (and `atomic_put` for ZooKeeper) and raise `StoreError`.
- Metrics are only reported through `MetricsPlugin.log`; there is no export
  to external metrics databases.
- It has no command-line program.