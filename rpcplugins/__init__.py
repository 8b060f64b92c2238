"""Server plugins and helpers for RPC servers: aliases, access lists, rate limiting,
metrics, service registries, buffer pools, compression and request contexts."""

__version__ = "0.1.0"

__all__ = [
    "access",
    "aliases",
    "buffer_pool",
    "compress",
    "context",
    "metrics",
    "netutil",
    "ratelimit",
    "registry",
    "shared",
    "tee",
    "tracing",
]