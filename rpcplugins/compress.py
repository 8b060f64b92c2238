"""Gzip compression of message payloads."""

from __future__ import annotations

import gzip
import zlib

__all__ = ["compress", "decompress"]


def compress(data: bytes) -> bytes:
    """Gzip ``data``."""
    return gzip.compress(bytes(data), mtime=0)


def decompress(data: bytes) -> bytes:
    """Gunzip ``data``; raise ValueError if it is not valid gzip."""
    if not data:
        raise ValueError("empty gzip stream")
    try:
        return gzip.decompress(bytes(data))
    except (OSError, EOFError, zlib.error) as exc:
        raise ValueError(f"invalid gzip data: {exc}") from exc