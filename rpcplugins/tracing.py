"""Trace-context propagation through request metadata."""

from __future__ import annotations

from typing import Any, Protocol

from .context import Context
from .shared import REQ_METADATA_KEY

__all__ = ["OPEN_TELEMETRY_KEY", "TextMapPropagator", "MetadataCarrier", "inject", "extract"]

OPEN_TELEMETRY_KEY = 0


class TextMapPropagator(Protocol):
    """Writes trace state into a carrier and reads it back as a span context."""

    def inject(self, ctx: Any, carrier: "MetadataCarrier") -> None: ...

    def extract(self, ctx: Any, carrier: "MetadataCarrier") -> Any: ...


class MetadataCarrier:
    """Text-map carrier backed by a request's metadata dict."""

    def __init__(self, metadata: dict[str, str]) -> None:
        self.metadata = metadata

    def get(self, key: str) -> str:
        """Return the value for ``key``, or an empty string."""
        return self.metadata.get(key, "")

    def set(self, key: str, value: str) -> None:
        self.metadata[key] = value

    def keys(self) -> list[str]:
        return list(self.metadata)


def _request_metadata(ctx: Any) -> dict[str, str]:
    meta = ctx.value(REQ_METADATA_KEY)
    if meta is None:
        meta = {}
        if isinstance(ctx, Context):
            ctx.set_value(REQ_METADATA_KEY, meta)
    return meta


def inject(ctx: Any, propagator: TextMapPropagator) -> None:
    """Write trace state from ``ctx`` into its request metadata."""
    propagator.inject(ctx, MetadataCarrier(_request_metadata(ctx)))


def extract(ctx: Any, propagator: TextMapPropagator) -> Any:
    """Return the span context the propagator reads from the request metadata."""
    return propagator.extract(ctx, MetadataCarrier(_request_metadata(ctx)))