"""A request context that carries its own key/value tags over a parent context."""

from __future__ import annotations

import threading
from typing import Any

__all__ = ["Context", "with_value", "with_local_value"]


class Context:
    """Thread-safe key/value tags layered over an optional parent context.

    Lookups that miss the local tags fall through to ``parent.value(key)``.
    """

    def __init__(self, parent: Any = None, tags: dict | None = None) -> None:
        self.parent = parent
        self._tags: dict = dict(tags) if tags else {}
        self._lock = threading.Lock()

    @property
    def tags(self) -> dict:
        """A copy of the local tags."""
        with self._lock:
            return dict(self._tags)

    def value(self, key: Any) -> Any:
        """Return the value for ``key`` here or in a parent, or None."""
        with self._lock:
            if key in self._tags:
                return self._tags[key]
        if self.parent is None:
            return None
        return self.parent.value(key)

    def set_value(self, key: Any, val: Any) -> None:
        """Set a local tag."""
        with self._lock:
            self._tags[key] = val

    def delete_key(self, key: Any) -> None:
        """Remove a local tag; missing or None keys are ignored."""
        if key is None:
            return
        with self._lock:
            self._tags.pop(key, None)

    def __str__(self) -> str:
        parent = "context.Background" if self.parent is None else str(self.parent)
        with self._lock:
            return f"{parent}.WithValue({self._tags})"


def _check_key(key: Any) -> None:
    if key is None:
        raise ValueError("nil key")
    try:
        hash(key)
    except TypeError:
        raise TypeError("key is not comparable") from None


def with_value(parent: Any, key: Any, val: Any) -> Context:
    """Return a new Context over ``parent`` holding ``key`` = ``val``."""
    _check_key(key)
    return Context(parent, {key: val})


def with_local_value(ctx: Context, key: Any, val: Any) -> Context:
    """Set ``key`` = ``val`` on ``ctx`` itself and return it."""
    _check_key(key)
    ctx.set_value(key, val)
    return ctx