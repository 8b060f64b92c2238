"""Size-class pools of reusable byte buffers."""

from __future__ import annotations

import math
import threading

__all__ = ["LevelPool", "LimitedPool"]


class LevelPool:
    """A thread-safe free list of buffers that are at least ``size`` bytes long."""

    def __init__(self, size: int) -> None:
        self.size = size
        self._free: list[bytearray] = []
        self._lock = threading.Lock()

    def get(self) -> bytearray:
        """Return a pooled buffer, or a new one of ``size`` bytes."""
        with self._lock:
            if self._free:
                return self._free.pop()
        return bytearray(self.size)

    def put(self, buf: bytearray) -> None:
        """Give a buffer back to the pool."""
        with self._lock:
            self._free.append(buf)


class LimitedPool:
    """Buffers between ``min_size`` and ``max_size`` bytes, grouped in doubling size classes.

    ``get`` hands out a memoryview of the requested length backed by a pooled
    bytearray; ``put`` takes such a view (or a bytearray) back.
    """

    def __init__(self, min_size: int, max_size: int) -> None:
        if max_size < min_size:
            raise ValueError("max_size can't be less than min_size")
        self.min_size = min_size
        self.max_size = max_size
        self.pools: list[LevelPool] = []
        cur = min_size
        while cur < max_size:
            self.pools.append(LevelPool(cur))
            cur *= 2
        self.pools.append(LevelPool(max_size))

    def _index(self, size: int, rounding) -> int | None:
        idx = rounding(math.log2(size / self.min_size)) if size > 0 else 0
        idx = max(idx, 0)
        if idx > len(self.pools) - 1:
            return None
        return idx

    def find_pool(self, size: int) -> LevelPool | None:
        """Return the smallest size class that can serve ``size`` bytes."""
        if size > self.max_size:
            return None
        idx = self._index(size, math.ceil)
        return None if idx is None else self.pools[idx]

    def find_put_pool(self, size: int) -> LevelPool | None:
        """Return the size class a buffer of ``size`` bytes is returned to."""
        if size > self.max_size or size < self.min_size:
            return None
        idx = self._index(size, math.floor)
        return None if idx is None else self.pools[idx]

    def get(self, size: int) -> memoryview:
        """Return a writable view of exactly ``size`` bytes."""
        pool = self.find_pool(size)
        if pool is None:
            return memoryview(bytearray(size))
        return memoryview(pool.get())[:size]

    def put(self, buf: memoryview | bytearray) -> None:
        """Return a buffer obtained from :meth:`get`; sizes outside the pool are dropped."""
        backing = buf.obj if isinstance(buf, memoryview) else buf
        if not isinstance(backing, bytearray):
            raise TypeError("only bytearray-backed buffers can be pooled")
        pool = self.find_put_pool(len(backing))
        if pool is None:
            return
        pool.put(backing)