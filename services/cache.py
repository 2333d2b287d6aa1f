"""
services/cache.py
────────────────────────────────────────────────────────────────────────
Small TTL cache with an injected clock.

Built once per process (see `main.py`) and handed to whoever needs it,
so expiry can be driven by a fake clock in tests.
"""
from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Callable, Generic, Hashable, TypeVar

_LOG = logging.getLogger(__name__)

V = TypeVar("V")


class TTLCache(Generic[V]):
    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        maxsize: int = 1024,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._maxsize = maxsize
        self._data: OrderedDict[Hashable, tuple[float, V]] = OrderedDict()

    def get(self, key: Hashable) -> V | None:
        hit = self._data.get(key)
        if hit is None:
            return None
        expires, value = hit
        if self._clock() >= expires:
            del self._data[key]
            return None
        self._data.move_to_end(key)
        return value

    def set(self, key: Hashable, value: V) -> None:
        if self._ttl <= 0:
            return
        self._data[key] = (self._clock() + self._ttl, value)
        self._data.move_to_end(key)
        while len(self._data) > self._maxsize:
            evicted, _ = self._data.popitem(last=False)
            _LOG.debug("cache full, evicted %r", evicted)

    def get_or_set(self, key: Hashable, factory: Callable[[], V]) -> V:
        value = self.get(key)
        if value is None:
            value = factory()
            self.set(key, value)
        return value

    def invalidate(self, key: Hashable | None = None) -> None:
        if key is None:
            self._data.clear()
        else:
            self._data.pop(key, None)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._data)
