"""Memoization of merged rulesets per app context.

Source configuration changes rarely, so entries live for minutes. Concurrent
callers asking for the same key share a single load: the first caller runs
the loader, the rest wait on its result. A failed load is raised to every
waiter and nothing is cached. Storing a value also drops every expired
entry, so keys that are never requested again do not accumulate.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[T]):
    value: T
    fetched_at: float


class _InFlight(Generic[T]):
    def __init__(self) -> None:
        self.done = threading.Event()
        self.value: T | None = None
        self.error: BaseException | None = None


class RulesetCache(Generic[T]):
    """Thread-safe TTL cache with one in-flight load per key."""

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[Hashable, CacheEntry[T]] = {}
        self._in_flight: dict[Hashable, _InFlight[T]] = {}

    def _fresh(self, entry: CacheEntry[T]) -> bool:
        return self._clock() - entry.fetched_at < self.ttl_seconds

    def _prune_expired(self) -> None:
        # caller holds the lock
        stale = [key for key, entry in self._entries.items() if not self._fresh(entry)]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug("Pruned stale rulesets", extra={"count": len(stale)})

    def peek(self, key: Hashable) -> T | None:
        """Return a fresh cached value without loading."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and self._fresh(entry):
                return entry.value
        return None

    def get_or_load(self, key: Hashable, loader: Callable[[], T]) -> T:
        """Return the cached value for ``key``, loading it when missing or stale."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and self._fresh(entry):
                return entry.value
            pending = self._in_flight.get(key)
            owner = pending is None
            if pending is None:
                pending = _InFlight()
                self._in_flight[key] = pending

        if not owner:
            pending.done.wait()
            if pending.error is not None:
                raise pending.error
            return pending.value  # type: ignore[return-value]

        try:
            value = loader()
        except BaseException as exc:
            pending.error = exc
            with self._lock:
                self._in_flight.pop(key, None)
            pending.done.set()
            logger.warning("Ruleset load failed", extra={"cache_key": str(key)})
            raise

        pending.value = value
        with self._lock:
            self._prune_expired()
            self._entries[key] = CacheEntry(value=value, fetched_at=self._clock())
            self._in_flight.pop(key, None)
        pending.done.set()
        logger.debug("Ruleset cached", extra={"cache_key": str(key)})
        return value

    def invalidate(self, key: Hashable | None = None) -> None:
        """Drop one entry, or every entry when ``key`` is None."""
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
