"""
Thread-safe in-memory TTL cache keyed by logical resource name.

Design:
    Store:  Dict[str, _Entry]   (data, timestamp, ttl, estimated size)
    Expiry: (now - timestamp) > ttl, evicted lazily on lookup and by a
            periodic sweep thread (start_cleanup)
    Bounds: estimated byte budget plus an entry-count cap; when either is
            exceeded expired entries go first, then the oldest

All access acquires _lock (threading.RLock) so the sweep thread and request
handlers can share one instance.
"""

import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from taskboard.utils.dates import to_iso

log = logging.getLogger(__name__)

MAX_CACHE_BYTES = 128 * 1024 * 1024
MAX_CACHE_ENTRIES = 1024
DEFAULT_TTL = 60

# Seconds each resource stays fresh
CACHE_TTL: Dict[str, int] = {
    "tasks": 5,
    "agents": 300,
    "status": 60,
    "healthLocal": 15,
    "healthVPS": 30,
    "ollama": 10,
    "projects": 300,
    "tokens": 300,
    "uptime": 120,
    "documents": 30,
    "settings": 600,
    "ssl": 3600,
    "ci": 120,
    "pagespeed": 86400,
}


@dataclass
class _Entry:
    data: Any
    timestamp: float
    ttl: float
    size_bytes: int


@dataclass
class CacheHit:
    """A fresh cache entry as returned by CacheStore.get()."""

    data: Any
    cached: bool
    timestamp: str
    ttl: int


def estimate_size(data: Any) -> int:
    """Rough UTF-16 size of the JSON rendering of ``data``."""
    try:
        return len(json.dumps(data, default=str)) * 2
    except (TypeError, ValueError):
        return 1024


class CacheStore:
    """
    Process-wide read-through cache for dashboard resources.

    Usage:
        cache = CacheStore()
        hit = cache.get("tasks")
        if hit is None:
            cache.set("tasks", load_tasks())
    """

    def __init__(
        self,
        max_bytes: int = MAX_CACHE_BYTES,
        max_entries: int = MAX_CACHE_ENTRIES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._lock = threading.RLock()
        self._store: Dict[str, _Entry] = {}
        self._size_bytes = 0
        self._max_bytes = max_bytes
        self._max_entries = max_entries
        self._clock = clock
        self._stop_event = threading.Event()
        self._cleanup_thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Lookup / mutation
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[CacheHit]:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None

            age = self._clock() - entry.timestamp
            if age > entry.ttl:
                self._delete(key)
                return None

            return CacheHit(
                data=entry.data,
                cached=True,
                timestamp=to_iso(entry.timestamp),
                ttl=round(entry.ttl - age),
            )

    def set(self, key: str, data: Any, ttl: Optional[float] = None) -> None:
        size = estimate_size(data)
        with self._lock:
            if key in self._store:
                self._delete(key)

            if (
                self._size_bytes + size > self._max_bytes
                or len(self._store) >= self._max_entries
            ):
                self.evict_expired()
            if (
                self._size_bytes + size > self._max_bytes
                or len(self._store) >= self._max_entries
            ):
                self._evict_oldest(size)

            self._store[key] = _Entry(
                data=data,
                timestamp=self._clock(),
                ttl=ttl if ttl is not None else CACHE_TTL.get(key, DEFAULT_TTL),
                size_bytes=size,
            )
            self._size_bytes += size

    def invalidate(self, key: str) -> None:
        with self._lock:
            if key in self._store:
                self._delete(key)
                log.debug("Invalidated %s", key)

    def invalidate_prefix(self, prefix: str) -> None:
        with self._lock:
            for key in [k for k in self._store if k.startswith(prefix)]:
                self._delete(key)

    def evict_expired(self) -> int:
        """Drop every expired entry. Returns the number evicted."""
        now = self._clock()
        with self._lock:
            expired = [
                key for key, entry in self._store.items()
                if now - entry.timestamp > entry.ttl
            ]
            for key in expired:
                self._delete(key)
            return len(expired)

    def _evict_oldest(self, incoming_size: int) -> None:
        """Evict oldest entries until ``incoming_size`` fits both limits."""
        for key, _ in sorted(self._store.items(), key=lambda kv: kv[1].timestamp):
            if (
                self._size_bytes + incoming_size <= self._max_bytes
                and len(self._store) < self._max_entries
            ):
                break
            self._delete(key)

    def _delete(self, key: str) -> None:
        entry = self._store.pop(key)
        self._size_bytes -= entry.size_bytes

    # ------------------------------------------------------------------
    # Periodic sweep
    # ------------------------------------------------------------------

    def start_cleanup(self, interval: float = 60.0) -> None:
        """Start the daemon thread that evicts expired entries every ``interval`` seconds."""
        if self._cleanup_thread and self._cleanup_thread.is_alive():
            return
        self._stop_event.clear()
        self._cleanup_thread = threading.Thread(
            target=self._cleanup_loop, args=(interval,), daemon=True, name="cache-cleanup"
        )
        self._cleanup_thread.start()

    def stop_cleanup(self) -> None:
        self._stop_event.set()
        if self._cleanup_thread:
            self._cleanup_thread.join(timeout=5)
            self._cleanup_thread = None

    def _cleanup_loop(self, interval: float) -> None:
        while not self._stop_event.wait(interval):
            try:
                evicted = self.evict_expired()
                if evicted:
                    log.debug("Cache sweep evicted %d entries", evicted)
            except Exception:
                log.exception("Error during cache sweep")

    # ------------------------------------------------------------------
    # Status / diagnostics
    # ------------------------------------------------------------------

    def stats(self) -> dict:
        with self._lock:
            return {
                "entries": len(self._store),
                "keys": sorted(self._store),
                "sizeBytes": self._size_bytes,
                "maxBytes": self._max_bytes,
                "maxEntries": self._max_entries,
                "sizeMB": (
                    f"{self._size_bytes / 1024 / 1024:.2f}MB / "
                    f"{self._max_bytes / 1024 / 1024:.0f}MB"
                ),
            }
