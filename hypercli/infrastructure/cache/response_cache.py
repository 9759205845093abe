"""Namespaced TTL + LRU cache for remote-call results.

Memory is the primary tier. An optional persistent tier backed by
``diskcache`` keeps entries across invocations; a disk hit is promoted back
into memory. Expiry is lazy: every get/set sweeps expired entries, there are
no background timers.
"""

import logging
import pickle
import sqlite3
import time
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

import diskcache as dc

from hypercli.domain.events.diagnostic_events import (
    CacheEvict,
    CacheHit,
    CacheInvalidate,
    CacheMiss,
    CacheSet,
    DiagnosticEvent,
)
from hypercli.domain.interfaces.cache import CacheLookup, ResponseCacheService
from hypercli.domain.interfaces.observer import DiagnosticObserver, NullObserver, emit_safely
from hypercli.domain.models.common import CacheKey, CacheNamespace
from hypercli.domain.models.settings import DEFAULT_NAMESPACE_TTLS_MS

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1000
DEFAULT_TTL_MS = 5 * 60 * 1000

# Failures of the persistent tier degrade to memory-only behaviour
DISK_ERRORS = (OSError, sqlite3.Error, pickle.PickleError, dc.Timeout)

EntryKey = Tuple[str, str]


@dataclass
class CacheEntry:
    """Internal representation of a cache entry with its insertion time."""
    namespace: str
    key: str
    value: Any
    inserted_at_ms: float
    ttl_ms: int

    def age_ms(self, now_ms: float) -> int:
        return int(max(0.0, now_ms - self.inserted_at_ms))

    def is_expired(self, now_ms: float) -> bool:
        return now_ms - self.inserted_at_ms >= self.ttl_ms


class ResponseCache(ResponseCacheService):
    """In-memory LRU with per-namespace TTLs and an optional disk tier."""

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        default_ttl_ms: int = DEFAULT_TTL_MS,
        namespace_ttls_ms: Optional[Mapping[str, int]] = None,
        enabled: bool = True,
        observer: Optional[DiagnosticObserver] = None,
        disk_dir: Optional[Union[str, Path]] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initializes the response cache.

        Args:
            capacity: Maximum number of live entries across all namespaces.
            default_ttl_ms: TTL for namespaces without their own.
            namespace_ttls_ms: Per-namespace TTL overrides.
            enabled: When False every get misses and set does nothing.
            observer: Receives cache_hit/miss/set/invalidate/evict events.
            disk_dir: Directory for the persistent tier; memory only if None.
            clock: Wall clock in seconds (wall time so disk entries age correctly).
        """
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self.default_ttl_ms = default_ttl_ms
        self.namespace_ttls_ms: Dict[str, int] = dict(
            DEFAULT_NAMESPACE_TTLS_MS if namespace_ttls_ms is None else namespace_ttls_ms
        )
        self.enabled = enabled
        self.observer = observer or NullObserver()
        self._clock = clock
        self._entries: "OrderedDict[EntryKey, CacheEntry]" = OrderedDict()

        self.hits = 0
        self.misses = 0
        self.sets = 0
        self.evictions = 0
        self.expirations = 0

        self.disk_dir = Path(disk_dir) if disk_dir is not None else None
        self._disk: Optional[dc.Cache] = None
        if self.disk_dir is not None and enabled:
            try:
                self._disk = dc.Cache(str(self.disk_dir))
            except DISK_ERRORS as e:
                logger.warning(f"Persistent cache at {self.disk_dir} unavailable, using memory only: {e}")

        logger.debug(
            f"ResponseCache initialized (capacity={capacity}, default_ttl={default_ttl_ms}ms, "
            f"disk={'on' if self._disk is not None else 'off'}, enabled={enabled})"
        )

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    def _emit(self, event: DiagnosticEvent) -> None:
        emit_safely(self.observer, event)

    def ttl_for(self, namespace: str) -> int:
        """TTL applied to ``namespace`` when ``set`` is not given one."""
        return self.namespace_ttls_ms.get(namespace, self.default_ttl_ms)

    @staticmethod
    def _disk_key(namespace: str, key: str) -> str:
        return f"{namespace}:{key}"

    def _sweep(self, now_ms: float) -> None:
        """Drops every expired entry from memory."""
        expired = [k for k, entry in self._entries.items() if entry.is_expired(now_ms)]
        for entry_key in expired:
            entry = self._entries.pop(entry_key)
            self.expirations += 1
            self._emit(CacheEvict(
                namespace=entry.namespace, key=entry.key, cause="expired", cache_size=len(self._entries)
            ))

    def _store(self, entry: CacheEntry) -> None:
        entry_key = (entry.namespace, entry.key)
        self._entries[entry_key] = entry
        self._entries.move_to_end(entry_key)
        while len(self._entries) > self.capacity:
            (namespace, key), _ = self._entries.popitem(last=False)
            # Evicted entries must not come back through promotion
            self._delete_disk(self._disk_key(namespace, key))
            self.evictions += 1
            self._emit(CacheEvict(namespace=namespace, key=key, cause="lru", cache_size=len(self._entries)))

    # --- Persistent tier ---

    def _read_disk(self, namespace: str, key: str, now_ms: float) -> Optional[CacheEntry]:
        if self._disk is None:
            return None
        disk_key = self._disk_key(namespace, key)
        try:
            raw = self._disk.get(disk_key)
        except DISK_ERRORS as e:
            logger.warning(f"Failed to read persistent cache entry {disk_key}: {e}")
            return None
        if not isinstance(raw, dict) or "value" not in raw:
            return None
        entry = CacheEntry(
            namespace=namespace,
            key=key,
            value=raw["value"],
            inserted_at_ms=float(raw.get("inserted_at_ms", 0)),
            ttl_ms=int(raw.get("ttl_ms", 0)),
        )
        if entry.is_expired(now_ms):
            self._delete_disk(disk_key)
            return None
        return entry

    def _write_disk(self, entry: CacheEntry) -> None:
        if self._disk is None:
            return
        disk_key = self._disk_key(entry.namespace, entry.key)
        payload = {"value": entry.value, "inserted_at_ms": entry.inserted_at_ms, "ttl_ms": entry.ttl_ms}
        try:
            self._disk.set(disk_key, payload, expire=entry.ttl_ms / 1000.0)
        except DISK_ERRORS as e:
            logger.warning(f"Failed to write persistent cache entry {disk_key}: {e}")

    def _delete_disk(self, disk_key: str) -> bool:
        if self._disk is None:
            return False
        try:
            return bool(self._disk.delete(disk_key))
        except DISK_ERRORS as e:
            logger.warning(f"Failed to delete persistent cache entry {disk_key}: {e}")
            return False

    # --- ResponseCacheService Interface Implementation ---

    def get(self, namespace: CacheNamespace, key: CacheKey) -> Optional[CacheLookup[Any]]:
        if not self.enabled:
            self.misses += 1
            return None

        now_ms = self._now_ms()
        self._sweep(now_ms)
        entry_key = (namespace, key)
        entry = self._entries.get(entry_key)
        if entry is None:
            entry = self._read_disk(namespace, key, now_ms)
            if entry is not None:
                logger.debug(f"Promoting persistent cache entry {namespace}:{key} to memory")
                self._store(entry)

        if entry is None:
            self.misses += 1
            logger.debug(f"Cache miss for {namespace}:{key}")
            self._emit(CacheMiss(namespace=namespace, key=key))
            return None

        self._entries.move_to_end(entry_key)
        self.hits += 1
        age_ms = entry.age_ms(now_ms)
        logger.debug(f"Cache hit for {namespace}:{key} (age={age_ms}ms)")
        self._emit(CacheHit(namespace=namespace, key=key, age_ms=age_ms, ttl_ms=entry.ttl_ms))
        return CacheLookup(value=entry.value, age_ms=age_ms)

    def set(
        self,
        namespace: CacheNamespace,
        key: CacheKey,
        value: Any,
        ttl_ms: Optional[int] = None,
    ) -> None:
        if not self.enabled:
            return

        now_ms = self._now_ms()
        self._sweep(now_ms)
        effective_ttl = self.ttl_for(namespace) if ttl_ms is None else ttl_ms
        entry = CacheEntry(
            namespace=namespace, key=key, value=value, inserted_at_ms=now_ms, ttl_ms=effective_ttl
        )
        self._store(entry)
        self._write_disk(entry)
        self.sets += 1
        self._emit(CacheSet(namespace=namespace, key=key, ttl_ms=effective_ttl, cache_size=len(self._entries)))

    def invalidate(self, namespace: CacheNamespace, key: Optional[CacheKey] = None) -> int:
        if key is not None:
            doomed = [(namespace, key)] if (namespace, key) in self._entries else []
        else:
            doomed = [k for k in self._entries if k[0] == namespace]
        for entry_key in doomed:
            del self._entries[entry_key]
        removed = {k for _, k in doomed}

        if self._disk is not None:
            if key is not None:
                disk_keys = [self._disk_key(namespace, key)]
            else:
                prefix = self._disk_key(namespace, "")
                try:
                    disk_keys = [k for k in self._disk.iterkeys() if isinstance(k, str) and k.startswith(prefix)]
                except DISK_ERRORS as e:
                    logger.warning(f"Failed to scan persistent cache for namespace '{namespace}': {e}")
                    disk_keys = []
            for disk_key in disk_keys:
                if self._delete_disk(disk_key):
                    removed.add(disk_key.split(":", 1)[1])

        logger.debug(f"Invalidated {len(removed)} entries in namespace '{namespace}'")
        self._emit(CacheInvalidate(namespace=namespace, key=key, cache_size=len(self._entries)))
        return len(removed)

    def clear(self) -> None:
        self._entries.clear()
        if self._disk is not None:
            try:
                self._disk.clear()
            except DISK_ERRORS as e:
                logger.warning(f"Failed to clear persistent cache at {self.disk_dir}: {e}")
        logger.info("Cleared response cache.")

    def stats(self) -> Dict[str, Any]:
        lookups = self.hits + self.misses
        return {
            "enabled": self.enabled,
            "size": len(self._entries),
            "capacity": self.capacity,
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "hit_rate": (self.hits / lookups) if lookups else 0.0,
            "persistent": self._disk is not None,
        }

    def __len__(self) -> int:
        return len(self._entries)

    def close(self) -> None:
        """Closes the persistent tier, if any."""
        if self._disk is not None:
            self._disk.close()
            self._disk = None
