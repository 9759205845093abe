"""Interface for the namespaced response cache.

Defines the contract for storing, retrieving, and invalidating remote-call
results partitioned by namespace, with per-entry TTLs.
"""

import abc
from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar

from ..models.common import CacheKey, CacheNamespace

V = TypeVar("V")


@dataclass(frozen=True)
class CacheLookup(Generic[V]):
    """A cache hit: the stored value and how old it is."""
    value: V
    age_ms: int


class ResponseCacheService(abc.ABC):
    """Abstract Base Class for response caching operations."""

    @abc.abstractmethod
    def get(self, namespace: CacheNamespace, key: CacheKey) -> Optional[CacheLookup[Any]]:
        """Retrieves a live entry.

        Args:
            namespace: The partition to look in.
            key: The key inside the namespace.

        Returns:
            The value and its age if present and not expired, otherwise None.
        """
        pass

    @abc.abstractmethod
    def set(
        self,
        namespace: CacheNamespace,
        key: CacheKey,
        value: Any,
        ttl_ms: Optional[int] = None,
    ) -> None:
        """Inserts or replaces an entry.

        Args:
            namespace: The partition to store in.
            key: The key inside the namespace.
            value: The item to store.
            ttl_ms: Time-to-live in milliseconds (namespace default if None).
        """
        pass

    @abc.abstractmethod
    def invalidate(self, namespace: CacheNamespace, key: Optional[CacheKey] = None) -> int:
        """Drops one entry, or the whole namespace when ``key`` is None.

        Returns:
            The number of entries removed.
        """
        pass

    @abc.abstractmethod
    def clear(self) -> None:
        """Drops every entry in every namespace."""
        pass

    @abc.abstractmethod
    def stats(self) -> Dict[str, Any]:
        """Returns hit/miss/set/eviction counters and the current size."""
        pass
