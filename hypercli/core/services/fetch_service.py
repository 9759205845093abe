"""Read-through fetching of remote data.

Combines the response cache, the retry executor and in-flight request
deduplication: a cached value is returned without a remote call, concurrent
identical requests share one call, and fresh results are written back.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from hypercli.domain.interfaces.cache import ResponseCacheService
from hypercli.domain.interfaces.remote import RemoteOperation
from hypercli.domain.models.common import CacheKey, CacheNamespace
from hypercli.domain.models.resilience import RetryPolicy
from hypercli.infrastructure.resilience.api_retry import (
    DEFAULT_BATCH_CONCURRENCY,
    BatchOutcome,
    RetryExecutor,
)
from hypercli.infrastructure.resilience.deduplication import RequestDeduplicator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchRequest:
    """One item of a ``fetch_many`` batch."""
    namespace: CacheNamespace
    key: CacheKey
    operation: RemoteOperation[Any]
    target: Optional[str] = None


class FetchService:
    """Application service for cached, retried and deduplicated remote reads."""

    def __init__(
        self,
        response_cache: ResponseCacheService,
        executor: RetryExecutor,
        deduplicator: Optional[RequestDeduplicator] = None,
        policy: Optional[RetryPolicy] = None,
    ):
        self.response_cache = response_cache
        self.executor = executor
        self.deduplicator = deduplicator or RequestDeduplicator()
        self.policy = policy

    async def fetch(
        self,
        namespace: CacheNamespace,
        key: CacheKey,
        operation: RemoteOperation[Any],
        target: Optional[str] = None,
        ttl_ms: Optional[int] = None,
        timeout_s: Optional[float] = None,
        force: bool = False,
        should_cache: Callable[[Any], bool] = lambda value: True,
    ) -> Any:
        """Returns the cached value for ``namespace``/``key`` or fetches it.

        Args:
            namespace: Response cache namespace (also the default breaker target).
            key: Cache key inside the namespace.
            operation: Coroutine factory performing the remote call.
            target: Circuit breaker target; defaults to the namespace.
            ttl_ms: TTL override for the stored result.
            timeout_s: Deadline for the remote call including retries.
            force: Skip the cache lookup (the result is still stored).
            should_cache: Predicate deciding whether a fresh result is stored.

        Raises:
            Whatever ``RetryExecutor.execute`` raises for the remote call.
        """
        if not force:
            hit = self.response_cache.get(namespace, key)
            if hit is not None:
                logger.debug(f"Serving {namespace}:{key} from response cache (age={hit.age_ms}ms)")
                return hit.value

        async def load() -> Any:
            value = await self.executor.execute(
                operation,
                policy=self.policy,
                target=target or namespace,
                context=f"{namespace}:{key}",
                timeout_s=timeout_s,
            )
            if should_cache(value):
                self.response_cache.set(namespace, key, value, ttl_ms=ttl_ms)
            return value

        return await self.deduplicator.execute(f"{namespace}:{key}", load)

    async def fetch_many(
        self,
        requests: Sequence[FetchRequest],
        concurrency: int = DEFAULT_BATCH_CONCURRENCY,
        timeout_s: Optional[float] = None,
    ) -> List[BatchOutcome[Any]]:
        """Fetches many entries with bounded concurrency.

        One failing request never stops the others; each outcome carries its
        own value or error, in request order.
        """
        semaphore = asyncio.Semaphore(max(1, concurrency))

        async def run_one(request: FetchRequest) -> BatchOutcome[Any]:
            async with semaphore:
                try:
                    value = await self.fetch(
                        request.namespace,
                        request.key,
                        request.operation,
                        target=request.target,
                        timeout_s=timeout_s,
                    )
                except Exception as e:
                    logger.debug(f"Fetch of {request.namespace}:{request.key} failed: {e}")
                    return BatchOutcome(success=False, error=e)
                return BatchOutcome(success=True, value=value)

        outcomes = await asyncio.gather(*(run_one(r) for r in requests))
        failed = sum(1 for o in outcomes if not o.success)
        if failed:
            logger.warning(f"{failed} of {len(outcomes)} fetches failed.")
        return list(outcomes)

    def stats(self) -> dict:
        return {"cache": self.response_cache.stats(), "deduplication": self.deduplicator.stats()}
