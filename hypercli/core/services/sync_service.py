"""Application Service that rebuilds the workspace index from the remote API.

Pages through every resource visible to the client, derives aliases for each
title, and replaces the local index in one atomic write. Cached search
results are invalidated afterwards since they may point at stale ids.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set, Tuple

from hypercli.domain.errors import OperationTimeoutError, ValidationError
from hypercli.domain.interfaces.cache import ResponseCacheService
from hypercli.domain.interfaces.remote import RemoteGateway
from hypercli.domain.models.common import SEARCH_NAMESPACE, ResourceId
from hypercli.domain.models.resilience import RetryPolicy
from hypercli.domain.models.resource import CachedResource, RemoteResource, ResourcePage
from hypercli.infrastructure.cache.workspace_cache import WorkspaceCache
from hypercli.infrastructure.resilience.api_retry import RetryExecutor
from hypercli.utils.alias_generator import generate_aliases
from hypercli.utils.id_parser import is_valid_id, normalize_id

logger = logging.getLogger(__name__)

LIST_TARGET = "list"
# Listing is a bulk, user-initiated operation; be more patient than interactive lookups
SYNC_MAX_RETRIES = 5


@dataclass(frozen=True)
class SyncReport:
    """Summary of one completed sync."""
    resource_count: int
    pages: int
    skipped: int
    duration_ms: int
    synced_at: datetime
    cache_path: str
    invalidated_searches: int = 0
    resources: Tuple[CachedResource, ...] = field(default=(), repr=False)


class SyncService:
    """Rebuilds the workspace index from ``RemoteGateway.list_resources``."""

    def __init__(
        self,
        gateway: Optional[RemoteGateway],
        workspace_cache: WorkspaceCache,
        response_cache: ResponseCacheService,
        executor: RetryExecutor,
        policy: Optional[RetryPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.gateway = gateway
        self.workspace_cache = workspace_cache
        self.response_cache = response_cache
        self.executor = executor
        self.policy = policy or RetryPolicy(max_retries=SYNC_MAX_RETRIES)
        self._clock = clock

    async def sync(self, timeout_s: Optional[float] = None) -> SyncReport:
        """Fetches every page, then atomically replaces the workspace index.

        Nothing is written unless every page was fetched.

        Raises:
            ValidationError: No remote gateway is configured.
            OperationTimeoutError: ``timeout_s`` elapsed before the listing finished.
            RemoteCallError: A page could not be fetched (including its subclasses).
            CircuitOpenError: The listing target is refusing calls.
        """
        if self.gateway is None:
            raise ValidationError(
                "Cannot sync: no remote gateway is configured.",
                suggestions=[{
                    "description": "Set the gateway factory as 'module:callable'",
                    "command": "export HYPERCLI_REMOTE_FACTORY=your_package.gateway:create_gateway",
                }],
            )
        if timeout_s is None:
            return await self._sync(self.gateway)
        try:
            return await asyncio.wait_for(self._sync(self.gateway), timeout_s)
        except asyncio.TimeoutError as e:
            raise OperationTimeoutError(timeout_s, "sync") from e

    async def _sync(self, gateway: RemoteGateway) -> SyncReport:
        started = self._clock()
        remote, pages = await self._fetch_all(gateway)
        # Every resource from one sync shares the same timestamp
        synced_at = self.workspace_cache.now()
        resources, skipped = self._build_resources(remote, synced_at)

        snapshot = self.workspace_cache.replace(resources, synced_at=synced_at)
        invalidated = self.response_cache.invalidate(SEARCH_NAMESPACE)

        duration_ms = int((self._clock() - started) * 1000)
        logger.info(
            f"Sync complete: {len(resources)} resources from {pages} page(s) in {duration_ms}ms "
            f"({skipped} skipped)."
        )
        return SyncReport(
            resource_count=len(resources),
            pages=pages,
            skipped=skipped,
            duration_ms=duration_ms,
            synced_at=snapshot.synced_at,
            cache_path=str(self.workspace_cache.path),
            invalidated_searches=invalidated,
            resources=snapshot.resources,
        )

    async def _fetch_all(self, gateway: RemoteGateway) -> Tuple[List[RemoteResource], int]:
        collected: List[RemoteResource] = []
        seen_cursors: Set[str] = set()
        cursor: Optional[str] = None
        pages = 0

        while True:
            pages += 1
            page: ResourcePage = await self.executor.execute(
                lambda c=cursor: gateway.list_resources(c),
                policy=self.policy,
                target=LIST_TARGET,
                context=f"page {pages}",
            )
            collected.extend(page.resources)
            logger.debug(f"Fetched page {pages} with {len(page.resources)} resources")

            cursor = page.next_cursor
            if not cursor:
                break
            if cursor in seen_cursors:
                logger.warning(f"Remote returned cursor '{cursor}' twice; stopping pagination.")
                break
            seen_cursors.add(cursor)

        return collected, pages

    @staticmethod
    def _build_resources(
        remote: List[RemoteResource], synced_at: datetime
    ) -> Tuple[List[CachedResource], int]:
        by_id: Dict[ResourceId, CachedResource] = {}
        skipped = 0
        for item in remote:
            if not is_valid_id(item.id):
                logger.warning(f"Skipping remote resource with malformed id: {item.id!r}")
                skipped += 1
                continue
            resource_id = normalize_id(item.id)
            if resource_id in by_id:
                continue
            by_id[resource_id] = CachedResource(
                id=resource_id,
                title=item.title,
                aliases=generate_aliases(item.title),
                url=item.url,
                last_synced_at=synced_at,
            )
        return list(by_id.values()), skipped
