"""Application Service for resolving user references to canonical resource ids.

A reference can be a URL, a raw id (with or without dashes), a title or an
alias. Stages run from cheapest and most confident to most expensive:

    1. URL          -> id embedded in the URL
    2. raw id       -> normalized id
    3. workspace    -> exact title, alias, then partial match in the local index
    4. remote       -> search through the response cache and retry executor

A remote hit is written back to the workspace index so the next lookup of the
same name stays local.
"""

import logging
from typing import Any, List, Mapping, Optional, Sequence, Union

from hypercli.core.services.fetch_service import FetchService
from hypercli.domain.errors import (
    ErrorCode,
    HyperCliError,
    NotFoundError,
    OperationTimeoutError,
    ValidationError,
)
from hypercli.domain.interfaces.remote import RemoteGateway
from hypercli.domain.models.common import SEARCH_NAMESPACE, CacheKey, ResourceId
from hypercli.domain.models.resource import (
    CachedResource,
    MatchKind,
    RemoteResource,
    ResolutionResult,
    normalize_title,
)
from hypercli.infrastructure.cache.workspace_cache import WorkspaceCache
from hypercli.utils.alias_generator import generate_aliases
from hypercli.utils.id_parser import (
    extract_id_from_url,
    is_supported_url,
    is_valid_id,
    normalize_id,
)

logger = logging.getLogger(__name__)

SEARCH_TARGET = "search"


class ResolverEngine:
    """Turns URLs, ids, titles and aliases into canonical resource ids."""

    def __init__(
        self,
        workspace_cache: WorkspaceCache,
        fetch_service: FetchService,
        gateway: Optional[RemoteGateway] = None,
        allowed_hosts: Optional[Sequence[str]] = None,
    ):
        """Initializes the ResolverEngine.

        Args:
            workspace_cache: Local index searched before any remote call.
            fetch_service: Cached, retried access used for the remote search.
            gateway: Remote lookup capability; without it only local stages run.
            allowed_hosts: Hosts accepted in URL references (any host when None).
        """
        self.workspace_cache = workspace_cache
        self.fetch_service = fetch_service
        self.gateway = gateway
        self.allowed_hosts = list(allowed_hosts) if allowed_hosts else None

    async def resolve(self, reference: Optional[str], timeout_s: Optional[float] = None) -> ResolutionResult:
        """Resolves a reference to a canonical id.

        Args:
            reference: URL, raw id, title or alias as typed by the user.
            timeout_s: Deadline for the remote stage.

        Returns:
            The canonical id, how it was found and the confidence rank.

        Raises:
            ValidationError: Blank reference, or a URL without a valid id.
            NotFoundError: No stage produced a match.
            OperationTimeoutError: The remote stage hit ``timeout_s``.
        """
        if reference is None or not str(reference).strip():
            raise ValidationError(
                "Reference must not be empty.",
                suggestions=[{"description": "Pass a resource URL, id, title or alias"}],
            )
        text = str(reference).strip()

        if is_supported_url(text, self.allowed_hosts):
            try:
                resource_id = extract_id_from_url(text)
            except ValueError as e:
                raise ValidationError(
                    str(e),
                    code=ErrorCode.INVALID_URL,
                    context={"reference": text},
                    suggestions=[{"description": "Copy the link again; it should end in a 32-character id"}],
                ) from e
            logger.debug(f"Resolved '{text}' from URL to {resource_id}")
            return ResolutionResult.of(resource_id, MatchKind.URL)

        if is_valid_id(text):
            resource_id = normalize_id(text)
            logger.debug(f"Resolved '{text}' as raw id {resource_id}")
            return ResolutionResult.of(resource_id, MatchKind.RAW_ID)

        match = self.workspace_cache.search(text)
        if match is not None:
            return ResolutionResult.of(match.resource.id, match.match_kind, title=match.resource.title)

        return await self._resolve_remote(text, timeout_s)

    async def resolve_id(self, reference: Optional[str], timeout_s: Optional[float] = None) -> ResourceId:
        """Convenience wrapper returning only the canonical id."""
        result = await self.resolve(reference, timeout_s=timeout_s)
        return result.canonical_id

    async def _resolve_remote(self, text: str, timeout_s: Optional[float]) -> ResolutionResult:
        if self.gateway is None:
            logger.debug("No remote gateway configured; skipping remote search.")
            raise NotFoundError(f"No resource found for '{text}'.", reference=text)

        gateway = self.gateway
        query = normalize_title(text)
        try:
            results = await self.fetch_service.fetch(
                SEARCH_NAMESPACE,
                CacheKey(query),
                lambda: gateway.search(text),
                target=SEARCH_TARGET,
                timeout_s=timeout_s,
                should_cache=bool,
            )
        except OperationTimeoutError:
            raise
        except HyperCliError as e:
            logger.warning(f"Remote search for '{text}' failed: {e.message}")
            raise NotFoundError(
                f"No resource found for '{text}' (remote search failed: {e.message}).",
                reference=text,
                context={"cause": e.code.value},
            ) from e

        candidate = self._first_valid(results)
        if candidate is None:
            raise NotFoundError(f"No resource found for '{text}'.", reference=text)

        resource_id = normalize_id(candidate.id)
        self._write_back(resource_id, candidate)
        logger.debug(f"Resolved '{text}' remotely to {resource_id}")
        return ResolutionResult.of(resource_id, MatchKind.REMOTE, title=candidate.title)

    @staticmethod
    def _first_valid(results: Optional[List[Union[RemoteResource, Mapping[str, Any]]]]) -> Optional[RemoteResource]:
        for item in results or []:
            candidate = item if isinstance(item, RemoteResource) else RemoteResource.from_mapping(item)
            if is_valid_id(candidate.id):
                return candidate
            logger.warning(f"Ignoring remote result with malformed id: {candidate.id!r}")
        return None

    def _write_back(self, resource_id: ResourceId, candidate: RemoteResource) -> None:
        resource = CachedResource(
            id=resource_id,
            title=candidate.title,
            aliases=generate_aliases(candidate.title),
            url=candidate.url,
            last_synced_at=self.workspace_cache.now(),
        )
        try:
            self.workspace_cache.upsert(resource)
        except OSError as e:
            # The id is already resolved; a failed write only costs a future remote call
            logger.warning(f"Could not save '{candidate.title}' to workspace cache: {e}")
