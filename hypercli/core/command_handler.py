"""Command Handler: Orchestrates CLI command execution.

Receives commands from the main entry point (main.py), delegates the work to
the application services (ResolverEngine, SyncService) and the caches, and
turns core errors into user-facing messages and process exit codes.
"""

import logging
from typing import Any, Dict, Optional

from hypercli.core.services.resolver_service import ResolverEngine
from hypercli.core.services.sync_service import SyncService
from hypercli.domain.errors import (
    CacheCorruptionError,
    HyperCliError,
    NotFoundError,
    ValidationError,
)
from hypercli.domain.interfaces.cache import ResponseCacheService
from hypercli.domain.interfaces.user_interface import UserInterface
from hypercli.domain.models.common import CacheNamespace
from hypercli.domain.models.resource import format_timestamp
from hypercli.infrastructure.cache.workspace_cache import WorkspaceCache
from hypercli.infrastructure.resilience.circuit_breaker import CircuitBreakerRegistry
from hypercli.utils.alias_generator import generate_aliases

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_USER_ERROR = 1
EXIT_REMOTE_ERROR = 2

# Errors the user can fix by changing their input or local state
USER_ERRORS = (ValidationError, NotFoundError, CacheCorruptionError)

LIST_PREVIEW_ALIASES = 3


def exit_code_for(error: BaseException) -> int:
    """Maps an error to the process exit code."""
    if isinstance(error, USER_ERRORS):
        return EXIT_USER_ERROR
    if isinstance(error, HyperCliError):
        return EXIT_REMOTE_ERROR
    return EXIT_USER_ERROR


class CommandHandler:
    """Handles incoming commands and delegates to appropriate services."""

    def __init__(
        self,
        resolver: ResolverEngine,
        sync_service: SyncService,
        workspace_cache: WorkspaceCache,
        response_cache: ResponseCacheService,
        ui: UserInterface,
        breakers: Optional[CircuitBreakerRegistry] = None,
    ):
        """Initializes the CommandHandler with required services and caches."""
        self.resolver = resolver
        self.sync_service = sync_service
        self.workspace_cache = workspace_cache
        self.response_cache = response_cache
        self.ui = ui
        self.breakers = breakers

    def _report(self, error: BaseException, as_json: bool = False) -> int:
        """Displays an error and returns its exit code."""
        code = exit_code_for(error)
        if isinstance(error, HyperCliError):
            logger.debug(f"Command failed with {error.code.value}: {error.message}")
            if as_json:
                self.ui.display_json({"success": False, "error": error.to_dict()})
            else:
                self.ui.display_error(error.message, suggestions=error.suggestions)
        else:
            logger.error(f"Unexpected error: {error}", exc_info=error)
            if as_json:
                self.ui.display_json({"success": False, "error": {"code": "UNEXPECTED", "message": str(error)}})
            else:
                self.ui.display_error(f"An unexpected error occurred: {error}")
        return code

    async def handle_resolve(self, reference: str, as_json: bool = False, timeout_s: Optional[float] = None) -> int:
        """Handles the 'resolve' command."""
        logger.info(f"Handling 'resolve' for reference: {reference!r}")
        try:
            result = await self.resolver.resolve(reference, timeout_s=timeout_s)
        except Exception as e:
            return self._report(e, as_json)

        if as_json:
            self.ui.display_json({
                "success": True,
                "data": {
                    "id": result.canonical_id,
                    "match_kind": result.match_kind.value,
                    "confidence_rank": result.source_confidence_rank,
                    "title": result.title,
                },
            })
        else:
            self.ui.display_output(result.canonical_id)
            detail = f"Matched by {result.match_kind.value} (confidence rank {result.source_confidence_rank})"
            if result.title:
                detail += f": {result.title}"
            self.ui.display_info(detail)
        return EXIT_OK

    def handle_aliases(self, title: str, as_json: bool = False) -> int:
        """Handles the 'aliases' command: shows the aliases derived from a title."""
        aliases = sorted(generate_aliases(title))
        if as_json:
            self.ui.display_json({"title": title, "aliases": aliases})
            return EXIT_OK
        if not aliases:
            self.ui.display_warning("A blank title has no aliases.")
            return EXIT_USER_ERROR
        for alias in aliases:
            self.ui.display_output(alias)
        return EXIT_OK

    def handle_list(self, as_json: bool = False) -> int:
        """Handles the 'list' command: shows the cached workspace resources."""
        resources = sorted(self.workspace_cache.resources, key=lambda r: r.title.lower())
        if self.workspace_cache.last_error is not None:
            self.ui.display_warning(self.workspace_cache.last_error.message)

        if as_json:
            self.ui.display_json({"resources": [r.to_dict() for r in resources]})
            return EXIT_OK
        if not resources:
            self.ui.display_info("The workspace cache is empty. Run 'hypercli sync' to build it.")
            return EXIT_OK

        rows = []
        for resource in resources:
            preview = [a for a in sorted(resource.aliases) if a != resource.title_normalized][:LIST_PREVIEW_ALIASES]
            rows.append((resource.title, resource.id, ", ".join(preview), format_timestamp(resource.last_synced_at)))
        self.ui.display_table(
            f"Cached resources ({len(rows)})",
            ["Title", "ID", "Aliases", "Last synced"],
            rows,
        )
        if self.workspace_cache.is_stale():
            self.ui.display_warning("The workspace cache is over a day old. Run 'hypercli sync' to refresh it.")
        return EXIT_OK

    async def handle_sync(self, as_json: bool = False, timeout_s: Optional[float] = None) -> int:
        """Handles the 'sync' command."""
        logger.info("Handling 'sync' command.")
        try:
            report = await self.sync_service.sync(timeout_s=timeout_s)
        except Exception as e:
            return self._report(e, as_json)

        if as_json:
            self.ui.display_json({
                "success": True,
                "data": {
                    "resource_count": report.resource_count,
                    "pages": report.pages,
                    "skipped": report.skipped,
                    "synced_at": format_timestamp(report.synced_at),
                    "cache_path": report.cache_path,
                    "duration_ms": report.duration_ms,
                },
            })
        else:
            noun = "resource" if report.resource_count == 1 else "resources"
            self.ui.display_output(f"Synced {report.resource_count} {noun} to {report.cache_path}")
            if report.skipped:
                self.ui.display_warning(f"Skipped {report.skipped} resources with malformed ids.")
        return EXIT_OK

    def cache_info(self) -> Dict[str, Any]:
        info: Dict[str, Any] = {
            "workspace": self.workspace_cache.info(),
            "response_cache": self.response_cache.stats(),
        }
        if self.breakers is not None:
            info["circuits"] = {
                name: {"state": snap.state.value, "failure_count": snap.failure_count}
                for name, snap in self.breakers.snapshots().items()
            }
        return info

    def handle_cache_info(self, as_json: bool = False) -> int:
        """Handles the 'cache-info' command."""
        info = self.cache_info()
        if as_json:
            self.ui.display_json(info)
            return EXIT_OK

        workspace = info["workspace"]
        stats = info["response_cache"]
        rows = [
            ("Workspace cache", workspace["path"]),
            ("Resources", workspace["resource_count"]),
            ("Last sync", workspace["synced_at"] or "never"),
            ("Age (hours)", workspace["age_hours"] if workspace["age_hours"] is not None else "-"),
            ("Stale", "yes" if workspace["stale"] else "no"),
            ("Response cache", "enabled" if stats["enabled"] else "disabled"),
            ("Persistent tier", "on" if stats["persistent"] else "off"),
            ("Entries", f"{stats['size']} / {stats['capacity']}"),
            ("Hit rate", f"{stats['hit_rate']:.1%}"),
        ]
        self.ui.display_table("Cache status", ["Setting", "Value"], rows)
        if workspace["error"]:
            self.ui.display_warning(workspace["error"])
        elif workspace["stale"]:
            self.ui.display_warning("Run 'hypercli sync' to refresh the workspace cache.")
        return EXIT_OK

    def handle_clear_cache(self, namespace: Optional[str] = None) -> int:
        """Handles the 'clear-cache' command for the response cache."""
        if namespace:
            removed = self.response_cache.invalidate(CacheNamespace(namespace))
            self.ui.display_output(f"Removed {removed} cached entries from namespace '{namespace}'.")
        else:
            self.response_cache.clear()
            self.ui.display_output("Response cache cleared.")
        return EXIT_OK
