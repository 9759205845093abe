"""Persistent index of workspace resources for local name-to-id resolution.

The index lives in one JSON file (``~/.hypercli/workspace.json`` by default):

    {"version": 1, "syncedAt": "...Z",
     "resources": [{"id", "title", "aliases", "url", "lastSyncedAt"}, ...]}

Writes go to a temporary file in the same directory which is then renamed
over the target, so readers only ever see a complete old or complete new
file. There is no locking; the last writer wins.
"""

import json
import logging
import os
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from hypercli.domain.errors import CacheCorruptionError
from hypercli.domain.models.resource import (
    WORKSPACE_CACHE_VERSION,
    CachedResource,
    CacheMatch,
    MatchKind,
    WorkspaceCacheFile,
    format_timestamp,
    normalize_title,
    parse_timestamp,
    utc_now,
)
from hypercli.domain.models.settings import DEFAULT_CONFIG_DIR

logger = logging.getLogger(__name__)

DEFAULT_WORKSPACE_CACHE_PATH = DEFAULT_CONFIG_DIR / "workspace.json"
DEFAULT_STALENESS_HOURS = 24


def _rank_key(resource: CachedResource) -> Tuple[float, int, str]:
    # Most recently synced first, then shortest title, then id for determinism
    return (-resource.last_synced_at.timestamp(), len(resource.title), resource.id)


class WorkspaceCache:
    """Loads, searches and atomically rewrites the workspace index file."""

    def __init__(
        self,
        path: Union[str, Path] = DEFAULT_WORKSPACE_CACHE_PATH,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.path = Path(path).expanduser()
        self._clock = clock
        self._snapshot: Optional[WorkspaceCacheFile] = None
        self._exists = False
        self.last_error: Optional[CacheCorruptionError] = None

    # --- Reading ---

    def load(self) -> WorkspaceCacheFile:
        """Reads the index from disk.

        A missing file yields an empty index. An unreadable or malformed file
        also yields an empty index; the problem is logged and kept in
        ``last_error`` but never raised.
        """
        self.last_error = None
        self._exists = False
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug(f"No workspace cache at {self.path}; starting empty.")
            self._snapshot = WorkspaceCacheFile(resources=())
            return self._snapshot
        except OSError as e:
            return self._degrade(f"cannot read file ({e})")

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            return self._degrade(f"invalid JSON ({e.msg} at line {e.lineno})")

        if not isinstance(data, dict):
            return self._degrade("top-level value is not an object")
        version = data.get("version")
        if not isinstance(version, int) or isinstance(version, bool):
            return self._degrade("missing or non-integer 'version'")
        if version > WORKSPACE_CACHE_VERSION:
            return self._degrade(f"unsupported version {version}")
        raw_resources = data.get("resources")
        if not isinstance(raw_resources, list):
            return self._degrade("'resources' is not a list")

        synced_at = parse_timestamp(data.get("syncedAt")) or self._clock()
        resources: List[CachedResource] = []
        for index, raw in enumerate(raw_resources):
            if not isinstance(raw, dict):
                logger.warning(f"Skipping malformed workspace cache entry #{index}: not an object")
                continue
            try:
                resources.append(CachedResource.from_dict(raw, default_synced_at=synced_at))
            except ValueError as e:
                logger.warning(f"Skipping malformed workspace cache entry #{index}: {e}")

        self._exists = True
        self._snapshot = WorkspaceCacheFile(version=version, synced_at=synced_at, resources=tuple(resources))
        logger.debug(f"Loaded {len(resources)} resources from workspace cache {self.path}")
        return self._snapshot

    def _degrade(self, reason: str) -> WorkspaceCacheFile:
        self.last_error = CacheCorruptionError(str(self.path), reason)
        logger.warning(f"{self.last_error.message}. Treating it as empty; run 'hypercli sync' to rebuild.")
        self._snapshot = WorkspaceCacheFile(resources=())
        return self._snapshot

    def snapshot(self) -> WorkspaceCacheFile:
        """The loaded index, loading it on first use."""
        if self._snapshot is None:
            return self.load()
        return self._snapshot

    @property
    def resources(self) -> Tuple[CachedResource, ...]:
        return self.snapshot().resources

    @property
    def exists(self) -> bool:
        self.snapshot()
        return self._exists

    # --- Writing ---

    def now(self) -> datetime:
        return self._clock()

    def replace(
        self, resources: Iterable[CachedResource], synced_at: Optional[datetime] = None
    ) -> WorkspaceCacheFile:
        """Replaces the whole index atomically and stamps ``synced_at`` (default: now)."""
        snapshot = WorkspaceCacheFile(
            version=WORKSPACE_CACHE_VERSION,
            synced_at=synced_at or self._clock(),
            resources=tuple(resources),
        )
        self._write(snapshot)
        logger.info(f"Workspace cache replaced with {len(snapshot.resources)} resources.")
        return snapshot

    def upsert(self, resource: CachedResource) -> WorkspaceCacheFile:
        """Inserts or replaces one resource (matched by id), keeping the rest."""
        current = self.snapshot()
        others = tuple(r for r in current.resources if r.id != resource.id)
        synced_at = current.synced_at if self._exists else self._clock()
        snapshot = WorkspaceCacheFile(
            version=WORKSPACE_CACHE_VERSION,
            synced_at=synced_at,
            resources=others + (resource,),
        )
        self._write(snapshot)
        logger.debug(f"Upserted resource {resource.id} ('{resource.title}') into workspace cache.")
        return snapshot

    def _write(self, snapshot: WorkspaceCacheFile) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(snapshot.to_dict(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            # Atomic on POSIX and Windows
            os.replace(temp_name, str(self.path))
        except BaseException:
            try:
                os.unlink(temp_name)
            except OSError:
                pass
            raise
        self._snapshot = snapshot
        self._exists = True
        self.last_error = None

    # --- Searching ---

    def search(self, query: str) -> Optional[CacheMatch]:
        """Finds the best cached resource for a free-text query.

        Stages, first non-empty wins: exact title, exact alias, then substring
        of the title or any alias. Within a stage the most recently synced
        resource wins, then the shortest title, then the lowest id.
        """
        needle = normalize_title(query)
        if not needle:
            return None
        resources = self.resources

        stages = (
            (MatchKind.EXACT, lambda r: r.title_normalized == needle),
            (MatchKind.ALIAS, lambda r: needle in r.aliases),
            (
                MatchKind.PARTIAL,
                lambda r: needle in r.title_normalized or any(needle in a for a in r.aliases),
            ),
        )
        for match_kind, predicate in stages:
            candidates = [r for r in resources if predicate(r)]
            if candidates:
                best = min(candidates, key=_rank_key)
                logger.debug(
                    f"Workspace cache {match_kind.value} match for '{query}': {best.id} "
                    f"({len(candidates)} candidate(s))"
                )
                return CacheMatch(resource=best, match_kind=match_kind)

        logger.debug(f"No workspace cache match for '{query}'")
        return None

    # --- Reporting ---

    def age(self) -> Optional[timedelta]:
        if not self.exists:
            return None
        return self._clock() - self.snapshot().synced_at

    def is_stale(self, threshold_hours: float = DEFAULT_STALENESS_HOURS) -> bool:
        """True if the index was never synced or is older than the threshold."""
        age = self.age()
        return age is None or age >= timedelta(hours=threshold_hours)

    def info(self, threshold_hours: float = DEFAULT_STALENESS_HOURS) -> Dict[str, Any]:
        """Summary used by ``hypercli cache-info``."""
        snapshot = self.snapshot()
        age = self.age()
        return {
            "path": str(self.path),
            "exists": self._exists,
            "version": snapshot.version,
            "synced_at": format_timestamp(snapshot.synced_at) if self._exists else None,
            "resource_count": len(snapshot.resources),
            "age_hours": round(age.total_seconds() / 3600, 2) if age is not None else None,
            "stale": self.is_stale(threshold_hours),
            "error": self.last_error.message if self.last_error else None,
        }
