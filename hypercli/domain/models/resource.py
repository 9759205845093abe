"""Domain models for workspace resources and resolution results."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from hypercli.domain.models.common import ResourceId
from hypercli.utils.id_parser import normalize_id

WORKSPACE_CACHE_VERSION = 1


def utc_now() -> datetime:
    """Return the current time in UTC, timezone-aware."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Serializes a datetime as an ISO-8601 string with a trailing 'Z'."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parses an ISO-8601 string (with or without 'Z'), returning None if invalid."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class MatchKind(str, Enum):
    """How a reference was resolved, ordered from most to least confident."""

    URL = "url"
    RAW_ID = "raw_id"
    EXACT = "exact"
    ALIAS = "alias"
    PARTIAL = "partial"
    REMOTE = "remote"

    @property
    def confidence_rank(self) -> int:
        """1 is the most confident source; larger numbers are weaker matches."""
        return _CONFIDENCE_RANKS[self]


_CONFIDENCE_RANKS = {
    MatchKind.URL: 1,
    MatchKind.RAW_ID: 1,
    MatchKind.EXACT: 2,
    MatchKind.ALIAS: 3,
    MatchKind.PARTIAL: 4,
    MatchKind.REMOTE: 5,
}


@dataclass(frozen=True)
class CachedResource:
    """A resource known to the workspace cache.

    The lowercase title is always part of ``aliases``; the id never changes
    once the entry exists (the dataclass is frozen).
    """

    id: ResourceId
    title: str
    aliases: FrozenSet[str] = field(default_factory=frozenset)
    url: Optional[str] = None
    last_synced_at: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        normalized_title = normalize_title(self.title)
        aliases = frozenset(a.lower() for a in self.aliases if a)
        if normalized_title:
            aliases = aliases | {normalized_title}
        object.__setattr__(self, "aliases", aliases)

    @property
    def title_normalized(self) -> str:
        return normalize_title(self.title)

    def to_dict(self) -> Dict[str, Any]:
        """Serializes the resource for the persisted cache file."""
        return {
            "id": self.id,
            "title": self.title,
            "aliases": sorted(self.aliases),
            "url": self.url,
            "lastSyncedAt": format_timestamp(self.last_synced_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], default_synced_at: datetime) -> "CachedResource":
        """Builds a resource from its persisted form.

        Raises:
            ValueError: If required fields are missing or of the wrong type,
                or the id is not a 32-character hex id.
        """
        resource_id = data.get("id")
        title = data.get("title")
        if not isinstance(resource_id, str) or not resource_id:
            raise ValueError("resource entry has no 'id'")
        resource_id = normalize_id(resource_id)
        if not isinstance(title, str):
            raise ValueError(f"resource {resource_id} has no 'title'")
        aliases = data.get("aliases") or []
        if not isinstance(aliases, (list, tuple)):
            raise ValueError(f"resource {resource_id} has malformed 'aliases'")
        url = data.get("url")
        return cls(
            id=resource_id,
            title=title,
            aliases=frozenset(str(a) for a in aliases),
            url=url if isinstance(url, str) else None,
            last_synced_at=parse_timestamp(data.get("lastSyncedAt")) or default_synced_at,
        )


@dataclass(frozen=True)
class WorkspaceCacheFile:
    """Snapshot of the persisted workspace cache."""

    version: int = WORKSPACE_CACHE_VERSION
    synced_at: datetime = field(default_factory=utc_now)
    resources: Tuple[CachedResource, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "syncedAt": format_timestamp(self.synced_at),
            "resources": [r.to_dict() for r in self.resources],
        }


@dataclass(frozen=True)
class RemoteResource:
    """A candidate resource as returned by the remote lookup capability."""

    id: str
    title: str
    url: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RemoteResource":
        return cls(id=str(data.get("id") or ""), title=str(data.get("title") or ""), url=data.get("url"))


@dataclass(frozen=True)
class ResourcePage:
    """One page of a paginated listing of remote resources."""

    resources: Tuple[RemoteResource, ...] = ()
    next_cursor: Optional[str] = None


@dataclass(frozen=True)
class CacheMatch:
    """A workspace cache hit together with the stage that produced it."""

    resource: CachedResource
    match_kind: MatchKind


@dataclass(frozen=True)
class ResolutionResult:
    """Outcome of resolving a user reference to a canonical identifier."""

    canonical_id: ResourceId
    match_kind: MatchKind
    source_confidence_rank: int
    title: Optional[str] = None

    @classmethod
    def of(cls, canonical_id: str, match_kind: MatchKind, title: Optional[str] = None) -> "ResolutionResult":
        return cls(
            canonical_id=ResourceId(canonical_id),
            match_kind=match_kind,
            source_confidence_rank=match_kind.confidence_rank,
            title=title,
        )


def normalize_title(title: str) -> str:
    """Lowercases and collapses whitespace so titles compare case-insensitively."""
    return " ".join((title or "").lower().split())
