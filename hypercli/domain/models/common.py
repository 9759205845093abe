"""Defines common Value Objects used across different domain contexts.

These objects represent simple values or concepts like resource identifiers,
cache namespaces, and user references, ensuring consistency and type safety.
"""

from typing import NewType, Optional, TypedDict

# === Core Value Objects ===

# Using NewType for semantic clarity, although they are strings at runtime.
ResourceId = NewType("ResourceId", str)          # Canonical 32-char lowercase hex id, no dashes
ResourceReference = NewType("ResourceReference", str)  # Raw user input (URL, id, name, alias)
ResourceTitle = NewType("ResourceTitle", str)    # Human-readable title as returned by the API
Alias = NewType("Alias", str)                    # Lowercase search token mapped to an id

# === Caching Context ===
CacheNamespace = NewType("CacheNamespace", str)  # Partition of the response cache (e.g., 'search')
CacheKey = NewType("CacheKey", str)              # Key of an entry inside a namespace

# === Resilience Context ===
TargetName = NewType("TargetName", str)          # Logical remote target guarded by a breaker

# Well-known namespaces
SEARCH_NAMESPACE = CacheNamespace("search")
RESOURCE_NAMESPACE = CacheNamespace("resource")
PAGE_NAMESPACE = CacheNamespace("page")
BLOCK_NAMESPACE = CacheNamespace("block")
USER_NAMESPACE = CacheNamespace("user")

# --- Structured Data ---
class BackoffPolicy(TypedDict):
    """Value Object representing retry backoff configuration as loaded from config."""
    max_retries: int
    base_delay_ms: int
    max_delay_ms: int


class ErrorSuggestion(TypedDict, total=False):
    """A suggested fix attached to an error, optionally with a command to run."""
    description: str
    command: Optional[str]
