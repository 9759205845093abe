"""Configuration consumed by the resolution and resilience core.

The core treats this as an opaque value supplied by the caller; loading it
from the environment or config files is done by the infrastructure layer.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from hypercli.domain.models.resilience import RetryPolicy

DEFAULT_CONFIG_DIR = Path.home() / ".hypercli"

# Per-namespace TTLs in milliseconds
DEFAULT_NAMESPACE_TTLS_MS: Dict[str, int] = {
    "search": 10 * 60 * 1000,
    "resource": 10 * 60 * 1000,
    "user": 60 * 60 * 1000,
    "page": 60 * 1000,
    "block": 30 * 1000,
}


@dataclass(frozen=True)
class CoreSettings:
    """All tunables of the resolution/resilience core."""

    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 30000
    cache_enabled: bool = True
    default_ttl_ms: int = 5 * 60 * 1000
    namespace_ttls_ms: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_NAMESPACE_TTLS_MS))
    cache_capacity: int = 1000
    breaker_threshold: int = 5
    breaker_cooldown_ms: int = 60000
    breaker_backoff_factor: float = 1.0
    breaker_max_cooldown_ms: int = 10 * 60 * 1000
    workspace_cache_path: Path = DEFAULT_CONFIG_DIR / "workspace.json"
    disk_cache_dir: Optional[Path] = None
    verbose: bool = False

    def retry_policy(self, max_retries: Optional[int] = None) -> RetryPolicy:
        """Builds the retry policy, optionally overriding the retry count."""
        return RetryPolicy(
            max_retries=self.max_retries if max_retries is None else max_retries,
            base_delay_ms=self.base_delay_ms,
            max_delay_ms=self.max_delay_ms,
        )
