"""Domain Events emitted by the retry executor and the response cache.

Events are delivered to a ``DiagnosticObserver``; they are for diagnostics
only and never written to the primary output channel.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, Optional
import time


@dataclass
class DiagnosticEvent:
    """Base class for diagnostic events."""

    event: ClassVar[str] = "diagnostic"
    level: ClassVar[str] = "debug"

    def to_record(self) -> Dict[str, Any]:
        """Flattens the event into a structured log record."""
        record: Dict[str, Any] = {"level": self.level, "event": self.event}
        for key, value in asdict(self).items():
            if key == "timestamp":
                continue
            if value is not None:
                record[key] = value
        record["timestamp"] = datetime.fromtimestamp(
            getattr(self, "timestamp", time.time()), tz=timezone.utc
        ).isoformat()
        return record


# --- Retry Events ---

@dataclass
class RetryAttempt(DiagnosticEvent):
    """An attempt is about to invoke the remote operation."""
    event: ClassVar[str] = "retry_attempt"
    attempt: int
    max_retries: int
    target: str
    context: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class RetryScheduled(DiagnosticEvent):
    """A failed attempt will be retried after ``delay_ms``."""
    event: ClassVar[str] = "retry"
    level: ClassVar[str] = "info"
    attempt: int
    max_retries: int
    reason: str
    delay_ms: int
    target: str
    context: Optional[str] = None
    status_code: Optional[int] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class RateLimited(DiagnosticEvent):
    """The server asked us to slow down."""
    event: ClassVar[str] = "rate_limited"
    level: ClassVar[str] = "info"
    attempt: int
    max_retries: int
    target: str
    reason: str = "rate_limited"
    retry_after_ms: Optional[int] = None
    context: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class RetryExhausted(DiagnosticEvent):
    """The operation failed terminally."""
    event: ClassVar[str] = "retry_exhausted"
    level: ClassVar[str] = "info"
    attempt: int
    max_retries: int
    reason: str
    target: str
    context: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


# --- Cache Events ---

@dataclass
class CacheHit(DiagnosticEvent):
    event: ClassVar[str] = "cache_hit"
    namespace: str
    key: str
    age_ms: int
    ttl_ms: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class CacheMiss(DiagnosticEvent):
    event: ClassVar[str] = "cache_miss"
    namespace: str
    key: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class CacheSet(DiagnosticEvent):
    event: ClassVar[str] = "cache_set"
    namespace: str
    key: str
    ttl_ms: int
    cache_size: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class CacheInvalidate(DiagnosticEvent):
    event: ClassVar[str] = "cache_invalidate"
    namespace: str
    key: Optional[str] = None
    cache_size: int = 0
    timestamp: float = field(default_factory=time.time)


@dataclass
class CacheEvict(DiagnosticEvent):
    """An entry left the cache because it expired ('expired') or for capacity ('lru')."""
    event: ClassVar[str] = "cache_evict"
    namespace: str
    key: str
    cause: str
    cache_size: int = 0
    timestamp: float = field(default_factory=time.time)
