"""Value objects for the API resilience context (classification, retry, breaker)."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional


class ReasonCode(str, Enum):
    """Why a remote call failed, as decided once by the error classifier."""

    RATE_LIMITED = "rate_limited"
    BAD_GATEWAY = "bad_gateway"
    SERVICE_UNAVAILABLE = "service_unavailable"
    GATEWAY_TIMEOUT = "gateway_timeout"
    INTERNAL_SERVER_ERROR = "internal_server_error"
    REQUEST_TIMEOUT = "request_timeout"
    CONFLICT = "conflict"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class FailureClassification:
    """Tagged classification result consumed uniformly after classification."""

    reason: ReasonCode
    retryable: bool
    retry_after_ms: Optional[int] = None
    status_code: Optional[int] = None
    error_code: Optional[str] = None


@dataclass(eq=False)
class TransportFailure(Exception):
    """Failure raised by a transport adapter in a shape the classifier understands.

    Transport clients can raise this directly, or raise their own exceptions
    exposing ``status``/``code``/``headers`` attributes.
    """

    status: Optional[int] = None
    code: Optional[str] = None
    message: str = ""
    headers: Mapping[str, Any] = field(default_factory=dict)
    retry_after_ms: Optional[int] = None

    def __str__(self) -> str:
        parts = []
        if self.status is not None:
            parts.append(f"HTTP {self.status}")
        if self.code:
            parts.append(self.code)
        if self.message:
            parts.append(self.message)
        return " ".join(parts) or "transport failure"


class CircuitState(str, Enum):
    """States of a circuit breaker."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitSnapshot:
    """Point-in-time view of a breaker, for diagnostics."""

    target: str
    state: CircuitState
    failure_count: int
    opened_at: Optional[float]
    probe_in_flight: bool
    cooldown_ms: float


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters for one execution."""

    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 30000
    jitter_min: float = 0.5
    jitter_max: float = 1.5

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("delays must be >= 0")
        if self.jitter_min > self.jitter_max:
            raise ValueError("jitter_min must not exceed jitter_max")


@dataclass(frozen=True)
class RetryContext:
    """Progress of one execution; attempt is 1-indexed and never exceeds max_retries + 1."""

    attempt: int
    max_retries: int
    base_delay_ms: int
    max_delay_ms: int
    reason: Optional[ReasonCode] = None
