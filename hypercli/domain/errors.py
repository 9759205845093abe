"""Typed error conditions raised by the resolution and resilience core.

The core only raises these; turning them into user-facing messages and exit
codes is done at the CLI edge (see ``CommandHandler``).
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from hypercli.domain.models.common import ErrorSuggestion
from hypercli.domain.models.resilience import FailureClassification

RESYNC_SUGGESTIONS: List[ErrorSuggestion] = [
    {"description": "Refresh the local workspace index", "command": "hypercli sync"},
    {"description": "Use the full resource URL or its 32-character id instead"},
    {"description": "Check which resources are cached", "command": "hypercli list"},
]


class ErrorCode(str, Enum):
    """Stable codes for programmatic handling of core errors."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_URL = "INVALID_URL"
    NOT_FOUND = "NOT_FOUND"
    REMOTE_ERROR = "REMOTE_ERROR"
    TRANSIENT_ERROR = "TRANSIENT_ERROR"
    RETRY_EXHAUSTED = "RETRY_EXHAUSTED"
    CIRCUIT_OPEN = "CIRCUIT_OPEN"
    CACHE_CORRUPTION = "CACHE_CORRUPTION"
    TIMEOUT = "TIMEOUT"


class HyperCliError(Exception):
    """Base class for all errors raised by the core."""

    code: ErrorCode = ErrorCode.REMOTE_ERROR

    def __init__(
        self,
        message: str,
        suggestions: Optional[List[ErrorSuggestion]] = None,
        context: Optional[Dict[str, Any]] = None,
        code: Optional[ErrorCode] = None,
    ):
        super().__init__(message)
        self.message = message
        self.suggestions = list(suggestions or [])
        self.context = dict(context or {})
        if code is not None:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        """Structured form for JSON output and diagnostics."""
        return {
            "code": self.code.value,
            "message": self.message,
            "suggestions": self.suggestions,
            "context": self.context,
        }


class ValidationError(HyperCliError):
    """Malformed or empty input. Fatal, never retried."""

    code = ErrorCode.VALIDATION_ERROR


class NotFoundError(HyperCliError):
    """Every resolution stage was exhausted."""

    code = ErrorCode.NOT_FOUND

    def __init__(self, message: str, reference: Optional[str] = None, **kwargs: Any):
        kwargs.setdefault("suggestions", RESYNC_SUGGESTIONS)
        super().__init__(message, **kwargs)
        self.reference = reference


class RemoteCallError(HyperCliError):
    """A remote operation failed with a classified, terminal failure."""

    code = ErrorCode.REMOTE_ERROR

    def __init__(self, message: str, classification: FailureClassification, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.classification = classification
        self.context.setdefault("reason", classification.reason.value)
        if classification.status_code is not None:
            self.context.setdefault("status_code", classification.status_code)


class TransientError(RemoteCallError):
    """A retryable failure surfaced because no retries were allowed."""

    code = ErrorCode.TRANSIENT_ERROR


class RetryExhaustedError(RemoteCallError):
    """Retries were attempted and the operation still failed."""

    code = ErrorCode.RETRY_EXHAUSTED

    def __init__(
        self,
        last_error: BaseException,
        attempts: int,
        classification: FailureClassification,
        **kwargs: Any,
    ):
        super().__init__(
            f"Gave up after {attempts} attempts ({classification.reason.value}): {last_error}",
            classification,
            **kwargs,
        )
        self.last_error = last_error
        self.attempts = attempts
        self.context.setdefault("attempts", attempts)


class CircuitOpenError(HyperCliError):
    """The breaker for a target refuses calls; stop issuing calls to it."""

    code = ErrorCode.CIRCUIT_OPEN

    def __init__(self, target: str, retry_in_ms: Optional[float] = None, **kwargs: Any):
        message = f"Circuit breaker for '{target}' is open; too many consecutive failures."
        if retry_in_ms is not None:
            message += f" Next probe allowed in {retry_in_ms / 1000:.1f}s."
        super().__init__(message, **kwargs)
        self.target = target
        self.retry_in_ms = retry_in_ms
        self.context.setdefault("target", target)


class CacheCorruptionError(HyperCliError):
    """The persisted workspace cache could not be read. Logged, never raised to callers."""

    code = ErrorCode.CACHE_CORRUPTION

    def __init__(self, path: str, reason: str, **kwargs: Any):
        kwargs.setdefault(
            "suggestions",
            [{"description": "Rebuild the workspace index", "command": "hypercli sync"}],
        )
        super().__init__(f"Workspace cache at {path} is unreadable: {reason}", **kwargs)
        self.path = path
        self.reason = reason


class OperationTimeoutError(HyperCliError):
    """A top-level timeout aborted the in-flight operation."""

    code = ErrorCode.TIMEOUT

    def __init__(self, timeout_s: float, operation: str = "operation", **kwargs: Any):
        super().__init__(f"{operation} timed out after {timeout_s:g}s", **kwargs)
        self.timeout_s = timeout_s
