"""Maps raw transport failures to a single classification result.

Transport adapters raise whatever they raise; this module decides once
whether the failure is retryable and why, so the retry executor and callers
never inspect dynamically-shaped error objects themselves.
"""

import asyncio
import socket
import time
from email.utils import parsedate_to_datetime
from typing import Any, Mapping, Optional

from hypercli.domain.models.resilience import FailureClassification, ReasonCode

STATUS_REASONS = {
    429: ReasonCode.RATE_LIMITED,
    502: ReasonCode.BAD_GATEWAY,
    503: ReasonCode.SERVICE_UNAVAILABLE,
    504: ReasonCode.GATEWAY_TIMEOUT,
    500: ReasonCode.INTERNAL_SERVER_ERROR,
    408: ReasonCode.REQUEST_TIMEOUT,
    409: ReasonCode.CONFLICT,
}

# API-level error codes (sent in the response body) that mean the same thing
ERROR_CODE_REASONS = {
    "rate_limited": ReasonCode.RATE_LIMITED,
    "service_unavailable": ReasonCode.SERVICE_UNAVAILABLE,
    "internal_server_error": ReasonCode.INTERNAL_SERVER_ERROR,
    "conflict_error": ReasonCode.CONFLICT,
    "gateway_timeout": ReasonCode.GATEWAY_TIMEOUT,
}

# Socket-level error codes for resets, timeouts and DNS failures
NETWORK_ERROR_CODES = frozenset({"ECONNRESET", "ETIMEDOUT", "ENOTFOUND", "EAI_AGAIN", "ECONNREFUSED", "EPIPE"})

NETWORK_EXCEPTIONS = (ConnectionError, TimeoutError, asyncio.TimeoutError, socket.gaierror, socket.timeout)


def _status_of(error: Any) -> Optional[int]:
    for attr in ("status", "status_code"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def _headers_of(error: Any) -> Mapping[str, Any]:
    headers = getattr(error, "headers", None)
    if headers is None:
        headers = getattr(getattr(error, "response", None), "headers", None)
    return headers if isinstance(headers, Mapping) else {}


def parse_retry_after(value: Any, now: Optional[float] = None) -> Optional[int]:
    """Converts a Retry-After header (seconds or HTTP-date) to milliseconds.

    Returns:
        The delay in milliseconds, or None if the value is absent or unparseable.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return max(0, int(value * 1000))
    text = str(value).strip()
    if not text:
        return None
    try:
        return max(0, int(float(text) * 1000))
    except ValueError:
        pass
    try:
        target = parsedate_to_datetime(text)
    except (TypeError, ValueError):
        return None
    if target is None:
        return None
    current = time.time() if now is None else now
    return max(0, int((target.timestamp() - current) * 1000))


def _retry_after_ms(error: Any) -> Optional[int]:
    explicit = getattr(error, "retry_after_ms", None)
    if isinstance(explicit, (int, float)):
        return max(0, int(explicit))
    headers = _headers_of(error)
    for name, value in headers.items():
        if str(name).lower() == "retry-after":
            return parse_retry_after(value)
    return None


def classify_error(error: BaseException) -> FailureClassification:
    """Classifies a failure raised by a remote operation.

    Args:
        error: The exception raised by the transport, or a ``TransportFailure``.

    Returns:
        The reason code, whether it is worth retrying, and any server-supplied
        retry delay in milliseconds.
    """
    status = _status_of(error)
    raw_code = getattr(error, "code", None)
    error_code = raw_code if isinstance(raw_code, str) else None

    if status is not None and status in STATUS_REASONS:
        reason = STATUS_REASONS[status]
        return FailureClassification(
            reason=reason,
            retryable=True,
            retry_after_ms=_retry_after_ms(error) if reason is ReasonCode.RATE_LIMITED else None,
            status_code=status,
            error_code=error_code,
        )

    if error_code:
        mapped = ERROR_CODE_REASONS.get(error_code.lower())
        if mapped is not None:
            return FailureClassification(
                reason=mapped,
                retryable=True,
                retry_after_ms=_retry_after_ms(error) if mapped is ReasonCode.RATE_LIMITED else None,
                status_code=status,
                error_code=error_code,
            )
        if status is None and error_code.upper() in NETWORK_ERROR_CODES:
            return FailureClassification(
                reason=ReasonCode.NETWORK_ERROR, retryable=True, error_code=error_code
            )

    if status is None and isinstance(error, NETWORK_EXCEPTIONS):
        return FailureClassification(
            reason=ReasonCode.NETWORK_ERROR,
            retryable=True,
            error_code=error_code or type(error).__name__,
        )

    return FailureClassification(
        reason=ReasonCode.UNKNOWN,
        retryable=False,
        status_code=status,
        error_code=error_code,
    )
