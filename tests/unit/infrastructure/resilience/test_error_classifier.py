import asyncio
import socket
from email.utils import format_datetime
from datetime import datetime, timezone

import pytest

from hypercli.domain.models.resilience import ReasonCode, TransportFailure
from hypercli.infrastructure.resilience.error_classifier import classify_error, parse_retry_after


@pytest.mark.parametrize("status, reason", [
    (429, ReasonCode.RATE_LIMITED),
    (502, ReasonCode.BAD_GATEWAY),
    (503, ReasonCode.SERVICE_UNAVAILABLE),
    (504, ReasonCode.GATEWAY_TIMEOUT),
    (500, ReasonCode.INTERNAL_SERVER_ERROR),
    (408, ReasonCode.REQUEST_TIMEOUT),
    (409, ReasonCode.CONFLICT),
])
def test_retryable_statuses(status, reason):
    result = classify_error(TransportFailure(status=status))
    assert result.reason is reason
    assert result.retryable
    assert result.status_code == status


@pytest.mark.parametrize("status", [400, 401, 403, 404])
def test_client_errors_are_not_retryable(status):
    result = classify_error(TransportFailure(status=status, message="nope"))
    assert result.reason is ReasonCode.UNKNOWN
    assert not result.retryable


def test_rate_limit_honors_retry_after_seconds():
    result = classify_error(TransportFailure(status=429, headers={"Retry-After": "2"}))
    assert result.retry_after_ms == 2000


def test_retry_after_header_is_case_insensitive():
    result = classify_error(TransportFailure(status=429, headers={"retry-after": "1.5"}))
    assert result.retry_after_ms == 1500


def test_explicit_retry_after_ms_wins():
    result = classify_error(TransportFailure(status=429, retry_after_ms=750, headers={"Retry-After": "9"}))
    assert result.retry_after_ms == 750


def test_retry_after_only_read_for_rate_limits():
    result = classify_error(TransportFailure(status=503, headers={"Retry-After": "5"}))
    assert result.retry_after_ms is None


def test_parse_retry_after_http_date():
    now = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
    later = datetime(2024, 5, 1, 12, 0, 3, tzinfo=timezone.utc)
    assert parse_retry_after(format_datetime(later, usegmt=True), now=now.timestamp()) == 3000


@pytest.mark.parametrize("value", [None, "", "soon"])
def test_parse_retry_after_garbage(value):
    assert parse_retry_after(value) is None


@pytest.mark.parametrize("code, reason", [
    ("rate_limited", ReasonCode.RATE_LIMITED),
    ("service_unavailable", ReasonCode.SERVICE_UNAVAILABLE),
    ("internal_server_error", ReasonCode.INTERNAL_SERVER_ERROR),
    ("conflict_error", ReasonCode.CONFLICT),
])
def test_api_error_codes(code, reason):
    result = classify_error(TransportFailure(code=code))
    assert result.reason is reason
    assert result.retryable


@pytest.mark.parametrize("code", ["ECONNRESET", "ETIMEDOUT", "ENOTFOUND", "EAI_AGAIN"])
def test_network_error_codes(code):
    result = classify_error(TransportFailure(code=code))
    assert result.reason is ReasonCode.NETWORK_ERROR
    assert result.retryable


@pytest.mark.parametrize("error", [
    ConnectionResetError("reset by peer"),
    TimeoutError("timed out"),
    asyncio.TimeoutError(),
    socket.gaierror("name resolution failed"),
])
def test_network_exceptions(error):
    result = classify_error(error)
    assert result.reason is ReasonCode.NETWORK_ERROR
    assert result.retryable


def test_foreign_exception_with_status_attribute():
    class HttpError(Exception):
        def __init__(self):
            super().__init__("bad gateway")
            self.status_code = 502

    assert classify_error(HttpError()).reason is ReasonCode.BAD_GATEWAY


def test_unknown_failures_are_not_retryable():
    result = classify_error(ValueError("boom"))
    assert result.reason is ReasonCode.UNKNOWN
    assert not result.retryable
