"""Extracts canonical resource identifiers from URLs and raw ids.

Accepted shapes:
    - https://host/Some-Title-1fb79d4c71bb8032b722c82305b63a00?v=...
    - host.tld/1fb79d4c71bb8032b722c82305b63a00 (scheme-less)
    - 1fb79d4c-71bb-8032-b722-c82305b63a00
    - 1fb79d4c71bb8032b722c82305b63a00
"""

import re
from typing import Iterable, Optional
from urllib.parse import parse_qsl, urlsplit

from hypercli.domain.models.common import ResourceId

_HEX_ID_RE = re.compile(r"^[0-9a-f]{32}$", re.IGNORECASE)
# 32 hex chars, or the dashed 8-4-4-4-12 form, not embedded in a longer hex run
_EMBEDDED_ID_RE = re.compile(
    r"(?<![0-9a-f])"
    r"([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}|[0-9a-f]{32})"
    r"(?![0-9a-f])",
    re.IGNORECASE,
)
_SCHEMELESS_URL_RE = re.compile(r"^(?:www\.)?[a-z0-9-]+(?:\.[a-z0-9-]+)*\.[a-z]{2,}/\S*$", re.IGNORECASE)
SUPPORTED_SCHEMES = ("http", "https")


def is_valid_id(value: str) -> bool:
    """True if ``value`` is 32 hex characters once dashes are removed."""
    if not value:
        return False
    return bool(_HEX_ID_RE.match(value.strip().replace("-", "")))


def normalize_id(value: str) -> ResourceId:
    """Strips dashes and lowercases a raw id.

    Raises:
        ValueError: If the value is not a 32-character hex id.
    """
    cleaned = (value or "").strip().replace("-", "")
    if not _HEX_ID_RE.match(cleaned):
        raise ValueError(
            f"Invalid resource id: {value!r}. "
            "Expected 32 hexadecimal characters, with or without dashes."
        )
    return ResourceId(cleaned.lower())


def _host_allowed(host: str, allowed_hosts: Optional[Iterable[str]]) -> bool:
    if not allowed_hosts:
        return True
    host = host.lower()
    for allowed in allowed_hosts:
        allowed = allowed.lower()
        if host == allowed or host.endswith("." + allowed):
            return True
    return False


def is_supported_url(value: str, allowed_hosts: Optional[Iterable[str]] = None) -> bool:
    """True if ``value`` looks like an http(s) URL on an allowed host.

    Scheme-less inputs such as ``www.example.com/abc`` are accepted too.
    With no ``allowed_hosts`` every host is supported.
    """
    if not value:
        return False
    candidate = value.strip()
    if "://" not in candidate:
        if not _SCHEMELESS_URL_RE.match(candidate):
            return False
        candidate = "https://" + candidate
    parts = urlsplit(candidate)
    if parts.scheme.lower() not in SUPPORTED_SCHEMES or not parts.hostname:
        return False
    return _host_allowed(parts.hostname, allowed_hosts)


def extract_id_from_url(url: str) -> ResourceId:
    """Finds the resource id embedded in a URL.

    Path segments are searched last to first (the id is usually the suffix of
    the final "Title-<id>" slug), then query parameter values.

    Raises:
        ValueError: If no valid id is present.
    """
    candidate = url.strip()
    if "://" not in candidate:
        candidate = "https://" + candidate
    parts = urlsplit(candidate)

    for segment in reversed([s for s in parts.path.split("/") if s]):
        matches = _EMBEDDED_ID_RE.findall(segment)
        if matches:
            return normalize_id(matches[-1])

    for _, value in parse_qsl(parts.query):
        matches = _EMBEDDED_ID_RE.findall(value)
        if matches:
            return normalize_id(matches[-1])

    raise ValueError(
        f"Could not find a resource id in URL: {url}. "
        "Expected a URL ending in a 32-character id, e.g. https://host/Title-1fb79d4c71bb8032b722c82305b63a00"
    )
