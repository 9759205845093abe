import pytest

from hypercli.utils.id_parser import (
    extract_id_from_url,
    is_supported_url,
    is_valid_id,
    normalize_id,
)

RAW_ID = "1fb79d4c71bb8032b722c82305b63a00"
DASHED_ID = "1fb79d4c-71bb-8032-b722-c82305b63a00"


@pytest.mark.parametrize("value", [RAW_ID, DASHED_ID, RAW_ID.upper(), f"  {RAW_ID} "])
def test_valid_ids_normalize_to_dashless_lowercase(value):
    assert is_valid_id(value)
    assert normalize_id(value) == RAW_ID


@pytest.mark.parametrize("value", ["", "tasks", RAW_ID[:-1], RAW_ID + "0", "g" * 32])
def test_invalid_ids(value):
    assert not is_valid_id(value)
    with pytest.raises(ValueError):
        normalize_id(value)


@pytest.mark.parametrize("url", [
    "https://example.com/Tasks-1fb79d4c71bb8032b722c82305b63a00",
    "https://www.example.com/workspace/Tasks-1fb79d4c71bb8032b722c82305b63a00?v=abc",
    "http://example.com/1fb79d4c-71bb-8032-b722-c82305b63a00",
    "example.com/Tasks-1fb79d4c71bb8032b722c82305b63a00",
])
def test_extract_id_from_supported_urls(url):
    assert is_supported_url(url)
    assert extract_id_from_url(url) == RAW_ID


def test_extract_id_from_query_parameter():
    url = "https://example.com/open?p=1fb79d4c71bb8032b722c82305b63a00"
    assert extract_id_from_url(url) == RAW_ID


def test_last_path_segment_wins():
    url = "https://example.com/2a3b4c5d6e7f80918273645546372819/Tasks-1fb79d4c71bb8032b722c82305b63a00"
    assert extract_id_from_url(url) == RAW_ID


def test_url_without_id_raises():
    with pytest.raises(ValueError, match="Could not find a resource id"):
        extract_id_from_url("https://example.com/no-id-here")


@pytest.mark.parametrize("value", ["tasks", "Meeting Notes", "ftp://example.com/x", RAW_ID, ""])
def test_non_urls_are_not_supported(value):
    assert not is_supported_url(value)


def test_allowed_hosts_restrict_urls():
    url = "https://app.example.com/Tasks-" + RAW_ID
    assert is_supported_url(url, allowed_hosts=["example.com"])
    assert not is_supported_url(url, allowed_hosts=["other.org"])
