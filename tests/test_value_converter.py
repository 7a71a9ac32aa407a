"""
Tests for ticket attribute -> Asana value conversion
"""

from datetime import datetime

import pytest

from asana_client import AsanaAPIError
from value_converter import (
    AttachmentRef,
    extract_attachment_refs,
    extract_body_attachment_refs,
    filename_from_url,
    is_valid_url,
    resolve_timezone,
    to_date_only,
    to_date_text,
    to_enum_option_id,
    to_number,
)


def test_date_text_pinned_literal():
    assert to_date_text(1700000000, "UTC+6") == "11/15/2023, 4:13 AM"


@pytest.mark.parametrize("value", [1700000000, 1700000000000, "1700000000", "2023-11-14T22:13:20Z"])
def test_date_text_accepts_seconds_millis_and_iso(value):
    assert to_date_text(value, "UTC+6") == "11/15/2023, 4:13 AM"


def test_date_text_pm_and_midnight():
    assert to_date_text("2024-03-01T13:05:00+00:00", "UTC") == "3/1/2024, 1:05 PM"
    assert to_date_text("2024-03-01T00:00:00Z", "UTC") == "3/1/2024, 12:00 AM"


def test_naive_datetime_is_utc():
    assert to_date_text(datetime(2024, 1, 31, 20, 0), "UTC+6") == "2/1/2024, 2:00 AM"


@pytest.mark.parametrize("value", [None, "", "not a date", True, {"a": 1}])
def test_date_text_fails_closed(value):
    assert to_date_text(value, "UTC") is None


def test_date_only_keeps_calendar_dates():
    assert to_date_only("2024-05-20", "UTC-10") == "2024-05-20"


def test_date_only_shifts_timestamps_into_zone():
    assert to_date_only(1700000000, "UTC+6") == "2023-11-15"
    assert to_date_only(1700000000, "UTC") == "2023-11-14"


def test_resolve_timezone():
    assert resolve_timezone("UTC+5:30").utcoffset(None).total_seconds() == 5.5 * 3600
    assert resolve_timezone("GMT-3").utcoffset(None).total_seconds() == -3 * 3600
    assert resolve_timezone("Asia/Dhaka") is not None
    assert resolve_timezone("Not/AZone") is None


@pytest.mark.parametrize("value,expected", [
    ("1,500.50", 1500.5),
    (42, 42.0),
    (" 7 ", 7.0),
    ("abc", None),
    (None, None),
    (True, None),
    ("nan", None),
    ("inf", None),
    ("1e400", None),
    (float("nan"), None),
    (10 ** 400, None),
])
def test_to_number(value, expected):
    assert to_number(value) == expected


def test_enum_option_exact_match_skips_disabled():
    options = [
        {"gid": "o1", "name": "bKash", "enabled": False},
        {"gid": "o2", "name": "bKash", "enabled": True},
        {"gid": "o3", "name": "Nagad"},
    ]
    assert to_enum_option_id("f1", "bKash", lambda gid: options) == "o2"
    assert to_enum_option_id("f1", "bkash", lambda gid: options) is None
    assert to_enum_option_id("f1", "", lambda gid: options) is None


def test_enum_option_fetch_failure_returns_none():
    def fail(gid):
        raise AsanaAPIError("boom", status_code=500)

    assert to_enum_option_id("f1", "bKash", fail) is None


def test_url_helpers():
    assert is_valid_url("https://example.com/a.png")
    assert not is_valid_url("ftp://example.com/a.png")
    assert not is_valid_url("example.com/a.png")
    assert not is_valid_url(None)
    assert filename_from_url("https://example.com/files/My%20Receipt.pdf?sig=1") == "My Receipt.pdf"
    assert filename_from_url("https://example.com/") == "attachment"


def test_extract_attachment_refs_shapes():
    url = "https://files.example.com/a/receipt.png"
    assert extract_attachment_refs(url) == [AttachmentRef(url=url, filename="receipt.png")]
    assert extract_attachment_refs("not a url") == []
    assert extract_attachment_refs(None) == []

    refs = extract_attachment_refs([
        {"url": url, "name": "Receipt", "content_type": "image/png"},
        {"name": "no url"},
        "https://files.example.com/b.pdf",
    ])
    assert [r.filename for r in refs] == ["Receipt", "b.pdf"]
    assert refs[0].content_type == "image/png"


def test_extract_body_attachment_refs():
    body = ('<p>See <img src="https://cdn.example.com/i/1.png"> and '
            '<a href="https://cdn.example.com/doc.pdf">doc</a> '
            '<img src="https://cdn.example.com/i/1.png"></p>')
    refs = extract_body_attachment_refs(body)
    assert [r.url for r in refs] == ["https://cdn.example.com/i/1.png", "https://cdn.example.com/doc.pdf"]
    assert extract_body_attachment_refs(None) == []
