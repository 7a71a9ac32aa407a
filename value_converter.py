"""
Value conversion between Intercom ticket attributes and Asana custom fields.

Every converter fails closed: malformed input gives ``None`` (or an empty list),
never an exception.
"""

import html
import logging
import math
import re
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Any, Callable, Dict, List, Optional, Union
from urllib.parse import unquote, urlparse

import requests
from dateutil import parser as dtparser
from dateutil import tz

from base_client import IntegrationAPIError

logger = logging.getLogger(__name__)

_OFFSET_RE = re.compile(r"^(?:UTC|GMT)\s*([+-])\s*(\d{1,2})(?::?(\d{2}))?$", re.IGNORECASE)
_NUMERIC_RE = re.compile(r"^-?\d+(?:\.\d+)?$")
_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_BODY_URL_RE = re.compile(r"""(?:src|href)\s*=\s*["'](https?://[^"']+)["']""", re.IGNORECASE)

# Unix timestamps above this are milliseconds
_MS_THRESHOLD = 1e11


@dataclass(frozen=True)
class AttachmentRef:
    url: str
    filename: str
    content_type: Optional[str] = None


def is_valid_url(value: Any) -> bool:
    """True for absolute http/https URLs"""
    if not isinstance(value, str) or not value.strip():
        return False
    try:
        parsed = urlparse(value.strip())
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def filename_from_url(url: str, default: str = "attachment") -> str:
    try:
        path = urlparse(url).path
    except ValueError:
        return default
    name = unquote(path.rstrip("/").split("/")[-1]) if path else ""
    return name or default


def resolve_timezone(name: Optional[str]) -> Optional[tzinfo]:
    """
    Resolve a fixed zone: ``UTC``, ``UTC+6``, ``GMT-05:30`` or an IANA name.
    """
    if not name:
        return tz.UTC
    name = name.strip()
    if name.upper() in ("UTC", "GMT", "Z"):
        return tz.UTC

    match = _OFFSET_RE.match(name)
    if match:
        sign, hours, minutes = match.groups()
        offset = int(hours) * 3600 + int(minutes or 0) * 60
        if sign == "-":
            offset = -offset
        return tz.tzoffset(name.upper(), offset)

    zone = tz.gettz(name)
    if zone is None:
        logger.warning(f"Unknown timezone '{name}'")
    return zone


def _parse_datetime(value: Any) -> Optional[Union[datetime, date]]:
    """Parse a timestamp, ISO string, datetime or date. Returns aware datetimes or plain dates."""
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=tz.UTC)
    if isinstance(value, date):
        return value

    if isinstance(value, (int, float)):
        seconds = float(value)
        if abs(seconds) > _MS_THRESHOLD:
            seconds = seconds / 1000.0
        try:
            return datetime.fromtimestamp(seconds, tz=tz.UTC)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if _NUMERIC_RE.match(text):
            return _parse_datetime(float(text))
        if _DATE_ONLY_RE.match(text):
            try:
                return date.fromisoformat(text)
            except ValueError:
                return None
        try:
            parsed = dtparser.isoparse(text)
        except (ValueError, OverflowError):
            try:
                parsed = dtparser.parse(text)
            except (ValueError, OverflowError):
                return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=tz.UTC)

    return None


def _in_zone(value: Any, timezone: Optional[str]) -> Optional[Union[datetime, date]]:
    parsed = _parse_datetime(value)
    if parsed is None:
        return None
    zone = resolve_timezone(timezone)
    if zone is None:
        return None
    if isinstance(parsed, datetime):
        return parsed.astimezone(zone)
    return datetime(parsed.year, parsed.month, parsed.day, tzinfo=zone)


def to_date_text(value: Any, timezone: Optional[str] = "UTC") -> Optional[str]:
    """
    Render as ``M/D/YYYY, h:mm AM/PM`` in the fixed zone.

    >>> to_date_text(1700000000, "UTC+6")
    '11/15/2023, 4:13 AM'
    """
    local = _in_zone(value, timezone)
    if local is None:
        return None
    hour12 = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return f"{local.month}/{local.day}/{local.year}, {hour12}:{local.minute:02d} {meridiem}"


def to_date_only(value: Any, timezone: Optional[str] = "UTC") -> Optional[str]:
    """Calendar date (``YYYY-MM-DD``) of the value in the fixed zone"""
    parsed = _parse_datetime(value)
    if isinstance(parsed, date) and not isinstance(parsed, datetime):
        return parsed.isoformat()
    local = _in_zone(value, timezone)
    if local is None:
        return None
    return local.date().isoformat()


def to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    text = value if isinstance(value, (int, float)) else str(value).strip().replace(",", "")
    try:
        result = float(text)
    except (ValueError, OverflowError):
        return None
    # nan and inf cannot be sent as JSON
    return result if math.isfinite(result) else None


def to_enum_option_id(field_ref: Any, label_text: Any,
                      fetch_options: Callable[[str], List[Dict[str, Any]]]) -> Optional[str]:
    """
    Look up an enum option gid by exact, case-sensitive name.

    Options are fetched live on every call since option sets change in Asana.
    """
    if label_text is None or label_text == "":
        return None
    field_gid = getattr(field_ref, "gid", field_ref)
    if not field_gid:
        return None

    try:
        options = fetch_options(str(field_gid)) or []
    except (IntegrationAPIError, requests.RequestException) as e:
        logger.warning(f"Could not fetch enum options for field {field_gid}: {e}")
        return None

    label = str(label_text)
    for option in options:
        if option.get("enabled") is False:
            continue
        if option.get("name") == label:
            return option.get("gid")

    logger.info(f"No enum option named '{label}' on field {field_gid}")
    return None


def _ref_from_object(obj: Dict[str, Any]) -> Optional[AttachmentRef]:
    url = obj.get("url")
    if not isinstance(url, str) or not url.strip():
        return None
    url = url.strip()
    return AttachmentRef(
        url=url,
        filename=obj.get("name") or filename_from_url(url),
        content_type=obj.get("content_type"),
    )


def extract_attachment_refs(value: Any) -> List[AttachmentRef]:
    """
    Attachment refs from a URL string, a file object or a list of file objects.

    File objects keep their URL even when it is malformed so the relay can
    report it as ``invalid_url``; bare strings must already be URLs.
    """
    if value is None:
        return []

    if isinstance(value, str):
        if is_valid_url(value):
            url = value.strip()
            return [AttachmentRef(url=url, filename=filename_from_url(url))]
        return []

    if isinstance(value, dict):
        ref = _ref_from_object(value)
        return [ref] if ref else []

    if isinstance(value, (list, tuple)):
        refs = []
        for item in value:
            if isinstance(item, dict):
                ref = _ref_from_object(item)
                if ref:
                    refs.append(ref)
                else:
                    logger.debug("Attachment entry missing URL property")
            elif isinstance(item, str) and is_valid_url(item):
                refs.append(AttachmentRef(url=item.strip(), filename=filename_from_url(item.strip())))
        return refs

    return []


def extract_body_attachment_refs(body: Optional[str]) -> List[AttachmentRef]:
    """Image and link URLs embedded in an HTML note body"""
    if not body:
        return []
    seen = set()
    refs = []
    for raw in _BODY_URL_RE.findall(body):
        url = html.unescape(raw)
        if url in seen or not is_valid_url(url):
            continue
        seen.add(url)
        refs.append(AttachmentRef(url=url, filename=filename_from_url(url)))
    return refs
