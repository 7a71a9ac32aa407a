"""
Provenance tags and loop guards.

Every note or comment the bridge relays is prefixed with a literal tag naming
the system it came from. Text that already starts with a tag was written or
relayed by the bridge and must not be bounced back. Events authored by an
integration app are dropped as well; both guards always run.
"""

import html
import re
from enum import Enum
from typing import Optional, Tuple


class Direction(str, Enum):
    INTERCOM_TO_ASANA = "intercom_to_asana"
    ASANA_TO_INTERCOM = "asana_to_intercom"

    @property
    def opposite(self) -> "Direction":
        if self is Direction.INTERCOM_TO_ASANA:
            return Direction.ASANA_TO_INTERCOM
        return Direction.INTERCOM_TO_ASANA


# Literal tag text is part of the contract with both systems; keep it stable.
TAG_LABELS = {
    Direction.INTERCOM_TO_ASANA: "Intercom note",
    Direction.ASANA_TO_INTERCOM: "Asana comment",
}

_TAG_PATTERNS = {
    direction: re.compile(r"^\s*\[" + re.escape(label) + r"(?: by [^\]]*)?\]\s*")
    for direction, label in TAG_LABELS.items()
}

_BLOCK_TAG_RE = re.compile(r"<\s*(?:br\s*/?|/p|/div|/li)\s*>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")

SKIP_INTEGRATION_AUTHOR = "authored_by_integration"
SKIP_ALREADY_SYNCED = "already_synced"
SKIP_EMPTY = "empty"


def html_to_text(body: Optional[str]) -> str:
    """Plain text of an Intercom HTML body"""
    if not body:
        return ""
    text = _BLOCK_TAG_RE.sub("\n", body)
    text = _TAG_RE.sub("", text)
    text = html.unescape(text)
    lines = [" ".join(line.split()) for line in text.splitlines()]
    return "\n".join(line for line in lines if line).strip()


def text_to_html(text: str) -> str:
    return "".join(f"<p>{html.escape(line)}</p>" for line in text.splitlines() if line.strip())


def make_tag(direction: Direction, author: Optional[str] = None) -> str:
    label = TAG_LABELS[direction]
    if author:
        return f"[{label} by {author}]"
    return f"[{label}]"


def has_tag(text: str, direction: Direction) -> bool:
    return bool(_TAG_PATTERNS[direction].match(text or ""))


def strip_tag(text: str, direction: Direction) -> str:
    """Remove a leading tag of ``direction``"""
    return _TAG_PATTERNS[direction].sub("", text or "", count=1).strip()


def tag_text(text: str, direction: Direction, author: Optional[str] = None) -> str:
    body = strip_tag(text, direction)
    return f"{make_tag(direction, author)} {body}".strip()


def check_relay(text: str, direction: Direction, authored_by_integration: bool) -> Tuple[bool, Optional[str]]:
    """
    Decide whether ``text`` may be relayed in ``direction``.

    Returns ``(allowed, skip_reason)``.
    """
    if authored_by_integration:
        return False, SKIP_INTEGRATION_AUTHOR
    # opposite tag: written by the bridge on this side; same tag: already relayed once
    if has_tag(text, direction.opposite) or has_tag(text, direction):
        return False, SKIP_ALREADY_SYNCED
    if not (text or "").strip():
        return False, SKIP_EMPTY
    return True, None
