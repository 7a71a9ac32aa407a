"""
Inbound webhook payloads normalized into SyncEvent values.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

SOURCE_INTERCOM = "intercom"
SOURCE_ASANA = "asana"

NOTE_TOPICS = ("conversation.admin.noted", "ticket.note.created")
STATE_TOPICS = ("ticket.state.updated",)


class EventKind(str, Enum):
    TICKET_STATUS_CHANGED = "ticket-status-changed"
    NOTE_ADDED = "note-added"
    TASK_COMMENTED = "task-commented"
    TASK_FIELD_CHANGED = "task-field-changed"


@dataclass
class SyncEvent:
    kind: EventKind
    source: str
    payload: Dict[str, Any] = field(default_factory=dict)
    authored_by_integration: bool = False
    conversation_id: Optional[str] = None
    ticket_id: Optional[str] = None
    task_id: Optional[str] = None
    story_id: Optional[str] = None
    body: Optional[str] = None
    author_name: Optional[str] = None
    state_label: Optional[str] = None
    contact: Optional[Dict[str, Any]] = None
    attachments: List[Dict[str, Any]] = field(default_factory=list)


def _str_or_none(value: Any) -> Optional[str]:
    if value in (None, ""):
        return None
    return str(value)


def _parts(item: Dict[str, Any]) -> List[Dict[str, Any]]:
    for key in ("conversation_parts", "ticket_parts"):
        container = item.get(key) or {}
        parts = container.get(key) if isinstance(container, dict) else container
        if parts:
            return list(parts)
    return []


def _item_ids(item: Dict[str, Any]) -> Dict[str, Optional[str]]:
    if item.get("type") == "ticket":
        return {
            "ticket_id": _str_or_none(item.get("id")),
            "conversation_id": _str_or_none(item.get("conversation_id")),
        }
    ticket = item.get("ticket") or {}
    return {
        "conversation_id": _str_or_none(item.get("id")),
        "ticket_id": _str_or_none(ticket.get("id")),
    }


def _first_contact(item: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    container = item.get("contacts") or {}
    contacts = container.get("contacts") if isinstance(container, dict) else container
    if contacts and isinstance(contacts[0], dict):
        return contacts[0]
    return None


def _state_label(state: Any) -> Optional[str]:
    if isinstance(state, dict):
        return state.get("internal_label") or state.get("external_label") or state.get("category")
    return _str_or_none(state)


def is_integration_author(author: Optional[Dict[str, Any]], integration_admin_ids: Iterable[str] = ()) -> bool:
    if not author:
        return False
    if author.get("type") == "bot":
        return True
    return str(author.get("id", "")) in {str(a) for a in integration_admin_ids}


def parse_intercom_webhook(body: Dict[str, Any], integration_admin_ids: Iterable[str] = ()) -> Optional[SyncEvent]:
    """Intercom notification_event -> SyncEvent, or None for topics we ignore"""
    topic = body.get("topic", "")
    item = (body.get("data") or {}).get("item") or {}
    if not item:
        return None
    ids = _item_ids(item)

    if topic in NOTE_TOPICS:
        notes = [p for p in _parts(item) if p.get("part_type") in ("note", "note_and_reopen")]
        if not notes:
            logger.info(f"No note part in {topic} payload")
            return None
        note = notes[-1]
        author = note.get("author") or {}
        return SyncEvent(
            kind=EventKind.NOTE_ADDED,
            source=SOURCE_INTERCOM,
            payload=body,
            authored_by_integration=is_integration_author(author, integration_admin_ids),
            body=note.get("body") or "",
            author_name=author.get("name") or author.get("email"),
            attachments=list(note.get("attachments") or []),
            **ids,
        )

    if topic in STATE_TOPICS:
        return SyncEvent(
            kind=EventKind.TICKET_STATUS_CHANGED,
            source=SOURCE_INTERCOM,
            payload=body,
            state_label=_state_label(item.get("ticket_state")),
            contact=_first_contact(item),
            **ids,
        )

    return None


def parse_asana_events(events: Iterable[Dict[str, Any]], bot_user_gid: Optional[str] = None) -> List[SyncEvent]:
    """Asana webhook events -> SyncEvents; irrelevant events are dropped"""
    parsed = []
    for event in events or []:
        resource = event.get("resource") or {}
        user_gid = _str_or_none((event.get("user") or {}).get("gid"))
        by_bot = bool(bot_user_gid) and user_gid == str(bot_user_gid)
        action = event.get("action")
        resource_type = resource.get("resource_type")

        if action == "changed" and resource_type == "task":
            parsed.append(SyncEvent(
                kind=EventKind.TASK_FIELD_CHANGED,
                source=SOURCE_ASANA,
                payload=event,
                authored_by_integration=by_bot,
                task_id=_str_or_none(resource.get("gid")),
            ))
        elif action == "added" and resource_type == "story":
            parent = event.get("parent") or {}
            subtype = resource.get("resource_subtype")
            if parent.get("resource_type") != "task":
                continue
            if subtype and subtype != "comment_added":
                continue
            parsed.append(SyncEvent(
                kind=EventKind.TASK_COMMENTED,
                source=SOURCE_ASANA,
                payload=event,
                authored_by_integration=by_bot,
                task_id=_str_or_none(parent.get("gid")),
                story_id=_str_or_none(resource.get("gid")),
            ))
    return parsed
