"""
Ticket <-> task link records.

A link is written to three places: the Intercom ticket attribute, the Asana
conversation-id custom field and an in-process map. Any of them can be
missing later (field not configured, process restarted), so lookups walk
them in a fixed order.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from base_client import IntegrationAPIError
from field_mapper import FieldMapping

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LinkRecord:
    conversation_id: str
    ticket_id: Optional[str]
    task_id: str


def custom_field_text(field: Dict[str, Any]) -> Optional[str]:
    value = field.get("text_value")
    if value in (None, ""):
        value = field.get("display_value")
    if value in (None, ""):
        return None
    return str(value).strip() or None


class LinkResolver:
    """Single entry point for reading and recording links"""

    def __init__(self, intercom, asana, task_id_attribute: str = "AsanaTaskID",
                 conversation_id_field: str = "Intercom Conversation ID"):
        self.intercom = intercom
        self.asana = asana
        self.task_id_attribute = task_id_attribute
        self.conversation_id_field = conversation_id_field
        self._task_to_conversation: Dict[str, str] = {}
        self._lock = threading.Lock()

    # ==================== LOOKUPS ====================

    def task_id_for_ticket(self, ticket: Optional[Dict[str, Any]]) -> Optional[str]:
        """Linked task id stored on the ticket, if any"""
        if not ticket:
            return None
        attrs = ticket.get("ticket_attributes") or {}
        value = attrs.get(self.task_id_attribute)
        if value in (None, ""):
            return None
        return str(value).strip() or None

    def resolve_link(self, task: Dict[str, Any], mapping: Optional[FieldMapping] = None) -> Optional[str]:
        """
        Conversation id linked to an Asana task.

        Order: custom field by gid, custom field by name, in-memory map.
        """
        task_id = str(task.get("gid", ""))
        custom_fields: List[Dict[str, Any]] = task.get("custom_fields") or []

        field_gid = mapping.gid(self.conversation_id_field) if mapping else None
        if field_gid:
            for cf in custom_fields:
                if cf.get("gid") == field_gid:
                    value = custom_field_text(cf)
                    if value:
                        logger.info(f"Found conversation ID {value} in custom field (by id) on task {task_id}")
                        return value
                    break

        for cf in custom_fields:
            if cf.get("name") == self.conversation_id_field:
                value = custom_field_text(cf)
                if value:
                    logger.info(f"Found conversation ID {value} in custom field (by name) on task {task_id}")
                    return value
                break

        with self._lock:
            value = self._task_to_conversation.get(task_id)
        if value:
            logger.info(f"Found conversation ID {value} in memory map for task {task_id}")
        return value

    def remembered(self, task_id: str) -> Optional[str]:
        with self._lock:
            return self._task_to_conversation.get(str(task_id))

    def remember(self, task_id: str, conversation_id: str) -> None:
        with self._lock:
            self._task_to_conversation[str(task_id)] = str(conversation_id)

    def mapping_count(self) -> int:
        with self._lock:
            return len(self._task_to_conversation)

    # ==================== RECORDING ====================

    def record_link(self, link: LinkRecord, mapping: Optional[FieldMapping] = None) -> Dict[str, bool]:
        """
        Record a new link: ticket attribute, then task custom field, then memory.

        Each step is best-effort; the returned dict says which ones stuck.
        """
        recorded = {"ticket_attribute": False, "task_field": False, "memory": False}

        if link.ticket_id:
            try:
                self.intercom.update_ticket(link.ticket_id, ticket_attributes={self.task_id_attribute: link.task_id})
                recorded["ticket_attribute"] = True
                logger.info(f"✓ Saved Asana task {link.task_id} on Intercom ticket {link.ticket_id}")
            except (IntegrationAPIError, requests.RequestException) as e:
                logger.error(f"✗ Error updating ticket {link.ticket_id} with task id: {e}")

        field_gid = mapping.gid(self.conversation_id_field) if mapping else None
        if field_gid:
            try:
                self.asana.update_task(link.task_id, custom_fields={field_gid: str(link.conversation_id)})
                recorded["task_field"] = True
            except (IntegrationAPIError, requests.RequestException) as e:
                logger.error(f"✗ Error writing conversation id to task {link.task_id}: {e}")
        else:
            logger.warning(f"⚠ '{self.conversation_id_field}' field not configured, task {link.task_id} "
                           "will rely on the in-memory link")

        self.remember(link.task_id, link.conversation_id)
        recorded["memory"] = True
        logger.info(f"Stored mapping: Asana task {link.task_id} → Intercom conversation {link.conversation_id}")
        return recorded
