"""
Intercom Canvas Kit responses.

Cards are static data: each builder returns the JSON body Intercom expects
from /initialize and /submit.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class SubmitAction(str, Enum):
    CREATE_TASK = "create_task"
    SYNC_FILES = "sync_files"
    REFRESH = "refresh"


# ids used by older card layouts
ACTION_ALIASES = {
    "submit_button": SubmitAction.CREATE_TASK,
    "sync_files_button": SubmitAction.SYNC_FILES,
    "refresh_button": SubmitAction.REFRESH,
}


def parse_action(component_id: Optional[str]) -> Optional[SubmitAction]:
    if not component_id:
        return None
    try:
        return SubmitAction(component_id)
    except ValueError:
        return ACTION_ALIASES.get(component_id)


def text(component_id: str, value: str, style: str = "paragraph") -> Dict[str, Any]:
    return {"type": "text", "id": component_id, "text": value, "align": "center", "style": style}


def button(action: SubmitAction, label: str, style: str = "primary") -> Dict[str, Any]:
    return {"type": "button", "id": action.value, "label": label, "style": style, "action": {"type": "submit"}}


def card(components: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"canvas": {"content": {"components": components}}}


def initial_card() -> Dict[str, Any]:
    return card([
        text("header", "Create Asana Task for Ticket", "header"),
        button(SubmitAction.CREATE_TASK, "Create Asana Task"),
    ])


def linked_card(task_id: str, status: Optional[str] = None) -> Dict[str, Any]:
    components = [
        text("success", "✓ Asana Task Already Created", "header"),
        text("task_id", f"Task ID: {task_id}"),
    ]
    if status:
        components.append(text("task_status", f"Status: {status}"))
    components.append(text("info", "This ticket already has an Asana task associated with it."))
    components.append(button(SubmitAction.SYNC_FILES, "Sync Attachments", "secondary"))
    components.append(button(SubmitAction.REFRESH, "Refresh", "secondary"))
    return card(components)


def already_exists_card(task_id: str) -> Dict[str, Any]:
    return card([
        text("already_submitted", "Task already created for this ticket", "header"),
        text("task_id", f"Task ID: {task_id}"),
        text("info", "You can only create one Asana task per ticket."),
        button(SubmitAction.REFRESH, "Refresh", "secondary"),
    ])


def created_card(task_name: str, task_id: str, attachment_status: Optional[str],
                 synced_fields: int) -> Dict[str, Any]:
    components = [
        text("success", "✓ Asana Task Created", "header"),
        text("task_name", f"Task: {task_name}"),
        text("task_id", f"Task ID: {task_id}"),
    ]
    if attachment_status:
        components.append(text("attachment_status", attachment_status))
    if synced_fields > 0:
        components.append(text("synced_fields", f"✓ Synced {synced_fields} custom fields to Asana"))
    else:
        components.append(text("synced_fields", "⚠ No mapped custom fields were synced to Asana"))
    return card(components)


def files_synced_card(task_id: str, attachment_status: Optional[str]) -> Dict[str, Any]:
    return card([
        text("header", "Attachment Sync", "header"),
        text("task_id", f"Task ID: {task_id}"),
        text("attachment_status", attachment_status or "No attachments found on this ticket"),
        button(SubmitAction.REFRESH, "Back", "secondary"),
    ])


def error_card(message: Optional[str], title: str = "Error Creating Task") -> Dict[str, Any]:
    return card([
        text("error", title, "header"),
        text("error_message", message or "An unexpected error occurred"),
        button(SubmitAction.REFRESH, "Try Again", "secondary"),
    ])
