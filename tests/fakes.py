"""
In-memory stand-ins for the Intercom and Asana clients
"""

import itertools

from asana_client import AsanaAPIError
from intercom_client import IntercomAPIError


class FakeResponse:
    def __init__(self, content=b"file-bytes", content_type="image/png"):
        self.content = content
        self.headers = {"content-type": content_type}


class FakeIntercom:
    """Records every write; tickets are updated in place like the real API"""

    def __init__(self):
        self.conversations = {}
        self.tickets = {}
        self.states = []
        self.contacts = {}
        self.files = {}
        self.notes = []
        self.ticket_updates = []

    def add_ticket(self, conversation_id, ticket_id, attributes=None, ticket_type_id="T1"):
        self.conversations[conversation_id] = {"id": conversation_id, "ticket": {"id": ticket_id}}
        self.tickets[ticket_id] = {
            "id": ticket_id,
            "ticket_type": {"id": ticket_type_id},
            "ticket_attributes": dict(attributes or {}),
        }

    def get_conversation(self, conversation_id):
        if conversation_id not in self.conversations:
            raise IntercomAPIError("Intercom API error 404", status_code=404)
        return self.conversations[conversation_id]

    def get_ticket(self, ticket_id):
        if ticket_id not in self.tickets:
            raise IntercomAPIError("Intercom API error 404", status_code=404)
        return self.tickets[ticket_id]

    def update_ticket(self, ticket_id, ticket_attributes=None, ticket_state_id=None, open=None):
        self.ticket_updates.append({
            "ticket_id": ticket_id,
            "ticket_attributes": ticket_attributes,
            "ticket_state_id": ticket_state_id,
            "open": open,
        })
        ticket = self.tickets.setdefault(ticket_id, {"id": ticket_id, "ticket_attributes": {}})
        ticket["ticket_attributes"].update(ticket_attributes or {})
        return ticket

    def list_ticket_states(self):
        return self.states

    def add_note(self, conversation_id, body):
        self.notes.append({"conversation_id": conversation_id, "body": body})
        return {"id": f"part-{len(self.notes)}"}

    def get_contact_name(self, contact_id, default="Unknown Contact"):
        return self.contacts.get(contact_id, default)

    def download(self, url, authenticated=False):
        if url not in self.files:
            raise IntercomAPIError("Download failed with status 404", status_code=404)
        return self.files[url]


class FakeAsana:
    def __init__(self):
        self.settings = {}
        self.enum_options = {}
        self.tasks = {}
        self.stories = {}
        self.created = []
        self.comments = []
        self.uploads = []
        self.task_updates = []
        self.failing_uploads = set()
        self.settings_calls = 0
        self._ids = itertools.count(1)

    def get_custom_field_settings(self, project_id):
        self.settings_calls += 1
        return self.settings.get(project_id, [])

    def get_enum_options(self, field_gid):
        return self.enum_options.get(field_gid, [])

    def create_task(self, name, project_ids, notes="", custom_fields=None, workspace_id=None):
        gid = f"task-{next(self._ids)}"
        task = {
            "gid": gid,
            "name": name,
            "notes": notes,
            "projects": [{"gid": p} for p in project_ids],
            "custom_fields": [],
            "completed": False,
        }
        self.tasks[gid] = task
        self.created.append({"gid": gid, "name": name, "projects": project_ids,
                             "custom_fields": dict(custom_fields or {})})
        return task

    def get_task(self, task_id):
        if task_id not in self.tasks:
            raise AsanaAPIError(f"Task {task_id} not found", status_code=404)
        return self.tasks[task_id]

    def update_task(self, task_id, custom_fields=None, **fields):
        self.task_updates.append({"task_id": task_id, "custom_fields": custom_fields, **fields})
        task = self.tasks.setdefault(task_id, {"gid": task_id, "custom_fields": []})
        for gid, value in (custom_fields or {}).items():
            task["custom_fields"] = [cf for cf in task["custom_fields"] if cf["gid"] != gid]
            task["custom_fields"].append({"gid": gid, "text_value": value, "display_value": value})
        return task

    def add_comment(self, task_id, text):
        self.comments.append({"task_id": task_id, "text": text})
        return {"gid": f"story-{len(self.comments)}", "text": text}

    def get_story(self, story_id):
        return self.stories.get(story_id, {})

    def upload_attachment(self, parent_id, filename, content, content_type="application/octet-stream"):
        if filename in self.failing_uploads:
            raise AsanaAPIError("Asana API error 500", status_code=500)
        self.uploads.append({"parent": parent_id, "filename": filename, "content_type": content_type})
        return {"gid": f"att-{len(self.uploads)}", "permanent_url": f"https://app.asana.com/app/asana/-/get_asset?name={filename}"}


def field_setting(gid, name, subtype):
    return {"custom_field": {"gid": gid, "name": name, "resource_subtype": subtype}}


PROJECT_FIELDS = [
    field_setting("f-wallet", "Wallet", "text"),
    field_setting("f-amount", "Amount", "number"),
    field_setting("f-date", "Transaction Date", "text"),
    field_setting("f-gateway", "Payment Gateway", "enum"),
    field_setting("f-conv", "Intercom Conversation ID", "text"),
    field_setting("f-status", "Status", "enum"),
]


def make_raw_config():
    return {
        "intercom": {
            "access_token": "ic-token",
            "admin_id": "999",
            "integration_admin_ids": ["42"],
        },
        "asana": {
            "access_token": "as-token",
            "workspace_id": "W1",
            "project_id": "P1",
            "bot_user_gid": "bot-1",
        },
        "sync": {
            "timezone": "UTC+6",
            "field_map": {
                "Wallet": "Wallet",
                "Amount": "Amount",
                "Transaction Date": "Transaction Date",
                "Payment Gateway": "Payment Gateway",
            },
            "date_attributes": ["Transaction Date"],
            "task_creation_statuses": ["Submitted"],
            "closing_statuses": ["Done"],
            "never_close_statuses": ["Waiting on customer"],
        },
    }
