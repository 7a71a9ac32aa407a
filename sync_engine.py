"""
Intercom <-> Asana Sync Engine
Reconciles tickets and tasks: idempotent task creation, note/comment relay
with loop prevention, attachment re-hosting and status synchronization.

Every public operation returns a result dict with a ``status`` key and never
raises for remote failures; the webhook callers would only retry on a 5xx,
which could duplicate side effects.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from attachment_relay import STATUS_SUCCESS, UPLOADED_NO_URL, AttachmentRelay, AttachmentResult, summarize
from base_client import IntegrationAPIError
from config import Config
from field_mapper import FieldMapper, FieldMapping, FieldSpec, FieldType
from links import LinkRecord, LinkResolver
from provenance import SKIP_EMPTY, Direction, check_relay, html_to_text, tag_text, text_to_html
from status_resolver import decide_status_update
from sync_events import EventKind, SyncEvent, parse_asana_events, parse_intercom_webhook
from value_converter import (
    AttachmentRef,
    extract_attachment_refs,
    extract_body_attachment_refs,
    to_date_only,
    to_date_text,
    to_enum_option_id,
    to_number,
)

logger = logging.getLogger(__name__)

REMOTE_ERRORS = (IntegrationAPIError, requests.RequestException)

UNKNOWN_CONTACT = "Unknown Contact"


def safe_str(x: Any) -> str:
    """Safely convert to string"""
    if x is None:
        return ""
    return str(x).strip()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _norm(value: Any) -> str:
    return safe_str(value).lower()


class SyncEngine:
    """Reconciler between Intercom tickets and Asana tasks"""

    def __init__(self, cfg: Config, intercom, asana, field_mapper: Optional[FieldMapper] = None,
                 links: Optional[LinkResolver] = None, relay: Optional[AttachmentRelay] = None,
                 max_workers: int = 4):
        self.cfg = cfg
        self.intercom = intercom
        self.asana = asana
        self.max_workers = max_workers
        self.sync_opts = cfg.sync
        self.timezone = cfg.timezone
        self.default_project = safe_str(cfg.asana.get("project_id"))
        self.bot_user_gid = safe_str(cfg.asana.get("bot_user_gid")) or None
        self.integration_admin_ids = [safe_str(a) for a in cfg.intercom.get("integration_admin_ids", []) or []]

        self.field_mapper = field_mapper or FieldMapper(
            asana,
            critical_fields=[cfg.conversation_id_field, cfg.status_field],
            file_fields=cfg.asana.get("file_fields", []) or [],
        )
        self.links = links or LinkResolver(
            intercom, asana,
            task_id_attribute=cfg.task_id_attribute,
            conversation_id_field=cfg.conversation_id_field,
        )
        self.relay = relay or AttachmentRelay(asana, source_client=intercom, max_workers=max_workers)

    # ============================================
    # HELPERS
    # ============================================

    def _concurrently(self, **calls: Callable[[], Any]) -> Dict[str, Any]:
        """Run independent calls on a thread pool and wait for all of them"""
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(calls)) or 1) as pool:
            futures = {name: pool.submit(fn) for name, fn in calls.items()}
            return {name: future.result() for name, future in futures.items()}

    def known_projects(self) -> List[str]:
        routing = self.cfg.asana.get("project_routing") or {}
        projects = [self.default_project]
        if routing.get("default_project"):
            projects.append(safe_str(routing["default_project"]))
        projects.extend(safe_str(p) for p in (routing.get("projects") or {}).values())
        return [p for i, p in enumerate(projects) if p and p not in projects[:i]]

    def route_project(self, ticket_attrs: Dict[str, Any]) -> str:
        """Project for a new task, chosen by the routing attribute when configured"""
        routing = self.cfg.asana.get("project_routing") or {}
        fallback = safe_str(routing.get("default_project")) or self.default_project
        attribute = routing.get("attribute")
        if not attribute:
            return self.default_project

        value = safe_str(ticket_attrs.get(attribute))
        if not value:
            return fallback
        projects = {safe_str(k): safe_str(v) for k, v in (routing.get("projects") or {}).items()}
        if value in projects:
            return projects[value]
        lowered = {k.lower(): v for k, v in projects.items()}
        project = lowered.get(value.lower())
        if project:
            return project
        logger.info(f"No project routed for {attribute}='{value}', using {fallback}")
        return fallback

    def _task_project(self, task: Dict[str, Any]) -> str:
        known = self.known_projects()
        for project in task.get("projects") or []:
            gid = safe_str(project.get("gid"))
            if gid in known:
                return gid
        return self.default_project

    def ticket_id_for_conversation(self, conversation_id: str) -> Optional[str]:
        conversation = self.intercom.get_conversation(conversation_id)
        ticket_id = (conversation.get("ticket") or {}).get("id")
        return safe_str(ticket_id) or None

    def _contact_name(self, contact: Optional[Dict[str, Any]]) -> str:
        contact = contact or {}
        if contact.get("name"):
            return contact["name"]
        if contact.get("id"):
            return self.intercom.get_contact_name(contact["id"], default=UNKNOWN_CONTACT)
        return UNKNOWN_CONTACT

    def attachment_refs_for_ticket(self, ticket_attrs: Dict[str, Any]) -> List[AttachmentRef]:
        """Refs from the first non-empty configured attachment attribute"""
        for attribute in self.cfg.attachment_attributes:
            value = ticket_attrs.get(attribute)
            if value:
                refs = extract_attachment_refs(value)
                logger.info(f"Found {len(refs)} attachment(s) in ticket attribute '{attribute}'")
                return refs
        logger.info("No attachment in ticket attributes")
        return []

    # ============================================
    # FIELD CONVERSION
    # ============================================

    def convert_value(self, attribute: str, value: Any, spec: FieldSpec) -> Any:
        """Ticket attribute value -> Asana custom field value, or None to skip"""
        if value is None or value == "" or value == []:
            return None

        if spec.type == FieldType.SHORT_TEXT:
            if attribute in (self.sync_opts.get("date_attributes") or []):
                return to_date_text(value, self.timezone)
            if isinstance(value, (dict, list)):
                return None
            return safe_str(value) or None

        if spec.type == FieldType.NUMBER:
            return to_number(value)

        if spec.type == FieldType.ENUM:
            option_gid = to_enum_option_id(spec, value, self.asana.get_enum_options)
            if option_gid and spec.multi:
                return [option_gid]
            return option_gid

        if spec.type == FieldType.DATE:
            day = to_date_only(value, self.timezone)
            return {"date": day} if day else None

        return None

    def build_custom_fields(self, ticket_attrs: Dict[str, Any],
                            mapping: FieldMapping) -> Tuple[Dict[str, Any], Dict[str, List[AttachmentRef]]]:
        """
        Custom field payload for a new task.

        File-typed fields are returned separately: their values only exist
        once the attachments have been re-hosted.
        """
        custom_fields: Dict[str, Any] = {}
        file_fields: Dict[str, List[AttachmentRef]] = {}

        for attribute, field_name in self.cfg.field_map.items():
            spec = mapping.get(field_name)
            if spec is None:
                logger.debug(f"Asana field '{field_name}' not in project {mapping.project_id}, skipping")
                continue
            value = ticket_attrs.get(attribute)

            if spec.type == FieldType.FILE:
                refs = extract_attachment_refs(value)
                if refs:
                    file_fields[spec.gid] = refs
                continue

            converted = self.convert_value(attribute, value, spec)
            if converted is None:
                if value not in (None, "", []):
                    logger.warning(f"⚠ Could not convert '{attribute}'={value!r} for field '{field_name}'")
                continue
            custom_fields[spec.gid] = converted

        return custom_fields, file_fields

    # ============================================
    # LINK STATE
    # ============================================

    def link_state(self, conversation_id: Optional[str]) -> Dict[str, Any]:
        """Current link of a conversation, for the initialize card"""
        state = {"linked": False, "conversation_id": conversation_id, "ticket_id": None, "task_id": None}
        if not conversation_id:
            return state
        try:
            ticket_id = self.ticket_id_for_conversation(conversation_id)
            state["ticket_id"] = ticket_id
            if not ticket_id:
                return state
            ticket = self.intercom.get_ticket(ticket_id)
        except REMOTE_ERRORS as e:
            logger.error(f"Could not read link state for conversation {conversation_id}: {e}")
            state["error"] = str(e)
            return state

        task_id = self.links.task_id_for_ticket(ticket)
        if task_id:
            state.update(linked=True, task_id=task_id)
            if self.cfg.status_attribute:
                state["task_status"] = (ticket.get("ticket_attributes") or {}).get(self.cfg.status_attribute)
        return state

    # ============================================
    # TASK CREATION
    # ============================================

    def create_task(self, conversation_id: Optional[str], contact: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Create the Asana task for a conversation's ticket, at most once.

        The ticket is re-read right before creating; an existing task id short
        circuits to ``already_exists``.
        """
        result: Dict[str, Any] = {"status": "failed", "conversation_id": conversation_id}
        if not conversation_id:
            result["error"] = "No conversation in request"
            return result

        try:
            ticket_id = self.ticket_id_for_conversation(conversation_id)
            if not ticket_id:
                result["error"] = "No ticket found for this conversation"
                return result
            result["ticket_id"] = ticket_id

            fetched = self._concurrently(
                ticket=lambda: self.intercom.get_ticket(ticket_id),
                contact_name=lambda: self._contact_name(contact),
                default_mapping=lambda: self.field_mapper.get(self.default_project),
            )
            ticket = fetched["ticket"]
            if not ticket:
                result["error"] = "Failed to fetch ticket details"
                return result

            existing = self.links.task_id_for_ticket(ticket)
            if existing:
                logger.info(f"Ticket {ticket_id} already linked to Asana task {existing}")
                return {"status": "already_exists", "conversation_id": conversation_id,
                        "ticket_id": ticket_id, "task_id": existing}

            ticket_attrs = ticket.get("ticket_attributes") or {}
            project_id = self.route_project(ticket_attrs)
            mapping = fetched["default_mapping"] if project_id == self.default_project \
                else self.field_mapper.get(project_id)
            contact_name = fetched["contact_name"]

            custom_fields, file_fields = self.build_custom_fields(ticket_attrs, mapping)
            logger.info(f"Custom fields to sync: {len(custom_fields)}")

            email = (contact or {}).get("email") or "N/A"
            notes = (f"Task created from Intercom conversation {conversation_id}\n\n"
                     f"Contact Information:\n- Name: {contact_name}\n- Email: {email}")

            task = self.asana.create_task(contact_name, [project_id], notes=notes, custom_fields=custom_fields)
            task_id = safe_str(task.get("gid"))
            logger.info(f"✓ Created Asana task {task_id} for ticket {ticket_id} in project {project_id}")

            attachments = self._relay_ticket_files(task_id, ticket_attrs, file_fields)

            self.links.record_link(LinkRecord(conversation_id=str(conversation_id), ticket_id=ticket_id,
                                              task_id=task_id), mapping)

            return {
                "status": "created",
                "conversation_id": conversation_id,
                "ticket_id": ticket_id,
                "task_id": task_id,
                "task_name": contact_name,
                "project_id": project_id,
                "synced_fields": len(custom_fields),
                "attachments": [r.as_dict() for r in attachments],
                "attachment_summary": summarize(attachments),
            }

        except REMOTE_ERRORS as e:
            logger.error(f"Error creating Asana task for conversation {conversation_id}: {e}")
            result["error"] = str(e)
            return result

    def _relay_ticket_files(self, task_id: str, ticket_attrs: Dict[str, Any],
                            file_fields: Dict[str, List[AttachmentRef]]) -> List[AttachmentResult]:
        refs = self.attachment_refs_for_ticket(ticket_attrs)
        seen = {ref.url for ref in refs}
        owners: Dict[str, List[str]] = {}
        for gid, field_refs in file_fields.items():
            for ref in field_refs:
                owners.setdefault(ref.url, []).append(gid)
                if ref.url not in seen:
                    refs.append(ref)
                    seen.add(ref.url)

        results = self.relay.relay_all(refs, task_id)

        if file_fields:
            urls_by_field: Dict[str, List[str]] = {}
            for res in results:
                if res.status == STATUS_SUCCESS and res.destination_url and res.destination_url != UPLOADED_NO_URL:
                    for gid in owners.get(res.url, []):
                        urls_by_field.setdefault(gid, []).append(res.destination_url)
            if urls_by_field:
                try:
                    self.asana.update_task(task_id, custom_fields={gid: "\n".join(urls)
                                                                   for gid, urls in urls_by_field.items()})
                except REMOTE_ERRORS as e:
                    logger.error(f"✗ Could not write attachment URLs to task {task_id}: {e}")
        return results

    # ============================================
    # ATTACHMENT SYNC
    # ============================================

    def sync_files(self, conversation_id: Optional[str]) -> Dict[str, Any]:
        """Re-relay the ticket's attachments to its linked task"""
        result: Dict[str, Any] = {"status": "failed", "conversation_id": conversation_id}
        if not conversation_id:
            result["error"] = "No conversation in request"
            return result
        try:
            ticket_id = self.ticket_id_for_conversation(conversation_id)
            if not ticket_id:
                result["error"] = "No ticket found for this conversation"
                return result
            ticket = self.intercom.get_ticket(ticket_id)
            task_id = self.links.task_id_for_ticket(ticket)
            if not task_id:
                return {"status": "not_linked", "conversation_id": conversation_id, "ticket_id": ticket_id}

            refs = self.attachment_refs_for_ticket(ticket.get("ticket_attributes") or {})
            results = self.relay.relay_all(refs, task_id)
            return {
                "status": "synced",
                "conversation_id": conversation_id,
                "ticket_id": ticket_id,
                "task_id": task_id,
                "attachments": [r.as_dict() for r in results],
                "attachment_summary": summarize(results),
            }
        except REMOTE_ERRORS as e:
            logger.error(f"Error syncing attachments for conversation {conversation_id}: {e}")
            result["error"] = str(e)
            return result

    # ============================================
    # INTERCOM EVENTS
    # ============================================

    def handle_intercom_webhook(self, body: Dict[str, Any]) -> Dict[str, Any]:
        event = parse_intercom_webhook(body, self.integration_admin_ids)
        if event is None:
            return {"status": "ignored", "topic": body.get("topic")}
        if event.kind == EventKind.NOTE_ADDED:
            return self.relay_note(event)
        if event.kind == EventKind.TICKET_STATUS_CHANGED:
            return self.on_ticket_status_changed(event)
        return {"status": "ignored", "kind": event.kind.value}

    def relay_note(self, event: SyncEvent) -> Dict[str, Any]:
        """Intercom note -> Asana comment (plus its attachments)"""
        result: Dict[str, Any] = {"status": "skipped", "kind": event.kind.value,
                                  "conversation_id": event.conversation_id}
        text = html_to_text(event.body)
        allowed, reason = check_relay(text, Direction.INTERCOM_TO_ASANA, event.authored_by_integration)
        refs = extract_attachment_refs(event.attachments) + extract_body_attachment_refs(event.body)

        if not allowed and not (reason == SKIP_EMPTY and refs):
            logger.info(f"Skipping note relay for conversation {event.conversation_id}: {reason}")
            result["reason"] = reason
            return result

        try:
            ticket_id = event.ticket_id
            if not ticket_id and event.conversation_id:
                ticket_id = self.ticket_id_for_conversation(event.conversation_id)
            if not ticket_id:
                result["reason"] = "no_ticket"
                return result

            task_id = self.links.task_id_for_ticket(self.intercom.get_ticket(ticket_id))
            if not task_id:
                result["reason"] = "not_linked"
                return result
            if event.conversation_id:
                self.links.remember(task_id, event.conversation_id)

            story = None
            if allowed:
                story = self.asana.add_comment(task_id, tag_text(text, Direction.INTERCOM_TO_ASANA, event.author_name))
                logger.info(f"✓ Relayed Intercom note to Asana task {task_id}")

            attachments = self.relay.relay_all(refs, task_id)
            return {
                "status": "relayed",
                "kind": event.kind.value,
                "ticket_id": ticket_id,
                "task_id": task_id,
                "story_id": (story or {}).get("gid"),
                "attachments": [r.as_dict() for r in attachments],
            }
        except REMOTE_ERRORS as e:
            logger.error(f"Error relaying note for ticket {event.ticket_id or event.conversation_id}: {e}")
            return {"status": "failed", "kind": event.kind.value, "error": str(e)}

    def on_ticket_status_changed(self, event: SyncEvent) -> Dict[str, Any]:
        """Create the task when the ticket enters a whitelisted state"""
        wanted = {_norm(s) for s in self.sync_opts.get("task_creation_statuses", []) or []}
        if not event.state_label or _norm(event.state_label) not in wanted:
            return {"status": "skipped", "kind": event.kind.value, "reason": "status_not_whitelisted",
                    "state": event.state_label}

        # Intercom tickets are conversations; their ids are interchangeable here
        conversation_id = event.conversation_id or event.ticket_id
        logger.info(f"Ticket {event.ticket_id} moved to '{event.state_label}', creating Asana task")
        return self.create_task(conversation_id, event.contact)

    # ============================================
    # ASANA EVENTS
    # ============================================

    def handle_asana_events(self, events: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        results = []
        for event in parse_asana_events(events, self.bot_user_gid):
            if event.authored_by_integration:
                logger.info(f"Skipping {event.kind.value} on task {event.task_id}: authored by integration")
                results.append({"status": "skipped", "kind": event.kind.value, "task_id": event.task_id,
                                "reason": "authored_by_integration"})
                continue
            if event.kind == EventKind.TASK_COMMENTED:
                results.append(self.relay_story(event))
            elif event.kind == EventKind.TASK_FIELD_CHANGED:
                results.append(self.sync_task_status(event))
        return results

    def relay_story(self, event: SyncEvent) -> Dict[str, Any]:
        """Asana comment -> Intercom admin note"""
        result: Dict[str, Any] = {"status": "skipped", "kind": event.kind.value, "task_id": event.task_id}
        try:
            story = self.asana.get_story(event.story_id)
            if story.get("resource_subtype") not in (None, "comment_added"):
                result["reason"] = "not_a_comment"
                return result

            creator = story.get("created_by") or {}
            by_bot = bool(self.bot_user_gid) and safe_str(creator.get("gid")) == self.bot_user_gid
            text = safe_str(story.get("text"))
            allowed, reason = check_relay(text, Direction.ASANA_TO_INTERCOM, by_bot)
            if not allowed:
                logger.info(f"Skipping comment relay for task {event.task_id}: {reason}")
                result["reason"] = reason
                return result

            task = self.asana.get_task(event.task_id)
            mapping = self.field_mapper.get(self._task_project(task))
            conversation_id = self.links.resolve_link(task, mapping)
            if not conversation_id:
                logger.info(f"⚠ No conversation ID found for task {event.task_id}, skipping")
                result["reason"] = "not_linked"
                return result

            body = text_to_html(tag_text(text, Direction.ASANA_TO_INTERCOM, creator.get("name")))
            self.intercom.add_note(conversation_id, body)
            logger.info(f"✓ Relayed Asana comment on task {event.task_id} to conversation {conversation_id}")
            return {"status": "relayed", "kind": event.kind.value, "task_id": event.task_id,
                    "conversation_id": conversation_id}
        except REMOTE_ERRORS as e:
            logger.error(f"Error relaying Asana comment {event.story_id}: {e}")
            return {"status": "failed", "kind": event.kind.value, "task_id": event.task_id, "error": str(e)}

    def sync_task_status(self, event: SyncEvent) -> Dict[str, Any]:
        """Task field change -> ticket state, when the field is status or completion"""
        result: Dict[str, Any] = {"status": "skipped", "kind": event.kind.value, "task_id": event.task_id}
        change = event.payload.get("change") or {}
        changed_field = change.get("field")

        if changed_field not in ("custom_fields", "completed"):
            result["reason"] = "ignored_field"
            return result

        try:
            task = self.asana.get_task(event.task_id)
            mapping = self.field_mapper.get(self._task_project(task))

            if changed_field == "completed":
                return self.sync_task_completion(task, mapping)

            status_gid = mapping.gid(self.cfg.status_field)
            if not status_gid:
                result["reason"] = "status_field_not_configured"
                return result
            new_value = change.get("new_value") or {}
            if safe_str(new_value.get("gid")) != status_gid:
                result["reason"] = "not_status_field"
                return result

            label = self._status_label(new_value) or self._status_label(
                next((cf for cf in task.get("custom_fields") or [] if cf.get("gid") == status_gid), {}))
            if not label:
                result["reason"] = "no_status"
                return result

            return self.apply_status(task, label, mapping)
        except REMOTE_ERRORS as e:
            logger.error(f"Error syncing change on task {event.task_id}: {e}")
            return {"status": "failed", "kind": event.kind.value, "task_id": event.task_id, "error": str(e)}

    @staticmethod
    def _status_label(field_value: Dict[str, Any]) -> Optional[str]:
        enum_value = field_value.get("enum_value") or {}
        for candidate in (enum_value.get("name"), field_value.get("display_value"), field_value.get("text_value")):
            if safe_str(candidate):
                return safe_str(candidate)
        return None

    def _ticket_for_task(self, task: Dict[str, Any], mapping: FieldMapping) -> Optional[str]:
        conversation_id = self.links.resolve_link(task, mapping)
        if not conversation_id:
            logger.info(f"⚠ No conversation ID found for task {task.get('gid')}")
            return None
        ticket_id = self.ticket_id_for_conversation(conversation_id)
        if not ticket_id:
            logger.info(f"⚠ No ticket found for conversation {conversation_id}")
        return ticket_id

    def apply_status(self, task: Dict[str, Any], label: str, mapping: FieldMapping) -> Dict[str, Any]:
        """
        Resolve ``label`` against the ticket type's states and write state,
        close flag and status attribute in one update.
        """
        task_id = safe_str(task.get("gid"))
        result: Dict[str, Any] = {"status": "skipped", "kind": EventKind.TASK_FIELD_CHANGED.value,
                                  "task_id": task_id, "label": label}
        ticket_id = self._ticket_for_task(task, mapping)
        if not ticket_id:
            result["reason"] = "not_linked"
            return result

        fetched = self._concurrently(
            ticket=lambda: self.intercom.get_ticket(ticket_id),
            states=lambda: self.intercom.list_ticket_states(),
        )
        ticket_type_id = safe_str((fetched["ticket"].get("ticket_type") or {}).get("id")) or None

        decision = decide_status_update(
            label, fetched["states"], ticket_type_id,
            closing_statuses=self.sync_opts.get("closing_statuses", []) or [],
            never_close_statuses=self.sync_opts.get("never_close_statuses", []) or [],
        )
        if decision is None:
            return {"status": "noop", "kind": EventKind.TASK_FIELD_CHANGED.value, "task_id": task_id,
                    "ticket_id": ticket_id, "label": label, "reason": "no_matching_state"}

        attrs = {self.cfg.status_attribute: label} if self.cfg.status_attribute else None
        self.intercom.update_ticket(
            ticket_id,
            ticket_attributes=attrs,
            ticket_state_id=decision.state_id,
            open=False if decision.close else None,
        )
        logger.info(f"✓ Ticket {ticket_id} updated from task {task_id}: status '{label}' → "
                    f"state {decision.state_id} (close: {decision.close})")
        return {
            "status": "updated",
            "kind": EventKind.TASK_FIELD_CHANGED.value,
            "task_id": task_id,
            "ticket_id": ticket_id,
            "label": label,
            "ticket_state_id": decision.state_id,
            "closed": decision.close,
        }

    def sync_task_completion(self, task: Dict[str, Any], mapping: FieldMapping) -> Dict[str, Any]:
        """Task completed/reopened -> configured ticket state"""
        task_id = safe_str(task.get("gid"))
        completed = bool(task.get("completed"))
        state_id = self.sync_opts.get("completed_state_id" if completed else "reopened_state_id")
        result: Dict[str, Any] = {"status": "skipped", "kind": EventKind.TASK_FIELD_CHANGED.value,
                                  "task_id": task_id, "completed": completed}
        if not state_id:
            result["reason"] = "completion_state_not_configured"
            return result

        ticket_id = self._ticket_for_task(task, mapping)
        if not ticket_id:
            result["reason"] = "not_linked"
            return result

        self.intercom.update_ticket(ticket_id, ticket_state_id=safe_str(state_id))
        logger.info(f"✓ Ticket {ticket_id} state set to {state_id} (task completed: {completed})")
        return {"status": "updated", "kind": EventKind.TASK_FIELD_CHANGED.value, "task_id": task_id,
                "ticket_id": ticket_id, "ticket_state_id": safe_str(state_id), "completed": completed}

    # ============================================
    # REPORTING
    # ============================================

    def mapping_report(self, refresh: bool = False) -> Dict[str, Any]:
        """Current field mappings of every known project"""
        if refresh:
            self.field_mapper.invalidate()
        projects = {}
        for project_id in self.known_projects():
            mapping = self.field_mapper.get(project_id)
            projects[project_id] = {
                "fields": mapping.as_dict(),
                "missing_critical": list(mapping.missing_critical),
            }
        return {
            "timestamp": utc_now().isoformat(),
            "critical_fields": [self.cfg.conversation_id_field, self.cfg.status_field],
            "projects": projects,
            "in_memory_links": self.links.mapping_count(),
        }
