"""
Asana status label -> Intercom ticket state resolution.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

MATCH_ORDER = ("internal_label", "external_label", "category")
RESOLVED_CATEGORY = "resolved"


@dataclass(frozen=True)
class StatusDecision:
    label: str
    state_id: Optional[str]
    close: bool
    matched_on: Optional[str] = None


def _norm(value: Any) -> str:
    return str(value or "").strip().lower()


def _state_type_ids(state: Dict[str, Any]) -> Optional[List[str]]:
    types = state.get("ticket_types")
    if types is None:
        return None
    if isinstance(types, dict):
        types = types.get("data") or []
    ids = []
    for entry in types:
        if isinstance(entry, dict):
            if entry.get("id") is not None:
                ids.append(str(entry["id"]))
        elif entry is not None:
            ids.append(str(entry))
    return ids


def states_for_ticket_type(states: Iterable[Dict[str, Any]], ticket_type_id: Optional[str]) -> List[Dict[str, Any]]:
    """States applicable to a ticket type. States without a type list apply everywhere."""
    states = list(states or [])
    if not ticket_type_id:
        return states
    applicable = []
    for state in states:
        type_ids = _state_type_ids(state)
        if type_ids is None or str(ticket_type_id) in type_ids:
            applicable.append(state)
    return applicable


def match_state(states: Iterable[Dict[str, Any]], label: str) -> Optional[Dict[str, Any]]:
    """
    First state matching ``label``: internal label, then external label, then
    category. Case-insensitive, whitespace-trimmed.
    """
    wanted = _norm(label)
    if not wanted:
        return None
    states = list(states)
    for key in MATCH_ORDER:
        for state in states:
            if _norm(state.get(key)) == wanted:
                return dict(state, _matched_on=key)
    return None


def resolve_state_id(states: Iterable[Dict[str, Any]], label: str,
                     ticket_type_id: Optional[str] = None) -> Optional[str]:
    state = match_state(states_for_ticket_type(states, ticket_type_id), label)
    return str(state["id"]) if state and state.get("id") is not None else None


def decide_status_update(label: str, states: Iterable[Dict[str, Any]], ticket_type_id: Optional[str] = None,
                         closing_statuses: Iterable[str] = (),
                         never_close_statuses: Iterable[str] = ()) -> Optional[StatusDecision]:
    """
    What single ticket write a status label implies, or None for a no-op.
    """
    closing = {_norm(s) for s in closing_statuses or []}
    never_close = {_norm(s) for s in never_close_statuses or []}

    state = match_state(states_for_ticket_type(states, ticket_type_id), label)
    state_id = str(state["id"]) if state and state.get("id") is not None else None

    close = _norm(label) in closing or (state is not None and _norm(state.get("category")) == RESOLVED_CATEGORY)
    if _norm(label) in never_close:
        close = False

    if state_id is None and not close:
        logger.info(f"Status '{label}' matches no ticket state for ticket type {ticket_type_id}; nothing to do")
        return None

    return StatusDecision(
        label=label,
        state_id=state_id,
        close=close,
        matched_on=state.get("_matched_on") if state else None,
    )
