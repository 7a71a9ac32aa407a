"""
Intercom Integration Module
Handles Intercom API interactions: conversations, tickets, ticket states,
contacts and admin notes.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from base_client import BaseAPIClient, IntegrationAPIError

logger = logging.getLogger(__name__)


class IntercomAPIError(IntegrationAPIError):
    """Intercom API call failed"""


class IntercomClient(BaseAPIClient):
    """Intercom REST API client using direct requests"""

    service_name = "Intercom"
    error_class = IntercomAPIError

    def __init__(self, config: Dict[str, Any], timeout: float = 30, max_retries: int = 3,
                 session: Optional[requests.Session] = None):
        """
        Initialize Intercom client with configuration

        Args:
            config: The ``intercom`` config section (access_token, admin_id, api_version, base_url)
        """
        self.access_token = config.get("access_token", "")
        self.admin_id = str(config.get("admin_id", "") or "")
        self.api_version = str(config.get("api_version", "2.14"))

        super().__init__(
            config.get("base_url", "https://api.intercom.io"),
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "Intercom-Version": self.api_version,
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=timeout,
            max_retries=max_retries,
            session=session,
        )

        if not self.access_token:
            logger.warning("Intercom client initialized without an access token")

    # ==================== CONVERSATIONS ====================

    def get_conversation(self, conversation_id: str) -> Dict[str, Any]:
        """Get a conversation with its parts"""
        return self._json("GET", f"/conversations/{conversation_id}")

    def add_note(self, conversation_id: str, body: str) -> Dict[str, Any]:
        """Post an internal admin note to a conversation"""
        payload = {
            "message_type": "note",
            "type": "admin",
            "admin_id": self.admin_id,
            "body": body,
        }
        return self._json("POST", f"/conversations/{conversation_id}/reply", json=payload)

    # ==================== TICKETS ====================

    def get_ticket(self, ticket_id: str) -> Dict[str, Any]:
        """Get a ticket including its ticket_attributes"""
        return self._json("GET", f"/tickets/{ticket_id}")

    def update_ticket(self, ticket_id: str, ticket_attributes: Optional[Dict[str, Any]] = None,
                      ticket_state_id: Optional[str] = None, open: Optional[bool] = None) -> Dict[str, Any]:
        """
        Update a ticket in a single write.

        Attributes, state and the open flag all travel in the same PUT so no
        intermediate state is ever visible.
        """
        payload: Dict[str, Any] = {}
        if ticket_attributes:
            payload["ticket_attributes"] = ticket_attributes
        if ticket_state_id is not None:
            payload["ticket_state_id"] = str(ticket_state_id)
        if open is not None:
            payload["open"] = open
        if not payload:
            raise ValueError("update_ticket called with nothing to update")
        return self._json("PUT", f"/tickets/{ticket_id}", json=payload)

    def list_ticket_states(self) -> List[Dict[str, Any]]:
        """Get the workspace ticket state catalog"""
        data = self._json("GET", "/ticket_states")
        return data.get("data", []) or []

    # ==================== CONTACTS ====================

    def get_contact(self, contact_id: str) -> Dict[str, Any]:
        return self._json("GET", f"/contacts/{contact_id}")

    def get_contact_name(self, contact_id: str, default: str = "Unknown Contact") -> str:
        """Contact display name, falling back to ``default`` on any failure"""
        try:
            return self.get_contact(contact_id).get("name") or default
        except IntegrationAPIError as e:
            logger.warning(f"Could not fetch Intercom contact {contact_id}: {e}")
            return default

    # ==================== UTILITY ====================

    def test_connection(self) -> bool:
        """Test connection by fetching the current admin"""
        try:
            self._json("GET", "/me")
            return True
        except IntegrationAPIError as e:
            logger.error(f"Intercom connection test failed: {e}")
            return False
