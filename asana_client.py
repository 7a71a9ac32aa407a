"""
Asana Integration Module
Handles all Asana API interactions including tasks, custom fields, stories
(comments) and attachments.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from base_client import BaseAPIClient, IntegrationAPIError

logger = logging.getLogger(__name__)


class AsanaAPIError(IntegrationAPIError):
    """Asana API call failed"""


class AsanaClient(BaseAPIClient):
    """Asana API integration for task management"""

    service_name = "Asana"
    error_class = AsanaAPIError

    def __init__(self, config: Dict[str, Any], timeout: float = 30, max_retries: int = 3,
                 session: Optional[requests.Session] = None):
        """
        Initialize Asana client with configuration

        Args:
            config: The ``asana`` config section (access_token, workspace_id, project_id, base_url)
        """
        self.access_token = config.get("access_token", "")
        self.workspace_id = str(config.get("workspace_id", "") or "")
        self.project_id = str(config.get("project_id", "") or "")

        super().__init__(
            config.get("base_url", "https://app.asana.com/api/1.0"),
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "Accept": "application/json",
            },
            timeout=timeout,
            max_retries=max_retries,
            session=session,
        )

        if not self.access_token:
            logger.warning("Asana client initialized without an access token")

    def _data(self, method: str, path: str, **kwargs) -> Any:
        return self._json(method, path, **kwargs).get("data")

    # ==================== CUSTOM FIELDS ====================

    def get_custom_field_settings(self, project_id: str) -> List[Dict[str, Any]]:
        """Custom field settings of a project (each wraps a ``custom_field``)"""
        return self._data("GET", f"/projects/{project_id}/custom_field_settings") or []

    def get_custom_field(self, field_gid: str) -> Dict[str, Any]:
        """Full custom field definition, including current enum options"""
        return self._data("GET", f"/custom_fields/{field_gid}") or {}

    def get_enum_options(self, field_gid: str) -> List[Dict[str, Any]]:
        return self.get_custom_field(field_gid).get("enum_options", []) or []

    # ==================== TASKS ====================

    def create_task(self, name: str, project_ids: List[str], notes: str = "",
                    custom_fields: Optional[Dict[str, Any]] = None,
                    workspace_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Create a task in one or more projects

        Args:
            name: Task title
            project_ids: Projects the task belongs to
            notes: Plain-text description
            custom_fields: Mapping of custom field gid -> value
        """
        data: Dict[str, Any] = {
            "workspace": workspace_id or self.workspace_id,
            "projects": project_ids,
            "name": name,
            "notes": notes,
        }
        if custom_fields:
            data["custom_fields"] = custom_fields

        task = self._data("POST", "/tasks", json={"data": data})
        if not task or not task.get("gid"):
            raise AsanaAPIError("Asana create task returned no data.")
        return task

    def get_task(self, task_id: str) -> Dict[str, Any]:
        """Get specific task by ID"""
        task = self._data("GET", f"/tasks/{task_id}")
        if not task:
            raise AsanaAPIError(f"Task {task_id} not found")
        return task

    def update_task(self, task_id: str, custom_fields: Optional[Dict[str, Any]] = None,
                    **fields: Any) -> Dict[str, Any]:
        """Update a task. Only the supplied fields change."""
        data: Dict[str, Any] = dict(fields)
        if custom_fields:
            data["custom_fields"] = custom_fields
        return self._data("PUT", f"/tasks/{task_id}", json={"data": data}) or {}

    # ==================== STORIES ====================

    def add_comment(self, task_id: str, text: str) -> Dict[str, Any]:
        """Add a comment story to a task"""
        return self._data("POST", f"/tasks/{task_id}/stories", json={"data": {"text": text}}) or {}

    def get_story(self, story_id: str) -> Dict[str, Any]:
        return self._data("GET", f"/stories/{story_id}") or {}

    # ==================== ATTACHMENTS ====================

    def upload_attachment(self, parent_id: str, filename: str, content: bytes,
                          content_type: str = "application/octet-stream") -> Dict[str, Any]:
        """Single multipart upload of a file to a task"""
        response = self._request_with_retry(
            "POST", "/attachments",
            data={"parent": parent_id},
            files={"file": (filename, content, content_type)},
        )
        return response.json().get("data", {}) or {}

    # ==================== UTILITY ====================

    def test_connection(self) -> bool:
        """
        Test connection to Asana

        Returns:
            True if connection successful, False otherwise
        """
        try:
            self._data("GET", "/users/me")
            return True
        except IntegrationAPIError as e:
            logger.error(f"Asana connection test failed: {str(e)}")
            return False
