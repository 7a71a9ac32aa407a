"""
Bridge Configuration
Loads config.yaml, applies environment overrides and sets up logging.

Environment variables take precedence over the YAML file so the same file can
be shipped to every environment with secrets injected at deploy time.
"""

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

# Serverless hosts have a read-only filesystem
IS_SERVERLESS = os.environ.get('VERCEL') == '1' or os.environ.get('AWS_LAMBDA_FUNCTION_NAME') is not None

DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"

ENV_OVERRIDES = {
    "INTERCOM_ACCESS_TOKEN": ("intercom", "access_token"),
    "INTERCOM_ADMIN_ID": ("intercom", "admin_id"),
    "ASANA_ACCESS_TOKEN": ("asana", "access_token"),
    "ASANA_WORKSPACE_ID": ("asana", "workspace_id"),
    "ASANA_PROJECT_ID": ("asana", "project_id"),
    "ASANA_BOT_USER_GID": ("asana", "bot_user_gid"),
    "SYNC_TIMEZONE": ("sync", "timezone"),
}


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = "logs/bridge.log") -> logging.Logger:
    """Configure console logging, plus a log file when the filesystem allows it"""
    log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    level = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if log_file and not IS_SERVERLESS:
        try:
            log_dir = os.path.dirname(log_file)
            if log_dir and not os.path.exists(log_dir):
                os.makedirs(log_dir)
            handlers.append(logging.FileHandler(log_file, encoding='utf-8'))
        except OSError:
            pass  # console only

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=log_format,
        handlers=handlers,
        force=True,
    )
    return logging.getLogger("bridge")


@dataclass
class Config:
    """Typed view over the raw configuration mapping"""
    raw: Dict[str, Any]

    @property
    def intercom(self) -> Dict[str, Any]:
        return self.raw.setdefault("intercom", {})

    @property
    def asana(self) -> Dict[str, Any]:
        return self.raw.setdefault("asana", {})

    @property
    def sync(self) -> Dict[str, Any]:
        return self.raw.setdefault("sync", {})

    @property
    def http(self) -> Dict[str, Any]:
        return self.raw.get("http", {}) or {}

    @property
    def environment(self) -> str:
        return self.raw.get("environment", "development")

    @property
    def timezone(self) -> str:
        return self.sync.get("timezone", "UTC")

    @property
    def timeout(self) -> float:
        return float(self.http.get("timeout_seconds", 30))

    @property
    def max_retries(self) -> int:
        return int(self.http.get("max_retries", 3))

    @property
    def task_id_attribute(self) -> str:
        return self.intercom.get("task_id_attribute", "AsanaTaskID")

    @property
    def status_attribute(self) -> Optional[str]:
        return self.intercom.get("status_attribute", "Asana Status")

    @property
    def attachment_attributes(self) -> List[str]:
        return list(self.intercom.get("attachment_attributes", ["Attachment", "attachment"]))

    @property
    def conversation_id_field(self) -> str:
        return self.asana.get("conversation_id_field", "Intercom Conversation ID")

    @property
    def status_field(self) -> str:
        return self.asana.get("status_field", "Status")

    @property
    def field_map(self) -> Dict[str, str]:
        return dict(self.sync.get("field_map", {}) or {})

    def validate(self) -> List[str]:
        """Validate configuration, returning every problem found"""
        errors = []

        for section in ["intercom", "asana"]:
            if section not in self.raw:
                errors.append(f"Missing section: {section}")

        if "intercom" in self.raw:
            if not self.intercom.get("access_token"):
                errors.append("Missing intercom.access_token")
            if not self.intercom.get("admin_id"):
                errors.append("Missing intercom.admin_id")

        if "asana" in self.raw:
            for key in ["access_token", "workspace_id", "project_id"]:
                if not self.asana.get(key):
                    errors.append(f"Missing asana.{key}")

            routing = self.asana.get("project_routing")
            if routing is not None:
                if not isinstance(routing, dict) or not routing.get("attribute"):
                    errors.append("asana.project_routing needs an 'attribute'")
                elif not isinstance(routing.get("projects", {}), dict):
                    errors.append("asana.project_routing.projects must be a mapping")

        if not isinstance(self.sync.get("field_map", {}) or {}, dict):
            errors.append("sync.field_map must be a mapping of ticket attribute -> Asana field name")

        for key in ["task_creation_statuses", "closing_statuses", "never_close_statuses"]:
            value = self.sync.get(key, [])
            if value is not None and not isinstance(value, list):
                errors.append(f"sync.{key} must be a list")

        return errors


def _apply_env_overrides(raw: Dict[str, Any]) -> None:
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            raw.setdefault(section, {})
            raw[section][key] = value
            logger.info(f"✓ Loaded {section}.{key} from environment")


def load_config(path: Optional[str] = None, validate: bool = True) -> Config:
    """
    Load configuration from YAML, then apply environment overrides.

    A missing file is allowed when the environment supplies everything needed.
    """
    path = path or os.environ.get("BRIDGE_CONFIG") or str(DEFAULT_CONFIG_PATH)
    raw: Dict[str, Any] = {}

    if os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ValueError("Config YAML must be a mapping at the top level.")
        logger.info(f"Configuration loaded from {path}")
    else:
        logger.warning(f"Config file not found: {path} (using environment only)")

    _apply_env_overrides(raw)

    config = Config(raw=raw)
    if validate:
        errors = config.validate()
        if errors:
            error_msg = "Configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
            logger.error(error_msg)
            raise ValueError(error_msg)

    return config
