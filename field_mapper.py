"""
Asana custom field schema discovery.

The field set of a project is only known at runtime. FieldMapper fetches it,
indexes it by exact field name and caches one snapshot per project until it
is explicitly invalidated or found empty.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

import requests

from base_client import IntegrationAPIError

logger = logging.getLogger(__name__)


class FieldType(str, Enum):
    SHORT_TEXT = "short-text"
    NUMBER = "number"
    ENUM = "enumerated-choice"
    DATE = "date"
    FILE = "file"


ASANA_SUBTYPES = {
    "text": FieldType.SHORT_TEXT,
    "number": FieldType.NUMBER,
    "enum": FieldType.ENUM,
    "multi_enum": FieldType.ENUM,
    "date": FieldType.DATE,
}


@dataclass(frozen=True)
class FieldSpec:
    gid: str
    name: str
    type: FieldType
    multi: bool = False


@dataclass(frozen=True)
class FieldMapping:
    """Immutable name -> FieldSpec snapshot for one project"""
    project_id: str
    fields: Dict[str, FieldSpec] = field(default_factory=dict)
    missing_critical: tuple = ()

    def get(self, name: str) -> Optional[FieldSpec]:
        # exact, case-sensitive
        return self.fields.get(name)

    def gid(self, name: str) -> Optional[str]:
        spec = self.fields.get(name)
        return spec.gid if spec else None

    def has(self, name: str) -> bool:
        return name in self.fields

    def __len__(self) -> int:
        return len(self.fields)

    def as_dict(self) -> Dict[str, Dict[str, str]]:
        return {name: {"id": spec.gid, "type": spec.type.value} for name, spec in self.fields.items()}


def build_field_mapping(project_id: str, settings: Iterable[Dict[str, Any]],
                        critical_fields: Iterable[str] = (),
                        file_fields: Iterable[str] = ()) -> FieldMapping:
    """Index ``custom_field_settings`` entries by field name"""
    file_fields = set(file_fields)
    fields: Dict[str, FieldSpec] = {}

    for setting in settings or []:
        cf = setting.get("custom_field") or setting
        name = cf.get("name")
        gid = cf.get("gid")
        if not name or not gid:
            continue

        subtype = cf.get("resource_subtype") or cf.get("type")
        field_type = ASANA_SUBTYPES.get(subtype)
        if field_type is None:
            logger.debug(f"Skipping custom field '{name}' with unsupported type '{subtype}'")
            continue
        if name in file_fields and field_type == FieldType.SHORT_TEXT:
            field_type = FieldType.FILE

        fields[name] = FieldSpec(gid=str(gid), name=name, type=field_type, multi=subtype == "multi_enum")
        logger.info(f"✓ Mapped \"{name}\" → {gid} ({field_type.value})")

    missing = tuple(name for name in critical_fields if name not in fields)
    return FieldMapping(project_id=str(project_id), fields=fields, missing_critical=missing)


class FieldMapper:
    """Process-wide custom field schema cache, refreshed lazily on miss"""

    def __init__(self, asana, critical_fields: Iterable[str] = (), file_fields: Iterable[str] = ()):
        self.asana = asana
        self.critical_fields: List[str] = list(critical_fields)
        self.file_fields: List[str] = list(file_fields)
        self._cache: Dict[str, FieldMapping] = {}
        self._lock = threading.Lock()

    def load_field_schema(self, project_id: str) -> FieldMapping:
        """
        Fetch and cache the custom fields of a project.

        Missing critical fields only produce a warning; the partial mapping is
        still returned and cached. A failed fetch returns an empty mapping that
        is not cached.
        """
        logger.info(f"Fetching Asana custom field mappings for project {project_id}...")
        try:
            settings = self.asana.get_custom_field_settings(project_id)
        except (IntegrationAPIError, requests.RequestException) as e:
            logger.error(f"Error fetching custom fields for project {project_id}: {e}")
            return FieldMapping(project_id=str(project_id), missing_critical=tuple(self.critical_fields))

        if not settings:
            logger.warning(f"⚠ No custom fields found in Asana project {project_id}")
            logger.warning("Custom field syncing will be disabled until fields are added to the project.")

        mapping = build_field_mapping(project_id, settings, self.critical_fields, self.file_fields)

        if mapping.missing_critical:
            logger.warning(f"⚠ Missing critical custom fields in Asana project {project_id}: "
                           f"{', '.join(mapping.missing_critical)}")
            logger.warning("Features depending on these fields are disabled.")
        elif mapping.fields:
            logger.info("✓ All critical custom fields mapped successfully")

        with self._lock:
            self._cache[str(project_id)] = mapping
        return mapping

    def get(self, project_id: str) -> FieldMapping:
        """Cached snapshot, re-fetched when absent or empty"""
        with self._lock:
            mapping = self._cache.get(str(project_id))
        if mapping is None or len(mapping) == 0:
            mapping = self.load_field_schema(project_id)
        return mapping

    def invalidate(self, project_id: Optional[str] = None) -> None:
        with self._lock:
            if project_id is None:
                self._cache.clear()
            else:
                self._cache.pop(str(project_id), None)

    def cached(self, project_id: str) -> Optional[FieldMapping]:
        with self._lock:
            return self._cache.get(str(project_id))
