"""Field resolution for filter conditions."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional
import logging

from ..storage.models import Lead

logger = logging.getLogger(__name__)


class FieldType(Enum):
    """Declared type of a lead field."""
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    DROPDOWN = "dropdown"
    LIST = "list"


@dataclass(frozen=True)
class CustomFieldDefinition:
    """Organization-defined lead field."""
    id: str
    name: str
    type: FieldType = FieldType.TEXT
    options: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CustomFieldDefinition":
        return cls(
            id=str(data["id"]),
            name=data.get("name", data["id"]),
            type=FieldType(data.get("type", "text")),
            options=list(data.get("options") or []),
        )


@dataclass(frozen=True)
class TypedValue:
    """A resolved field value together with its declared type."""
    value: Any
    type: FieldType = FieldType.TEXT

    @property
    def is_null(self) -> bool:
        return self.value is None

    @property
    def is_numeric(self) -> bool:
        return self.type in (FieldType.NUMBER, FieldType.DATE)


NULL = TypedValue(None)


# field id -> (Lead attribute, declared type)
STANDARD_FIELDS: Dict[str, tuple] = {
    "source": ("source", FieldType.TEXT),
    "dealValue": ("deal_value", FieldType.NUMBER),
    "score": ("score", FieldType.NUMBER),
    "campaign": ("campaign", FieldType.TEXT),
    "tags": ("tags", FieldType.LIST),
    "stage": ("stage", FieldType.TEXT),
    "name": ("name", FieldType.TEXT),
    "email": ("email", FieldType.TEXT),
    "phone": ("phone", FieldType.TEXT),
    "city": ("city", FieldType.TEXT),
    "course": ("course", FieldType.TEXT),
    "company": ("company", FieldType.TEXT),
    "assignedToId": ("assigned_to_id", FieldType.TEXT),
    "followUpStatus": ("follow_up_status", FieldType.TEXT),
}

CUSTOM_PREFIXES = ("custom:", "customFields.")


def to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def to_timestamp(value: Any) -> Optional[float]:
    if isinstance(value, datetime):
        return value.timestamp()
    number = to_number(value)
    if number is not None:
        return number
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None


class FieldResolver:
    """Resolve standard and custom field references on a lead.

    Resolution never raises. Anything that cannot be resolved or coerced
    comes back as the ``NULL`` sentinel.
    """

    def __init__(self, custom_fields: Iterable[CustomFieldDefinition] = ()):
        self.catalog: Dict[str, CustomFieldDefinition] = {cf.id: cf for cf in custom_fields}

    def field_type(self, field_ref: str) -> Optional[FieldType]:
        """Declared type of a field reference, or None if unknown."""
        if field_ref in STANDARD_FIELDS:
            return STANDARD_FIELDS[field_ref][1]
        definition = self.catalog.get(self._custom_id(field_ref))
        return definition.type if definition else None

    def resolve(self, lead: Lead, field_ref: str) -> TypedValue:
        """Resolve ``field_ref`` on ``lead`` to a typed value."""
        if field_ref in STANDARD_FIELDS:
            attr, field_type = STANDARD_FIELDS[field_ref]
            value = getattr(lead, attr, None)
            if value is None:
                return NULL
            if field_type == FieldType.NUMBER:
                number = to_number(value)
                return TypedValue(number, field_type) if number is not None else NULL
            if field_type == FieldType.LIST:
                return TypedValue(list(value), field_type)
            return TypedValue(str(value), field_type)

        custom_id = self._custom_id(field_ref)
        definition = self.catalog.get(custom_id)
        if definition is None:
            logger.debug(f"Unmapped field reference '{field_ref}' resolved to null")
            return NULL

        raw = lead.custom_fields.get(custom_id)
        if raw is None or raw == "":
            return NULL
        return self._coerce(raw, definition.type)

    def _custom_id(self, field_ref: str) -> str:
        for prefix in CUSTOM_PREFIXES:
            if field_ref.startswith(prefix):
                return field_ref[len(prefix):]
        return field_ref

    def _coerce(self, raw: Any, field_type: FieldType) -> TypedValue:
        if field_type == FieldType.NUMBER:
            number = to_number(raw)
            return TypedValue(number, field_type) if number is not None else NULL
        if field_type == FieldType.DATE:
            timestamp = to_timestamp(raw)
            return TypedValue(timestamp, field_type) if timestamp is not None else NULL
        return TypedValue(str(raw), field_type)
