"""Rule definitions: conditions, triggers, actions and the rule itself.

Triggers and actions are tagged variants, one frozen dataclass per variant.
Each variant carries only the fields it needs; the ``kind`` class attribute
is the tag used on the wire and by the matcher/executor dispatch tables.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Union
import uuid

from ..core.errors import ConfigurationError


class Operator(Enum):
    """Comparison operators for filter conditions."""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    GT = "gt"
    LT = "lt"
    IS_SET = "is_set"
    IS_NOT_SET = "is_not_set"

    @property
    def takes_value(self) -> bool:
        return self not in (Operator.IS_SET, Operator.IS_NOT_SET)


class Logic(Enum):
    """How a condition combines with the running result before it."""
    AND = "AND"
    OR = "OR"


@dataclass(frozen=True)
class FilterCondition:
    """A single predicate on a lead field."""
    field: str
    operator: Operator
    value: Optional[Union[str, float, int]] = None
    logic: Logic = Logic.AND
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])

    def __post_init__(self):
        if not self.field:
            raise ConfigurationError("Condition field is required")
        if not self.operator.takes_value and self.value not in (None, ""):
            raise ConfigurationError(
                f"Operator '{self.operator.value}' does not take a value (got {self.value!r})"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "field": self.field,
            "operator": self.operator.value,
            "value": self.value if self.operator.takes_value else None,
            "logic": self.logic.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FilterCondition":
        try:
            operator = Operator(data.get("operator"))
        except ValueError:
            raise ConfigurationError(f"Unknown operator: {data.get('operator')!r}")
        try:
            logic = Logic(str(data.get("logic") or "AND").upper())
        except ValueError:
            raise ConfigurationError(f"Unknown logic: {data.get('logic')!r}")

        value = data.get("value")
        if not operator.takes_value and value == "":
            value = None

        kwargs = {}
        if data.get("id") is not None:
            kwargs["id"] = str(data["id"])
        return cls(
            field=data.get("field") or "",
            operator=operator,
            value=value,
            logic=logic,
            **kwargs
        )


# ============================================================================
# TRIGGERS
# ============================================================================

class TriggerKind(Enum):
    """Event classes a rule can be attached to."""
    NEW_LEAD = "NEW_LEAD"
    LEAD_UNTOUCHED = "LEAD_UNTOUCHED"
    STAGE_CHANGED = "STAGE_CHANGED"
    TASK_COMPLETED = "TASK_COMPLETED"
    LEAD_SCORE_REACHES = "LEAD_SCORE_REACHES"


@dataclass(frozen=True)
class NewLeadTrigger:
    kind: ClassVar[TriggerKind] = TriggerKind.NEW_LEAD

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind.value}


@dataclass(frozen=True)
class LeadUntouchedTrigger:
    hours: float
    kind: ClassVar[TriggerKind] = TriggerKind.LEAD_UNTOUCHED

    def __post_init__(self):
        if self.hours < 0:
            raise ConfigurationError("LEAD_UNTOUCHED hours must be >= 0")

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind.value, "hours": self.hours}


@dataclass(frozen=True)
class StageChangedTrigger:
    to_stage: str
    kind: ClassVar[TriggerKind] = TriggerKind.STAGE_CHANGED

    def __post_init__(self):
        if not self.to_stage:
            raise ConfigurationError("STAGE_CHANGED requires toStage")

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind.value, "toStage": self.to_stage}


@dataclass(frozen=True)
class TaskCompletedTrigger:
    kind: ClassVar[TriggerKind] = TriggerKind.TASK_COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind.value}


@dataclass(frozen=True)
class ScoreReachesTrigger:
    score: float
    kind: ClassVar[TriggerKind] = TriggerKind.LEAD_SCORE_REACHES

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind.value, "score": self.score}


AutomationTrigger = Union[
    NewLeadTrigger,
    LeadUntouchedTrigger,
    StageChangedTrigger,
    TaskCompletedTrigger,
    ScoreReachesTrigger,
]


# ============================================================================
# ACTIONS
# ============================================================================

class ActionKind(Enum):
    """Side effects a rule can request."""
    ADD_TAG = "ADD_TAG"
    ASSIGN_TO_USER = "ASSIGN_TO_USER"
    ASSIGN_TO_TEAM = "ASSIGN_TO_TEAM"
    ASSIGN_ROUND_ROBIN = "ASSIGN_ROUND_ROBIN"
    SEND_WEBHOOK = "SEND_WEBHOOK"
    CREATE_TASK = "CREATE_TASK"
    ADD_TO_PHONE_LIST = "ADD_TO_PHONE_LIST"


@dataclass(frozen=True)
class AddTagAction:
    tag: str
    kind: ClassVar[ActionKind] = ActionKind.ADD_TAG

    def __post_init__(self):
        if not self.tag:
            raise ConfigurationError("ADD_TAG requires a tag")

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind.value, "tag": self.tag}


@dataclass(frozen=True)
class AssignToUserAction:
    user_id: str
    kind: ClassVar[ActionKind] = ActionKind.ASSIGN_TO_USER

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind.value, "userId": self.user_id}


@dataclass(frozen=True)
class AssignToTeamAction:
    team_id: str
    kind: ClassVar[ActionKind] = ActionKind.ASSIGN_TO_TEAM

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind.value, "teamId": self.team_id}


@dataclass(frozen=True)
class AssignRoundRobinAction:
    team_id: str
    kind: ClassVar[ActionKind] = ActionKind.ASSIGN_ROUND_ROBIN

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind.value, "teamId": self.team_id}


@dataclass(frozen=True)
class SendWebhookAction:
    url: str
    kind: ClassVar[ActionKind] = ActionKind.SEND_WEBHOOK

    def __post_init__(self):
        if not self.url.startswith(("http://", "https://")):
            raise ConfigurationError(f"SEND_WEBHOOK url must be http(s): {self.url!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind.value, "url": self.url}


@dataclass(frozen=True)
class CreateTaskAction:
    title: str
    due_days: int = 1
    kind: ClassVar[ActionKind] = ActionKind.CREATE_TASK

    def __post_init__(self):
        if not self.title:
            raise ConfigurationError("CREATE_TASK requires a title")
        if self.due_days < 0:
            raise ConfigurationError("CREATE_TASK dueDays must be >= 0")

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind.value, "title": self.title, "dueDays": self.due_days}


@dataclass(frozen=True)
class AddToPhoneListAction:
    phone_list_id: str
    kind: ClassVar[ActionKind] = ActionKind.ADD_TO_PHONE_LIST

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind.value, "phoneListId": self.phone_list_id}


AutomationAction = Union[
    AddTagAction,
    AssignToUserAction,
    AssignToTeamAction,
    AssignRoundRobinAction,
    SendWebhookAction,
    CreateTaskAction,
    AddToPhoneListAction,
]


# ============================================================================
# WIRE PARSING
# ============================================================================

def _required(data: Dict[str, Any], key: str, type_name: str) -> Any:
    value = data.get(key)
    if value is None or value == "":
        raise ConfigurationError(f"{type_name} requires '{key}'")
    return value


def _number(value: Any, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"'{key}' must be numeric, got {value!r}")


def trigger_from_dict(data: Dict[str, Any]) -> AutomationTrigger:
    """Parse a trigger from its ``{"type": ..., ...}`` wire shape."""
    if not isinstance(data, dict):
        raise ConfigurationError("Trigger must be an object")
    try:
        kind = TriggerKind(data.get("type"))
    except ValueError:
        raise ConfigurationError(f"Unknown trigger type: {data.get('type')!r}")

    if kind == TriggerKind.NEW_LEAD:
        return NewLeadTrigger()
    if kind == TriggerKind.LEAD_UNTOUCHED:
        return LeadUntouchedTrigger(hours=_number(_required(data, "hours", kind.value), "hours"))
    if kind == TriggerKind.STAGE_CHANGED:
        return StageChangedTrigger(to_stage=str(_required(data, "toStage", kind.value)))
    if kind == TriggerKind.TASK_COMPLETED:
        return TaskCompletedTrigger()
    if kind == TriggerKind.LEAD_SCORE_REACHES:
        return ScoreReachesTrigger(score=_number(_required(data, "score", kind.value), "score"))
    raise ConfigurationError(f"Unhandled trigger type: {kind.value}")


def action_from_dict(data: Dict[str, Any]) -> AutomationAction:
    """Parse an action from its ``{"type": ..., ...}`` wire shape."""
    if not isinstance(data, dict):
        raise ConfigurationError("Action must be an object")
    try:
        kind = ActionKind(data.get("type"))
    except ValueError:
        raise ConfigurationError(f"Unknown action type: {data.get('type')!r}")

    if kind == ActionKind.ADD_TAG:
        return AddTagAction(tag=str(_required(data, "tag", kind.value)))
    if kind == ActionKind.ASSIGN_TO_USER:
        return AssignToUserAction(user_id=str(_required(data, "userId", kind.value)))
    if kind == ActionKind.ASSIGN_TO_TEAM:
        return AssignToTeamAction(team_id=str(_required(data, "teamId", kind.value)))
    if kind == ActionKind.ASSIGN_ROUND_ROBIN:
        return AssignRoundRobinAction(team_id=str(_required(data, "teamId", kind.value)))
    if kind == ActionKind.SEND_WEBHOOK:
        return SendWebhookAction(url=str(_required(data, "url", kind.value)))
    if kind == ActionKind.CREATE_TASK:
        due_days = data.get("dueDays", 1)
        return CreateTaskAction(
            title=str(_required(data, "title", kind.value)),
            due_days=int(_number(due_days, "dueDays")),
        )
    if kind == ActionKind.ADD_TO_PHONE_LIST:
        return AddToPhoneListAction(phone_list_id=str(_required(data, "phoneListId", kind.value)))
    raise ConfigurationError(f"Unhandled action type: {kind.value}")


@dataclass
class AutomationRule:
    """An organization's automation rule: WHEN trigger AND conditions THEN action."""
    id: str
    name: str
    trigger: AutomationTrigger
    action: AutomationAction
    conditions: List[FilterCondition] = field(default_factory=list)
    description: str = ""
    is_enabled: bool = True
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "isEnabled": self.is_enabled,
            "trigger": self.trigger.to_dict(),
            "conditions": [c.to_dict() for c in self.conditions],
            "action": self.action.to_dict(),
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AutomationRule":
        if not data.get("name"):
            raise ConfigurationError("Rule name is required")
        conditions = data.get("conditions") or []
        if not isinstance(conditions, list):
            raise ConfigurationError("Rule conditions must be a list")

        now = datetime.now()
        return cls(
            id=str(data.get("id") or str(uuid.uuid4())[:12]),
            name=data["name"],
            description=data.get("description") or "",
            is_enabled=bool(data.get("isEnabled", True)),
            trigger=trigger_from_dict(data.get("trigger")),
            conditions=[FilterCondition.from_dict(c) for c in conditions],
            action=action_from_dict(data.get("action")),
            created_at=datetime.fromisoformat(data["createdAt"]) if data.get("createdAt") else now,
            updated_at=datetime.fromisoformat(data["updatedAt"]) if data.get("updatedAt") else now,
        )
