"""Domain events delivered to the rule engine."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Union
import uuid

from ..storage.models import Lead, parse_datetime
from ..core.errors import ConfigurationError
from .models import TriggerKind


class EventKind(Enum):
    """Kinds of domain events."""
    LEAD_CREATED = "LeadCreated"
    STAGE_CHANGED = "StageChanged"
    TASK_COMPLETED = "TaskCompleted"
    SCORE_CHANGED = "ScoreChanged"
    IDLE_SCAN_TICK = "IdleScanTick"


# Trigger kind each event kind can fire
EVENT_TRIGGERS: Dict[EventKind, TriggerKind] = {
    EventKind.LEAD_CREATED: TriggerKind.NEW_LEAD,
    EventKind.STAGE_CHANGED: TriggerKind.STAGE_CHANGED,
    EventKind.TASK_COMPLETED: TriggerKind.TASK_COMPLETED,
    EventKind.SCORE_CHANGED: TriggerKind.LEAD_SCORE_REACHES,
    EventKind.IDLE_SCAN_TICK: TriggerKind.LEAD_UNTOUCHED,
}


def _event_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class LeadCreated:
    lead: Lead
    event_id: str = field(default_factory=_event_id)
    occurred_at: datetime = field(default_factory=datetime.now)
    kind: ClassVar[EventKind] = EventKind.LEAD_CREATED

    @property
    def lead_id(self) -> str:
        return self.lead.id


@dataclass(frozen=True)
class StageChanged:
    lead: Lead
    old_stage: Optional[str]
    new_stage: str
    event_id: str = field(default_factory=_event_id)
    occurred_at: datetime = field(default_factory=datetime.now)
    kind: ClassVar[EventKind] = EventKind.STAGE_CHANGED

    @property
    def lead_id(self) -> str:
        return self.lead.id


@dataclass(frozen=True)
class TaskCompleted:
    lead: Lead
    task_id: Optional[str] = None
    event_id: str = field(default_factory=_event_id)
    occurred_at: datetime = field(default_factory=datetime.now)
    kind: ClassVar[EventKind] = EventKind.TASK_COMPLETED

    @property
    def lead_id(self) -> str:
        return self.lead.id


@dataclass(frozen=True)
class ScoreChanged:
    lead: Lead
    previous_score: float
    new_score: float
    event_id: str = field(default_factory=_event_id)
    occurred_at: datetime = field(default_factory=datetime.now)
    kind: ClassVar[EventKind] = EventKind.SCORE_CHANGED

    @property
    def lead_id(self) -> str:
        return self.lead.id


@dataclass(frozen=True)
class IdleScanTick:
    """Periodic idle check for one lead; ``occurred_at`` is the scan's "now"."""
    lead: Lead
    event_id: str = field(default_factory=_event_id)
    occurred_at: datetime = field(default_factory=datetime.now)
    kind: ClassVar[EventKind] = EventKind.IDLE_SCAN_TICK

    @property
    def lead_id(self) -> str:
        return self.lead.id


DomainEvent = Union[LeadCreated, StageChanged, TaskCompleted, ScoreChanged, IdleScanTick]


def _field(data: Dict[str, Any], key: str, kind: EventKind) -> Any:
    if data.get(key) is None:
        raise ConfigurationError(f"{kind.value} event requires '{key}'")
    return data[key]


def _score(data: Dict[str, Any], key: str, kind: EventKind) -> float:
    try:
        return float(_field(data, key, kind))
    except (TypeError, ValueError):
        raise ConfigurationError(f"'{key}' must be numeric, got {data.get(key)!r}")


def event_from_dict(data: Dict[str, Any]) -> DomainEvent:
    """Parse an event from ``{"kind": ..., "lead": {...}, ...}``."""
    try:
        kind = EventKind(data.get("kind"))
    except ValueError:
        raise ConfigurationError(f"Unknown event kind: {data.get('kind')!r}")
    if not isinstance(data.get("lead"), dict):
        raise ConfigurationError(f"{kind.value} event requires a lead snapshot")

    common = {"lead": Lead.from_dict(data["lead"])}
    if data.get("eventId"):
        common["event_id"] = str(data["eventId"])
    occurred_at = parse_datetime(data.get("occurredAt"))
    if occurred_at:
        common["occurred_at"] = occurred_at

    if kind == EventKind.LEAD_CREATED:
        return LeadCreated(**common)
    if kind == EventKind.STAGE_CHANGED:
        return StageChanged(old_stage=data.get("oldStage"), new_stage=_field(data, "newStage", kind), **common)
    if kind == EventKind.TASK_COMPLETED:
        return TaskCompleted(task_id=data.get("taskId"), **common)
    if kind == EventKind.SCORE_CHANGED:
        return ScoreChanged(
            previous_score=_score(data, "previousScore", kind),
            new_score=_score(data, "newScore", kind),
            **common
        )
    return IdleScanTick(**common)
