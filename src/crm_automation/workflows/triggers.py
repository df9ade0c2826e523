"""Trigger matching with per-lead edge state."""

from collections import OrderedDict
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple
import logging
import threading

from ..storage.models import parse_datetime
from ..storage.state import KeyedLocks, read_json, write_json
from .events import EVENT_TRIGGERS, DomainEvent, IdleScanTick, ScoreChanged, StageChanged
from .models import (
    AutomationTrigger,
    LeadUntouchedTrigger,
    ScoreReachesTrigger,
    StageChangedTrigger,
    TriggerKind,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TriggerEdgeState:
    """What a rule last observed for a lead.

    Score and stage triggers decide from the event's own transition; the
    last observed transition only suppresses a repeated delivery of it.
    The idle marker records the idle period already fired for, and
    ``fired_at`` whether the one-shot NEW_LEAD has fired.
    """
    lead_id: str
    rule_id: str
    last_observed_score: Optional[float] = None
    last_observed_score_from: Optional[float] = None
    last_observed_stage: Optional[str] = None
    last_observed_stage_from: Optional[str] = None
    idle_marker: Optional[datetime] = None
    fired_at: Optional[datetime] = None

    def to_dict(self) -> Dict:
        return {
            'lead_id': self.lead_id,
            'rule_id': self.rule_id,
            'last_observed_score': self.last_observed_score,
            'last_observed_score_from': self.last_observed_score_from,
            'last_observed_stage': self.last_observed_stage,
            'last_observed_stage_from': self.last_observed_stage_from,
            'idle_marker': self.idle_marker.isoformat() if self.idle_marker else None,
            'fired_at': self.fired_at.isoformat() if self.fired_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "TriggerEdgeState":
        return cls(
            lead_id=data['lead_id'],
            rule_id=data['rule_id'],
            last_observed_score=data.get('last_observed_score'),
            last_observed_score_from=data.get('last_observed_score_from'),
            last_observed_stage=data.get('last_observed_stage'),
            last_observed_stage_from=data.get('last_observed_stage_from'),
            idle_marker=parse_datetime(data.get('idle_marker')),
            fired_at=parse_datetime(data.get('fired_at')),
        )


MatchResult = Tuple[bool, TriggerEdgeState]


class TriggerMatcher:
    """Decide whether a domain event fires a rule's trigger."""

    def __init__(self):
        self._matchers: Dict[TriggerKind, Callable[[DomainEvent, AutomationTrigger, TriggerEdgeState], MatchResult]] = {
            TriggerKind.NEW_LEAD: self._match_new_lead,
            TriggerKind.LEAD_UNTOUCHED: self._match_untouched,
            TriggerKind.STAGE_CHANGED: self._match_stage_changed,
            TriggerKind.TASK_COMPLETED: self._match_task_completed,
            TriggerKind.LEAD_SCORE_REACHES: self._match_score_reaches,
        }
        missing = set(TriggerKind) - set(self._matchers)
        if missing:
            raise RuntimeError(f"No matcher for trigger kinds: {sorted(k.value for k in missing)}")

    def handles(self, event: DomainEvent, trigger: AutomationTrigger) -> bool:
        """Whether ``event`` is of the class ``trigger`` listens to."""
        return EVENT_TRIGGERS.get(event.kind) == trigger.kind

    def matches(
        self,
        event: DomainEvent,
        trigger: AutomationTrigger,
        edge_state: TriggerEdgeState
    ) -> MatchResult:
        """Return ``(fired, new_edge_state)``. Pure: the caller stores the new state."""
        if not self.handles(event, trigger):
            return False, edge_state
        return self._matchers[trigger.kind](event, trigger, edge_state)

    def _match_new_lead(self, event, trigger, state: TriggerEdgeState) -> MatchResult:
        if state.fired_at is not None:
            return False, state
        return True, replace(state, fired_at=event.occurred_at)

    def _match_untouched(self, event: IdleScanTick, trigger: LeadUntouchedTrigger,
                         state: TriggerEdgeState) -> MatchResult:
        reference = event.lead.idle_reference
        if reference is None:
            return False, state

        idle_hours = (event.occurred_at - reference).total_seconds() / 3600
        if idle_hours < trigger.hours:
            return False, state
        if state.idle_marker == reference:
            # Already fired for this idle period; re-armed once the lead is touched.
            return False, state
        return True, replace(state, idle_marker=reference)

    def _match_stage_changed(self, event: StageChanged, trigger: StageChangedTrigger,
                             state: TriggerEdgeState) -> MatchResult:
        transition = (event.old_stage, event.new_stage)
        fired = (
            event.new_stage == trigger.to_stage
            and event.old_stage != trigger.to_stage
            and transition != (state.last_observed_stage_from, state.last_observed_stage)
        )
        return fired, replace(state, last_observed_stage_from=event.old_stage,
                              last_observed_stage=event.new_stage)

    def _match_task_completed(self, event, trigger, state: TriggerEdgeState) -> MatchResult:
        return True, state

    def _match_score_reaches(self, event: ScoreChanged, trigger: ScoreReachesTrigger,
                             state: TriggerEdgeState) -> MatchResult:
        transition = (event.previous_score, event.new_score)
        fired = (
            event.previous_score < trigger.score <= event.new_score
            and transition != (state.last_observed_score_from, state.last_observed_score)
        )
        return fired, replace(state, last_observed_score_from=event.previous_score,
                              last_observed_score=event.new_score)


class EdgeStateStore:
    """Edge state per (lead, rule), with transitions serialized per key.

    Transitions only touch memory; ``flush`` writes the file. The least
    recently updated states are evicted beyond ``max_entries``.
    """

    def __init__(self, data_path: Optional[Path] = None, max_entries: int = 100000):
        self.data_path = data_path
        self.max_entries = max_entries
        self.states: "OrderedDict[Tuple[str, str], TriggerEdgeState]" = OrderedDict()
        self._locks = KeyedLocks()
        self._guard = threading.Lock()
        self._io_lock = threading.Lock()
        self._dirty = False
        self._load_data()

    def _load_data(self):
        for item in read_json(self.data_path, []):
            state = TriggerEdgeState.from_dict(item)
            self.states[(state.lead_id, state.rule_id)] = state

    def flush(self):
        """Write the states to disk if anything changed since the last flush."""
        if self.data_path is None:
            return
        with self._io_lock:
            with self._guard:
                if not self._dirty:
                    return
                snapshot = [s.to_dict() for s in self.states.values()]
                self._dirty = False
            try:
                write_json(self.data_path, snapshot)
            except OSError:
                with self._guard:
                    self._dirty = True
                raise

    def get(self, lead_id: str, rule_id: str) -> TriggerEdgeState:
        with self._guard:
            state = self.states.get((lead_id, rule_id))
        return state or TriggerEdgeState(lead_id=lead_id, rule_id=rule_id)

    def transition(
        self,
        lead_id: str,
        rule_id: str,
        step: Callable[[TriggerEdgeState], MatchResult]
    ) -> bool:
        """Apply ``step`` to the current state atomically; return whether it fired."""
        key = (lead_id, rule_id)
        with self._locks.hold(key):
            current = self.get(lead_id, rule_id)
            fired, new_state = step(current)
            if new_state != current:
                with self._guard:
                    self.states[key] = new_state
                    self.states.move_to_end(key)
                    while len(self.states) > self.max_entries:
                        evicted, _ = self.states.popitem(last=False)
                        logger.debug(f"Evicted edge state {evicted}")
                    self._dirty = True
            return fired

    def forget_rule(self, rule_id: str):
        """Drop edge state of a deleted rule."""
        with self._guard:
            for key in [k for k in self.states if k[1] == rule_id]:
                del self.states[key]
            self._dirty = True
        self.flush()
