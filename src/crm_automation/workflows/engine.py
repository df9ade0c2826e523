"""Rule engine: route domain events through triggers, conditions and actions."""

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple
import logging
import threading

from ..storage.state import KeyedLocks, read_json, write_json
from .actions import ActionExecutor, ActionRequest, ActionResult
from .conditions import ConditionEvaluator
from .events import EVENT_TRIGGERS, DomainEvent
from .models import AutomationRule
from .repository import RuleRepository
from .triggers import EdgeStateStore, TriggerMatcher

logger = logging.getLogger(__name__)

LedgerKey = Tuple[str, str, str]  # (lead_id, rule_id, event_id)


class IdempotencyLedger:
    """Record of processed (lead, rule, event) keys.

    ``run_once`` holds the key's lock while it checks, runs and records, so
    two deliveries of the same event cannot both execute the action.
    Recording only touches memory; ``flush`` writes the file.
    """

    def __init__(self, data_path: Optional[Path] = None, max_entries: int = 10000):
        self.data_path = data_path
        self.max_entries = max_entries
        self.processed: "OrderedDict[LedgerKey, str]" = OrderedDict()
        self._locks = KeyedLocks()
        self._guard = threading.Lock()
        self._io_lock = threading.Lock()
        self._dirty = False
        self._load_data()

    def _load_data(self):
        for item in read_json(self.data_path, []):
            key = (item['lead_id'], item['rule_id'], item['event_id'])
            self.processed[key] = item['processed_at']

    def flush(self):
        """Write the ledger to disk if keys were recorded since the last flush."""
        if self.data_path is None:
            return
        with self._io_lock:
            with self._guard:
                if not self._dirty:
                    return
                snapshot = [
                    {'lead_id': k[0], 'rule_id': k[1], 'event_id': k[2], 'processed_at': v}
                    for k, v in self.processed.items()
                ]
                self._dirty = False
            try:
                write_json(self.data_path, snapshot)
            except OSError:
                with self._guard:
                    self._dirty = True
                raise

    def is_processed(self, key: LedgerKey) -> bool:
        with self._guard:
            return key in self.processed

    def run_once(self, key: LedgerKey, fn: Callable[[], Any]) -> Tuple[bool, Any]:
        """Run ``fn`` unless ``key`` was already processed. Returns (ran, result)."""
        with self._locks.hold(key):
            if self.is_processed(key):
                return False, None
            result = fn()
            with self._guard:
                self.processed[key] = datetime.now().isoformat()
                while len(self.processed) > self.max_entries:
                    self.processed.popitem(last=False)
                self._dirty = True
            return True, result


class RuleStatus(Enum):
    """What happened to one rule while processing an event."""
    NOT_FIRED = "not_fired"
    CONDITIONS_NOT_MET = "conditions_not_met"
    DUPLICATE = "duplicate"
    EXECUTED = "executed"
    ACTION_FAILED = "action_failed"
    ERROR = "error"


@dataclass
class RuleOutcome:
    rule_id: str
    rule_name: str
    status: RuleStatus
    action_result: Optional[ActionResult] = None
    error: str = ""


@dataclass
class EventOutcome:
    """Per-rule results for one event."""
    event_id: str
    lead_id: str
    kind: str
    rules: List[RuleOutcome] = field(default_factory=list)

    @property
    def requests(self) -> List[ActionRequest]:
        """Requests emitted by successfully executed actions."""
        return [
            r.action_result.request for r in self.rules
            if r.status == RuleStatus.EXECUTED and r.action_result and r.action_result.request
        ]

    def by_status(self, status: RuleStatus) -> List[RuleOutcome]:
        return [r for r in self.rules if r.status == status]


class RuleEngine:
    """Evaluate enabled rules for each incoming domain event.

    ``on_event`` may be called from any number of threads. Each event is
    processed to completion before returning: every enabled rule listening
    to the event's kind is evaluated in creation order, and a failure in
    one rule never stops the rules after it.
    """

    def __init__(
        self,
        rules: RuleRepository,
        executor: ActionExecutor,
        evaluator: Optional[ConditionEvaluator] = None,
        matcher: Optional[TriggerMatcher] = None,
        edge_states: Optional[EdgeStateStore] = None,
        ledger: Optional[IdempotencyLedger] = None
    ):
        self.rules = rules
        self.executor = executor
        self.evaluator = evaluator or ConditionEvaluator()
        self.matcher = matcher or TriggerMatcher()
        self.edge_states = edge_states or EdgeStateStore()
        self.ledger = ledger or IdempotencyLedger()
        self.rules.on_delete(self.edge_states.forget_rule)

    def on_event(self, event: DomainEvent) -> EventOutcome:
        """Process one domain event."""
        outcome = EventOutcome(event_id=event.event_id, lead_id=event.lead_id, kind=event.kind.value)
        trigger_kind = EVENT_TRIGGERS.get(event.kind)

        candidates = self.rules.rules_for(trigger_kind) if trigger_kind else []
        if not candidates:
            logger.debug(f"No enabled rules for {event.kind.value} (lead {event.lead_id})")
            return outcome

        for rule in candidates:
            try:
                outcome.rules.append(self._process_rule(rule, event))
            except Exception as e:
                logger.exception(f"Rule {rule.id} failed on event {event.event_id}")
                outcome.rules.append(RuleOutcome(
                    rule_id=rule.id, rule_name=rule.name, status=RuleStatus.ERROR, error=str(e)
                ))

        self.flush()

        executed = len(outcome.by_status(RuleStatus.EXECUTED))
        if executed:
            logger.info(
                f"Event {event.kind.value} {event.event_id} for lead {event.lead_id}: "
                f"{executed} action(s) executed"
            )
        return outcome

    def _process_rule(self, rule: AutomationRule, event: DomainEvent) -> RuleOutcome:
        fired = self.edge_states.transition(
            event.lead_id,
            rule.id,
            lambda state: self.matcher.matches(event, rule.trigger, state)
        )
        if not fired:
            return RuleOutcome(rule.id, rule.name, RuleStatus.NOT_FIRED)

        if not self.evaluator.evaluate(event.lead, rule.conditions):
            return RuleOutcome(rule.id, rule.name, RuleStatus.CONDITIONS_NOT_MET)

        key = (event.lead_id, rule.id, event.event_id)
        ran, result = self.ledger.run_once(
            key, lambda: self.executor.execute(rule.action, event.lead, rule_id=rule.id)
        )
        if not ran:
            logger.info(f"Skipping already processed {key}")
            return RuleOutcome(rule.id, rule.name, RuleStatus.DUPLICATE)

        if result.failed:
            logger.warning(f"Rule '{rule.name}' ({rule.id}) action failed: {result.reason}")
            return RuleOutcome(rule.id, rule.name, RuleStatus.ACTION_FAILED, action_result=result,
                               error=result.reason)
        return RuleOutcome(rule.id, rule.name, RuleStatus.EXECUTED, action_result=result)

    def flush(self):
        """Write edge state and ledger changes; a failed write is retried on the next flush."""
        for store in (self.edge_states, self.ledger):
            try:
                store.flush()
            except OSError as e:
                logger.error(f"Error saving engine state to {store.data_path}: {e}")

    def process_events(self, events: List[DomainEvent]) -> List[EventOutcome]:
        """Process events in order."""
        return [self.on_event(event) for event in events]
