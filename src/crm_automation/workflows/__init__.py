"""Segmentation conditions, triggers, actions and the rule engine."""

from .models import (
    AutomationRule,
    FilterCondition,
    Operator,
    Logic,
    TriggerKind,
    ActionKind,
    trigger_from_dict,
    action_from_dict,
)
from .fields import FieldResolver, FieldType, CustomFieldDefinition
from .conditions import ConditionEvaluator
from .events import EventKind, event_from_dict
from .triggers import TriggerMatcher, TriggerEdgeState, EdgeStateStore
from .actions import ActionExecutor, ActionResult
from .repository import RuleRepository
from .engine import RuleEngine, IdempotencyLedger, EventOutcome, RuleStatus

__all__ = [
    'AutomationRule',
    'FilterCondition',
    'Operator',
    'Logic',
    'TriggerKind',
    'ActionKind',
    'trigger_from_dict',
    'action_from_dict',
    'FieldResolver',
    'FieldType',
    'CustomFieldDefinition',
    'ConditionEvaluator',
    'EventKind',
    'event_from_dict',
    'TriggerMatcher',
    'TriggerEdgeState',
    'EdgeStateStore',
    'ActionExecutor',
    'ActionResult',
    'RuleRepository',
    'RuleEngine',
    'IdempotencyLedger',
    'EventOutcome',
    'RuleStatus'
]
