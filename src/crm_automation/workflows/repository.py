"""Rule storage and CRUD."""

from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
import logging
import threading
import uuid

from ..core.errors import ConfigurationError
from ..storage.state import read_json, write_json
from .models import (
    AutomationAction,
    AutomationRule,
    AutomationTrigger,
    FilterCondition,
    TriggerKind,
)

logger = logging.getLogger(__name__)


class RuleRepository:
    """Automation rules for one organization, persisted to a JSON file.

    With no ``data_path`` rules live in memory only.
    """

    def __init__(self, data_path: Optional[Path] = None):
        self.data_path = data_path
        self.rules: Dict[str, AutomationRule] = {}
        self._delete_listeners: List[Callable[[str], Any]] = []
        self._lock = threading.RLock()
        self._load_data()

    def _load_data(self):
        for item in read_json(self.data_path, []):
            try:
                rule = AutomationRule.from_dict(item)
            except ConfigurationError as e:
                logger.error(f"Skipping invalid stored rule {item.get('id')}: {e}")
                continue
            self.rules[rule.id] = rule
        if self.rules:
            logger.info(f"Loaded {len(self.rules)} automation rules")

    def _save_data(self):
        write_json(self.data_path, [r.to_dict() for r in self.list_rules()])

    def on_delete(self, listener: Callable[[str], Any]):
        """Call ``listener(rule_id)`` whenever a rule is deleted."""
        self._delete_listeners.append(listener)

    def create_rule(
        self,
        name: str,
        trigger: AutomationTrigger,
        action: AutomationAction,
        conditions: List[FilterCondition] = None,
        description: str = "",
        is_enabled: bool = True
    ) -> AutomationRule:
        """Create and store a new rule."""
        if not name:
            raise ConfigurationError("Rule name is required")
        rule = AutomationRule(
            id=str(uuid.uuid4())[:12],
            name=name,
            trigger=trigger,
            action=action,
            conditions=list(conditions or []),
            description=description,
            is_enabled=is_enabled
        )
        with self._lock:
            self.rules[rule.id] = rule
            self._save_data()
        logger.info(f"Created rule '{name}' ({rule.id}): {trigger.kind.value} -> {action.kind.value}")
        return rule

    def add_rule(self, rule: AutomationRule) -> AutomationRule:
        """Store an already-built rule, e.g. one parsed from a file."""
        with self._lock:
            if rule.id in self.rules:
                raise ConfigurationError(f"Rule {rule.id} already exists")
            self.rules[rule.id] = rule
            self._save_data()
        return rule

    def import_rule(self, data: Dict[str, Any]) -> AutomationRule:
        """Parse a rule from its wire shape and store it."""
        return self.add_rule(AutomationRule.from_dict(data))

    def update_rule(self, rule_id: str, **updates) -> Optional[AutomationRule]:
        """Replace fields of a stored rule. Unknown field names are rejected.

        The trigger is fixed for the life of a rule: edge state is kept per
        (lead, rule), so a different trigger means a new rule.
        """
        if 'trigger' in updates:
            raise ConfigurationError("A rule's trigger cannot be changed; create a new rule instead")
        allowed = {'name', 'description', 'action', 'conditions', 'is_enabled'}
        unknown = set(updates) - allowed
        if unknown:
            raise ConfigurationError(f"Cannot update rule fields: {sorted(unknown)}")
        if 'name' in updates and not updates['name']:
            raise ConfigurationError("Rule name is required")

        with self._lock:
            rule = self.rules.get(rule_id)
            if not rule:
                return None
            if 'conditions' in updates:
                updates['conditions'] = list(updates['conditions'] or [])
            updated = replace(rule, updated_at=datetime.now(), **updates)
            self.rules[rule_id] = updated
            self._save_data()
        return updated

    def enable_rule(self, rule_id: str) -> bool:
        return self.update_rule(rule_id, is_enabled=True) is not None

    def disable_rule(self, rule_id: str) -> bool:
        return self.update_rule(rule_id, is_enabled=False) is not None

    def delete_rule(self, rule_id: str) -> bool:
        with self._lock:
            if rule_id not in self.rules:
                return False
            del self.rules[rule_id]
            self._save_data()
        for listener in self._delete_listeners:
            listener(rule_id)
        logger.info(f"Deleted rule {rule_id}")
        return True

    def get_rule(self, rule_id: str) -> Optional[AutomationRule]:
        return self.rules.get(rule_id)

    def list_rules(self, enabled_only: bool = False) -> List[AutomationRule]:
        """Rules in creation order."""
        with self._lock:
            rules = list(self.rules.values())
        if enabled_only:
            rules = [r for r in rules if r.is_enabled]
        return sorted(rules, key=lambda r: r.created_at)

    def rules_for(self, trigger_kind: TriggerKind) -> List[AutomationRule]:
        """Enabled rules listening to ``trigger_kind``, in creation order."""
        return [r for r in self.list_rules(enabled_only=True) if r.trigger.kind == trigger_kind]
