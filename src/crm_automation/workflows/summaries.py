"""Human-readable one-line summaries of rules, for listings."""

from typing import Optional

from ..team.directory import Directory
from .models import (
    ActionKind,
    AutomationAction,
    AutomationRule,
    AutomationTrigger,
    TriggerKind,
)


def _number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def describe_trigger(trigger: AutomationTrigger, has_conditions: bool = False) -> str:
    if trigger.kind == TriggerKind.NEW_LEAD:
        text = "A new lead is created"
    elif trigger.kind == TriggerKind.LEAD_UNTOUCHED:
        text = f"A lead is untouched for {_number(trigger.hours)} hours"
    elif trigger.kind == TriggerKind.STAGE_CHANGED:
        text = f"A lead's stage is changed to {trigger.to_stage}"
    elif trigger.kind == TriggerKind.TASK_COMPLETED:
        text = "A task is completed"
    elif trigger.kind == TriggerKind.LEAD_SCORE_REACHES:
        text = f"Lead score reaches {_number(trigger.score)}"
    else:
        text = "Unknown trigger"

    if has_conditions:
        text += " that matches conditions..."
    return text


def describe_action(action: AutomationAction, directory: Optional[Directory] = None) -> str:
    """Describe ``action``, naming users, teams and lists from ``directory``."""
    directory = directory or Directory()

    if action.kind == ActionKind.ASSIGN_TO_USER:
        user = directory.get_user(action.user_id)
        return f"Assign to {user.name if user else 'Unknown User'}"
    if action.kind == ActionKind.ASSIGN_TO_TEAM:
        team = directory.get_team(action.team_id)
        return f"Assign to Team: {team.name if team else 'Unknown'}"
    if action.kind == ActionKind.ASSIGN_ROUND_ROBIN:
        team = directory.get_team(action.team_id)
        return f"Round-Robin in Team: {team.name if team else 'Unknown'}"
    if action.kind == ActionKind.ADD_TAG:
        return f'Add tag: "{action.tag}"'
    if action.kind == ActionKind.SEND_WEBHOOK:
        return "Send webhook to URL"
    if action.kind == ActionKind.CREATE_TASK:
        return f'Create task: "{action.title}"'
    if action.kind == ActionKind.ADD_TO_PHONE_LIST:
        phone_list = directory.get_phone_list(action.phone_list_id)
        return f"Add to Phone List: {phone_list.name if phone_list else 'Unknown List'}"
    return "Unknown action"


def describe_rule(rule: AutomationRule, directory: Optional[Directory] = None) -> str:
    """``WHEN ... THEN ...`` for one rule."""
    trigger = describe_trigger(rule.trigger, has_conditions=bool(rule.conditions))
    return f"WHEN {trigger} THEN {describe_action(rule.action, directory)}"
