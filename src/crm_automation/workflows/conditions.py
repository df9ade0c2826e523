"""Condition evaluation for segmentation and automation rules."""

from typing import Any, Iterable, List, Optional, Sequence
import logging

from ..storage.models import Lead
from .fields import FieldResolver, FieldType, TypedValue, to_number, to_timestamp
from .models import FilterCondition, Logic, Operator

logger = logging.getLogger(__name__)


class ConditionEvaluator:
    """Evaluate a list of filter conditions against a lead.

    Conditions fold left to right: the first condition seeds the result and
    each later condition combines with the running result through its own
    ``logic`` value. The first condition's ``logic`` is ignored.
    """

    def __init__(self, resolver: Optional[FieldResolver] = None):
        self.resolver = resolver or FieldResolver()

    def evaluate(self, lead: Lead, conditions: Sequence[FilterCondition]) -> bool:
        """Return True if ``lead`` satisfies ``conditions``."""
        if not conditions:
            return True

        if len(conditions) >= 3 and len({c.logic for c in conditions[1:]}) > 1:
            logger.debug(
                f"Mixed AND/OR chain of {len(conditions)} conditions evaluated "
                f"as a left fold (grouping semantics unconfirmed)"
            )

        result = self.check(lead, conditions[0])
        for condition in conditions[1:]:
            matched = self.check(lead, condition)
            if condition.logic == Logic.OR:
                result = result or matched
            else:
                result = result and matched
        return result

    def check(self, lead: Lead, condition: FilterCondition) -> bool:
        """Evaluate one condition in isolation."""
        resolved = self.resolver.resolve(lead, condition.field)
        operator = condition.operator

        if operator == Operator.IS_SET:
            return _is_set(resolved)
        if operator == Operator.IS_NOT_SET:
            return not _is_set(resolved)
        if operator in (Operator.GT, Operator.LT):
            return _compare(resolved, condition.value, operator)
        if operator == Operator.CONTAINS:
            return _contains(resolved, condition.value)
        if operator == Operator.EQUALS:
            return _equals(resolved, condition.value)
        if operator == Operator.NOT_EQUALS:
            return not _equals(resolved, condition.value)
        raise ValueError(f"Unhandled operator: {operator}")

    def segment(self, leads: Iterable[Lead], conditions: Sequence[FilterCondition]) -> List[Lead]:
        """Leads that satisfy ``conditions``, in input order."""
        return [lead for lead in leads if self.evaluate(lead, conditions)]


def _is_set(resolved: TypedValue) -> bool:
    value = resolved.value
    if value is None:
        return False
    if isinstance(value, str):
        return value != ""
    if isinstance(value, list):
        return len(value) > 0
    return True


def _operand(resolved: TypedValue, raw: Any) -> Optional[float]:
    """Coerce a condition value to the numeric domain of a resolved field."""
    if resolved.type == FieldType.DATE:
        return to_timestamp(raw)
    return to_number(raw)


def _compare(resolved: TypedValue, raw: Any, operator: Operator) -> bool:
    if resolved.is_null or isinstance(resolved.value, list):
        return False
    left = resolved.value if resolved.is_numeric else to_number(resolved.value)
    right = _operand(resolved, raw)
    if left is None or right is None:
        return False
    return left > right if operator == Operator.GT else left < right


def _contains(resolved: TypedValue, raw: Any) -> bool:
    if resolved.is_null or raw is None:
        return False
    needle = str(raw).lower()
    if isinstance(resolved.value, list):
        return any(needle in str(item).lower() for item in resolved.value)
    return needle in _stringify(resolved.value).lower()


def _equals(resolved: TypedValue, raw: Any) -> bool:
    if resolved.is_null:
        return False
    if isinstance(resolved.value, list):
        return any(str(item) == str(raw) for item in resolved.value)
    if resolved.is_numeric:
        right = _operand(resolved, raw)
        if right is not None:
            return resolved.value == right
    return _stringify(resolved.value) == _stringify(raw)


def _stringify(value: Any) -> str:
    """String form used for text comparison; integral floats drop the '.0'."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return "" if value is None else str(value)
