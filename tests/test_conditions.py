"""Tests for condition evaluation and segmentation."""

import pytest
from datetime import datetime

from crm_automation.core.errors import ConfigurationError
from crm_automation.storage.models import Lead
from crm_automation.workflows.conditions import ConditionEvaluator
from crm_automation.workflows.fields import CustomFieldDefinition, FieldResolver, FieldType
from crm_automation.workflows.models import FilterCondition, Logic, Operator


def cond(field, operator, value=None, logic=Logic.AND):
    return FilterCondition(field=field, operator=Operator(operator), value=value, logic=logic)


@pytest.fixture
def evaluator():
    resolver = FieldResolver([
        CustomFieldDefinition(id="budget", name="Budget", type=FieldType.NUMBER),
        CustomFieldDefinition(id="closeDate", name="Close Date", type=FieldType.DATE),
        CustomFieldDefinition(id="tier", name="Tier", type=FieldType.DROPDOWN, options=["Gold", "Silver"]),
    ])
    return ConditionEvaluator(resolver)


@pytest.fixture
def lead():
    return Lead(
        id="L1",
        source="Facebook Ads",
        deal_value=1500,
        score=51,
        campaign="Spring Promo",
        tags=["VIP", "webinar-2024"],
        stage="negotiation",
        custom_fields={"budget": "25000", "closeDate": "2024-03-01", "tier": "Gold"},
        created_at=datetime(2024, 1, 1),
    )


class TestEvaluate:
    """Tests for ConditionEvaluator.evaluate."""

    def test_empty_conditions_always_match(self, evaluator, lead):
        assert evaluator.evaluate(lead, []) is True
        assert evaluator.evaluate(Lead(id="bare"), []) is True

    def test_score_gt_boundary(self, evaluator):
        condition = cond("score", "gt", 50)
        assert evaluator.evaluate(Lead(id="a", score=51), [condition]) is True
        assert evaluator.evaluate(Lead(id="b", score=50), [condition]) is False

    def test_lt(self, evaluator, lead):
        assert evaluator.evaluate(lead, [cond("dealValue", "lt", "2000")]) is True
        assert evaluator.evaluate(lead, [cond("dealValue", "lt", 1500)]) is False

    def test_gt_with_unparseable_operand_is_false(self, evaluator, lead):
        assert evaluator.evaluate(lead, [cond("score", "gt", "lots")]) is False
        assert evaluator.evaluate(lead, [cond("source", "gt", 10)]) is False
        assert evaluator.evaluate(Lead(id="x"), [cond("score", "lt", 10)]) is False

    def test_contains_is_case_insensitive(self, evaluator, lead):
        assert evaluator.evaluate(lead, [cond("source", "contains", "facebook")]) is True
        assert evaluator.evaluate(lead, [cond("campaign", "contains", "PROMO")]) is True
        assert evaluator.evaluate(lead, [cond("source", "contains", "google")]) is False

    def test_contains_on_tags(self, evaluator, lead):
        assert evaluator.evaluate(lead, [cond("tags", "contains", "webinar")]) is True
        assert evaluator.evaluate(lead, [cond("tags", "contains", "cold")]) is False

    def test_equals_and_not_equals(self, evaluator, lead):
        assert evaluator.evaluate(lead, [cond("stage", "equals", "negotiation")]) is True
        assert evaluator.evaluate(lead, [cond("stage", "not_equals", "negotiation")]) is False
        assert evaluator.evaluate(lead, [cond("stage", "not_equals", "won")]) is True

    def test_equals_on_numeric_field(self, evaluator, lead):
        assert evaluator.evaluate(lead, [cond("dealValue", "equals", "1500")]) is True
        assert evaluator.evaluate(lead, [cond("dealValue", "equals", 1500.0)]) is True

    def test_equals_on_tags_matches_any_tag(self, evaluator, lead):
        assert evaluator.evaluate(lead, [cond("tags", "equals", "VIP")]) is True
        assert evaluator.evaluate(lead, [cond("tags", "equals", "vip")]) is False

    def test_not_equals_on_missing_value(self, evaluator):
        assert evaluator.evaluate(Lead(id="x"), [cond("stage", "not_equals", "won")]) is True

    def test_is_set_complements(self, evaluator, lead):
        empty = Lead(id="empty", source="", tags=[])
        for field in ["source", "dealValue", "score", "campaign", "tags", "stage", "budget", "tier"]:
            for record in (lead, empty):
                is_set = evaluator.evaluate(record, [cond(field, "is_set")])
                is_not_set = evaluator.evaluate(record, [cond(field, "is_not_set")])
                assert is_set != is_not_set, field

        assert evaluator.evaluate(empty, [cond("source", "is_set")]) is False
        assert evaluator.evaluate(empty, [cond("tags", "is_not_set")]) is True

    def test_unknown_field_degrades_to_not_set(self, evaluator, lead):
        assert evaluator.evaluate(lead, [cond("favouriteColour", "is_not_set")]) is True
        assert evaluator.evaluate(lead, [cond("favouriteColour", "equals", "blue")]) is False
        assert evaluator.evaluate(lead, [cond("custom:nope", "gt", 1)]) is False

    def test_custom_number_field(self, evaluator, lead):
        assert evaluator.evaluate(lead, [cond("budget", "gt", 20000)]) is True
        assert evaluator.evaluate(lead, [cond("custom:budget", "lt", 20000)]) is False
        assert evaluator.evaluate(lead, [cond("customFields.budget", "equals", "25000")]) is True

    def test_custom_date_field(self, evaluator, lead):
        assert evaluator.evaluate(lead, [cond("closeDate", "gt", "2024-01-15")]) is True
        assert evaluator.evaluate(lead, [cond("closeDate", "lt", "2024-01-15")]) is False

    def test_left_fold(self, evaluator, lead):
        true_cond = cond("stage", "equals", "negotiation")
        false_cond = cond("stage", "equals", "won")

        # (T OR F) AND F -> False
        conditions = [
            true_cond,
            cond("stage", "equals", "won", logic=Logic.OR),
            cond("score", "gt", 100, logic=Logic.AND),
        ]
        assert evaluator.evaluate(lead, conditions) is False

        # (F AND T) OR T -> True
        conditions = [
            false_cond,
            cond("score", "gt", 10, logic=Logic.AND),
            cond("source", "contains", "facebook", logic=Logic.OR),
        ]
        assert evaluator.evaluate(lead, conditions) is True

    def test_first_condition_logic_ignored(self, evaluator, lead):
        first = cond("stage", "equals", "won", logic=Logic.OR)
        assert evaluator.evaluate(lead, [first]) is False


class TestSegment:
    """Tests for segmentation."""

    def test_segment_keeps_input_order(self, evaluator):
        leads = [Lead(id=str(i), score=s) for i, s in enumerate([10, 90, 55, 70])]
        matched = evaluator.segment(leads, [cond("score", "gt", 50)])
        assert [l.id for l in matched] == ["1", "2", "3"]

    def test_segment_without_conditions_returns_all(self, evaluator):
        leads = [Lead(id="a"), Lead(id="b")]
        assert evaluator.segment(leads, []) == leads


class TestFilterCondition:
    """Tests for FilterCondition validation and parsing."""

    def test_value_rejected_on_is_set(self):
        with pytest.raises(ConfigurationError):
            cond("stage", "is_set", "won")

    def test_empty_field_rejected(self):
        with pytest.raises(ConfigurationError):
            cond("", "equals", "x")

    def test_from_dict(self):
        condition = FilterCondition.from_dict(
            {"id": "c1", "field": "score", "operator": "gt", "value": 50, "logic": "or"}
        )
        assert condition.id == "c1"
        assert condition.operator == Operator.GT
        assert condition.logic == Logic.OR

    def test_from_dict_unknown_operator(self):
        with pytest.raises(ConfigurationError):
            FilterCondition.from_dict({"field": "score", "operator": "is_between", "value": 5})

    def test_from_dict_blank_value_on_is_not_set(self):
        condition = FilterCondition.from_dict({"field": "tags", "operator": "is_not_set", "value": ""})
        assert condition.value is None
