"""Tests for field resolution."""

from datetime import datetime

from crm_automation.storage.models import Lead
from crm_automation.workflows.fields import (
    NULL,
    CustomFieldDefinition,
    FieldResolver,
    FieldType,
    TypedValue,
)


class TestFieldResolver:
    """Tests for FieldResolver."""

    def setup_method(self):
        self.resolver = FieldResolver([
            CustomFieldDefinition.from_dict({"id": "budget", "name": "Budget", "type": "number"}),
            CustomFieldDefinition.from_dict({"id": "moveIn", "name": "Move-in", "type": "date"}),
            CustomFieldDefinition.from_dict({"id": "notes", "name": "Notes"}),
        ])
        self.lead = Lead(
            id="L1",
            deal_value=1200,
            tags=["a", "b"],
            stage="new",
            custom_fields={"budget": "abc", "moveIn": "2024-06-01T00:00:00", "notes": 42},
        )

    def test_standard_fields(self):
        assert self.resolver.resolve(self.lead, "dealValue") == TypedValue(1200.0, FieldType.NUMBER)
        assert self.resolver.resolve(self.lead, "stage") == TypedValue("new", FieldType.TEXT)
        assert self.resolver.resolve(self.lead, "tags") == TypedValue(["a", "b"], FieldType.LIST)

    def test_missing_standard_value_is_null(self):
        assert self.resolver.resolve(self.lead, "score") is NULL
        assert self.resolver.resolve(self.lead, "campaign") is NULL

    def test_uncoercible_custom_number_is_null(self):
        assert self.resolver.resolve(self.lead, "budget") is NULL

    def test_custom_date_resolves_to_timestamp(self):
        resolved = self.resolver.resolve(self.lead, "custom:moveIn")
        assert resolved.type == FieldType.DATE
        assert resolved.value == datetime(2024, 6, 1).timestamp()

    def test_custom_text_passes_through_as_string(self):
        assert self.resolver.resolve(self.lead, "customFields.notes") == TypedValue("42", FieldType.TEXT)

    def test_unmapped_reference_is_null(self):
        assert self.resolver.resolve(self.lead, "unknownField") is NULL
        assert self.resolver.resolve(Lead(id="x", custom_fields={"other": 1}), "other") is NULL

    def test_field_type(self):
        assert self.resolver.field_type("score") == FieldType.NUMBER
        assert self.resolver.field_type("custom:budget") == FieldType.NUMBER
        assert self.resolver.field_type("nope") is None
