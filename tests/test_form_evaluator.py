"""
Tests for whole-form evaluation.
"""

import pytest
from pydantic import ValidationError

from backend.formlogic.runtime.form_evaluator import (
    evaluate_form_logic,
    get_annex_runtime_state,
    get_field_runtime_state,
)


def get_rental_form():
    """Return a small rental agreement form."""
    return {
        "kind": "form",
        "name": "rental",
        "fields": {
            "age": {"type": "number", "required": True},
            "hasPets": {"type": "boolean"},
            "petName": {
                "type": "text",
                "visible": "fields.hasPets.value == true",
                "required": "fields.hasPets.value",
            },
            "guardian": {"type": "text", "visible": "not isAdult", "disabled": "isAdult"},
            "broken": {"type": "text", "visible": "missing.value > 1", "required": "1 +"},
            "address": {
                "type": "fieldset",
                "visible": "isAdult",
                "fields": {
                    "street": {"type": "text", "required": "isAdult"},
                },
            },
        },
        "annexes": [
            {"id": "petPolicy", "title": "Pet policy", "required": "fields.hasPets.value"},
            {"id": "photo", "visible": False},
        ],
        "logic": {
            "isAdult": "fields.age.value >= 18",
        },
    }


class TestEvaluateFormLogic:
    """Tests for evaluate_form_logic."""

    def test_adult_with_pets(self):
        """Test field and annex state for an adult with pets."""
        result = evaluate_form_logic(get_rental_form(), {"fields": {"age": 30, "hasPets": True}})
        assert result.success is True
        state = result.value
        assert state.logic_values == {"isAdult": True}
        assert state.fields["petName"].visible is True
        assert state.fields["petName"].required is True
        assert state.fields["guardian"].visible is False
        assert state.fields["guardian"].disabled is True
        assert state.annexes["petPolicy"].required is True

    def test_minor_without_pets(self):
        """Test field and annex state for a minor without pets."""
        state = evaluate_form_logic(get_rental_form(), {"fields": {"age": 12}}).value
        assert state.logic_values["isAdult"] is False
        assert state.fields["petName"].visible is False
        assert state.fields["guardian"].visible is True
        assert state.fields["address"].visible is False

    def test_defaults(self):
        """Test absent expressions fall back to visible, optional, enabled."""
        state = evaluate_form_logic(get_rental_form(), {}).value
        age = state.fields["age"]
        assert age.visible is True
        assert age.required is True
        assert age.disabled is False
        assert state.fields["hasPets"].required is False

    def test_failing_expressions_use_defaults(self):
        """Test broken expressions do not abort evaluation."""
        state = evaluate_form_logic(get_rental_form(), {"fields": {"age": 30}}).value
        assert state.fields["broken"].visible is True
        assert state.fields["broken"].required is False

    def test_hostile_conditions_use_defaults(self):
        """Test conditions that overflow or misuse operands fall back to defaults."""
        form = get_rental_form()
        form["fields"]["petName"]["visible"] = "[1, 2][1e400] == 1"
        form["fields"]["petName"]["required"] = "[1] in fields.address.value"
        form["fields"]["guardian"]["visible"] = "9 ^ 9 ^ 8 > 0"
        form["fields"]["guardian"]["disabled"] = "(" * 3000 + "true" + ")" * 3000
        result = evaluate_form_logic(form, {"fields": {"age": 30, "address": {"street": "Main"}}})
        assert result.success is True
        state = result.value
        assert state.fields["petName"].visible is True
        assert state.fields["petName"].required is False
        assert state.fields["guardian"].visible is True
        assert state.fields["guardian"].disabled is False

    def test_nested_fields_keyed_by_path(self):
        """Test fieldset children are keyed by dotted path."""
        state = evaluate_form_logic(
            get_rental_form(), {"fields": {"age": 30, "address": {"street": "Main"}}}
        ).value
        street = state.fields["address.street"]
        assert street.required is True
        assert street.value == "Main"
        assert state.fields["address"].value == {"street": "Main"}

    def test_field_values_recorded(self):
        """Test field values are copied into the state."""
        state = evaluate_form_logic(get_rental_form(), {"fields": {"age": 30}}).value
        assert state.fields["age"].value == 30
        assert state.fields["hasPets"].value is None

    def test_literal_annex_flags(self):
        """Test literal annex flags pass through."""
        state = evaluate_form_logic(get_rental_form(), {}).value
        assert state.annexes["photo"].visible is False
        assert state.annexes["photo"].required is False

    def test_idempotent(self):
        """Test identical input produces identical state."""
        data = {"fields": {"age": 30, "hasPets": True}}
        first = evaluate_form_logic(get_rental_form(), data).value
        second = evaluate_form_logic(get_rental_form(), data).value
        assert first == second

    def test_invalid_form_reports_issue(self):
        """Test an invalid form is reported as a failure."""
        result = evaluate_form_logic({"fields": {"age": {"label": "no type"}}})
        assert result.success is False
        assert result.issues
        assert result.issues[0].message.startswith("Form evaluation failed")

    def test_invalid_form_raises_when_asked(self):
        """Test an invalid form raises with throw_on_error."""
        with pytest.raises(ValidationError):
            evaluate_form_logic({"fields": {"age": {"label": "no type"}}}, throw_on_error=True)


class TestRuntimeStateLookups:
    """Tests for the runtime state lookup helpers."""

    def test_field_lookup(self):
        """Test field state lookup helpers."""
        state = evaluate_form_logic(get_rental_form(), {"fields": {"age": 30}}).value
        assert get_field_runtime_state(state, "age").field_id == "age"
        assert get_field_runtime_state(state, "nope") is None

    def test_annex_lookup(self):
        """Test annex state lookup helpers."""
        state = evaluate_form_logic(get_rental_form(), {}).value
        assert get_annex_runtime_state(state, "petPolicy").annex_id == "petPolicy"
        assert get_annex_runtime_state(state, "nope") is None
