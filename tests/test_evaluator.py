"""
Tests for expression evaluation.
"""

import pytest

from backend.formlogic.logic.context import (
    EvaluationContext,
    FieldGroup,
    FieldLeaf,
    PartyContextEntry,
)
from backend.formlogic.logic.errors import ErrorKind, ExpressionEvaluationError
from backend.formlogic.logic.evaluator import (
    EvaluationOptions,
    ExpressionEvaluator,
    evaluate_boolean_expression,
    evaluate_expression,
    evaluate_expression_or_default,
    evaluate_multiple_expressions,
    is_cond_expr,
)


@pytest.fixture
def context():
    fields = FieldGroup({
        "age": FieldLeaf(25),
        "name": FieldLeaf("Ada"),
        "empty": FieldLeaf(None),
        "tags": FieldLeaf(["a", "b"]),
        "address": FieldGroup({
            "street": FieldLeaf("Main St"),
            "city": FieldLeaf("Springfield"),
        }),
    })
    return EvaluationContext(
        fields=fields,
        parties={
            "buyer": (
                PartyContextEntry(type="person", data={"fullName": "Ada"}, signed=True),
                PartyContextEntry(type="person", data={"fullName": "Bob"}, signed=False),
            ),
            "seller": (PartyContextEntry(type="organization", data={"name": "Acme"}, signed=True),),
        },
        witnesses=(PartyContextEntry(type="person", data={}, signed=True),),
        logic_values={"isAdult": True, "limit": 10},
    )


class TestEvaluateExpression:
    """Tests for evaluate_expression."""

    def test_field_comparison(self, context):
        """Test comparing a field value."""
        result = evaluate_expression("fields.age.value >= 18", context)
        assert result.success is True
        assert result.value is True

    def test_logic_key_reference(self, context):
        """Test logic keys resolve by bare name."""
        assert evaluate_expression("isAdult and limit > 5", context).value is True

    def test_nested_fieldset_value(self, context):
        """Test fieldset children resolve by dotted path."""
        assert evaluate_expression("fields.address.city.value", context).value == "Springfield"

    def test_fieldset_value_is_plain_dict(self, context):
        """Test a fieldset value is its children as a dict."""
        value = evaluate_expression("fields.address.value", context).value
        assert value == {"street": "Main St", "city": "Springfield"}

    def test_arithmetic(self, context):
        """Test arithmetic operators."""
        assert evaluate_expression("fields.age.value * 2 + 1", context).value == 51
        assert evaluate_expression("7 % 4", context).value == 3
        assert evaluate_expression("2 ^ 3", context).value == 8

    def test_string_concatenation(self, context):
        """Test + joins strings."""
        assert evaluate_expression("fields.name.value + '!'", context).value == "Ada!"

    def test_ternary(self, context):
        """Test the conditional operator."""
        assert evaluate_expression("isAdult ? 'yes' : 'no'", context).value == "yes"

    def test_in_array(self, context):
        """Test membership in arrays."""
        assert evaluate_expression("'a' in fields.tags.value", context).value is True
        assert evaluate_expression("3 in [1, 2]", context).value is False

    def test_strict_equality(self, context):
        """Test booleans never equal numbers."""
        assert evaluate_expression("true == 1", context).value is False
        assert evaluate_expression("1 == 1.0", context).value is True

    def test_null_comparison_is_false(self, context):
        """Test ordering against null is false."""
        assert evaluate_expression("fields.empty.value > 1", context).value is False
        assert evaluate_expression("fields.empty.value == null", context).value is True

    def test_short_circuit(self, context):
        """Test the right side is not evaluated when the left decides."""
        assert evaluate_expression("false and missing", context).value is False
        assert evaluate_expression("true or missing", context).value is True

    def test_plain_mapping_context(self):
        """Test evaluation against a plain dict of values."""
        result = evaluate_expression("fields.age.value > 18", {"fields": {"age": {"value": 20}}})
        assert result.value is True

    def test_undefined_variable(self, context):
        """Test an unknown name is reported."""
        result = evaluate_expression("missing > 1", context)
        assert result.success is False
        assert result.error.kind == ErrorKind.UNDEFINED_VARIABLE
        assert result.error.variable == "missing"
        assert result.error_message == 'Undefined variable "missing" in expression "missing > 1"'

    def test_syntax_error(self, context):
        """Test malformed input is a syntax error."""
        result = evaluate_expression("1 +", context)
        assert result.error.kind == ErrorKind.SYNTAX_ERROR

    def test_type_mismatch(self, context):
        """Test arithmetic on text is a type mismatch."""
        result = evaluate_expression("fields.name.value - 1", context)
        assert result.error.kind == ErrorKind.TYPE_MISMATCH

    def test_division_by_zero(self, context):
        """Test division by zero fails."""
        result = evaluate_expression("1 / 0", context)
        assert result.error.kind == ErrorKind.EVALUATION_FAILED

    def test_member_of_null_fails(self, context):
        """Test reading a property of null fails."""
        result = evaluate_expression("fields.empty.value.length", context)
        assert result.error.kind == ErrorKind.EVALUATION_FAILED

    def test_unknown_function(self, context):
        """Test calling an unknown function fails."""
        result = evaluate_expression("frobnicate(1)", context)
        assert result.error.kind == ErrorKind.EVALUATION_FAILED

    def test_path_attached_to_error(self, context):
        """Test the form path is attached to errors."""
        result = evaluate_expression("missing", context, path=["fields", "age", "visible"])
        assert result.error.path == ["fields", "age", "visible"]

    def test_throw_on_error(self, context):
        """Test throw_on_error raises the error."""
        with pytest.raises(ExpressionEvaluationError) as exc_info:
            evaluate_expression("missing", context, EvaluationOptions(throw_on_error=True))
        assert exc_info.value.kind == ErrorKind.UNDEFINED_VARIABLE


class TestBuiltinFunctions:
    """Tests for the runtime function library."""

    def test_string_helpers(self, context):
        """Test string functions."""
        assert evaluate_expression("upper(fields.name.value)", context).value == "ADA"
        assert evaluate_expression("startsWith(fields.name.value, 'A')", context).value is True
        assert evaluate_expression("concat('a', 1, null)", context).value == "a1"
        assert evaluate_expression("matches(fields.name.value, '^A')", context).value is True

    def test_emptiness(self, context):
        """Test isEmpty and isNotEmpty."""
        assert evaluate_expression("isEmpty(fields.empty.value)", context).value is True
        assert evaluate_expression("isNotEmpty(fields.tags.value)", context).value is True

    def test_numeric_helpers(self, context):
        """Test numeric functions."""
        assert evaluate_expression("max(1, 5, 3)", context).value == 5
        assert evaluate_expression("round(2.5)", context).value == 3
        assert evaluate_expression("round(-2.5)", context).value == -3
        assert evaluate_expression("round(1.234, 2)", context).value == pytest.approx(1.23)

    def test_coalesce(self, context):
        """Test coalesce skips nulls."""
        assert evaluate_expression("coalesce(fields.empty.value, 'x')", context).value == "x"

    def test_party_helpers(self, context):
        """Test party counting and signature functions."""
        assert evaluate_expression("partyCount('buyer')", context).value == 2
        assert evaluate_expression("signedCount('buyer')", context).value == 1
        assert evaluate_expression("allSigned('buyer')", context).value is False
        assert evaluate_expression("anySigned('buyer')", context).value is True
        assert evaluate_expression("allSigned('seller')", context).value is True
        assert evaluate_expression("partyType('seller')", context).value == "organization"

    def test_party_helpers_missing_role(self, context):
        """Test party functions on an absent role."""
        assert evaluate_expression("partyCount('tenant')", context).value == 0
        assert evaluate_expression("allSigned('tenant')", context).value is False

    def test_witness_helpers(self, context):
        """Test witness functions."""
        assert evaluate_expression("witnessCount()", context).value == 1
        assert evaluate_expression("allWitnessesSigned()", context).value is True


class TestEvaluateBooleanExpression:
    """Tests for evaluate_boolean_expression."""

    def test_none_gives_default(self, context):
        """Test an absent condition gives the default."""
        assert evaluate_boolean_expression(None, context, True) is True
        assert evaluate_boolean_expression(None, context, False) is False

    def test_literal_boolean(self, context):
        """Test a literal boolean is returned as is."""
        assert evaluate_boolean_expression(False, context, True) is False

    def test_expression(self, context):
        """Test an expression condition is evaluated."""
        assert evaluate_boolean_expression("fields.age.value < 18", context, True) is False

    def test_failure_gives_default(self, context):
        """Test a failing condition gives the default."""
        assert evaluate_boolean_expression("missing", context, True) is True

    def test_truthiness(self, context):
        """Test non-boolean results are coerced."""
        assert evaluate_boolean_expression("fields.name.value", context, False) is True
        assert evaluate_boolean_expression("fields.empty.value", context, True) is False
        assert evaluate_boolean_expression("0", context, True) is False


class TestHelpers:
    """Tests for the remaining evaluation helpers."""

    def test_or_default(self, context):
        """Test evaluate_expression_or_default."""
        assert evaluate_expression_or_default("missing", context, "fallback") == "fallback"
        assert evaluate_expression_or_default("limit", context, "fallback") == 10

    def test_multiple(self, context):
        """Test evaluate_multiple_expressions collects errors by key."""
        outcome = evaluate_multiple_expressions({"a": "limit + 1", "b": "missing"}, context)
        assert outcome.results == {"a": 11}
        assert len(outcome.errors) == 1
        assert outcome.errors[0]["key"] == "b"
        assert outcome.errors[0]["kind"] == ErrorKind.UNDEFINED_VARIABLE

    def test_is_cond_expr(self):
        """Test condition value detection."""
        assert is_cond_expr(True)
        assert is_cond_expr("a > 1")
        assert not is_cond_expr(None)
        assert not is_cond_expr(1)

    def test_to_bool(self):
        """Test truthiness coercion."""
        assert ExpressionEvaluator.to_bool([]) is False
        assert ExpressionEvaluator.to_bool("x") is True
        assert ExpressionEvaluator.to_bool(None) is False


class TestFailureContainment:
    """Tests that hostile operands fail as results instead of raising."""

    def test_infinite_index(self, context):
        """Test an infinite index is a type mismatch."""
        result = evaluate_expression("[1, 2][1e400]", context)
        assert result.success is False
        assert result.error.kind == ErrorKind.TYPE_MISMATCH

    def test_nan_index(self, context):
        """Test a NaN index is a type mismatch."""
        result = evaluate_expression("fields.tags.value[1e400 - 1e400]", context)
        assert result.success is False
        assert result.error.kind == ErrorKind.TYPE_MISMATCH

    def test_unhashable_key_in_object(self, context):
        """Test an array looked up in an object is a type mismatch."""
        result = evaluate_expression("[1] in fields.address.value", context)
        assert result.success is False
        assert result.error.kind == ErrorKind.TYPE_MISMATCH

    def test_string_key_in_object(self, context):
        """Test a string key is looked up in an object."""
        assert evaluate_expression("'city' in fields.address.value", context).value is True

    def test_huge_power_fails_fast(self, context):
        """Test an overflowing power fails instead of computing a huge integer."""
        result = evaluate_expression("9 ^ 9 ^ 8 > 0", context)
        assert result.success is False
        assert result.error.kind == ErrorKind.EVALUATION_FAILED

    def test_deep_nesting_is_syntax_error(self, context):
        """Test deeply nested parentheses are rejected by the parser."""
        result = evaluate_expression("(" * 3000 + "1" + ")" * 3000, context)
        assert result.success is False
        assert result.error.kind == ErrorKind.SYNTAX_ERROR

    def test_conditions_fall_back_to_default(self, context):
        """Test each hostile condition yields the default."""
        for expression in ("[1, 2][1e400] == 1", "[1] in fields.address.value", "9 ^ 9 ^ 8 > 0"):
            assert evaluate_boolean_expression(expression, context, True) is True
