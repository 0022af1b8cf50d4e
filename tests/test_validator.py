"""
Tests for design-time form logic validation.
"""

from backend.formlogic.logic.types import InferredType
from backend.formlogic.validator import (
    LogicValidator,
    collect_field_ids,
    collect_field_paths,
    validate_form_file,
    validate_form_logic,
)
from backend.formlogic.models import as_form


def get_minimal_valid_form():
    """Return a form whose logic is fully valid."""
    return {
        "kind": "form",
        "name": "test",
        "version": "1.0",
        "title": "Test",
        "fields": {
            "age": {"type": "number"},
            "consent": {"type": "boolean", "visible": "isAdult"},
            "rent": {"type": "money", "required": "fields.rent.value.amount > 0"},
            "address": {
                "type": "fieldset",
                "fields": {"street": {"type": "text", "required": True}},
            },
        },
        "annexes": {"id_copy": {"required": "isAdult"}},
        "parties": {"buyer": {"label": "Buyer", "required": "partyCount('buyer') > 0"}},
        "logic": {"isAdult": "fields.age.value >= 18"},
    }


class TestFieldPaths:
    """Tests for field path collection."""

    def test_paths(self):
        """Test value paths include money and fieldset children."""
        paths = collect_field_paths(as_form(get_minimal_valid_form()).fields)
        assert "fields.age.value" in paths
        assert "fields.rent.value.amount" in paths
        assert "fields.address.value" in paths
        assert "fields.address.street.value" in paths

    def test_ids(self):
        """Test field ids include nested ids."""
        ids = collect_field_ids(as_form(get_minimal_valid_form()).fields)
        assert ids == {"age", "consent", "rent", "address", "address.street"}

    def test_empty(self):
        """Test no fields gives no paths."""
        assert collect_field_paths(None) == set()


class TestValidateFormLogic:
    """Tests for validate_form_logic."""

    def test_valid_form(self):
        """Test a valid form has no issues."""
        result = validate_form_logic(get_minimal_valid_form())
        assert result.valid is True
        assert result.issues == []

    def test_unknown_variable(self):
        """Test an unknown variable is an error."""
        form = get_minimal_valid_form()
        form["logic"]["broken"] = "fields.nonexistent.value > 1"
        result = validate_form_logic(form)
        assert result.valid is False
        issue = result.errors[0]
        assert issue.message == 'Unknown variable: "fields.nonexistent.value"'
        assert issue.variable == "fields.nonexistent.value"
        assert issue.path == ["logic", "broken"]

    def test_syntax_error(self):
        """Test a syntax error is reported at its path."""
        form = get_minimal_valid_form()
        form["fields"]["age"]["visible"] = "fields.age.value >"
        result = validate_form_logic(form)
        assert result.valid is False
        assert result.issues[0].message.startswith("Syntax error:")
        assert result.issues[0].path == ["fields", "age", "visible"]

    def test_deep_nesting_is_syntax_error(self):
        """Test runaway nesting is reported as a syntax error issue."""
        form = get_minimal_valid_form()
        form["logic"]["deep"] = "(" * 3000 + "1" + ")" * 3000
        result = validate_form_logic(form)
        assert result.valid is False
        issue = result.errors[0]
        assert issue.message.startswith("Syntax error:")
        assert issue.path == ["logic", "deep"]

    def test_nested_field_path(self):
        """Test fieldset children are reported under their parent."""
        form = get_minimal_valid_form()
        form["fields"]["address"]["fields"]["street"]["visible"] = "nope"
        result = validate_form_logic(form)
        paths = [issue.path for issue in result.errors]
        assert ["fields", "address", "fields", "street", "visible"] in paths

    def test_annex_and_party_paths(self):
        """Test annex and party conditions are checked."""
        form = get_minimal_valid_form()
        form["annexes"]["id_copy"]["visible"] = "ghost"
        form["parties"]["buyer"]["required"] = "phantom"
        result = validate_form_logic(form)
        paths = [issue.path for issue in result.errors]
        assert ["annexes", "id_copy", "visible"] in paths
        assert ["parties", "buyer", "required"] in paths

    def test_logic_key_property_reference(self):
        """Test properties of object logic entries are known."""
        form = get_minimal_valid_form()
        form["logic"]["deposit"] = {"type": "money", "value": {"amount": "100", "currency": "'USD'"}}
        form["fields"]["consent"]["required"] = "deposit.amount > 50"
        result = validate_form_logic(form)
        assert result.valid is True

    def test_cycle_is_warning(self):
        """Test a circular logic key is a warning."""
        form = get_minimal_valid_form()
        form["logic"]["x"] = "x + 1"
        result = validate_form_logic(form)
        assert result.valid is True
        warning = result.warnings[0]
        assert warning.path == ["logic", "x"]
        assert "Circular dependency" in warning.message

    def test_non_boolean_condition_is_error(self):
        """Test a certain non-boolean condition is an error."""
        form = get_minimal_valid_form()
        form["fields"]["consent"]["visible"] = "fields.age.value + 1"
        result = validate_form_logic(form)
        assert result.valid is False
        issue = result.errors[0]
        assert issue.expected_type == InferredType.BOOLEAN
        assert issue.actual_type == InferredType.NUMBER

    def test_unverifiable_condition_is_warning(self):
        """Test an unverifiable condition is a warning."""
        form = get_minimal_valid_form()
        form["fields"]["consent"]["visible"] = "coalesce(isAdult, fields.address.street.value)"
        result = validate_form_logic(form)
        assert result.valid is True
        assert result.warnings[0].severity == "warning"

    def test_stop_at_first_issue(self):
        """Test collect_all_errors=False stops at the first issue."""
        form = get_minimal_valid_form()
        form["logic"]["a"] = "ghost1"
        form["logic"]["b"] = "ghost2"
        assert len(validate_form_logic(form).errors) == 2
        assert len(validate_form_logic(form, collect_all_errors=False).issues) == 1

    def test_invalid_form_definition(self):
        """Test a form that fails model validation is reported, not raised."""
        result = validate_form_logic({"fields": {"age": {"label": "no type"}}})
        assert result.valid is False
        assert result.issues[0].message.startswith("Invalid form definition")

    def test_issue_str(self):
        """Test the issue string form."""
        form = get_minimal_valid_form()
        form["logic"]["broken"] = "ghost"
        issue = LogicValidator().validate(form).issues[0]
        assert str(issue).startswith("[ERROR] logic.broken:")


class TestValidateFormFile:
    """Tests for validate_form_file."""

    def test_valid_file(self, tmp_path):
        """Test validating a valid file."""
        path = tmp_path / "form.yaml"
        path.write_text(
            "fields:\n"
            "  age:\n"
            "    type: number\n"
            "logic:\n"
            "  isAdult: fields.age.value >= 18\n",
            encoding="utf-8",
        )
        assert validate_form_file(path).valid is True

    def test_missing_file(self, tmp_path):
        """Test a missing file is reported."""
        result = validate_form_file(tmp_path / "missing.yaml")
        assert result.valid is False
        assert "File not found" in result.issues[0].message

    def test_unreadable_file(self, tmp_path):
        """Test a path that cannot be read is reported."""
        result = validate_form_file(tmp_path)
        assert result.valid is False
        assert "Cannot read" in result.issues[0].message

    def test_undecodable_file(self, tmp_path):
        """Test a file that is not UTF-8 is reported."""
        path = tmp_path / "form.yaml"
        path.write_bytes(b"fields:\n  age:\n    label: \xff\xfe\n")
        result = validate_form_file(path)
        assert result.valid is False
        assert "Cannot read" in result.issues[0].message
