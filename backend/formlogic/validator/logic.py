"""
Design-time validation of form logic.

Checks a form definition before any data exists:
- Expression syntax for logic entries and conditional expressions
- Variable references resolve to field paths or logic keys
- Logic keys involved in dependency cycles
- visible/required/disabled expressions produce booleans
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

from pydantic import ValidationError

from ..logic.context import RESERVED_NAMES
from ..logic.dependencies import topological_sort_logic_keys
from ..logic.environment import build_form_type_environment
from ..logic.errors import PathPart
from ..logic.inferrer import validate_boolean_type
from ..logic.parser import parse_expression
from ..logic.types import InferredType, TypeEnvironment
from ..loader import FormLoadError, load_form
from ..models import FieldDef, Form, LogicExpression, as_form
from .field_paths import collect_field_paths

logger = logging.getLogger(__name__)

FIELD_CONDITIONS = ("required", "visible", "disabled")
ANNEX_CONDITIONS = ("required", "visible")


@dataclass
class LogicValidationIssue:
    """A problem found in a form's logic."""

    message: str
    path: List[PathPart] = field(default_factory=list)
    expression: Optional[str] = None
    variable: Optional[str] = None
    severity: str = "error"
    expected_type: Optional[InferredType] = None
    actual_type: Optional[InferredType] = None

    def __str__(self) -> str:
        location = ".".join(str(p) for p in self.path)
        return f"[{self.severity.upper()}] {location}: {self.message}"


@dataclass
class LogicValidationResult:
    """Result of logic validation. Warnings do not make a form invalid."""

    valid: bool = True
    issues: List[LogicValidationIssue] = field(default_factory=list)

    def add_issue(
        self,
        message: str,
        path: List[PathPart],
        expression: Optional[str] = None,
        variable: Optional[str] = None,
        severity: str = "error",
        expected_type: Optional[InferredType] = None,
        actual_type: Optional[InferredType] = None,
    ) -> None:
        """Add a logic issue."""
        self.issues.append(LogicValidationIssue(
            message=message,
            path=list(path),
            expression=expression,
            variable=variable,
            severity=severity,
            expected_type=expected_type,
            actual_type=actual_type,
        ))
        if severity == "error":
            self.valid = False

    @property
    def errors(self) -> List[LogicValidationIssue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> List[LogicValidationIssue]:
        return [i for i in self.issues if i.severity == "warning"]


class _StopValidation(Exception):
    """Raised internally to stop at the first issue."""


class LogicValidator:
    """
    Validates the logic of a form definition.

    Checks:
    - Every expression parses
    - Variables are known field paths, logic keys (or their properties),
      or party/witness references
    - No logic key is part of a dependency cycle (warning)
    - Conditional expressions are boolean-typed
    """

    def __init__(self, collect_all_errors: bool = True):
        """
        Initialize the logic validator.

        Args:
            collect_all_errors: Keep going after the first issue.
        """
        self.collect_all_errors = collect_all_errors

    def validate(self, form: Union[Form, Dict[str, Any]]) -> LogicValidationResult:
        """
        Validate a form's logic.

        Args:
            form: Form model or mapping.

        Returns:
            LogicValidationResult with validation status and issues.
        """
        result = LogicValidationResult()
        try:
            form = as_form(form)
        except ValidationError as e:
            result.add_issue(f"Invalid form definition: {e.error_count()} error(s)", [])
            logger.debug("Form definition rejected: %s", e)
            return result

        known = collect_field_paths(form.fields)
        logic_keys = set(form.logic)

        try:
            self._check_logic_section(form, known, logic_keys, result)
            self._check_field_expressions(form.fields, ["fields"], known, logic_keys, result)
            self._check_annex_expressions(form, known, logic_keys, result)
            self._check_party_expressions(form, known, logic_keys, result)

            environment = build_form_type_environment(form)
            self._type_check_fields(form.fields, ["fields"], environment, result)
            self._type_check_annexes(form, environment, result)
            self._type_check_parties(form, environment, result)
        except _StopValidation:
            pass

        if result.issues:
            logger.debug("Form %s logic has %d issue(s)", form.name, len(result.issues))
        return result

    def _record(self, result: LogicValidationResult, message: str, path: List[PathPart], **extra: Any) -> None:
        result.add_issue(message, path, **extra)
        if not self.collect_all_errors:
            raise _StopValidation()

    def _is_known_variable(self, variable: str, known: Set[str], logic_keys: Set[str]) -> bool:
        if variable in known:
            return True
        root = variable.split(".", 1)[0]
        if root in logic_keys:
            return True
        return root in RESERVED_NAMES and root != "fields"

    def _check_expression(
        self,
        expression: Any,
        path: List[PathPart],
        known: Set[str],
        logic_keys: Set[str],
        result: LogicValidationResult,
    ) -> None:
        """Syntax and variable check for one expression. Literal booleans pass."""
        if not isinstance(expression, str):
            return

        parsed = parse_expression(expression)
        if not parsed.success:
            self._record(result, f"Syntax error: {parsed.error}", path, expression=expression)
            return

        for variable in parsed.variables:
            if not self._is_known_variable(variable, known, logic_keys):
                self._record(
                    result,
                    f'Unknown variable: "{variable}"',
                    path,
                    expression=expression,
                    variable=variable,
                )

    def _check_logic_section(
        self,
        form: Form,
        known: Set[str],
        logic_keys: Set[str],
        result: LogicValidationResult,
    ) -> None:
        for key, entry in form.logic.items():
            if isinstance(entry, LogicExpression) and isinstance(entry.value, dict):
                for prop, expression in entry.value.items():
                    self._check_expression(expression, ["logic", key, "value", prop], known, logic_keys, result)
            else:
                expression = entry.value if isinstance(entry, LogicExpression) else entry
                self._check_expression(expression, ["logic", key], known, logic_keys, result)

        order = topological_sort_logic_keys(form.logic)
        expressions = form.logic_expressions()
        for key in order.cyclic_keys:
            self._record(
                result,
                f'Circular dependency detected: logic key "{key}" is involved in a dependency cycle',
                ["logic", key],
                expression=expressions.get(key),
                severity="warning",
            )

    def _check_field_expressions(
        self,
        fields: Optional[Dict[str, FieldDef]],
        base_path: List[PathPart],
        known: Set[str],
        logic_keys: Set[str],
        result: LogicValidationResult,
    ) -> None:
        for field_id, field_def in (fields or {}).items():
            field_path = base_path + [field_id]
            for condition in FIELD_CONDITIONS:
                self._check_expression(
                    getattr(field_def, condition), field_path + [condition], known, logic_keys, result
                )
            if field_def.is_fieldset:
                self._check_field_expressions(
                    field_def.fields, field_path + ["fields"], known, logic_keys, result
                )

    def _check_annex_expressions(
        self,
        form: Form,
        known: Set[str],
        logic_keys: Set[str],
        result: LogicValidationResult,
    ) -> None:
        for annex_id, annex in form.annexes.items():
            for condition in ANNEX_CONDITIONS:
                self._check_expression(
                    getattr(annex, condition), ["annexes", annex_id, condition], known, logic_keys, result
                )

    def _check_party_expressions(
        self,
        form: Form,
        known: Set[str],
        logic_keys: Set[str],
        result: LogicValidationResult,
    ) -> None:
        for role_id, role in form.parties.items():
            self._check_expression(role.required, ["parties", role_id, "required"], known, logic_keys, result)

    def _type_check(
        self,
        expression: Any,
        path: List[PathPart],
        environment: TypeEnvironment,
        result: LogicValidationResult,
    ) -> None:
        if not isinstance(expression, str):
            return
        # Syntax errors were already reported.
        if not parse_expression(expression).success:
            return

        check = validate_boolean_type(expression, environment)
        if not check.valid:
            self._record(
                result,
                check.message or "Type validation failed",
                path,
                expression=expression,
                severity=check.severity,
                expected_type=check.expected_type,
                actual_type=check.actual_type,
            )

    def _type_check_fields(
        self,
        fields: Optional[Dict[str, FieldDef]],
        base_path: List[PathPart],
        environment: TypeEnvironment,
        result: LogicValidationResult,
    ) -> None:
        for field_id, field_def in (fields or {}).items():
            field_path = base_path + [field_id]
            for condition in FIELD_CONDITIONS:
                self._type_check(getattr(field_def, condition), field_path + [condition], environment, result)
            if field_def.is_fieldset:
                self._type_check_fields(field_def.fields, field_path + ["fields"], environment, result)

    def _type_check_annexes(
        self,
        form: Form,
        environment: TypeEnvironment,
        result: LogicValidationResult,
    ) -> None:
        for annex_id, annex in form.annexes.items():
            for condition in ANNEX_CONDITIONS:
                self._type_check(getattr(annex, condition), ["annexes", annex_id, condition], environment, result)

    def _type_check_parties(
        self,
        form: Form,
        environment: TypeEnvironment,
        result: LogicValidationResult,
    ) -> None:
        for role_id, role in form.parties.items():
            self._type_check(role.required, ["parties", role_id, "required"], environment, result)


def validate_form_logic(
    form: Union[Form, Dict[str, Any]],
    collect_all_errors: bool = True,
) -> LogicValidationResult:
    """
    Validate all logic expressions in a form.

    Example:
        >>> result = validate_form_logic({"logic": {"broken": "fields.nope.value"}})
        >>> result.issues[0].message
        'Unknown variable: "fields.nope.value"'
    """
    return LogicValidator(collect_all_errors=collect_all_errors).validate(form)


def validate_form_file(path: Union[str, Path], collect_all_errors: bool = True) -> LogicValidationResult:
    """
    Validate the logic of a form definition file.

    Unreadable or malformed files are reported as an error issue.
    """
    try:
        form = load_form(path)
    except (FormLoadError, ValidationError) as e:
        result = LogicValidationResult()
        result.add_issue(str(e), [])
        return result
    return validate_form_logic(form, collect_all_errors=collect_all_errors)
