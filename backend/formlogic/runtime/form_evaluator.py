"""
Form evaluation.

Evaluates every field and annex conditional expression of a form against
one evaluation context and produces the form's runtime state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..logic.context import EvaluationContext, get_field_value_from_context
from ..logic.errors import PathPart
from ..logic.evaluator import evaluate_boolean_expression
from ..models import AnnexDef, FieldDef, as_form, as_form_data
from .context_builder import DataLike, FormLike, build_base_context, evaluate_logic_keys

logger = logging.getLogger(__name__)

# Values used when an expression is absent or fails to evaluate:
# show the field, don't force input, leave it enabled.
DEFAULTS = {
    "visible": True,
    "required": False,
    "disabled": False,
}


@dataclass(frozen=True)
class FieldRuntimeState:
    """Evaluated state of one field."""

    field_id: str
    visible: bool
    required: bool
    disabled: bool = False
    value: Any = None


@dataclass(frozen=True)
class AnnexRuntimeState:
    """Evaluated state of one annex."""

    annex_id: str
    visible: bool
    required: bool


@dataclass
class FormRuntimeState:
    """
    Evaluated state of a whole form.

    ``fields`` is keyed by full dot path (``address.street``), so nested
    fieldsets are flattened.
    """

    fields: Dict[str, FieldRuntimeState] = field(default_factory=dict)
    annexes: Dict[str, AnnexRuntimeState] = field(default_factory=dict)
    logic_values: Dict[str, Any] = field(default_factory=dict)


@dataclass
class EvaluationIssue:
    """A failure that prevented evaluating the form."""

    message: str
    path: List[PathPart] = field(default_factory=list)
    expression: Optional[str] = None
    original_error: Optional[str] = None


@dataclass
class FormEvaluationResult:
    """Either a runtime state (``value``) or the ``issues`` that prevented one."""

    value: Optional[FormRuntimeState] = None
    issues: List[EvaluationIssue] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.value is not None


def _evaluate_fields(
    fields: Optional[Dict[str, FieldDef]],
    context: EvaluationContext,
    state: FormRuntimeState,
    prefix: str = "",
) -> None:
    """Evaluate field expressions, recursing into fieldsets."""
    for field_id, field_def in (fields or {}).items():
        full_id = f"{prefix}.{field_id}" if prefix else field_id
        path: List[PathPart] = ["fields", *full_id.split(".")]

        state.fields[full_id] = FieldRuntimeState(
            field_id=full_id,
            visible=evaluate_boolean_expression(
                field_def.visible, context, DEFAULTS["visible"], path=path + ["visible"]
            ),
            required=evaluate_boolean_expression(
                field_def.required, context, DEFAULTS["required"], path=path + ["required"]
            ),
            disabled=evaluate_boolean_expression(
                field_def.disabled, context, DEFAULTS["disabled"], path=path + ["disabled"]
            ),
            value=get_field_value_from_context(context.fields, full_id),
        )

        if field_def.is_fieldset:
            _evaluate_fields(field_def.fields, context, state, full_id)


def _evaluate_annexes(
    annexes: Dict[str, AnnexDef],
    context: EvaluationContext,
    state: FormRuntimeState,
) -> None:
    for annex_id, annex in annexes.items():
        path: List[PathPart] = ["annexes", annex_id]
        state.annexes[annex_id] = AnnexRuntimeState(
            annex_id=annex_id,
            visible=evaluate_boolean_expression(
                annex.visible, context, DEFAULTS["visible"], path=path + ["visible"]
            ),
            required=evaluate_boolean_expression(
                annex.required, context, DEFAULTS["required"], path=path + ["required"]
            ),
        )


def evaluate_form_logic(
    form: FormLike,
    data: DataLike = None,
    throw_on_error: bool = False,
) -> FormEvaluationResult:
    """
    Evaluate all form expressions and produce the runtime state.

    Individual expression failures fall back to defaults. Only a failure
    to build the context itself (an unusable form or payload) yields
    ``issues``, or raises when ``throw_on_error`` is set.

    Example:
        >>> result = evaluate_form_logic(
        ...     {"fields": {"age": {"type": "number"}},
        ...      "logic": {"isAdult": "fields.age.value >= 18"}},
        ...     {"fields": {"age": 25}},
        ... )
        >>> result.value.logic_values["isAdult"]
        True
    """
    try:
        form = as_form(form)
        base = build_base_context(form, as_form_data(data))
        computed = evaluate_logic_keys(form, base)
    except (ValueError, TypeError, AttributeError, KeyError) as e:
        if throw_on_error:
            raise
        logger.error("Form evaluation failed: %s", e)
        return FormEvaluationResult(issues=[
            EvaluationIssue(message=f"Form evaluation failed: {e}", original_error=str(e)),
        ])

    context = base.with_logic_values(computed)
    state = FormRuntimeState(
        logic_values={key: computed.get(key) for key in form.logic},
    )
    _evaluate_fields(form.fields, context, state)
    _evaluate_annexes(form.annexes, context, state)

    return FormEvaluationResult(value=state)


def get_field_runtime_state(state: FormRuntimeState, field_id: str) -> Optional[FieldRuntimeState]:
    return state.fields.get(field_id)


def get_annex_runtime_state(state: FormRuntimeState, annex_id: str) -> Optional[AnnexRuntimeState]:
    return state.annexes.get(annex_id)
