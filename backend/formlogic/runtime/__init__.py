"""
Runtime evaluation of form logic against filled data.
"""

from .context_builder import build_form_context, get_logic_values
from .form_evaluator import (
    AnnexRuntimeState,
    EvaluationIssue,
    FieldRuntimeState,
    FormEvaluationResult,
    FormRuntimeState,
    evaluate_form_logic,
    get_annex_runtime_state,
    get_field_runtime_state,
)
from .filled_form import FilledForm

__all__ = [
    "build_form_context",
    "get_logic_values",
    "AnnexRuntimeState",
    "EvaluationIssue",
    "FieldRuntimeState",
    "FormEvaluationResult",
    "FormRuntimeState",
    "evaluate_form_logic",
    "get_annex_runtime_state",
    "get_field_runtime_state",
    "FilledForm",
]
