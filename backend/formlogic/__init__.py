"""
Form-Logic: conditional logic engine for forms.

Parses and type-checks the expressions attached to form fields, annexes
and the logic section, resolves logic keys in dependency order, and
evaluates a form against filled data to decide what is visible, required
and disabled.
"""

from .models import (
    AnnexDef,
    CondExpr,
    FieldDef,
    Form,
    FormData,
    LogicExpression,
    PartyRole,
    SignatureRequirement,
)
from .loader import FormLoadError, load_form, load_form_data, parse_form, parse_form_data
from .logic import (
    ExpressionEvaluationError,
    evaluate_boolean_expression,
    evaluate_expression,
    parse_expression,
    topological_sort_logic_keys,
)
from .runtime import (
    FilledForm,
    FormRuntimeState,
    build_form_context,
    evaluate_form_logic,
    get_logic_values,
)
from .validator import validate_form_logic

__version__ = "1.0.0"
__all__ = [
    "AnnexDef",
    "CondExpr",
    "FieldDef",
    "Form",
    "FormData",
    "LogicExpression",
    "PartyRole",
    "SignatureRequirement",
    "FormLoadError",
    "load_form",
    "load_form_data",
    "parse_form",
    "parse_form_data",
    "ExpressionEvaluationError",
    "evaluate_boolean_expression",
    "evaluate_expression",
    "parse_expression",
    "topological_sort_logic_keys",
    "FilledForm",
    "FormRuntimeState",
    "build_form_context",
    "evaluate_form_logic",
    "get_logic_values",
    "validate_form_logic",
]
