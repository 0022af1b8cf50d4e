"""
Logic engine for form conditional logic.

Provides expression parsing, dependency ordering, type inference and
evaluation for visibility/required/disabled expressions and logic keys.
"""

from .errors import ErrorKind, ExpressionEvaluationError, ExpressionSyntaxError
from .parser import ExpressionParser, ParseResult, parse_expression, validate_expression_syntax
from .types import (
    BUILTIN_FUNCTIONS,
    Confidence,
    FunctionSignature,
    InferredType,
    TypeEnvironment,
    TypeInferenceResult,
    TypeValidationResult,
)
from .dependencies import TopologicalSortResult, topological_sort_logic_keys
from .inferrer import TypeInferrer, infer_expression_type, validate_boolean_type
from .environment import build_form_type_environment
from .context import (
    EvaluationContext,
    FieldGroup,
    FieldLeaf,
    PartyContextEntry,
    get_field_value_from_context,
)
from .evaluator import (
    EvaluationOptions,
    ExpressionEvaluator,
    ExpressionResult,
    MultipleEvaluationResult,
    evaluate_boolean_expression,
    evaluate_expression,
    evaluate_expression_or_default,
    evaluate_multiple_expressions,
    is_cond_expr,
)

__all__ = [
    # Errors
    "ErrorKind",
    "ExpressionEvaluationError",
    "ExpressionSyntaxError",
    # Parser
    "ExpressionParser",
    "ParseResult",
    "parse_expression",
    "validate_expression_syntax",
    # Types
    "BUILTIN_FUNCTIONS",
    "Confidence",
    "FunctionSignature",
    "InferredType",
    "TypeEnvironment",
    "TypeInferenceResult",
    "TypeValidationResult",
    # Dependencies
    "TopologicalSortResult",
    "topological_sort_logic_keys",
    # Inference
    "TypeInferrer",
    "infer_expression_type",
    "validate_boolean_type",
    "build_form_type_environment",
    # Context
    "EvaluationContext",
    "FieldGroup",
    "FieldLeaf",
    "PartyContextEntry",
    "get_field_value_from_context",
    # Evaluation
    "EvaluationOptions",
    "ExpressionEvaluator",
    "ExpressionResult",
    "MultipleEvaluationResult",
    "evaluate_boolean_expression",
    "evaluate_expression",
    "evaluate_expression_or_default",
    "evaluate_multiple_expressions",
    "is_cond_expr",
]
