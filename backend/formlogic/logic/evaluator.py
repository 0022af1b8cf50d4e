"""
Expression Evaluator for form logic.

Evaluates parsed expressions against an evaluation context. Failures are
reported as ``ExpressionEvaluationError`` values; the ``*_or_default``
helpers turn any failure into a caller-supplied default so that a single
bad expression never aborts evaluation of a whole form.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from .context import EvaluationContext, FieldGroup, FieldLeaf, PartyContextEntry
from .errors import ExpressionEvaluationError, ExpressionSyntaxError, PathPart
from .parser import (
    ArrayLiteral,
    Binary,
    Call,
    Conditional,
    Index,
    Literal,
    Member,
    Node,
    Unary,
    Variable,
    get_parser,
)

logger = logging.getLogger(__name__)

ContextLike = Union[EvaluationContext, Mapping[str, Any]]


@dataclass
class EvaluationOptions:
    """Options for expression evaluation."""

    throw_on_error: bool = False


@dataclass
class ExpressionResult:
    """Result of evaluating a single expression."""

    success: bool
    value: Any = None
    error: Optional[ExpressionEvaluationError] = None

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error else None


@dataclass
class MultipleEvaluationResult:
    """Results of evaluating several named expressions."""

    results: Dict[str, Any] = field(default_factory=dict)
    errors: List[Dict[str, Any]] = field(default_factory=list)


class _Failure(Exception):
    """Internal signal carrying an evaluation error up the tree walk."""

    def __init__(self, error: ExpressionEvaluationError):
        super().__init__(str(error))
        self.error = error


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if _is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    return "object"


# ---------------------------------------------------------------------------
# Built-in functions
# ---------------------------------------------------------------------------


def _length(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, FieldGroup):
        return len(value.children)
    return len(value)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, dict)):
        return len(value) == 0
    return False


def _coalesce(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _concat(*values: Any) -> str:
    return "".join("" if v is None else str(v) for v in values)


def _round(value: Any, digits: int = 0) -> float:
    # half away from zero, not banker's rounding
    factor = 10 ** digits
    rounded = math.floor(abs(value) * factor + 0.5) / factor
    rounded = rounded if value >= 0 else -rounded
    return int(rounded) if digits == 0 else rounded


BUILTIN_IMPLEMENTATIONS: Dict[str, Callable[..., Any]] = {
    "contains": lambda haystack, needle: needle in haystack if haystack is not None else False,
    "startsWith": lambda s, prefix: isinstance(s, str) and s.startswith(prefix),
    "endsWith": lambda s, suffix: isinstance(s, str) and s.endswith(suffix),
    "matches": lambda s, pattern: isinstance(s, str) and re.search(pattern, s) is not None,
    "isEmpty": _is_empty,
    "isNotEmpty": lambda value: not _is_empty(value),
    "upper": lambda s: s.upper(),
    "lower": lambda s: s.lower(),
    "trim": lambda s: s.strip(),
    "concat": _concat,
    "length": _length,
    "abs": abs,
    "min": min,
    "max": max,
    "ceil": math.ceil,
    "floor": math.floor,
    "round": _round,
    "sqrt": math.sqrt,
    "pow": math.pow,
    "log": math.log,
    "exp": math.exp,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "coalesce": _coalesce,
}


def _parties(context: ContextLike, role_id: Any) -> Sequence[Any]:
    if isinstance(context, EvaluationContext):
        return context.parties_for(str(role_id))
    return (context.get("parties") or {}).get(str(role_id), ())


def _witnesses(context: ContextLike) -> Sequence[Any]:
    if isinstance(context, EvaluationContext):
        return context.witnesses
    return context.get("witnesses") or ()


def _signed(entry: Any) -> bool:
    if isinstance(entry, PartyContextEntry):
        return entry.signed
    return bool(entry.get("signed")) if isinstance(entry, Mapping) else False


def _entry_type(entry: Any) -> str:
    if isinstance(entry, PartyContextEntry):
        return entry.type
    return entry.get("type", "") if isinstance(entry, Mapping) else ""


PARTY_FUNCTIONS: Dict[str, Callable[..., Any]] = {
    "partyCount": lambda ctx, role: len(_parties(ctx, role)),
    "signedCount": lambda ctx, role: sum(1 for p in _parties(ctx, role) if _signed(p)),
    "allSigned": lambda ctx, role: bool(_parties(ctx, role)) and all(_signed(p) for p in _parties(ctx, role)),
    "anySigned": lambda ctx, role: any(_signed(p) for p in _parties(ctx, role)),
    "partyType": lambda ctx, role: _entry_type(_parties(ctx, role)[0]) if _parties(ctx, role) else "",
    "witnessCount": lambda ctx: len(_witnesses(ctx)),
    "allWitnessesSigned": lambda ctx: bool(_witnesses(ctx)) and all(_signed(w) for w in _witnesses(ctx)),
    "anyWitnessSigned": lambda ctx: any(_signed(w) for w in _witnesses(ctx)),
}


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------


class ExpressionEvaluator:
    """
    Tree-walking evaluator.

    Semantics:
    - ``and``/``or``/``not`` short-circuit and produce booleans
    - ``==``/``!=`` are strict: booleans never equal numbers
    - ordering comparisons involving null are false
    - ``+`` adds numbers or concatenates two strings
    - member access on a missing property yields null; member access on
      null fails
    """

    def __init__(self, expression: str, context: ContextLike):
        self.expression = expression
        self.context = context

    def evaluate(self, node: Node) -> Any:
        if isinstance(node, Literal):
            return node.value

        if isinstance(node, Variable):
            return self._lookup(node.name)

        if isinstance(node, Member):
            return self._member(self.evaluate(node.obj), node.name)

        if isinstance(node, Index):
            return self._index(self.evaluate(node.obj), self.evaluate(node.index))

        if isinstance(node, Unary):
            return self._eval_unary(node)

        if isinstance(node, Binary):
            return self._eval_binary(node)

        if isinstance(node, Conditional):
            if self.to_bool(self.evaluate(node.test)):
                return self.evaluate(node.then)
            return self.evaluate(node.otherwise)

        if isinstance(node, ArrayLiteral):
            return [self.evaluate(item) for item in node.items]

        if isinstance(node, Call):
            return self._eval_call(node)

        raise self._failed(TypeError(f"Unsupported node {type(node).__name__}"))

    def _lookup(self, name: str) -> Any:
        if isinstance(self.context, EvaluationContext):
            found, value = self.context.lookup(name)
        else:
            found, value = name in self.context, self.context.get(name)
        if not found:
            raise _Failure(ExpressionEvaluationError.undefined_variable(self.expression, name))
        return value

    def _member(self, obj: Any, name: str) -> Any:
        if obj is None:
            raise self._failed(TypeError(f"Cannot read property '{name}' of null"))
        if isinstance(obj, FieldLeaf):
            return obj.value if name == "value" else None
        if isinstance(obj, FieldGroup):
            if name in obj.children:
                return obj.children[name]
            return obj.to_plain() if name == "value" else None
        if isinstance(obj, PartyContextEntry):
            return getattr(obj, name) if name in ("type", "data", "signed") else None
        if isinstance(obj, Mapping):
            return obj.get(name)
        if isinstance(obj, (str, list, tuple)) and name == "length":
            return len(obj)
        return None

    def _index(self, obj: Any, key: Any) -> Any:
        if obj is None:
            raise self._failed(TypeError("Cannot index null"))
        if isinstance(obj, (list, tuple, str)):
            if not _is_number(key) or not math.isfinite(key) or int(key) != key:
                raise _Failure(ExpressionEvaluationError.type_mismatch(
                    self.expression, "integer index", _type_name(key)))
            idx = int(key)
            return obj[idx] if 0 <= idx < len(obj) else None
        if isinstance(obj, (FieldGroup, FieldLeaf, PartyContextEntry, Mapping)):
            return self._member(obj, str(key))
        return None

    def _eval_unary(self, node: Unary) -> Any:
        operand = self.evaluate(node.operand)
        if node.op == "not":
            return not self.to_bool(operand)
        self._require_numbers(operand)
        return -operand if node.op == "-" else operand

    def _eval_binary(self, node: Binary) -> Any:
        op = node.op

        if op == "and":
            return self.to_bool(self.evaluate(node.left)) and self.to_bool(self.evaluate(node.right))
        if op == "or":
            return self.to_bool(self.evaluate(node.left)) or self.to_bool(self.evaluate(node.right))

        left = self.evaluate(node.left)
        right = self.evaluate(node.right)

        if op == "==":
            return self._strict_equals(left, right)
        if op == "!=":
            return not self._strict_equals(left, right)
        if op in ("<", "<=", ">", ">="):
            return self._compare(op, left, right)
        if op == "in":
            return self._contains(left, right)
        if op == "+" and isinstance(left, str) and isinstance(right, str):
            return left + right

        self._require_numbers(left, right)
        try:
            if op == "+":
                return left + right
            if op == "-":
                return left - right
            if op == "*":
                return left * right
            if op == "/":
                return left / right
            if op == "%":
                return left % right
            if op == "^":
                # float power; integer power of large operands is unbounded
                return float(left) ** right
        except (ArithmeticError, ValueError) as e:
            raise self._failed(e)

        raise self._failed(ValueError(f"Unsupported operator '{op}'"))

    def _eval_call(self, node: Call) -> Any:
        args = [self.evaluate(arg) for arg in node.args]
        try:
            if node.func in PARTY_FUNCTIONS:
                return PARTY_FUNCTIONS[node.func](self.context, *args)
            if node.func in BUILTIN_IMPLEMENTATIONS:
                return BUILTIN_IMPLEMENTATIONS[node.func](*args)
        except (TypeError, ValueError, ArithmeticError, AttributeError, re.error) as e:
            raise self._failed(e)
        raise self._failed(NameError(f"Unknown function '{node.func}'"))

    def _strict_equals(self, left: Any, right: Any) -> bool:
        if isinstance(left, bool) != isinstance(right, bool):
            return False
        return left == right

    def _compare(self, op: str, left: Any, right: Any) -> bool:
        if left is None or right is None:
            return False
        comparable = (_is_number(left) and _is_number(right)) or (
            isinstance(left, str) and isinstance(right, str)
        )
        if not comparable:
            raise _Failure(ExpressionEvaluationError.type_mismatch(
                self.expression,
                _type_name(left),
                _type_name(right),
            ))
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        return left >= right

    def _contains(self, needle: Any, haystack: Any) -> bool:
        if isinstance(haystack, (list, tuple)):
            return any(self._strict_equals(needle, item) for item in haystack)
        if isinstance(haystack, str):
            return isinstance(needle, str) and needle in haystack
        if isinstance(haystack, Mapping):
            try:
                return needle in haystack
            except TypeError:
                raise _Failure(ExpressionEvaluationError.type_mismatch(
                    self.expression, "object key", _type_name(needle)))
        raise _Failure(ExpressionEvaluationError.type_mismatch(
            self.expression, "array, string or object", _type_name(haystack)))

    def _require_numbers(self, *values: Any) -> None:
        for value in values:
            if not _is_number(value):
                raise _Failure(ExpressionEvaluationError.type_mismatch(
                    self.expression, "number", _type_name(value)))

    def _failed(self, error: BaseException) -> _Failure:
        return _Failure(ExpressionEvaluationError.evaluation_failed(self.expression, error))

    @staticmethod
    def to_bool(value: Any) -> bool:
        """Convert a value to boolean (truthy rules)."""
        if value is None:
            return False
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value != 0
        if isinstance(value, str):
            return len(value) > 0
        if isinstance(value, (list, tuple, dict)):
            return len(value) > 0
        if isinstance(value, FieldLeaf):
            return ExpressionEvaluator.to_bool(value.value)
        return bool(value)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def evaluate_expression(
    expression: str,
    context: ContextLike,
    options: Optional[EvaluationOptions] = None,
    path: Optional[Sequence[PathPart]] = None,
) -> ExpressionResult:
    """
    Evaluate an expression string against a context.

    Args:
        expression: The expression to evaluate.
        context: An ``EvaluationContext`` (or a plain mapping of names).
        options: ``throw_on_error=True`` raises instead of returning a failure.
        path: Location of the expression in the form, attached to errors.

    Returns:
        ExpressionResult with the value, or the error on failure.

    Example:
        >>> evaluate_expression("fields.age.value >= 18", context).value
        True
    """
    options = options or EvaluationOptions()
    try:
        tree = get_parser().parse(expression)
        value = ExpressionEvaluator(expression, context).evaluate(tree)
        if isinstance(value, FieldLeaf):
            value = value.value
        elif isinstance(value, FieldGroup):
            value = value.to_plain()
        return ExpressionResult(success=True, value=value)
    except ExpressionSyntaxError as e:
        error = ExpressionEvaluationError.syntax_error(expression, e, path)
    except _Failure as failure:
        error = failure.error.with_path(path) if path else failure.error
    except RecursionError as e:
        error = ExpressionEvaluationError.evaluation_failed(expression, e, path)
    except Exception as e:
        logger.debug("Unexpected failure evaluating %r", expression, exc_info=True)
        error = ExpressionEvaluationError.evaluation_failed(expression, e, path)

    if options.throw_on_error:
        raise error
    return ExpressionResult(success=False, error=error)


def is_cond_expr(value: Any) -> bool:
    """True for a literal boolean or an expression string."""
    return isinstance(value, (bool, str))


def evaluate_boolean_expression(
    cond_expr: Union[bool, str, None],
    context: ContextLike,
    default: bool,
    options: Optional[EvaluationOptions] = None,
    path: Optional[Sequence[PathPart]] = None,
) -> bool:
    """
    Evaluate a conditional expression to a boolean.

    A missing expression yields ``default``; a literal boolean is returned
    as-is; a string is evaluated and its result coerced to boolean. Any
    evaluation failure yields ``default``.
    """
    if cond_expr is None:
        return default
    if isinstance(cond_expr, bool):
        return cond_expr

    result = evaluate_expression(cond_expr, context, options, path)
    if not result.success:
        logger.debug("Using default %s for %s: %s", default, list(path or []), result.error)
        return default
    return ExpressionEvaluator.to_bool(result.value)


def evaluate_expression_or_default(
    expression: str,
    context: ContextLike,
    default: Any,
    options: Optional[EvaluationOptions] = None,
    path: Optional[Sequence[PathPart]] = None,
) -> Any:
    """Evaluate an expression, returning ``default`` on any failure."""
    result = evaluate_expression(expression, context, options, path)
    if not result.success:
        logger.debug("Using default %r for %s: %s", default, list(path or []), result.error)
        return default
    return result.value


def evaluate_multiple_expressions(
    expressions: Mapping[str, str],
    context: ContextLike,
) -> MultipleEvaluationResult:
    """Evaluate several named expressions against one context, collecting errors."""
    outcome = MultipleEvaluationResult()
    for key, expression in expressions.items():
        result = evaluate_expression(expression, context)
        if result.success:
            outcome.results[key] = result.value
        else:
            outcome.errors.append({
                "key": key,
                "expression": expression,
                "error": result.error_message or "Unknown error",
                "kind": result.error.kind if result.error else None,
            })
    return outcome
