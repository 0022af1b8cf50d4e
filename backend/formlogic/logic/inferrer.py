"""
Type inference for logic expressions.

Infers the result type of an expression from its syntax tree and a type
environment, without evaluating it. Used by authoring tools to check that
visibility/required/disabled expressions produce booleans.
"""

from __future__ import annotations

from typing import List

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
    member_path,
)
from .errors import ExpressionSyntaxError
from .types import (
    Confidence,
    InferredType,
    TypeEnvironment,
    TypeInferenceResult,
    TypeValidationResult,
    weakest,
)


COMPARISON_OPS = {"==", "!=", "<", "<=", ">", ">=", "in"}
LOGICAL_OPS = {"and", "or"}
ARITHMETIC_OPS = {"+", "-", "*", "/", "%", "^"}


class TypeInferrer:
    """
    Infers expression result types against a type environment.

    Operator signatures:
    - comparison, logical and ``not`` produce boolean (certain)
    - arithmetic produces number, probable when an operand is unknown;
      ``+`` with a string operand produces string
    - a ternary produces the join of its branches
    - calls produce the registered signature's return type
    """

    def __init__(self, environment: TypeEnvironment):
        self.environment = environment

    def infer(self, node: Node) -> TypeInferenceResult:
        if isinstance(node, Literal):
            return self._infer_literal(node.value)

        if isinstance(node, (Variable, Member)):
            path = member_path(node)
            if path is not None:
                return self.environment.get_variable_type(path)
            return TypeInferenceResult.unknown("Member access on a computed value")

        if isinstance(node, Index):
            return TypeInferenceResult.unknown("Index access is not type-checked")

        if isinstance(node, Unary):
            operand = self.infer(node.operand)
            if node.op == "not":
                return TypeInferenceResult.certain(InferredType.BOOLEAN)
            return self._arithmetic_result([operand])

        if isinstance(node, Binary):
            return self._infer_binary(node)

        if isinstance(node, Conditional):
            self.infer(node.test)
            return self.infer(node.then).join(self.infer(node.otherwise))

        if isinstance(node, Call):
            return self._infer_call(node)

        if isinstance(node, ArrayLiteral):
            for item in node.items:
                self.infer(item)
            return TypeInferenceResult.certain(InferredType.ARRAY)

        return TypeInferenceResult.unknown(f"Unsupported node {type(node).__name__}")

    def _infer_literal(self, value: object) -> TypeInferenceResult:
        if value is None:
            return TypeInferenceResult.certain(InferredType.NULL)
        if isinstance(value, bool):
            return TypeInferenceResult.certain(InferredType.BOOLEAN)
        if isinstance(value, (int, float)):
            return TypeInferenceResult.certain(InferredType.NUMBER)
        if isinstance(value, str):
            return TypeInferenceResult.certain(InferredType.STRING)
        return TypeInferenceResult.unknown()

    def _infer_binary(self, node: Binary) -> TypeInferenceResult:
        left = self.infer(node.left)
        right = self.infer(node.right)

        if node.op in COMPARISON_OPS or node.op in LOGICAL_OPS:
            return TypeInferenceResult.certain(InferredType.BOOLEAN)

        if node.op == "+" and InferredType.STRING in (left.type, right.type):
            return TypeInferenceResult(
                InferredType.STRING,
                weakest(left.confidence, right.confidence, Confidence.PROBABLE)
                if left.is_unknown or right.is_unknown
                else Confidence.CERTAIN,
            )

        if node.op in ARITHMETIC_OPS:
            return self._arithmetic_result([left, right])

        return TypeInferenceResult.unknown(f"Unknown operator '{node.op}'")

    def _arithmetic_result(self, operands: List[TypeInferenceResult]) -> TypeInferenceResult:
        if any(o.is_unknown for o in operands):
            return TypeInferenceResult(
                InferredType.NUMBER,
                Confidence.PROBABLE,
                "Arithmetic on an operand of unknown type",
            )
        return TypeInferenceResult.certain(InferredType.NUMBER)

    def _infer_call(self, node: Call) -> TypeInferenceResult:
        arg_types = [self.infer(arg) for arg in node.args]
        signature = self.environment.get_function_signature(node.func)
        if signature is None:
            return TypeInferenceResult.unknown(f'Unknown function "{node.func}"')

        if signature.return_type == InferredType.UNKNOWN and arg_types:
            # coalesce-style: result is whichever argument is chosen
            result = arg_types[0]
            for arg_type in arg_types[1:]:
                result = result.join(arg_type)
            return result

        return TypeInferenceResult.certain(signature.return_type)


def infer_expression_type(expression: str, environment: TypeEnvironment) -> TypeInferenceResult:
    """
    Infer the result type of an expression.

    Unparseable expressions and unresolvable variables infer to unknown
    rather than raising.

    Example:
        >>> env = build_form_type_environment(form)
        >>> infer_expression_type("fields.age.value >= 18", env).type
        <InferredType.BOOLEAN: 'boolean'>
    """
    try:
        tree = get_parser().parse(expression)
        return TypeInferrer(environment).infer(tree)
    except ExpressionSyntaxError as e:
        return TypeInferenceResult.unknown(str(e))
    except RecursionError:
        return TypeInferenceResult.unknown("Expression nested too deeply")


def validate_boolean_type(expression: str, environment: TypeEnvironment) -> TypeValidationResult:
    """
    Check that an expression produces a boolean.

    A boolean at probable confidence or better is valid. A certain
    non-boolean is an error; anything less certain is a warning.
    """
    result = infer_expression_type(expression, environment)

    if result.type == InferredType.BOOLEAN and result.confidence.at_least(Confidence.PROBABLE):
        return TypeValidationResult(valid=True)

    if result.confidence == Confidence.CERTAIN:
        return TypeValidationResult(
            valid=False,
            severity="error",
            message=f"Expression must return boolean, but returns {result.type.value}",
            expected_type=InferredType.BOOLEAN,
            actual_type=result.type,
        )

    reason = f": {result.reason}" if result.reason else ""
    return TypeValidationResult(
        valid=False,
        severity="warning",
        message=f"Cannot verify expression returns boolean{reason}",
        expected_type=InferredType.BOOLEAN,
        actual_type=result.type,
    )
