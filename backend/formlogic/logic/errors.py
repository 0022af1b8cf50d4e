"""
Errors raised by expression parsing and evaluation.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional, Sequence, Union

PathPart = Union[str, int]


class ErrorKind(str, Enum):
    """Kind of expression evaluation failure."""

    SYNTAX_ERROR = "syntax_error"
    UNDEFINED_VARIABLE = "undefined_variable"
    TYPE_MISMATCH = "type_mismatch"
    EVALUATION_FAILED = "evaluation_failed"


class ExpressionSyntaxError(ValueError):
    """Raised by the parser for malformed expressions."""

    def __init__(self, message: str, position: int = 0):
        super().__init__(message)
        self.position = position


class ExpressionEvaluationError(Exception):
    """
    A failure while evaluating an expression.

    Attributes:
        kind: What went wrong.
        expression: The expression that failed.
        cause: The underlying exception, if any.
        path: Location of the expression in the form, e.g.
            ``["fields", "age", "visible"]``.
        variable: The offending variable for undefined-variable errors.
    """

    def __init__(
        self,
        kind: ErrorKind,
        expression: str,
        message: str,
        cause: Optional[BaseException] = None,
        path: Optional[Sequence[PathPart]] = None,
        variable: Optional[str] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.expression = expression
        self.message = message
        self.cause = cause
        self.path: List[PathPart] = list(path or [])
        self.variable = variable

    def with_path(self, path: Sequence[PathPart]) -> "ExpressionEvaluationError":
        """Return a copy located at ``path``."""
        return ExpressionEvaluationError(
            self.kind, self.expression, self.message,
            cause=self.cause, path=path, variable=self.variable,
        )

    @classmethod
    def syntax_error(
        cls,
        expression: str,
        error: BaseException,
        path: Optional[Sequence[PathPart]] = None,
    ) -> "ExpressionEvaluationError":
        return cls(
            ErrorKind.SYNTAX_ERROR,
            expression,
            f'Syntax error in expression "{expression}": {error}',
            cause=error,
            path=path,
        )

    @classmethod
    def undefined_variable(
        cls,
        expression: str,
        variable: str,
        path: Optional[Sequence[PathPart]] = None,
    ) -> "ExpressionEvaluationError":
        return cls(
            ErrorKind.UNDEFINED_VARIABLE,
            expression,
            f'Undefined variable "{variable}" in expression "{expression}"',
            path=path,
            variable=variable,
        )

    @classmethod
    def type_mismatch(
        cls,
        expression: str,
        expected: str,
        actual: str,
        path: Optional[Sequence[PathPart]] = None,
    ) -> "ExpressionEvaluationError":
        return cls(
            ErrorKind.TYPE_MISMATCH,
            expression,
            f'Type mismatch in expression "{expression}": expected {expected}, got {actual}',
            path=path,
        )

    @classmethod
    def evaluation_failed(
        cls,
        expression: str,
        error: BaseException,
        path: Optional[Sequence[PathPart]] = None,
    ) -> "ExpressionEvaluationError":
        return cls(
            ErrorKind.EVALUATION_FAILED,
            expression,
            f'Failed to evaluate expression "{expression}": {error}',
            cause=error,
            path=path,
        )
