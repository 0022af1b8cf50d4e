"""
Expression Parser for form logic.

Parses conditional and logic-key expressions into a syntax tree and
extracts the variable paths they reference.

Supported syntax (lowest to highest precedence):
    cond ? a : b                      ternary
    a or b, a || b                    logical or
    a and b, a && b                   logical and
    not a, !a                         logical not
    == != < <= > >= in                comparison / membership
    + -                               additive
    * / %                             multiplicative
    -a +a                             unary sign
    a ^ b                             power (right associative)
    a.b  a[i]  f(x, y)                member access, index, call
    1  2.5  'text'  "text"  true  false  null  [a, b]  (expr)
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple, Union

from .errors import ExpressionSyntaxError


# ---------------------------------------------------------------------------
# Syntax tree
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Variable:
    name: str


@dataclass(frozen=True)
class Member:
    obj: "Node"
    name: str


@dataclass(frozen=True)
class Index:
    obj: "Node"
    index: "Node"


@dataclass(frozen=True)
class Call:
    func: str
    args: Tuple["Node", ...]


@dataclass(frozen=True)
class Unary:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class Binary:
    op: str
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Conditional:
    test: "Node"
    then: "Node"
    otherwise: "Node"


@dataclass(frozen=True)
class ArrayLiteral:
    items: Tuple["Node", ...]


Node = Union[Literal, Variable, Member, Index, Call, Unary, Binary, Conditional, ArrayLiteral]


def member_path(node: Node) -> Optional[str]:
    """Dotted path of a variable/member chain, or None for anything else."""
    if isinstance(node, Variable):
        return node.name
    if isinstance(node, Member):
        base = member_path(node.obj)
        return f"{base}.{node.name}" if base is not None else None
    return None


def child_nodes(node: Node) -> Tuple[Node, ...]:
    """Direct sub-expressions of a node."""
    if isinstance(node, Member):
        return (node.obj,)
    if isinstance(node, Index):
        return (node.obj, node.index)
    if isinstance(node, Call):
        return node.args
    if isinstance(node, Unary):
        return (node.operand,)
    if isinstance(node, Binary):
        return (node.left, node.right)
    if isinstance(node, Conditional):
        return (node.test, node.then, node.otherwise)
    if isinstance(node, ArrayLiteral):
        return node.items
    return ()


def tree_depth(node: Node) -> int:
    """Depth of a syntax tree, computed without recursion."""
    deepest = 0
    stack = [(node, 1)]
    while stack:
        current, depth = stack.pop()
        deepest = max(deepest, depth)
        stack.extend((child, depth + 1) for child in child_nodes(current))
    return deepest


def collect_variables(node: Node) -> List[str]:
    """Referenced variable paths in first-seen order, deduplicated."""
    seen: List[str] = []

    def visit(n: Node) -> None:
        path = member_path(n)
        if path is not None:
            if path not in seen:
                seen.append(path)
            return
        for child in child_nodes(n):
            visit(child)

    visit(node)
    return seen


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Token:
    kind: str  # number, string, name, op, eof
    value: Any
    position: int


_NUMBER_RE = re.compile(r"\d+(\.\d+)?([eE][+-]?\d+)?")
_NAME_RE = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*")
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"'}


def tokenize(expression: str) -> List[Token]:
    """Split an expression into tokens, ending with an ``eof`` token."""
    tokens: List[Token] = []
    i = 0
    length = len(expression)

    while i < length:
        char = expression[i]

        if char.isspace():
            i += 1
            continue

        number = _NUMBER_RE.match(expression, i)
        if number:
            text = number.group(0)
            value = float(text) if number.group(1) or number.group(2) else int(text)
            tokens.append(Token("number", value, i))
            i = number.end()
            continue

        name = _NAME_RE.match(expression, i)
        if name:
            tokens.append(Token("name", name.group(0), i))
            i = name.end()
            continue

        if char in ("'", '"'):
            start = i
            i += 1
            chars = []
            while i < length and expression[i] != char:
                if expression[i] == "\\" and i + 1 < length:
                    chars.append(_ESCAPES.get(expression[i + 1], expression[i + 1]))
                    i += 2
                    continue
                chars.append(expression[i])
                i += 1
            if i >= length:
                raise ExpressionSyntaxError(f"Unterminated string starting at position {start}", start)
            tokens.append(Token("string", "".join(chars), start))
            i += 1
            continue

        for op in ExpressionParser.OPERATOR_TOKENS:
            if expression.startswith(op, i):
                tokens.append(Token("op", op, i))
                i += len(op)
                break
        else:
            raise ExpressionSyntaxError(f"Unexpected character '{char}' at position {i}", i)

    tokens.append(Token("eof", None, length))
    return tokens


class _TokenStream:
    """Cursor over a token list; one per parse call."""

    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.pos = 0
        self.depth = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def advance(self) -> Token:
        token = self.tokens[self.pos]
        if token.kind != "eof":
            self.pos += 1
        return token

    def at_op(self, *ops: str) -> bool:
        token = self.current
        return token.kind == "op" and token.value in ops

    def at_keyword(self, *words: str) -> bool:
        token = self.current
        return token.kind == "name" and token.value in words

    def expect_op(self, op: str) -> Token:
        if not self.at_op(op):
            raise _unexpected(self.current, f"expected '{op}'")
        return self.advance()

    def descend(self, limit: int) -> None:
        self.depth += 1
        if self.depth > limit:
            raise ExpressionSyntaxError(
                f"Expression nested too deeply at position {self.current.position}",
                self.current.position,
            )

    def ascend(self) -> None:
        self.depth -= 1


def _unexpected(token: Token, detail: str = "") -> ExpressionSyntaxError:
    suffix = f" ({detail})" if detail else ""
    if token.kind == "eof":
        return ExpressionSyntaxError(f"Unexpected end of expression{suffix}", token.position)
    return ExpressionSyntaxError(
        f"Unexpected token '{token.value}' at position {token.position}{suffix}",
        token.position,
    )


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class ExpressionParser:
    """
    Recursive-descent parser for logic expressions.

    The parser holds no per-call state, so one instance can be shared.
    """

    # Longest first so two-character operators win.
    OPERATOR_TOKENS = (
        "==", "!=", "<=", ">=", "&&", "||",
        "<", ">", "+", "-", "*", "/", "%", "^", "!",
        "?", ":", "(", ")", "[", "]", ",", ".",
    )

    COMPARISON_OPS = ("==", "!=", "<", "<=", ">", ">=")

    KEYWORDS = {"and", "or", "not", "in"}

    # Nesting of parentheses and prefix operators, and overall tree depth.
    MAX_NESTING = 50
    MAX_TREE_DEPTH = 150

    CONSTANTS = {"true": True, "false": False, "null": None}

    def parse(self, expression: str) -> Node:
        """
        Parse an expression into a syntax tree.

        Raises:
            ExpressionSyntaxError: If the expression is malformed.
        """
        if not isinstance(expression, str):
            raise ExpressionSyntaxError(f"Expected string expression, got {type(expression).__name__}")
        if not expression.strip():
            raise ExpressionSyntaxError("Empty expression")

        stream = _TokenStream(tokenize(expression))
        try:
            node = self._parse_ternary(stream)
        except RecursionError:
            raise ExpressionSyntaxError("Expression nested too deeply") from None
        if stream.current.kind != "eof":
            raise _unexpected(stream.current)
        if tree_depth(node) > self.MAX_TREE_DEPTH:
            raise ExpressionSyntaxError(
                f"Expression too deeply nested (more than {self.MAX_TREE_DEPTH} levels)")
        return node

    def _parse_ternary(self, stream: _TokenStream) -> Node:
        stream.descend(self.MAX_NESTING)
        test = self._parse_or(stream)
        if stream.at_op("?"):
            stream.advance()
            then = self._parse_ternary(stream)
            stream.expect_op(":")
            otherwise = self._parse_ternary(stream)
            test = Conditional(test, then, otherwise)
        stream.ascend()
        return test

    def _parse_or(self, stream: _TokenStream) -> Node:
        left = self._parse_and(stream)
        while stream.at_keyword("or") or stream.at_op("||"):
            stream.advance()
            left = Binary("or", left, self._parse_and(stream))
        return left

    def _parse_and(self, stream: _TokenStream) -> Node:
        left = self._parse_not(stream)
        while stream.at_keyword("and") or stream.at_op("&&"):
            stream.advance()
            left = Binary("and", left, self._parse_not(stream))
        return left

    def _parse_not(self, stream: _TokenStream) -> Node:
        if stream.at_keyword("not") or stream.at_op("!"):
            stream.advance()
            stream.descend(self.MAX_NESTING)
            node = Unary("not", self._parse_not(stream))
            stream.ascend()
            return node
        return self._parse_comparison(stream)

    def _parse_comparison(self, stream: _TokenStream) -> Node:
        left = self._parse_additive(stream)
        while stream.at_op(*self.COMPARISON_OPS) or stream.at_keyword("in"):
            op = stream.advance().value
            left = Binary(op, left, self._parse_additive(stream))
        return left

    def _parse_additive(self, stream: _TokenStream) -> Node:
        left = self._parse_multiplicative(stream)
        while stream.at_op("+", "-"):
            op = stream.advance().value
            left = Binary(op, left, self._parse_multiplicative(stream))
        return left

    def _parse_multiplicative(self, stream: _TokenStream) -> Node:
        left = self._parse_unary(stream)
        while stream.at_op("*", "/", "%"):
            op = stream.advance().value
            left = Binary(op, left, self._parse_unary(stream))
        return left

    def _parse_unary(self, stream: _TokenStream) -> Node:
        if stream.at_op("-", "+"):
            op = stream.advance().value
            stream.descend(self.MAX_NESTING)
            node = Unary(op, self._parse_unary(stream))
            stream.ascend()
            return node
        return self._parse_power(stream)

    def _parse_power(self, stream: _TokenStream) -> Node:
        base = self._parse_postfix(stream)
        if stream.at_op("^"):
            stream.advance()
            stream.descend(self.MAX_NESTING)
            base = Binary("^", base, self._parse_unary(stream))
            stream.ascend()
        return base

    def _parse_postfix(self, stream: _TokenStream) -> Node:
        node = self._parse_primary(stream)
        while True:
            if stream.at_op("."):
                stream.advance()
                token = stream.advance()
                if token.kind != "name":
                    raise _unexpected(token, "expected member name")
                node = Member(node, token.value)
            elif stream.at_op("["):
                stream.advance()
                index = self._parse_ternary(stream)
                stream.expect_op("]")
                node = Index(node, index)
            elif stream.at_op("("):
                if not isinstance(node, Variable):
                    raise _unexpected(stream.current, "only named functions can be called")
                stream.advance()
                args = self._parse_list(stream, ")")
                node = Call(node.name, args)
            else:
                return node

    def _parse_primary(self, stream: _TokenStream) -> Node:
        token = stream.current

        if token.kind in ("number", "string"):
            stream.advance()
            return Literal(token.value)

        if token.kind == "name":
            if token.value in self.CONSTANTS:
                stream.advance()
                return Literal(self.CONSTANTS[token.value])
            if token.value in self.KEYWORDS:
                raise _unexpected(token, "missing operand")
            stream.advance()
            return Variable(token.value)

        if stream.at_op("("):
            stream.advance()
            node = self._parse_ternary(stream)
            stream.expect_op(")")
            return node

        if stream.at_op("["):
            stream.advance()
            return ArrayLiteral(self._parse_list(stream, "]"))

        raise _unexpected(token, "missing operand")

    def _parse_list(self, stream: _TokenStream, closing: str) -> Tuple[Node, ...]:
        """Parse comma-separated expressions up to ``closing``."""
        items: List[Node] = []
        if stream.at_op(closing):
            stream.advance()
            return tuple(items)
        while True:
            items.append(self._parse_ternary(stream))
            if stream.at_op(","):
                stream.advance()
                continue
            stream.expect_op(closing)
            return tuple(items)

    def validate(self, expression: str) -> Tuple[bool, Optional[str]]:
        """
        Validate an expression's syntax.

        Returns:
            Tuple of (is_valid, error_message).
        """
        try:
            self.parse(expression)
            return True, None
        except ExpressionSyntaxError as e:
            return False, str(e)


_PARSER = ExpressionParser()


def get_parser() -> ExpressionParser:
    """The shared, stateless parser instance."""
    return _PARSER


@dataclass
class ParseResult:
    """Result of parsing an expression."""

    success: bool
    variables: List[str] = field(default_factory=list)
    error: Optional[str] = None
    tree: Optional[Node] = None


def parse_expression(expression: str) -> ParseResult:
    """
    Parse an expression and extract the variables it references.

    Never raises; malformed input yields ``success=False`` with an error
    message and no variables.

    Example:
        >>> parse_expression("fields.age.value >= 18").variables
        ['fields.age.value']
    """
    try:
        tree = _PARSER.parse(expression)
    except ExpressionSyntaxError as e:
        return ParseResult(success=False, variables=[], error=str(e))
    return ParseResult(success=True, variables=collect_variables(tree), tree=tree)


def validate_expression_syntax(expression: str) -> Union[bool, str]:
    """True when the expression parses, otherwise the error message."""
    result = parse_expression(expression)
    return True if result.success else (result.error or "Invalid expression")
