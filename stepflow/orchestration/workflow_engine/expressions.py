"""
Restricted expression language for conditions and transforms.

Expressions are tokenized and parsed into a small AST that is evaluated
against a scope mapping. Only literals, context paths, arithmetic,
comparisons, boolean connectives and a fixed set of helper functions are
available; embedded text is never handed to the Python interpreter.

Examples::

    input.n > 0
    {{input.n}} > 0 and not input.dry_run
    'Hello, ' + value
    len(items) >= 3 || status == "forced"
"""

from __future__ import annotations

import functools
import operator
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from ..errors import ExpressionError
from .templating import MISSING, lookup_segments, to_template_string

_TOKEN_PATTERN = re.compile(
    r"""
    (?P<TEMPLATE>\{\{[^}]+\}\})
  | (?P<NUMBER>\d+(?:\.\d+)?)
  | (?P<STRING>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<NAME>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<OP>===|!==|==|!=|<=|>=|&&|\|\||[<>!+\-*/%])
  | (?P<PUNCT>[()\[\],.])
  | (?P<SKIP>\s+)
  | (?P<MISMATCH>.)
    """,
    re.VERBOSE,
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r"}

_CONSTANTS = {
    "true": True,
    "false": False,
    "null": None,
    "True": True,
    "False": False,
    "None": None,
}

_KEYWORDS = {"and", "or", "not", "in"}

_COMPARISONS: Dict[str, Callable[[Any, Any], Any]] = {
    "==": operator.eq,
    "===": operator.eq,
    "!=": operator.ne,
    "!==": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}

_ARITHMETIC: Dict[str, Callable[[Any, Any], Any]] = {
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
    "%": operator.mod,
}

FUNCTIONS: Dict[str, Callable[..., Any]] = {
    "len": len,
    "str": to_template_string,
    "int": int,
    "float": float,
    "lower": lambda value: to_template_string(value).lower(),
    "upper": lambda value: to_template_string(value).upper(),
    "strip": lambda value: to_template_string(value).strip(),
    "abs": abs,
    "round": round,
}


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    position: int


def tokenize(source: str) -> List[Token]:
    """Split an expression into tokens.

    Raises:
        ExpressionError: On characters that belong to no token
    """
    tokens = []
    for match in _TOKEN_PATTERN.finditer(source):
        kind = match.lastgroup
        text = match.group()
        if kind == "SKIP":
            continue
        if kind == "MISMATCH":
            raise ExpressionError(
                f"Unexpected character {text!r} at position {match.start()} in {source!r}"
            )
        if kind == "NAME" and text in _KEYWORDS:
            kind = "KEYWORD"
        tokens.append(Token(kind, text, match.start()))
    tokens.append(Token("EOF", "", len(source)))
    return tokens


# AST nodes


class Node:
    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        raise NotImplementedError


@dataclass(frozen=True)
class Literal(Node):
    value: Any

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        return self.value


@dataclass(frozen=True)
class Path(Node):
    segments: Tuple[Union[str, int], ...]

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        value = lookup_segments(scope, self.segments)
        return None if value is MISSING else value


@dataclass(frozen=True)
class Not(Node):
    operand: Node

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        return not self.operand.evaluate(scope)


@dataclass(frozen=True)
class Negate(Node):
    operand: Node

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        value = self.operand.evaluate(scope)
        try:
            return -value
        except TypeError as e:
            raise ExpressionError(f"Cannot negate {value!r}") from e


@dataclass(frozen=True)
class BoolOp(Node):
    op: str
    left: Node
    right: Node

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        left = self.left.evaluate(scope)
        if self.op == "and":
            return self.right.evaluate(scope) if left else left
        return left if left else self.right.evaluate(scope)


@dataclass(frozen=True)
class BinOp(Node):
    op: str
    left: Node
    right: Node

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        left = self.left.evaluate(scope)
        right = self.right.evaluate(scope)
        try:
            if self.op == "+":
                if isinstance(left, str) or isinstance(right, str):
                    return to_template_string(left) + to_template_string(right)
                return left + right
            if self.op in _COMPARISONS:
                return _COMPARISONS[self.op](left, right)
            if self.op == "in":
                return left in right
            if self.op == "not in":
                return left not in right
            return _ARITHMETIC[self.op](left, right)
        except (TypeError, ZeroDivisionError) as e:
            raise ExpressionError(
                f"Cannot apply '{self.op}' to {left!r} and {right!r}: {e}"
            ) from e


@dataclass(frozen=True)
class Call(Node):
    name: str
    args: Tuple[Node, ...]

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        values = [arg.evaluate(scope) for arg in self.args]
        try:
            return FUNCTIONS[self.name](*values)
        except (TypeError, ValueError) as e:
            raise ExpressionError(f"{self.name}() failed: {e}") from e


class _Parser:
    """Recursive-descent parser, lowest precedence first."""

    def __init__(self, source: str):
        self.source = source
        self.tokens = tokenize(source)
        self.index = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _peek(self, offset: int = 1) -> Token:
        return self.tokens[min(self.index + offset, len(self.tokens) - 1)]

    def _advance(self) -> Token:
        token = self.current
        self.index += 1
        return token

    def _at(self, kind: str, *texts: str) -> bool:
        token = self.current
        return token.kind == kind and (not texts or token.text in texts)

    def _expect(self, kind: str, text: Optional[str] = None) -> Token:
        if not self._at(kind, *((text,) if text else ())):
            wanted = text or kind
            raise self._error(f"expected {wanted!r}")
        return self._advance()

    def _error(self, message: str) -> ExpressionError:
        token = self.current
        found = token.text or "end of expression"
        return ExpressionError(
            f"Invalid expression {self.source!r}: {message}, found {found!r} "
            f"at position {token.position}"
        )

    def parse(self) -> Node:
        node = self._or()
        if not self._at("EOF"):
            raise self._error("unexpected trailing input")
        return node

    def _or(self) -> Node:
        node = self._and()
        while self._at("KEYWORD", "or") or self._at("OP", "||"):
            self._advance()
            node = BoolOp("or", node, self._and())
        return node

    def _and(self) -> Node:
        node = self._not()
        while self._at("KEYWORD", "and") or self._at("OP", "&&"):
            self._advance()
            node = BoolOp("and", node, self._not())
        return node

    def _not(self) -> Node:
        if self._at("KEYWORD", "not") or self._at("OP", "!"):
            self._advance()
            return Not(self._not())
        return self._comparison()

    def _comparison(self) -> Node:
        node = self._additive()
        while True:
            if self._at("OP", *_COMPARISONS):
                op = self._advance().text
            elif self._at("KEYWORD", "in"):
                self._advance()
                op = "in"
            elif self._at("KEYWORD", "not") and self._peek().kind == "KEYWORD" and self._peek().text == "in":
                self._advance()
                self._advance()
                op = "not in"
            else:
                return node
            node = BinOp(op, node, self._additive())

    def _additive(self) -> Node:
        node = self._multiplicative()
        while self._at("OP", "+", "-"):
            op = self._advance().text
            node = BinOp(op, node, self._multiplicative())
        return node

    def _multiplicative(self) -> Node:
        node = self._unary()
        while self._at("OP", "*", "/", "%"):
            op = self._advance().text
            node = BinOp(op, node, self._unary())
        return node

    def _unary(self) -> Node:
        if self._at("OP", "-"):
            self._advance()
            return Negate(self._unary())
        return self._primary()

    def _primary(self) -> Node:
        token = self.current
        if token.kind == "NUMBER":
            self._advance()
            return Literal(float(token.text) if "." in token.text else int(token.text))
        if token.kind == "STRING":
            self._advance()
            body = token.text[1:-1]
            return Literal(re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), body))
        if token.kind == "TEMPLATE":
            self._advance()
            inner = token.text[2:-2]
            return Path(tuple(segment.strip() for segment in inner.strip().split(".")))
        if token.kind == "PUNCT" and token.text == "(":
            self._advance()
            node = self._or()
            self._expect("PUNCT", ")")
            return node
        if token.kind == "NAME":
            if token.text in _CONSTANTS:
                self._advance()
                return Literal(_CONSTANTS[token.text])
            if self._peek().kind == "PUNCT" and self._peek().text == "(":
                return self._call()
            return self._path()
        raise self._error("expected a value")

    def _call(self) -> Node:
        name = self._advance().text
        if name not in FUNCTIONS:
            raise ExpressionError(f"Unknown function '{name}' in {self.source!r}")
        self._expect("PUNCT", "(")
        args: List[Node] = []
        if not self._at("PUNCT", ")"):
            args.append(self._or())
            while self._at("PUNCT", ","):
                self._advance()
                args.append(self._or())
        self._expect("PUNCT", ")")
        return Call(name, tuple(args))

    def _path(self) -> Node:
        segments: List[Union[str, int]] = [self._advance().text]
        while True:
            if self._at("PUNCT", "."):
                self._advance()
                if self._at("NAME") or self._at("KEYWORD"):
                    segments.append(self._advance().text)
                elif self._at("NUMBER"):
                    # "items.0.1" tokenizes the trailing part as one number
                    segments.extend(int(part) for part in self._advance().text.split("."))
                else:
                    raise self._error("expected a name after '.'")
            elif self._at("PUNCT", "["):
                self._advance()
                key = self._primary()
                if not isinstance(key, Literal):
                    raise self._error("index must be a literal")
                segments.append(key.value)
                self._expect("PUNCT", "]")
            else:
                return Path(tuple(segments))


@functools.lru_cache(maxsize=512)
def compile_expression(source: str) -> Node:
    """Parse an expression into an evaluable AST (cached by source text).

    Raises:
        ExpressionError: If the expression is malformed
    """
    if not source or not source.strip():
        raise ExpressionError("Expression is empty")
    return _Parser(source).parse()


def evaluate(source: str, scope: Mapping[str, Any]) -> Any:
    """Evaluate an expression against a scope and return its value."""
    return compile_expression(source).evaluate(scope)


def evaluate_condition(source: str, scope: Mapping[str, Any]) -> bool:
    """Evaluate an expression and coerce the result to a boolean."""
    return bool(evaluate(source, scope))
