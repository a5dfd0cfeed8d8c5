"""Tokenizer and parser for hide-expressions.

Hide-expressions are small boolean rules written by form designers, e.g.::

    hivTested != '1065AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA'
    testResult == 'positive' and isEmpty(referralDate)
    (visitType === 'ANC' || age < 18) && referralDate is not empty

The grammar is closed: field references, literals (quoted strings,
numbers, ``true``/``false``/``null``/``undefined``), comparisons
(``== != === !== < <= > >=``), logical ``and``/``or``/``not`` (also
``&& || !``), parentheses, the ``is [not] empty`` postfix test, and the
functions ``isEmpty(x)`` and ``includes(x, v)``. Expressions are parsed into
an immutable AST; nothing is ever compiled or executed as Python code.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Any

from pydantic import BaseModel, ConfigDict

from clinform.errors import EvaluationError

_TOKEN_RE = re.compile(
    r"""
    \s*(?:
        (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
      | (?P<number>-?\d+(?:\.\d+)?(?![\w.\-]))
      | (?P<op>===|!==|==|!=|<=|>=|&&|\|\||<|>|!|\(|\)|,)
      | (?P<name>[A-Za-z0-9_][\w.\-]*)
    )
    """,
    re.VERBOSE,
)

COMPARISON_OPERATORS = frozenset({"==", "!=", "===", "!==", "<", "<=", ">", ">="})

_LITERALS: dict[str, Any] = {
    "true": True,
    "false": False,
    "null": None,
    "undefined": None,
}

_KEYWORDS = frozenset({"and", "or", "not", "is", "empty"})

FUNCTIONS = frozenset({"isEmpty", "includes"})


class Token(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: str
    text: str
    position: int


# ---------------------------------------------------------------------------
# AST
# ---------------------------------------------------------------------------


class Node(BaseModel):
    """Base class of all expression AST nodes."""

    model_config = ConfigDict(frozen=True)


class Literal(Node):
    value: Any = None


class FieldRef(Node):
    name: str


class Compare(Node):
    op: str
    left: Node
    right: Node


class Logical(Node):
    op: str
    operands: tuple[Node, ...]


class Not(Node):
    operand: Node


class IsEmpty(Node):
    operand: Node
    negated: bool = False


class Call(Node):
    name: str
    args: tuple[Node, ...]


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------


def tokenize(expression: str) -> list[Token]:
    """Split an expression into tokens.

    Raises:
        EvaluationError: If the expression contains characters outside
            the grammar.
    """
    tokens: list[Token] = []
    pos = 0
    text = expression.rstrip()
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if m is None or m.end() == pos:
            msg = f"Unexpected character {text[pos:].strip()[:1]!r} at position {pos}"
            raise EvaluationError(msg, expression=expression)
        kind = m.lastgroup or ""
        token_text = m.group(kind)
        if kind == "name" and token_text.lower() in _KEYWORDS:
            kind = "keyword"
            token_text = token_text.lower()
        tokens.append(Token(kind=kind, text=token_text, position=m.start(kind)))
        pos = m.end()
    return tokens


def _unquote(raw: str) -> str:
    quote = raw[0]
    return raw[1:-1].replace("\\" + quote, quote).replace("\\\\", "\\")


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class _Parser:
    """Recursive-descent parser over a token list."""

    def __init__(self, expression: str, tokens: list[Token]) -> None:
        self._expression = expression
        self._tokens = tokens
        self._index = 0

    def parse(self) -> Node:
        if not self._tokens:
            self._fail("Empty expression")
        node = self._or()
        if self._peek() is not None:
            self._fail(f"Unexpected token {self._peek().text!r}")
        return node

    def _fail(self, message: str) -> None:
        raise EvaluationError(f"{message} in {self._expression!r}", expression=self._expression)

    def _peek(self) -> Token | None:
        if self._index < len(self._tokens):
            return self._tokens[self._index]
        return None

    def _advance(self) -> Token:
        token = self._peek()
        if token is None:
            self._fail("Unexpected end of expression")
        self._index += 1
        return token

    def _accept(self, *texts: str) -> Token | None:
        token = self._peek()
        if token is not None and token.kind in ("op", "keyword") and token.text in texts:
            self._index += 1
            return token
        return None

    def _expect(self, text: str) -> None:
        if self._accept(text) is None:
            found = self._peek().text if self._peek() else "end of expression"
            self._fail(f"Expected {text!r} but found {found!r}")

    def _or(self) -> Node:
        operands = [self._and()]
        while self._accept("or", "||"):
            operands.append(self._and())
        return operands[0] if len(operands) == 1 else Logical(op="or", operands=tuple(operands))

    def _and(self) -> Node:
        operands = [self._not()]
        while self._accept("and", "&&"):
            operands.append(self._not())
        return operands[0] if len(operands) == 1 else Logical(op="and", operands=tuple(operands))

    def _not(self) -> Node:
        if self._accept("not", "!"):
            return Not(operand=self._not())
        return self._comparison()

    def _comparison(self) -> Node:
        left = self._operand()
        token = self._peek()
        if token is not None and token.kind == "op" and token.text in COMPARISON_OPERATORS:
            self._advance()
            return Compare(op=token.text, left=left, right=self._operand())
        if self._accept("is"):
            negated = self._accept("not") is not None
            self._expect("empty")
            return IsEmpty(operand=left, negated=negated)
        return left

    def _operand(self) -> Node:
        token = self._advance()
        if token.kind == "string":
            return Literal(value=_unquote(token.text))
        if token.kind == "number":
            number = float(token.text)
            return Literal(value=int(number) if number.is_integer() and "." not in token.text else number)
        if token.kind == "op" and token.text == "(":
            node = self._or()
            self._expect(")")
            return node
        if token.kind == "name":
            if token.text in _LITERALS:
                return Literal(value=_LITERALS[token.text])
            if self._accept("("):
                return self._call(token.text)
            return FieldRef(name=token.text)
        self._fail(f"Unexpected token {token.text!r}")
        raise AssertionError("unreachable")

    def _call(self, name: str) -> Node:
        if name not in FUNCTIONS:
            self._fail(f"Unknown function {name!r}")
        args: list[Node] = []
        if self._accept(")") is None:
            args.append(self._or())
            while self._accept(","):
                args.append(self._or())
            self._expect(")")
        if name == "isEmpty":
            if len(args) != 1:
                self._fail("isEmpty() takes exactly one argument")
            return IsEmpty(operand=args[0])
        if len(args) != 2:
            self._fail(f"{name}() takes exactly two arguments")
        return Call(name=name, args=tuple(args))


@lru_cache(maxsize=1024)
def parse(expression: str) -> Node:
    """Parse a hide-expression into an AST.

    Results are cached per expression string; the AST is immutable.

    Raises:
        EvaluationError: If the expression is malformed.
    """
    return _Parser(expression, tokenize(expression)).parse()


def field_references(node: Node) -> list[str]:
    """Return the names referenced by an AST, in first-appearance order."""
    names: list[str] = []

    def visit(n: Node) -> None:
        if isinstance(n, FieldRef):
            if n.name not in names:
                names.append(n.name)
        elif isinstance(n, Compare):
            visit(n.left)
            visit(n.right)
        elif isinstance(n, Logical):
            for operand in n.operands:
                visit(operand)
        elif isinstance(n, (Not, IsEmpty)):
            visit(n.operand)
        elif isinstance(n, Call):
            for arg in n.args:
                visit(arg)

    visit(node)
    return names
