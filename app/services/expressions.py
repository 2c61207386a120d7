"""
Arithmetic expressions over reading tags.

A device-type mapping may define a derived value such as
``WFR / (WFR + OFR) * 100``. The expression is parsed once into a small
AST and evaluated against each raw payload:

* tags are upper-case words (``[A-Z_][A-Z0-9_]*``); a missing or
  non-numeric tag counts as 0
* supported syntax is numbers, tags, ``+ - * /``, unary minus and
  parentheses; anything else is rejected at parse time
* the result is always a finite float; division by zero gives 0
"""
import math
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, FrozenSet, List, Mapping, Optional, Tuple, Union

from app.core.exceptions import InvalidInputError

TAG_PATTERN = re.compile(r"[A-Z_][A-Z0-9_]*")

# parentheses and unary signs, combined
MAX_NESTING = 64
# bounds the depth of left-leaning operator chains
MAX_TOKENS = 256

_TOKEN_RE = re.compile(
    r"\s*(?:(?P<num>\d+(?:\.\d+)?|\.\d+)|(?P<word>[A-Za-z_][A-Za-z0-9_]*)|(?P<op>[-+*/()]))"
)


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Tag:
    name: str


@dataclass(frozen=True)
class Unary:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class BinOp:
    op: str
    left: "Node"
    right: "Node"


Node = Union[Number, Tag, Unary, BinOp]
Token = Tuple[str, str]


def tokenize(source: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    source = source.rstrip()
    while pos < len(source):
        m = _TOKEN_RE.match(source, pos)
        if not m or m.end() == pos:
            raise InvalidInputError(
                f"Unexpected character {source[pos:].lstrip()[:1]!r} in expression",
                details={"expression": source, "position": pos},
            )
        if m.group("num") is not None:
            tokens.append(("num", m.group("num")))
        elif m.group("word") is not None:
            word = m.group("word")
            if not TAG_PATTERN.fullmatch(word):
                raise InvalidInputError(
                    f"Invalid tag {word!r}: tags are upper-case",
                    details={"expression": source},
                )
            tokens.append(("tag", word))
        else:
            tokens.append(("op", m.group("op")))
        pos = m.end()
        if len(tokens) > MAX_TOKENS:
            raise InvalidInputError(
                f"Expression longer than {MAX_TOKENS} tokens",
                details={"expression": source[:80]},
            )
    return tokens


class _Parser:
    # expr   := term (("+" | "-") term)*
    # term   := factor (("*" | "/") factor)*
    # factor := "-" factor | "+" factor | NUMBER | TAG | "(" expr ")"

    def __init__(self, source: str, tokens: List[Token]):
        self.source = source
        self.tokens = tokens
        self.pos = 0
        self.depth = 0

    def _peek(self) -> Optional[Token]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _next(self) -> Token:
        tok = self._peek()
        if tok is None:
            self._fail("Unexpected end of expression")
        self.pos += 1
        return tok

    def _fail(self, message: str):
        raise InvalidInputError(message, details={"expression": self.source})

    def _descend(self) -> None:
        self.depth += 1
        if self.depth > MAX_NESTING:
            self._fail("Expression nested too deeply")

    def parse(self) -> Node:
        if not self.tokens:
            self._fail("Empty expression")
        node = self._expr()
        if self._peek() is not None:
            self._fail(f"Unexpected token {self._peek()[1]!r}")
        return node

    def _expr(self) -> Node:
        node = self._term()
        while self._peek() in (("op", "+"), ("op", "-")):
            op = self._next()[1]
            node = BinOp(op, node, self._term())
        return node

    def _term(self) -> Node:
        node = self._factor()
        while self._peek() in (("op", "*"), ("op", "/")):
            op = self._next()[1]
            node = BinOp(op, node, self._factor())
        return node

    def _factor(self) -> Node:
        kind, value = self._next()
        if kind == "num":
            return Number(float(value))
        if kind == "tag":
            return Tag(value)
        if value in ("-", "+"):
            self._descend()
            node = Unary(value, self._factor())
            self.depth -= 1
            return node
        if value == "(":
            self._descend()
            node = self._expr()
            if self._next() != ("op", ")"):
                self._fail("Missing closing parenthesis")
            self.depth -= 1
            return node
        self._fail(f"Unexpected token {value!r}")


def _collect_tags(node: Node, out: set) -> None:
    if isinstance(node, Tag):
        out.add(node.name)
    elif isinstance(node, Unary):
        _collect_tags(node.operand, out)
    elif isinstance(node, BinOp):
        _collect_tags(node.left, out)
        _collect_tags(node.right, out)


def _as_number(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def _eval(node: Node, payload: Mapping[str, Any]) -> float:
    if isinstance(node, Number):
        return node.value
    if isinstance(node, Tag):
        return _as_number(payload.get(node.name))
    if isinstance(node, Unary):
        operand = _eval(node.operand, payload)
        return -operand if node.op == "-" else operand

    left = _eval(node.left, payload)
    right = _eval(node.right, payload)
    if node.op == "+":
        return left + right
    if node.op == "-":
        return left - right
    if node.op == "*":
        return left * right
    return left / right  # ZeroDivisionError handled by the caller


@dataclass(frozen=True)
class Expression:
    source: str
    root: Node
    tags: FrozenSet[str]

    def evaluate(self, payload: Optional[Mapping[str, Any]]) -> float:
        try:
            result = _eval(self.root, payload or {})
        except (ZeroDivisionError, OverflowError):
            return 0.0
        return result if math.isfinite(result) else 0.0


@lru_cache(maxsize=512)
def parse_expression(source: str) -> Expression:
    tokens = tokenize(source)
    root = _Parser(source, tokens).parse()
    tags: set = set()
    _collect_tags(root, tags)
    return Expression(source=source, root=root, tags=frozenset(tags))


def referenced_tags(source: str) -> FrozenSet[str]:
    return parse_expression(source).tags


def validate_expression(source: str, known_tags) -> None:
    """Raise InvalidInputError if ``source`` is malformed or uses unknown tags."""
    missing = sorted(referenced_tags(source) - set(known_tags))
    if missing:
        raise InvalidInputError(
            "Expression references tags not defined for this device type",
            details={"expression": source, "unknown_tags": missing},
        )
