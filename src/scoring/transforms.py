"""
Rubric transform expressions: tokenizer, parser, and vectorised evaluator.

A rubric's ``transform`` cell is never evaluated as Python.  It is parsed
under a small closed grammar into an immutable syntax tree, then evaluated
elementwise with numpy:

    transform   := NOOP | conditional | expr
    conditional := ("when" | "if") predicate "then" expr
    predicate   := conjunction ("or" conjunction)*
    conjunction := negation ("and" negation)*
    negation    := "not" negation | expr CMP expr
    expr        := term (("+" | "-") term)*
    term        := unary (("*" | "/") unary)*
    unary       := "-" unary | primary
    primary     := NUMBER | "value" | "x" | "reverse" "(" expr ")" | "(" expr ")"

``reverse(e)`` is the only function; it reverse-codes ``e`` with the item's
own min/max.  A conditional leaves the value unchanged wherever the predicate
is false (or cannot be evaluated because the value is missing).

Examples:
    "(value - 1) / 3 * 100"
    "when value > 3 then reverse(value)"
    "if value >= 7 or value < 0 then value / 10"
"""

from __future__ import annotations

import operator
import re
from dataclasses import dataclass, fields
from functools import lru_cache
from typing import NamedTuple, Union

import numpy as np
import pandas as pd

from .config import NOOP_SPELLINGS, NOOP_TRANSFORM
from .errors import MalformedTransformError, MissingBoundsError
from .reversal import reverse_code
from .validation import require_homogeneous


# ---------------------------------------------------------------------------
# Syntax tree
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NoOp:
    pass


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class ValueRef:
    pass


@dataclass(frozen=True)
class Negate:
    operand: "Node"


@dataclass(frozen=True)
class Arithmetic:
    operator: str
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Reverse:
    operand: "Node"


@dataclass(frozen=True)
class Comparison:
    operator: str
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class BoolOp:
    operator: str
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Not:
    operand: "Node"


@dataclass(frozen=True)
class Conditional:
    predicate: "Node"
    expression: "Node"


Node = Union[
    NoOp, Number, ValueRef, Negate, Arithmetic, Reverse,
    Comparison, BoolOp, Not, Conditional,
]


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

class Token(NamedTuple):
    kind: str   # "number", "name" or "op"
    text: str


_TOKEN_RE = re.compile(
    r"\s*(?:"
    r"(?P<number>\d+(?:\.\d*)?|\.\d+)"
    r"|(?P<name>[A-Za-z_][A-Za-z0-9_]*)"
    r"|(?P<op><=|>=|==|!=|<|>|[-+*/()])"
    r")"
)

KEYWORDS: frozenset[str] = frozenset({
    "when", "if", "then", "and", "or", "not", "value", "x", "reverse",
})

COMPARISON_OPS: frozenset[str] = frozenset({"<", "<=", ">", ">=", "==", "!="})


def tokenize(text: str) -> list[Token]:
    """
    Split transform text into tokens.

    Unlike a permissive ``findall``, every character must belong to a token;
    anything else is rejected with its position.

    Raises:
        MalformedTransformError: Unrecognised character or identifier.
    """
    tokens: list[Token] = []
    stripped = text.strip()
    pos = 0
    while pos < len(stripped):
        match = _TOKEN_RE.match(stripped, pos)
        if match is None:
            raise MalformedTransformError(
                text, f"unexpected character {stripped[pos]!r} at position {pos}"
            )
        kind = match.lastgroup
        token_text = match.group(kind)
        if kind == "name":
            token_text = token_text.lower()
            if token_text not in KEYWORDS:
                raise MalformedTransformError(text, f"unknown name {match.group(kind)!r}")
        tokens.append(Token(kind, token_text))
        pos = match.end()
    return tokens


# ---------------------------------------------------------------------------
# Parser (recursive descent, one function per grammar rule)
# ---------------------------------------------------------------------------

class _ParseFailure(Exception):
    """Internal: carries a parse error message up to parse_transform."""


def _peek(tokens: list[Token], pos: int) -> str | None:
    return tokens[pos].text if pos < len(tokens) else None


def _expect(tokens: list[Token], pos: int, text: str) -> int:
    found = _peek(tokens, pos)
    if found != text:
        raise _ParseFailure(f"expected {text!r} but found {found or 'end of input'!r}")
    return pos + 1


def _parse_primary(tokens: list[Token], pos: int) -> tuple[Node, int]:
    if pos >= len(tokens):
        raise _ParseFailure("unexpected end of input")
    token = tokens[pos]

    if token.kind == "number":
        return Number(float(token.text)), pos + 1

    if token.text in ("value", "x"):
        return ValueRef(), pos + 1

    if token.text == "reverse":
        pos = _expect(tokens, pos + 1, "(")
        operand, pos = _parse_expr(tokens, pos)
        pos = _expect(tokens, pos, ")")
        return Reverse(operand), pos

    if token.text == "(":
        inner, pos = _parse_expr(tokens, pos + 1)
        pos = _expect(tokens, pos, ")")
        return inner, pos

    raise _ParseFailure(f"unexpected token {token.text!r}")


def _parse_unary(tokens: list[Token], pos: int) -> tuple[Node, int]:
    if _peek(tokens, pos) == "-":
        operand, pos = _parse_unary(tokens, pos + 1)
        return Negate(operand), pos
    return _parse_primary(tokens, pos)


def _parse_term(tokens: list[Token], pos: int) -> tuple[Node, int]:
    left, pos = _parse_unary(tokens, pos)
    while _peek(tokens, pos) in ("*", "/"):
        op = tokens[pos].text
        right, pos = _parse_unary(tokens, pos + 1)
        left = Arithmetic(op, left, right)
    return left, pos


def _parse_expr(tokens: list[Token], pos: int) -> tuple[Node, int]:
    left, pos = _parse_term(tokens, pos)
    while _peek(tokens, pos) in ("+", "-"):
        op = tokens[pos].text
        right, pos = _parse_term(tokens, pos + 1)
        left = Arithmetic(op, left, right)
    return left, pos


def _parse_negation(tokens: list[Token], pos: int) -> tuple[Node, int]:
    if _peek(tokens, pos) == "not":
        operand, pos = _parse_negation(tokens, pos + 1)
        return Not(operand), pos

    left, pos = _parse_expr(tokens, pos)
    op = _peek(tokens, pos)
    if op not in COMPARISON_OPS:
        raise _ParseFailure(f"expected a comparison operator but found {op or 'end of input'!r}")
    right, pos = _parse_expr(tokens, pos + 1)
    return Comparison(op, left, right), pos


def _parse_conjunction(tokens: list[Token], pos: int) -> tuple[Node, int]:
    left, pos = _parse_negation(tokens, pos)
    while _peek(tokens, pos) == "and":
        right, pos = _parse_negation(tokens, pos + 1)
        left = BoolOp("and", left, right)
    return left, pos


def _parse_predicate(tokens: list[Token], pos: int) -> tuple[Node, int]:
    left, pos = _parse_conjunction(tokens, pos)
    while _peek(tokens, pos) == "or":
        right, pos = _parse_conjunction(tokens, pos + 1)
        left = BoolOp("or", left, right)
    return left, pos


def normalize_transform(raw) -> str:
    """Canonical transform text: the no-op spelling or whitespace-collapsed text."""
    if raw is None or (not isinstance(raw, str) and pd.isna(raw)):
        return NOOP_TRANSFORM
    text = " ".join(str(raw).split())
    if text.lower() in NOOP_SPELLINGS:
        return NOOP_TRANSFORM
    return text


@lru_cache(maxsize=None)
def parse_transform(text: str) -> Node:
    """
    Parse transform text into a syntax tree.

    Raises:
        MalformedTransformError: Text outside the grammar; message echoes it.
    """
    if normalize_transform(text) == NOOP_TRANSFORM:
        return NoOp()

    tokens = tokenize(text)
    try:
        if tokens[0].text in ("when", "if"):
            predicate, pos = _parse_predicate(tokens, 1)
            pos = _expect(tokens, pos, "then")
            expression, pos = _parse_expr(tokens, pos)
            tree: Node = Conditional(predicate, expression)
        else:
            tree, pos = _parse_expr(tokens, 0)
        if pos < len(tokens):
            raise _ParseFailure(
                f"unexpected trailing tokens {' '.join(t.text for t in tokens[pos:])!r}"
            )
    except _ParseFailure as exc:
        raise MalformedTransformError(text, str(exc)) from None
    return tree


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

_ARITHMETIC = {
    "+": np.add,
    "-": np.subtract,
    "*": np.multiply,
    "/": np.divide,
}

_COMPARISON = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}


def uses_reverse(node: Node) -> bool:
    """True if ``reverse()`` appears anywhere in the tree."""
    if isinstance(node, Reverse):
        return True
    return any(
        uses_reverse(getattr(node, f.name))
        for f in fields(node)
        if not isinstance(getattr(node, f.name), (str, float))
    )


def _evaluate(node: Node, values: np.ndarray, lo: np.ndarray, hi: np.ndarray):
    if isinstance(node, (NoOp, ValueRef)):
        return values
    if isinstance(node, Number):
        return np.full_like(values, node.value)
    if isinstance(node, Negate):
        return -_evaluate(node.operand, values, lo, hi)
    if isinstance(node, Arithmetic):
        return _ARITHMETIC[node.operator](
            _evaluate(node.left, values, lo, hi),
            _evaluate(node.right, values, lo, hi),
        )
    if isinstance(node, Reverse):
        return reverse_code(_evaluate(node.operand, values, lo, hi), lo, hi)
    if isinstance(node, Comparison):
        return _COMPARISON[node.operator](
            _evaluate(node.left, values, lo, hi),
            _evaluate(node.right, values, lo, hi),
        )
    if isinstance(node, BoolOp):
        left = _evaluate(node.left, values, lo, hi)
        right = _evaluate(node.right, values, lo, hi)
        return np.logical_and(left, right) if node.operator == "and" else np.logical_or(left, right)
    if isinstance(node, Not):
        return np.logical_not(_evaluate(node.operand, values, lo, hi))
    if isinstance(node, Conditional):
        # NaN comparisons are False, so missing values fall through unchanged
        mask = _evaluate(node.predicate, values, lo, hi)
        return np.where(mask, _evaluate(node.expression, values, lo, hi), values)
    raise TypeError(f"Unsupported transform node: {node!r}")


@dataclass(frozen=True)
class CompiledTransform:
    """A parsed transform, callable elementwise over an item's values."""

    text: str
    tree: Node

    @property
    def is_noop(self) -> bool:
        return isinstance(self.tree, NoOp)

    @property
    def uses_reverse(self) -> bool:
        return uses_reverse(self.tree)

    def __call__(self, values, lo=None, hi=None) -> np.ndarray:
        """
        Apply the transform to ``values``.

        Args:
            values: Item values (missing as NaN).
            lo, hi: Item bounds, scalar or per value.  Only consulted by
                    ``reverse()``.

        Returns:
            Float array; non-finite results (e.g. division by zero) are NaN.
        """
        values = np.asarray(values, dtype=float)
        lo = np.broadcast_to(np.asarray(np.nan if lo is None else lo, dtype=float), values.shape)
        hi = np.broadcast_to(np.asarray(np.nan if hi is None else hi, dtype=float), values.shape)

        with np.errstate(divide="ignore", invalid="ignore"):
            result = np.array(_evaluate(self.tree, values, lo, hi), dtype=float)
        result[~np.isfinite(result)] = np.nan
        return result


@lru_cache(maxsize=None)
def compile_transform(text: str) -> CompiledTransform:
    """Parse once per distinct text and wrap the tree as a callable."""
    canonical = normalize_transform(text)
    return CompiledTransform(canonical, parse_transform(canonical))


# ---------------------------------------------------------------------------
# Table-level application
# ---------------------------------------------------------------------------

def apply_transforms(df: pd.DataFrame) -> pd.DataFrame:
    """
    Apply each item's rubric transform to its ``value`` column.

    Transform text must be identical for every row of an item.  Each distinct
    text is compiled once; the compiled function then runs over all of the
    item's values, using each row's own min/max for ``reverse()``.

    Args:
        df: Numeric working rows with float ``value``, ``min``, ``max`` and
            canonical ``transform`` columns.

    Returns:
        Copy of ``df`` with transformed values.

    Raises:
        InconsistentDirectiveError: An item has more than one transform.
        MalformedTransformError: Transform text outside the grammar.
        MissingBoundsError: Transform calls reverse() on an unbounded item.
    """
    df = df.reset_index(drop=True)
    if df.empty:
        return df

    require_homogeneous(df, "item_id", "transform")

    for item_id, positions in df.groupby("item_id", sort=True).indices.items():
        text = df.at[positions[0], "transform"]
        if text == NOOP_TRANSFORM:
            continue

        try:
            compiled = compile_transform(text)
        except MalformedTransformError as exc:
            raise MalformedTransformError(text, exc.detail, item_id=item_id) from None

        rows = df.loc[positions]
        if compiled.uses_reverse and (rows["min"].isna().any() or rows["max"].isna().any()):
            raise MissingBoundsError(item_id, f"transform {text!r} calls reverse()")

        df.loc[positions, "value"] = compiled(
            rows["value"].to_numpy(dtype=float),
            rows["min"].to_numpy(dtype=float),
            rows["max"].to_numpy(dtype=float),
        )

    return df
