"""
The boolean condition language used by `$if` and `$elseif`.

A condition is a set of comparisons (`A==B`, `A!=B`, `A>=B`, `A<=B`, `A>B`,
`A<B`) joined with `&&` and `||` and grouped with parentheses. The grammar
lives in `shouw_conditions.lark`; lark builds the parse tree and
`ConditionBuilder` turns it into a small AST evaluated left to right with
short-circuiting. A malformed condition is never an error for the caller:
it evaluates to False.
"""
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

from lark import Lark, Transformer, v_args
from lark.exceptions import LarkError, VisitError

from shouw.shouw_escape import unescape

# Two-character operators must be tried before their one-character prefixes.
OPERATORS = ("==", "!=", ">=", "<=", ">", "<")

_NUMBER_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")

_GRAMMAR_PATH = Path(__file__).with_name("shouw_conditions.lark")


class ConditionError(Exception):
    """Raised while parsing a malformed condition. Always recovered."""
    pass


# =================================================================
# AST
# =================================================================

@dataclass(frozen=True)
class Comparison:
    left: str
    op: str
    right: str

    def evaluate(self) -> bool:
        left = unescape(self.left)
        right = unescape(self.right)
        # Equality is always textual
        if self.op == "==":
            return left == right
        if self.op == "!=":
            return left != right
        a: Union[float, str] = left
        b: Union[float, str] = right
        na, nb = to_number(left), to_number(right)
        if na is not None and nb is not None:
            a, b = na, nb
        if self.op == ">=":
            return a >= b
        if self.op == "<=":
            return a <= b
        if self.op == ">":
            return a > b
        if self.op == "<":
            return a < b
        raise ConditionError(f"unknown operator {self.op!r}")


@dataclass(frozen=True)
class And:
    terms: Tuple['Node', ...]

    def evaluate(self) -> bool:
        return all(term.evaluate() for term in self.terms)


@dataclass(frozen=True)
class Or:
    terms: Tuple['Node', ...]

    def evaluate(self) -> bool:
        return any(term.evaluate() for term in self.terms)


Node = Union[Comparison, And, Or]




def to_number(text: str) -> Optional[float]:
    s = text.strip()
    if not _NUMBER_RE.match(s):
        return None
    return float(s)


# =================================================================
# Parsing
# =================================================================

def parse_term(text: str) -> Comparison:
    s = text.strip()
    for op in OPERATORS:
        if op in s:
            left, _, right = s.partition(op)
            return Comparison(left.strip(), op, right.strip())
    raise ConditionError(f"no comparison operator in {s!r}")


@v_args(inline=True)
class ConditionBuilder(Transformer):
    """Builds the condition AST from the lark parse tree."""

    def or_expr(self, *terms):
        return Or(tuple(terms))

    def and_expr(self, *terms):
        return And(tuple(terms))

    def term(self, token):
        return parse_term(str(token))


_PARSER = Lark(_GRAMMAR_PATH.read_text(encoding="utf-8"), parser="lalr")
_BUILDER = ConditionBuilder()


def pad_parentheses(expr: str) -> str:
    """Undercounted closing parentheses are padded at the end."""
    depth = expr.count("(") - expr.count(")")
    return expr + ")" * depth if depth > 0 else expr


def parse_condition(expr: str) -> Node:
    """Parses a condition into its AST. Raises ConditionError when malformed."""
    try:
        tree = _PARSER.parse(pad_parentheses(expr or ""))
    except LarkError as e:
        raise ConditionError(str(e)) from e
    try:
        return _BUILDER.transform(tree)
    except VisitError as e:
        raise ConditionError(str(e.orig_exc)) from e


class ConditionEvaluator:
    """Evaluates condition strings, recovering every parse failure as False."""

    def __init__(self, debug: bool = False):
        self.debug = debug

    def _dbg(self, *parts):
        if self.debug:
            print("[DBG]", *parts, file=sys.stderr)

    def evaluate(self, expr: str) -> bool:
        try:
            result = parse_condition(expr).evaluate()
        except ConditionError as e:
            self._dbg("CONDITION malformed", repr(expr), str(e))
            return False
        self._dbg("CONDITION", repr(expr), "->", result)
        return result


def check_condition(expr: str) -> bool:
    return ConditionEvaluator().evaluate(expr)
