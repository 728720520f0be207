# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Index expressions: integers that are either known literals or deferred symbols.

An :class:`IndexExpr` is one of three states:

* ``LITERAL``: a known signed 64-bit integer.
* ``SYMBOL``: a quantity only known at run time, carried as a SymPy expression
  tree over symbols owned by an :class:`~onnx_index_expr.IndexExprContext`.
* ``UNDEFINED``: the operand could not be resolved at all.

All algebra functions in this module are pure. They fold to a literal whenever
every operand that contributes to the result is a literal, and otherwise build a
deferred SymPy expression. The kind of the result is decided by the kinds of the
operands, never by what SymPy manages to simplify.

Example::

    from onnx_index_expr import _index_expr as ie

    n = ie.IndexExpr.symbol(sympy.Symbol("N", integer=True, nonnegative=True))
    start = ie.select(-3, ie.Predicate.SLT, 0, ie.add(-3, n), -3)
    start = ie.clamp(start, 0, n)
"""

from __future__ import annotations

__all__ = [
    "INT64_MAX",
    "INT64_MIN",
    "IndexExpr",
    "IndexExprKind",
    "IndexExprLike",
    "Predicate",
    "add",
    "assign_if",
    "ceil_div",
    "clamp",
    "select",
    "sub",
]

import dataclasses
import enum
import operator
from collections.abc import Callable
from typing import Union

import sympy

INT64_MAX = 2**63 - 1
INT64_MIN = -(2**63)


def _wrap_int64(value: int) -> int:
    """Wrap an arbitrary precision int to two's complement signed 64-bit."""
    return ((value - INT64_MIN) % 2**64) + INT64_MIN


class IndexExprKind(enum.Enum):
    UNDEFINED = "undefined"
    LITERAL = "literal"
    SYMBOL = "symbol"


class Predicate(enum.Enum):
    """Signed integer comparison predicates."""

    EQ = "eq"
    NE = "ne"
    SLT = "slt"
    SLE = "sle"
    SGT = "sgt"
    SGE = "sge"

    def evaluate(self, lhs: int, rhs: int) -> bool:
        return _PREDICATE_OPS[self][0](lhs, rhs)

    def relational(self, lhs: sympy.Expr, rhs: sympy.Expr) -> sympy.Basic:
        return _PREDICATE_OPS[self][1](lhs, rhs)


_PREDICATE_OPS: dict[Predicate, tuple[Callable[[int, int], bool], Callable[..., sympy.Basic]]] = {
    Predicate.EQ: (operator.eq, sympy.Eq),
    Predicate.NE: (operator.ne, sympy.Ne),
    Predicate.SLT: (operator.lt, sympy.Lt),
    Predicate.SLE: (operator.le, sympy.Le),
    Predicate.SGT: (operator.gt, sympy.Gt),
    Predicate.SGE: (operator.ge, sympy.Ge),
}


@dataclasses.dataclass(frozen=True)
class IndexExpr:
    """An integer index quantity that is a literal, a deferred symbol, or undefined.

    Use the :meth:`literal`, :meth:`symbol` and :meth:`undefined` factories
    rather than the constructor.
    """

    kind: IndexExprKind
    _value: int | None = None
    _expr: sympy.Expr | None = None

    @classmethod
    def literal(cls, value: int) -> IndexExpr:
        return cls(IndexExprKind.LITERAL, _value=_wrap_int64(int(value)))

    @classmethod
    def symbol(cls, expr: sympy.Expr) -> IndexExpr:
        return cls(IndexExprKind.SYMBOL, _expr=expr)

    @classmethod
    def undefined(cls) -> IndexExpr:
        return cls(IndexExprKind.UNDEFINED)

    def is_literal(self) -> bool:
        return self.kind is IndexExprKind.LITERAL

    def is_symbol(self) -> bool:
        return self.kind is IndexExprKind.SYMBOL

    def is_undefined(self) -> bool:
        return self.kind is IndexExprKind.UNDEFINED

    def get_literal(self) -> int:
        """Return the literal value.

        Raises:
            ValueError: If the expression is not a literal.
        """
        if self._value is None:
            raise ValueError(f"IndexExpr is not a literal: {self}")
        return self._value

    def to_sympy(self) -> sympy.Expr:
        """Return the SymPy form of the expression.

        Raises:
            ValueError: If the expression is undefined.
        """
        if self._value is not None:
            return sympy.Integer(self._value)
        if self._expr is None:
            raise ValueError("An undefined IndexExpr has no SymPy form")
        return self._expr

    def __str__(self) -> str:
        if self._value is not None:
            return str(self._value)
        if self._expr is None:
            return "?"
        return str(self._expr)


IndexExprLike = Union[IndexExpr, int]


def _as_index_expr(value: IndexExprLike) -> IndexExpr:
    if isinstance(value, IndexExpr):
        return value
    return IndexExpr.literal(value)


def add(lhs: IndexExprLike, rhs: IndexExprLike) -> IndexExpr:
    """Return ``lhs + rhs``."""
    a, b = _as_index_expr(lhs), _as_index_expr(rhs)
    if a.is_undefined() or b.is_undefined():
        return IndexExpr.undefined()
    if a.is_literal() and b.is_literal():
        return IndexExpr.literal(a.get_literal() + b.get_literal())
    return IndexExpr.symbol(a.to_sympy() + b.to_sympy())


def sub(lhs: IndexExprLike, rhs: IndexExprLike) -> IndexExpr:
    """Return ``lhs - rhs``."""
    a, b = _as_index_expr(lhs), _as_index_expr(rhs)
    if a.is_undefined() or b.is_undefined():
        return IndexExpr.undefined()
    if a.is_literal() and b.is_literal():
        return IndexExpr.literal(a.get_literal() - b.get_literal())
    return IndexExpr.symbol(a.to_sympy() - b.to_sympy())


def select(
    compare: IndexExprLike,
    predicate: Predicate,
    pivot: int,
    when_true: IndexExprLike,
    when_false: IndexExprLike,
) -> IndexExpr:
    """Return ``when_true if compare <predicate> pivot else when_false``.

    A literal ``compare`` folds the condition at compile time and returns the
    chosen branch unchanged. A symbolic ``compare`` yields a deferred
    ``Piecewise`` carrying both branches.
    """
    cond = _as_index_expr(compare)
    true_expr, false_expr = _as_index_expr(when_true), _as_index_expr(when_false)
    if cond.is_undefined():
        return IndexExpr.undefined()
    if cond.is_literal():
        return true_expr if predicate.evaluate(cond.get_literal(), pivot) else false_expr
    if true_expr.is_undefined() or false_expr.is_undefined():
        return IndexExpr.undefined()
    relation = predicate.relational(cond.to_sympy(), sympy.Integer(pivot))
    return IndexExpr.symbol(
        sympy.Piecewise((true_expr.to_sympy(), relation), (false_expr.to_sympy(), True))
    )


def clamp(value: IndexExprLike, lower: IndexExprLike, upper: IndexExprLike) -> IndexExpr:
    """Constrain ``value`` into ``[lower, upper]``.

    The lower bound is applied first, so the upper bound wins when
    ``lower > upper``.
    """
    v, lo, hi = _as_index_expr(value), _as_index_expr(lower), _as_index_expr(upper)
    if v.is_undefined() or lo.is_undefined() or hi.is_undefined():
        return IndexExpr.undefined()
    if v.is_literal() and lo.is_literal() and hi.is_literal():
        return IndexExpr.literal(min(max(v.get_literal(), lo.get_literal()), hi.get_literal()))
    return IndexExpr.symbol(sympy.Min(sympy.Max(v.to_sympy(), lo.to_sympy()), hi.to_sympy()))


def assign_if(
    receiver: IndexExprLike,
    test: IndexExprLike,
    predicate: Predicate,
    pivot: int,
    replacement: IndexExprLike,
) -> IndexExpr:
    """Return ``replacement`` if ``test <predicate> pivot`` holds, else ``receiver``."""
    return select(test, predicate, pivot, replacement, receiver)


def ceil_div(dividend: IndexExprLike, divisor: IndexExprLike) -> IndexExpr:
    """Return ``ceil(dividend / divisor)`` with exact integer semantics.

    Raises:
        ZeroDivisionError: If ``divisor`` is the literal zero.
    """
    a, b = _as_index_expr(dividend), _as_index_expr(divisor)
    if a.is_undefined() or b.is_undefined():
        return IndexExpr.undefined()
    if b.is_literal() and b.get_literal() == 0:
        raise ZeroDivisionError("ceil_div by a literal zero")
    if a.is_literal() and b.is_literal():
        return IndexExpr.literal(-((-a.get_literal()) // b.get_literal()))
    return IndexExpr.symbol(sympy.ceiling(a.to_sympy() / b.to_sympy()))
