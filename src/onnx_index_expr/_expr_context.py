# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Per-node owner of index expression symbols and constant recognition."""

from __future__ import annotations

__all__ = [
    "IndexExprContext",
    "Tracer",
    "is_constant_array",
    "read_constant_ints",
]

import logging
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING

import sympy

import onnx_ir as ir
from onnx_index_expr._index_expr import IndexExpr

if TYPE_CHECKING:
    from onnx_index_expr._context import ShapeInferenceContext

logger = logging.getLogger(__name__)

Tracer = Callable[[str, IndexExpr], None]


def is_constant_array(value: ir.Value | None) -> bool:
    """Whether ``value`` is known at compile time."""
    return value is not None and value.const_value is not None


def read_constant_ints(value: ir.Value) -> list[int]:
    """Read the elements of a constant integer tensor in row-major order.

    Raises:
        ValueError: If the value is not a compile-time constant.
    """
    const = value.const_value
    if const is None:
        raise ValueError(f"Value {value.name!r} is not a compile-time constant")
    return [int(x) for x in const.numpy().flatten()]


class IndexExprContext:
    """Creates index expressions for the operands of a single node.

    The context owns every symbol it allocates. It lives for one shape
    inference call on one node and must not be shared between nodes.

    Attributes:
        node: The node whose operands are being resolved.
    """

    def __init__(
        self,
        shape_ctx: ShapeInferenceContext,
        node: ir.Node,
        *,
        tracer: Tracer | None = None,
    ) -> None:
        """Initialize the context.

        Args:
            shape_ctx: The shape inference context errors are reported to.
            node: The node whose operands are being resolved.
            tracer: Optional callback receiving ``(label, expr)`` pairs for
                every traced intermediate result.
        """
        self.node = node
        self._shape_ctx = shape_ctx
        self._tracer = tracer
        # Every allocated symbol, by unique name
        self._symbols: dict[str, sympy.Symbol] = {}
        # Named dimensions share one symbol per dim_param
        self._dim_symbols: dict[str, IndexExpr] = {}
        # Element symbols are keyed by operand, never by name
        self._element_symbols: dict[tuple[ir.Value, int], IndexExpr] = {}
        self._array_names: dict[ir.Value, str] = {}
        self._unnamed_count = 0

    @property
    def symbols(self) -> Mapping[str, sympy.Symbol]:
        """Symbols allocated by this context, keyed by name."""
        return self._symbols

    def create_literal(self, value: int) -> IndexExpr:
        return IndexExpr.literal(value)

    def new_symbol(self, name: str | None = None, *, dim: bool = False) -> IndexExpr:
        """Allocate a fresh symbol and return it as a ``SYMBOL`` expression.

        Args:
            name: Preferred name of the symbol. A name already taken in this
                context gets a ``_<n>`` suffix; no name gives ``unk__<n>``.
            dim: Whether the symbol is a tensor dimension, i.e. non-negative.
        """
        if name is None:
            name = f"unk__{self._unnamed_count}"
            self._unnamed_count += 1
            while name in self._symbols:
                name = f"unk__{self._unnamed_count}"
                self._unnamed_count += 1
        else:
            base, suffix = name, 0
            while name in self._symbols:
                suffix += 1
                name = f"{base}_{suffix}"
        if dim:
            symbol = sympy.Symbol(name, integer=True, nonnegative=True)
        else:
            symbol = sympy.Symbol(name, integer=True)
        self._symbols[name] = symbol
        return IndexExpr.symbol(symbol)

    def _array_name(self, array: ir.Value) -> str:
        """Return the base name of the element symbols of ``array``, unique per operand."""
        name = self._array_names.get(array)
        if name is not None:
            return name
        base = array.name or "input"
        taken = set(self._array_names.values())
        name, suffix = base, 0
        while name in taken or any(s.startswith(f"{name}[") for s in self._symbols):
            suffix += 1
            name = f"{base}_{suffix}"
        self._array_names[array] = name
        return name

    def create_symbol_from_array_at_index(
        self,
        array: ir.Value | None,
        position: int,
        default: int | None = None,
    ) -> IndexExpr:
        """Return the element ``position`` of a 1-D integer operand.

        Args:
            array: The operand, or ``None`` if it was omitted.
            position: Index of the element.
            default: Literal used when ``array`` is omitted.

        Returns:
            A literal if the element is known at compile time, a symbol if it
            is only known at run time, or ``UNDEFINED`` if the element does not
            exist (omitted without default, not 1-D, or out of range).
        """
        if array is None:
            if default is None:
                return IndexExpr.undefined()
            return self.create_literal(default)

        if is_constant_array(array):
            assert array.const_value is not None
            if array.const_value.numpy().ndim != 1:
                return IndexExpr.undefined()
            elements = read_constant_ints(array)
            if not 0 <= position < len(elements):
                return IndexExpr.undefined()
            return self.create_literal(elements[position])

        shape = array.shape
        if shape is not None:
            if shape.rank() != 1:
                return IndexExpr.undefined()
            length = shape[0]
            if isinstance(length, int) and not 0 <= position < length:
                return IndexExpr.undefined()
        key = (array, position)
        element = self._element_symbols.get(key)
        if element is None:
            element = self.new_symbol(f"{self._array_name(array)}[{position}]")
            self._element_symbols[key] = element
        return element

    def create_dim_from_shape(self, value: ir.Value, position: int) -> IndexExpr:
        """Return the size of ``value`` along dimension ``position``.

        Static dims become literals, named symbolic dims become the dimension
        symbol of that name and unnamed dims get a fresh dimension symbol.
        """
        shape = value.shape
        if shape is None or not 0 <= position < shape.rank():
            return IndexExpr.undefined()
        dim = shape[position]
        if isinstance(dim, int):
            return self.create_literal(dim)
        if dim.value is None:
            return self.new_symbol(dim=True)
        name = str(dim.value)
        expr = self._dim_symbols.get(name)
        if expr is None:
            expr = self.new_symbol(name, dim=True)
            self._dim_symbols[name] = expr
        return expr

    def record_error(self, message: str) -> None:
        """Report an error attributed to :attr:`node`."""
        self._shape_ctx.record_error(self.node, message)

    def trace(self, label: str, expr: IndexExpr) -> None:
        """Report an intermediate result to the tracer and the debug log."""
        if self._tracer is not None:
            self._tracer(label, expr)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("%s %s: %s", self.node.op_type, label, expr)
