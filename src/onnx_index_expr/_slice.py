# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Bound resolution and shape inference for the Slice operator.

Spec: https://onnx.ai/onnx/operators/onnx__Slice.html
"""

from __future__ import annotations

__all__ = [
    "INT32_MAX",
    "INT32_MIN",
    "SliceBounds",
    "infer_slice",
    "resolve_slice_bounds",
]

import dataclasses
import logging
from collections.abc import Sequence
from typing import NamedTuple

import sympy

import onnx_ir as ir
from onnx_index_expr import _context, _registry
from onnx_index_expr._expr_context import (
    IndexExprContext,
    is_constant_array,
    read_constant_ints,
)
from onnx_index_expr._index_expr import (
    IndexExpr,
    Predicate,
    add,
    assign_if,
    ceil_div,
    clamp,
    select,
    sub,
)

logger = logging.getLogger(__name__)

# ONNX encodes unbounded slice ends with the int32 extremes, whatever the index type.
INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1


class _DimBounds(NamedTuple):
    start: IndexExpr
    end: IndexExpr
    step: IndexExpr
    output_dim: IndexExpr


def _to_dim(expr: IndexExpr) -> int | ir.SymbolicDim:
    if expr.is_literal():
        return expr.get_literal()
    sym = expr.to_sympy()
    if sym.is_Integer:
        return int(sym)
    if isinstance(sym, sympy.Symbol):
        return ir.SymbolicDim(sym.name)
    # Deferred dims keep the expression tree; its text form may not be re-parsable
    return ir.SymbolicDim(sym)


@dataclasses.dataclass(frozen=True)
class SliceBounds:
    """Resolved bounds of a Slice, one entry per dimension of the sliced data.

    Attributes:
        starts: First index taken along each dimension.
        ends: Exclusive end index along each dimension.
        steps: Stride along each dimension.
        output_dims: Size of the output along each dimension.
    """

    starts: tuple[IndexExpr, ...]
    ends: tuple[IndexExpr, ...]
    steps: tuple[IndexExpr, ...]
    output_dims: tuple[IndexExpr, ...]

    def output_shape(self) -> ir.Shape:
        """Output dims as an :class:`ir.Shape`; deferred dims become symbolic dims."""
        return ir.Shape([_to_dim(dim) for dim in self.output_dims])


def _normalize_axes(
    ctx: IndexExprContext, axes: ir.Value | None, data_rank: int
) -> list[int] | None:
    if axes is None:
        return list(range(data_rank))
    if not is_constant_array(axes):
        ctx.record_error("Axes must be known at compile time")
        return None
    normalized = []
    for axis in read_constant_ints(axes):
        normalized_axis = axis + data_rank if axis < 0 else axis
        if not 0 <= normalized_axis < data_rank:
            ctx.record_error(f"Axes contains an out-of-bound index: {axis}")
            return None
        normalized.append(normalized_axis)
    return normalized


def _resolve_axis(
    ctx: IndexExprContext,
    starts: ir.Value,
    ends: ir.Value,
    steps: ir.Value | None,
    position: int,
    axis: int,
    dim_input: IndexExpr,
) -> _DimBounds | None:
    """Resolve the bounds of one sliced axis from slot ``position`` of the parameters."""
    start_input = ctx.create_symbol_from_array_at_index(starts, position)
    if start_input.is_undefined():
        ctx.record_error(f"start input parameter could not be processed for axis {axis}")
        return None
    ctx.trace("start input", start_input)

    end_input = ctx.create_symbol_from_array_at_index(ends, position)
    if end_input.is_undefined():
        ctx.record_error(f"end input parameter could not be processed for axis {axis}")
        return None
    ctx.trace("end input", end_input)

    step_input = ctx.create_symbol_from_array_at_index(steps, position, default=1)
    if step_input.is_undefined():
        ctx.record_error(f"step input parameter could not be processed for axis {axis}")
        return None
    if step_input.is_literal():
        if step_input.get_literal() == 0:
            ctx.record_error(f"Step input parameter cannot be zero for axis {axis}")
            return None
    else:
        logger.debug("Step for axis %d is only known at run time; zero is not checked", axis)
    ctx.trace("step input", step_input)
    ctx.trace("dim input", dim_input)

    # start < 0 ? start + dim : start, then clamp to [0, dim - 1] or [0, dim]
    start_pos = select(start_input, Predicate.SLT, 0, add(start_input, dim_input), start_input)
    start_final = select(
        step_input,
        Predicate.SLT,
        0,
        clamp(start_pos, 0, sub(dim_input, 1)),
        clamp(start_pos, 0, dim_input),
    )
    ctx.trace("start final", start_final)

    # end < 0 ? end + dim : end, with saturation of the int32 extremes
    end_pos = select(end_input, Predicate.SLT, 0, add(end_input, dim_input), end_input)
    end_pos = assign_if(end_pos, end_input, Predicate.SLE, INT32_MIN, -1)
    end_pos = assign_if(end_pos, end_input, Predicate.SGE, INT32_MAX, dim_input)
    end_final = select(
        step_input,
        Predicate.SLT,
        0,
        clamp(end_pos, -1, dim_input),
        clamp(end_pos, 0, dim_input),
    )
    ctx.trace("end final", end_final)

    output_dim = ceil_div(sub(end_final, start_final), step_input)
    output_dim = assign_if(output_dim, output_dim, Predicate.SLT, 0, 0)
    ctx.trace("output dim final", output_dim)

    return _DimBounds(start_final, end_final, step_input, output_dim)


def resolve_slice_bounds(
    ctx: IndexExprContext,
    data: ir.Value,
    starts: ir.Value,
    ends: ir.Value,
    axes: ir.Value | None = None,
    steps: ir.Value | None = None,
) -> SliceBounds | None:
    """Resolve start, end, step and output size for every dimension of ``data``.

    Dimensions named by ``axes`` (all dimensions when ``axes`` is omitted) are
    computed from the matching slots of ``starts``, ``ends`` and ``steps``
    following NumPy slicing rules. The other dimensions pass through unsliced.

    Args:
        ctx: Expression context of the Slice node. Errors are reported to it.
        data: The sliced tensor. Its rank must be known.
        starts: 1-D starting indices.
        ends: 1-D exclusive ending indices.
        axes: 1-D axes the parameters apply to, or ``None``. Must be constant.
        steps: 1-D steps, or ``None`` for all ones.

    Returns:
        The resolved bounds, or ``None`` if resolution failed. Every failure is
        reported through :meth:`IndexExprContext.record_error`.
    """
    if data.shape is None:
        ctx.record_error("Input data must have a known rank")
        return None
    data_rank = data.shape.rank()

    normalized_axes = _normalize_axes(ctx, axes, data_rank)
    if normalized_axes is None:
        return None

    dims = [ctx.create_dim_from_shape(data, i) for i in range(data_rank)]
    resolved: list[_DimBounds | None] = [None] * data_rank
    for position, axis in enumerate(normalized_axes):
        bounds = _resolve_axis(ctx, starts, ends, steps, position, axis, dims[axis])
        if bounds is None:
            return None
        resolved[axis] = bounds

    # Dimensions not named by axes are taken whole
    full: list[_DimBounds] = []
    for axis, bounds in enumerate(resolved):
        if bounds is None:
            bounds = _DimBounds(
                ctx.create_literal(0), dims[axis], ctx.create_literal(1), dims[axis]
            )
        ctx.trace(f"dim {axis} output", bounds.output_dim)
        full.append(bounds)

    return SliceBounds(
        starts=tuple(b.start for b in full),
        ends=tuple(b.end for b in full),
        steps=tuple(b.step for b in full),
        output_dims=tuple(b.output_dim for b in full),
    )


def _optional_input(inputs: Sequence[ir.Value | None], index: int) -> ir.Value | None:
    return inputs[index] if len(inputs) > index else None


@_registry.registry.register("", "Slice", since_version=10)
def infer_slice(ctx: _context.ShapeInferenceContext, node: ir.Node) -> None:
    """Infer shape and dtype for Slice operator."""
    (data, starts, ends) = _context.check_inputs(node, "data", "starts", "ends")
    if len(node.outputs) == 0:
        return

    output_shape: ir.Shape | None = None
    if data.shape is not None:
        bounds = resolve_slice_bounds(
            IndexExprContext(ctx, node),
            data,
            starts,
            ends,
            axes=_optional_input(node.inputs, 3),
            steps=_optional_input(node.inputs, 4),
        )
        if bounds is not None:
            output_shape = bounds.output_shape()

    ctx.set_shape_and_dtype(node.outputs[0], output_shape, data.dtype)
