# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Compile-time index expressions and Slice bound resolution for ONNX IR.

Slice bounds (``starts``, ``ends``, ``steps``, ``axes``) may be constants,
omitted, or only known at run time. This package resolves them to per-dimension
start, end, step and output size :class:`IndexExpr` values that are literals
when everything is known and SymPy expressions otherwise.

Example::

    import onnx_ir as ir
    from onnx_index_expr import infer_symbolic_shapes

    model = ir.load("model.onnx")
    model = infer_symbolic_shapes(model)

Resolving the bounds of a single node::

    from onnx_index_expr import IndexExprContext, ShapeInferenceContext, resolve_slice_bounds

    ctx = IndexExprContext(ShapeInferenceContext({"": 17}), node)
    bounds = resolve_slice_bounds(ctx, *node.inputs)
    if bounds is not None:
        print(bounds.output_shape())
"""

from __future__ import annotations

__all__ = [
    # Main API
    "infer_symbolic_shapes",
    "resolve_slice_bounds",
    "SliceBounds",
    "SymbolicShapeInferencePass",
    # Index expressions
    "IndexExpr",
    "IndexExprContext",
    "IndexExprKind",
    "Predicate",
    "add",
    "assign_if",
    "ceil_div",
    "clamp",
    "select",
    "sub",
    "is_constant_array",
    "read_constant_ints",
    # Context and policy
    "OpUsageError",
    "ShapeInferenceContext",
    "ShapeInferenceError",
    "ShapeMergePolicy",
    "check_inputs",
    # Registry
    "OpShapeInferenceRegistry",
    "registry",
]

import onnx_ir as ir
from onnx_index_expr._context import (
    OpUsageError,
    ShapeInferenceContext,
    ShapeInferenceError,
    ShapeMergePolicy,
    check_inputs,
)
from onnx_index_expr._expr_context import (
    IndexExprContext,
    is_constant_array,
    read_constant_ints,
)
from onnx_index_expr._index_expr import (
    IndexExpr,
    IndexExprKind,
    Predicate,
    add,
    assign_if,
    ceil_div,
    clamp,
    select,
    sub,
)
from onnx_index_expr._registry import OpShapeInferenceRegistry, registry
from onnx_index_expr._shape_inference_pass import SymbolicShapeInferencePass
from onnx_index_expr._slice import SliceBounds, resolve_slice_bounds


def infer_symbolic_shapes(
    model: ir.Model,
    *,
    policy: ShapeMergePolicy = "refine",
    warn_on_missing: bool = True,
) -> ir.Model:
    """Perform symbolic shape inference on the model.

    Args:
        model: The model to perform shape inference on.
        policy: How to merge inferred shapes with existing shapes.
        warn_on_missing: If True, log warnings for ops without registered
            shape inference.

    Returns:
        The model with shape inference applied (modified in place).
    """
    return SymbolicShapeInferencePass(
        policy=policy,
        warn_on_missing=warn_on_missing,
    )(model).model


def __set_module() -> None:
    """Set the module of all functions in this module to this public module."""
    global_dict = globals()
    for name in __all__:
        obj = global_dict[name]
        if hasattr(obj, "__module__"):
            obj.__module__ = __name__


__set_module()
