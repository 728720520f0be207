# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Common test infrastructure for shape inference tests."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

import onnx_ir as ir
from onnx_index_expr._context import ShapeInferenceContext, ShapeMergePolicy


def ts(
    dtype: ir.DataType | None = None,
    shape: Sequence[int | str | None] | None = None,
) -> ir.TypeAndShape:
    """Create a :class:`ir.TypeAndShape` from a dtype and a shape list.

    Examples::

        ts(ir.DataType.FLOAT, [3, 4])          # Tensor(FLOAT), Shape([3, 4])
        ts(ir.DataType.FLOAT, ["batch", 128])  # Tensor(FLOAT), Shape([batch, 128])
        ts(ir.DataType.FLOAT)                  # Tensor(FLOAT), shape=None
    """
    type_ = ir.TensorType(dtype) if dtype is not None else None
    shape_ = ir.Shape(shape) if shape is not None else None
    return ir.TypeAndShape(type_, shape_)


def const_value(values: Sequence[int], name: str = "const") -> ir.Value:
    """Create a 1-D INT64 value that is known at compile time."""
    array = np.array(values, dtype=np.int64)
    value = ir.Value(
        name=name,
        shape=ir.Shape([len(values)]),
        type=ir.TensorType(ir.DataType.INT64),
    )
    value.const_value = ir.Tensor(array, name=name)
    return value


def runtime_value(name: str | None, length: int | str | None = None) -> ir.Value:
    """Create a 1-D INT64 value only known at run time."""
    return ir.Value(
        name=name,
        shape=ir.Shape([length]),
        type=ir.TensorType(ir.DataType.INT64),
    )


def slice_node(
    data: ir.Value,
    starts: ir.Value,
    ends: ir.Value,
    axes: ir.Value | None = None,
    steps: ir.Value | None = None,
    *,
    name: str = "slice",
) -> ir.Node:
    """Create a Slice node, dropping trailing omitted inputs."""
    inputs: list[ir.Value | None] = [data, starts, ends, axes, steps]
    while inputs[-1] is None:
        inputs.pop()
    return ir.Node("", "Slice", inputs=inputs, outputs=[ir.Value(name="output")], name=name)


def run_shape_inference_with_values(
    domain: str,
    op_type: str,
    inputs: Sequence[ir.Value | None],
    *,
    opset_version: int,
    num_outputs: int = 1,
    policy: ShapeMergePolicy = "override",
) -> list[ir.TypeAndShape]:
    """Run the registered shape inference function for an op on the given values.

    Returns:
        A list of :class:`ir.TypeAndShape`, one per output.
    """
    from onnx_index_expr._registry import registry

    output_values = [ir.Value(name=f"output_{i}") for i in range(num_outputs)]
    node = ir.Node(domain, op_type, inputs=inputs, outputs=output_values)

    opset_imports = {domain: opset_version} if domain else {"": opset_version}
    ctx = ShapeInferenceContext(opset_imports, policy=policy)

    func = registry.get(domain, op_type, version=opset_version)
    if func is None:
        raise ValueError(
            f"No shape inference registered for {domain}::{op_type} version {opset_version}"
        )
    func(ctx, node)

    return [ir.TypeAndShape(v.type, v.shape) for v in output_values]


def run_shape_inference(
    domain: str,
    op_type: str,
    inputs: Sequence[ir.TypeAndShape],
    *,
    opset_version: int,
    num_outputs: int = 1,
) -> list[ir.TypeAndShape]:
    """Like :func:`run_shape_inference_with_values` but builds inputs from type/shape specs."""
    input_values = [
        ir.Value(name=f"input_{i}", shape=spec.shape, type=spec.type)
        for i, spec in enumerate(inputs)
    ]
    return run_shape_inference_with_values(
        domain, op_type, input_values, opset_version=opset_version, num_outputs=num_outputs
    )
