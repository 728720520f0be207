#!/usr/bin/env python
# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""This script prints the resolved bounds of every Slice node in an ONNX model.

Usage:
    python slice_bounds_printer.py <path_to_model> [--no_wrap]

Example:
    python slice_bounds_printer.py model.onnx --no_wrap > slice_bounds.txt
"""

from __future__ import annotations

import argparse

import tabulate

import onnx_ir as ir
from onnx_index_expr import (
    IndexExprContext,
    ShapeInferenceContext,
    SliceBounds,
    resolve_slice_bounds,
)


def _create_dim_rows(node: ir.Node, bounds: SliceBounds) -> list[list[str]]:
    name = node.name or "<unnamed>"
    return [
        [name if axis == 0 else "", str(axis), str(start), str(end), str(step), str(size)]
        for axis, (start, end, step, size) in enumerate(
            zip(bounds.starts, bounds.ends, bounds.steps, bounds.output_dims)
        )
    ]


def _create_header_row() -> list[str]:
    return [
        "Node",
        "Axis",
        "Start",
        "End",
        "Step",
        "Size",
    ]


def main(path: str, wrap: bool) -> None:
    model = ir.load(path)
    shape_ctx = ShapeInferenceContext(model.opset_imports)
    print(f"Opsets: {model.opset_imports}")

    for graph in model.graphs():
        rows = []
        for node in graph:
            if node.op_type != "Slice" or node.domain not in ("", "ai.onnx"):
                continue
            inputs = list(node.inputs) + [None] * (5 - len(node.inputs))
            data, starts, ends, axes, steps = inputs[:5]
            if data is None or starts is None or ends is None:
                continue
            bounds = resolve_slice_bounds(
                IndexExprContext(shape_ctx, node), data, starts, ends, axes, steps
            )
            if bounds is not None:
                rows.extend(_create_dim_rows(node, bounds))
        if not rows:
            continue

        print()
        if graph is model.graph:
            print(f"Graph: {graph.name}")
        else:
            print(f"Subgraph: {graph.name}")
        print(
            tabulate.tabulate(
                rows,
                headers=_create_header_row(),
                maxcolwidths=[20, 5, 30, 30, 20, 30] if wrap else None,
            )
        )

    if shape_ctx.errors:
        print()
        print("Errors:")
        for error in shape_ctx.errors:
            print(f"  {error}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Print resolved Slice bounds of a model.")
    parser.add_argument("path", type=str, help="Path to the ONNX model file.")
    parser.add_argument(
        "--no_wrap", action="store_true", help="Do not wrap long expressions in the output."
    )
    args = parser.parse_args()
    main(args.path, wrap=not args.no_wrap)
