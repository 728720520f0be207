# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Tests for IndexExprContext."""

from __future__ import annotations

import logging
import unittest

import numpy as np
import sympy

import onnx_ir as ir
from onnx_index_expr._context import ShapeInferenceContext
from onnx_index_expr._expr_context import (
    IndexExprContext,
    is_constant_array,
    read_constant_ints,
)
from onnx_index_expr._index_expr import IndexExpr
from onnx_index_expr._testing import const_value, runtime_value


def _make_ctx(policy="refine", tracer=None):
    node = ir.Node("", "Slice", inputs=[], num_outputs=1, name="slice")
    shape_ctx = ShapeInferenceContext({"": 17}, policy=policy)
    return IndexExprContext(shape_ctx, node, tracer=tracer), shape_ctx


class ConstantArrayTest(unittest.TestCase):
    def test_constant(self):
        value = const_value([1, -2, 3], "c")
        self.assertTrue(is_constant_array(value))
        self.assertEqual(read_constant_ints(value), [1, -2, 3])

    def test_runtime(self):
        value = runtime_value("r", 3)
        self.assertFalse(is_constant_array(value))
        self.assertFalse(is_constant_array(None))
        with self.assertRaises(ValueError):
            read_constant_ints(value)


class CreateSymbolFromArrayTest(unittest.TestCase):
    def test_constant_element_is_literal(self):
        ctx, _ = _make_ctx()
        result = ctx.create_symbol_from_array_at_index(const_value([4, 5, 6]), 1)
        self.assertEqual(result, IndexExpr.literal(5))

    def test_constant_out_of_range_is_undefined(self):
        ctx, _ = _make_ctx()
        result = ctx.create_symbol_from_array_at_index(const_value([4]), 1)
        self.assertTrue(result.is_undefined())

    def test_constant_not_1d_is_undefined(self):
        ctx, _ = _make_ctx()
        value = ir.Value(name="m", shape=ir.Shape([2, 2]), type=ir.TensorType(ir.DataType.INT64))
        value.const_value = ir.Tensor(np.zeros((2, 2), dtype=np.int64), name="m")
        self.assertTrue(ctx.create_symbol_from_array_at_index(value, 0).is_undefined())

    def test_absent_array_uses_default(self):
        ctx, _ = _make_ctx()
        self.assertEqual(
            ctx.create_symbol_from_array_at_index(None, 3, default=1), IndexExpr.literal(1)
        )
        self.assertTrue(ctx.create_symbol_from_array_at_index(None, 3).is_undefined())

    def test_runtime_element_is_symbol(self):
        ctx, _ = _make_ctx()
        result = ctx.create_symbol_from_array_at_index(runtime_value("starts", 2), 1)
        self.assertTrue(result.is_symbol())
        self.assertEqual(str(result), "starts[1]")
        self.assertIn("starts[1]", ctx.symbols)

    def test_runtime_element_beyond_static_length_is_undefined(self):
        ctx, _ = _make_ctx()
        result = ctx.create_symbol_from_array_at_index(runtime_value("starts", 2), 2)
        self.assertTrue(result.is_undefined())

    def test_runtime_element_with_unknown_length_is_symbol(self):
        ctx, _ = _make_ctx()
        result = ctx.create_symbol_from_array_at_index(runtime_value("ends"), 5)
        self.assertTrue(result.is_symbol())

    def test_runtime_array_with_wrong_rank_is_undefined(self):
        ctx, _ = _make_ctx()
        value = ir.Value(name="m", shape=ir.Shape([2, 2]), type=ir.TensorType(ir.DataType.INT64))
        self.assertTrue(ctx.create_symbol_from_array_at_index(value, 0).is_undefined())

    def test_same_element_reuses_symbol(self):
        ctx, _ = _make_ctx()
        value = runtime_value("starts", 2)
        first = ctx.create_symbol_from_array_at_index(value, 0)
        second = ctx.create_symbol_from_array_at_index(value, 0)
        self.assertEqual(first, second)
        self.assertEqual(len(ctx.symbols), 1)

    def test_unnamed_arrays_get_distinct_symbols(self):
        ctx, _ = _make_ctx()
        first = ctx.create_symbol_from_array_at_index(runtime_value(None, 1), 0)
        second = ctx.create_symbol_from_array_at_index(runtime_value(None, 1), 0)
        self.assertNotEqual(first, second)
        self.assertEqual((str(first), str(second)), ("input[0]", "input_1[0]"))

    def test_same_named_arrays_get_distinct_symbols(self):
        ctx, _ = _make_ctx()
        first = ctx.create_symbol_from_array_at_index(runtime_value("x", 2), 0)
        second = ctx.create_symbol_from_array_at_index(runtime_value("x", 2), 0)
        self.assertNotEqual(first, second)

    def test_array_symbols_avoid_dim_names(self):
        ctx, _ = _make_ctx()
        data = ir.Value(name="data", shape=ir.Shape(["s[0]"]))
        dim = ctx.create_dim_from_shape(data, 0)
        element = ctx.create_symbol_from_array_at_index(runtime_value("s", 1), 0)
        self.assertNotEqual(dim, element)
        self.assertEqual(str(element), "s_1[0]")


class CreateDimTest(unittest.TestCase):
    def test_static_dim(self):
        ctx, _ = _make_ctx()
        data = ir.Value(name="data", shape=ir.Shape([3, "N", None]))
        self.assertEqual(ctx.create_dim_from_shape(data, 0), IndexExpr.literal(3))

    def test_named_dim(self):
        ctx, _ = _make_ctx()
        data = ir.Value(name="data", shape=ir.Shape([3, "N", None]))
        result = ctx.create_dim_from_shape(data, 1)
        self.assertTrue(result.is_symbol())
        self.assertEqual(result.to_sympy(), sympy.Symbol("N", integer=True, nonnegative=True))

    def test_named_dims_share_a_symbol(self):
        ctx, _ = _make_ctx()
        data = ir.Value(name="data", shape=ir.Shape(["N", "N"]))
        self.assertEqual(ctx.create_dim_from_shape(data, 0), ctx.create_dim_from_shape(data, 1))
        self.assertEqual(len(ctx.symbols), 1)

    def test_unnamed_dims_get_distinct_symbols(self):
        ctx, _ = _make_ctx()
        data = ir.Value(name="data", shape=ir.Shape([None, None]))
        first = ctx.create_dim_from_shape(data, 0)
        second = ctx.create_dim_from_shape(data, 1)
        self.assertTrue(first.is_symbol())
        self.assertNotEqual(first, second)
        self.assertEqual(str(first), "unk__0")

    def test_unknown_rank_is_undefined(self):
        ctx, _ = _make_ctx()
        data = ir.Value(name="data")
        self.assertTrue(ctx.create_dim_from_shape(data, 0).is_undefined())


class ErrorAndTraceTest(unittest.TestCase):
    def test_record_error_is_attributed_to_node(self):
        ctx, shape_ctx = _make_ctx()
        ctx.record_error("bad slice")
        self.assertEqual(len(shape_ctx.errors), 1)
        self.assertEqual(shape_ctx.errors[0].node_name, "slice")
        self.assertEqual(shape_ctx.errors[0].message, "bad slice")

    def test_record_error_raises_in_strict_mode(self):
        ctx, _ = _make_ctx(policy="strict")
        with self.assertRaises(ValueError):
            ctx.record_error("bad slice")

    def test_trace_calls_tracer(self):
        traced = []
        ctx, _ = _make_ctx(tracer=lambda label, expr: traced.append((label, expr)))
        ctx.trace("start", IndexExpr.literal(1))
        self.assertEqual(traced, [("start", IndexExpr.literal(1))])

    def test_trace_logs_at_debug_level(self):
        ctx, _ = _make_ctx()
        with self.assertLogs("onnx_index_expr._expr_context", level=logging.DEBUG) as cm:
            ctx.trace("start", IndexExpr.literal(1))
        self.assertIn("start: 1", cm.output[0])


if __name__ == "__main__":
    unittest.main()
