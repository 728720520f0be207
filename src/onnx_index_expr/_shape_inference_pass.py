# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Symbolic shape inference pass."""

from __future__ import annotations

__all__ = [
    "SymbolicShapeInferencePass",
]

import logging

import onnx_ir as ir
from onnx_index_expr import _context, _registry

logger = logging.getLogger(__name__)


class SymbolicShapeInferencePass(ir.passes.InPlacePass):
    """Pass that applies the registered shape inference functions to a model.

    Nodes are visited in topological order in the main graph and every
    subgraph. One :class:`~onnx_index_expr.ShapeInferenceContext` is shared by
    all nodes of a run, while each Slice gets its own index expression context,
    so symbols never leak between nodes.

    A Slice whose bounds cannot be resolved (zero literal step, runtime or
    out-of-range axes, missing parameter slots) keeps its output dtype but
    gets no output shape; the reason is kept in :attr:`errors`. Slices with
    runtime bounds get symbolic dims that carry the deferred SymPy expression.
    Exceptions raised by an inference function are logged and the node is
    skipped, except under the ``"strict"`` policy where they propagate.

    Attributes:
        policy: How inferred shapes merge with existing ones.
        warn_on_missing: Whether op types without a registered function are
            logged.
        errors: Errors recorded during the last run, one per failed node.

    Example::

        import onnx_ir as ir
        from onnx_index_expr import SymbolicShapeInferencePass

        pass_ = SymbolicShapeInferencePass()
        result = pass_(ir.load("model.onnx"))
        for error in pass_.errors:
            print(error)
    """

    def __init__(
        self,
        policy: _context.ShapeMergePolicy = "refine",
        warn_on_missing: bool = True,
    ) -> None:
        """Initialize the pass.

        Args:
            policy: How to merge inferred shapes with existing shapes.
            warn_on_missing: If True, log a warning once per op type without a
                registered shape inference function.
        """
        super().__init__()
        self.policy = policy
        self.warn_on_missing = warn_on_missing
        self.errors: list[_context.ShapeInferenceError] = []

    def call(self, model: ir.Model) -> ir.passes.PassResult:
        ctx = _context.ShapeInferenceContext(model.opset_imports, policy=self.policy)
        modified = False
        for graph in model.graphs():
            modified = self._process_graph(ctx, graph) or modified
        self.errors = list(ctx.errors)
        return ir.passes.PassResult(model, modified)

    def _process_graph(self, ctx: _context.ShapeInferenceContext, graph: ir.Graph) -> bool:
        modified = False
        warned_ops: set[tuple[str, str]] = set()

        for node in graph:
            domain = node.domain or ""
            infer_func = _registry.registry.get(
                domain, node.op_type, version=ctx.get_opset_version(domain)
            )
            if infer_func is None:
                key = (domain, node.op_type)
                if self.warn_on_missing and key not in warned_ops:
                    logger.warning(
                        "No shape inference registered for %s::%s",
                        domain or "ai.onnx",
                        node.op_type,
                    )
                    warned_ops.add(key)
                continue

            old_states = [
                (out.shape.copy() if out.shape is not None else None, out.dtype)
                for out in node.outputs
            ]
            try:
                infer_func(ctx, node)
            except Exception as e:  # pylint: disable=broad-exception-caught
                if self.policy == "strict":
                    raise
                logger.warning(
                    "Shape inference failed for %s::%s: %s",
                    domain or "ai.onnx",
                    node.op_type,
                    e,
                )
                continue
            for out, (old_shape, old_dtype) in zip(node.outputs, old_states):
                if out.shape != old_shape or out.dtype != old_dtype:
                    modified = True

        return modified
