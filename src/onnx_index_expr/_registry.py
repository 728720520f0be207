# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Registry for shape inference functions."""

from __future__ import annotations

__all__ = [
    "OpShapeInferenceRegistry",
    "ShapeInferenceFunc",
    "registry",
]

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import onnx_ir as ir
    from onnx_index_expr._context import ShapeInferenceContext

logger = logging.getLogger(__name__)

ShapeInferenceFunc = Callable[["ShapeInferenceContext", "ir.Node"], None]


class OpShapeInferenceRegistry:
    """Registry of shape inference functions keyed by ``(domain, op_type)``.

    Each function is registered with the first opset version it applies to.
    A lookup returns the function with the highest ``since_version`` that does
    not exceed the requested version.

    Example::

        from onnx_index_expr import registry

        @registry.register("", "Slice", since_version=10)
        def infer_slice(ctx, node):
            ...

        func = registry.get("", "Slice", version=13)
    """

    def __init__(self) -> None:
        # {(domain, op_type): [(since_version, func), ...]} sorted descending
        self._funcs: dict[tuple[str, str], list[tuple[int, ShapeInferenceFunc]]] = {}

    def register(
        self,
        domain: str,
        op_type: str,
        since_version: int = 1,
    ) -> Callable[[ShapeInferenceFunc], ShapeInferenceFunc]:
        """Return a decorator registering a shape inference function.

        Args:
            domain: ONNX domain (e.g., ``""``, ``"com.microsoft"``).
            op_type: Operator type (e.g., ``"Slice"``).
            since_version: First opset version the function applies to.
        """

        def decorator(func: ShapeInferenceFunc) -> ShapeInferenceFunc:
            entries = self._funcs.setdefault((domain, op_type), [])
            entries.append((since_version, func))
            entries.sort(key=lambda x: x[0], reverse=True)
            logger.debug(
                "Registered shape inference for %s::%s (since_version=%s)",
                domain or "ai.onnx",
                op_type,
                since_version,
            )
            return func

        return decorator

    def get(self, domain: str, op_type: str, version: int) -> ShapeInferenceFunc | None:
        """Get the shape inference function for an operator at an opset version."""
        for since_version, func in self._funcs.get((domain, op_type), ()):
            if since_version <= version:
                return func
        return None

    def has(self, domain: str, op_type: str) -> bool:
        """Check if any shape inference function is registered for an operator."""
        return (domain, op_type) in self._funcs

    def clear(self) -> None:
        """Clear all registered functions (mainly for testing)."""
        self._funcs.clear()


registry = OpShapeInferenceRegistry()
