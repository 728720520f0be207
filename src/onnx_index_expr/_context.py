# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Shape inference context, merge policies and error reporting."""

from __future__ import annotations

__all__ = [
    "OpUsageError",
    "ShapeInferenceContext",
    "ShapeInferenceError",
    "ShapeMergePolicy",
    "check_inputs",
]

import dataclasses
import logging
from collections.abc import Mapping, Sequence
from typing import Literal

import onnx_ir as ir

logger = logging.getLogger(__name__)


class OpUsageError(ValueError):
    """Raised when a node is malformed, e.g. a required input is missing."""


def check_inputs(node: ir.Node, *names: str) -> tuple[ir.Value, ...]:
    """Return the leading required inputs of ``node``.

    Args:
        node: The node to check.
        names: Names of the required inputs, in order. Used in error messages.

    Returns:
        The first ``len(names)`` inputs of the node, all non-``None``.

    Raises:
        OpUsageError: If an input is missing or ``None``.
    """
    if len(node.inputs) < len(names):
        raise OpUsageError(
            f"{node.op_type} expects at least {len(names)} inputs "
            f"({', '.join(names)}), got {len(node.inputs)}"
        )
    values = []
    for name, value in zip(names, node.inputs):
        if value is None:
            raise OpUsageError(f"{node.op_type} input {name!r} is required but missing")
        values.append(value)
    return tuple(values)


@dataclasses.dataclass(frozen=True)
class ShapeInferenceError:
    """A recorded error from shape inference.

    Attributes:
        node_name: The name of the node (or ``None`` if unnamed).
        op_type: The operator type (e.g. ``"Slice"``).
        domain: The operator domain.
        message: Human-readable description of the error.
    """

    node_name: str | None
    op_type: str
    domain: str
    message: str

    def __str__(self) -> str:
        op_id = f"{self.domain}::{self.op_type}" if self.domain else self.op_type
        node_desc = f" (node {self.node_name!r})" if self.node_name else ""
        return f"{op_id}{node_desc}: {self.message}"


ShapeMergePolicy = Literal["skip", "override", "refine", "strict"]
"""Policy for merging inferred shapes/dtypes with existing values.

* ``"skip"``: Don't update if shape/dtype already exists.
* ``"override"``: Always replace with inferred shape/dtype.
* ``"refine"``: Only update if inferred is more specific
    (concrete beats symbolic, named symbolic beats None).
* ``"strict"``: Fail if inferred shape/dtype conflicts with existing, and
    raise on recorded errors.
"""


def _is_more_specific(
    inferred_dim: int | ir.SymbolicDim,
    existing_dim: int | ir.SymbolicDim,
) -> bool:
    """Specificity order: concrete int > named symbolic > unknown (None)."""
    if isinstance(inferred_dim, int):
        return not isinstance(existing_dim, int)
    if inferred_dim.value is not None:
        return isinstance(existing_dim, ir.SymbolicDim) and existing_dim.value is None
    return False


class ShapeInferenceContext:
    """State shared by shape inference functions over one model.

    Attributes:
        opset_imports: Mapping from domain to opset version.
        policy: The shape merge policy.
    """

    def __init__(
        self,
        opset_imports: Mapping[str, int] | None = None,
        policy: ShapeMergePolicy = "refine",
    ) -> None:
        """Initialize the shape inference context.

        Args:
            opset_imports: Mapping from ONNX domain to opset version
                (e.g. ``{"": 17}``).  When ``None``, defaults to ``{"": 1}``.
            policy: The shape merge policy to use.
        """
        self.opset_imports: Mapping[str, int] = opset_imports or {"": 1}
        self.policy = policy
        self._errors: list[ShapeInferenceError] = []

    @property
    def opset(self) -> int:
        """The opset version of the default domain."""
        return self.opset_imports.get("", 1)

    def get_opset_version(self, domain: str) -> int:
        if domain in self.opset_imports:
            return self.opset_imports[domain]
        if domain in ("", "ai.onnx"):
            return self.opset
        return 1

    def record_error(self, node: ir.Node, message: str) -> None:
        """Record a shape inference error for a node.

        In strict mode the error is raised immediately as a :class:`ValueError`.
        Otherwise it is kept in :attr:`errors` and logged as a warning.

        Raises:
            ValueError: If the merge policy is ``"strict"``.
        """
        error = ShapeInferenceError(
            node_name=node.name,
            op_type=node.op_type,
            domain=node.domain,
            message=message,
        )
        self._errors.append(error)
        if self.policy == "strict":
            raise ValueError(str(error))
        logger.warning("Shape inference error: %s", error)

    @property
    def errors(self) -> Sequence[ShapeInferenceError]:
        """All errors recorded so far."""
        return self._errors

    def set_shape(self, value: ir.Value, shape: ir.Shape) -> bool:
        """Set the shape of a value according to the merge policy.

        Returns:
            True if the shape was updated, False otherwise.

        Raises:
            ValueError: If policy is ``"strict"`` and the shapes conflict.
        """
        existing = value.shape
        if existing is None or self.policy == "override":
            value.shape = shape
            return True
        if self.policy == "skip":
            return False
        if existing.rank() != shape.rank():
            if self.policy == "strict":
                raise ValueError(
                    f"Shape rank mismatch for {value.name}: "
                    f"existing {existing.rank()} vs inferred {shape.rank()}"
                )
            return False

        new_dims: list[int | ir.SymbolicDim] = []
        modified = False
        for i, (e_dim, i_dim) in enumerate(zip(existing.dims, shape.dims)):
            if self.policy == "strict" and isinstance(e_dim, int) and isinstance(i_dim, int):
                if e_dim != i_dim:
                    raise ValueError(
                        f"Shape conflict for {value.name} at dim {i}: "
                        f"existing {e_dim} vs inferred {i_dim}"
                    )
            if _is_more_specific(i_dim, e_dim):
                new_dims.append(i_dim)
                modified = True
            else:
                new_dims.append(e_dim)
        if modified:
            value.shape = ir.Shape(new_dims)
        return modified

    def set_dtype(self, value: ir.Value, dtype: ir.DataType) -> bool:
        """Set the dtype of a value according to the merge policy.

        Returns:
            True if the dtype was updated, False otherwise.

        Raises:
            ValueError: If policy is ``"strict"`` and the dtypes conflict.
        """
        existing = value.dtype
        if existing is None or self.policy == "override":
            value.dtype = dtype
            return True
        if self.policy == "strict" and existing != dtype:
            raise ValueError(
                f"Dtype conflict for {value.name}: existing {existing} vs inferred {dtype}"
            )
        return False

    def set_shape_and_dtype(
        self,
        value: ir.Value,
        shape: ir.Shape | None = None,
        dtype: ir.DataType | None = None,
    ) -> bool:
        """Set both shape and dtype of a value; ``None`` skips that part."""
        modified = False
        if shape is not None:
            modified = self.set_shape(value, shape) or modified
        if dtype is not None:
            modified = self.set_dtype(value, dtype) or modified
        return modified
