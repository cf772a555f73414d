"""
Graph- and execution-related exceptions and warnings for neurograd.

This module defines the error taxonomy used by the computation graph, the
scheduler, the forward executor and the backward engine.

Taxonomy
--------
- Structural errors (`GraphStructureError` and subclasses) signal a malformed
  graph or a caller bug: unknown nodes, cycles, unsupported operation types,
  missing intermediate outputs. They are always fatal, abort the current call
  and are never retried.
- Numeric warnings (`NumericWarning` and subclasses) signal recoverable
  numerical conditions such as division by zero, the logarithm of a
  non-positive value or an irreconcilable gradient shape. They are emitted via
  `warnings.warn` and execution continues with a best-effort substitute.
- `MissingDerivativeWarning` signals that an operation has no registered
  backward rule; the corresponding branch of the backward pass does not
  propagate.

Every structural error raised while processing a node carries the node id
and the operation type so callers can locate the failure.
"""

from __future__ import annotations

from typing import Any, Optional


class GraphStructureError(RuntimeError):
    """
    Base class for fatal errors caused by a malformed graph or misuse.

    Attributes
    ----------
    node_id : Optional[int]
        Id of the node that triggered the error, if known.
    op_type : Optional[str]
        Operation type of the triggering node, if known.
    """

    def __init__(
        self,
        message: str,
        *,
        node_id: Optional[int] = None,
        op_type: Optional[Any] = None,
    ) -> None:
        """
        Initialize the error.

        Parameters
        ----------
        message : str
            Human-readable description of the failure.
        node_id : Optional[int], optional
            Id of the node that triggered the error.
        op_type : Optional[Any], optional
            Operation type (or node kind) of the triggering node. Stored as
            its string value.
        """
        details = []
        if node_id is not None:
            details.append(f"node={node_id}")
        if op_type is not None:
            details.append(f"op_type={_op_name(op_type)}")
        suffix = f" ({', '.join(details)})" if details else ""
        super().__init__(f"{message}{suffix}")
        self.node_id = node_id
        self.op_type = None if op_type is None else _op_name(op_type)


class NodeNotFoundError(GraphStructureError):
    """
    Raised when a node id or name does not exist in the graph.

    This covers both accessor misuse (`get_node`, `get_node_by_name`) and
    operation creation with an input id that was never registered.
    """


class CycleDetectedError(GraphStructureError):
    """
    Raised by the scheduler when the dependency structure contains a cycle.

    Cycles cannot be created through the graph-building API; they can only
    appear after a graph rewrite that bypassed validation.
    """


class UnsupportedOperationError(GraphStructureError):
    """
    Raised when an operation type is unknown or has no forward kernel.
    """


class MissingInputOutputError(GraphStructureError):
    """
    Raised when an operation node is executed before one of its inputs has
    produced an output. This indicates an ordering bug.

    Attributes
    ----------
    input_id : Optional[int]
        Id of the input node whose output was missing.
    """

    def __init__(
        self,
        message: str,
        *,
        node_id: Optional[int] = None,
        op_type: Optional[Any] = None,
        input_id: Optional[int] = None,
    ) -> None:
        super().__init__(message, node_id=node_id, op_type=op_type)
        self.input_id = input_id


class MissingOutputError(GraphStructureError):
    """
    Raised when a node's output is requested before it has been computed.
    """


class ConcurrentExecutionError(GraphStructureError):
    """
    Raised when a graph is driven by a second forward/backward call while a
    previous call on the same graph is still running.
    """


class IncompleteRegistryError(GraphStructureError):
    """
    Raised when an operation type lacks a forward kernel or a backward rule.

    Attributes
    ----------
    missing_forward : tuple[str, ...]
        Operation types without a forward kernel.
    missing_backward : tuple[str, ...]
        Operation types without a backward rule.
    """

    def __init__(
        self, missing_forward: tuple[str, ...], missing_backward: tuple[str, ...]
    ) -> None:
        super().__init__(
            "Operation coverage is incomplete: "
            f"missing forward={list(missing_forward)}, "
            f"missing backward={list(missing_backward)}"
        )
        self.missing_forward = missing_forward
        self.missing_backward = missing_backward


class GradientNotFoundError(GraphStructureError):
    """
    Raised by `GradientRegistry.lookup` for an unregistered operation type.
    """


class OperationExecutionError(GraphStructureError):
    """
    Raised when a forward kernel fails while executing a node.

    The original exception is chained as `__cause__`.
    """


class GradientComputationError(GraphStructureError):
    """
    Raised when a backward rule fails while processing a node.

    The original exception is chained as `__cause__`.
    """


class NumericWarning(RuntimeWarning):
    """
    Warning for recoverable numerical conditions.

    Emitted for division by zero and logarithms of non-positive values; the
    affected elements are replaced by +/-inf or NaN.
    """


class GradientShapeWarning(NumericWarning):
    """
    Warning emitted when a gradient contribution cannot be reconciled with
    the shape of the node it targets. The contribution is dropped.
    """


class MissingDerivativeWarning(RuntimeWarning):
    """
    Warning emitted when the backward pass reaches an operation that has no
    registered backward rule. Gradients do not propagate through it.
    """


def _op_name(op_type: Any) -> str:
    return str(getattr(op_type, "value", op_type))
