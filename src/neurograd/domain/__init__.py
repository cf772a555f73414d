"""
Domain layer: backend-agnostic contracts of the computation graph.
"""

from ._errors import (
    GraphStructureError,
    NodeNotFoundError,
    CycleDetectedError,
    UnsupportedOperationError,
    MissingInputOutputError,
    MissingOutputError,
    ConcurrentExecutionError,
    IncompleteRegistryError,
    GradientNotFoundError,
    OperationExecutionError,
    GradientComputationError,
    NumericWarning,
    GradientShapeWarning,
    MissingDerivativeWarning,
)
from ._execution import (
    ExecutionOptions,
    ExecutionResult,
    ExecutionStats,
    ExecutionStrategy,
    PerformanceSummary,
)
from ._hooks import ExecutionHook, GraphOptimizer
from ._node import Edge, Node, NodeMetadata
from ._op_type import GradientArity, NodeKind, OpType
from ._tensor import ITensor
from .device._device import Device, DeviceType

__all__ = [
    GraphStructureError.__name__,
    NodeNotFoundError.__name__,
    CycleDetectedError.__name__,
    UnsupportedOperationError.__name__,
    MissingInputOutputError.__name__,
    MissingOutputError.__name__,
    ConcurrentExecutionError.__name__,
    IncompleteRegistryError.__name__,
    GradientNotFoundError.__name__,
    OperationExecutionError.__name__,
    GradientComputationError.__name__,
    NumericWarning.__name__,
    GradientShapeWarning.__name__,
    MissingDerivativeWarning.__name__,
    ExecutionOptions.__name__,
    ExecutionResult.__name__,
    ExecutionStats.__name__,
    ExecutionStrategy.__name__,
    PerformanceSummary.__name__,
    ExecutionHook.__name__,
    GraphOptimizer.__name__,
    Edge.__name__,
    Node.__name__,
    NodeMetadata.__name__,
    GradientArity.__name__,
    NodeKind.__name__,
    OpType.__name__,
    ITensor.__name__,
    Device.__name__,
    DeviceType.__name__,
]
