"""
neurograd: dynamic computation graphs with reverse-mode differentiation.

Build a graph from leaves (`input`, `constant`, `variable`) and operation
nodes, mark its outputs, then `execute` it, optionally computing gradients.
"""

from .domain import (
    ConcurrentExecutionError,
    CycleDetectedError,
    Device,
    Edge,
    ExecutionHook,
    ExecutionOptions,
    ExecutionResult,
    ExecutionStats,
    ExecutionStrategy,
    GradientArity,
    GradientComputationError,
    GradientNotFoundError,
    GradientShapeWarning,
    GraphOptimizer,
    GraphStructureError,
    IncompleteRegistryError,
    ITensor,
    MissingDerivativeWarning,
    MissingInputOutputError,
    MissingOutputError,
    Node,
    NodeKind,
    NodeNotFoundError,
    NumericWarning,
    OperationExecutionError,
    OpType,
    PerformanceSummary,
    UnsupportedOperationError,
)
from .infrastructure.gradients import (
    GradientEntry,
    GradientRegistry,
    build_default_gradient_registry,
    verify_coverage,
)
from .infrastructure.graph import (
    ComputationGraph,
    backward,
    grad,
    numerical_gradient,
    value_and_grad,
    with_grad,
)
from .infrastructure.ops import (
    OperationLibrary,
    OpPerformance,
    OpResult,
    build_default_operation_library,
)

__version__ = "0.1.0"

__all__ = [
    ComputationGraph.__name__,
    backward.__name__,
    grad.__name__,
    value_and_grad.__name__,
    with_grad.__name__,
    numerical_gradient.__name__,
    OperationLibrary.__name__,
    OpPerformance.__name__,
    OpResult.__name__,
    build_default_operation_library.__name__,
    GradientEntry.__name__,
    GradientRegistry.__name__,
    build_default_gradient_registry.__name__,
    verify_coverage.__name__,
    ExecutionHook.__name__,
    ExecutionOptions.__name__,
    ExecutionResult.__name__,
    ExecutionStats.__name__,
    ExecutionStrategy.__name__,
    PerformanceSummary.__name__,
    GraphOptimizer.__name__,
    Device.__name__,
    Edge.__name__,
    Node.__name__,
    NodeKind.__name__,
    OpType.__name__,
    GradientArity.__name__,
    ITensor.__name__,
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
]
