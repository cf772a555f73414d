"""
Computation graph, scheduler, forward executor and backward engine.
"""

from ._backward import (
    BackwardEngine,
    accumulate_gradient,
    backward,
    grad,
    numerical_gradient,
    value_and_grad,
    with_grad,
)
from ._executor import ForwardExecutor, ForwardStats
from ._graph import ComputationGraph
from ._scheduler import Scheduler, priority_order, topological_order

__all__ = [
    BackwardEngine.__name__,
    accumulate_gradient.__name__,
    backward.__name__,
    grad.__name__,
    value_and_grad.__name__,
    with_grad.__name__,
    numerical_gradient.__name__,
    ForwardExecutor.__name__,
    ForwardStats.__name__,
    ComputationGraph.__name__,
    Scheduler.__name__,
    priority_order.__name__,
    topological_order.__name__,
]
