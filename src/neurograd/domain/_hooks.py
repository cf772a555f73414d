"""
Execution lifecycle hooks and graph optimizer interfaces.

`ExecutionHook` is a base class whose callbacks default to no-ops; subclasses
override only the events they care about. Hooks are invoked synchronously in
registration order.

`GraphOptimizer` is the extension point for graph rewrites run at the start
of every execution. Rewrites must go through `ComputationGraph.rewire` so the
graph can re-validate its structure.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional

from ._node import Node

if TYPE_CHECKING:
    from ._execution import ExecutionOptions, ExecutionResult


class ExecutionHook:
    """
    Lifecycle callbacks around graph execution.
    """

    def before_execution(self, graph: Any, options: "ExecutionOptions") -> None:
        """Called once before scheduling."""

    def after_execution(self, graph: Any, result: "ExecutionResult") -> None:
        """Called once after a successful execution."""

    def before_node_execution(self, node: Node) -> None:
        """Called before each scheduled node is processed."""

    def after_node_execution(self, node: Node, output: Any) -> None:
        """Called after each scheduled node that holds an output."""

    def on_error(self, error: BaseException, node: Optional[Node] = None) -> None:
        """Called when execution fails, before the error propagates."""


class GraphOptimizer(ABC):
    """
    Abstract graph rewrite pass.

    Attributes
    ----------
    name : str
        Identifier used in execution logs.
    """

    name: str = "optimizer"

    @abstractmethod
    def optimize(self, graph: Any) -> None:
        """
        Rewrite `graph` in place.

        Parameters
        ----------
        graph : ComputationGraph
            Graph to rewrite. Structural changes must use `graph.rewire`.
        """
        ...

    def get_metrics(self) -> Dict[str, float]:
        """
        Return rewrite statistics of the last run.
        """
        return {
            "nodes_removed": 0,
            "nodes_added": 0,
            "edges_removed": 0,
            "edges_added": 0,
        }
