"""
Forward execution of a scheduled node order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Sequence

import numpy as np

from ...domain._errors import (
    GraphStructureError,
    MissingInputOutputError,
    OperationExecutionError,
    UnsupportedOperationError,
)
from ...domain._execution import ExecutionOptions
from ...domain._hooks import ExecutionHook
from ...domain._node import Node
from ..ops._library import OperationLibrary


@dataclass
class ForwardStats:
    """
    Counters of one forward pass.

    Attributes
    ----------
    cache_hits : int
        Operation nodes whose cached output was reused.
    cache_misses : int
        Operation nodes that were computed.
    operations_executed : int
        Kernels actually invoked.
    log : list[str]
        One line per visited node.
    """

    cache_hits: int = 0
    cache_misses: int = 0
    operations_executed: int = 0
    log: List[str] = field(default_factory=list)

    @property
    def cache_hit_rate(self) -> float:
        total = self.cache_hits + self.cache_misses
        return self.cache_hits / total if total else 0.0


def _freeze(out: np.ndarray, inputs: Sequence[np.ndarray]) -> np.ndarray:
    if any(out is x for x in inputs):
        out = out.view()
    out.flags.writeable = False
    return out


class ForwardExecutor:
    """
    Walks a node order and computes operation outputs.

    Parameters
    ----------
    library : OperationLibrary
        Forward kernels.
    hooks : Sequence[ExecutionHook]
        Hooks notified before and after each node (live view, registration
        order).
    """

    def __init__(self, library: OperationLibrary, hooks: Sequence[ExecutionHook]) -> None:
        self.library = library
        self.hooks = hooks

    def run(
        self, nodes: Sequence[Node], order: Sequence[int], options: ExecutionOptions
    ) -> ForwardStats:
        """
        Execute `order` over `nodes`.

        Leaf nodes are skipped. An operation node is reused when it is
        cached, holds an output and `options.use_cached` is set; otherwise
        its kernel runs on the outputs of its inputs.

        Raises
        ------
        MissingInputOutputError
            If an input has no output when its consumer runs.
        UnsupportedOperationError
            If the library has no kernel for a node's operation.
        OperationExecutionError
            If a kernel raises; the kernel's exception is chained.
        """
        stats = ForwardStats()

        for node_id in order:
            node = nodes[node_id]
            for hook in self.hooks:
                hook.before_node_execution(node)

            if node.is_leaf:
                stats.log.append(f"[{node_id}] {node.label}: leaf")
            elif node.cached and node.output is not None and options.use_cached:
                stats.cache_hits += 1
                stats.log.append(f"[{node_id}] {node.label}: cache hit")
            else:
                self._compute(nodes, node)
                stats.cache_misses += 1
                stats.operations_executed += 1
                node.cached = options.cache_results
                stats.log.append(
                    f"[{node_id}] {node.label}: computed in "
                    f"{node.performance.execution_time:.3f} ms"
                )

            if node.output is not None:
                for hook in self.hooks:
                    hook.after_node_execution(node, node.output)

        return stats

    def _compute(self, nodes: Sequence[Node], node: Node) -> None:
        inputs = []
        for input_id in node.input_ids:
            value = nodes[input_id].output
            if value is None:
                raise MissingInputOutputError(
                    f"Input {input_id} has no output",
                    node_id=node.id,
                    op_type=node.op_type,
                    input_id=input_id,
                )
            inputs.append(value)

        if node.op_type not in self.library:
            raise UnsupportedOperationError(
                "No forward kernel registered", node_id=node.id, op_type=node.op_type
            )

        try:
            result = self.library.run(node.op_type, inputs, node.params)
        except GraphStructureError:
            raise
        except Exception as e:
            raise OperationExecutionError(
                f"Forward kernel failed: {e}", node_id=node.id, op_type=node.op_type
            ) from e

        node.output = _freeze(result.tensor, inputs)
        node.saved = result.saved
        node.performance = result.performance
        node.metadata.last_executed = datetime.now()
