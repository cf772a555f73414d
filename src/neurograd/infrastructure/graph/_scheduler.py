"""
Forward scheduling of computation graph nodes.

Every order produced here places a node after all of its inputs.

- Topological: depth-first post-order over every node, visiting roots in id
  order. The traversal is iterative, so deep graphs do not hit the
  interpreter's recursion limit.
- Lazy: the same traversal restricted to the input closure of the marked
  outputs, visited in mark order.
- Priority: when a priority function is supplied, the selected node set is
  re-ordered with Kahn's algorithm, always picking the ready node with the
  highest priority (smaller id first on ties).

The strategy-specific node selection is dispatched on the scheduler's
strategy with the control-path mechanism.
"""

from __future__ import annotations

import heapq
from typing import Dict, Iterable, List, Optional, Sequence, Set

from ...domain._errors import CycleDetectedError, NodeNotFoundError
from ...domain._execution import ExecutionStrategy, PriorityFn
from ...domain._node import Node
from ...domain.utils._control_path import create_path_builder

scheduler_control_path = create_path_builder()

_IN_PROGRESS = 1
_DONE = 2


def _input_ids(nodes: Sequence[Node], node_id: int) -> List[int]:
    if not 0 <= node_id < len(nodes):
        raise NodeNotFoundError("Unknown node id", node_id=node_id)
    return nodes[node_id].input_ids


def topological_order(
    nodes: Sequence[Node], roots: Optional[Iterable[int]] = None
) -> List[int]:
    """
    Depth-first post-order of `roots` and everything they depend on.

    Parameters
    ----------
    nodes : Sequence[Node]
        Node arena indexed by id.
    roots : Optional[Iterable[int]]
        Traversal roots; every node in id order when None.

    Returns
    -------
    list[int]
        Node ids, each after all of its inputs.

    Raises
    ------
    CycleDetectedError
        If a node is reached again while still in progress.
    NodeNotFoundError
        If a root or an input id does not exist.
    """
    state: Dict[int, int] = {}
    order: List[int] = []

    for root in range(len(nodes)) if roots is None else roots:
        if state.get(root) == _DONE:
            continue
        _input_ids(nodes, root)
        state[root] = _IN_PROGRESS
        stack = [(root, iter(nodes[root].input_ids))]

        while stack:
            node_id, pending = stack[-1]
            for dep in pending:
                mark = state.get(dep)
                if mark == _DONE:
                    continue
                if mark == _IN_PROGRESS:
                    raise CycleDetectedError(
                        "Cycle detected in computation graph",
                        node_id=dep,
                        op_type=nodes[dep].label,
                    )
                _input_ids(nodes, dep)
                state[dep] = _IN_PROGRESS
                stack.append((dep, iter(nodes[dep].input_ids)))
                break
            else:
                stack.pop()
                state[node_id] = _DONE
                order.append(node_id)

    return order


def priority_order(
    nodes: Sequence[Node], selected: Iterable[int], priority_fn: PriorityFn
) -> List[int]:
    """
    Kahn ordering of `selected` by decreasing priority.

    Dependencies outside `selected` are ignored.

    Raises
    ------
    CycleDetectedError
        If the selected nodes cannot all be ordered.
    """
    members: Set[int] = set(selected)
    indegree: Dict[int, int] = {i: 0 for i in members}
    consumers: Dict[int, List[int]] = {i: [] for i in members}
    for i in members:
        for dep in nodes[i].input_ids:
            if dep in members:
                indegree[i] += 1
                consumers[dep].append(i)

    ready = [(-float(priority_fn(nodes[i])), i) for i in members if indegree[i] == 0]
    heapq.heapify(ready)

    order: List[int] = []
    while ready:
        _, i = heapq.heappop(ready)
        order.append(i)
        for c in consumers[i]:
            indegree[c] -= 1
            if indegree[c] == 0:
                heapq.heappush(ready, (-float(priority_fn(nodes[c])), c))

    if len(order) != len(members):
        stuck = min(i for i in members if indegree[i] > 0)
        raise CycleDetectedError(
            "Cycle detected in computation graph",
            node_id=stuck,
            op_type=nodes[stuck].label,
        )
    return order


class Scheduler:
    """
    Produces forward execution orders for a node arena.

    Parameters
    ----------
    strategy : ExecutionStrategy or str, optional
        Scheduling strategy. EAGER and PARALLEL schedule like TOPOLOGICAL.
    """

    def __init__(
        self, strategy: ExecutionStrategy | str = ExecutionStrategy.TOPOLOGICAL
    ) -> None:
        self.strategy = ExecutionStrategy(strategy)

    @property
    def _state(self) -> ExecutionStrategy:
        return self.strategy

    def select(self, nodes: Sequence[Node], output_ids: Sequence[int]) -> List[int]:
        """
        Return the dependency-respecting order selected by the strategy.
        """
        raise NotImplementedError

    def schedule(
        self,
        nodes: Sequence[Node],
        output_ids: Sequence[int],
        priority_fn: Optional[PriorityFn] = None,
    ) -> List[int]:
        """
        Order nodes for forward execution.

        Parameters
        ----------
        nodes : Sequence[Node]
            Node arena indexed by id.
        output_ids : Sequence[int]
            Marked outputs, in mark order.
        priority_fn : Optional[PriorityFn]
            Tie-breaking priority among ready nodes (higher runs first).

        Returns
        -------
        list[int]
            Node ids in execution order.
        """
        order = self.select(nodes, output_ids)
        if priority_fn is not None:
            order = priority_order(nodes, order, priority_fn)
        return order


@scheduler_control_path(Scheduler, Scheduler.select, ExecutionStrategy.TOPOLOGICAL)
@scheduler_control_path(Scheduler, Scheduler.select, ExecutionStrategy.EAGER)
@scheduler_control_path(Scheduler, Scheduler.select, ExecutionStrategy.PARALLEL)
def _select_all(
    self: Scheduler, nodes: Sequence[Node], output_ids: Sequence[int]
) -> List[int]:
    return topological_order(nodes)


@scheduler_control_path(Scheduler, Scheduler.select, ExecutionStrategy.LAZY)
def _select_output_closure(
    self: Scheduler, nodes: Sequence[Node], output_ids: Sequence[int]
) -> List[int]:
    return topological_order(nodes, roots=output_ids)
