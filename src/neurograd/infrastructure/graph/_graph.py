"""
Computation graph: node arena, graph-building API and execution entry points.

Nodes are stored in an arena indexed by integer id. Operation nodes may only
reference nodes that already exist, so every producer has a smaller id than
its consumers and the graph is acyclic by construction. The only mutation
that can change the dependency structure is `rewire`, which re-validates the
graph and rolls back when a cycle would appear.

Execution
---------
`execute` runs, in order:

1. `before_execution` hooks,
2. registered graph optimizers (then re-validation),
3. scheduling with the current strategy,
4. the forward pass (with per-node hooks),
5. optionally the backward pass from every marked output,
6. `after_execution` hooks.

On failure every hook's `on_error` is called before the error propagates.
Already computed outputs and gradients are kept.
"""

from __future__ import annotations

import time
from collections import deque
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np

from ...domain._errors import (
    ConcurrentExecutionError,
    CycleDetectedError,
    GraphStructureError,
    MissingOutputError,
    NodeNotFoundError,
    UnsupportedOperationError,
)
from ...domain._execution import (
    ExecutionOptions,
    ExecutionResult,
    ExecutionStats,
    ExecutionStrategy,
    PerformanceSummary,
)
from ...domain._hooks import ExecutionHook, GraphOptimizer
from ...domain._node import Edge, Node, NodeMetadata
from ...domain._op_type import NodeKind, OpType
from ..gradients import GradientRegistry, build_default_gradient_registry, verify_coverage
from ..ops import OperationLibrary, build_default_operation_library
from ._backward import BackwardEngine, collect_gradients
from ._executor import ForwardExecutor
from ._scheduler import Scheduler, topological_order


class ComputationGraph:
    """
    Dynamic computation graph with reverse-mode differentiation.

    Parameters
    ----------
    library : Optional[OperationLibrary]
        Forward kernels; the NumPy CPU library by default.
    registry : Optional[GradientRegistry]
        Backward rules; the default rules by default.
    strategy : ExecutionStrategy or str, optional
        Scheduling strategy.
    options : Optional[ExecutionOptions]
        Default options of `execute`.
    check_coverage : bool, optional
        Verify that every operation type has a kernel and a backward rule.

    Raises
    ------
    IncompleteRegistryError
        If `check_coverage` is set and coverage is incomplete.

    Examples
    --------
    >>> g = ComputationGraph()
    >>> x = g.input(np.array([1.0, 2.0]), requires_grad=True)
    >>> y = g.operation("sum", [g.operation("multiply", [x, x])])
    >>> g.mark_output(y)
    >>> g.execute(compute_gradients=True).gradients[x]
    array([2., 4.])
    """

    def __init__(
        self,
        library: Optional[OperationLibrary] = None,
        registry: Optional[GradientRegistry] = None,
        *,
        strategy: Union[ExecutionStrategy, str] = ExecutionStrategy.TOPOLOGICAL,
        options: Optional[ExecutionOptions] = None,
        check_coverage: bool = False,
    ) -> None:
        self.library = library if library is not None else build_default_operation_library()
        self.registry = registry if registry is not None else build_default_gradient_registry()
        if check_coverage:
            verify_coverage(self.library, self.registry)

        self.scheduler = Scheduler(strategy)
        self.default_options = options if options is not None else ExecutionOptions()
        self.stats = ExecutionStats()

        self._nodes: List[Node] = []
        self._names: Dict[str, int] = {}
        self._dependents: Dict[int, List[int]] = {}
        self._input_ids: List[int] = []
        self._constant_ids: List[int] = []
        self._variable_ids: List[int] = []
        self._output_ids: List[int] = []

        self._hooks: List[ExecutionHook] = []
        self._optimizers: List[GraphOptimizer] = []
        self._executing = False

        self._executor = ForwardExecutor(self.library, self._hooks)
        self._backward = BackwardEngine(self.registry)

    # ------------------------------------------------------------------
    # Graph building
    # ------------------------------------------------------------------
    def _add_node(self, node: Node, name: Optional[str]) -> int:
        if name is not None:
            if name in self._names:
                raise GraphStructureError(f"Duplicate node name {name!r}")
            self._names[name] = node.id
        self._nodes.append(node)
        self._dependents[node.id] = []
        return node.id

    def _add_leaf(
        self, kind: NodeKind, tensor: Any, name: Optional[str], requires_grad: bool
    ) -> int:
        node = Node(
            id=len(self._nodes),
            kind=kind,
            output=np.asarray(tensor),
            requires_grad=requires_grad,
            name=name,
            metadata=NodeMetadata(f"{kind.value.capitalize()} tensor"),
        )
        return self._add_node(node, name)

    def input(self, tensor: Any, name: Optional[str] = None, requires_grad: bool = False) -> int:
        """
        Add an input leaf and return its id.
        """
        node_id = self._add_leaf(NodeKind.INPUT, tensor, name, requires_grad)
        self._input_ids.append(node_id)
        return node_id

    def constant(self, tensor: Any, name: Optional[str] = None) -> int:
        """
        Add a constant leaf (never requires gradients) and return its id.
        """
        node_id = self._add_leaf(NodeKind.CONSTANT, tensor, name, False)
        self._constant_ids.append(node_id)
        return node_id

    def variable(self, tensor: Any, name: Optional[str] = None, requires_grad: bool = True) -> int:
        """
        Add a variable (trainable) leaf and return its id.
        """
        node_id = self._add_leaf(NodeKind.VARIABLE, tensor, name, requires_grad)
        self._variable_ids.append(node_id)
        return node_id

    def operation(
        self,
        op_type: Union[OpType, str],
        input_ids: Sequence[int],
        params: Optional[Dict[str, Any]] = None,
        name: Optional[str] = None,
        requires_grad: bool = True,
    ) -> int:
        """
        Add an operation node over existing nodes and return its id.

        Parameters
        ----------
        op_type : OpType or str
            Operation tag.
        input_ids : Sequence[int]
            Ids of the operand nodes, in operand order.
        params : Optional[dict[str, Any]]
            Operation parameters.
        name : Optional[str]
            Unique node name.
        requires_grad : bool, optional
            Whether gradients propagate through this node.

        Returns
        -------
        int
            Id of the new node. Its output is computed by `execute`.

        Raises
        ------
        UnsupportedOperationError
            If `op_type` does not name a known operation.
        NodeNotFoundError
            If an input id does not exist.
        GraphStructureError
            If `input_ids` is empty or `name` is already taken.
        """
        try:
            op = OpType.parse(op_type)
        except ValueError:
            raise UnsupportedOperationError("Unknown operation type", op_type=op_type) from None

        input_ids = [int(i) for i in input_ids]
        if not input_ids:
            raise GraphStructureError("Operation requires at least one input", op_type=op)
        for i in input_ids:
            self._check_id(i)

        node = Node(
            id=len(self._nodes),
            kind=NodeKind.OPERATION,
            op_type=op,
            input_ids=input_ids,
            requires_grad=requires_grad,
            params=dict(params or {}),
            name=name,
            metadata=NodeMetadata(f"Operation: {op.value}"),
        )
        node_id = self._add_node(node, name)
        for i in dict.fromkeys(input_ids):
            self._dependents[i].append(node_id)
        return node_id

    def mark_output(self, node_id: int) -> None:
        """
        Mark a node as a graph output. Marking twice has no effect.
        """
        self._check_id(node_id)
        if node_id not in self._output_ids:
            self._output_ids.append(node_id)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    def _check_id(self, node_id: int) -> None:
        if not isinstance(node_id, (int, np.integer)) or not 0 <= node_id < len(self._nodes):
            raise NodeNotFoundError("Unknown node id", node_id=node_id)

    def get_node(self, node_id: int) -> Node:
        self._check_id(node_id)
        return self._nodes[node_id]

    def get_node_by_name(self, name: str) -> Node:
        if name not in self._names:
            raise NodeNotFoundError(f"Unknown node name {name!r}")
        return self._nodes[self._names[name]]

    def get_output(self, node_id: int) -> Any:
        """
        Return the output of a node.

        Raises
        ------
        MissingOutputError
            If the node has not produced an output yet.
        """
        node = self.get_node(node_id)
        if node.output is None:
            raise MissingOutputError("Node has no output", node_id=node_id, op_type=node.label)
        return node.output

    def get_gradient(self, node_id: int) -> Optional[Any]:
        return self.get_node(node_id).gradient

    def reset_gradients(self) -> None:
        for node in self._nodes:
            node.gradient = None

    @property
    def nodes(self) -> Sequence[Node]:
        return tuple(self._nodes)

    @property
    def input_ids(self) -> List[int]:
        return list(self._input_ids)

    @property
    def constant_ids(self) -> List[int]:
        return list(self._constant_ids)

    @property
    def variable_ids(self) -> List[int]:
        return list(self._variable_ids)

    @property
    def output_ids(self) -> List[int]:
        return list(self._output_ids)

    @property
    def edges(self) -> List[Edge]:
        return [
            Edge(source=i, target=node.id, is_gradient_carrying=node.requires_grad)
            for node in self._nodes
            for i in node.input_ids
        ]

    def dependents(self, node_id: int) -> List[int]:
        """
        Ids of the nodes consuming `node_id`, in creation order.
        """
        self._check_id(node_id)
        return list(self._dependents[node_id])

    def __len__(self) -> int:
        return len(self._nodes)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def _invalidate(self, node_ids: Sequence[int]) -> None:
        """
        Drop the outputs of `node_ids` and of all their transitive dependents.
        """
        seen = set()
        queue = deque(node_ids)
        while queue:
            i = queue.popleft()
            if i in seen:
                continue
            seen.add(i)
            node = self._nodes[i]
            if not node.is_leaf:
                node.output = None
                node.cached = False
                node.saved = {}
            queue.extend(self._dependents[i])

    def feed(self, node_id: int, tensor: Any) -> None:
        """
        Replace the value of an input or variable leaf.

        Every transitive dependent loses its cached output and is recomputed
        by the next execution.

        Raises
        ------
        GraphStructureError
            If the node is a constant or an operation.
        """
        node = self.get_node(node_id)
        if node.kind not in (NodeKind.INPUT, NodeKind.VARIABLE):
            raise GraphStructureError(
                "Only input and variable nodes can be fed", node_id=node_id, op_type=node.label
            )
        node.output = np.asarray(tensor)
        self._invalidate(self._dependents[node_id])

    def clear_cache(self) -> None:
        """
        Drop the output of every operation node.
        """
        for node in self._nodes:
            if not node.is_leaf:
                node.output = None
                node.cached = False
                node.saved = {}

    def _rebuild_dependents(self) -> None:
        self._dependents = {node.id: [] for node in self._nodes}
        for node in self._nodes:
            for i in dict.fromkeys(node.input_ids):
                self._dependents[i].append(node.id)

    def validate(self) -> None:
        """
        Check that every input id exists and the graph is acyclic.

        Raises
        ------
        NodeNotFoundError
        CycleDetectedError
        """
        topological_order(self._nodes)

    def rewire(self, node_id: int, input_ids: Sequence[int]) -> None:
        """
        Replace the inputs of an operation node.

        The change is rolled back if it would introduce a cycle.

        Raises
        ------
        GraphStructureError
            If the node is a leaf.
        NodeNotFoundError
            If an input id does not exist.
        CycleDetectedError
            If the new inputs create a cycle.
        """
        node = self.get_node(node_id)
        if node.is_leaf:
            raise GraphStructureError("Leaf nodes have no inputs", node_id=node_id, op_type=node.label)
        input_ids = [int(i) for i in input_ids]
        for i in input_ids:
            self._check_id(i)

        previous = node.input_ids
        node.input_ids = input_ids
        try:
            self.validate()
        except CycleDetectedError:
            node.input_ids = previous
            raise
        self._rebuild_dependents()
        self._invalidate([node_id])

    def add_optimizer(self, optimizer: GraphOptimizer) -> None:
        self._optimizers.append(optimizer)

    def add_execution_hook(self, hook: ExecutionHook) -> None:
        self._hooks.append(hook)

    def remove_execution_hook(self, hook: ExecutionHook) -> None:
        if hook in self._hooks:
            self._hooks.remove(hook)

    def set_execution_strategy(self, strategy: Union[ExecutionStrategy, str]) -> None:
        self.scheduler.strategy = ExecutionStrategy(strategy)

    @property
    def strategy(self) -> ExecutionStrategy:
        return self.scheduler.strategy

    def estimate_memory_usage(self) -> int:
        """
        Bytes held by node outputs and gradients.
        """
        total = 0
        for node in self._nodes:
            if node.output is not None:
                total += int(np.asarray(node.output).nbytes)
            if node.gradient is not None:
                total += int(np.asarray(node.gradient).nbytes)
        return total

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    def _enter(self) -> None:
        if self._executing:
            raise ConcurrentExecutionError("Graph is already executing")
        self._executing = True

    def _notify_error(self, error: BaseException) -> None:
        node_id = getattr(error, "node_id", None)
        node = self._nodes[node_id] if isinstance(node_id, int) and 0 <= node_id < len(self._nodes) else None
        for hook in list(self._hooks):
            hook.on_error(error, node)

    def execute(self, options: Optional[ExecutionOptions] = None, **overrides: Any) -> ExecutionResult:
        """
        Run the forward pass (and optionally the backward pass).

        Parameters
        ----------
        options : Optional[ExecutionOptions]
            Options of this call; the graph defaults when None.
        **overrides
            Individual option overrides, e.g. ``compute_gradients=True``.

        Returns
        -------
        ExecutionResult
            Marked outputs, gradients (when requested), timings and the
            execution log.

        Raises
        ------
        ConcurrentExecutionError
            If called while another execution of this graph is running.
        GraphStructureError
            Structural failures of scheduling, forward or backward passes.
        """
        options = (options or self.default_options).merged(**overrides)
        self._enter()
        try:
            return self._execute(options)
        except Exception as e:
            self._notify_error(e)
            raise
        finally:
            self._executing = False

    def _execute(self, options: ExecutionOptions) -> ExecutionResult:
        start = time.perf_counter()
        for hook in list(self._hooks):
            hook.before_execution(self, options)

        log: List[str] = []
        if self._optimizers:
            for optimizer in self._optimizers:
                optimizer.optimize(self)
                log.append(f"optimizer {optimizer.name}: {optimizer.get_metrics()}")
            self._rebuild_dependents()
            self.validate()

        order = self.scheduler.schedule(self._nodes, self._output_ids, options.priority_fn)
        fwd = self._executor.run(self._nodes, order, options)
        log.extend(fwd.log)
        forward_time = (time.perf_counter() - start) * 1000.0

        gradients = None
        backward_time = None
        if options.compute_gradients:
            t0 = time.perf_counter()
            self._backward.run(self._nodes, {i: None for i in self._output_ids}, log)
            backward_time = (time.perf_counter() - t0) * 1000.0
            gradients = collect_gradients(self._nodes)

        elapsed = (time.perf_counter() - start) * 1000.0
        result = ExecutionResult(
            outputs={i: self._nodes[i].output for i in self._output_ids},
            gradients=gradients,
            performance=PerformanceSummary(
                execution_time=elapsed,
                forward_time=forward_time,
                backward_time=backward_time,
                memory_used=self.estimate_memory_usage(),
                cache_hit_rate=fwd.cache_hit_rate,
                operations_executed=fwd.operations_executed,
            ),
            execution_log=log,
        )
        self.stats.record(elapsed)

        for hook in list(self._hooks):
            hook.after_execution(self, result)
        return result

    def backward(self, output_id: int, seed: Optional[Any] = None) -> None:
        """
        Backpropagate from `output_id`.

        Parameters
        ----------
        output_id : int
            Node to differentiate; must hold an output.
        seed : Optional[array-like]
            Gradient of the objective w.r.t. the output; ones when None.

        Raises
        ------
        MissingOutputError
            If the node has no output.
        ValueError
            If the seed shape differs from the output shape.
        GradientComputationError
            If a backward rule fails.
        """
        self._check_id(output_id)
        self._enter()
        try:
            self._backward.run(self._nodes, {output_id: seed})
        finally:
            self._executing = False
