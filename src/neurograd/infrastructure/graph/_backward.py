"""
Reverse-mode gradient propagation over a computation graph.

Starting from seeded output nodes, the engine walks the input closure of the
seeds in reverse topological order. For every operation node holding a
gradient it invokes the registered backward rule and accumulates the
resulting contributions into the inputs that require gradients. Leaves only
absorb gradients.

Contributions are reconciled with the target's output shape before they are
accumulated:

1. a contribution in a broadcast shape is summed down to the target shape,
2. a smaller, broadcast-compatible contribution is broadcast up,
3. anything else emits a `GradientShapeWarning` and is dropped.
"""

from __future__ import annotations

import warnings
from functools import wraps
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from ...domain._errors import (
    GradientComputationError,
    GradientShapeWarning,
    GraphStructureError,
    MissingDerivativeWarning,
    MissingOutputError,
)
from ...domain._node import Node
from ..gradients._registry import GradientRegistry
from ..ops._broadcast import can_broadcast_to, can_sum_to_shape, sum_to_shape
from ._scheduler import topological_order


def accumulate_gradient(node: Node, grad: Any) -> bool:
    """
    Add a gradient contribution to `node.gradient`.

    Parameters
    ----------
    node : Node
        Target node.
    grad : array-like
        Contribution with respect to the node's output.

    Returns
    -------
    bool
        False if the contribution could not be reconciled with the node's
        output shape and was dropped.
    """
    grad = np.asarray(grad)
    if node.output is not None:
        target = tuple(np.shape(node.output))
        if grad.shape != target:
            if can_sum_to_shape(grad.shape, target):
                grad = sum_to_shape(grad, target)
            elif can_broadcast_to(grad.shape, target):
                grad = np.broadcast_to(grad, target).copy()
            else:
                warnings.warn(
                    f"Dropping gradient of shape {grad.shape} for node {node.id} "
                    f"with output shape {target}",
                    GradientShapeWarning,
                    stacklevel=2,
                )
                return False

    if node.gradient is None:
        node.gradient = grad
    else:
        node.gradient = node.gradient + grad
    return True


def default_seed(output: Any) -> np.ndarray:
    """
    Ones shaped like `output`, in a floating dtype.
    """
    output = np.asarray(output)
    dtype = output.dtype if np.issubdtype(output.dtype, np.floating) else np.float64
    return np.ones(output.shape, dtype=dtype)


class BackwardEngine:
    """
    Propagates gradients through a node arena using a gradient registry.
    """

    def __init__(self, registry: GradientRegistry) -> None:
        self.registry = registry

    def seed(self, node: Node, seed: Optional[Any] = None) -> bool:
        """
        Assign the starting gradient of an output node.

        Returns
        -------
        bool
            False when the node does not require gradients (nothing seeded).

        Raises
        ------
        MissingOutputError
            If the node has no output yet.
        ValueError
            If `seed` does not have the output's shape.
        """
        if not node.requires_grad:
            return False
        if node.output is None:
            raise MissingOutputError(
                "Cannot backpropagate from a node without output",
                node_id=node.id,
                op_type=node.label,
            )
        if seed is None:
            seed = default_seed(node.output)
        else:
            seed = np.asarray(seed)
            if seed.shape != tuple(np.shape(node.output)):
                raise ValueError(
                    f"Seed shape {seed.shape} does not match output shape "
                    f"{np.shape(node.output)} of node {node.id}"
                )
        node.gradient = seed
        return True

    def run(
        self,
        nodes: Sequence[Node],
        seeds: Mapping[int, Optional[Any]],
        log: Optional[List[str]] = None,
    ) -> None:
        """
        Seed the given outputs and propagate gradients to their inputs.

        Parameters
        ----------
        nodes : Sequence[Node]
            Node arena indexed by id.
        seeds : Mapping[int, Optional[array-like]]
            Output id -> seed (None for ones).
        log : Optional[list[str]]
            Receives one line per processed operation node.

        Raises
        ------
        GradientComputationError
            If a backward rule raises; the rule's exception is chained.
        """
        roots = [i for i, s in seeds.items() if self.seed(nodes[i], s)]
        if not roots:
            return

        for node_id in reversed(topological_order(nodes, roots=roots)):
            node = nodes[node_id]
            if node.is_leaf or node.gradient is None:
                continue

            entry = self.registry.get(node.op_type)
            if entry is None:
                warnings.warn(
                    f"No backward rule for '{node.label}' (node {node_id}); "
                    "gradients do not propagate through it",
                    MissingDerivativeWarning,
                    stacklevel=2,
                )
                continue

            inputs = [nodes[i].output for i in node.input_ids]
            try:
                grads = entry.invoke(node.gradient, inputs, node.output, node.params, node.saved)
            except GraphStructureError:
                raise
            except Exception as e:
                raise GradientComputationError(
                    f"Backward rule failed: {e}", node_id=node_id, op_type=node.op_type
                ) from e

            for input_id, contribution in zip(node.input_ids, grads):
                if contribution is None:
                    continue
                target = nodes[input_id]
                if target.requires_grad:
                    accumulate_gradient(target, contribution)

            if log is not None:
                log.append(f"[{node_id}] {node.label}: backward")


def backward(graph: Any, output_id: int, seed: Optional[Any] = None) -> None:
    """
    Backpropagate from `output_id` of `graph`.

    Equivalent to ``graph.backward(output_id, seed)``.
    """
    graph.backward(output_id, seed)


def grad(
    graph: Any, output_id: int, input_id: int, seed: Optional[Any] = None
) -> Optional[np.ndarray]:
    """
    Backpropagate from `output_id` and return the gradient of `input_id`.

    Returns
    -------
    Optional[np.ndarray]
        The accumulated gradient, or None when nothing reached the node.
    """
    backward(graph, output_id, seed)
    return graph.get_gradient(input_id)


GraphFn = Callable[..., Tuple[Any, int]]


def value_and_grad(fn: GraphFn, *inputs: Any) -> Tuple[np.ndarray, List[np.ndarray]]:
    """
    Evaluate a graph-building function and differentiate its output.

    Parameters
    ----------
    fn : Callable[..., tuple[ComputationGraph, int]]
        Called with `inputs`; returns a graph and the id of the node to
        differentiate. The graph is executed first when that node has no
        output yet.
    *inputs : array-like
        Arguments forwarded to `fn`.

    Returns
    -------
    tuple[np.ndarray, list[np.ndarray]]
        The output value and one gradient per graph input node (in creation
        order). Inputs that received no gradient get zeros of their shape.
    """
    graph, output_id = fn(*inputs)
    if graph.get_node(output_id).output is None:
        graph.execute()
    value = graph.get_output(output_id)
    backward(graph, output_id)

    grads = []
    for input_id in graph.input_ids:
        g = graph.get_gradient(input_id)
        if g is None:
            g = np.zeros_like(default_seed(graph.get_output(input_id)))
        grads.append(g)
    return value, grads


def with_grad(fn: GraphFn) -> Callable[..., Tuple[np.ndarray, List[np.ndarray]]]:
    """
    Wrap `fn` so that calling it returns ``value_and_grad(fn, *inputs)``.
    """

    @wraps(fn)
    def wrapper(*inputs: Any) -> Tuple[np.ndarray, List[np.ndarray]]:
        return value_and_grad(fn, *inputs)

    return wrapper


def numerical_gradient(
    fn: Callable[[np.ndarray], float], x: Any, epsilon: float = 1e-5
) -> np.ndarray:
    """
    Central finite-difference gradient of a scalar function.

    Parameters
    ----------
    fn : Callable[[np.ndarray], float]
        Scalar function of one array.
    x : array-like
        Point of evaluation. It is not modified; `fn` receives a float64
        working copy that is perturbed one element at a time.
    epsilon : float, optional
        Step size.

    Returns
    -------
    np.ndarray
        Float64 array shaped like `x`.
    """
    work = np.array(x, dtype=np.float64)
    out = np.zeros_like(work)
    for idx in np.ndindex(work.shape):
        orig = work[idx]
        work[idx] = orig + epsilon
        f_pos = float(fn(work))
        work[idx] = orig - epsilon
        f_neg = float(fn(work))
        work[idx] = orig
        out[idx] = (f_pos - f_neg) / (2.0 * epsilon)
    return out


def collect_gradients(nodes: Sequence[Node]) -> Dict[int, Any]:
    return {n.id: n.gradient for n in nodes if n.gradient is not None}
