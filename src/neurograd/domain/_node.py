"""
Node and edge records of the computation graph.

A `Node` represents one tensor-valued quantity: either a leaf (input,
constant, variable) holding a user-supplied tensor, or the result of an
operation over other nodes. Nodes live in an arena owned by the graph and
reference their producers by integer id; a producer always has a smaller id
than its consumers.

`Edge` records are derived from `Node.input_ids` on demand and exist for
dependency queries only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ._op_type import NodeKind, OpType
from ._tensor import ITensor


@dataclass
class NodeMetadata:
    """
    Descriptive information attached to a node.

    Attributes
    ----------
    description : str
        Short human-readable description (e.g. ``"Operation: add"``).
    created_at : datetime
        Creation timestamp.
    last_executed : Optional[datetime]
        Timestamp of the last forward computation of this node.
    """

    description: str
    created_at: datetime = field(default_factory=datetime.now)
    last_executed: Optional[datetime] = None


@dataclass
class Node:
    """
    A node of the computation graph.

    Attributes
    ----------
    id : int
        Arena index of the node.
    kind : NodeKind
        Leaf kind or `NodeKind.OPERATION`.
    op_type : Optional[OpType]
        Operation tag; set for operation nodes only.
    input_ids : list[int]
        Ordered ids of the producer nodes.
    output : Optional[ITensor]
        Tensor value. Set at creation for leaves, by forward execution for
        operation nodes.
    gradient : Optional[ITensor]
        Accumulated gradient of the backpropagated objective w.r.t. `output`.
    requires_grad : bool
        Whether gradients should be propagated into this node.
    cached : bool
        Whether `output` may be reused by a later forward execution.
    params : dict[str, Any]
        Operation parameters (axes, strides, epsilon, ...).
    saved : dict[str, Any]
        Forward byproducts needed by the backward rule (e.g. pooling argmax
        indices or normalization statistics).
    name : Optional[str]
        Optional unique name used by `get_node_by_name`.
    metadata : NodeMetadata
        Descriptive information.
    performance : Optional[Any]
        `OpPerformance` of the last forward computation, if any.
    """

    id: int
    kind: NodeKind
    op_type: Optional[OpType] = None
    input_ids: list[int] = field(default_factory=list)
    output: Optional[ITensor] = None
    gradient: Optional[ITensor] = None
    requires_grad: bool = False
    cached: bool = False
    params: dict[str, Any] = field(default_factory=dict)
    saved: dict[str, Any] = field(default_factory=dict)
    name: Optional[str] = None
    metadata: NodeMetadata = field(default_factory=lambda: NodeMetadata(""))
    performance: Optional[Any] = None

    @property
    def is_leaf(self) -> bool:
        return self.kind.is_leaf

    @property
    def label(self) -> str:
        """Operation tag for operation nodes, node kind for leaves."""
        if self.op_type is not None:
            return self.op_type.value
        return self.kind.value


@dataclass(frozen=True)
class Edge:
    """
    Dependency edge from a producer to a consumer node.

    Attributes
    ----------
    source : int
        Producer node id.
    target : int
        Consumer node id.
    is_gradient_carrying : bool
        Whether gradients flow back along this edge (the consumer requires
        gradients).
    """

    source: int
    target: int
    is_gradient_carrying: bool
