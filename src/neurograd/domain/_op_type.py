"""
Closed enumerations describing graph nodes and operations.

`OpType` is the tag used to key both the forward operation library and the
gradient registry. Because the set is closed, coverage of every operation by
a forward kernel and a backward rule can be verified once at startup (see
`neurograd.infrastructure.gradients.verify_coverage`).
"""

from __future__ import annotations

from enum import Enum
from typing import Union


class NodeKind(str, Enum):
    """
    Kind of a graph node.

    Attributes
    ----------
    INPUT : NodeKind
        Externally supplied value; optionally differentiable.
    CONSTANT : NodeKind
        Fixed value; never differentiable.
    VARIABLE : NodeKind
        Trainable value; differentiable by default.
    OPERATION : NodeKind
        Result of applying an `OpType` to other nodes.
    """

    INPUT = "input"
    CONSTANT = "constant"
    VARIABLE = "variable"
    OPERATION = "operation"

    @property
    def is_leaf(self) -> bool:
        return self is not NodeKind.OPERATION


class OpType(str, Enum):
    """
    Operation tags understood by the graph.
    """

    ADD = "add"
    SUBTRACT = "subtract"
    MULTIPLY = "multiply"
    DIVIDE = "divide"
    MATMUL = "matmul"
    TRANSPOSE = "transpose"
    RESHAPE = "reshape"
    EXP = "exp"
    LOG = "log"
    SQRT = "sqrt"
    SIGMOID = "sigmoid"
    TANH = "tanh"
    RELU = "relu"
    LEAKY_RELU = "leaky_relu"
    ELU = "elu"
    GELU = "gelu"
    SWISH = "swish"
    SOFTMAX = "softmax"
    SUM = "sum"
    MEAN = "mean"
    MAX = "max"
    MIN = "min"
    ARGMAX = "argmax"
    ARGMIN = "argmin"
    CONV2D = "conv2d"
    MAX_POOL2D = "max_pool2d"
    AVG_POOL2D = "avg_pool2d"
    BATCH_NORM = "batch_norm"
    LAYER_NORM = "layer_norm"
    INSTANCE_NORM = "instance_norm"
    GROUP_NORM = "group_norm"

    @classmethod
    def parse(cls, value: Union["OpType", str]) -> "OpType":
        """
        Convert a string tag (or an `OpType`) into an `OpType`.

        Parameters
        ----------
        value : OpType or str
            Operation tag such as ``"add"`` or ``OpType.ADD``.

        Returns
        -------
        OpType
            The matching enum member.

        Raises
        ------
        ValueError
            If `value` does not name a known operation.
        """
        if isinstance(value, cls):
            return value
        return cls(value)


class GradientArity(Enum):
    """
    Calling convention of a backward rule.

    Attributes
    ----------
    BINARY : GradientArity
        ``fn(grad_out, a, b) -> (grad_a, grad_b)``
    UNARY_INPUT : GradientArity
        ``fn(grad_out, x, params) -> grad_x``; derivative depends on the input.
    UNARY_OUTPUT : GradientArity
        ``fn(grad_out, x, output) -> grad_x``; derivative depends on the output.
    PARAMETERIZED : GradientArity
        ``fn(grad_out, inputs, output, params, saved) -> grad_x | (grad_x, ...)``
    """

    BINARY = "binary"
    UNARY_INPUT = "unary_input"
    UNARY_OUTPUT = "unary_output"
    PARAMETERIZED = "parameterized"
