"""
Backward rules for convolution, pooling and normalization.

These rules delegate to the backward kernels living next to the forward
kernels in `neurograd.infrastructure.ops`, and read the byproducts the
forward pass recorded on the node (``saved``).
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Sequence, Tuple

import numpy as np

from ...domain._op_type import OpType
from ..ops.conv2d_cpu import conv2d_backward_cpu
from ..ops.normalization_cpu import normalization_backward_cpu
from ..ops.pool2d_cpu import avgpool2d_backward_cpu, maxpool2d_backward_cpu
from ._registry import GradientRegistry


def conv2d_grad(
    g: np.ndarray,
    inputs: Sequence[np.ndarray],
    out: np.ndarray,
    params: Mapping[str, Any],
    saved: Dict[str, Any],
) -> Tuple[np.ndarray, ...]:
    with_bias = len(inputs) == 3
    grad_x, grad_w, grad_b = conv2d_backward_cpu(g, inputs[0], inputs[1], params, with_bias)
    if with_bias:
        return grad_x, grad_w, grad_b
    return grad_x, grad_w


def max_pool2d_grad(
    g: np.ndarray,
    inputs: Sequence[np.ndarray],
    out: np.ndarray,
    params: Mapping[str, Any],
    saved: Dict[str, Any],
) -> np.ndarray:
    return maxpool2d_backward_cpu(
        g,
        saved["argmax"],
        x_shape=inputs[0].shape,
        data_format=str(params.get("data_format", "NCHW")),
    )


def avg_pool2d_grad(
    g: np.ndarray,
    inputs: Sequence[np.ndarray],
    out: np.ndarray,
    params: Mapping[str, Any],
    saved: Dict[str, Any],
) -> np.ndarray:
    return avgpool2d_backward_cpu(g, saved["counts"], x_shape=inputs[0].shape, params=params)


def normalization_grad(
    g: np.ndarray,
    inputs: Sequence[np.ndarray],
    out: np.ndarray,
    params: Mapping[str, Any],
    saved: Dict[str, Any],
) -> Tuple[np.ndarray, ...]:
    return normalization_backward_cpu(g, inputs, saved)


def register_layer_gradients(registry: GradientRegistry) -> None:
    registry.register_parameterized(OpType.CONV2D, conv2d_grad)
    registry.register_parameterized(OpType.MAX_POOL2D, max_pool2d_grad)
    registry.register_parameterized(OpType.AVG_POOL2D, avg_pool2d_grad)
    for op in (
        OpType.BATCH_NORM,
        OpType.LAYER_NORM,
        OpType.INSTANCE_NORM,
        OpType.GROUP_NORM,
    ):
        registry.register_parameterized(op, normalization_grad)
