"""
Backward rules for arithmetic and shape operations.

Binary rules reduce each operand gradient back to the operand's shape with
`sum_to_shape`, which undoes NumPy broadcasting.
"""

from __future__ import annotations

from typing import Any, Mapping, Tuple

import numpy as np

from ...domain._op_type import OpType
from ..ops._broadcast import sum_to_shape
from ._registry import GradientRegistry


def add_grad(g: np.ndarray, a: np.ndarray, b: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    return sum_to_shape(g, a.shape), sum_to_shape(g, b.shape)


def subtract_grad(
    g: np.ndarray, a: np.ndarray, b: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    return sum_to_shape(g, a.shape), sum_to_shape(-g, b.shape)


def multiply_grad(
    g: np.ndarray, a: np.ndarray, b: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    return sum_to_shape(g * b, a.shape), sum_to_shape(g * a, b.shape)


def divide_grad(
    g: np.ndarray, a: np.ndarray, b: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    with np.errstate(divide="ignore", invalid="ignore"):
        ga = g / b
        gb = -g * a / (b * b)
    return sum_to_shape(ga, a.shape), sum_to_shape(gb, b.shape)


def matmul_grad(
    g: np.ndarray, a: np.ndarray, b: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    """
    ``ga = g @ b^T`` and ``gb = a^T @ g`` over the last two axes.

    Broadcast batch axes are summed away.
    """
    ga = np.matmul(g, np.swapaxes(b, -1, -2))
    gb = np.matmul(np.swapaxes(a, -1, -2), g)
    return sum_to_shape(ga, a.shape), sum_to_shape(gb, b.shape)


def transpose_grad(g: np.ndarray, x: np.ndarray, params: Mapping[str, Any]) -> np.ndarray:
    axes = params.get("axes")
    if axes is None:
        return np.transpose(g)
    return np.transpose(g, np.argsort([int(a) % g.ndim for a in axes]))


def reshape_grad(g: np.ndarray, x: np.ndarray, params: Mapping[str, Any]) -> np.ndarray:
    return np.reshape(g, x.shape)


def register_arithmetic_gradients(registry: GradientRegistry) -> None:
    registry.register_binary(OpType.ADD, add_grad)
    registry.register_binary(OpType.SUBTRACT, subtract_grad)
    registry.register_binary(OpType.MULTIPLY, multiply_grad)
    registry.register_binary(OpType.DIVIDE, divide_grad)
    registry.register_binary(OpType.MATMUL, matmul_grad)
    registry.register_unary(OpType.TRANSPOSE, transpose_grad)
    registry.register_unary(OpType.RESHAPE, reshape_grad)
