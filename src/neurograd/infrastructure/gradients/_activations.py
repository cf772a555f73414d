"""
Backward rules for elementwise math functions and activations.

Rules registered with ``uses_output=True`` express the derivative through the
forward output (``exp``, ``sqrt``, ``sigmoid``, ``tanh``); the parameterized
activations read the same hyperparameter defaults as their forward kernels.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Mapping, Sequence

import numpy as np
from scipy.stats import norm

from ...domain._op_type import OpType
from ..ops.unary_cpu import gelu_cdf, stable_sigmoid
from ._registry import GradientRegistry

_SQRT_2_OVER_PI = math.sqrt(2.0 / math.pi)


def exp_grad(g: np.ndarray, x: np.ndarray, out: np.ndarray) -> np.ndarray:
    return g * out


def log_grad(g: np.ndarray, x: np.ndarray, params: Mapping[str, Any]) -> np.ndarray:
    with np.errstate(divide="ignore", invalid="ignore"):
        return g / x


def sqrt_grad(g: np.ndarray, x: np.ndarray, out: np.ndarray) -> np.ndarray:
    with np.errstate(divide="ignore", invalid="ignore"):
        return g / (2.0 * out)


def sigmoid_grad(g: np.ndarray, x: np.ndarray, out: np.ndarray) -> np.ndarray:
    return g * out * (1.0 - out)


def tanh_grad(g: np.ndarray, x: np.ndarray, out: np.ndarray) -> np.ndarray:
    return g * (1.0 - out * out)


def relu_grad(g: np.ndarray, x: np.ndarray, params: Mapping[str, Any]) -> np.ndarray:
    return g * (x > 0)


def leaky_relu_grad(
    g: np.ndarray,
    inputs: Sequence[np.ndarray],
    out: np.ndarray,
    params: Mapping[str, Any],
    saved: Dict[str, Any],
) -> np.ndarray:
    x = inputs[0]
    alpha = float(params.get("alpha", 0.01))
    return g * np.where(x > 0, 1.0, alpha)


def elu_grad(
    g: np.ndarray,
    inputs: Sequence[np.ndarray],
    out: np.ndarray,
    params: Mapping[str, Any],
    saved: Dict[str, Any],
) -> np.ndarray:
    x = inputs[0]
    alpha = float(params.get("alpha", 1.0))
    return g * np.where(x > 0, 1.0, alpha * np.exp(np.minimum(x, 0)))


def gelu_grad(
    g: np.ndarray,
    inputs: Sequence[np.ndarray],
    out: np.ndarray,
    params: Mapping[str, Any],
    saved: Dict[str, Any],
) -> np.ndarray:
    """
    Derivative of ``x * Φ(x)``; the tanh approximation is differentiated
    as written when ``approximate`` is set.
    """
    x = inputs[0]
    if params.get("approximate", False):
        inner = _SQRT_2_OVER_PI * (x + 0.044715 * x**3)
        t = np.tanh(inner)
        d_inner = _SQRT_2_OVER_PI * (1.0 + 3.0 * 0.044715 * x**2)
        return g * (0.5 * (1.0 + t) + 0.5 * x * (1.0 - t * t) * d_inner)
    return g * (gelu_cdf(x, False) + x * norm.pdf(x))


def swish_grad(
    g: np.ndarray,
    inputs: Sequence[np.ndarray],
    out: np.ndarray,
    params: Mapping[str, Any],
    saved: Dict[str, Any],
) -> np.ndarray:
    x = inputs[0]
    beta = float(params.get("beta", 1.0))
    s = stable_sigmoid(beta * x)
    return g * (s + beta * x * s * (1.0 - s))


def softmax_grad(
    g: np.ndarray,
    inputs: Sequence[np.ndarray],
    out: np.ndarray,
    params: Mapping[str, Any],
    saved: Dict[str, Any],
) -> np.ndarray:
    axis = int(params.get("axis", -1))
    return out * (g - np.sum(g * out, axis=axis, keepdims=True))


def register_activation_gradients(registry: GradientRegistry) -> None:
    registry.register_unary(OpType.EXP, exp_grad, uses_output=True)
    registry.register_unary(OpType.LOG, log_grad)
    registry.register_unary(OpType.SQRT, sqrt_grad, uses_output=True)
    registry.register_unary(OpType.SIGMOID, sigmoid_grad, uses_output=True)
    registry.register_unary(OpType.TANH, tanh_grad, uses_output=True)
    registry.register_unary(OpType.RELU, relu_grad)
    registry.register_parameterized(OpType.LEAKY_RELU, leaky_relu_grad)
    registry.register_parameterized(OpType.ELU, elu_grad)
    registry.register_parameterized(OpType.GELU, gelu_grad)
    registry.register_parameterized(OpType.SWISH, swish_grad)
    registry.register_parameterized(OpType.SOFTMAX, softmax_grad)
