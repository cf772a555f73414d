"""
CPU (NumPy) kernels for elementwise math functions and activations.

Parameterized activations read their hyperparameters from ``params``:

- ``leaky_relu``: ``alpha`` (default 0.01)
- ``elu``: ``alpha`` (default 1.0)
- ``gelu``: ``approximate`` (default False, exact erf form)
- ``swish``: ``beta`` (default 1.0)
- ``softmax``: ``axis`` (default -1)

Domain errors (log of non-positive values, sqrt of negative values) do not
raise; they produce ``-inf`` / ``nan`` and emit a `NumericWarning`.
"""

from __future__ import annotations

import math
import warnings
from typing import Any, Mapping, Sequence

import numpy as np
from scipy.stats import norm

from ...domain._errors import NumericWarning
from .arithmetic_cpu import _expect_inputs

_SQRT_2_OVER_PI = math.sqrt(2.0 / math.pi)


def _unary(inputs: Sequence[np.ndarray], op: str) -> np.ndarray:
    _expect_inputs(inputs, 1, op)
    return inputs[0]


def stable_sigmoid(x: np.ndarray) -> np.ndarray:
    """
    Numerically stable logistic function.
    """
    x = np.asarray(x)
    dtype = x.dtype if np.issubdtype(x.dtype, np.floating) else np.float64
    out = np.empty(x.shape, dtype=dtype)
    pos = x >= 0
    out[pos] = 1.0 / (1.0 + np.exp(-x[pos]))
    ex = np.exp(x[~pos])
    out[~pos] = ex / (1.0 + ex)
    return out


def gelu_cdf(x: np.ndarray, approximate: bool) -> np.ndarray:
    """
    Gaussian CDF term Φ(x) of GELU (or its tanh approximation).
    """
    if approximate:
        return 0.5 * (1.0 + np.tanh(_SQRT_2_OVER_PI * (x + 0.044715 * x**3)))
    return norm.cdf(x).astype(np.result_type(x, np.float32))


def exp_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]) -> np.ndarray:
    return np.exp(_unary(inputs, "exp"))


def log_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]) -> np.ndarray:
    x = _unary(inputs, "log")
    if np.any(x <= 0):
        warnings.warn(
            "log: non-positive input produced -inf/nan values",
            NumericWarning,
            stacklevel=2,
        )
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.log(x)


def sqrt_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]) -> np.ndarray:
    x = _unary(inputs, "sqrt")
    if np.any(x < 0):
        warnings.warn(
            "sqrt: negative input produced nan values",
            NumericWarning,
            stacklevel=2,
        )
    with np.errstate(invalid="ignore"):
        return np.sqrt(x)


def sigmoid_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]) -> np.ndarray:
    return stable_sigmoid(_unary(inputs, "sigmoid"))


def tanh_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]) -> np.ndarray:
    return np.tanh(_unary(inputs, "tanh"))


def relu_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]) -> np.ndarray:
    x = _unary(inputs, "relu")
    return np.where(x > 0, x, np.zeros_like(x))


def leaky_relu_cpu(
    inputs: Sequence[np.ndarray], params: Mapping[str, Any]
) -> np.ndarray:
    x = _unary(inputs, "leaky_relu")
    alpha = float(params.get("alpha", 0.01))
    return np.where(x > 0, x, alpha * x)


def elu_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]) -> np.ndarray:
    x = _unary(inputs, "elu")
    alpha = float(params.get("alpha", 1.0))
    return np.where(x > 0, x, alpha * np.expm1(np.minimum(x, 0)))


def gelu_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]) -> np.ndarray:
    x = _unary(inputs, "gelu")
    return x * gelu_cdf(x, bool(params.get("approximate", False)))


def swish_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]) -> np.ndarray:
    x = _unary(inputs, "swish")
    beta = float(params.get("beta", 1.0))
    return x * stable_sigmoid(beta * x)


def softmax_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]) -> np.ndarray:
    """
    Softmax along ``axis`` (default -1), shifted by the max for stability.
    """
    x = _unary(inputs, "softmax")
    axis = int(params.get("axis", -1))
    shifted = x - np.max(x, axis=axis, keepdims=True)
    e = np.exp(shifted)
    return e / np.sum(e, axis=axis, keepdims=True)
