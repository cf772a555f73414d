"""
CPU (NumPy) kernels for elementwise arithmetic and linear-algebra operations.

All binary kernels follow NumPy broadcasting. Division by zero does not
raise: the result holds ``±inf`` / ``nan`` and a `NumericWarning` is emitted.
"""

from __future__ import annotations

import warnings
from typing import Any, Mapping, Sequence

import numpy as np

from ...domain._errors import NumericWarning


def _expect_inputs(inputs: Sequence[np.ndarray], n: int, op: str) -> None:
    if len(inputs) != n:
        raise ValueError(f"{op} expects {n} input(s), got {len(inputs)}")


def add_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]) -> np.ndarray:
    _expect_inputs(inputs, 2, "add")
    a, b = inputs
    return np.add(a, b)


def subtract_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]) -> np.ndarray:
    _expect_inputs(inputs, 2, "subtract")
    a, b = inputs
    return np.subtract(a, b)


def multiply_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]) -> np.ndarray:
    _expect_inputs(inputs, 2, "multiply")
    a, b = inputs
    return np.multiply(a, b)


def divide_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]) -> np.ndarray:
    """
    Elementwise ``a / b``.

    Zero divisors produce ``±inf`` (or ``nan`` for ``0 / 0``) and emit a
    `NumericWarning`.
    """
    _expect_inputs(inputs, 2, "divide")
    a, b = inputs
    if np.any(np.asarray(b) == 0):
        warnings.warn(
            "divide: division by zero produced inf/nan values",
            NumericWarning,
            stacklevel=2,
        )
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.true_divide(a, b)


def matmul_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]) -> np.ndarray:
    """
    Matrix product of the last two axes, batched over leading axes.

    Raises
    ------
    ValueError
        If an operand has fewer than two dimensions or the inner dimensions
        do not agree.
    """
    _expect_inputs(inputs, 2, "matmul")
    a, b = inputs
    if a.ndim < 2 or b.ndim < 2:
        raise ValueError(
            f"matmul requires operands with ndim >= 2, got {a.shape} and {b.shape}"
        )
    if a.shape[-1] != b.shape[-2]:
        raise ValueError(f"matmul shape mismatch: {a.shape} @ {b.shape}")
    return np.matmul(a, b)


def transpose_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]) -> np.ndarray:
    """
    Permute axes; without ``axes`` the axis order is reversed.
    """
    _expect_inputs(inputs, 1, "transpose")
    (x,) = inputs
    axes = params.get("axes")
    return np.transpose(x, axes=None if axes is None else tuple(axes))


def reshape_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]) -> np.ndarray:
    _expect_inputs(inputs, 1, "reshape")
    (x,) = inputs
    if "shape" not in params:
        raise ValueError("reshape requires a 'shape' parameter")
    return np.reshape(x, tuple(params["shape"]))
