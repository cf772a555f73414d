"""
CPU (NumPy) reduction kernels.

``sum``, ``mean``, ``max`` and ``min`` accept ``axes`` (int, sequence or None
for all axes) and ``keep_dims`` (default False). ``argmax`` / ``argmin``
accept a single ``axis`` (default None, flattened) and ``keep_dims``; their
integer outputs are not differentiable.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

import numpy as np

from ._broadcast import normalize_axes
from .arithmetic_cpu import _expect_inputs


def _reduce(fn, inputs: Sequence[np.ndarray], params: Mapping[str, Any], op: str):
    _expect_inputs(inputs, 1, op)
    (x,) = inputs
    axes = normalize_axes(params.get("axes"), x.ndim)
    keep_dims = bool(params.get("keep_dims", False))
    return fn(x, axis=axes, keepdims=keep_dims)


def sum_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]) -> np.ndarray:
    return _reduce(np.sum, inputs, params, "sum")


def mean_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]) -> np.ndarray:
    return _reduce(np.mean, inputs, params, "mean")


def max_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]) -> np.ndarray:
    return _reduce(np.max, inputs, params, "max")


def min_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]) -> np.ndarray:
    return _reduce(np.min, inputs, params, "min")


def _arg_reduce(fn, inputs: Sequence[np.ndarray], params: Mapping[str, Any], op: str):
    _expect_inputs(inputs, 1, op)
    (x,) = inputs
    axis = params.get("axis")
    keep_dims = bool(params.get("keep_dims", False))
    return fn(x, axis=None if axis is None else int(axis), keepdims=keep_dims)


def argmax_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]) -> np.ndarray:
    return _arg_reduce(np.argmax, inputs, params, "argmax")


def argmin_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]) -> np.ndarray:
    return _arg_reduce(np.argmin, inputs, params, "argmin")
