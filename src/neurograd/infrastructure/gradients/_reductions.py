"""
Backward rules for reductions.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Sequence

import numpy as np

from ...domain._op_type import OpType
from ..ops._broadcast import expand_reduced, normalize_axes
from ._registry import GradientRegistry


def _axes_and_keep(x: np.ndarray, params: Mapping[str, Any]):
    return normalize_axes(params.get("axes"), x.ndim), bool(params.get("keep_dims", False))


def sum_grad(
    g: np.ndarray,
    inputs: Sequence[np.ndarray],
    out: np.ndarray,
    params: Mapping[str, Any],
    saved: Dict[str, Any],
) -> np.ndarray:
    x = inputs[0]
    axes, keep = _axes_and_keep(x, params)
    return np.array(expand_reduced(g, x.shape, axes, keep))


def mean_grad(
    g: np.ndarray,
    inputs: Sequence[np.ndarray],
    out: np.ndarray,
    params: Mapping[str, Any],
    saved: Dict[str, Any],
) -> np.ndarray:
    x = inputs[0]
    axes, keep = _axes_and_keep(x, params)
    count = int(np.prod([x.shape[a] for a in axes], dtype=np.int64))
    return expand_reduced(g, x.shape, axes, keep) / max(count, 1)


def extremum_grad(
    g: np.ndarray,
    inputs: Sequence[np.ndarray],
    out: np.ndarray,
    params: Mapping[str, Any],
    saved: Dict[str, Any],
) -> np.ndarray:
    """
    Route the gradient to the positions equal to the extremum.

    Ties share the gradient evenly.
    """
    x = inputs[0]
    axes, keep = _axes_and_keep(x, params)
    mask = x == expand_reduced(out, x.shape, axes, keep)
    ties = np.sum(mask, axis=axes, keepdims=True)
    share = expand_reduced(g, x.shape, axes, keep) / np.broadcast_to(ties, x.shape)
    return np.where(mask, share, 0.0)


def index_grad(
    g: np.ndarray,
    inputs: Sequence[np.ndarray],
    out: np.ndarray,
    params: Mapping[str, Any],
    saved: Dict[str, Any],
) -> None:
    return None


def register_reduction_gradients(registry: GradientRegistry) -> None:
    registry.register_parameterized(OpType.SUM, sum_grad)
    registry.register_parameterized(OpType.MEAN, mean_grad)
    registry.register_parameterized(OpType.MAX, extremum_grad)
    registry.register_parameterized(OpType.MIN, extremum_grad)
    registry.register_parameterized(OpType.ARGMAX, index_grad)
    registry.register_parameterized(OpType.ARGMIN, index_grad)
