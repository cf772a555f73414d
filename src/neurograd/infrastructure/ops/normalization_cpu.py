"""
CPU (NumPy) kernels for batch, layer, instance and group normalization.

Every variant takes inputs ``[x]``, ``[x, gamma]`` or ``[x, gamma, beta]`` and
computes ``y = x_hat * gamma + beta`` with

    x_hat = (x - mean) / sqrt(var + epsilon)

where mean and (biased) variance are taken over the variant's reduction axes:

- ``batch_norm``: every axis except the channel axis 1,
- ``layer_norm``: ``axes`` (default the last axis),
- ``instance_norm``: the spatial axes ``2..``,
- ``group_norm``: channels split into ``groups`` groups, statistics per
  (sample, group) over the group's channels and spatial axes.

The affine parameters are laid out over the "parameter axes": the channel
axis for batch, instance and group normalization, and the normalized axes
for layer normalization. Statistics are always computed from the current
batch; no running averages are kept.

The forward kernels save ``x_hat`` and ``1 / sqrt(var + epsilon)`` so that the
backward pass can use the closed form

    dx = inv_std / m * (m * dx_hat - sum(dx_hat) - x_hat * sum(dx_hat * x_hat))
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import numpy as np

from ._broadcast import normalize_axes

DEFAULT_EPSILON = 1e-5


def _param_view(p: np.ndarray, x_shape: Tuple[int, ...], param_axes: Tuple[int, ...]) -> np.ndarray:
    expected = tuple(x_shape[a] for a in param_axes)
    if p.size != int(np.prod(expected, dtype=np.int64)):
        raise ValueError(
            f"affine parameter shape {p.shape} does not match expected {expected}"
        )
    view = [1] * len(x_shape)
    for a in param_axes:
        view[a] = x_shape[a]
    return p.reshape(view)


def _layout(
    op: str, x: np.ndarray, params: Mapping[str, Any]
) -> Tuple[Tuple[int, ...], Tuple[int, ...], Tuple[int, ...]]:
    """
    Return ``(work_shape, reduce_axes, param_axes)`` for a variant.

    ``reduce_axes`` index into ``work_shape`` (the grouped shape for group
    normalization, the input shape otherwise); ``param_axes`` index into the
    input shape.
    """
    if op == "batch_norm":
        if x.ndim < 2:
            raise ValueError(f"batch_norm expects ndim >= 2, got shape {x.shape}")
        reduce_axes = tuple(a for a in range(x.ndim) if a != 1)
        return x.shape, reduce_axes, (1,)

    if op == "layer_norm":
        axes = normalize_axes(params.get("axes", -1), x.ndim)
        return x.shape, axes, axes

    if op == "instance_norm":
        if x.ndim < 3:
            raise ValueError(f"instance_norm expects ndim >= 3, got shape {x.shape}")
        return x.shape, tuple(range(2, x.ndim)), (1,)

    if op == "group_norm":
        if x.ndim < 2:
            raise ValueError(f"group_norm expects ndim >= 2, got shape {x.shape}")
        if "groups" not in params:
            raise ValueError("group_norm requires a 'groups' parameter")
        groups = int(params["groups"])
        C = x.shape[1]
        if groups < 1 or C % groups != 0:
            raise ValueError(f"channels ({C}) must be divisible by groups ({groups})")
        work_shape = (x.shape[0], groups, C // groups) + tuple(x.shape[2:])
        return work_shape, tuple(range(2, len(work_shape))), (1,)

    raise ValueError(f"Unknown normalization: {op!r}")


def normalization_forward_cpu(
    op: str, inputs: Sequence[np.ndarray], params: Mapping[str, Any]
) -> Tuple[np.ndarray, Dict[str, Any]]:
    """
    Normalization forward pass (CPU, NumPy).

    Parameters
    ----------
    op : str
        ``"batch_norm"``, ``"layer_norm"``, ``"instance_norm"`` or
        ``"group_norm"``.
    inputs : Sequence[np.ndarray]
        ``[x]``, ``[x, gamma]`` or ``[x, gamma, beta]``.
    params : Mapping[str, Any]
        ``epsilon`` (default 1e-5) plus the variant's layout parameters.

    Returns
    -------
    tuple[np.ndarray, dict]
        The normalized output and the saved statistics.
    """
    if not 1 <= len(inputs) <= 3:
        raise ValueError(f"{op} expects 1 to 3 inputs, got {len(inputs)}")
    x = inputs[0]
    if not np.issubdtype(x.dtype, np.floating):
        x = x.astype(np.float64)
    eps = float(params.get("epsilon", DEFAULT_EPSILON))
    work_shape, reduce_axes, param_axes = _layout(op, x, params)

    xw = x.reshape(work_shape)
    mean = xw.mean(axis=reduce_axes, keepdims=True)
    var = xw.var(axis=reduce_axes, keepdims=True)
    inv_std = 1.0 / np.sqrt(var + eps)
    x_hat = ((xw - mean) * inv_std).reshape(x.shape)

    y = x_hat
    if len(inputs) >= 2:
        y = y * _param_view(inputs[1], x.shape, param_axes)
    if len(inputs) == 3:
        y = y + _param_view(inputs[2], x.shape, param_axes)

    count = int(np.prod([work_shape[a] for a in reduce_axes], dtype=np.int64))
    saved = {
        "normalized": x_hat,
        "inv_std": inv_std,
        "mean": mean,
        "var": var,
        "work_shape": work_shape,
        "reduce_axes": reduce_axes,
        "param_axes": param_axes,
        "count": count,
    }
    return y.astype(x.dtype, copy=False), saved


def normalization_backward_cpu(
    grad_out: np.ndarray,
    inputs: Sequence[np.ndarray],
    saved: Mapping[str, Any],
) -> Tuple[Optional[np.ndarray], ...]:
    """
    Normalization backward pass (CPU, NumPy).

    Returns
    -------
    tuple
        One gradient per forward input, in input order.
    """
    x = inputs[0]
    x_hat = saved["normalized"]
    inv_std = saved["inv_std"]
    work_shape = tuple(saved["work_shape"])
    reduce_axes = tuple(saved["reduce_axes"])
    param_axes = tuple(saved["param_axes"])
    m = float(saved["count"])

    g = np.asarray(grad_out)
    dx_hat = g
    if len(inputs) >= 2:
        dx_hat = g * _param_view(inputs[1], x.shape, param_axes)

    dxh = dx_hat.reshape(work_shape)
    xh = x_hat.reshape(work_shape)
    sum_dxh = dxh.sum(axis=reduce_axes, keepdims=True)
    sum_dxh_xh = (dxh * xh).sum(axis=reduce_axes, keepdims=True)
    dx = (inv_std / m) * (m * dxh - sum_dxh - xh * sum_dxh_xh)

    grads: list = [dx.reshape(x.shape)]
    other_axes = tuple(a for a in range(x.ndim) if a not in param_axes)
    if len(inputs) >= 2:
        grads.append((g * x_hat).sum(axis=other_axes).reshape(inputs[1].shape))
    if len(inputs) == 3:
        grads.append(g.sum(axis=other_axes).reshape(inputs[2].shape))
    return tuple(grads)


def batch_norm_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]):
    return normalization_forward_cpu("batch_norm", inputs, params)


def layer_norm_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]):
    return normalization_forward_cpu("layer_norm", inputs, params)


def instance_norm_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]):
    return normalization_forward_cpu("instance_norm", inputs, params)


def group_norm_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]):
    return normalization_forward_cpu("group_norm", inputs, params)
