"""
CPU (NumPy) kernels for 2D pooling, forward and backward.

Implemented pooling variants
-----------------------------
- MaxPool2D (forward + backward)
- AveragePool2D (forward + backward)

Parameters
----------
- ``kernel_size``: int or pair (required)
- ``stride``: int or pair, defaults to ``kernel_size``
- ``padding``: ``"valid"`` (default), ``"same"``, int or pair
- ``data_format``: ``"NCHW"`` (default) or ``"NHWC"``

Design notes
------------
- MaxPool uses `-inf` padding so padded values never win. Ties inside a
  window go to the first maximum in row-major order. The winning input
  position of every window is recorded in the forward pass and the backward
  pass routes the gradient there only.
- AvgPool divides by the number of non-padding elements in each window, so
  windows clipped by padding average over the real values only.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Sequence, Tuple

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from .conv2d_cpu import _pair, from_nchw, resolve_padding2d, to_nchw


def _pool_config(x_nchw: np.ndarray, params: Mapping[str, Any]):
    if "kernel_size" not in params:
        raise ValueError("pooling requires a 'kernel_size' parameter")
    k = _pair(params["kernel_size"])
    stride = params.get("stride")
    s = _pair(k if stride is None else stride)
    if min(k) < 1 or min(s) < 1:
        raise ValueError(f"kernel_size and stride must be positive, got {k} and {s}")
    pads = resolve_padding2d(
        (x_nchw.shape[2], x_nchw.shape[3]), k, s, params.get("padding", "valid")
    )
    H_pad = x_nchw.shape[2] + sum(pads[0])
    W_pad = x_nchw.shape[3] + sum(pads[1])
    if H_pad < k[0] or W_pad < k[1]:
        raise ValueError(f"kernel {k} is larger than the padded input ({H_pad}, {W_pad})")
    return k, s, pads


def _windows(x_pad: np.ndarray, k: Tuple[int, int], s: Tuple[int, int]) -> np.ndarray:
    win = sliding_window_view(x_pad, k, axis=(2, 3))
    return win[:, :, :: s[0], :: s[1], :, :]


def _check_4d(x: np.ndarray) -> None:
    if x.ndim != 4:
        raise ValueError(f"2D pooling expects a 4D input, got shape {x.shape}")


def maxpool2d_forward_cpu(
    x: np.ndarray, params: Mapping[str, Any]
) -> Tuple[np.ndarray, np.ndarray]:
    """
    MaxPool2D forward pass (CPU, NumPy).

    Parameters
    ----------
    x : np.ndarray
        Input of shape (N, C, H, W), or (N, H, W, C) for NHWC.
    params : Mapping[str, Any]
        Pooling hyperparameters.

    Returns
    -------
    tuple[np.ndarray, np.ndarray]
        y :
            Pooled output.
        argmax_idx :
            Integer array of shape (N, C, H_out, W_out) holding the flattened
            ``h * W + w`` index into the unpadded input where each maximum
            was selected (-1 for windows that cover padding only).
    """
    _check_4d(x)
    fmt = str(params.get("data_format", "NCHW"))
    xc = to_nchw(x, fmt)
    k, s, ((pt, pb), (pl, pr)) = _pool_config(xc, params)
    W = xc.shape[3]

    work = xc if np.issubdtype(xc.dtype, np.floating) else xc.astype(np.float64)
    x_pad = np.pad(
        work,
        ((0, 0), (0, 0), (pt, pb), (pl, pr)),
        mode="constant",
        constant_values=-np.inf,
    )
    win = _windows(x_pad, k, s)
    N, C, H_out, W_out = win.shape[:4]
    flat = win.reshape(N, C, H_out, W_out, k[0] * k[1])

    local = np.argmax(flat, axis=-1)
    y = np.take_along_axis(flat, local[..., None], axis=-1)[..., 0]

    rows = np.arange(H_out).reshape(1, 1, H_out, 1) * s[0] + local // k[1] - pt
    cols = np.arange(W_out).reshape(1, 1, 1, W_out) * s[1] + local % k[1] - pl
    inside = (rows >= 0) & (rows < xc.shape[2]) & (cols >= 0) & (cols < W)
    argmax_idx = np.where(inside, rows * W + cols, -1).astype(np.int64)

    return from_nchw(y.astype(work.dtype, copy=False), fmt), argmax_idx


def maxpool2d_backward_cpu(
    grad_out: np.ndarray,
    argmax_idx: np.ndarray,
    *,
    x_shape: Tuple[int, ...],
    data_format: str = "NCHW",
) -> np.ndarray:
    """
    MaxPool2D backward pass (CPU, NumPy).

    Gradients are routed only to the input locations that won the max during
    the forward pass; overlapping windows accumulate.
    """
    g = to_nchw(grad_out, data_format)
    N, C = g.shape[0], g.shape[1]
    if data_format.upper() == "NHWC":
        H, W = x_shape[1], x_shape[2]
    else:
        H, W = x_shape[2], x_shape[3]

    grad_flat = np.zeros((N, C, H * W), dtype=g.dtype)
    n_idx, c_idx = np.indices((N, C))
    n_idx = np.broadcast_to(n_idx[:, :, None, None], argmax_idx.shape)
    c_idx = np.broadcast_to(c_idx[:, :, None, None], argmax_idx.shape)
    valid = argmax_idx >= 0
    np.add.at(grad_flat, (n_idx[valid], c_idx[valid], argmax_idx[valid]), g[valid])

    return from_nchw(grad_flat.reshape(N, C, H, W), data_format)


def avgpool2d_forward_cpu(
    x: np.ndarray, params: Mapping[str, Any]
) -> Tuple[np.ndarray, np.ndarray]:
    """
    AvgPool2D forward pass (CPU, NumPy).

    Returns
    -------
    tuple[np.ndarray, np.ndarray]
        y :
            Pooled output.
        counts :
            Array of shape (H_out, W_out) with the number of non-padding
            elements averaged by each window.
    """
    _check_4d(x)
    fmt = str(params.get("data_format", "NCHW"))
    xc = to_nchw(x, fmt)
    k, s, ((pt, pb), (pl, pr)) = _pool_config(xc, params)

    x_pad = np.pad(xc, ((0, 0), (0, 0), (pt, pb), (pl, pr)), mode="constant")
    sums = _windows(x_pad, k, s).sum(axis=(-2, -1))

    mask = np.pad(
        np.ones((1, 1) + xc.shape[2:], dtype=np.int64),
        ((0, 0), (0, 0), (pt, pb), (pl, pr)),
        mode="constant",
    )
    counts = _windows(mask, k, s).sum(axis=(-2, -1))[0, 0]

    y = sums / np.maximum(counts, 1)
    if np.issubdtype(xc.dtype, np.floating):
        y = y.astype(xc.dtype, copy=False)
    return from_nchw(y, fmt), counts


def avgpool2d_backward_cpu(
    grad_out: np.ndarray,
    counts: np.ndarray,
    *,
    x_shape: Tuple[int, ...],
    params: Mapping[str, Any],
) -> np.ndarray:
    """
    AvgPool2D backward pass (CPU, NumPy).

    Each window spreads its gradient evenly over its non-padding elements.
    """
    fmt = str(params.get("data_format", "NCHW"))
    g = to_nchw(grad_out, fmt)
    if fmt.upper() == "NHWC":
        N, H, W, C = x_shape
    else:
        N, C, H, W = x_shape

    template = np.empty((1, 1, H, W))
    k, s, ((pt, pb), (pl, pr)) = _pool_config(template, params)

    grad_x_pad = np.zeros((N, C, H + pt + pb, W + pl + pr), dtype=g.dtype)
    H_out, W_out = g.shape[2], g.shape[3]
    for i in range(H_out):
        h0 = i * s[0]
        for j in range(W_out):
            w0 = j * s[1]
            share = g[:, :, i, j] / max(int(counts[i, j]), 1)
            grad_x_pad[:, :, h0 : h0 + k[0], w0 : w0 + k[1]] += share[:, :, None, None]

    return from_nchw(grad_x_pad[:, :, pt : pt + H, pl : pl + W], fmt)


def max_pool2d_cpu(
    inputs: Sequence[np.ndarray], params: Mapping[str, Any]
) -> Tuple[np.ndarray, Dict[str, Any]]:
    if len(inputs) != 1:
        raise ValueError(f"max_pool2d expects 1 input, got {len(inputs)}")
    y, argmax_idx = maxpool2d_forward_cpu(inputs[0], params)
    return y, {"argmax": argmax_idx}


def avg_pool2d_cpu(
    inputs: Sequence[np.ndarray], params: Mapping[str, Any]
) -> Tuple[np.ndarray, Dict[str, Any]]:
    if len(inputs) != 1:
        raise ValueError(f"avg_pool2d expects 1 input, got {len(inputs)}")
    y, counts = avgpool2d_forward_cpu(inputs[0], params)
    return y, {"counts": counts}
