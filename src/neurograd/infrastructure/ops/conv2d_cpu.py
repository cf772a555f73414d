"""
CPU (NumPy) Conv2D kernels, forward and backward.

Tensor layout
-------------
Inputs are NCHW by default; ``data_format="NHWC"`` is accepted and converted
at the kernel boundary. Filters are always laid out as
``(C_out, C_in, K_h, K_w)``.

- N: batch size
- C: channels
- H: height
- W: width

Padding
-------
``padding`` is an integer (symmetric), an ``(p_h, p_w)`` pair, or one of the
modes:

- ``"valid"``: no padding,
- ``"same"``: total padding ``max(0, (ceil(in / s) - 1) * s + k - in)`` split
  with the smaller half before,
- ``"full"``: ``k - 1`` on each side.

The forward pass gathers strided windows of the padded input (im2col through
`sliding_window_view`) and contracts them with the filter. The backward pass
reuses the same correlation: the input gradient is a stride-1 "full"
correlation of the stride-dilated output gradient with the spatially flipped,
channel-swapped filter, cropped back to the input window.
"""

from __future__ import annotations

import math
from typing import Any, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

Padding = Union[str, int, Tuple[int, int]]


def _pair(v: int | Tuple[int, int]) -> Tuple[int, int]:
    """
    Normalize an integer or pair into a 2-tuple.
    """
    return tuple(v) if isinstance(v, (tuple, list)) else (int(v), int(v))  # type: ignore[return-value]


def resolve_padding(size: int, k: int, s: int, padding: Union[str, int]) -> Tuple[int, int]:
    """
    Resolve a padding argument to ``(before, after)`` for one spatial axis.

    Parameters
    ----------
    size : int
        Input extent along the axis.
    k : int
        Kernel extent along the axis.
    s : int
        Stride along the axis.
    padding : str or int
        ``"valid"``, ``"same"``, ``"full"`` or an explicit symmetric amount.

    Returns
    -------
    tuple[int, int]
        Padding added before and after the axis.

    Raises
    ------
    ValueError
        If the mode is unknown or the amount is negative.
    """
    if isinstance(padding, str):
        mode = padding.lower()
        if mode == "valid":
            return 0, 0
        if mode == "same":
            total = max(0, (math.ceil(size / s) - 1) * s + k - size)
            return total // 2, total - total // 2
        if mode == "full":
            return k - 1, k - 1
        raise ValueError(f"Unknown padding mode: {padding!r}")
    p = int(padding)
    if p < 0:
        raise ValueError(f"padding must be non-negative, got {p}")
    return p, p


def resolve_padding2d(
    hw: Tuple[int, int], k: Tuple[int, int], s: Tuple[int, int], padding: Padding
) -> Tuple[Tuple[int, int], Tuple[int, int]]:
    """
    Resolve a padding argument for both spatial axes.
    """
    if isinstance(padding, str):
        ph = pw = padding
    else:
        ph, pw = _pair(padding)
    return (
        resolve_padding(hw[0], k[0], s[0], ph),
        resolve_padding(hw[1], k[1], s[1], pw),
    )


def to_nchw(x: np.ndarray, data_format: str) -> np.ndarray:
    fmt = data_format.upper()
    if fmt == "NCHW":
        return x
    if fmt == "NHWC":
        return np.transpose(x, (0, 3, 1, 2))
    raise ValueError(f"Unsupported data_format: {data_format!r}")


def from_nchw(x: np.ndarray, data_format: str) -> np.ndarray:
    return np.transpose(x, (0, 2, 3, 1)) if data_format.upper() == "NHWC" else x


def _windows(
    x_pad: np.ndarray, k: Tuple[int, int], s: Tuple[int, int]
) -> np.ndarray:
    """
    Strided windows of shape (N, C, H_out, W_out, K_h, K_w).
    """
    win = sliding_window_view(x_pad, k, axis=(2, 3))
    return win[:, :, :: s[0], :: s[1], :, :]


def correlate2d_nchw(
    x: np.ndarray,
    w: np.ndarray,
    stride: Tuple[int, int],
    pads: Tuple[Tuple[int, int], Tuple[int, int]],
) -> np.ndarray:
    """
    Cross-correlate an NCHW input with a (C_out, C_in, K_h, K_w) filter.
    """
    (pt, pb), (pl, pr) = pads
    x_pad = np.pad(x, ((0, 0), (0, 0), (pt, pb), (pl, pr)), mode="constant")
    win = _windows(x_pad, (w.shape[2], w.shape[3]), stride)
    return np.einsum("nchwkl,ockl->nohw", win, w, optimize=True)


def _conv_config(x_nchw: np.ndarray, w: np.ndarray, params: Mapping[str, Any]):
    s = _pair(params.get("stride", 1))
    if min(s) < 1:
        raise ValueError(f"stride must be positive, got {s}")
    k = (w.shape[2], w.shape[3])
    pads = resolve_padding2d(
        (x_nchw.shape[2], x_nchw.shape[3]), k, s, params.get("padding", "valid")
    )
    return s, k, pads


def conv2d_forward_cpu(
    x: np.ndarray,
    w: np.ndarray,
    b: Optional[np.ndarray],
    params: Mapping[str, Any],
) -> np.ndarray:
    """
    Compute the forward pass of a 2D convolution (CPU, NumPy).

    Parameters
    ----------
    x : np.ndarray
        Input of shape (N, C_in, H, W), or (N, H, W, C_in) for NHWC.
    w : np.ndarray
        Filter of shape (C_out, C_in, K_h, K_w).
    b : Optional[np.ndarray]
        Optional bias of shape (C_out,).
    params : Mapping[str, Any]
        ``stride``, ``padding`` and ``data_format``.

    Returns
    -------
    np.ndarray
        Output of shape (N, C_out, H_out, W_out) (or NHWC), where
        ``H_out = (H + p_top + p_bottom - K_h) // s_h + 1``.

    Raises
    ------
    ValueError
        If ranks, channel counts or the bias shape do not match, or if the
        padded input is smaller than the kernel.
    """
    fmt = str(params.get("data_format", "NCHW"))
    if x.ndim != 4 or w.ndim != 4:
        raise ValueError(
            f"conv2d expects 4D input and filter, got {x.shape} and {w.shape}"
        )
    xc = to_nchw(x, fmt)

    C_out, C_in, K_h, K_w = w.shape
    if xc.shape[1] != C_in:
        raise ValueError(f"in_channels mismatch: x has {xc.shape[1]}, weight has {C_in}")
    if b is not None and (b.ndim != 1 or b.shape[0] != C_out):
        raise ValueError(f"bias shape mismatch: expected ({C_out},), got {b.shape}")

    s, k, pads = _conv_config(xc, w, params)
    H_pad = xc.shape[2] + sum(pads[0])
    W_pad = xc.shape[3] + sum(pads[1])
    if H_pad < K_h or W_pad < K_w:
        raise ValueError(
            f"kernel {k} is larger than the padded input ({H_pad}, {W_pad})"
        )

    y = correlate2d_nchw(xc, w, s, pads)
    if b is not None:
        y = y + b.reshape(1, C_out, 1, 1)
    return from_nchw(y.astype(np.result_type(x, w), copy=False), fmt)


def conv2d_backward_cpu(
    grad_out: np.ndarray,
    x: np.ndarray,
    w: np.ndarray,
    params: Mapping[str, Any],
    with_bias: bool,
) -> Tuple[np.ndarray, np.ndarray, Optional[np.ndarray]]:
    """
    Compute the backward pass of a 2D convolution (CPU, NumPy).

    Parameters
    ----------
    grad_out : np.ndarray
        Gradient of the output, in the layout given by ``data_format``.
    x : np.ndarray
        Forward input.
    w : np.ndarray
        Forward filter of shape (C_out, C_in, K_h, K_w).
    params : Mapping[str, Any]
        Forward ``stride``, ``padding`` and ``data_format``.
    with_bias : bool
        Whether the forward pass used a bias.

    Returns
    -------
    tuple
        ``(grad_x, grad_w, grad_b)``; ``grad_b`` is None without a bias.
    """
    fmt = str(params.get("data_format", "NCHW"))
    xc = to_nchw(x, fmt)
    g = to_nchw(grad_out, fmt)

    s, k, pads = _conv_config(xc, w, params)
    (pt, pb), (pl, pr) = pads
    N, C_in, H, W = xc.shape
    C_out, _, K_h, K_w = w.shape
    H_out, W_out = g.shape[2], g.shape[3]

    # grad_w: im2col(x)^T @ grad_out
    x_pad = np.pad(xc, ((0, 0), (0, 0), (pt, pb), (pl, pr)), mode="constant")
    win = _windows(x_pad, k, s)
    cols = win.transpose(0, 2, 3, 1, 4, 5).reshape(N * H_out * W_out, C_in * K_h * K_w)
    g_flat = g.transpose(0, 2, 3, 1).reshape(N * H_out * W_out, C_out)
    grad_w = (cols.T @ g_flat).T.reshape(w.shape)

    # grad_x: full correlation of the dilated gradient with the flipped filter
    g_dil = np.zeros(
        (N, C_out, (H_out - 1) * s[0] + 1, (W_out - 1) * s[1] + 1), dtype=g.dtype
    )
    g_dil[:, :, :: s[0], :: s[1]] = g
    w_rot = np.ascontiguousarray(w[:, :, ::-1, ::-1].transpose(1, 0, 2, 3))
    gx_part = correlate2d_nchw(
        g_dil, w_rot, (1, 1), ((K_h - 1, K_h - 1), (K_w - 1, K_w - 1))
    )

    grad_x_pad = np.zeros((N, C_in, H + pt + pb, W + pl + pr), dtype=gx_part.dtype)
    grad_x_pad[:, :, : gx_part.shape[2], : gx_part.shape[3]] = gx_part
    grad_x = grad_x_pad[:, :, pt : pt + H, pl : pl + W]

    grad_b = g.sum(axis=(0, 2, 3)) if with_bias else None
    return from_nchw(grad_x, fmt), grad_w, grad_b


def conv2d_cpu(inputs: Sequence[np.ndarray], params: Mapping[str, Any]) -> np.ndarray:
    """
    Operation-library kernel: inputs ``[x, w]`` or ``[x, w, b]``.
    """
    if len(inputs) not in (2, 3):
        raise ValueError(f"conv2d expects 2 or 3 inputs, got {len(inputs)}")
    x, w = inputs[0], inputs[1]
    b = inputs[2] if len(inputs) == 3 else None
    return conv2d_forward_cpu(x, w, b, params)
