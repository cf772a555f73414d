"""
Broadcast helpers shared by forward kernels and gradient rules.

`sum_to_shape` is the inverse of broadcasting: if an operand of shape
`target_shape` was broadcast to `grad.shape` in the forward pass, summing the
gradient over the broadcast axes recovers a gradient of the operand's shape.

The remaining helpers normalize reduction axes and re-expand reduced
gradients so that reduction rules can broadcast them back over their input.
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence, Tuple, Union

import numpy as np

Axes = Optional[Union[int, Sequence[int]]]


def _sum_to_shape_reduce_axes(
    src_shape: tuple[int, ...], target_shape: tuple[int, ...]
) -> tuple[tuple[int, ...], tuple[int, ...], int]:
    """
    Compute the padded target shape and reduction axes for `sum_to_shape`.

    Parameters
    ----------
    src_shape:
        The source (broadcast) shape to reduce from.
    target_shape:
        The target (pre-broadcast) shape to reduce to.

    Returns
    -------
    padded_target:
        `target_shape` left-padded with ones to match `len(src_shape)`.
    reduce_axes:
        Axes of the source to sum over with `keepdims=True`.
    pad:
        Number of leading dimensions added to the target.

    Raises
    ------
    ValueError
        If `target_shape` has higher rank than `src_shape`, or if any dimension
        is not broadcast-compatible (target dim must be 1 or equal to source dim).
    """
    src = tuple(int(d) for d in src_shape)
    tgt = tuple(int(d) for d in target_shape)

    if len(tgt) > len(src):
        raise ValueError(f"target_shape rank {len(tgt)} > src rank {len(src)}")

    pad = len(src) - len(tgt)
    padded_tgt = (1,) * pad + tgt

    for i, (sd, td) in enumerate(zip(src, padded_tgt)):
        if td not in (1, sd):
            raise ValueError(
                f"Cannot sum_to_shape from {src_shape} to {target_shape}: "
                f"dim mismatch at axis {i}: src={sd}, target={td}"
            )

    reduce_axes = tuple(
        i for i, (sd, td) in enumerate(zip(src, padded_tgt)) if td == 1 and sd != 1
    )

    return padded_tgt, reduce_axes, pad


def sum_to_shape(x: np.ndarray, target_shape: Iterable[int]) -> np.ndarray:
    """
    Sum-reduce `x` to `target_shape` (inverse of broadcasting).

    Parameters
    ----------
    x : np.ndarray
        Array in the broadcast shape.
    target_shape : Iterable[int]
        Shape the array was broadcast from.

    Returns
    -------
    np.ndarray
        Array of shape `target_shape`.

    Raises
    ------
    ValueError
        If `target_shape` could not have been broadcast to `x.shape`.
    """
    tgt_shape = tuple(int(d) for d in target_shape)
    _, reduce_axes, pad = _sum_to_shape_reduce_axes(x.shape, tgt_shape)

    if reduce_axes:
        x = np.sum(x, axis=reduce_axes, keepdims=True)
    for _ in range(pad):
        x = np.squeeze(x, axis=0)

    return x.reshape(tgt_shape)


def can_sum_to_shape(src_shape: Sequence[int], target_shape: Sequence[int]) -> bool:
    """
    Return True if `target_shape` broadcasts to `src_shape`.
    """
    try:
        _sum_to_shape_reduce_axes(tuple(src_shape), tuple(target_shape))
    except ValueError:
        return False
    return True


def can_broadcast_to(src_shape: Sequence[int], target_shape: Sequence[int]) -> bool:
    """
    Return True if an array of `src_shape` broadcasts to exactly `target_shape`.
    """
    try:
        return np.broadcast_shapes(tuple(src_shape), tuple(target_shape)) == tuple(
            target_shape
        )
    except ValueError:
        return False


def normalize_axes(axes: Axes, ndim: int) -> Tuple[int, ...]:
    """
    Normalize an axis argument to a sorted tuple of non-negative axes.

    ``None`` selects every axis.

    Raises
    ------
    ValueError
        If an axis is out of range or repeated.
    """
    if axes is None:
        return tuple(range(ndim))
    if isinstance(axes, (int, np.integer)):
        axes = (int(axes),)

    out = []
    for a in axes:
        a = int(a)
        if not -ndim <= a < max(ndim, 1):
            raise ValueError(f"axis {a} is out of bounds for array of dimension {ndim}")
        out.append(a % ndim if ndim else 0)
    if len(set(out)) != len(out):
        raise ValueError(f"repeated axis in {tuple(axes)}")
    return tuple(sorted(out))


def expand_reduced(
    grad: np.ndarray, input_shape: Sequence[int], axes: Tuple[int, ...], keep_dims: bool
) -> np.ndarray:
    """
    Broadcast the gradient of a reduction back over the reduced axes.

    Parameters
    ----------
    grad : np.ndarray
        Gradient of the reduced output.
    input_shape : Sequence[int]
        Shape of the reduction input.
    axes : tuple[int, ...]
        Normalized reduction axes.
    keep_dims : bool
        Whether the forward pass kept the reduced axes.

    Returns
    -------
    np.ndarray
        Gradient broadcast to `input_shape`.
    """
    if not keep_dims:
        grad = np.expand_dims(grad, axis=axes) if axes else grad
    return np.broadcast_to(grad, tuple(input_shape))
