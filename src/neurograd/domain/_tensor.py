"""
Tensor interface definitions.

The computation graph treats tensors as opaque values: it reads their shape,
dtype and size, hands them to the operation library and never mutates them
in place. This module captures that contract with structural typing so any
array type exposing the same surface (NumPy's `ndarray` in particular) can
flow through the graph.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class ITensor(Protocol):
    """
    Minimal tensor interface consumed by the graph core.

    Notes
    -----
    `numpy.ndarray` satisfies this protocol. Element access follows NumPy
    multi-index semantics (`t[i, j]`).
    """

    @property
    def shape(self) -> tuple[int, ...]:
        """Ordered dimensions of the tensor."""
        ...

    @property
    def dtype(self) -> Any:
        """Element data type."""
        ...

    @property
    def size(self) -> int:
        """Total number of elements."""
        ...

    @property
    def nbytes(self) -> int:
        """Number of bytes consumed by the elements."""
        ...

    def __getitem__(self, key: Any) -> Any:
        """Indexed element access."""
        ...

    def flatten(self) -> "ITensor":
        """Return a one-dimensional copy of the elements."""
        ...
