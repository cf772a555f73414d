"""
Operation library: forward kernels keyed by `OpType`.

An `OperationLibrary` maps each operation tag to a kernel with the uniform
signature ``kernel(inputs, params) -> array | (array, saved)``. The library
wraps every kernel so that callers always receive an `OpResult`:

- ``tensor``: the output array,
- ``op_type``: the operation tag,
- ``performance``: wall time and output size of the call,
- ``params``: the parameters the kernel was invoked with,
- ``saved``: forward byproducts the backward rule needs (argmax indices,
  normalization statistics, ...).

Libraries are plain instances: the graph receives one at construction time
and tests may build their own (for instance to count kernel invocations).
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from ...domain._errors import UnsupportedOperationError
from ...domain._op_type import OpType

KernelOutput = Union[np.ndarray, Tuple[np.ndarray, Dict[str, Any]]]
Kernel = Callable[[Sequence[np.ndarray], Mapping[str, Any]], KernelOutput]


@dataclass
class OpPerformance:
    """
    Cost of a single kernel invocation.

    Attributes
    ----------
    execution_time : float
        Wall time in milliseconds.
    memory_used : int
        Size of the output in bytes.
    device : str
        Device the kernel ran on (always ``"cpu"``).
    from_cache : bool
        Whether the value was served from a node cache.
    """

    execution_time: float
    memory_used: int
    device: str = "cpu"
    from_cache: bool = False


@dataclass
class OpResult:
    """
    Result of an operation library call.
    """

    tensor: np.ndarray
    op_type: OpType
    performance: OpPerformance
    params: Dict[str, Any] = field(default_factory=dict)
    saved: Dict[str, Any] = field(default_factory=dict)


class OperationLibrary:
    """
    Registry of forward kernels.

    Notes
    -----
    Registering a kernel for an already registered operation overwrites it.
    """

    def __init__(self) -> None:
        self._kernels: Dict[OpType, Kernel] = {}

    def register(self, op_type: Union[OpType, str], kernel: Kernel) -> None:
        """
        Register (or replace) the kernel of an operation.
        """
        self._kernels[OpType.parse(op_type)] = kernel

    def kernel(self, op_type: Union[OpType, str]) -> Callable[[Kernel], Kernel]:
        """
        Decorator form of `register`.
        """

        def decorator(fn: Kernel) -> Kernel:
            self.register(op_type, fn)
            return fn

        return decorator

    def get(self, op_type: OpType) -> Optional[Kernel]:
        return self._kernels.get(op_type)

    def __contains__(self, op_type: object) -> bool:
        return op_type in self._kernels

    def __iter__(self) -> Iterator[OpType]:
        return iter(self._kernels)

    def __len__(self) -> int:
        return len(self._kernels)

    def run(
        self,
        op_type: OpType,
        inputs: Sequence[np.ndarray],
        params: Optional[Mapping[str, Any]] = None,
    ) -> OpResult:
        """
        Execute the kernel registered for `op_type`.

        Parameters
        ----------
        op_type : OpType
            Operation to run.
        inputs : Sequence[np.ndarray]
            Input arrays in operand order.
        params : Optional[Mapping[str, Any]]
            Operation parameters.

        Returns
        -------
        OpResult
            Output array with timing information and saved byproducts.

        Raises
        ------
        UnsupportedOperationError
            If no kernel is registered for `op_type`.
        """
        fn = self._kernels.get(op_type)
        if fn is None:
            raise UnsupportedOperationError(
                "No forward kernel registered", op_type=op_type
            )
        params = dict(params or {})

        start = time.perf_counter()
        out = fn(inputs, params)
        elapsed = (time.perf_counter() - start) * 1000.0

        saved: Dict[str, Any] = {}
        if isinstance(out, tuple):
            out, saved = out
        out = np.asarray(out)

        return OpResult(
            tensor=out,
            op_type=op_type,
            performance=OpPerformance(execution_time=elapsed, memory_used=out.nbytes),
            params=params,
            saved=saved,
        )
