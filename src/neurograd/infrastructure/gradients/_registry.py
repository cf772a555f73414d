"""
Gradient registry: backward rules keyed by `OpType`.

A registry is a plain instance populated by explicit registration calls.
Each entry records the rule's calling convention (`GradientArity`) so the
backward engine knows which recorded values to pass:

- BINARY: ``fn(grad_out, a, b) -> (grad_a, grad_b)``
- UNARY_INPUT: ``fn(grad_out, x, params) -> grad_x``
- UNARY_OUTPUT: ``fn(grad_out, x, output) -> grad_x``
- PARAMETERIZED: ``fn(grad_out, inputs, output, params, saved) -> grad_x``
  or a sequence of gradients matching the inputs

Gradients may be ``None`` for inputs that receive no gradient.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional, Sequence, Tuple, Union

import numpy as np

from ...domain._errors import GradientNotFoundError, IncompleteRegistryError
from ...domain._op_type import GradientArity, OpType

GradientFn = Callable[..., Any]


@dataclass(frozen=True)
class GradientEntry:
    """
    A registered backward rule.

    Attributes
    ----------
    op_type : OpType
        Operation the rule differentiates.
    arity : GradientArity
        Calling convention of `fn`.
    fn : GradientFn
        The rule itself.
    """

    op_type: OpType
    arity: GradientArity
    fn: GradientFn

    def invoke(
        self,
        grad_out: np.ndarray,
        inputs: Sequence[np.ndarray],
        output: np.ndarray,
        params: Dict[str, Any],
        saved: Dict[str, Any],
    ) -> Tuple[Optional[np.ndarray], ...]:
        """
        Call the rule with the values its arity requires.

        Returns
        -------
        tuple[Optional[np.ndarray], ...]
            One entry per input, in input order. Rules that return fewer
            gradients than there are inputs leave the remaining inputs
            without a gradient.

        Raises
        ------
        ValueError
            If a BINARY or UNARY rule is applied to the wrong number of inputs.
        """
        if self.arity is GradientArity.BINARY:
            if len(inputs) != 2:
                raise ValueError(f"binary rule applied to {len(inputs)} inputs")
            grads = self.fn(grad_out, inputs[0], inputs[1])
        elif self.arity is GradientArity.UNARY_INPUT:
            if len(inputs) != 1:
                raise ValueError(f"unary rule applied to {len(inputs)} inputs")
            grads = self.fn(grad_out, inputs[0], params)
        elif self.arity is GradientArity.UNARY_OUTPUT:
            if len(inputs) != 1:
                raise ValueError(f"unary rule applied to {len(inputs)} inputs")
            grads = self.fn(grad_out, inputs[0], output)
        else:
            grads = self.fn(grad_out, inputs, output, params, saved)

        if grads is None or isinstance(grads, np.ndarray):
            grads = (grads,)
        grads = tuple(grads)
        return grads + (None,) * (len(inputs) - len(grads))


class GradientRegistry:
    """
    Mapping from operation type to backward rule.

    Notes
    -----
    Registering a rule for an already registered operation overwrites it.
    """

    def __init__(self) -> None:
        self._entries: Dict[OpType, GradientEntry] = {}

    def register(
        self,
        op_type: Union[OpType, str],
        fn: GradientFn,
        arity: GradientArity = GradientArity.PARAMETERIZED,
    ) -> None:
        op = OpType.parse(op_type)
        self._entries[op] = GradientEntry(op, arity, fn)

    def register_binary(self, op_type: Union[OpType, str], fn: GradientFn) -> None:
        self.register(op_type, fn, GradientArity.BINARY)

    def register_unary(
        self, op_type: Union[OpType, str], fn: GradientFn, *, uses_output: bool = False
    ) -> None:
        """
        Register a single-input rule.

        Parameters
        ----------
        op_type : OpType or str
            Operation tag.
        fn : GradientFn
            ``fn(grad_out, x, params)``, or ``fn(grad_out, x, output)`` when
            `uses_output` is True.
        uses_output : bool, optional
            Whether the derivative is expressed in terms of the forward output.
        """
        arity = GradientArity.UNARY_OUTPUT if uses_output else GradientArity.UNARY_INPUT
        self.register(op_type, fn, arity)

    def register_parameterized(
        self, op_type: Union[OpType, str], fn: GradientFn
    ) -> None:
        self.register(op_type, fn, GradientArity.PARAMETERIZED)

    def rule(
        self, op_type: Union[OpType, str], arity: GradientArity
    ) -> Callable[[GradientFn], GradientFn]:
        """
        Decorator form of `register`.
        """

        def decorator(fn: GradientFn) -> GradientFn:
            self.register(op_type, fn, arity)
            return fn

        return decorator

    def get(self, op_type: OpType) -> Optional[GradientEntry]:
        return self._entries.get(op_type)

    def lookup(self, op_type: OpType) -> GradientEntry:
        """
        Return the entry of `op_type`.

        Raises
        ------
        GradientNotFoundError
            If no rule is registered.
        """
        entry = self._entries.get(op_type)
        if entry is None:
            raise GradientNotFoundError("No backward rule registered", op_type=op_type)
        return entry

    def __contains__(self, op_type: object) -> bool:
        return op_type in self._entries

    def __iter__(self) -> Iterator[OpType]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


def verify_coverage(library: Any, registry: GradientRegistry) -> None:
    """
    Check that every `OpType` has a forward kernel and a backward rule.

    Parameters
    ----------
    library : OperationLibrary
        Forward kernels.
    registry : GradientRegistry
        Backward rules.

    Raises
    ------
    IncompleteRegistryError
        Listing every operation missing a kernel or a rule.
    """
    missing_forward = tuple(op.value for op in OpType if op not in library)
    missing_backward = tuple(op.value for op in OpType if op not in registry)
    if missing_forward or missing_backward:
        raise IncompleteRegistryError(missing_forward, missing_backward)
