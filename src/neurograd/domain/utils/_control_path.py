"""
State-based method dispatch (a.k.a. "control-path" templating) via decorators.

This module provides a small mechanism for routing a single method call to
one of several registered implementations based on an object's runtime
`_state` value.

Core idea
---------
- You define a *base* method on a class (its signature becomes the canonical one).
- You then register one "control path" per state, each keyed by:
    (ClassName, MethodName, StateVal)
- At runtime, the wrapper looks up `self._state` and dispatches to the
  registered implementation that matches the current state.

Usage
-----
    path = create_path_builder()

    class Scheduler:
        @property
        def _state(self): return self.strategy

        def order(self, graph): ...

    @path(Scheduler, Scheduler.order, "lazy")
    def _lazy_order(self, graph): ...

Important notes
---------------
- The first registration for a method replaces it on the class with a
  dispatcher wrapper; the original body is never called.
- Registered implementations receive `self` like ordinary methods.
- The same implementation may be registered for several states by stacking
  decorators.
- Registered implementations are stored in a closure-local mapping owned by
  `create_path_builder()`. Different builders do not share mappings.
"""

from typing import (
    runtime_checkable,
    Callable,
    Hashable,
    Optional,
    Protocol,
    Dict,
    Type,
    Any,
)
from typing_extensions import ParamSpec, TypeVar
from collections import namedtuple
from functools import wraps

from abc import abstractmethod

P = ParamSpec("P")
R = TypeVar("R")

MethodKey = namedtuple("MethodKey", ["ClassName", "MethodName", "StateVal"])
"""Tuple-like key used to uniquely identify a control path."""


@runtime_checkable
class StatefulObject(Protocol):
    """
    Protocol describing an object that participates in state-based dispatch.

    Implementers must provide a `_state` property. The dispatcher uses this
    property at runtime to select the correct control path implementation.
    """

    @property
    @abstractmethod
    def _state(self) -> Optional[Any]:
        """Current state value used for dispatch selection."""
        ...


def create_path_builder() -> Callable[
    [Type, Callable[P, R], Hashable, Optional[Callable[[Any], Exception]]],
    Callable[[Callable[P, R]], Callable[P, R]],
]:
    """
    Create and return a "path builder" used to register stateful control
    paths for methods.

    Returns
    -------
    Callable
        A function with signature:

            (cls, method, state, on_missing=None) -> decorator

        where `decorator(sub_method)` registers `sub_method` for that control
        path and installs a dispatcher wrapper on `cls`.
    """

    methods_map: Dict[MethodKey, Callable] = {}
    """Mapping from (class, method, state) keys to registered implementations."""

    def templator(
        cls: Type,
        method: Callable[P, R],
        state: Hashable,
        on_missing: Optional[Callable[[Any], Exception]] = None,
    ) -> Callable[[Callable[P, R]], Callable[P, R]]:
        """
        Build a decorator that registers a control path implementation.

        Parameters
        ----------
        cls : Type
            The class whose method should be wrapped for state-based dispatch.
        method : Callable[P, R]
            The base method being templated. Its name and metadata are reused
            for the installed wrapper.
        state : Hashable
            The state value that selects the decorated implementation.
        on_missing : Optional[Callable[[Any], Exception]]
            Factory called with the unmatched state to build the exception
            raised when no control path matches. Defaults to
            `NotImplementedError`.

        Returns
        -------
        Callable[[Callable[P, R]], Callable[P, R]]
            Decorator registering the implementation.

        Raises
        ------
        TypeError
            If `state` is not hashable.
        """
        try:
            hash(state)
        except TypeError:
            raise TypeError(f"The argument for 'state' must be hashable. Got {state!r}")

        method_name = getattr(method, "__wrapped__", method).__name__
        smk = MethodKey(cls.__name__, method_name, state)

        def decorator(sub_method: Callable[P, R]) -> Callable[P, R]:
            methods_map[smk] = sub_method

            current = cls.__dict__.get(method_name)
            if getattr(current, "__control_path__", False):
                return sub_method

            @wraps(method)
            def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
                if not isinstance(self, StatefulObject):
                    raise NotImplementedError(
                        f"{type(self)} is missing attribute '_state' (@property)"
                    )
                key = MethodKey(cls.__name__, method_name, self._state)
                if sm := methods_map.get(key):
                    return sm(self, *args, **kwargs)
                if on_missing is not None:
                    raise on_missing(self._state)
                raise NotImplementedError(
                    f"Missing control path (state={self._state!r}) for {method_name!r}"
                )

            wrapper.__control_path__ = True  # type: ignore[attr-defined]
            setattr(cls, method_name, wrapper)
            return sub_method

        return decorator

    def registered_states(cls: Type, method: Callable) -> set:
        """
        Return the set of states registered for `cls.method`.
        """
        method_name = getattr(method, "__wrapped__", method).__name__
        return {
            key.StateVal
            for key in methods_map
            if key.ClassName == cls.__name__ and key.MethodName == method_name
        }

    templator.registered_states = registered_states  # type: ignore[attr-defined]
    return templator
