"""
Gradient registry and the default backward rules.
"""

from ._registry import GradientEntry, GradientRegistry, verify_coverage
from ._arithmetic import register_arithmetic_gradients
from ._activations import register_activation_gradients
from ._reductions import register_reduction_gradients
from ._layers import register_layer_gradients


def build_default_gradient_registry() -> GradientRegistry:
    """
    Return a new registry with a backward rule for every `OpType`.
    """
    registry = GradientRegistry()
    register_arithmetic_gradients(registry)
    register_activation_gradients(registry)
    register_reduction_gradients(registry)
    register_layer_gradients(registry)
    return registry


__all__ = [
    GradientEntry.__name__,
    GradientRegistry.__name__,
    verify_coverage.__name__,
    build_default_gradient_registry.__name__,
]
