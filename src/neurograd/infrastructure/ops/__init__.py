"""
NumPy CPU kernels and the default operation library.
"""

from ...domain._op_type import OpType
from ._library import OperationLibrary, OpPerformance, OpResult
from . import arithmetic_cpu as _arith
from . import unary_cpu as _unary
from . import reduce_cpu as _reduce
from .conv2d_cpu import conv2d_cpu
from .pool2d_cpu import avg_pool2d_cpu, max_pool2d_cpu
from .normalization_cpu import (
    batch_norm_cpu,
    group_norm_cpu,
    instance_norm_cpu,
    layer_norm_cpu,
)


def build_default_operation_library() -> OperationLibrary:
    """
    Return a new library with a CPU kernel for every `OpType`.
    """
    library = OperationLibrary()
    kernels = {
        OpType.ADD: _arith.add_cpu,
        OpType.SUBTRACT: _arith.subtract_cpu,
        OpType.MULTIPLY: _arith.multiply_cpu,
        OpType.DIVIDE: _arith.divide_cpu,
        OpType.MATMUL: _arith.matmul_cpu,
        OpType.TRANSPOSE: _arith.transpose_cpu,
        OpType.RESHAPE: _arith.reshape_cpu,
        OpType.EXP: _unary.exp_cpu,
        OpType.LOG: _unary.log_cpu,
        OpType.SQRT: _unary.sqrt_cpu,
        OpType.SIGMOID: _unary.sigmoid_cpu,
        OpType.TANH: _unary.tanh_cpu,
        OpType.RELU: _unary.relu_cpu,
        OpType.LEAKY_RELU: _unary.leaky_relu_cpu,
        OpType.ELU: _unary.elu_cpu,
        OpType.GELU: _unary.gelu_cpu,
        OpType.SWISH: _unary.swish_cpu,
        OpType.SOFTMAX: _unary.softmax_cpu,
        OpType.SUM: _reduce.sum_cpu,
        OpType.MEAN: _reduce.mean_cpu,
        OpType.MAX: _reduce.max_cpu,
        OpType.MIN: _reduce.min_cpu,
        OpType.ARGMAX: _reduce.argmax_cpu,
        OpType.ARGMIN: _reduce.argmin_cpu,
        OpType.CONV2D: conv2d_cpu,
        OpType.MAX_POOL2D: max_pool2d_cpu,
        OpType.AVG_POOL2D: avg_pool2d_cpu,
        OpType.BATCH_NORM: batch_norm_cpu,
        OpType.LAYER_NORM: layer_norm_cpu,
        OpType.INSTANCE_NORM: instance_norm_cpu,
        OpType.GROUP_NORM: group_norm_cpu,
    }
    for op_type, fn in kernels.items():
        library.register(op_type, fn)
    return library


__all__ = [
    OperationLibrary.__name__,
    OpPerformance.__name__,
    OpResult.__name__,
    build_default_operation_library.__name__,
]
