"""
Finite-difference checks of the elementwise, linear-algebra and reduction
backward rules, driven through a one-operation graph.
"""

import unittest
import warnings

import numpy as np

from neurograd import ComputationGraph
from tests._gradcheck import check_gradients, graph_gradients


def _rng(seed: int = 0) -> np.random.Generator:
    return np.random.default_rng(seed)


class TestBinaryGradients(unittest.TestCase):
    def test_add_subtract_multiply(self) -> None:
        a = _rng(0).normal(size=(2, 3))
        b = _rng(1).normal(size=(2, 3))
        for op in ("add", "subtract", "multiply"):
            with self.subTest(op=op):
                check_gradients(self, op, [a, b])

    def test_broadcast_operands(self) -> None:
        a = _rng(2).normal(size=(2, 3))
        b = _rng(3).normal(size=(3,))
        c = _rng(4).normal(size=(2, 1))
        for op in ("add", "subtract", "multiply", "divide"):
            with self.subTest(op=op):
                check_gradients(self, op, [a, b + 3.0])
                check_gradients(self, op, [a, c + 3.0])

    def test_divide(self) -> None:
        a = _rng(5).normal(size=(3, 2))
        b = _rng(6).uniform(1.0, 2.0, size=(3, 2))
        check_gradients(self, "divide", [a, b])

    def test_matmul(self) -> None:
        check_gradients(self, "matmul", [_rng(7).normal(size=(2, 3)), _rng(8).normal(size=(3, 4))])

    def test_batched_matmul_with_broadcast_batch(self) -> None:
        check_gradients(
            self, "matmul", [_rng(9).normal(size=(2, 2, 3)), _rng(10).normal(size=(3, 2))]
        )

    def test_add_broadcast_reduces_to_column_sums(self) -> None:
        a = np.zeros((2, 3))
        b = np.zeros((3,))
        weights = np.arange(6, dtype=np.float64).reshape(2, 3)
        _, (ga, gb) = graph_gradients("add", [a, b], weights=weights)
        np.testing.assert_array_equal(ga, weights)
        np.testing.assert_array_equal(gb, weights.sum(axis=0))


class TestShapeGradients(unittest.TestCase):
    def test_transpose(self) -> None:
        x = _rng(11).normal(size=(2, 3, 4))
        check_gradients(self, "transpose", [x])
        check_gradients(self, "transpose", [x], params={"axes": (1, 2, 0)})
        check_gradients(self, "transpose", [x], params={"axes": (0, -1, 1)})

    def test_transpose_negative_axes_reach_leaf(self) -> None:
        g = ComputationGraph()
        x = g.variable(_rng(15).normal(size=(2, 3, 4)))
        w = g.constant(_rng(16).normal(size=(2, 4, 3)))
        t = g.operation("transpose", [x], params={"axes": (0, -1, 1)})
        y = g.operation("sum", [g.operation("multiply", [t, w])])
        g.mark_output(y)
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            g.execute(compute_gradients=True)
        grad = g.get_gradient(x)
        self.assertEqual(grad.shape, (2, 3, 4))
        np.testing.assert_array_equal(grad, np.transpose(g.get_output(w), (0, 2, 1)))

    def test_reshape(self) -> None:
        check_gradients(self, "reshape", [_rng(12).normal(size=(2, 6))], params={"shape": (3, 4)})


class TestUnaryGradients(unittest.TestCase):
    def test_smooth_functions(self) -> None:
        x = _rng(13).normal(size=(3, 4))
        for op in ("exp", "sigmoid", "tanh", "gelu", "swish", "softmax"):
            with self.subTest(op=op):
                check_gradients(self, op, [x])

    def test_positive_domain_functions(self) -> None:
        x = _rng(14).uniform(0.5, 2.0, size=(3, 3))
        for op in ("log", "sqrt"):
            with self.subTest(op=op):
                check_gradients(self, op, [x])

    def test_piecewise_functions_away_from_kink(self) -> None:
        x = np.array([[-1.5, -0.3, 0.4], [0.9, -2.0, 1.7]])
        for op in ("relu", "leaky_relu", "elu"):
            with self.subTest(op=op):
                check_gradients(self, op, [x])
        check_gradients(self, "leaky_relu", [x], params={"alpha": 0.3})
        check_gradients(self, "elu", [x], params={"alpha": 0.5})

    def test_parameterized_variants(self) -> None:
        x = _rng(15).normal(size=(2, 5))
        check_gradients(self, "gelu", [x], params={"approximate": True})
        check_gradients(self, "swish", [x], params={"beta": 1.7})
        check_gradients(self, "softmax", [x], params={"axis": 0})

    def test_relu_mask(self) -> None:
        x = np.array([-1.0, 0.0, 2.0])
        _, (gx,) = graph_gradients("relu", [x])
        np.testing.assert_array_equal(gx, [0.0, 0.0, 1.0])


class TestReductionGradients(unittest.TestCase):
    def test_sum_mean(self) -> None:
        x = _rng(16).normal(size=(2, 3, 4))
        for op in ("sum", "mean"):
            for params in ({}, {"axes": 1}, {"axes": (0, 2), "keep_dims": True}):
                with self.subTest(op=op, params=params):
                    check_gradients(self, op, [x], params=params)

    def test_max_min_unique_extrema(self) -> None:
        x = _rng(17).normal(size=(3, 4))
        for op in ("max", "min"):
            for params in ({}, {"axes": 0}, {"axes": 1, "keep_dims": True}):
                with self.subTest(op=op, params=params):
                    check_gradients(self, op, [x], params=params)

    def test_max_ties_split_evenly(self) -> None:
        x = np.array([[3.0, 1.0, 3.0], [0.0, 2.0, 1.0]])
        _, (gx,) = graph_gradients("max", [x], params={"axes": 1})
        np.testing.assert_allclose(gx, [[0.5, 0.0, 0.5], [0.0, 1.0, 0.0]])

    def test_argmax_is_not_differentiable(self) -> None:
        x = np.array([1.0, 3.0, 2.0])
        _, (gx,) = graph_gradients("argmax", [x])
        self.assertIsNone(gx)


if __name__ == "__main__":
    unittest.main()
