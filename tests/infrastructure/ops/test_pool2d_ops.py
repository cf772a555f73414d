import unittest
import numpy as np

from neurograd.infrastructure.ops.pool2d_cpu import (
    avgpool2d_backward_cpu,
    avgpool2d_forward_cpu,
    maxpool2d_backward_cpu,
    maxpool2d_forward_cpu,
)


class TestMaxPool2d(unittest.TestCase):
    def test_forward_values_and_argmax(self) -> None:
        x = np.arange(16, dtype=np.float64).reshape(1, 1, 4, 4)
        y, argmax_idx = maxpool2d_forward_cpu(x, {"kernel_size": 2})
        np.testing.assert_array_equal(y[0, 0], [[5.0, 7.0], [13.0, 15.0]])
        np.testing.assert_array_equal(argmax_idx[0, 0], [[5, 7], [13, 15]])

    def test_tie_breaking_routes_grad_to_first_argmax(self) -> None:
        """
        With several maxima in a window, the gradient goes to the first one
        in row-major order, the same position chosen in the forward pass.
        """
        x = np.array([[[[5.0, 5.0], [5.0, 1.0]]]], dtype=np.float32)
        y, argmax_idx = maxpool2d_forward_cpu(x, {"kernel_size": 2, "stride": 2})
        self.assertEqual(y.shape, (1, 1, 1, 1))

        grad_x = maxpool2d_backward_cpu(
            np.array([[[[7.0]]]], dtype=np.float32), argmax_idx, x_shape=x.shape
        )
        expected = np.array([[[[7.0, 0.0], [0.0, 0.0]]]], dtype=np.float32)
        np.testing.assert_allclose(grad_x, expected)

    def test_padding_never_wins(self) -> None:
        x = -np.ones((1, 1, 3, 3))
        y, argmax_idx = maxpool2d_forward_cpu(x, {"kernel_size": 2, "stride": 2, "padding": 1})
        np.testing.assert_array_equal(y, -np.ones((1, 1, 2, 2)))
        self.assertTrue(np.all(argmax_idx >= 0))

    def test_overlapping_windows_accumulate(self) -> None:
        x = np.array([[[[0.0, 0.0, 0.0], [0.0, 9.0, 0.0], [0.0, 0.0, 0.0]]]])
        y, argmax_idx = maxpool2d_forward_cpu(x, {"kernel_size": 2, "stride": 1})
        grad_x = maxpool2d_backward_cpu(np.ones_like(y), argmax_idx, x_shape=x.shape)
        self.assertEqual(grad_x[0, 0, 1, 1], 4.0)
        self.assertEqual(grad_x.sum(), 4.0)

    def test_same_padding_shape(self) -> None:
        x = np.random.default_rng(0).normal(size=(2, 3, 5, 5))
        y, _ = maxpool2d_forward_cpu(x, {"kernel_size": 2, "padding": "same"})
        self.assertEqual(y.shape, (2, 3, 3, 3))

    def test_nhwc(self) -> None:
        x = np.random.default_rng(1).normal(size=(2, 3, 4, 4))
        y_nchw, idx = maxpool2d_forward_cpu(x, {"kernel_size": 2})
        y_nhwc, _ = maxpool2d_forward_cpu(
            np.transpose(x, (0, 2, 3, 1)), {"kernel_size": 2, "data_format": "NHWC"}
        )
        np.testing.assert_array_equal(np.transpose(y_nhwc, (0, 3, 1, 2)), y_nchw)

        g = np.ones_like(y_nhwc)
        grad = maxpool2d_backward_cpu(g, idx, x_shape=(2, 4, 4, 3), data_format="NHWC")
        self.assertEqual(grad.shape, (2, 4, 4, 3))
        self.assertEqual(grad.sum(), g.size)

    def test_missing_kernel_size(self) -> None:
        with self.assertRaises(ValueError):
            maxpool2d_forward_cpu(np.ones((1, 1, 2, 2)), {})


class TestAvgPool2d(unittest.TestCase):
    def test_forward_values(self) -> None:
        x = np.arange(16, dtype=np.float64).reshape(1, 1, 4, 4)
        y, counts = avgpool2d_forward_cpu(x, {"kernel_size": 2})
        np.testing.assert_allclose(y[0, 0], [[2.5, 4.5], [10.5, 12.5]])
        np.testing.assert_array_equal(counts, np.full((2, 2), 4))

    def test_padding_excluded_from_count(self) -> None:
        x = np.ones((1, 1, 3, 3))
        y, counts = avgpool2d_forward_cpu(x, {"kernel_size": 2, "stride": 2, "padding": "same"})
        np.testing.assert_allclose(y, np.ones((1, 1, 2, 2)))
        np.testing.assert_array_equal(counts, [[4, 2], [2, 1]])

    def test_backward_spreads_over_clipped_window(self) -> None:
        x = np.ones((1, 1, 3, 3))
        params = {"kernel_size": 2, "stride": 2, "padding": "same"}
        y, counts = avgpool2d_forward_cpu(x, params)
        grad_x = avgpool2d_backward_cpu(np.ones_like(y), counts, x_shape=x.shape, params=params)
        expected = np.array([[0.25, 0.25, 0.5], [0.25, 0.25, 0.5], [0.5, 0.5, 1.0]])
        np.testing.assert_allclose(grad_x[0, 0], expected)
        self.assertAlmostEqual(float(grad_x.sum()), float(y.size))


if __name__ == "__main__":
    unittest.main()
