import unittest

import numpy as np

from neurite.infrastructure.convolution.transpose._conv2d_transpose_module import (
    TransConv2d,
)
from neurite.infrastructure.ops.conv2d_cpu import (
    conv2d_transpose_forward_cpu,
    transpose_crop,
)
from neurite.infrastructure.tensor._tensor import Tensor


def numeric_grad(loss, arr, eps=1e-2):
    grad = np.zeros(arr.shape, dtype=np.float64)
    for idx in np.ndindex(arr.shape):
        old = arr[idx]
        arr[idx] = old + eps
        plus = loss()
        arr[idx] = old - eps
        minus = loss()
        arr[idx] = old
        grad[idx] = (plus - minus) / (2 * eps)
    return grad


class TestTransposeGeometry(unittest.TestCase):
    def test_same_keeps_input_times_stride(self):
        out, crop = transpose_crop((10, 10), (3, 3), (2, 2), same=True)
        self.assertEqual(out, (20, 20))
        self.assertEqual(crop, (0, 0))

    def test_same_crops_centered_overhang(self):
        out, crop = transpose_crop((4, 4), (5, 5), (1, 1), same=True)
        self.assertEqual(out, (4, 4))
        self.assertEqual(crop, (2, 2))

    def test_valid_keeps_full_result(self):
        out, crop = transpose_crop((4, 3), (3, 3), (2, 2), same=False)
        self.assertEqual(out, (9, 7))
        self.assertEqual(crop, (0, 0))

    def test_scatter_of_single_pixel(self):
        x = np.zeros((1, 2, 2), dtype=np.float32)
        x[0, 1, 1] = 2.0
        w = np.arange(4, dtype=np.float32).reshape(1, 1, 2, 2)
        y = conv2d_transpose_forward_cpu(x, w, (2, 2), (0, 0), (4, 4))
        expected = np.zeros((4, 4), dtype=np.float32)
        expected[2:4, 2:4] = 2.0 * w[0, 0]
        np.testing.assert_array_equal(y[0], expected)

    def test_kernel_smaller_than_stride(self):
        x = np.ones((1, 3, 3), dtype=np.float32)
        w = np.ones((1, 1, 1, 1), dtype=np.float32)
        y = conv2d_transpose_forward_cpu(x, w, (2, 2), (0, 0), (6, 6))
        self.assertEqual(y.shape, (1, 6, 6))
        self.assertEqual(float(y.sum()), 9.0)


class TestTransConv2d(unittest.TestCase):
    def test_reference_input_gradient(self):
        layer = TransConv2d(
            1,
            filter_size=3,
            strides=2,
            padding="same",
            bias_enabled=False,
            input_size=[10, 10, 1],
        )
        layer.compile()
        layer.filters = [[[0, 1, 0], [0, 1, 0], [0, 1, 0]]]

        x = Tensor(np.random.default_rng(0).standard_normal((1, 10, 10)))
        out = layer.forward(x)
        self.assertEqual(out.shape, [20, 20, 1])

        grads = out.gradients(Tensor(np.ones((1, 20, 20))))
        expected = np.full((10, 10), 3.0, dtype=np.float32)
        expected[-1, :] = 2.0
        np.testing.assert_allclose(grads.input[0].value[0], expected)

    def test_output_sizes(self):
        valid = TransConv2d(2, filter_size=3, strides=2, padding="valid", input_size=[4, 3, 1])
        valid.compile()
        self.assertEqual(valid.output_size.as_list(), [9, 7, 2])

    def _check_gradients(self, layer, x_shape, seed):
        rng = np.random.default_rng(seed)
        layer.compile(rng=np.random.default_rng(seed))
        layer.biases.value[...] = rng.standard_normal(layer.biases.value.shape)
        x = rng.standard_normal(x_shape).astype(np.float32)
        r = rng.standard_normal(layer.output_size.value_shape).astype(np.float32)

        def loss():
            return float(np.sum(layer.forward(Tensor(x)).value.astype(np.float64) * r))

        grads = layer.forward(Tensor(x)).gradients(Tensor(r))
        np.testing.assert_allclose(grads.input[0].value, numeric_grad(loss, x), atol=2e-2)
        np.testing.assert_allclose(
            grads.weights[0].value, numeric_grad(loss, layer.weights.value), atol=2e-2
        )
        np.testing.assert_allclose(
            grads.biases[0].value, numeric_grad(loss, layer.biases.value), atol=2e-2
        )

    def test_backward_same_padding(self):
        self._check_gradients(
            TransConv2d(2, strides=2, input_size=[3, 3, 2]), (2, 3, 3), seed=4
        )

    def test_backward_same_padding_cropped(self):
        self._check_gradients(
            TransConv2d(1, filter_size=4, input_size=[3, 4, 1]), (1, 4, 3), seed=5
        )

    def test_backward_valid_padding(self):
        self._check_gradients(
            TransConv2d(2, filter_size=(2, 3), strides=(1, 2), padding="valid", input_size=[3, 3, 1]),
            (1, 3, 3),
            seed=6,
        )


if __name__ == "__main__":
    unittest.main()
