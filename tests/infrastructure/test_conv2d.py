import unittest

import numpy as np

from neurite.domain._errors import ShapeMismatchError
from neurite.infrastructure.convolution._conv2d_module import Conv2d
from neurite.infrastructure.ops.conv2d_cpu import (
    conv2d_forward_cpu,
    same_padding,
    valid_output,
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


class TestConvGeometry(unittest.TestCase):
    def test_same_padding_keeps_size_at_stride_one(self):
        out, pad = same_padding((28, 28), (3, 3), (1, 1))
        self.assertEqual(out, (28, 28))
        self.assertEqual(pad, (1, 1, 1, 1))

    def test_same_padding_puts_extra_at_bottom_right(self):
        out, pad = same_padding((6, 6), (3, 3), (2, 2))
        self.assertEqual(out, (3, 3))
        self.assertEqual(pad, (0, 1, 0, 1))

    def test_same_padding_uses_ceil(self):
        out, _ = same_padding((5, 7), (3, 3), (2, 2))
        self.assertEqual(out, (3, 4))

    def test_valid_output(self):
        self.assertEqual(valid_output((28, 28), (3, 3), (1, 1)), (26, 26))
        self.assertEqual(valid_output((7, 7), (3, 3), (2, 2)), (3, 3))

    def test_forward_kernel_matches_manual_correlation(self):
        x = np.arange(16, dtype=np.float32).reshape(1, 4, 4)
        w = np.ones((1, 1, 2, 2), dtype=np.float32)
        y = conv2d_forward_cpu(x, w, (1, 1), (0, 0, 0, 0), (3, 3))
        self.assertEqual(y[0, 0, 0], 0 + 1 + 4 + 5)
        self.assertEqual(y[0, 2, 2], 10 + 11 + 14 + 15)


class TestConv2d(unittest.TestCase):
    def test_output_sizes(self):
        same = Conv2d(4, input_size=[28, 28, 1])
        same.compile()
        self.assertEqual(same.output_size.as_list(), [28, 28, 4])

        valid = Conv2d(2, filter_size=3, padding="valid", input_size=[28, 28, 3])
        valid.compile()
        self.assertEqual(valid.output_size.as_list(), [26, 26, 2])
        self.assertEqual(valid.weights.shape, [3, 3, 6])
        self.assertEqual(valid.filters.shape, (2, 3, 3, 3))

        strided = Conv2d(1, strides=2, input_size=[5, 5, 1])
        strided.compile()
        self.assertEqual(strided.output_size.as_list(), [3, 3, 1])

    def test_forward_shape_matches_output_size(self):
        layer = Conv2d(3, filter_size=(3, 2), strides=(2, 1), input_size=[7, 6, 2])
        layer.compile(rng=np.random.default_rng(0))
        out = layer.forward(Tensor(np.ones((2, 6, 7))))
        self.assertEqual(out.size, layer.output_size)

    def test_filter_setter_and_bias(self):
        layer = Conv2d(2, filter_size=1, input_size=[2, 2, 1])
        layer.compile()
        layer.filters = np.array([[[1.0]], [[2.0]]])
        layer.biases.value[...] = np.array([0.5, -1.0]).reshape(1, 1, 2)
        out = layer.forward(Tensor([[1.0, 2.0], [3.0, 4.0]]))
        np.testing.assert_allclose(out.value[0], [[1.5, 2.5], [3.5, 4.5]])
        np.testing.assert_allclose(out.value[1], [[1.0, 3.0], [5.0, 7.0]])

    def test_filter_setter_rejects_mismatched_depth(self):
        layer = Conv2d(1, input_size=[4, 4, 2])
        layer.compile()
        with self.assertRaises(ShapeMismatchError):
            layer.filters = np.zeros((1, 3, 3, 3))

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
        self._check_gradients(Conv2d(2, input_size=[5, 5, 2]), (2, 5, 5), seed=1)

    def test_backward_same_padding_strided(self):
        self._check_gradients(
            Conv2d(2, strides=2, input_size=[6, 5, 1]), (1, 5, 6), seed=2
        )

    def test_backward_valid_padding(self):
        self._check_gradients(
            Conv2d(3, filter_size=(2, 3), padding="valid", input_size=[5, 4, 2]),
            (2, 4, 5),
            seed=3,
        )

    def test_config_round_trip(self):
        layer = Conv2d(3, filter_size=(2, 3), strides=2, padding="valid", input_size=[8, 8, 1])
        rebuilt = Conv2d.from_config(layer.get_config())
        self.assertEqual(rebuilt.filter_size, (2, 3))
        self.assertEqual(rebuilt.strides, (2, 2))
        self.assertEqual(rebuilt.padding, layer.padding)
        self.assertEqual(rebuilt.input_size, layer.input_size)


if __name__ == "__main__":
    unittest.main()
