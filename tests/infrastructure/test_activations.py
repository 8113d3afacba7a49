import unittest

import numpy as np

from neurite.domain.device._device_protocol import ActivationKind
from neurite.infrastructure._activations import (
    LeakyReLu,
    ReLu,
    SeLu,
    Sigmoid,
    Softmax,
    Swish,
    Tanh,
)
from neurite.infrastructure.devices import CPU, get_device
from neurite.infrastructure.tensor._tensor import Tensor


def _run(layer, values):
    layer.compile(input_size=[len(values), 1, 1])
    return layer.forward(Tensor(values))


class TestDevice(unittest.TestCase):
    def test_get_device(self):
        self.assertEqual(get_device(), CPU())
        self.assertEqual(get_device("CPU"), CPU())
        with self.assertRaises(ValueError):
            get_device("tpu")
        with self.assertRaises(TypeError):
            get_device(42)

    def test_sigmoid_is_stable_for_large_inputs(self):
        out = CPU().activate(Tensor([-1000.0, 0.0, 1000.0]), ActivationKind.SIGMOID)
        np.testing.assert_allclose(out.flatten(), [0.0, 0.5, 1.0], atol=1e-7)
        self.assertTrue(out.is_finite())


class TestActivations(unittest.TestCase):
    def test_relu(self):
        out = _run(ReLu(), [-1.0, 0.0, 2.0])
        np.testing.assert_array_equal(out.flatten(), [0.0, 0.0, 2.0])
        grads = out.gradients(Tensor([1.0, 1.0, 1.0]))
        np.testing.assert_array_equal(grads.input[0].flatten(), [0.0, 0.0, 1.0])

    def test_leaky_relu_uses_limit(self):
        out = _run(LeakyReLu(limit=0.1), [-2.0, 3.0])
        np.testing.assert_allclose(out.flatten(), [-0.2, 3.0], atol=1e-7)
        grads = out.gradients(Tensor([1.0, 1.0]))
        np.testing.assert_allclose(grads.input[0].flatten(), [0.1, 1.0], atol=1e-7)

    def test_sigmoid_derivative(self):
        out = _run(Sigmoid(), [0.0])
        self.assertAlmostEqual(float(out.flatten()[0]), 0.5, places=6)
        grads = out.gradients(Tensor([2.0]))
        self.assertAlmostEqual(float(grads.input[0].flatten()[0]), 0.5, places=6)

    def test_tanh(self):
        out = _run(Tanh(), [0.5])
        self.assertAlmostEqual(float(out.flatten()[0]), np.tanh(0.5), places=6)
        grads = out.gradients(Tensor([1.0]))
        self.assertAlmostEqual(float(grads.input[0].flatten()[0]), 1 - np.tanh(0.5) ** 2, places=6)

    def test_swish(self):
        out = _run(Swish(), [1.0])
        s = 1 / (1 + np.exp(-1.0))
        self.assertAlmostEqual(float(out.flatten()[0]), s, places=6)
        grads = out.gradients(Tensor([1.0]))
        self.assertAlmostEqual(float(grads.input[0].flatten()[0]), s + s * (1 - s), places=6)

    def test_selu(self):
        out = _run(SeLu(), [1.0, -1.0])
        alpha, scale = 1.6732632423543772, 1.0507009873554805
        np.testing.assert_allclose(
            out.flatten(), [scale, scale * alpha * (np.exp(-1.0) - 1)], rtol=1e-5
        )

    def test_softmax_sums_to_one_and_passes_gradient(self):
        out = _run(Softmax(), [1000.0, 1000.0, 0.0])
        np.testing.assert_allclose(out.flatten(), [0.5, 0.5, 0.0], atol=1e-7)
        delta = Tensor([0.1, -0.2, 0.3])
        grads = out.gradients(delta)
        np.testing.assert_array_equal(grads.input[0].value, delta.value)

    def test_stateless_config_round_trip(self):
        layer = Tanh(input_size=[3, 1, 1])
        rebuilt = Tanh.from_config(layer.get_config())
        self.assertEqual(rebuilt.input_size, layer.input_size)
        self.assertEqual(Tanh.from_config({}).input_size, None)

    def test_leaky_config_keeps_limit(self):
        rebuilt = LeakyReLu.from_config(LeakyReLu(limit=0.3).get_config())
        self.assertEqual(rebuilt.limit, 0.3)


if __name__ == "__main__":
    unittest.main()
