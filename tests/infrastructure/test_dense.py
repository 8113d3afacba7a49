import unittest

import numpy as np

from neurite.domain._errors import NotCompiledError, ShapeMismatchError
from neurite.domain._layer import Gradient
from neurite.infrastructure.fully_connected._dense import Dense
from neurite.infrastructure.models._sequential import Sequential
from neurite.infrastructure.optimizers import Adam
from neurite.infrastructure.tensor._tensor import Tensor


def numeric_grad(loss, arr, eps=1e-2):
    """Central finite differences of `loss()` with respect to `arr` (in place)."""
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


SCENARIO_WEIGHTS = [
    [0.5, 0.5, 0.5, 0.5],
    [0.1, 0.1, 0.1, 0.1],
    [0.5, 0.5, 0.5, 0.5],
    [0.1, 0.1, 0.1, 0.1],
    [0.5, 0.5, 0.5, 0.5],
]


class TestDense(unittest.TestCase):
    def test_output_size_and_parameter_shapes(self):
        layer = Dense(5, input_size=[4, 1, 1])
        layer.compile()
        self.assertEqual(layer.output_size.as_list(), [5, 1, 1])
        self.assertEqual(layer.weights.shape, [4, 5, 1])
        self.assertEqual(layer.biases.shape, [5, 1, 1])
        self.assertEqual(layer.parameter_count, 25)

    def test_bias_disabled(self):
        layer = Dense(3, input_size=[2, 1, 1], bias_enabled=False)
        layer.compile()
        self.assertTrue(layer.biases.is_empty())

    def test_invalid_units(self):
        with self.assertRaises(ValueError):
            Dense(0)

    def test_unknown_initializer(self):
        with self.assertRaises(ValueError):
            Dense(3, initializer="nope")

    def test_forward_before_compile_raises(self):
        with self.assertRaises(NotCompiledError):
            Dense(3, input_size=[2, 1, 1]).forward(Tensor([1.0, 2.0]))

    def test_forward_wrong_input_size_raises(self):
        layer = Dense(3, input_size=[2, 1, 1])
        layer.compile()
        with self.assertRaises(ShapeMismatchError):
            layer.forward(Tensor([1.0, 2.0, 3.0]))

    def test_reference_forward(self):
        layer = Dense(5, input_size=[4, 1, 1], bias_enabled=False)
        layer.compile()
        layer.weights = Tensor(SCENARIO_WEIGHTS)
        out = layer.forward(Tensor([0.5, 0.2, 0.2, 1.0]))
        np.testing.assert_allclose(
            out.flatten(), [0.95, 0.19, 0.95, 0.19, 0.95], atol=1e-6
        )

    def test_reference_forward_then_adam_step(self):
        for learning_rate in (0.01, 1.0):
            with self.subTest(learning_rate=learning_rate):
                dense = Dense(5, input_size=[4, 1, 1], bias_enabled=False)
                graph = Sequential(dense, seed=0)
                graph.compile()
                dense.weights = Tensor(SCENARIO_WEIGHTS)

                optimizer = Adam(graph, learning_rate=learning_rate, workers=1)
                result = optimizer.fit([[0.5, 0.2, 0.2, 1.0]], [[0, 0, 0, 0, 0]], "mse")
                np.testing.assert_allclose(
                    result.outputs[0].flatten(), [0.95, 0.19, 0.95, 0.19, 0.95], atol=1e-6
                )

                optimizer.step()
                # Every weight gradient is positive, so the first Adam delta is lr.
                expected = np.asarray(SCENARIO_WEIGHTS, dtype=np.float32) - learning_rate
                np.testing.assert_allclose(dense.weights.value[0], expected, atol=1e-5)
                self.assertEqual(optimizer.t, 1)

    def test_backward_matches_finite_differences(self):
        rng = np.random.default_rng(7)
        layer = Dense(3, input_size=[4, 2, 1])
        layer.compile(rng=np.random.default_rng(0))
        layer.biases.value[...] = rng.standard_normal(layer.biases.value.shape)

        x = rng.standard_normal((1, 2, 4)).astype(np.float32)
        r = rng.standard_normal((1, 1, 3)).astype(np.float32)

        def loss():
            return float(np.sum(layer.forward(Tensor(x)).value.astype(np.float64) * r))

        grads = layer.forward(Tensor(x)).gradients(Tensor(r))

        np.testing.assert_allclose(grads.input[0].value, numeric_grad(loss, x), atol=1e-2)
        np.testing.assert_allclose(
            grads.weights[0].value, numeric_grad(loss, layer.weights.value), atol=1e-2
        )
        np.testing.assert_allclose(
            grads.biases[0].value, numeric_grad(loss, layer.biases.value), atol=1e-2
        )

    def test_apply_subtracts_deltas(self):
        layer = Dense(2, input_size=[2, 1, 1])
        layer.compile()
        before_w = layer.weights.to_numpy()
        before_b = layer.biases.to_numpy()
        layer.apply(
            Gradient(Tensor.fill_with(0.5, layer.weights.size), Tensor.fill_with(1.0, layer.biases.size)),
            learning_rate=0.1,
        )
        np.testing.assert_allclose(layer.weights.value, before_w - 0.5)
        np.testing.assert_allclose(layer.biases.value, before_b - 1.0)

    def test_apply_wrong_shape_raises(self):
        layer = Dense(2, input_size=[2, 1, 1])
        layer.compile()
        with self.assertRaises(ShapeMismatchError):
            layer.apply(Gradient(Tensor([1.0]), Tensor.empty()), 0.1)

    def test_apply_is_noop_when_frozen(self):
        layer = Dense(2, input_size=[2, 1, 1], trainable=False)
        layer.compile()
        before = layer.weights.to_numpy()
        layer.apply(Gradient(Tensor.fill_with(1.0, layer.weights.size), Tensor.empty()), 0.1)
        np.testing.assert_array_equal(layer.weights.value, before)


if __name__ == "__main__":
    unittest.main()
