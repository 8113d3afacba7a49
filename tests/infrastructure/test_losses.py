import unittest

import numpy as np

from neurite.domain._errors import DataError
from neurite.infrastructure._losses import (
    BinaryCrossEntropy,
    CrossEntropy,
    CrossEntropySoftmax,
    MeanSquaredError,
    get_loss,
)
from neurite.infrastructure.tensor._tensor import Tensor


class TestLosses(unittest.TestCase):
    def test_mse(self):
        loss = MeanSquaredError()
        self.assertAlmostEqual(loss.calculate([1.0, 3.0], [0.0, 0.0]), 5.0)
        np.testing.assert_allclose(loss.derivative([1.0, 3.0], [0.0, 0.0]).flatten(), [1.0, 3.0])

    def test_derivative_keeps_prediction_shape(self):
        p = Tensor(np.zeros((1, 1, 3)))
        d = MeanSquaredError().derivative(p, [[1.0], [1.0], [1.0]])
        self.assertEqual(d.shape, p.shape)

    def test_cross_entropy(self):
        loss = CrossEntropy()
        self.assertAlmostEqual(loss.calculate([0.25, 0.75], [0.0, 1.0]), -np.log(0.75), places=6)
        np.testing.assert_allclose(
            loss.derivative([0.25, 0.5], [0.0, 1.0]).flatten(), [0.0, -2.0], atol=1e-6
        )

    def test_cross_entropy_softmax_derivative(self):
        d = CrossEntropySoftmax().derivative([0.2, 0.7, 0.1], [0.0, 1.0, 0.0])
        np.testing.assert_allclose(d.flatten(), [0.2, -0.3, 0.1], atol=1e-6)

    def test_probabilities_are_clipped(self):
        loss = CrossEntropy()
        self.assertTrue(np.isfinite(loss.calculate([0.0, 1.0], [1.0, 0.0])))
        self.assertTrue(loss.derivative([0.0, 1.0], [1.0, 0.0]).is_finite())

    def test_binary_cross_entropy(self):
        loss = BinaryCrossEntropy()
        self.assertAlmostEqual(loss.calculate([0.5], [1.0]), np.log(2.0), places=6)
        np.testing.assert_allclose(loss.derivative([0.5], [1.0]).flatten(), [-2.0], atol=1e-5)

    def test_get_loss(self):
        self.assertIsInstance(get_loss("mse"), MeanSquaredError)
        self.assertIsInstance(get_loss("cross_entropy_softmax"), CrossEntropySoftmax)
        with self.assertRaises(ValueError):
            get_loss("hinge")

    def test_size_mismatch(self):
        with self.assertRaises(DataError):
            MeanSquaredError().calculate([1.0, 2.0], [1.0])


if __name__ == "__main__":
    unittest.main()
