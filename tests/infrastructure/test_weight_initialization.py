import math
import unittest

import numpy as np

from neurite.domain.types._tensor_size import TensorSize
from neurite.infrastructure.tensor._tensor import Tensor
from neurite.infrastructure.utils.weight_initializer import WeightInitializer


class TestWeightInitializer(unittest.TestCase):
    def test_builtin_names(self):
        for name in ("xavier_normal", "xavier_uniform", "he_normal", "he_uniform", "zeros", "ones"):
            self.assertIn(name, WeightInitializer.available())

    def test_unknown_name(self):
        with self.assertRaises(ValueError):
            WeightInitializer("lecun_normal")

    def test_duplicate_registration(self):
        with self.assertRaises(ValueError):
            WeightInitializer.register_initializer("zeros")(lambda t, **_: t)

    def test_constants(self):
        t = Tensor.zeros(TensorSize(3, 2, 1))
        WeightInitializer("ones")(t, fan_in=3, fan_out=2)
        np.testing.assert_array_equal(t.value, np.ones((1, 2, 3)))

    def test_uniform_bounds(self):
        t = Tensor.zeros(TensorSize(50, 40, 1))
        WeightInitializer("xavier_uniform")(t, fan_in=50, fan_out=40, rng=np.random.default_rng(0))
        bound = math.sqrt(6.0 / 90.0)
        self.assertLessEqual(float(np.max(np.abs(t.value))), bound)

        WeightInitializer("he_uniform")(t, fan_in=50, fan_out=40, rng=np.random.default_rng(0))
        self.assertLessEqual(float(np.max(np.abs(t.value))), math.sqrt(6.0 / 50.0))

    def test_normal_spread(self):
        t = Tensor.zeros(TensorSize(100, 100, 1))
        WeightInitializer("he_normal")(t, fan_in=100, fan_out=100, rng=np.random.default_rng(1))
        self.assertAlmostEqual(float(np.std(t.value)), math.sqrt(2.0 / 100.0), delta=0.01)

    def test_same_generator_same_values(self):
        a = Tensor.zeros(TensorSize(4, 4, 1))
        b = Tensor.zeros(TensorSize(4, 4, 1))
        init = WeightInitializer("xavier_normal")
        init(a, fan_in=4, fan_out=4, rng=np.random.default_rng(9))
        init(b, fan_in=4, fan_out=4, rng=np.random.default_rng(9))
        np.testing.assert_array_equal(a.value, b.value)


if __name__ == "__main__":
    unittest.main()
