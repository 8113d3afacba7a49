import unittest

import numpy as np

from neurite.domain._errors import ShapeMismatchError
from neurite.infrastructure.reshape._reshape_module import Flatten, Reshape
from neurite.infrastructure.tensor._tensor import Tensor


class TestReshape(unittest.TestCase):
    def test_flatten_output_and_backward(self):
        layer = Flatten(input_size=[3, 2, 2])
        layer.compile()
        self.assertEqual(layer.output_size.as_list(), [12, 1, 1])

        x = Tensor(np.arange(12, dtype=np.float32).reshape(2, 2, 3))
        out = layer.forward(x)
        np.testing.assert_array_equal(out.flatten(), np.arange(12))

        grads = out.gradients(Tensor(np.arange(12, dtype=np.float32)))
        np.testing.assert_array_equal(grads.input[0].value, x.value)

    def test_reshape_to_target(self):
        layer = Reshape([2, 3, 1], input_size=[6, 1, 1])
        layer.compile()
        out = layer.forward(Tensor([1, 2, 3, 4, 5, 6]))
        self.assertEqual(out.shape, [2, 3, 1])
        np.testing.assert_array_equal(out.value[0], [[1, 2], [3, 4], [5, 6]])

    def test_reshape_count_mismatch(self):
        layer = Reshape([4, 2, 1], input_size=[6, 1, 1])
        with self.assertRaises(ShapeMismatchError):
            layer.compile()

    def test_reshape_config_round_trip(self):
        layer = Reshape([2, 3, 1], input_size=[6, 1, 1])
        rebuilt = Reshape.from_config(layer.get_config())
        rebuilt.compile()
        self.assertEqual(rebuilt.output_size.as_list(), [2, 3, 1])


if __name__ == "__main__":
    unittest.main()
