import unittest

import numpy as np

from neurite.domain._errors import ConfigurationError, ShapeMismatchError
from neurite.domain.types._tensor_size import TensorSize
from neurite.infrastructure.fully_connected._dense import Dense
from neurite.infrastructure._activations import ReLu
from neurite.infrastructure.models._sequential import Sequential
from neurite.infrastructure.tensor._tensor import Tensor, TensorGradient, stack_depth
from neurite.infrastructure.tensor._tensor_context import BackwardResult, Context


class TestTensorConstruction(unittest.TestCase):
    def test_1d_becomes_single_row(self):
        t = Tensor([1.0, 2.0, 3.0])
        self.assertEqual(t.value.shape, (1, 1, 3))
        self.assertEqual(t.shape, [3, 1, 1])
        self.assertEqual(t.value.dtype, np.float32)

    def test_2d_becomes_single_slice(self):
        t = Tensor([[1, 2], [3, 4], [5, 6]])
        self.assertEqual(t.shape, [2, 3, 1])
        self.assertEqual(t.size, TensorSize(2, 3, 1))

    def test_scalar(self):
        self.assertEqual(Tensor(2.5).shape, [1, 1, 1])

    def test_rejects_four_dimensions(self):
        with self.assertRaises(ValueError):
            Tensor(np.zeros((1, 1, 1, 1)))

    def test_constructor_copies_source(self):
        src = np.ones((1, 2, 2), dtype=np.float32)
        t = Tensor(src)
        src[...] = 5.0
        np.testing.assert_array_equal(t.value, np.ones((1, 2, 2)))

    def test_empty(self):
        t = Tensor.empty()
        self.assertTrue(t.is_empty())
        self.assertTrue(t.is_leaf())
        self.assertEqual(t.shape, [0, 0, 0])

    def test_factories(self):
        size = TensorSize(3, 2, 2)
        self.assertEqual(Tensor.zeros(size).value.shape, (2, 2, 3))
        np.testing.assert_array_equal(Tensor.fill_with(7, size).value, np.full((2, 2, 3), 7))
        self.assertEqual(Tensor.zeros_like(Tensor([1, 2])).shape, [2, 1, 1])


class TestTensorHelpers(unittest.TestCase):
    def test_norm_and_l2_normalized(self):
        t = Tensor([3.0, 4.0])
        self.assertAlmostEqual(t.norm(), 5.0, places=6)
        np.testing.assert_allclose(t.l2_normalized().flatten(), [0.6, 0.8], atol=1e-6)

    def test_l2_normalized_of_zero_is_zero(self):
        np.testing.assert_array_equal(Tensor([0.0, 0.0]).l2_normalized().flatten(), [0, 0])

    def test_clip_is_in_place(self):
        t = Tensor([-3.0, 0.5, 3.0])
        t.clip(1.0)
        np.testing.assert_array_equal(t.flatten(), [-1.0, 0.5, 1.0])

    def test_is_finite(self):
        self.assertTrue(Tensor([1.0, 2.0]).is_finite())
        self.assertFalse(Tensor([1.0, np.nan]).is_finite())
        self.assertFalse(Tensor([np.inf]).is_finite())

    def test_is_value_equal(self):
        a = Tensor([1.0, 2.0])
        self.assertTrue(a.is_value_equal(Tensor([1.0, 2.0000001])))
        self.assertFalse(a.is_value_equal(Tensor([1.0, 2.1])))
        self.assertFalse(a.is_value_equal(Tensor([[1.0], [2.0]])))

    def test_arithmetic_returns_leaves(self):
        a = Tensor([1.0, 2.0])
        b = Tensor([3.0, 5.0])
        np.testing.assert_array_equal((a + b).flatten(), [4, 7])
        np.testing.assert_array_equal((b - a).flatten(), [2, 3])
        np.testing.assert_array_equal((a * 2).flatten(), [2, 4])
        np.testing.assert_array_equal((1 - a).flatten(), [0, -1])
        np.testing.assert_array_equal((-a).flatten(), [-1, -2])
        self.assertTrue((a + b).is_leaf())

    def test_arithmetic_shape_mismatch(self):
        with self.assertRaises(ShapeMismatchError):
            _ = Tensor([1.0, 2.0]) + Tensor([1.0, 2.0, 3.0])

    def test_stack_depth(self):
        t = stack_depth([Tensor([[1, 2]]), Tensor([[3, 4]])])
        self.assertEqual(t.shape, [2, 1, 2])


class TestTensorGraph(unittest.TestCase):
    def test_leaf_gradients_return_delta(self):
        delta = Tensor([0.5, 0.25])
        grads = Tensor([1.0, 2.0]).gradients(delta)
        self.assertIsInstance(grads, TensorGradient)
        self.assertEqual(len(grads.input), 1)
        self.assertIs(grads.input[0], delta)
        self.assertEqual(grads.weights, [])
        self.assertEqual(grads.biases, [])

    def test_set_graph_on_leaf_raises(self):
        with self.assertRaises(ConfigurationError):
            Tensor([1.0]).set_graph(Tensor([2.0]))

    def test_set_graph_self_reference_raises(self):
        ctx = Context(op="id", backward_fn=lambda g: BackwardResult((g,), ()))
        t = Tensor([1.0], context=ctx)
        with self.assertRaises(ConfigurationError):
            t.set_graph(t)

    def test_custom_context_chain(self):
        x = Tensor([1.0, 2.0])
        ctx = Context(
            op="double",
            backward_fn=lambda g: (
                [Tensor._wrap(g.value * 2)],
                [Tensor.empty(), Tensor.empty()],
            ),
        )
        y = Tensor(x.value * 2, context=ctx)
        y.set_graph(x)
        grads = y.gradients(Tensor([1.0, 1.0]))
        np.testing.assert_array_equal(grads.input[0].flatten(), [2.0, 2.0])

    def test_delta_shape_mismatch_raises(self):
        graph = Sequential(Dense(3, input_size=[2, 1, 1]), seed=0)
        graph.compile()
        out = graph.forward(Tensor([1.0, 2.0]))
        with self.assertRaises(ShapeMismatchError):
            out.gradients(Tensor([1.0, 2.0]))

    def test_gradients_are_ordered_input_first(self):
        graph = Sequential(
            Dense(4, input_size=[3, 1, 1]),
            ReLu(),
            Dense(2),
            seed=3,
        )
        graph.compile()
        out = graph.forward(Tensor([0.1, -0.2, 0.3]))
        grads = out.gradients(Tensor([1.0, -1.0]))

        self.assertEqual(len(grads.input), 3)
        self.assertEqual(len(grads), 3)
        self.assertEqual(grads.input[0].shape, [3, 1, 1])
        self.assertEqual(grads.input[2].shape, [4, 1, 1])
        self.assertEqual(grads.weights[0].shape, graph[0].weights.shape)
        self.assertTrue(grads.weights[1].is_empty())
        self.assertEqual(grads.weights[2].shape, graph[2].weights.shape)

    def test_gradient_shapes_mirror_layer_shapes(self):
        graph = Sequential(Dense(4, input_size=[3, 2, 1]), Dense(2), seed=1)
        graph.compile()
        out = graph.forward(Tensor(np.ones((1, 2, 3))))
        grads = out.gradients(Tensor([1.0, 1.0]))
        for layer, gw, gb in zip(graph, grads.weights, grads.biases):
            self.assertEqual(gw.shape, layer.weights.shape)
            self.assertEqual(gb.shape, layer.biases.shape)

    def test_detached_is_a_leaf_copy(self):
        graph = Sequential(Dense(2, input_size=[2, 1, 1]), seed=0)
        graph.compile()
        out = graph.forward(Tensor([1.0, 1.0]))
        self.assertFalse(out.is_leaf())
        copy = out.detached()
        self.assertTrue(copy.is_leaf())
        copy.value[...] = 0
        self.assertFalse(np.allclose(out.value, 0))


if __name__ == "__main__":
    unittest.main()
