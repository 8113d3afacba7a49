import unittest

import numpy as np

from neurite.domain._errors import ConfigurationError, NotCompiledError
from neurite.infrastructure._activations import ReLu
from neurite.infrastructure.fully_connected._dense import Dense
from neurite.infrastructure.layers._dropout import Dropout
from neurite.infrastructure.models._sequential import Sequential
from neurite.infrastructure.tensor._tensor import Tensor


class TestSequential(unittest.TestCase):
    def test_forward_before_compile(self):
        graph = Sequential(Dense(2, input_size=[3, 1, 1]))
        with self.assertRaises(NotCompiledError):
            graph.forward(Tensor([1.0, 2.0, 3.0]))

    def test_compile_errors(self):
        with self.assertRaises(ConfigurationError):
            Sequential().compile()
        with self.assertRaises(ConfigurationError):
            Sequential(Dense(2)).compile()

    def test_add_rejects_non_layers(self):
        with self.assertRaises(TypeError):
            Sequential().add("Dense")

    def test_sizes_flow_through_the_chain(self):
        graph = Sequential(Dense(4, input_size=[3, 1, 1]), ReLu(), Dense(2))
        graph.compile()
        self.assertEqual(graph.input_size.as_list(), [3, 1, 1])
        self.assertEqual(graph[1].input_size.as_list(), [4, 1, 1])
        self.assertEqual(graph.output_size.as_list(), [2, 1, 1])
        self.assertEqual(graph.parameter_count, 3 * 4 + 4 + 4 * 2 + 2)

    def test_compile_with_explicit_input_size(self):
        graph = Sequential(Dense(2))
        graph.compile([5, 1, 1])
        self.assertEqual(graph[0].weights.shape, [5, 2, 1])

    def test_forward_graph_has_one_node_per_layer(self):
        graph = Sequential(Dense(4, input_size=[3, 1, 1]), ReLu(), Dense(2))
        graph.compile()
        out = graph.forward(Tensor([1.0, -1.0, 0.5]))
        grads = out.gradients(Tensor([1.0, 1.0]))
        self.assertEqual(len(grads), 3)
        self.assertEqual(grads.input[0].shape, [3, 1, 1])
        self.assertEqual(grads.weights[0].shape, graph[0].weights.shape)
        self.assertTrue(grads.weights[1].is_empty())

    def test_seed_reproducibility(self):
        def build(seed):
            graph = Sequential(Dense(4, input_size=[3, 1, 1]), Dense(2), seed=seed)
            graph.compile()
            return graph.state()

        a, b, c = build(5), build(5), build(6)
        for key in a:
            np.testing.assert_array_equal(a[key], b[key])
        self.assertFalse(np.array_equal(a["0.weights"], c["0.weights"]))

    def test_predict_restores_modes_and_detaches(self):
        graph = Sequential(Dense(3, input_size=[2, 1, 1]), Dropout(0.5))
        graph.compile()
        graph[1].mask = [0.0, 0.0, 0.0]
        out = graph.predict(Tensor([1.0, 2.0]))
        self.assertTrue(out.is_leaf())
        self.assertTrue(graph[1].is_training)
        self.assertTrue(np.any(out.value != 0.0))

        graph.eval()
        graph.predict(Tensor([1.0, 2.0]))
        self.assertFalse(graph[1].is_training)

    def test_structure_version_changes(self):
        graph = Sequential(Dense(2, input_size=[2, 1, 1]))
        v0 = graph.structure_version
        graph.compile()
        v1 = graph.structure_version
        graph.add(Dense(1))
        v2 = graph.structure_version
        self.assertLess(v0, v1)
        self.assertLess(v1, v2)
        self.assertFalse(graph.is_compiled)

    def test_summary_lists_layers(self):
        graph = Sequential(Dense(4, input_size=[3, 1, 1]), ReLu())
        graph.compile()
        text = graph.summary()
        self.assertIn("Dense", text)
        self.assertIn("ReLu", text)
        self.assertIn("total params=16", text)

    def test_load_state_requires_compile(self):
        graph = Sequential(Dense(2, input_size=[2, 1, 1]))
        with self.assertRaises(NotCompiledError):
            graph.load_state({})


if __name__ == "__main__":
    unittest.main()
