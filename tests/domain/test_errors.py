import unittest

from neurite.domain._errors import (
    ConfigurationError,
    DataError,
    NeuriteError,
    NotCompiledError,
    NumericalInstabilityError,
    ShapeMismatchError,
)


class TestErrorTaxonomy(unittest.TestCase):
    def test_hierarchy(self):
        self.assertTrue(issubclass(ConfigurationError, NeuriteError))
        self.assertTrue(issubclass(ConfigurationError, RuntimeError))
        self.assertTrue(issubclass(ShapeMismatchError, ConfigurationError))
        self.assertTrue(issubclass(ShapeMismatchError, ValueError))
        self.assertTrue(issubclass(NotCompiledError, ConfigurationError))
        self.assertTrue(issubclass(DataError, ValueError))
        self.assertTrue(issubclass(NumericalInstabilityError, FloatingPointError))

    def test_shape_mismatch_records_shapes(self):
        err = ShapeMismatchError("bad input", expected=(4, 1, 1), actual=(3, 1, 1))
        self.assertEqual(err.expected, [4, 1, 1])
        self.assertEqual(err.actual, [3, 1, 1])
        self.assertIn("expected [4, 1, 1]", str(err))
        self.assertIn("got [3, 1, 1]", str(err))

    def test_shape_mismatch_without_shapes(self):
        err = ShapeMismatchError("bad input")
        self.assertIsNone(err.expected)
        self.assertEqual(str(err), "bad input")

    def test_not_compiled_names_component(self):
        err = NotCompiledError("Dense")
        self.assertEqual(err.component, "Dense")
        self.assertIn("compile()", str(err))

    def test_numerical_instability_names_location(self):
        err = NumericalInstabilityError("layer 2 weights")
        self.assertEqual(err.where, "layer 2 weights")
        self.assertIn("layer 2 weights", str(err))


if __name__ == "__main__":
    unittest.main()
