import unittest
import numpy as np

from neurograd import (
    GradientArity,
    GradientNotFoundError,
    GradientRegistry,
    IncompleteRegistryError,
    OperationLibrary,
    OpType,
    build_default_gradient_registry,
    build_default_operation_library,
    verify_coverage,
)


class TestGradientRegistry(unittest.TestCase):
    def test_default_registry_is_complete(self) -> None:
        verify_coverage(build_default_operation_library(), build_default_gradient_registry())

    def test_arity_classes(self) -> None:
        registry = build_default_gradient_registry()
        expected = {
            OpType.ADD: GradientArity.BINARY,
            OpType.MATMUL: GradientArity.BINARY,
            OpType.TRANSPOSE: GradientArity.UNARY_INPUT,
            OpType.LOG: GradientArity.UNARY_INPUT,
            OpType.RELU: GradientArity.UNARY_INPUT,
            OpType.EXP: GradientArity.UNARY_OUTPUT,
            OpType.SIGMOID: GradientArity.UNARY_OUTPUT,
            OpType.TANH: GradientArity.UNARY_OUTPUT,
            OpType.SOFTMAX: GradientArity.PARAMETERIZED,
            OpType.CONV2D: GradientArity.PARAMETERIZED,
            OpType.GROUP_NORM: GradientArity.PARAMETERIZED,
        }
        for op, arity in expected.items():
            with self.subTest(op=op):
                self.assertIs(registry.lookup(op).arity, arity)

    def test_missing_coverage_is_reported(self) -> None:
        registry = build_default_gradient_registry()
        library = OperationLibrary()
        with self.assertRaises(IncompleteRegistryError) as cm:
            verify_coverage(library, registry)
        self.assertEqual(len(cm.exception.missing_forward), len(OpType))
        self.assertEqual(cm.exception.missing_backward, ())

    def test_get_and_lookup(self) -> None:
        registry = GradientRegistry()
        self.assertIsNone(registry.get(OpType.ADD))
        with self.assertRaises(GradientNotFoundError) as cm:
            registry.lookup(OpType.ADD)
        self.assertEqual(cm.exception.op_type, "add")

    def test_later_registration_overwrites(self) -> None:
        registry = GradientRegistry()
        registry.register_binary("add", lambda g, a, b: (g, g))
        registry.register_binary("add", lambda g, a, b: (2 * g, 2 * g))
        ga, gb = registry.lookup(OpType.ADD).invoke(np.ones(2), [np.ones(2), np.ones(2)], None, {}, {})
        np.testing.assert_array_equal(ga, [2.0, 2.0])
        self.assertEqual(len(registry), 1)

    def test_decorator_registration(self) -> None:
        registry = GradientRegistry()

        @registry.rule(OpType.EXP, GradientArity.UNARY_OUTPUT)
        def exp_rule(g, x, out):
            return g * out

        self.assertIn(OpType.EXP, registry)
        gx = registry.lookup(OpType.EXP).invoke(np.ones(1), [np.zeros(1)], np.full(1, 3.0), {}, {})
        np.testing.assert_array_equal(gx[0], [3.0])


class TestGradientEntryInvoke(unittest.TestCase):
    def test_unary_input_receives_params(self) -> None:
        registry = GradientRegistry()
        seen = {}

        def rule(g, x, params):
            seen.update(params)
            return g

        registry.register_unary(OpType.RELU, rule)
        registry.lookup(OpType.RELU).invoke(np.ones(1), [np.ones(1)], np.ones(1), {"k": 1}, {})
        self.assertEqual(seen, {"k": 1})

    def test_short_results_are_padded_with_none(self) -> None:
        registry = GradientRegistry()
        registry.register_parameterized(OpType.CONV2D, lambda g, inputs, out, params, saved: g)
        grads = registry.lookup(OpType.CONV2D).invoke(
            np.ones(1), [np.ones(1), np.ones(1), np.ones(1)], np.ones(1), {}, {}
        )
        self.assertEqual(len(grads), 3)
        self.assertIsNone(grads[1])
        self.assertIsNone(grads[2])

    def test_binary_arity_checked(self) -> None:
        registry = build_default_gradient_registry()
        with self.assertRaises(ValueError):
            registry.lookup(OpType.ADD).invoke(np.ones(1), [np.ones(1)], np.ones(1), {}, {})


if __name__ == "__main__":
    unittest.main()
