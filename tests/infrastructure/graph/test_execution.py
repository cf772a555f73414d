import unittest
import numpy as np

from neurograd import (
    ComputationGraph,
    ConcurrentExecutionError,
    ExecutionHook,
    ExecutionOptions,
    MissingInputOutputError,
    OperationExecutionError,
    OperationLibrary,
    OpType,
    UnsupportedOperationError,
    build_default_operation_library,
)


class CountingLibrary(OperationLibrary):
    """Default kernels with per-op invocation counters."""

    def __init__(self) -> None:
        super().__init__()
        default = build_default_operation_library()
        for op in default:
            self.register(op, default.get(op))
        self.calls = {}

    def run(self, op_type, inputs, params=None):
        self.calls[op_type] = self.calls.get(op_type, 0) + 1
        return super().run(op_type, inputs, params)

    @property
    def total(self) -> int:
        return sum(self.calls.values())


class RecordingHook(ExecutionHook):
    def __init__(self) -> None:
        self.events = []

    def before_execution(self, graph, options):
        self.events.append(("before_execution",))

    def after_execution(self, graph, result):
        self.events.append(("after_execution",))

    def before_node_execution(self, node):
        self.events.append(("before_node", node.id))

    def after_node_execution(self, node, output):
        self.events.append(("after_node", node.id))

    def on_error(self, error, node=None):
        self.events.append(("on_error", None if node is None else node.id, type(error)))


class TestScenarios(unittest.TestCase):
    def test_scenario_product(self) -> None:
        g = ComputationGraph()
        x = g.input(np.array(2.0), requires_grad=True)
        y = g.input(np.array(3.0), requires_grad=True)
        z = g.operation("multiply", [x, y])
        g.mark_output(z)
        result = g.execute(compute_gradients=True)
        self.assertEqual(float(result.outputs[z]), 6.0)
        self.assertEqual(float(g.get_gradient(x)), 3.0)
        self.assertEqual(float(g.get_gradient(y)), 2.0)

    def test_scenario_sum_of_squares(self) -> None:
        g = ComputationGraph()
        x = g.input(np.array(2.0), requires_grad=True)
        y = g.input(np.array(3.0), requires_grad=True)
        w = g.operation(
            "add", [g.operation("multiply", [x, x]), g.operation("multiply", [y, y])]
        )
        g.mark_output(w)
        result = g.execute(compute_gradients=True)
        self.assertEqual(float(result.outputs[w]), 13.0)
        self.assertEqual(float(result.gradients[x]), 4.0)
        self.assertEqual(float(result.gradients[y]), 6.0)

    def test_scenario_max_pool_routing(self) -> None:
        x_np = np.array(
            [
                [1.0, 9.0, 2.0, 3.0],
                [4.0, 0.0, 8.0, 1.0],
                [7.0, 2.0, 0.0, 5.0],
                [1.0, 3.0, 6.0, 2.0],
            ]
        ).reshape(1, 1, 4, 4)
        g = ComputationGraph()
        x = g.input(x_np, requires_grad=True)
        p = g.operation("max_pool2d", [x], params={"kernel_size": 2, "stride": 2})
        g.mark_output(p)
        result = g.execute(compute_gradients=True)

        np.testing.assert_array_equal(result.outputs[p][0, 0], [[9.0, 8.0], [7.0, 6.0]])
        expected = np.zeros((4, 4))
        expected[0, 1] = expected[1, 2] = expected[2, 0] = expected[3, 2] = 1.0
        np.testing.assert_array_equal(g.get_gradient(x)[0, 0], expected)


class TestForwardExecution(unittest.TestCase):
    def _graph(self, library=None):
        g = ComputationGraph(library)
        a = g.input(np.array([1.0, -2.0]), requires_grad=True)
        b = g.variable(np.array([3.0, 4.0]))
        s = g.operation("add", [a, b])
        r = g.operation("relu", [s])
        g.mark_output(r)
        return g, a, b, s, r

    def test_outputs_and_performance(self) -> None:
        g, a, b, s, r = self._graph()
        result = g.execute()
        np.testing.assert_array_equal(result.outputs[r], [4.0, 2.0])
        self.assertIsNone(result.gradients)
        self.assertIsNone(result.performance.backward_time)
        self.assertEqual(result.performance.operations_executed, 2)
        self.assertEqual(result.performance.cache_hit_rate, 0.0)
        self.assertGreaterEqual(result.performance.forward_time, 0.0)
        self.assertEqual(len(result.execution_log), 4)
        self.assertIsNotNone(g.get_node(s).performance)
        self.assertIsNotNone(g.get_node(s).metadata.last_executed)

    def test_outputs_are_read_only(self) -> None:
        g, a, b, s, r = self._graph()
        out = g.execute().outputs[r]
        with self.assertRaises(ValueError):
            out[0] = 0.0
        self.assertTrue(g.get_node(a).output.flags.writeable)

    def test_cache_reuse_performs_no_kernel_calls(self) -> None:
        lib = CountingLibrary()
        g, *_ = self._graph(lib)
        g.execute()
        self.assertEqual(lib.total, 2)

        result = g.execute(use_cached=True)
        self.assertEqual(lib.total, 2)
        self.assertEqual(result.performance.operations_executed, 0)
        self.assertEqual(result.performance.cache_hit_rate, 1.0)

        g.execute(use_cached=False)
        self.assertEqual(lib.total, 4)

    def test_cache_results_false_always_recomputes(self) -> None:
        lib = CountingLibrary()
        g, *_ = self._graph(lib)
        g.execute(cache_results=False)
        g.execute()
        self.assertEqual(lib.total, 4)

    def test_lazy_strategy_skips_unneeded_nodes(self) -> None:
        lib = CountingLibrary()
        g, a, b, s, r = self._graph(lib)
        unused = g.operation("exp", [a])
        g.set_execution_strategy("lazy")
        g.execute()
        self.assertNotIn(OpType.EXP, lib.calls)
        self.assertIsNone(g.get_node(unused).output)

        g.set_execution_strategy("topological")
        g.execute()
        self.assertEqual(lib.calls[OpType.EXP], 1)

    def test_lazy_without_outputs_runs_nothing(self) -> None:
        g = ComputationGraph(strategy="lazy")
        a = g.input(np.ones(2))
        g.operation("exp", [a])
        result = g.execute()
        self.assertEqual(result.outputs, {})
        self.assertEqual(result.performance.operations_executed, 0)

    def test_priority_option(self) -> None:
        g, a, b, s, r = self._graph()
        order = []

        class Order(ExecutionHook):
            def before_node_execution(self, node):
                order.append(node.id)

        g.add_execution_hook(Order())
        g.execute(priority_fn=lambda node: 1.0 if node.id == b else 0.0)
        self.assertEqual(order, [b, a, s, r])

    def test_unsupported_operation_in_library(self) -> None:
        lib = OperationLibrary()
        g = ComputationGraph(lib)
        y = g.operation("relu", [g.input(np.ones(2))])
        g.mark_output(y)
        with self.assertRaises(UnsupportedOperationError) as cm:
            g.execute()
        self.assertEqual(cm.exception.node_id, y)
        self.assertEqual(cm.exception.op_type, "relu")

    def test_kernel_failure_is_wrapped(self) -> None:
        g = ComputationGraph()
        y = g.operation("matmul", [g.input(np.ones((2, 3))), g.input(np.ones((2, 3)))])
        g.mark_output(y)
        with self.assertRaises(OperationExecutionError) as cm:
            g.execute()
        self.assertEqual(cm.exception.node_id, y)
        self.assertEqual(cm.exception.op_type, "matmul")
        self.assertIsInstance(cm.exception.__cause__, ValueError)

    def test_missing_input_output(self) -> None:
        from neurograd.infrastructure.graph import ForwardExecutor

        g = ComputationGraph()
        a = g.input(np.ones(2))
        e = g.operation("exp", [a])
        r = g.operation("relu", [e])
        with self.assertRaises(MissingInputOutputError) as cm:
            ForwardExecutor(g.library, []).run(g.nodes, [a, r], ExecutionOptions())
        self.assertEqual(cm.exception.node_id, r)
        self.assertEqual(cm.exception.input_id, e)

    def test_forward_stats_counters(self) -> None:
        from dataclasses import fields

        from neurograd.infrastructure.graph import ForwardExecutor

        g, a, b, s, r = self._graph()
        executor = ForwardExecutor(g.library, [])
        order = [a, b, s, r]
        first = executor.run(g.nodes, order, ExecutionOptions())
        second = executor.run(g.nodes, order, ExecutionOptions())
        self.assertEqual(
            [f.name for f in fields(first)],
            ["cache_hits", "cache_misses", "operations_executed", "log"],
        )
        self.assertEqual((first.cache_hits, first.cache_misses), (0, 2))
        self.assertEqual((second.cache_hits, second.cache_misses), (2, 0))
        self.assertEqual(second.operations_executed, 0)
        self.assertEqual(second.cache_hit_rate, 1.0)

    def test_stats_accumulate(self) -> None:
        g, *_ = self._graph()
        g.execute()
        g.execute()
        self.assertEqual(g.stats.execution_count, 2)
        self.assertGreaterEqual(g.stats.max_time, g.stats.min_time)


class TestHooks(unittest.TestCase):
    def test_hook_order(self) -> None:
        g = ComputationGraph()
        a = g.input(np.ones(1))
        r = g.operation("relu", [a])
        g.mark_output(r)
        hook = RecordingHook()
        g.add_execution_hook(hook)
        g.execute()
        self.assertEqual(
            hook.events,
            [
                ("before_execution",),
                ("before_node", a),
                ("after_node", a),
                ("before_node", r),
                ("after_node", r),
                ("after_execution",),
            ],
        )

    def test_multiple_hooks_called_in_registration_order(self) -> None:
        g = ComputationGraph()
        g.mark_output(g.input(np.ones(1)))
        calls = []

        class Named(ExecutionHook):
            def __init__(self, name):
                self.name = name

            def before_execution(self, graph, options):
                calls.append(self.name)

        first, second = Named("first"), Named("second")
        g.add_execution_hook(first)
        g.add_execution_hook(second)
        g.execute()
        self.assertEqual(calls, ["first", "second"])

        g.remove_execution_hook(first)
        g.execute()
        self.assertEqual(calls, ["first", "second", "second"])

    def test_on_error_receives_failing_node(self) -> None:
        g = ComputationGraph()
        y = g.operation("matmul", [g.input(np.ones((2, 3))), g.input(np.ones((2, 3)))])
        g.mark_output(y)
        hook = RecordingHook()
        g.add_execution_hook(hook)
        with self.assertRaises(OperationExecutionError):
            g.execute()
        self.assertEqual(hook.events[-1], ("on_error", y, OperationExecutionError))
        self.assertNotIn(("after_execution",), hook.events)

    def test_reentrant_execute_rejected(self) -> None:
        g = ComputationGraph()
        g.mark_output(g.input(np.ones(1)))
        seen = []

        class Reenter(ExecutionHook):
            def before_execution(self, graph, options):
                try:
                    graph.execute()
                except ConcurrentExecutionError as e:
                    seen.append(e)

        g.add_execution_hook(Reenter())
        g.execute()
        self.assertEqual(len(seen), 1)
        g.execute()
        self.assertEqual(len(seen), 2)


if __name__ == "__main__":
    unittest.main()
