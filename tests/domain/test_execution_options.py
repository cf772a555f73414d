import unittest

from neurograd.domain import (
    Device,
    ExecutionOptions,
    ExecutionStats,
    ExecutionStrategy,
    NodeKind,
    OpType,
)


class TestExecutionOptions(unittest.TestCase):
    def test_defaults(self) -> None:
        opts = ExecutionOptions()
        self.assertTrue(opts.use_cached)
        self.assertTrue(opts.cache_results)
        self.assertFalse(opts.compute_gradients)
        self.assertTrue(opts.optimize_memory)
        self.assertFalse(opts.run_async)
        self.assertEqual(opts.device, "cpu")
        self.assertIsNone(opts.priority_fn)
        self.assertEqual(opts.execution_params, {})

    def test_merged_overrides_and_keeps_original(self) -> None:
        opts = ExecutionOptions()
        merged = opts.merged(compute_gradients=True, use_cached=False)
        self.assertTrue(merged.compute_gradients)
        self.assertFalse(merged.use_cached)
        self.assertFalse(opts.compute_gradients)

    def test_merged_rejects_unknown_option(self) -> None:
        with self.assertRaises(TypeError):
            ExecutionOptions().merged(not_an_option=1)

    def test_config_round_trip(self) -> None:
        opts = ExecutionOptions(cache_results=False, device="cuda:1", execution_params={"k": 1})
        cfg = opts.get_config()
        self.assertNotIn("priority_fn", cfg)
        self.assertEqual(ExecutionOptions.from_config(cfg), opts)

    def test_invalid_device_rejected(self) -> None:
        with self.assertRaises(ValueError):
            ExecutionOptions(device="tpu")


class TestDevice(unittest.TestCase):
    def test_parsing(self) -> None:
        self.assertEqual(str(Device("cpu")), "cpu")
        self.assertEqual(str(Device("cuda:2")), "cuda:2")
        self.assertEqual(Device("gpu"), Device("cuda:0"))
        self.assertNotEqual(Device("cpu"), Device("cuda:0"))

    def test_invalid(self) -> None:
        for bad in ("", "CPU", "cuda", "cuda:-1", "cuda:x"):
            with self.subTest(device=bad):
                with self.assertRaises(ValueError):
                    Device(bad)


class TestExecutionStats(unittest.TestCase):
    def test_record(self) -> None:
        stats = ExecutionStats()
        self.assertEqual(stats.average_time, 0.0)
        stats.record(2.0)
        stats.record(4.0)
        self.assertEqual(stats.execution_count, 2)
        self.assertEqual(stats.total_time, 6.0)
        self.assertEqual(stats.min_time, 2.0)
        self.assertEqual(stats.max_time, 4.0)
        self.assertEqual(stats.average_time, 3.0)
        self.assertIsNotNone(stats.last_executed)


class TestEnums(unittest.TestCase):
    def test_op_type_parse(self) -> None:
        self.assertIs(OpType.parse("matmul"), OpType.MATMUL)
        self.assertIs(OpType.parse(OpType.RELU), OpType.RELU)
        with self.assertRaises(ValueError):
            OpType.parse("conv3d")

    def test_node_kind_leaf(self) -> None:
        self.assertTrue(NodeKind.INPUT.is_leaf)
        self.assertTrue(NodeKind.CONSTANT.is_leaf)
        self.assertTrue(NodeKind.VARIABLE.is_leaf)
        self.assertFalse(NodeKind.OPERATION.is_leaf)

    def test_strategy_values(self) -> None:
        self.assertEqual(ExecutionStrategy("lazy"), ExecutionStrategy.LAZY)


if __name__ == "__main__":
    unittest.main()
