import unittest
import numpy as np

from neurograd import ComputationGraph, CycleDetectedError, ExecutionStrategy
from neurograd.domain import Node, NodeKind, OpType
from neurograd.infrastructure.graph import Scheduler, priority_order, topological_order


def _assert_valid_order(testcase, nodes, order) -> None:
    position = {node_id: k for k, node_id in enumerate(order)}
    testcase.assertEqual(len(position), len(order), "order contains duplicates")
    for node_id in order:
        for dep in nodes[node_id].input_ids:
            if dep in position:
                testcase.assertLess(position[dep], position[node_id])


def _diamond() -> ComputationGraph:
    g = ComputationGraph()
    a = g.input(np.ones(2), name="a")
    b = g.input(np.ones(2), name="b")
    s = g.operation("add", [a, b], name="s")
    m = g.operation("multiply", [a, s], name="m")
    e = g.operation("exp", [b], name="e")
    g.operation("add", [m, e], name="out")
    return g


class TestTopologicalOrder(unittest.TestCase):
    def test_every_node_after_its_inputs(self) -> None:
        g = _diamond()
        order = topological_order(g.nodes)
        self.assertEqual(sorted(order), list(range(len(g))))
        _assert_valid_order(self, g.nodes, order)

    def test_deterministic(self) -> None:
        g = _diamond()
        self.assertEqual(topological_order(g.nodes), topological_order(g.nodes))

    def test_deep_chain_does_not_recurse(self) -> None:
        g = ComputationGraph()
        node = g.input(np.zeros(1))
        for _ in range(5000):
            node = g.operation("relu", [node])
        order = topological_order(g.nodes)
        self.assertEqual(order, list(range(5001)))

    def test_cycle_detected(self) -> None:
        nodes = [
            Node(id=0, kind=NodeKind.INPUT),
            Node(id=1, kind=NodeKind.OPERATION, op_type=OpType.ADD, input_ids=[0, 2]),
            Node(id=2, kind=NodeKind.OPERATION, op_type=OpType.RELU, input_ids=[1]),
        ]
        with self.assertRaises(CycleDetectedError) as cm:
            topological_order(nodes)
        self.assertIn(cm.exception.node_id, (1, 2))

    def test_self_loop_detected(self) -> None:
        nodes = [Node(id=0, kind=NodeKind.OPERATION, op_type=OpType.RELU, input_ids=[0])]
        with self.assertRaises(CycleDetectedError):
            topological_order(nodes)


class TestScheduler(unittest.TestCase):
    def test_topological_strategies_schedule_everything(self) -> None:
        g = _diamond()
        for strategy in ("topological", "eager", "parallel"):
            with self.subTest(strategy=strategy):
                order = Scheduler(strategy).schedule(g.nodes, [])
                self.assertEqual(len(order), len(g))
                _assert_valid_order(self, g.nodes, order)

    def test_lazy_restricted_to_output_closure(self) -> None:
        g = _diamond()
        m = g.get_node_by_name("m").id
        order = Scheduler(ExecutionStrategy.LAZY).schedule(g.nodes, [m])
        a, b, s = (g.get_node_by_name(n).id for n in ("a", "b", "s"))
        self.assertEqual(set(order), {a, b, s, m})
        _assert_valid_order(self, g.nodes, order)

    def test_lazy_without_outputs_is_empty(self) -> None:
        g = _diamond()
        self.assertEqual(Scheduler("lazy").schedule(g.nodes, []), [])

    def test_priority_order_prefers_high_priority_ready_nodes(self) -> None:
        g = _diamond()
        e = g.get_node_by_name("e").id
        priority = lambda node: 10.0 if node.id == e else 0.0
        order = Scheduler().schedule(g.nodes, [], priority_fn=priority)
        _assert_valid_order(self, g.nodes, order)
        b = g.get_node_by_name("b").id
        self.assertEqual(order.index(e), order.index(b) + 1)

    def test_priority_never_violates_dependencies(self) -> None:
        g = _diamond()
        order = priority_order(g.nodes, range(len(g)), lambda node: float(node.id))
        _assert_valid_order(self, g.nodes, order)
        self.assertEqual(order[-1], g.get_node_by_name("out").id)

    def test_priority_ties_break_by_id(self) -> None:
        g = _diamond()
        order = priority_order(g.nodes, range(len(g)), lambda node: 0.0)
        self.assertEqual(order[:2], [0, 1])

    def test_unknown_strategy_rejected(self) -> None:
        with self.assertRaises(ValueError):
            Scheduler("random")


if __name__ == "__main__":
    unittest.main()
