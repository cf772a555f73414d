"""
Execution configuration and result records.

`ExecutionOptions` configures a single `ComputationGraph.execute` call;
`ExecutionResult` reports what the call produced. `ExecutionStats` aggregates
timings across calls on one graph.

Options follow the config round-trip convention used across the codebase:
`get_config()` returns a plain dict of the serializable fields and
`from_config()` rebuilds an instance from such a dict.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .device._device import Device
from ._node import Node


class ExecutionStrategy(str, Enum):
    """
    Strategy used to order nodes for forward execution.

    Attributes
    ----------
    TOPOLOGICAL : ExecutionStrategy
        Every node of the graph, dependencies first.
    EAGER : ExecutionStrategy
        Same order as TOPOLOGICAL.
    LAZY : ExecutionStrategy
        Only the nodes marked outputs depend on.
    PARALLEL : ExecutionStrategy
        Configuration only; scheduled like TOPOLOGICAL.
    """

    TOPOLOGICAL = "topological"
    EAGER = "eager"
    LAZY = "lazy"
    PARALLEL = "parallel"


PriorityFn = Callable[[Node], float]


@dataclass(frozen=True)
class ExecutionOptions:
    """
    Options for a forward (and optional backward) execution.

    Attributes
    ----------
    use_cached : bool
        Reuse cached operation outputs instead of recomputing them.
    cache_results : bool
        Mark freshly computed outputs as reusable.
    compute_gradients : bool
        Run the backward pass from every marked output after the forward pass.
    optimize_memory : bool
        Configuration only.
    run_async : bool
        Configuration only; execution is always synchronous.
    device : str
        Target device string; validated, otherwise ignored.
    priority_fn : Optional[PriorityFn]
        When set, nodes that are ready at the same time are executed by
        decreasing priority.
    execution_params : dict[str, Any]
        Free-form parameters forwarded to hooks.
    """

    use_cached: bool = True
    cache_results: bool = True
    compute_gradients: bool = False
    optimize_memory: bool = True
    run_async: bool = False
    device: str = "cpu"
    priority_fn: Optional[PriorityFn] = None
    execution_params: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        Device(self.device)

    def merged(self, **overrides: Any) -> "ExecutionOptions":
        """
        Return a copy with the given fields replaced.

        Raises
        ------
        TypeError
            If an override does not name an option.
        """
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"Unknown execution option(s): {sorted(unknown)}")
        return replace(self, **overrides)

    def get_config(self) -> Dict[str, Any]:
        """
        Return the serializable options (everything except `priority_fn`).
        """
        return {
            "use_cached": self.use_cached,
            "cache_results": self.cache_results,
            "compute_gradients": self.compute_gradients,
            "optimize_memory": self.optimize_memory,
            "run_async": self.run_async,
            "device": self.device,
            "execution_params": dict(self.execution_params),
        }

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "ExecutionOptions":
        return cls(**cfg)


@dataclass
class PerformanceSummary:
    """
    Timing and cache statistics of one execution (times in milliseconds).
    """

    execution_time: float
    forward_time: float
    backward_time: Optional[float]
    memory_used: int
    cache_hit_rate: float
    operations_executed: int


@dataclass
class ExecutionResult:
    """
    Result of `ComputationGraph.execute`.

    Attributes
    ----------
    outputs : dict[int, Any]
        Marked-output node id -> output tensor.
    gradients : Optional[dict[int, Any]]
        Node id -> gradient for every node that received one, when gradients
        were requested.
    performance : PerformanceSummary
        Timings and cache statistics.
    execution_log : list[str]
        One line per visited node.
    """

    outputs: Dict[int, Any]
    gradients: Optional[Dict[int, Any]]
    performance: PerformanceSummary
    execution_log: list[str] = field(default_factory=list)


@dataclass
class ExecutionStats:
    """
    Aggregate execution statistics of a graph (times in milliseconds).
    """

    execution_count: int = 0
    total_time: float = 0.0
    min_time: float = float("inf")
    max_time: float = 0.0
    last_executed: Optional[datetime] = None

    @property
    def average_time(self) -> float:
        if self.execution_count == 0:
            return 0.0
        return self.total_time / self.execution_count

    def record(self, elapsed: float) -> None:
        self.execution_count += 1
        self.total_time += elapsed
        self.min_time = min(self.min_time, elapsed)
        self.max_time = max(self.max_time, elapsed)
        self.last_executed = datetime.now()
