#!/usr/bin/env python3
"""
Core data model for affinity-aware workflow scheduling.

Workflow DAG:  entry sentinel → tasks (edges carry data MB) → exit sentinel
VM catalog:    VmType (family, capacity, Pricing per tier) shared read-only
Pool entries:  VmInstance (one VmType + pricing tier + allocated flag)
"""
from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

ENTRY_ID = "entry"
EXIT_ID = "exit"


class WorkloadType(Enum):
    """Workload classification labels."""
    CPU = "CPU"
    MEM = "MEM"
    IO = "IO"
    NET = "NET"
    GPU = "GPU"
    MIX = "MIX"


class PricingTier(Enum):
    """Pricing tiers, in pool fallback order."""
    RESERVED = "reserved"
    SPOT = "spot"
    ON_DEMAND = "on_demand"


TIER_ORDER: Tuple[PricingTier, ...] = (PricingTier.RESERVED, PricingTier.SPOT, PricingTier.ON_DEMAND)


@dataclass(frozen=True)
class Edge:
    source: str
    target: str
    data_size: float = 0.0  # MB


@dataclass
class Task:
    id: str
    size: float  # reference runtime (seconds on a speed-1 VM)
    name: str = ""
    in_edges: List[Edge] = field(default_factory=list)
    out_edges: List[Edge] = field(default_factory=list)

    def __post_init__(self):
        if not self.name:
            self.name = self.id

    @property
    def is_sentinel(self) -> bool:
        return self.id in (ENTRY_ID, EXIT_ID)

    def incident_data(self) -> float:
        return sum(e.data_size for e in self.in_edges) + sum(e.data_size for e in self.out_edges)

    def predecessors(self) -> List[str]:
        return [e.source for e in self.in_edges]


class Workflow:
    """
    Directed acyclic workflow with entry/exit sentinels.

    Tasks are kept in a stable topological order (input order breaks ties).
    The entry sentinel is first and the exit sentinel is last; both have
    size 0 and are linked to roots/leaves with zero-data edges.
    """

    def __init__(self, tasks: Sequence[Task], edges: Iterable[Tuple[str, str, float]] = (),
                 deadline: Optional[float] = None, name: str = "workflow"):
        self.name = name
        self.deadline = deadline
        self._critical_path: Optional[float] = None
        self._max_parallel: Optional[int] = None

        by_id: Dict[str, Task] = {}
        for task in tasks:
            if task.id in by_id or task.id in (ENTRY_ID, EXIT_ID):
                raise ValueError(f"duplicate or reserved task id: {task.id!r}")
            by_id[task.id] = Task(id=task.id, size=float(task.size), name=task.name)

        for src, dst, data in edges:
            if src not in by_id or dst not in by_id:
                raise ValueError(f"edge {src!r}->{dst!r} references an unknown task")
            edge = Edge(src, dst, float(data))
            by_id[src].out_edges.append(edge)
            by_id[dst].in_edges.append(edge)

        entry = Task(id=ENTRY_ID, size=0.0)
        exit_ = Task(id=EXIT_ID, size=0.0)
        for task in by_id.values():
            if not task.in_edges:
                edge = Edge(ENTRY_ID, task.id, 0.0)
                entry.out_edges.append(edge)
                task.in_edges.append(edge)
            if not task.out_edges:
                edge = Edge(task.id, EXIT_ID, 0.0)
                task.out_edges.append(edge)
                exit_.in_edges.append(edge)
        if not by_id:
            edge = Edge(ENTRY_ID, EXIT_ID, 0.0)
            entry.out_edges.append(edge)
            exit_.in_edges.append(edge)

        by_id[ENTRY_ID] = entry
        by_id[EXIT_ID] = exit_
        self._tasks: List[Task] = self._topological_order(by_id, [t.id for t in tasks])
        self._index: Dict[str, Task] = {t.id: t for t in self._tasks}

    @staticmethod
    def _topological_order(by_id: Dict[str, Task], input_order: List[str]) -> List[Task]:
        rank = {tid: i for i, tid in enumerate([ENTRY_ID] + input_order + [EXIT_ID])}
        indegree = {tid: len(t.in_edges) for tid, t in by_id.items()}
        ready = deque([ENTRY_ID])
        ordered: List[Task] = []
        while ready:
            tid = ready.popleft()
            ordered.append(by_id[tid])
            released = []
            for edge in by_id[tid].out_edges:
                indegree[edge.target] -= 1
                if indegree[edge.target] == 0:
                    released.append(edge.target)
            for child in sorted(released, key=rank.__getitem__):
                ready.append(child)
        if len(ordered) != len(by_id):
            raise ValueError("workflow graph contains a cycle")
        return ordered

    def __iter__(self) -> Iterator[Task]:
        return iter(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)

    def __getitem__(self, task_id: str) -> Task:
        return self._index[task_id]

    @property
    def tasks(self) -> List[Task]:
        return list(self._tasks)

    @property
    def real_tasks(self) -> List[Task]:
        """Tasks in topological order without the sentinels."""
        return [t for t in self._tasks if not t.is_sentinel]

    @property
    def critical_path_length(self) -> float:
        """Longest entry→exit path measured in reference task size."""
        if self._critical_path is None:
            finish: Dict[str, float] = {}
            for task in self._tasks:
                start = max((finish[p] for p in task.predecessors()), default=0.0)
                finish[task.id] = start + task.size
            self._critical_path = finish[EXIT_ID]
        return self._critical_path

    @property
    def max_parallel(self) -> int:
        """Width of the widest topological level (sentinels excluded), at least 1."""
        if self._max_parallel is None:
            level: Dict[str, int] = {}
            width: Dict[int, int] = defaultdict(int)
            for task in self._tasks:
                level[task.id] = max((level[p] + 1 for p in task.predecessors()), default=0)
                if not task.is_sentinel:
                    width[level[task.id]] += 1
            self._max_parallel = max(width.values(), default=1)
        return self._max_parallel


@dataclass
class ResourceProfile:
    cpu_intensity: float = 0.0
    mem_intensity: float = 0.0
    io_intensity: float = 0.0
    net_intensity: float = 0.0
    gpu_required: bool = False
    data_size: float = 0.0  # total incident data, MB
    workload_type: WorkloadType = WorkloadType.MIX
    # estimated demand consumed by the packer
    cpu_demand: float = 0.0      # vCPUs
    mem_demand: float = 0.0      # GB
    storage_demand: float = 0.0  # GB

    @classmethod
    def neutral(cls) -> "ResourceProfile":
        return cls()

    def combined_intensity(self) -> float:
        return self.cpu_intensity + self.mem_intensity + self.io_intensity


@dataclass(frozen=True)
class Pricing:
    on_demand: float
    reserved: float
    spot: float

    def rate(self, tier: PricingTier) -> float:
        if tier is PricingTier.RESERVED:
            return self.reserved
        if tier is PricingTier.SPOT:
            return self.spot
        return self.on_demand


@dataclass(frozen=True)
class VmType:
    id: str
    family: str
    vcpus: int
    memory_gb: float
    storage_gb: float
    gpu: bool = False
    pricing: Optional[Pricing] = None
    network_gbps: float = 0.0
    speed: float = 0.0  # processing rate relative to reference; 0 means "use vcpus"

    @property
    def compute_speed(self) -> float:
        if self.speed > 0:
            return self.speed
        return float(max(self.vcpus, 1))


@dataclass
class VmInstance:
    id: str
    vm_type: VmType
    tier: PricingTier
    allocated: bool = False
    start_time: float = 0.0
    end_time: float = 0.0
    ephemeral: bool = False  # synthesized on demand, dropped on release


@dataclass(frozen=True)
class Checkpoint:
    task_id: str
    completed_work: float  # fraction in [0, 1]
    timestamp: float
    total_work: float = 1.0  # work units (seconds of execution)

    @property
    def remaining_work(self) -> float:
        return (1.0 - self.completed_work) * self.total_work

    @property
    def completion_percentage(self) -> float:
        return self.completed_work * 100.0


@dataclass(frozen=True)
class InterruptionEvent:
    vm_id: str
    time: float
    reason: str = "Spot capacity reclaimed"
