from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from rbdas.models import VmType, Workflow

DEFAULT_BANDWIDTH_MBPS = 20.0  # MB/s when a VM type declares no network speed


@dataclass(frozen=True)
class VmSlot:
    """One schedulable VM: slot ``index`` runs catalog type ``type_index``."""
    index: int
    type_index: int
    vm_type: VmType

    @property
    def bandwidth(self) -> float:
        if self.vm_type.network_gbps > 0:
            return self.vm_type.network_gbps * 125.0  # Gbit/s -> MB/s
        return DEFAULT_BANDWIDTH_MBPS


def build_slots(catalog: Sequence[VmType], max_parallel: int) -> List[VmSlot]:
    """max_parallel slots per catalog type; slot i runs type i // max_parallel."""
    per_type = max(max_parallel, 1)
    return [
        VmSlot(index=ti * per_type + k, type_index=ti, vm_type=vm_type)
        for ti, vm_type in enumerate(catalog)
        for k in range(per_type)
    ]


@dataclass
class TaskPlacement:
    task_id: str
    slot: int
    start: float
    finish: float


@dataclass
class Schedule:
    placements: Dict[str, TaskPlacement] = field(default_factory=dict)
    makespan: float = 0.0

    def slot_of(self, task_id: str) -> int:
        return self.placements[task_id].slot

    def tasks_by_slot(self) -> Dict[int, List[str]]:
        out: Dict[int, List[str]] = {}
        for p in self.placements.values():
            out.setdefault(p.slot, []).append(p.task_id)
        return out

    def spans(self) -> Dict[int, Tuple[float, float]]:
        """(min start, max finish) per used slot."""
        spans: Dict[int, Tuple[float, float]] = {}
        for p in self.placements.values():
            if p.slot in spans:
                lo, hi = spans[p.slot]
                spans[p.slot] = (min(lo, p.start), max(hi, p.finish))
            else:
                spans[p.slot] = (p.start, p.finish)
        return spans

    def busy_time(self) -> Dict[int, float]:
        busy: Dict[int, float] = {}
        for p in self.placements.values():
            busy[p.slot] = busy.get(p.slot, 0.0) + (p.finish - p.start)
        return busy

    def task_counts(self) -> List[int]:
        return [len(ids) for _, ids in sorted(self.tasks_by_slot().items())]

    def utilization(self) -> float:
        """Average busy/span ratio over used slots."""
        spans = self.spans()
        if not spans:
            return 0.0
        busy = self.busy_time()
        ratios = []
        for slot, (lo, hi) in spans.items():
            width = hi - lo
            ratios.append(busy[slot] / width if width > 0 else 1.0)
        return sum(ratios) / len(ratios)


class ScheduleBuilder:
    """
    Decodes a task -> slot assignment into a timed schedule.

    Tasks run in workflow topological order. A task starts when its slot is
    free and every predecessor has finished; data from a predecessor on a
    different slot adds a transfer delay.
    """

    def __init__(self, workflow: Workflow, slots: Sequence[VmSlot]):
        self.workflow = workflow
        self.slots = list(slots)
        self.tasks = workflow.real_tasks
        self.task_ids = [t.id for t in self.tasks]

    def exec_time(self, task_index: int, slot: int) -> float:
        return self.tasks[task_index].size / self.slots[slot].vm_type.compute_speed

    def transfer_time(self, data_mb: float, src_slot: int, dst_slot: int) -> float:
        if src_slot == dst_slot or data_mb <= 0:
            return 0.0
        bandwidth = min(self.slots[src_slot].bandwidth, self.slots[dst_slot].bandwidth)
        return data_mb / bandwidth

    def build(self, assignment: Sequence[int]) -> Schedule:
        schedule = Schedule()
        ready: Dict[int, float] = {}
        for i, task in enumerate(self.tasks):
            slot = int(assignment[i])
            est = ready.get(slot, 0.0)
            for edge in task.in_edges:
                pred = schedule.placements.get(edge.source)
                if pred is None:  # entry sentinel
                    continue
                arrival = pred.finish + self.transfer_time(edge.data_size, pred.slot, slot)
                est = max(est, arrival)
            finish = est + self.exec_time(i, slot)
            schedule.placements[task.id] = TaskPlacement(task.id, slot, est, finish)
            ready[slot] = finish
            schedule.makespan = max(schedule.makespan, finish)
        return schedule
