#!/usr/bin/env python3
"""
A2MDBFD: affinity-aware multidimensional best-fit-decreasing packer.

1. sort tasks by descending cpu + mem + io intensity
2. best fit among open allocations with room on every dimension:
       score = (1 - affinity) + (1 - average utilization), lower is better
3. no fit: open a new allocation in the first tier with a free instance
   (reserved -> spot -> on_demand), picking the highest-affinity VM type
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from rbdas.components.affinity import AffinityModel
from rbdas.components.vm_pool import VmPoolManager
from rbdas.metrics import load_stddev_fragmentation
from rbdas.models import TIER_ORDER, PricingTier, ResourceProfile, Task, VmInstance, VmType


@dataclass
class VmAllocation:
    instance: VmInstance
    tasks: List[Task] = field(default_factory=list)
    cpu_used: float = 0.0
    mem_used: float = 0.0
    storage_used: float = 0.0

    @property
    def vm_type(self) -> VmType:
        return self.instance.vm_type

    @property
    def tier(self) -> PricingTier:
        return self.instance.tier

    def fits(self, prof: ResourceProfile) -> bool:
        vm = self.vm_type
        return (self.cpu_used + prof.cpu_demand <= vm.vcpus
                and self.mem_used + prof.mem_demand <= vm.memory_gb
                and self.storage_used + prof.storage_demand <= vm.storage_gb)

    def add(self, task: Task, prof: ResourceProfile) -> None:
        self.tasks.append(task)
        self.cpu_used += prof.cpu_demand
        self.mem_used += prof.mem_demand
        self.storage_used += prof.storage_demand

    def utilization(self) -> float:
        vm = self.vm_type
        dims = (
            self.cpu_used / vm.vcpus if vm.vcpus else 0.0,
            self.mem_used / vm.memory_gb if vm.memory_gb else 0.0,
            self.storage_used / vm.storage_gb if vm.storage_gb else 0.0,
        )
        return sum(dims) / len(dims)


class AffinityPacker:
    def __init__(self, affinity: AffinityModel, verbose: bool = False):
        self.affinity = affinity
        self.verbose = verbose

    def _score(self, alloc: VmAllocation, prof: ResourceProfile) -> float:
        aff = self.affinity.get_affinity(prof.workload_type, alloc.vm_type.family)
        return (1.0 - aff) + (1.0 - alloc.utilization())

    def _best_fit(self, allocations: Sequence[VmAllocation], prof: ResourceProfile) -> Optional[VmAllocation]:
        best, best_score = None, float("inf")
        for alloc in allocations:
            if not alloc.fits(prof):
                continue
            score = self._score(alloc, prof)
            if score < best_score:
                best, best_score = alloc, score
        return best

    def _open(self, prof: ResourceProfile, pools: VmPoolManager) -> VmAllocation:
        for tier in TIER_ORDER:
            if not pools.has_free(tier):
                continue
            vm_type = self.affinity.get_best_vm_type(prof.workload_type, pools.available_types(tier))
            if vm_type is None:
                continue
            instance = pools.allocate(vm_type, tier)
            if self.verbose:
                print(f"[A2MDBFD] open {instance.id} ({vm_type.id}, {instance.tier.value}) "
                      f"for {prof.workload_type.value}")
            return VmAllocation(instance=instance)
        raise ValueError("VM catalog is empty")

    def pack(self, tasks: Sequence[Task], profiles: Dict[str, ResourceProfile],
             pools: VmPoolManager) -> List[VmAllocation]:
        """Every task lands in exactly one allocation; an empty task list allocates nothing."""
        neutral = ResourceProfile.neutral()
        ordered = sorted(tasks, key=lambda t: profiles.get(t.id, neutral).combined_intensity(), reverse=True)
        allocations: List[VmAllocation] = []
        for task in ordered:
            prof = profiles.get(task.id, neutral)
            alloc = self._best_fit(allocations, prof)
            if alloc is None:
                alloc = self._open(prof, pools)
                allocations.append(alloc)
            alloc.add(task, prof)
        if self.verbose and allocations:
            print(f"[A2MDBFD] packed {len(ordered)} tasks onto {len(allocations)} VMs, "
                  f"fragmentation={self.fragmentation(allocations):.3f}")
        return allocations

    @staticmethod
    def fragmentation(allocations: Sequence[VmAllocation]) -> float:
        return load_stddev_fragmentation([len(a.tasks) for a in allocations])


def pack(tasks: Sequence[Task], profiles: Dict[str, ResourceProfile], pools: VmPoolManager,
         affinity: AffinityModel) -> List[VmAllocation]:
    return AffinityPacker(affinity).pack(tasks, profiles, pools)


def allocations_to_slots(allocations: Sequence[VmAllocation], task_ids: Sequence[str],
                         catalog: Sequence[VmType], max_parallel: int) -> List[int]:
    """
    Translate packer output into a slot assignment (see build_slots):
    the k-th allocation of catalog type ti uses slot ti * max_parallel + k % max_parallel.
    Tasks missing from the allocations default to slot 0.
    """
    per_type = max(max_parallel, 1)
    type_index = {vm.id: i for i, vm in enumerate(catalog)}
    seen: Dict[int, int] = {}
    slot_of: Dict[str, int] = {}
    for alloc in allocations:
        ti = type_index.get(alloc.vm_type.id, 0)
        k = seen.get(ti, 0)
        seen[ti] = k + 1
        for task in alloc.tasks:
            slot_of[task.id] = ti * per_type + k % per_type
    return [slot_of.get(tid, 0) for tid in task_ids]
