#!/usr/bin/env python3
"""
RBDAS broker: end-to-end scheduling of one workflow.

Pipeline:
1. profile     ResourceProfiler
2. classify    WorkloadClassifier
3. pack        AffinityPacker (pool instances released after seeding the swarm)
4. optimize    HnsPsoOptimizer
5. bind        one pool instance per used slot (spot when enabled, else reserved)
6. execute     per-VM billing, spot interruptions with checkpoint recovery
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence

from rbdas.components.affinity import AffinityModel
from rbdas.components.classifier import WorkloadClassifier
from rbdas.components.cost_model import CostModel
from rbdas.components.profiler import ResourceProfiler
from rbdas.components.spot import SpotInterruptModel
from rbdas.components.vm_pool import PoolStats, VmPoolManager
from rbdas.config import ClassifierThresholds, RbdasConfig
from rbdas.models import InterruptionEvent, PricingTier, VmInstance, VmType, Workflow
from rbdas.placement.a2mdbfd import AffinityPacker, allocations_to_slots
from rbdas.placement.hnspso import HnsPsoOptimizer, Mapping


@dataclass
class ExecutionResult:
    mapping: Dict[str, str]               # task id -> VM type id
    instance_assignment: Dict[str, str]   # task id -> VM instance id
    total_cost: float
    vm_cost: float
    egress_cost: float
    makespan: float
    vm_count: int
    avg_utilization: float
    interruptions: int
    checkpoints: int
    deadline_met: bool
    fitness: float
    pool_statistics: Optional[PoolStats] = None
    history: List[float] = field(default_factory=list)
    interruption_events: List[InterruptionEvent] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        row = {
            "tasks": len(self.mapping),
            "total_cost": self.total_cost,
            "vm_cost": self.vm_cost,
            "egress_cost": self.egress_cost,
            "makespan": self.makespan,
            "vm_count": self.vm_count,
            "avg_utilization": self.avg_utilization,
            "interruptions": self.interruptions,
            "checkpoints": self.checkpoints,
            "deadline_met": self.deadline_met,
            "fitness": self.fitness,
        }
        if self.pool_statistics is not None:
            row.update(self.pool_statistics.as_dict())
        return row

    def __str__(self) -> str:
        return (f"ExecutionResult(total_cost={self.total_cost:.2f}, makespan={self.makespan:.2f}, "
                f"vm_count={self.vm_count}, avg_util={self.avg_utilization:.2f}, "
                f"interruptions={self.interruptions}, deadline_met={self.deadline_met})")


class RbdasScheduler:
    """Owns the pools and components; run() may be called once per workflow."""

    def __init__(self, catalog: Sequence[VmType], affinity: AffinityModel,
                 config: Optional[RbdasConfig] = None, profiler: Optional[ResourceProfiler] = None):
        self.catalog = list(catalog)
        self.affinity = affinity
        self.config = config or RbdasConfig()
        self.spot_enabled = self.config.pools.spot_enabled
        self.cost_model = CostModel(self.config.cost)
        self.pools = VmPoolManager(self.catalog, self.config.pools)
        self.profiler = profiler or ResourceProfiler()
        self.classifier = WorkloadClassifier(self.config.thresholds)
        self.packer = AffinityPacker(affinity, verbose=self.config.verbose)

    def set_classifier_thresholds(self, thresholds: ClassifierThresholds) -> None:
        self.classifier = WorkloadClassifier(thresholds)

    def _log(self, msg: str) -> None:
        if self.config.verbose:
            print(f"[RBDAS] {msg}")

    def _seed_assignment(self, workflow: Workflow, profiles) -> List[int]:
        allocations = self.packer.pack(workflow.real_tasks, profiles, self.pools)
        seed = allocations_to_slots(allocations, [t.id for t in workflow.real_tasks],
                                    self.catalog, workflow.max_parallel)
        for alloc in allocations:
            self.pools.release(alloc.instance.id)
        return seed

    def _egress_cost(self, workflow: Workflow, mapping: Mapping) -> float:
        data_mb = 0.0
        for task in workflow.real_tasks:
            for edge in task.out_edges:
                if edge.target in mapping.assignment and \
                        mapping.assignment[edge.target] != mapping.assignment[task.id]:
                    data_mb += edge.data_size
        return self.cost_model.egress_cost(data_mb / 1024.0)

    def _execute(self, mapping: Mapping, bound: Dict[int, VmInstance],
                 spot: SpotInterruptModel) -> Dict[str, float]:
        """Bill each bound VM over its span, stretched by spot recovery delays."""
        vm_cost = 0.0
        makespan = 0.0
        checkpoints = 0
        by_slot = mapping.schedule.tasks_by_slot()
        for slot, (start, finish) in mapping.schedule.spans().items():
            vm = bound[slot]
            delay = 0.0
            if vm.tier is PricingTier.SPOT:
                placements = sorted((mapping.schedule.placements[tid] for tid in by_slot[slot]),
                                    key=lambda p: p.start)
                for p in placements:
                    duration = p.finish - p.start
                    begin, end = p.start + delay, p.finish + delay
                    # at most one interruption per task, at the first firing check
                    at = spot.first_interruption(vm, begin, end, start)
                    if at is None:
                        continue
                    executed = at - begin
                    if self.config.spot.checkpointing:
                        spot.create_checkpoint(p.task_id, executed, duration, at)
                        checkpoints += 1
                        delay += spot.resume_from_checkpoint(p.task_id) - (duration - executed)
                    else:
                        delay += spot.work_lost(executed, has_checkpoint=False)
            vm.start_time, vm.end_time = start, finish + delay
            vm_cost += self.cost_model.cost(vm.vm_type, vm.end_time - vm.start_time, vm.tier)
            makespan = max(makespan, vm.end_time)
        return {"vm_cost": vm_cost, "makespan": makespan, "checkpoints": checkpoints}

    def run(self, workflow: Workflow, deadline: Optional[float] = None) -> ExecutionResult:
        if deadline is None:
            deadline = workflow.deadline
        cfg = self.config

        self._log(f"Step 1: profiling {len(workflow.real_tasks)} tasks of {workflow.name}")
        profiles = self.profiler.profile(workflow)

        self._log("Step 2: classifying workloads")
        self.classifier.classify_all(profiles)

        self._log("Step 3: packing with A2MDBFD")
        seed = self._seed_assignment(workflow, profiles)

        self._log("Step 4: refining with HNSPSO")
        pso_cfg = replace(cfg.pso, use_spot=self.spot_enabled)
        optimizer = HnsPsoOptimizer(self.cost_model, pso_cfg, cfg.weights, seed=cfg.seed, verbose=cfg.verbose)
        mapping = optimizer.optimize(workflow, self.catalog, profiles, self.affinity, deadline,
                                     initial=seed if seed else None)

        self._log("Step 5: binding VM instances and executing")
        tier = PricingTier.SPOT if self.spot_enabled else PricingTier.RESERVED
        bound: Dict[int, VmInstance] = {}
        spot = SpotInterruptModel(cfg.spot, seed=cfg.seed, verbose=cfg.verbose)
        try:
            for slot in mapping.used_slots():
                bound[slot] = self.pools.allocate(mapping.slots[slot].vm_type, tier)
            stats = self.pools.statistics()
            outcome = self._execute(mapping, bound, spot)
        finally:
            for vm in bound.values():
                self.pools.release(vm.id)

        egress = self._egress_cost(workflow, mapping)
        makespan = outcome["makespan"]
        result = ExecutionResult(
            mapping={tid: mapping.vm_type_of(tid).id for tid in mapping.assignment},
            instance_assignment={tid: bound[slot].id for tid, slot in mapping.assignment.items()},
            total_cost=self.cost_model.total_cost(outcome["vm_cost"], egress),
            vm_cost=outcome["vm_cost"],
            egress_cost=egress,
            makespan=makespan,
            vm_count=len(bound),
            avg_utilization=mapping.schedule.utilization(),
            interruptions=spot.interruption_count,
            checkpoints=int(outcome["checkpoints"]),
            deadline_met=deadline is None or makespan <= deadline,
            fitness=mapping.fitness,
            pool_statistics=stats,
            history=list(mapping.history),
            interruption_events=spot.interruption_log,
        )
        self._log(str(result))
        return result
