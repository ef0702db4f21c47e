#!/usr/bin/env python3
"""
HNSPSO: particle-swarm refinement of the task -> VM mapping.

Encoding:
    particle position x ∈ [0, S-1]^N   (N real tasks, S = max_parallel × |catalog| slots)
    decode: slot = clamp(round(x[j]), 0, S-1), slot i runs catalog type i // max_parallel

Update (whole swarm at once, r1/r2 drawn as (P, N) matrices per iteration):
    v = w·v + c1·r1·(pbest - x) + c2·r2·(gbest - x),  v ∈ [-vmax, vmax]
    x = clamp(x + v, 0, S-1)

Fitness:
    α·cost + β·deadline_penalty + γ·(1 - avg affinity) + δ·fragmentation

Particles are evaluated independently (optionally on a thread pool) and the
global best is reduced afterwards, so the result does not depend on workers.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Sequence

import numpy as np
from tqdm import tqdm

from rbdas.components.affinity import AffinityModel
from rbdas.components.cost_model import CostModel
from rbdas.config import ConfigurationError, FitnessWeights, PsoConfig
from rbdas.models import PricingTier, ResourceProfile, VmType, Workflow, WorkloadType
from rbdas.placement.schedule import Schedule, ScheduleBuilder, VmSlot, build_slots


class OptimizerState(Enum):
    INITIALIZED = "initialized"
    ITERATING = "iterating"
    CONVERGED = "converged"


@dataclass(frozen=True)
class FitnessBreakdown:
    cost: float
    deadline_penalty: float
    affinity: float
    fragmentation: float
    makespan: float
    fitness: float


class FitnessEvaluator:
    """Maps a slot assignment to its fitness; stateless between calls."""

    def __init__(self, workflow: Workflow, slots: Sequence[VmSlot], profiles: Dict[str, ResourceProfile],
                 affinity: AffinityModel, cost_model: CostModel, weights: FitnessWeights,
                 deadline: Optional[float], tier: PricingTier, fragmentation_metric: str = "load_stddev"):
        self.builder = ScheduleBuilder(workflow, slots)
        self.slots = list(slots)
        self.affinity = affinity
        self.cost_model = cost_model
        self.weights = weights
        self.deadline = deadline
        self.tier = tier
        self.fragmentation_metric = fragmentation_metric
        self.workload_types: List[WorkloadType] = [
            profiles[tid].workload_type if tid in profiles else WorkloadType.MIX
            for tid in self.builder.task_ids
        ]

    def vm_cost(self, schedule: Schedule) -> float:
        total = 0.0
        for slot, (start, finish) in schedule.spans().items():
            total += self.cost_model.cost(self.slots[slot].vm_type, finish - start, self.tier)
        return total

    def avg_affinity(self, assignment: Sequence[int]) -> float:
        if not self.workload_types:
            return 1.0
        scores = [
            self.affinity.get_affinity(wtype, self.slots[int(slot)].vm_type.family)
            for wtype, slot in zip(self.workload_types, assignment)
        ]
        return sum(scores) / len(scores)

    def fragmentation(self, schedule: Schedule) -> float:
        if self.fragmentation_metric == "utilization":
            return self.cost_model.fragmentation(len(self.slots), len(schedule.spans()), schedule.utilization())
        return self.cost_model.load_fragmentation(schedule.task_counts())

    def schedule(self, assignment: Sequence[int]) -> Schedule:
        return self.builder.build(assignment)

    def evaluate(self, assignment: Sequence[int]) -> FitnessBreakdown:
        schedule = self.builder.build(assignment)
        cost = self.vm_cost(schedule)
        penalty = self.cost_model.deadline_penalty(schedule.makespan, self.deadline)
        aff = self.avg_affinity(assignment)
        frag = self.fragmentation(schedule)
        return FitnessBreakdown(
            cost=cost,
            deadline_penalty=penalty,
            affinity=aff,
            fragmentation=frag,
            makespan=schedule.makespan,
            fitness=self.cost_model.fitness(cost, penalty, aff, frag, self.weights),
        )

    def __call__(self, assignment: Sequence[int]) -> float:
        return self.evaluate(assignment).fitness


@dataclass
class Mapping:
    """Best task -> slot assignment found by one optimizer run."""
    assignment: Dict[str, int]
    slots: List[VmSlot]
    breakdown: FitnessBreakdown
    schedule: Schedule
    history: List[float] = field(default_factory=list)

    @property
    def fitness(self) -> float:
        return self.breakdown.fitness

    def vm_type_of(self, task_id: str) -> VmType:
        return self.slots[self.assignment[task_id]].vm_type

    def used_slots(self) -> List[int]:
        return sorted(set(self.assignment.values()))

    def __len__(self) -> int:
        return len(self.assignment)


class HnsPsoOptimizer:
    def __init__(self, cost_model: Optional[CostModel] = None, config: Optional[PsoConfig] = None,
                 weights: Optional[FitnessWeights] = None, seed: Optional[int] = 42, verbose: bool = False):
        self.cost_model = cost_model or CostModel()
        self.config = config or PsoConfig()
        self.weights = weights or FitnessWeights()
        self.seed = seed
        self.verbose = verbose
        self.state = OptimizerState.INITIALIZED

    @staticmethod
    def decode(positions: np.ndarray, x_max: int) -> np.ndarray:
        return np.clip(np.rint(positions), 0, x_max).astype(np.int64)

    def _evaluate_swarm(self, evaluator: FitnessEvaluator, decoded: np.ndarray,
                        pool: Optional[ThreadPoolExecutor]) -> np.ndarray:
        rows = [row.tolist() for row in decoded]
        if pool is not None:
            values = list(pool.map(evaluator, rows))
        else:
            values = [evaluator(row) for row in rows]
        return np.asarray(values, dtype=np.float64)

    def optimize(self, workflow: Workflow, catalog: Sequence[VmType], profiles: Dict[str, ResourceProfile],
                 affinity: AffinityModel, deadline: Optional[float] = None,
                 initial: Optional[Sequence[int]] = None) -> Mapping:
        cfg = self.config
        cfg.validate()
        if not catalog:
            raise ConfigurationError("VM catalog is empty")
        if deadline is None:
            deadline = workflow.deadline

        self.state = OptimizerState.INITIALIZED
        slots = build_slots(catalog, workflow.max_parallel)
        tier = PricingTier.SPOT if cfg.use_spot else PricingTier.ON_DEMAND
        evaluator = FitnessEvaluator(workflow, slots, profiles, affinity, self.cost_model, self.weights,
                                     deadline, tier, cfg.fragmentation_metric)
        task_ids = evaluator.builder.task_ids
        pop, dim = cfg.population_size, len(task_ids)
        x_max = len(slots) - 1

        if dim == 0:
            self.state = OptimizerState.CONVERGED
            breakdown = evaluator.evaluate([])
            return Mapping({}, slots, breakdown, evaluator.schedule([]), [breakdown.fitness] * cfg.iterations)

        rng = np.random.default_rng(self.seed)
        v_max = float(cfg.velocity_limit) if cfg.velocity_limit is not None else float(x_max)
        positions = rng.uniform(0, x_max, size=(pop, dim))
        velocities = rng.uniform(-v_max, v_max, size=(pop, dim))
        if initial is not None:
            seed_row = np.clip(np.asarray(list(initial), dtype=np.float64), 0, x_max)
            if seed_row.shape != (dim,):
                raise ValueError(f"initial assignment has {seed_row.size} entries, expected {dim}")
            positions = positions.copy()
            positions[0] = seed_row

        history: List[float] = []
        pool = ThreadPoolExecutor(max_workers=cfg.workers) if cfg.workers > 1 else None
        try:
            fits = self._evaluate_swarm(evaluator, self.decode(positions, x_max), pool)
            pbest, pbest_fit = positions.copy(), fits.copy()
            g = int(np.argmin(pbest_fit))
            gbest, gbest_fit = pbest[g].copy(), float(pbest_fit[g])
            if self.verbose:
                print(f"[HNSPSO] swarm={pop} dim={dim} slots={len(slots)} initial best={gbest_fit:.4f}")

            self.state = OptimizerState.ITERATING
            report_every = max(cfg.iterations // 10, 1)
            for it in tqdm(range(cfg.iterations), desc="HNSPSO", disable=not cfg.show_progress):
                r1 = rng.random((pop, dim))
                r2 = rng.random((pop, dim))
                velocities = (cfg.inertia * velocities
                              + cfg.cognitive * r1 * (pbest - positions)
                              + cfg.social * r2 * (gbest - positions))
                velocities = np.clip(velocities, -v_max, v_max)
                positions = np.clip(positions + velocities, 0, x_max)

                fits = self._evaluate_swarm(evaluator, self.decode(positions, x_max), pool)
                improved = fits < pbest_fit
                pbest = np.where(improved[:, None], positions, pbest)
                pbest_fit = np.where(improved, fits, pbest_fit)

                best = int(np.argmin(fits))
                if fits[best] < gbest_fit:
                    gbest, gbest_fit = positions[best].copy(), float(fits[best])
                history.append(gbest_fit)

                if self.verbose and (it + 1) % report_every == 0:
                    print(f"[HNSPSO] iter {it + 1}/{cfg.iterations} best={gbest_fit:.4f}")
        finally:
            if pool is not None:
                pool.shutdown()

        self.state = OptimizerState.CONVERGED
        best_assignment = self.decode(gbest, x_max).tolist()
        return Mapping(
            assignment=dict(zip(task_ids, best_assignment)),
            slots=slots,
            breakdown=evaluator.evaluate(best_assignment),
            schedule=evaluator.schedule(best_assignment),
            history=history,
        )


def optimize(workflow: Workflow, vm_catalog: Sequence[VmType], profiles: Dict[str, ResourceProfile],
             affinity: AffinityModel, deadline: Optional[float] = None, seed: Optional[int] = 42,
             weights: Optional[FitnessWeights] = None, population_size: Optional[int] = None,
             iterations: Optional[int] = None,
             initial: Optional[Sequence[int]] = None, config: Optional[PsoConfig] = None,
             cost_model: Optional[CostModel] = None) -> Mapping:
    """population_size and iterations override ``config`` only when given."""
    cfg = config or PsoConfig()
    if population_size is not None:
        cfg = replace(cfg, population_size=population_size)
    if iterations is not None:
        cfg = replace(cfg, iterations=iterations)
    optimizer = HnsPsoOptimizer(cost_model=cost_model, config=cfg, weights=weights, seed=seed)
    return optimizer.optimize(workflow, vm_catalog, profiles, affinity, deadline, initial)
