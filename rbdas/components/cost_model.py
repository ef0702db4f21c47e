#!/usr/bin/env python3
"""
VM cost model: tiered hourly pricing billed per started interval,
deadline penalty, fragmentation and the fitness aggregate minimized by HNSPSO.

    cost    = hourly_rate(tier) * ceil(duration / billing_interval)
    fitness = α·cost + β·deadline_penalty + γ·(1 - affinity) + δ·fragmentation
"""
from __future__ import annotations

import math
from typing import Optional, Sequence

from rbdas.config import CostConfig, FitnessWeights
from rbdas.metrics import load_stddev_fragmentation, utilization_fragmentation
from rbdas.models import PricingTier, VmType

DEFAULT_SPOT_RATIO = 0.3


class CostModel:
    """Pure pricing functions over an explicitly passed configuration."""

    def __init__(self, config: Optional[CostConfig] = None):
        self.config = config or CostConfig()

    @property
    def billing_interval(self) -> float:
        return self.config.billing_interval

    def hourly_rate(self, vm_type: VmType, tier: PricingTier) -> float:
        if vm_type.pricing is None:
            return self.config.fallback_hourly_rate
        return max(vm_type.pricing.rate(tier), 0.0)

    def cost(self, vm_type: VmType, duration_seconds: float, tier: PricingTier) -> float:
        """
        cost() - flat within one billing interval.
        A 30-minute and a 60-minute lease cost the same with a 3600s interval.
        """
        intervals = math.ceil(max(duration_seconds, 0.0) / self.config.billing_interval)
        return self.hourly_rate(vm_type, tier) * intervals

    def egress_cost(self, data_gb: float, price_per_gb: Optional[float] = None) -> float:
        if price_per_gb is None:
            price_per_gb = self.config.egress_price_per_gb
        return max(data_gb, 0.0) * price_per_gb

    @staticmethod
    def total_cost(vm_cost: float, egress_cost: float) -> float:
        return vm_cost + egress_cost

    def spot_price_ratio(self, vm_type: VmType) -> float:
        pricing = vm_type.pricing
        if pricing is None or pricing.on_demand == 0:
            return DEFAULT_SPOT_RATIO
        return min(max(pricing.spot / pricing.on_demand, 0.0), 1.0)

    def deadline_penalty(self, makespan: float, deadline: Optional[float]) -> float:
        if deadline is None or makespan <= deadline:
            return 0.0
        overrun = makespan - deadline
        if self.config.deadline_penalty == "normalized":
            return overrun / deadline if deadline > 0 else overrun
        return overrun

    @staticmethod
    def fragmentation(total_vm_slots: int, used_vm_slots: int, avg_utilization: float) -> float:
        return utilization_fragmentation(total_vm_slots, used_vm_slots, avg_utilization)

    @staticmethod
    def load_fragmentation(task_counts: Sequence[int]) -> float:
        return load_stddev_fragmentation(task_counts)

    @staticmethod
    def fitness(cost: float, deadline_penalty: float, affinity: float, fragmentation: float,
                weights: Optional[FitnessWeights] = None) -> float:
        w = weights or FitnessWeights()
        return (w.alpha * cost
                + w.beta * deadline_penalty
                + w.gamma * (1.0 - affinity)
                + w.delta * fragmentation)
