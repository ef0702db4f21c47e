#!/usr/bin/env python3
"""
Tiered VM instance pools.

Pools:
1. reserved:  fixed count per VM type
2. spot:      fixed count per VM type
3. on_demand: elastic, a missing instance is synthesized on request

allocate() tries the preferred tier first, then falls back
reserved -> spot -> on_demand and never fails.
"""
from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import pandas as pd

from rbdas.config import PoolConfig
from rbdas.models import TIER_ORDER, PricingTier, VmInstance, VmType

_ID_PREFIX = {
    PricingTier.RESERVED: "reserved",
    PricingTier.SPOT: "spot",
    PricingTier.ON_DEMAND: "ondemand",
}


@dataclass(frozen=True)
class TierStats:
    total: int
    allocated: int


@dataclass(frozen=True)
class PoolStats:
    reserved: TierStats
    spot: TierStats
    on_demand: TierStats

    def as_dict(self) -> Dict[str, int]:
        return {
            "reserved_total": self.reserved.total,
            "reserved_allocated": self.reserved.allocated,
            "spot_total": self.spot.total,
            "spot_allocated": self.spot.allocated,
            "ondemand_total": self.on_demand.total,
            "ondemand_allocated": self.on_demand.allocated,
        }

    def to_frame(self) -> pd.DataFrame:
        rows = [
            {"tier": tier.value, "total": stats.total, "allocated": stats.allocated}
            for tier, stats in zip(TIER_ORDER, (self.reserved, self.spot, self.on_demand))
        ]
        return pd.DataFrame(rows, columns=["tier", "total", "allocated"])


class VmPoolManager:
    """
    Owns every VmInstance until allocated; the caller owns it until release().
    Each pool has its own lock so concurrent schedule executions stay safe.
    """

    def __init__(self, catalog: Sequence[VmType], config: Optional[PoolConfig] = None):
        self.catalog = list(catalog)
        self.config = config or PoolConfig()
        self._ids = itertools.count()
        self._pools: Dict[PricingTier, List[VmInstance]] = {tier: [] for tier in TIER_ORDER}
        self._locks: Dict[PricingTier, threading.Lock] = {tier: threading.Lock() for tier in TIER_ORDER}
        self._allocated: Dict[str, VmInstance] = {}
        self._allocated_lock = threading.Lock()

        self._populate(PricingTier.RESERVED, self.config.reserved_per_type)
        if self.config.spot_enabled:
            self._populate(PricingTier.SPOT, self.config.spot_per_type)
        self._populate(PricingTier.ON_DEMAND, self.config.on_demand_per_type)

    def _new_instance(self, vm_type: VmType, tier: PricingTier, ephemeral: bool = False) -> VmInstance:
        return VmInstance(id=f"{_ID_PREFIX[tier]}-{next(self._ids)}", vm_type=vm_type, tier=tier,
                          ephemeral=ephemeral)

    def _populate(self, tier: PricingTier, count_per_type: int) -> None:
        for vm_type in self.catalog:
            for _ in range(max(count_per_type, 0)):
                self._pools[tier].append(self._new_instance(vm_type, tier))

    def _allocate_from_pool(self, tier: PricingTier, vm_type: VmType) -> Optional[VmInstance]:
        with self._locks[tier]:
            for vm in self._pools[tier]:
                if not vm.allocated and vm.vm_type.id == vm_type.id:
                    vm.allocated = True
                    return vm
            if tier is PricingTier.ON_DEMAND:
                vm = self._new_instance(vm_type, tier, ephemeral=True)
                vm.allocated = True
                self._pools[tier].append(vm)
                return vm
        return None

    def allocate(self, vm_type: VmType, preferred_tier: Optional[PricingTier] = None) -> VmInstance:
        """
        allocate() - preferred tier, then reserved -> spot -> on_demand.
        On-demand is elastic, so this always returns an unallocated-before instance.
        """
        order: List[PricingTier] = []
        if preferred_tier is not None:
            order.append(preferred_tier)
        order.extend(t for t in TIER_ORDER if t not in order)

        vm = None
        for tier in order:
            vm = self._allocate_from_pool(tier, vm_type)
            if vm is not None:
                break
        with self._allocated_lock:
            self._allocated[vm.id] = vm
        return vm

    def release(self, instance_id: str) -> None:
        """release() - unknown ids are ignored."""
        with self._allocated_lock:
            vm = self._allocated.pop(instance_id, None)
        if vm is None:
            return
        with self._locks[vm.tier]:
            vm.allocated = False
            vm.start_time = 0.0
            vm.end_time = 0.0
            if vm.ephemeral:
                self._pools[vm.tier].remove(vm)

    def has_free(self, tier: PricingTier) -> bool:
        if tier is PricingTier.ON_DEMAND:
            return True
        with self._locks[tier]:
            return any(not vm.allocated for vm in self._pools[tier])

    def available_types(self, tier: PricingTier) -> List[VmType]:
        """VM types with a free instance in ``tier``, in catalog order."""
        if tier is PricingTier.ON_DEMAND:
            return list(self.catalog)
        with self._locks[tier]:
            free_ids = {vm.vm_type.id for vm in self._pools[tier] if not vm.allocated}
        return [t for t in self.catalog if t.id in free_ids]

    def allocated_instances(self) -> List[VmInstance]:
        with self._allocated_lock:
            return list(self._allocated.values())

    def instances(self, tier: PricingTier) -> List[VmInstance]:
        with self._locks[tier]:
            return list(self._pools[tier])

    def statistics(self) -> PoolStats:
        counts = []
        for tier in TIER_ORDER:
            with self._locks[tier]:
                pool = self._pools[tier]
                counts.append(TierStats(total=len(pool), allocated=sum(1 for vm in pool if vm.allocated)))
        return PoolStats(*counts)
