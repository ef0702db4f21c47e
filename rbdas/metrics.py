#!/usr/bin/env python3
"""Utility functions to compute placement metrics.

Metrics implemented:
* allocation_util(allocations) -> (avg, max, std)
* load_stddev_fragmentation(task_counts) -> float  (std-dev of per-VM task count)
* utilization_fragmentation(total, used, avg_util) -> float  (1 - used/total * avg_util)
* imbalance(allocations) -> float  (std/mean of per-VM average utilization)
* allocations_frame / summary_frame -> pandas.DataFrame for the reporting side.

The two fragmentation definitions are not interchangeable; callers pick one
by name and keep it for a whole run.
"""
from __future__ import annotations

from typing import Any, Iterable, Protocol, Sequence, Tuple

import numpy as np
import pandas as pd


class _AllocationProxy(Protocol):
    """Structural view of VmAllocation used by the packer."""
    tasks: list

    def utilization(self) -> float: ...


def allocation_util(allocations: Sequence[_AllocationProxy]) -> Tuple[float, float, float]:
    """Return average, max and std-dev of per-allocation utilization."""
    utils = [a.utilization() for a in allocations]
    if not utils:
        return 0.0, 0.0, 0.0
    arr = np.asarray(utils, dtype=np.float64)
    # population std-dev
    return float(arr.mean()), float(arr.max()), float(arr.std())


def load_stddev_fragmentation(task_counts: Sequence[int]) -> float:
    """Population std-dev of tasks per used VM; 0 when the load is even."""
    if len(task_counts) == 0:
        return 0.0
    return float(np.std(np.asarray(task_counts, dtype=np.float64)))


def utilization_fragmentation(total_vm_slots: int, used_vm_slots: int, avg_utilization: float) -> float:
    """Many VMs at low utilization -> close to 1; clamped into [0, 1]."""
    if total_vm_slots <= 0:
        return 0.0
    ratio = used_vm_slots / total_vm_slots
    return min(max(1.0 - ratio * avg_utilization, 0.0), 1.0)


def imbalance(allocations: Sequence[_AllocationProxy]) -> float:
    """Coefficient of variation (std/mean) of per-allocation utilization."""
    avg, _, std = allocation_util(allocations)
    return std / avg if avg > 1e-9 else 0.0


def allocations_frame(allocations: Iterable[Any]) -> pd.DataFrame:
    rows = []
    for alloc in allocations:
        rows.append({
            "instance": alloc.instance.id,
            "vm_type": alloc.vm_type.id,
            "family": alloc.vm_type.family,
            "tier": alloc.tier.value,
            "tasks": len(alloc.tasks),
            "cpu_used": alloc.cpu_used,
            "mem_used": alloc.mem_used,
            "storage_used": alloc.storage_used,
            "utilization": alloc.utilization(),
        })
    return pd.DataFrame(rows, columns=["instance", "vm_type", "family", "tier", "tasks",
                                       "cpu_used", "mem_used", "storage_used", "utilization"])


def summary_frame(results: Iterable[Any]) -> pd.DataFrame:
    """One row per ExecutionResult (or anything exposing ``as_dict()``)."""
    return pd.DataFrame([r.as_dict() for r in results])
