import pandas as pd
import pytest

from rbdas.components.vm_pool import VmPoolManager
from rbdas.metrics import (
    allocation_util,
    allocations_frame,
    imbalance,
    load_stddev_fragmentation,
    summary_frame,
    utilization_fragmentation,
)
from rbdas.models import ResourceProfile, Task, WorkloadType
from rbdas.placement.a2mdbfd import pack


def test_empty_inputs():
    assert allocation_util([]) == (0.0, 0.0, 0.0)
    assert imbalance([]) == 0.0
    assert load_stddev_fragmentation([]) == 0.0
    assert utilization_fragmentation(0, 0, 0.0) == 0.0


def test_allocations_frame(catalog, affinity):
    tasks = [Task("a", 1.0), Task("b", 1.0)]
    profiles = {t.id: ResourceProfile(cpu_intensity=0.9, workload_type=WorkloadType.CPU, cpu_demand=1.5,
                                      mem_demand=1.0, storage_demand=2.0) for t in tasks}
    allocations = pack(tasks, profiles, VmPoolManager(catalog), affinity)
    frame = allocations_frame(allocations)
    assert list(frame.columns) == ["instance", "vm_type", "family", "tier", "tasks",
                                   "cpu_used", "mem_used", "storage_used", "utilization"]
    assert frame["tasks"].sum() == 2
    assert set(frame["tier"]) == {"reserved"}
    avg, peak, std = allocation_util(allocations)
    assert avg == pytest.approx(frame["utilization"].mean())
    assert std == pytest.approx(0.0)
    assert imbalance(allocations) == pytest.approx(0.0)


def test_summary_frame():
    class Row:
        def __init__(self, cost):
            self.cost = cost

        def as_dict(self):
            return {"total_cost": self.cost}

    frame = summary_frame([Row(1.0), Row(3.0)])
    assert isinstance(frame, pd.DataFrame)
    assert frame["total_cost"].tolist() == [1.0, 3.0]


def test_load_stddev_is_population_stddev():
    assert load_stddev_fragmentation([1, 3]) == pytest.approx(1.0)
    assert load_stddev_fragmentation([2, 2, 2]) == 0.0
    assert load_stddev_fragmentation([0, 0, 6]) == pytest.approx(8.0 ** 0.5)
