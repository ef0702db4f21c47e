from __future__ import annotations

import pytest

from rbdas.components.affinity import AffinityModel
from rbdas.components.classifier import WorkloadClassifier
from rbdas.components.profiler import ResourceProfiler
from rbdas.models import Pricing, Task, VmType, Workflow

AFFINITY_TABLE = {
    "CPU": {"c5": 0.9, "r5": 0.5, "i3": 0.4, "p3": 0.6},
    "MEM": {"c5": 0.4, "r5": 0.95, "i3": 0.6},
    "IO": {"c5": 0.3, "r5": 0.5, "i3": 0.95},
    "NET": {"c5": 0.7, "r5": 0.6, "i3": 0.5},
    "GPU": {"c5": 0.1, "p3": 1.0},
    "MIX": {"c5": 0.6, "r5": 0.6, "i3": 0.5, "p3": 0.3},
}


@pytest.fixture
def catalog():
    return [
        VmType("c5.large", "c5", 2, 4.0, 20.0, pricing=Pricing(0.085, 0.054, 0.03), network_gbps=10.0),
        VmType("r5.large", "r5", 2, 16.0, 20.0, pricing=Pricing(0.126, 0.08, 0.04), network_gbps=10.0),
        VmType("i3.large", "i3", 2, 15.25, 475.0, pricing=Pricing(0.156, 0.1, 0.05), network_gbps=10.0),
        VmType("p3.2xlarge", "p3", 8, 61.0, 100.0, gpu=True, pricing=Pricing(3.06, 1.96, 0.92),
               network_gbps=10.0),
    ]


@pytest.fixture
def affinity(catalog):
    return AffinityModel(AFFINITY_TABLE, catalog)


def make_linear_workflow(n: int = 10, data: float = 50.0) -> Workflow:
    tasks = [Task(f"t{i}", 100.0 * (i + 1)) for i in range(n)]
    edges = [(f"t{i}", f"t{i + 1}", data) for i in range(n - 1)]
    wf = Workflow(tasks, edges, name="linear")
    wf.deadline = 2 * wf.critical_path_length
    return wf


@pytest.fixture
def linear_workflow():
    return make_linear_workflow()


@pytest.fixture
def fork_join_workflow():
    tasks = [Task("split", 200.0), Task("a", 400.0), Task("b", 300.0), Task("c", 500.0), Task("join", 100.0)]
    edges = [("split", "a", 20.0), ("split", "b", 20.0), ("split", "c", 20.0),
             ("a", "join", 10.0), ("b", "join", 10.0), ("c", "join", 10.0)]
    return Workflow(tasks, edges, deadline=2000.0, name="fork-join")


@pytest.fixture
def classified_profiles():
    def _build(workflow):
        profiles = ResourceProfiler().profile(workflow)
        WorkloadClassifier().classify_all(profiles)
        return profiles
    return _build
