from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Optional

from rbdas.config import ConfigurationError
from rbdas.models import ResourceProfile, Task, Workflow

GPU_KEYWORDS = ("gpu", "cuda", "render", "ml", "ai", "neural")


def is_gpu_task(task: Task) -> bool:
    name = task.name.lower()
    return any(keyword in name for keyword in GPU_KEYWORDS)


@dataclass
class WorkflowStats:
    max_task_size: float
    max_data_size: float


def workflow_stats(workflow: Workflow) -> WorkflowStats:
    max_size = max((t.size for t in workflow), default=0.0)
    max_data = max((e.data_size for t in workflow for e in t.out_edges), default=0.0)
    return WorkflowStats(max_task_size=max_size, max_data_size=max_data)


class NormalizedProfiling:
    """Intensities in [0, 1], normalized by workflow-wide maxima (default)."""

    name = "normalized"

    def __init__(self, cpu_scale: float = 2.0, mem_scale: float = 4.0):
        # vCPUs / GB requested by a task at intensity 1.0
        self.cpu_scale = cpu_scale
        self.mem_scale = mem_scale

    def profile(self, task: Task, stats: WorkflowStats) -> ResourceProfile:
        total_data = task.incident_data()
        cpu = min(1.0, task.size / stats.max_task_size) if stats.max_task_size > 0 else 0.0
        net = min(1.0, total_data / stats.max_data_size) if stats.max_data_size > 0 else 0.0
        io = min(1.0, (total_data / task.size) / 10.0) if task.size > 0 else 0.0
        mem = min(1.0, 0.4 * cpu + 0.6 * io)
        return ResourceProfile(
            cpu_intensity=cpu,
            mem_intensity=mem,
            io_intensity=io,
            net_intensity=net,
            gpu_required=is_gpu_task(task),
            data_size=total_data,
            cpu_demand=cpu * self.cpu_scale,
            mem_demand=mem * self.mem_scale,
            storage_demand=total_data / 1024.0,
        )


class RawThresholdProfiling:
    """Raw-unit intensities meant for ClassifierThresholds.raw()."""

    name = "raw"

    def __init__(self, gpu_size_threshold: float = 10000.0):
        self.gpu_size_threshold = gpu_size_threshold

    def profile(self, task: Task, stats: WorkflowStats) -> ResourceProfile:
        total_data = task.incident_data()
        io = total_data / 1024.0
        return ResourceProfile(
            cpu_intensity=task.size,
            mem_intensity=task.size * 0.5,
            io_intensity=io,
            net_intensity=io,
            gpu_required=task.size > self.gpu_size_threshold,
            data_size=total_data,
            cpu_demand=task.size / 1000.0,
            mem_demand=task.size * 0.5 / 1024.0,
            storage_demand=total_data / 1024.0,
        )


PROFILING_STRATEGIES = {
    NormalizedProfiling.name: NormalizedProfiling,
    RawThresholdProfiling.name: RawThresholdProfiling,
}


class ResourceProfiler:
    """Per-task resource-intensity estimation from DAG structure only."""

    def __init__(self, strategy=None, workers: int = 1):
        if isinstance(strategy, str):
            if strategy not in PROFILING_STRATEGIES:
                raise ConfigurationError(f"unknown profiling strategy: {strategy!r}")
            strategy = PROFILING_STRATEGIES[strategy]()
        self.strategy = strategy or NormalizedProfiling()
        self.workers = max(1, workers)

    def profile(self, workflow: Workflow) -> Dict[str, ResourceProfile]:
        stats = workflow_stats(workflow)

        def _one(task: Task) -> ResourceProfile:
            if task.is_sentinel:
                return ResourceProfile.neutral()
            return self.strategy.profile(task, stats)

        tasks = workflow.tasks
        if self.workers > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                profiles = list(pool.map(_one, tasks))
        else:
            profiles = [_one(t) for t in tasks]
        return {task.id: prof for task, prof in zip(tasks, profiles)}

    def profile_task(self, task: Task, workflow: Optional[Workflow] = None) -> ResourceProfile:
        stats = workflow_stats(workflow) if workflow is not None else WorkflowStats(task.size, task.incident_data())
        return self.strategy.profile(task, stats)


def profile(workflow: Workflow, strategy=None) -> Dict[str, ResourceProfile]:
    return ResourceProfiler(strategy).profile(workflow)
