from __future__ import annotations

from dataclasses import replace
from typing import Dict

from rbdas.models import ResourceProfile


class ProfileEWMA:
    """Runtime refinement of task profiles: new = (1 - alpha) * old + alpha * sample."""

    def __init__(self, profiles: Dict[str, ResourceProfile], alpha: float = 0.3):
        self.alpha = alpha
        self.state = profiles

    def update(self, task_id: str, cpu: float, mem: float, io: float, net: float) -> ResourceProfile:
        prev = self.state.get(task_id)
        if prev is None:
            return ResourceProfile.neutral()
        keep = 1 - self.alpha
        refined = replace(
            prev,
            cpu_intensity=keep * prev.cpu_intensity + self.alpha * cpu,
            mem_intensity=keep * prev.mem_intensity + self.alpha * mem,
            io_intensity=keep * prev.io_intensity + self.alpha * io,
            net_intensity=keep * prev.net_intensity + self.alpha * net,
        )
        self.state[task_id] = refined
        return refined

    def forecast(self, task_id: str) -> ResourceProfile:
        return self.state.get(task_id, ResourceProfile.neutral())
