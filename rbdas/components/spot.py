#!/usr/bin/env python3
"""
Spot interruption and checkpoint model.

- no interruption during the grace period after an instance starts
- afterwards each check interrupts with probability p (seeded RNG)
- an interrupted task keeps a checkpoint of its completed fraction;
  resuming costs the remaining work plus a fixed overhead
"""
from __future__ import annotations

import math
from typing import Dict, List, Optional, Sequence, Union

import numpy as np

from rbdas.config import SpotConfig
from rbdas.models import Checkpoint, InterruptionEvent, PricingTier, VmInstance


class SpotInterruptModel:
    def __init__(self, config: Optional[SpotConfig] = None, seed: Optional[int] = 42, verbose: bool = False):
        self.config = config or SpotConfig()
        self.rng = np.random.default_rng(seed)
        self.verbose = verbose
        self._checkpoints: Dict[str, Checkpoint] = {}
        self._log: List[InterruptionEvent] = []

    @property
    def probability(self) -> float:
        return self.config.interruption_probability

    def should_interrupt(self, instance: VmInstance, current_time: float,
                         start_time: Optional[float] = None) -> bool:
        if start_time is None:
            start_time = instance.start_time
        if current_time - start_time < self.config.grace_period:
            return False
        if self.rng.random() < self.probability:
            self._log.append(InterruptionEvent(vm_id=instance.id, time=current_time))
            if self.verbose:
                print(f"[SPOT] {instance.id} interrupted at t={current_time:.1f}s")
            return True
        return False

    def create_checkpoint(self, task_id: str, executed_time: float, total_time: float,
                          current_time: float) -> Checkpoint:
        """Replaces any live checkpoint for the task."""
        if total_time > 0:
            completed = min(1.0, max(executed_time, 0.0) / total_time)
        else:
            completed = 1.0
        ckpt = Checkpoint(task_id=task_id, completed_work=completed, timestamp=current_time,
                          total_work=max(total_time, 0.0))
        self._checkpoints[task_id] = ckpt
        return ckpt

    def get_checkpoint(self, task_id: str) -> Optional[Checkpoint]:
        return self._checkpoints.get(task_id)

    def remove_checkpoint(self, task_id: str) -> None:
        self._checkpoints.pop(task_id, None)

    def has_checkpoint(self, task_id: str) -> bool:
        return task_id in self._checkpoints

    def resume_from_checkpoint(self, checkpoint: Union[str, Checkpoint],
                               total_time: Optional[float] = None) -> float:
        """
        Consume the checkpoint and return the work still to do, inflated by the
        checkpoint overhead. ``total_time`` overrides the checkpoint's own
        total_work; a missing checkpoint means the task restarts from scratch.
        """
        task_id = checkpoint if isinstance(checkpoint, str) else checkpoint.task_id
        ckpt = self._checkpoints.pop(task_id, None)
        if ckpt is None:
            if isinstance(checkpoint, Checkpoint):
                ckpt = checkpoint
            else:
                return total_time if total_time is not None else 0.0
        total = ckpt.total_work if total_time is None else total_time
        return (1.0 - ckpt.completed_work) * total * (1.0 + self.config.checkpoint_overhead)

    def work_lost(self, executed_time: float, has_checkpoint: Optional[bool] = None) -> float:
        if has_checkpoint is None:
            has_checkpoint = self.config.checkpointing
        return 0.0 if has_checkpoint else max(executed_time, 0.0)

    def checkpoint_overhead(self, total_time: float) -> float:
        return total_time * self.config.checkpoint_overhead

    def mean_time_to_interruption(self) -> float:
        """Expected checks until interruption (geometric); inf when p == 0."""
        p = self.probability
        return math.inf if p <= 0 else 1.0 / p

    def generate_interruption_time(self, start_time: float, end_time: float) -> Optional[float]:
        """Random interruption time inside (start + grace, end), or None when the window is too short."""
        earliest = start_time + self.config.grace_period
        if earliest >= end_time:
            return None
        return float(self.rng.uniform(earliest, end_time))

    def first_interruption(self, instance: VmInstance, begin: float, end: float,
                           start_time: Optional[float] = None) -> Optional[float]:
        """
        Run the interval checks falling in (begin, end] on the instance's
        check grid start_time + k * check_interval; return the time of the
        first one that interrupts, or None.
        """
        if start_time is None:
            start_time = instance.start_time
        interval = self.config.check_interval
        if interval <= 0:
            return None
        k = max(math.floor((begin - start_time) / interval) + 1, 1)
        t = start_time + k * interval
        while t <= end:
            if self.should_interrupt(instance, t, start_time):
                return t
            k += 1
            t = start_time + k * interval
        return None

    def simulate_interruptions(self, instances: Sequence[VmInstance], start_time: float,
                               end_time: float) -> List[InterruptionEvent]:
        """Check every spot instance each check_interval; an interrupted instance is not checked again."""
        events: List[InterruptionEvent] = []
        live = [vm for vm in instances if vm.tier is PricingTier.SPOT]
        t = start_time + self.config.check_interval
        while t <= end_time and live:
            still_running = []
            for vm in live:
                if self.should_interrupt(vm, t, start_time):
                    events.append(self._log[-1])
                else:
                    still_running.append(vm)
            live = still_running
            t += self.config.check_interval
        return events

    @property
    def interruption_count(self) -> int:
        return len(self._log)

    @property
    def interruption_log(self) -> List[InterruptionEvent]:
        return list(self._log)

    def reset(self) -> None:
        self._checkpoints.clear()
        self._log.clear()
