"""Initial packing, schedule decoding and swarm refinement."""

from .schedule import Schedule, ScheduleBuilder, TaskPlacement, VmSlot, build_slots
from .a2mdbfd import AffinityPacker, VmAllocation, allocations_to_slots, pack
from .hnspso import FitnessBreakdown, FitnessEvaluator, HnsPsoOptimizer, Mapping, OptimizerState, optimize

__all__ = [
    "Schedule",
    "ScheduleBuilder",
    "TaskPlacement",
    "VmSlot",
    "build_slots",
    "AffinityPacker",
    "VmAllocation",
    "allocations_to_slots",
    "pack",
    "FitnessBreakdown",
    "FitnessEvaluator",
    "HnsPsoOptimizer",
    "Mapping",
    "OptimizerState",
    "optimize",
]
