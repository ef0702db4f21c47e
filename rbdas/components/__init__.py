"""Components of the affinity-aware workflow scheduler."""

from .affinity import AffinityModel, DEFAULT_AFFINITY
from .profiler import ResourceProfiler, NormalizedProfiling, RawThresholdProfiling, profile
from .classifier import WorkloadClassifier, classify
from .predictor import ProfileEWMA
from .cost_model import CostModel
from .vm_pool import VmPoolManager, PoolStats, TierStats
from .spot import SpotInterruptModel

__all__ = [
    "AffinityModel",
    "DEFAULT_AFFINITY",
    "ResourceProfiler",
    "NormalizedProfiling",
    "RawThresholdProfiling",
    "profile",
    "WorkloadClassifier",
    "classify",
    "ProfileEWMA",
    "CostModel",
    "VmPoolManager",
    "PoolStats",
    "TierStats",
    "SpotInterruptModel",
]
