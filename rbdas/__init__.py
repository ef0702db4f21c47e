"""Affinity-aware workflow-to-VM scheduling (profiling, A2MDBFD packing, HNSPSO refinement)."""

from .models import (
    Checkpoint,
    InterruptionEvent,
    Pricing,
    PricingTier,
    ResourceProfile,
    Task,
    VmInstance,
    VmType,
    Workflow,
    WorkloadType,
)
from .config import ConfigurationError, RbdasConfig
from .broker import ExecutionResult, RbdasScheduler

__all__ = [
    "Checkpoint",
    "InterruptionEvent",
    "Pricing",
    "PricingTier",
    "ResourceProfile",
    "Task",
    "VmInstance",
    "VmType",
    "Workflow",
    "WorkloadType",
    "ConfigurationError",
    "RbdasConfig",
    "ExecutionResult",
    "RbdasScheduler",
]
