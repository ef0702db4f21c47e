from __future__ import annotations

from typing import Dict, Optional

from rbdas.config import ClassifierThresholds
from rbdas.models import ResourceProfile, WorkloadType

# tie-break precedence when no intensity crosses its threshold
_PRECEDENCE = (WorkloadType.CPU, WorkloadType.MEM, WorkloadType.IO, WorkloadType.NET)


def classify(profile: Optional[ResourceProfile], thresholds: Optional[ClassifierThresholds] = None) -> WorkloadType:
    if profile is None:
        return WorkloadType.MIX
    if profile.gpu_required:
        return WorkloadType.GPU
    thresholds = thresholds or ClassifierThresholds()

    intensities = (
        profile.cpu_intensity,
        profile.mem_intensity,
        profile.io_intensity,
        profile.net_intensity,
    )
    limits = (thresholds.cpu, thresholds.mem, thresholds.io, thresholds.net)
    high = [wtype for wtype, value, limit in zip(_PRECEDENCE, intensities, limits) if value >= limit]

    if len(high) >= 2:
        return WorkloadType.MIX
    if len(high) == 1:
        return high[0]

    peak = max(intensities)
    if peak < thresholds.mixed:
        return WorkloadType.MIX
    return _PRECEDENCE[intensities.index(peak)]


class WorkloadClassifier:
    def __init__(self, thresholds: Optional[ClassifierThresholds] = None):
        self.thresholds = thresholds or ClassifierThresholds()

    def classify(self, profile: Optional[ResourceProfile]) -> WorkloadType:
        return classify(profile, self.thresholds)

    def classify_all(self, profiles: Dict[str, ResourceProfile]) -> Dict[str, WorkloadType]:
        """Labels every profile in place and returns the label map."""
        labels = {}
        for task_id, prof in profiles.items():
            prof.workload_type = self.classify(prof)
            labels[task_id] = prof.workload_type
        return labels
