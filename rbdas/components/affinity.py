from __future__ import annotations

from typing import Dict, Mapping, Optional, Sequence, Union

from rbdas.models import VmType, WorkloadType

DEFAULT_AFFINITY = 0.5


def _clamp01(value: float) -> float:
    return min(max(float(value), 0.0), 1.0)


class AffinityModel:
    """Workload type x VM family affinity lookup.

    Built once by the caller from already-parsed configuration and passed to
    every consumer; it is never mutated after construction.
    """

    def __init__(self, table: Mapping[str, Mapping[str, float]], catalog: Sequence[VmType] = ()):
        self._table: Dict[str, Dict[str, float]] = {
            str(getattr(wtype, "value", wtype)).upper(): {family: _clamp01(score) for family, score in row.items()}
            for wtype, row in table.items()
        }
        self.catalog = list(catalog)

    @classmethod
    def from_dict(cls, data: Mapping, catalog: Sequence[VmType] = ()) -> "AffinityModel":
        """Accepts either the bare table or a document wrapping it under
        ``mappings`` / ``affinityScores``."""
        for key in ("mappings", "affinityScores"):
            if key in data:
                return cls(data[key], catalog)
        return cls(data, catalog)

    def get_affinity(self, workload_type: Optional[WorkloadType], vm: Union[str, int, VmType]) -> float:
        if workload_type is None:
            workload_type = WorkloadType.MIX
        if isinstance(vm, VmType):
            family = vm.family
        elif isinstance(vm, int):
            if vm < 0 or vm >= len(self.catalog):
                return DEFAULT_AFFINITY
            family = self.catalog[vm].family
        else:
            family = vm
        row = self._table.get(workload_type.value)
        if row is None:
            return DEFAULT_AFFINITY
        return row.get(family, DEFAULT_AFFINITY)

    def scores_for(self, workload_type: WorkloadType) -> Dict[str, float]:
        return dict(self._table.get(workload_type.value, {}))

    def get_best_vm_type(self, workload_type: WorkloadType,
                         candidates: Optional[Sequence[VmType]] = None) -> Optional[VmType]:
        """Highest-affinity VM type; the first (lowest-index) entry wins a tie."""
        pool = self.catalog if candidates is None else candidates
        best: Optional[VmType] = None
        best_score = -1.0
        for vm_type in pool:
            score = self.get_affinity(workload_type, vm_type.family)
            if score > best_score:
                best, best_score = vm_type, score
        return best

    def get_best_vm_index(self, workload_type: WorkloadType) -> int:
        best = self.get_best_vm_type(workload_type)
        return self.catalog.index(best) if best is not None else -1
