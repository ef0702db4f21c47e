from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

DEADLINE_PENALTIES = ("absolute", "normalized")
FRAGMENTATION_METRICS = ("load_stddev", "utilization")


class ConfigurationError(ValueError):
    """Invalid scheduler configuration, raised before any work starts."""


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_flag(name: str, default: bool) -> bool:
    return os.getenv(name, "1" if default else "0") == "1"


def _clamp01(value: float) -> float:
    return min(max(float(value), 0.0), 1.0)


@dataclass
class ClassifierThresholds:
    cpu: float = 0.7
    mem: float = 0.7
    io: float = 0.6
    net: float = 0.6
    mixed: float = 0.5

    @classmethod
    def raw(cls) -> "ClassifierThresholds":
        """Preset for profiles expressed in raw units (RawThresholdProfiling)."""
        return cls(cpu=1000.0, mem=512.0, io=100.0, net=50.0, mixed=0.0)

    @classmethod
    def from_env(cls) -> "ClassifierThresholds":
        return cls(
            cpu=_env_float("RBDAS_CPU_THRESHOLD", cls.cpu),
            mem=_env_float("RBDAS_MEM_THRESHOLD", cls.mem),
            io=_env_float("RBDAS_IO_THRESHOLD", cls.io),
            net=_env_float("RBDAS_NET_THRESHOLD", cls.net),
            mixed=_env_float("RBDAS_MIXED_THRESHOLD", cls.mixed),
        )


@dataclass
class FitnessWeights:
    alpha: float = 1.0    # cost
    beta: float = 100.0   # deadline violation
    gamma: float = 10.0   # affinity mismatch
    delta: float = 5.0    # fragmentation

    @classmethod
    def from_env(cls) -> "FitnessWeights":
        return cls(
            alpha=_env_float("RBDAS_W_COST", cls.alpha),
            beta=_env_float("RBDAS_W_DEADLINE", cls.beta),
            gamma=_env_float("RBDAS_W_AFFINITY", cls.gamma),
            delta=_env_float("RBDAS_W_FRAGMENTATION", cls.delta),
        )


@dataclass
class PsoConfig:
    population_size: int = 50
    iterations: int = 100
    inertia: float = 0.7
    cognitive: float = 1.5
    social: float = 1.5
    velocity_limit: Optional[float] = None  # None: use the position range
    workers: int = 1
    use_spot: bool = False
    fragmentation_metric: str = "load_stddev"
    show_progress: bool = False

    def validate(self) -> None:
        if self.population_size <= 0:
            raise ConfigurationError(f"population_size must be positive, got {self.population_size}")
        if self.iterations <= 0:
            raise ConfigurationError(f"iterations must be positive, got {self.iterations}")
        if self.fragmentation_metric not in FRAGMENTATION_METRICS:
            raise ConfigurationError(f"unknown fragmentation metric: {self.fragmentation_metric!r}")

    @classmethod
    def from_env(cls) -> "PsoConfig":
        return cls(
            population_size=_env_int("RBDAS_PSO_POPULATION", cls.population_size),
            iterations=_env_int("RBDAS_PSO_ITERATIONS", cls.iterations),
            inertia=_env_float("RBDAS_PSO_INERTIA", cls.inertia),
            cognitive=_env_float("RBDAS_PSO_C1", cls.cognitive),
            social=_env_float("RBDAS_PSO_C2", cls.social),
            workers=_env_int("RBDAS_PSO_WORKERS", cls.workers),
            use_spot=_env_flag("RBDAS_USE_SPOT", cls.use_spot),
            fragmentation_metric=os.getenv("RBDAS_FRAGMENTATION", cls.fragmentation_metric),
            show_progress=_env_flag("RBDAS_PROGRESS", cls.show_progress),
        )


@dataclass
class CostConfig:
    billing_interval: float = 3600.0
    fallback_hourly_rate: float = 0.1
    egress_price_per_gb: float = 0.09
    deadline_penalty: str = "absolute"

    def __post_init__(self):
        if self.deadline_penalty not in DEADLINE_PENALTIES:
            raise ConfigurationError(f"unknown deadline penalty: {self.deadline_penalty!r}")
        if self.billing_interval <= 0:
            raise ConfigurationError("billing_interval must be positive")

    @classmethod
    def from_env(cls) -> "CostConfig":
        return cls(
            billing_interval=_env_float("RBDAS_BILLING_INTERVAL", cls.billing_interval),
            fallback_hourly_rate=_env_float("RBDAS_FALLBACK_RATE", cls.fallback_hourly_rate),
            egress_price_per_gb=_env_float("RBDAS_EGRESS_PRICE", cls.egress_price_per_gb),
            deadline_penalty=os.getenv("RBDAS_DEADLINE_PENALTY", cls.deadline_penalty),
        )


@dataclass
class PoolConfig:
    reserved_per_type: int = 2
    spot_per_type: int = 5
    on_demand_per_type: int = 1
    spot_enabled: bool = False

    @classmethod
    def from_env(cls) -> "PoolConfig":
        return cls(
            reserved_per_type=_env_int("RBDAS_RESERVED_PER_TYPE", cls.reserved_per_type),
            spot_per_type=_env_int("RBDAS_SPOT_PER_TYPE", cls.spot_per_type),
            on_demand_per_type=_env_int("RBDAS_ONDEMAND_PER_TYPE", cls.on_demand_per_type),
            spot_enabled=_env_flag("RBDAS_SPOT_ENABLED", cls.spot_enabled),
        )


@dataclass
class SpotConfig:
    interruption_probability: float = 0.1
    grace_period: float = 60.0
    check_interval: float = 300.0
    checkpoint_overhead: float = 0.02
    checkpointing: bool = True

    def __post_init__(self):
        self.interruption_probability = _clamp01(self.interruption_probability)
        self.checkpoint_overhead = _clamp01(self.checkpoint_overhead)

    @classmethod
    def from_env(cls) -> "SpotConfig":
        return cls(
            interruption_probability=_env_float("RBDAS_SPOT_PROBABILITY", cls.interruption_probability),
            grace_period=_env_float("RBDAS_SPOT_GRACE", cls.grace_period),
            check_interval=_env_float("RBDAS_SPOT_CHECK_INTERVAL", cls.check_interval),
            checkpoint_overhead=_env_float("RBDAS_CHECKPOINT_OVERHEAD", cls.checkpoint_overhead),
            checkpointing=_env_flag("RBDAS_CHECKPOINTING", cls.checkpointing),
        )


@dataclass
class RbdasConfig:
    thresholds: ClassifierThresholds = field(default_factory=ClassifierThresholds)
    weights: FitnessWeights = field(default_factory=FitnessWeights)
    pso: PsoConfig = field(default_factory=PsoConfig)
    cost: CostConfig = field(default_factory=CostConfig)
    pools: PoolConfig = field(default_factory=PoolConfig)
    spot: SpotConfig = field(default_factory=SpotConfig)
    seed: int = 42
    verbose: bool = False

    @classmethod
    def from_env(cls) -> "RbdasConfig":
        return cls(
            thresholds=ClassifierThresholds.from_env(),
            weights=FitnessWeights.from_env(),
            pso=PsoConfig.from_env(),
            cost=CostConfig.from_env(),
            pools=PoolConfig.from_env(),
            spot=SpotConfig.from_env(),
            seed=_env_int("RBDAS_SEED", 42),
            verbose=_env_flag("RBDAS_VERBOSE", False),
        )
