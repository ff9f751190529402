"""
Simulation configuration: a base record plus optional feature blocks.

A feature is enabled when its block is present. Each block carries only
the parameters that feature needs and is validated when constructed.
"""

from dataclasses import dataclass, field, replace
from typing import Mapping, Optional, Tuple

import config
from queue_node.entities import (
    DistributionType,
    QueueModel,
    QueueTopology,
    ServerSelectionStrategy,
    SkillType,
)


class ConfigError(ValueError):
    """Raised when a configuration is structurally inconsistent."""


def _check_probability(name: str, value: float):
    if not 0.0 <= value <= 1.0:
        raise ConfigError(f"{name} must be within [0, 1], got {value}")


@dataclass(frozen=True)
class DistributionSpec:
    """Distribution family and Erlang shape for a duration stream."""
    kind: DistributionType = DistributionType.POISSON
    k: int = config.DEFAULT_ERLANG_K

    def __post_init__(self):
        if self.kind == DistributionType.ERLANG and self.k < 1:
            raise ConfigError(f"Erlang shape must be >= 1, got {self.k}")


@dataclass(frozen=True)
class TraceEntry:
    """One line of a replayed arrival log (times in minutes)."""
    arrival_time: float
    service_time: float


@dataclass(frozen=True)
class ImpatienceConfig:
    balk_threshold: int = config.DEFAULT_BALK_THRESHOLD
    avg_patience_time: float = config.DEFAULT_AVG_PATIENCE


@dataclass(frozen=True)
class RetrialConfig:
    avg_retrial_delay: float = config.DEFAULT_AVG_RETRIAL_DELAY


@dataclass(frozen=True)
class BreakdownConfig:
    mtbf: float = config.DEFAULT_MTBF
    mttr: float = config.DEFAULT_MTTR


@dataclass(frozen=True)
class SkillRoutingConfig:
    """Share of arrivals requiring each specialised skill."""
    skill_ratios: Mapping[SkillType, float] = field(
        default_factory=lambda: {
            SkillType(name): ratio
            for name, ratio in config.DEFAULT_SKILL_RATIOS.items()
        }
    )

    def __post_init__(self):
        for skill, ratio in self.skill_ratios.items():
            _check_probability(f"skill ratio for {skill.value}", ratio)


@dataclass(frozen=True)
class ScheduleConfig:
    """Hourly arrival-rate and headcount schedules, indexed by clock hour."""
    arrival_schedule: Tuple[float, ...]
    server_schedule: Tuple[int, ...]

    def __post_init__(self):
        for name in ("arrival_schedule", "server_schedule"):
            values = getattr(self, name)
            if len(values) != config.HOURS_PER_DAY:
                raise ConfigError(
                    f"{name} needs {config.HOURS_PER_DAY} entries, got {len(values)}"
                )


@dataclass(frozen=True)
class EfficiencyMixConfig:
    """Mixed senior/junior staff."""
    seniority_ratio: float = config.DEFAULT_SENIORITY_RATIO

    def __post_init__(self):
        _check_probability("seniority_ratio", self.seniority_ratio)

    @property
    def average_efficiency(self) -> float:
        return (
            self.seniority_ratio * config.SENIOR_EFFICIENCY
            + (1 - self.seniority_ratio) * config.JUNIOR_EFFICIENCY
        )


@dataclass(frozen=True)
class PanicConfig:
    threshold: int = config.DEFAULT_PANIC_THRESHOLD
    efficiency_multiplier: float = config.DEFAULT_PANIC_MULTIPLIER


@dataclass(frozen=True)
class BulkArrivalConfig:
    min_group_size: int = config.DEFAULT_MIN_GROUP_SIZE
    max_group_size: int = config.DEFAULT_MAX_GROUP_SIZE

    def __post_init__(self):
        if self.min_group_size < 1 or self.min_group_size > self.max_group_size:
            raise ConfigError(
                f"invalid group size range [{self.min_group_size}, {self.max_group_size}]"
            )


@dataclass(frozen=True)
class BatchServiceConfig:
    max_batch_size: int = config.DEFAULT_MAX_BATCH_SIZE

    def __post_init__(self):
        if self.max_batch_size < 1:
            raise ConfigError(f"max_batch_size must be >= 1, got {self.max_batch_size}")


@dataclass(frozen=True)
class WorkloadConfig:
    """Multi-item customers: service time is the sum of per-item draws."""
    min_items: int = config.DEFAULT_MIN_WORKLOAD_ITEMS
    max_items: int = config.DEFAULT_MAX_WORKLOAD_ITEMS

    def __post_init__(self):
        if self.min_items < 1 or self.min_items > self.max_items:
            raise ConfigError(f"invalid workload range [{self.min_items}, {self.max_items}]")


@dataclass(frozen=True)
class SimulationConfig:
    """Complete, immutable input to the engine.

    Rates are per hour; durations are in minutes. For M/M/s//N the
    arrival rate is per caller.
    """
    model: QueueModel = QueueModel(config.DEFAULT_MODEL)
    arrival_rate: float = config.DEFAULT_ARRIVAL_RATE
    avg_service_time: float = config.DEFAULT_AVG_SERVICE_TIME
    server_count: int = config.DEFAULT_SERVER_COUNT
    capacity: int = config.DEFAULT_CAPACITY
    population_size: int = config.DEFAULT_POPULATION_SIZE
    arrival: DistributionSpec = DistributionSpec()
    service: DistributionSpec = DistributionSpec()
    open_hour: float = config.DEFAULT_OPEN_HOUR
    close_hour: float = config.DEFAULT_CLOSE_HOUR
    vip_probability: float = config.DEFAULT_VIP_PROBABILITY
    sl_target: float = config.DEFAULT_SL_TARGET
    topology: QueueTopology = QueueTopology.COMMON
    jockeying: bool = False
    server_selection: ServerSelectionStrategy = ServerSelectionStrategy.RANDOM
    trace: Tuple[TraceEntry, ...] = ()

    # Optional feature blocks (None = disabled)
    impatience: Optional[ImpatienceConfig] = None
    retrial: Optional[RetrialConfig] = None
    breakdowns: Optional[BreakdownConfig] = None
    skill_routing: Optional[SkillRoutingConfig] = None
    schedule: Optional[ScheduleConfig] = None
    efficiency_mix: Optional[EfficiencyMixConfig] = None
    panic: Optional[PanicConfig] = None
    bulk_arrivals: Optional[BulkArrivalConfig] = None
    batch_service: Optional[BatchServiceConfig] = None
    workload: Optional[WorkloadConfig] = None

    def __post_init__(self):
        _check_probability("vip_probability", self.vip_probability)
        if self.arrival.kind == DistributionType.TRACE and not self.trace:
            raise ConfigError("trace arrivals need at least one trace entry")

    def with_features(self, **changes) -> "SimulationConfig":
        """Return a copy with some fields or feature blocks replaced."""
        return replace(self, **changes)

    @property
    def average_efficiency(self) -> float:
        if self.efficiency_mix is None:
            return 1.0
        return self.efficiency_mix.average_efficiency

    @property
    def max_batch_size(self) -> int:
        return self.batch_service.max_batch_size if self.batch_service else 1

    @property
    def is_trace_driven(self) -> bool:
        return self.arrival.kind == DistributionType.TRACE and bool(self.trace)
