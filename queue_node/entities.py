"""
Entity definitions for the queue node: customers, servers and the enums
that describe models, distributions and routing.
"""

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, List, Optional

import config


class ServerState(str, Enum):
    """Operational status of a server."""
    IDLE = "IDLE"
    BUSY = "BUSY"
    OFFLINE = "OFFLINE"  # broken down, under repair


class SkillType(str, Enum):
    GENERAL = "General"
    SALES = "Sales"
    SUPPORT = "Support"
    TECH = "Tech"


class QueueModel(str, Enum):
    """Kendall notation of the simulated node."""
    MM1 = "M/M/1"
    MMS = "M/M/s"
    MMSK = "M/M/s/K"
    MMS_N_POP = "M/M/s//N"
    MMINF = "M/M/inf"


class DistributionType(str, Enum):
    POISSON = "Poisson"
    DETERMINISTIC = "Deterministic"
    UNIFORM = "Uniform"
    ERLANG = "Erlang"
    TRACE = "Trace"


class QueueTopology(str, Enum):
    COMMON = "Common"  # one line feeding every server
    DEDICATED = "Dedicated"  # one line per server


class ServerSelectionStrategy(str, Enum):
    """How idle servers are ordered before pulling from the common queue."""
    RANDOM = "Random"
    EFFICIENCY = "Efficiency"


@dataclass
class Customer:
    """One arriving entity."""
    customer_id: int
    arrival_time: float
    service_time: float
    priority: int = 0  # 1 = VIP
    required_skill: SkillType = SkillType.GENERAL
    patience_time: Optional[float] = None  # reneging threshold
    workload_items: int = 1

    # Runtime
    start_time: Optional[float] = None
    finish_time: Optional[float] = None
    balk_time: Optional[float] = None
    estimated_wait_time: Optional[float] = None

    # Retrial
    next_retry_time: Optional[float] = None
    is_retrial: bool = False

    @property
    def is_vip(self) -> bool:
        return self.priority == 1

    @property
    def customer_type(self) -> str:
        """Label used in the completed-customer log."""
        if self.is_vip:
            return "VIP"
        if self.patience_time is not None:
            return "Impatient"
        return "Standard"


@dataclass
class TimelineSegment:
    """A (state, start, end) interval in a server's activity log."""
    state: ServerState
    start: float
    end: Optional[float] = None  # None while the segment is open


@dataclass
class Server:
    """One service resource.

    The dedicated queue and the active batch hold customer ids; the
    customers themselves live in the state's arena.
    """
    server_id: int
    start_time: float = 0.0
    efficiency: float = 1.0
    type_label: str = "Normal"  # "Senior" | "Junior" | "Normal"
    skills: List[SkillType] = field(default_factory=lambda: [SkillType.GENERAL])
    state: ServerState = ServerState.IDLE
    queue: List[int] = field(default_factory=list)
    active_batch: List[int] = field(default_factory=list)
    total_busy_time: float = 0.0
    utilization_history: Deque[int] = field(
        default_factory=lambda: deque(maxlen=config.UTILIZATION_WINDOW)
    )
    timeline: List[TimelineSegment] = field(default_factory=list)
    next_breakdown_time: Optional[float] = None
    repair_time: Optional[float] = None
    should_remove: bool = False
    is_infinite_slot: bool = False

    def __post_init__(self):
        if not self.timeline:
            self.timeline.append(TimelineSegment(self.state, self.start_time))

    def set_state(self, new_state: ServerState, time: float):
        """Change state, closing the open timeline segment.

        Args:
            new_state: State to switch to
            time: Simulation time of the switch
        """
        if self.state == new_state:
            return
        if self.timeline and self.timeline[-1].end is None:
            self.timeline[-1].end = time
        self.timeline.append(TimelineSegment(new_state, time))
        self.state = new_state

    def can_serve(self, skill: SkillType) -> bool:
        return skill in self.skills

    @property
    def is_idle_and_empty(self) -> bool:
        return (
            self.state == ServerState.IDLE
            and not self.queue
            and not self.active_batch
        )

    def utilization(self, now: float) -> float:
        """Busy fraction, smoothed by the sliding window when available.

        Args:
            now: Current simulation time

        Returns:
            Utilization in [0, 1]
        """
        if self.utilization_history:
            return sum(self.utilization_history) / len(self.utilization_history)
        uptime = now - self.start_time
        return self.total_busy_time / uptime if uptime > 0 else 0.0


@dataclass(frozen=True)
class DepartedCustomer:
    """Visual record of a customer leaving after service."""
    customer: Customer
    server_id: int
    departure_time: float


@dataclass(frozen=True)
class BalkedCustomer:
    """Visual record of a customer leaving without service (or to orbit)."""
    customer: Customer
    balk_time: float
    reason: str  # "balk" | "block" | "renege"
