"""
Discrete-event engine for a single queueing node.

The engine owns simulation time and the mutable state. Each call to
tick() advances the clock by a fixed delta and runs every sub-algorithm
once, in a fixed order:

    staffing, occupancy integration and panic, breakdowns and repairs,
    retrials, arrivals, jockeying, reneging, service assignment,
    departures, visual cleanup, clock advance, snapshot, utilization.
"""

import copy
import logging
import math
from typing import Callable, Iterable, List, Optional

import numpy as np

import config
from queue_node.arrivals import ArrivalSubsystem
from queue_node.departures import DepartureSubsystem
from queue_node.distributions import RandomVariateGenerator, TraceCursor
from queue_node.entities import QueueTopology, SkillType
from queue_node.event_log import CompletedCustomerLog, EventType, SimulationEvent
from queue_node.impatience import ImpatienceSubsystem
from queue_node.reliability import ReliabilitySubsystem
from queue_node.routing import RoutingSubsystem
from queue_node.settings import SimulationConfig
from queue_node.staffing import StaffingController
from queue_node.state import SimulationState
from queue_node.statistics import StatisticsRecorder
from queue_node.theory import TheoreticalMetrics, reference_metrics

logger = logging.getLogger(__name__)

TheoryFunction = Callable[[SimulationConfig, float, int], TheoreticalMetrics]


class SimulationEngine:
    """Tick-driven simulation of one service station."""

    def __init__(
        self,
        sim_config: Optional[SimulationConfig] = None,
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None,
        theory: TheoryFunction = reference_metrics,
    ):
        """Initialize and reset the engine.

        Args:
            sim_config: Scenario configuration (defaults when omitted)
            rng: Random source shared by every sampler
            seed: Seed for a fresh generator when no rng is given
            theory: Callable returning reference metrics for snapshots
        """
        self.config = sim_config if sim_config is not None else SimulationConfig()
        self.variates = RandomVariateGenerator(rng=rng, seed=seed)
        self.theory = theory

        self.arrivals = ArrivalSubsystem(self)
        self.routing = RoutingSubsystem(self)
        self.departures = DepartureSubsystem(self)
        self.impatience = ImpatienceSubsystem(self)
        self.reliability = ReliabilitySubsystem(self)
        self.staffing = StaffingController(self)
        self.recorder = StatisticsRecorder(self)

        self.state = SimulationState()
        self.trace = TraceCursor(self.config.trace)
        self._next_event_id = 0
        self.reset()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self):
        """Discard all live state and rebuild it from the configuration."""
        self.state = SimulationState()
        self.trace = TraceCursor(self.config.trace)
        self._next_event_id = 0
        self.recorder.reset()
        self.state.servers = self.staffing.initial_servers()
        self.arrivals.reset()
        logger.info(
            "Engine reset: model=%s, servers=%d, lambda=%.2f/h",
            self.config.model.value, len(self.state.servers), self.config.arrival_rate,
        )

    def update_config(self, sim_config: SimulationConfig):
        """Swap in a new configuration, effective from the next tick.

        Headcount follows the new configuration on the next tick; a new
        trace is only picked up by reset().
        """
        self.config = sim_config
        logger.info("Configuration updated (model=%s)", sim_config.model.value)

    def update_server_skills(self, server_id: int, skills: Iterable[SkillType]) -> bool:
        """Change a live server's skills without a reset.

        Returns:
            True if the server exists
        """
        server = self.state.server(server_id)
        if server is None:
            return False
        server.skills = list(skills)
        return True

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def tick(self, delta_minutes: float):
        """Advance the simulation by delta_minutes.

        Args:
            delta_minutes: Simulated minutes to advance
        """
        cfg = self.config
        state = self.state
        state.events = []
        new_time = state.current_time + delta_minutes
        state.is_closed = self.clock_hour(state.current_time) >= cfg.close_hour

        self.staffing.adjust(state.current_time)

        self.recorder.integrate_occupancy(delta_minutes)
        self.reliability.update_panic()

        self.reliability.handle_breakdowns(new_time)
        self.impatience.process_retrials(new_time)
        self.arrivals.process(new_time)

        if cfg.topology == QueueTopology.DEDICATED and cfg.jockeying:
            self.routing.jockey()
        self.impatience.process_reneging(new_time)

        self.routing.assign_servers()
        self.departures.process(new_time)
        self.cleanup_visuals(new_time)

        state.current_time = new_time
        self.recorder.maybe_snapshot(new_time)
        self.recorder.update_utilization(delta_minutes)

    def cleanup_visuals(self, now: float):
        """Expire departure and balk records older than the display window."""
        state = self.state
        state.recently_departed = [
            d for d in state.recently_departed
            if now - d.departure_time < config.VISUAL_DEPARTURE_DURATION
        ]
        state.recently_balked = [
            b for b in state.recently_balked
            if now - b.balk_time < config.VISUAL_BALK_DURATION
        ]

    # ------------------------------------------------------------------
    # Helpers shared by the subsystems
    # ------------------------------------------------------------------

    def emit(self, event_type: EventType, entity_id: int, time: float):
        self.state.events.append(SimulationEvent(self._next_event_id, event_type, entity_id, time))
        self._next_event_id += 1

    def clock_hour(self, time: float) -> float:
        """Wall-clock hour (possibly fractional) of a simulation time."""
        return self.config.open_hour + time / 60.0

    def hour_index(self, time: float) -> int:
        """Index into the hourly schedules for a simulation time."""
        return int(math.floor(self.clock_hour(time))) % config.HOURS_PER_DAY

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_state(self) -> SimulationState:
        """Deep copy of the state; the completed log is shared, not copied."""
        memo = {id(self.state.completed): self.state.completed}
        return copy.deepcopy(self.state, memo)

    @property
    def events(self) -> List[SimulationEvent]:
        """Events emitted during the last tick."""
        return list(self.state.events)

    @property
    def completed_customers(self) -> CompletedCustomerLog:
        return self.state.completed

    def is_day_complete(self) -> bool:
        """True once nobody is waiting, orbiting or in service and no more
        arrivals will come (closed, or trace exhausted in trace mode)."""
        state = self.state
        if state.queue or state.orbit:
            return False
        for server in state.servers:
            if server.queue or server.active_batch:
                return False
        if self.config.is_trace_driven and self.trace.exhausted:
            return True
        return state.is_closed

    def theoretical_metrics(self) -> TheoreticalMetrics:
        """Reference metrics at the current arrival rate and headcount."""
        now = self.state.current_time
        return self.theory(
            self.config,
            self.arrivals.current_lambda(now),
            self.staffing.target_count(now),
        )
