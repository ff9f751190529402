"""
SimPy driver: runs an engine tick by tick inside a simpy Environment,
optionally paced against the wall clock.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import simpy

import config
from queue_node.engine import SimulationEngine
from queue_node.event_log import CompletedCustomerLog, EventCounter
from queue_node.settings import SimulationConfig
from queue_node.state import SimulationState
from queue_node.statistics import Snapshot
from queue_node.theory import TheoreticalMetrics

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Outcome of one simulated day."""
    run_id: str
    seed: Optional[int]
    config: SimulationConfig
    state: SimulationState
    theory: TheoreticalMetrics
    ticks: int
    day_complete: bool
    event_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def history(self) -> List[Snapshot]:
        return list(self.state.history)

    @property
    def completed(self) -> CompletedCustomerLog:
        return self.state.completed

    @property
    def end_time(self) -> float:
        return self.state.current_time


class SimulationRunner:
    """Drives one engine with a SimPy ticking process."""

    def __init__(
        self,
        engine: SimulationEngine,
        tick_minutes: float = config.TICK_MINUTES,
        max_minutes: float = config.MAX_RUN_MINUTES,
        realtime_speed: Optional[float] = None,
    ):
        """Initialize runner.

        Args:
            engine: Engine to drive
            tick_minutes: Simulated minutes per tick
            max_minutes: Horizon after which the run stops regardless
            realtime_speed: Simulated minutes per wall-clock second, or
                None to run as fast as possible
        """
        self.engine = engine
        self.tick_minutes = tick_minutes
        self.max_minutes = max_minutes
        if realtime_speed:
            self.env = simpy.RealtimeEnvironment(factor=1.0 / realtime_speed, strict=False)
        else:
            self.env = simpy.Environment()
        self.event_counter = EventCounter()
        self.ticks = 0
        self.day_complete = False

    def tick_process(self):
        """SimPy process: one engine tick per timeout."""
        while self.env.now + self.tick_minutes <= self.max_minutes:
            yield self.env.timeout(self.tick_minutes)
            self.engine.tick(self.tick_minutes)
            self.event_counter.observe(self.engine.events)
            self.ticks += 1

            if self.engine.is_day_complete():
                self.day_complete = True
                logger.info("Day complete at t=%.1f min after %d ticks", self.env.now, self.ticks)
                return

        logger.info("Horizon of %.1f min reached before the day completed", self.max_minutes)

    def run(self, run_id: str = "default", seed: Optional[int] = None) -> RunResult:
        """Run until the day completes or the horizon is reached.

        Returns:
            RunResult built from a copy of the final state
        """
        process = self.env.process(self.tick_process())
        self.env.run(until=process)

        return RunResult(
            run_id=run_id,
            seed=seed,
            config=self.engine.config,
            state=self.engine.get_state(),
            theory=self.engine.theoretical_metrics(),
            ticks=self.ticks,
            day_complete=self.day_complete,
            event_counts=self.event_counter.as_dict(),
        )


def run_day(
    sim_config: SimulationConfig,
    seed: Optional[int] = None,
    run_id: str = "default",
    tick_minutes: float = config.TICK_MINUTES,
    max_minutes: float = config.MAX_RUN_MINUTES,
    realtime_speed: Optional[float] = None,
) -> RunResult:
    """Simulate one day of a configuration.

    Args:
        sim_config: Scenario to simulate
        seed: Random seed
        run_id: Identifier carried into the result
        tick_minutes: Simulated minutes per tick
        max_minutes: Run horizon
        realtime_speed: Optional wall-clock pacing (sim minutes per second)

    Returns:
        RunResult
    """
    engine = SimulationEngine(sim_config, seed=seed)
    runner = SimulationRunner(engine, tick_minutes, max_minutes, realtime_speed)
    return runner.run(run_id=run_id, seed=seed)


def run_replications(
    sim_config: SimulationConfig,
    num_seeds: int = config.NUM_SEEDS,
    seed_base: int = config.RANDOM_SEED_BASE,
    **kwargs,
) -> List[RunResult]:
    """Run independent replications with consecutive seeds.

    Args:
        sim_config: Scenario to simulate
        num_seeds: Number of replications
        seed_base: Seed of the first replication
        **kwargs: Passed through to run_day

    Returns:
        One RunResult per replication
    """
    results = []
    for run_index in range(num_seeds):
        seed = seed_base + run_index
        logger.info("Replication %d/%d (seed=%d)", run_index + 1, num_seeds, seed)
        results.append(run_day(sim_config, seed=seed, run_id=f"run{run_index}", **kwargs))
    return results
