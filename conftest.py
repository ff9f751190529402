"""
Shared pytest fixtures. Lives at the repository root so `import config`
resolves the same way it does for the scripts.
"""

import pytest

from queue_node.engine import SimulationEngine
from queue_node.entities import DistributionType, QueueModel
from queue_node.settings import DistributionSpec, SimulationConfig

DETERMINISTIC = DistributionSpec(DistributionType.DETERMINISTIC)


@pytest.fixture
def base_config():
    """Small multi-server scenario with Poisson streams."""
    return SimulationConfig(
        model=QueueModel.MMS,
        arrival_rate=30.0,
        avg_service_time=5.0,
        server_count=3,
        open_hour=9,
        close_hour=17,
    )


@pytest.fixture
def deterministic_config():
    """One arrival per minute, fixed service times, single server."""
    return SimulationConfig(
        model=QueueModel.MM1,
        arrival_rate=60.0,
        avg_service_time=10.0,
        server_count=1,
        arrival=DETERMINISTIC,
        service=DETERMINISTIC,
    )


@pytest.fixture
def idle_config():
    """No arrivals at all; customers are injected by the test."""
    return SimulationConfig(
        model=QueueModel.MMS,
        arrival_rate=0.0,
        avg_service_time=10.0,
        server_count=1,
        service=DETERMINISTIC,
    )


@pytest.fixture
def make_engine():
    """Factory for seeded engines."""
    def _make(sim_config, seed=42):
        return SimulationEngine(sim_config, seed=seed)
    return _make


def _run_ticks(engine, count, delta=0.5, check=None):
    for _ in range(count):
        engine.tick(delta)
        if check is not None:
            check(engine)


@pytest.fixture
def run_ticks():
    """Tick an engine `count` times, calling check(engine) after each tick."""
    return _run_ticks
