"""
Tests for online accumulators and the time-series snapshot.
"""

import pytest

import config
from queue_node.entities import QueueModel
from queue_node.settings import SimulationConfig
from queue_node.statistics import StatisticalAccumulator


def test_accumulator_mean_and_variance():
    acc = StatisticalAccumulator()
    for value in (1.0, 2.0, 3.0, 4.0):
        acc.update(value)

    assert acc.count == 4
    assert acc.mean == 2.5
    assert acc.variance == pytest.approx(5.0 / 3.0)
    assert acc.half_width() == pytest.approx(config.CONFIDENCE_Z * acc.stddev / 2.0)


def test_accumulator_needs_two_samples():
    acc = StatisticalAccumulator()
    assert acc.mean == 0.0
    acc.update(7.0)
    assert acc.mean == 7.0
    assert acc.variance == 0.0
    assert acc.half_width() == 0.0


def test_snapshot_every_five_minutes(base_config, make_engine, run_ticks):
    engine = make_engine(base_config)
    run_ticks(engine, 60)

    history = list(engine.state.history)
    assert len(history) == 6, f"Expected 6 snapshots in 30 minutes, got {len(history)}"
    assert history[-1].time == pytest.approx(0.5)
    assert history[-1].current_servers == 3


def test_history_is_capped(idle_config, make_engine):
    engine = make_engine(idle_config)
    for _ in range(config.MAX_HISTORY_POINTS + 50):
        engine.recorder.record_snapshot()
    assert len(engine.state.history) == config.MAX_HISTORY_POINTS


def test_occupancy_integral(idle_config, make_engine):
    """Two waiting customers for two minutes add 4 customer-minutes."""
    engine = make_engine(idle_config.with_features(server_count=0))
    engine.arrivals.admit(0.0)
    engine.arrivals.admit(0.0)
    for _ in range(4):
        engine.recorder.integrate_occupancy(0.5)
    assert engine.state.integral_l == pytest.approx(4.0)


def test_littles_law_ratio(base_config, make_engine, run_ticks):
    engine = make_engine(base_config)
    run_ticks(engine, 480)
    point = engine.state.history[-1]
    assert point.lambda_w > 0
    assert point.littles_law_ratio == pytest.approx(point.l_obs / point.lambda_w)
    assert 0.5 < point.littles_law_ratio < 1.5


def test_unstable_snapshot_hides_theory(make_engine, run_ticks):
    engine = make_engine(SimulationConfig(
        model=QueueModel.MM1, arrival_rate=10.0, avg_service_time=15.0, server_count=1,
    ))
    run_ticks(engine, 10)
    point = engine.state.history[-1]
    assert not point.is_stable
    assert point.wq_theor == 0.0
    assert point.lq_theor == 0.0


def test_utilization_window(idle_config, make_engine, run_ticks):
    engine = make_engine(idle_config)
    engine.arrivals.admit(0.0)
    run_ticks(engine, 4)
    server = engine.state.servers[0]
    assert list(server.utilization_history) == [1, 1, 1, 1]
    assert server.total_busy_time == pytest.approx(2.0)
