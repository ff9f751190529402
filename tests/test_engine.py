"""
End-to-end tests of the tick loop: conservation, ownership, state
copies, live reconfiguration and queueing-theory sanity checks.
"""

import pytest

import config
from queue_node.engine import SimulationEngine
from queue_node.entities import QueueModel, QueueTopology, ServerSelectionStrategy
from queue_node.runner import run_day
from queue_node.settings import (
    BatchServiceConfig,
    BreakdownConfig,
    BulkArrivalConfig,
    EfficiencyMixConfig,
    ImpatienceConfig,
    PanicConfig,
    RetrialConfig,
    SimulationConfig,
    SkillRoutingConfig,
    WorkloadConfig,
)

FEATURE_SCENARIOS = {
    "plain": dict(),
    "impatience": dict(impatience=ImpatienceConfig(balk_threshold=4, avg_patience_time=3.0)),
    "retrial": dict(
        impatience=ImpatienceConfig(balk_threshold=3, avg_patience_time=3.0),
        retrial=RetrialConfig(avg_retrial_delay=1.5),
    ),
    "dedicated": dict(
        topology=QueueTopology.DEDICATED, jockeying=True,
        impatience=ImpatienceConfig(balk_threshold=4, avg_patience_time=5.0),
    ),
    "breakdowns": dict(
        breakdowns=BreakdownConfig(mtbf=15.0, mttr=3.0),
        panic=PanicConfig(threshold=4, efficiency_multiplier=1.5),
    ),
    "skills": dict(
        skill_routing=SkillRoutingConfig(),
        efficiency_mix=EfficiencyMixConfig(seniority_ratio=0.3),
        server_selection=ServerSelectionStrategy.EFFICIENCY,
        vip_probability=0.2,
    ),
    "bulk_batch": dict(
        bulk_arrivals=BulkArrivalConfig(min_group_size=1, max_group_size=3),
        batch_service=BatchServiceConfig(max_batch_size=3),
        workload=WorkloadConfig(min_items=1, max_items=2),
    ),
}


def in_system(state) -> int:
    return state.occupancy() + len(state.orbit)


@pytest.mark.parametrize("scenario", sorted(FEATURE_SCENARIOS))
def test_customers_conserved(base_config, make_engine, run_ticks, scenario):
    """Every distinct arrival is served, lost or still somewhere in the node."""
    sim_config = base_config.with_features(arrival_rate=50.0, **FEATURE_SCENARIOS[scenario])
    engine = make_engine(sim_config)

    def check(eng):
        state = eng.state
        eng.state.verify_ownership()
        accounted = state.customers_served + state.customers_impatient + in_system(state)
        assert accounted == state.customers_arrivals - state.customers_retried, (
            f"{scenario}: conservation broken at t={state.current_time}"
        )
        assert len(state.arena) == in_system(state), "Arena holds only customers in the node"

    run_ticks(engine, 300, check=check)
    assert engine.state.customers_arrivals > 0


def test_get_state_is_a_copy(base_config, make_engine, run_ticks):
    engine = make_engine(base_config)
    run_ticks(engine, 40)

    snapshot = engine.get_state()
    snapshot.queue.append(12345)
    snapshot.servers[0].efficiency = 99.0

    assert 12345 not in engine.state.queue
    assert engine.state.servers[0].efficiency != 99.0
    assert snapshot.completed is engine.state.completed, "Completed log is shared"


def test_update_config_headcount_on_next_tick(base_config, make_engine):
    """A new server count is staffed on the next tick, without a reset."""
    engine = make_engine(base_config)
    engine.update_config(base_config.with_features(server_count=5))
    assert len(engine.state.servers) == 3

    engine.tick(0.5)
    assert [s.server_id for s in engine.state.servers] == [0, 1, 2, 3, 4]


def test_reset_rebuilds_from_latest_config(base_config, make_engine, run_ticks):
    engine = make_engine(base_config)
    run_ticks(engine, 10)
    engine.update_config(base_config.with_features(server_count=2))

    engine.reset()
    assert len(engine.state.servers) == 2
    assert engine.state.current_time == 0.0
    assert engine.state.customers_arrivals == 0


def test_update_server_skills_unknown_id(base_config, make_engine):
    engine = make_engine(base_config)
    assert engine.update_server_skills(0, [])
    assert not engine.update_server_skills(42, [])


def test_events_cleared_every_tick(idle_config, make_engine):
    engine = make_engine(idle_config.with_features(vip_probability=1.0))
    engine.arrivals.admit(0.0)
    assert engine.events
    engine.tick(0.5)
    assert engine.events == []


def test_reset_is_reproducible(base_config):
    first = SimulationEngine(base_config, seed=7)
    second = SimulationEngine(base_config, seed=7)
    for _ in range(200):
        first.tick(0.5)
        second.tick(0.5)
    assert first.state.customers_served == second.state.customers_served
    assert first.state.stats_wq.mean == second.state.stats_wq.mean


def test_unstable_queue_grows(make_engine, run_ticks):
    """M/M/1 at ρ = 2.5 builds an ever longer line."""
    engine = make_engine(SimulationConfig(
        model=QueueModel.MM1, arrival_rate=10.0, avg_service_time=15.0,
        server_count=1, open_hour=0, close_hour=24,
    ))
    run_ticks(engine, 960)
    assert not engine.theoretical_metrics().is_stable
    assert len(engine.state.queue) > 15


def test_day_not_complete_while_open(base_config, make_engine, run_ticks):
    engine = make_engine(base_config)
    run_ticks(engine, 10)
    assert not engine.is_day_complete()


def test_littles_law_over_a_day():
    sim_config = SimulationConfig(
        model=QueueModel.MMS, arrival_rate=40.0, avg_service_time=5.0,
        server_count=4, open_hour=9, close_hour=17,
    )
    result = run_day(sim_config, seed=config.RANDOM_SEED_BASE, tick_minutes=0.5)
    state = result.state

    assert result.day_complete
    elapsed = state.current_time
    l_obs = state.integral_l / elapsed
    lambda_eff = state.customers_served / elapsed
    ratio = l_obs / (lambda_eff * state.stats_w.mean)
    assert abs(ratio - 1.0) < config.LITTLES_LAW_TOLERANCE, f"L/(λW) = {ratio:.3f}"
