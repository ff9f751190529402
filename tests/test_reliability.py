"""
Tests for breakdowns, repairs and panic mode.
"""

import pytest

from queue_node.entities import ServerState
from queue_node.event_log import EventType
from queue_node.settings import BreakdownConfig, PanicConfig


def busy_engine(idle_config, make_engine, **features):
    """Single server already serving one 10 minute customer from t=0."""
    engine = make_engine(idle_config.with_features(**features))
    engine.arrivals.admit(0.0)
    engine.routing.assign_servers()
    return engine


def test_breakdown_pauses_service(idle_config, make_engine):
    """Preemptive resume: the batch finish moves back by the repair time."""
    engine = busy_engine(idle_config, make_engine, breakdowns=BreakdownConfig(mtbf=60.0, mttr=5.0))
    server = engine.state.servers[0]
    customer = engine.state.arena[server.active_batch[0]]
    assert customer.finish_time == 10.0

    server.next_breakdown_time = 1.0
    engine.reliability.handle_breakdowns(1.0)

    repair_duration = server.repair_time - 1.0
    assert server.state == ServerState.OFFLINE
    assert customer.finish_time == pytest.approx(10.0 + repair_duration)
    assert server.next_breakdown_time >= server.repair_time
    assert [e.event_type for e in engine.state.events] == [EventType.BREAKDOWN]
    assert engine.state.occupancy() == 1, "The paused customer is still in the system"

    engine.reliability.handle_breakdowns(server.repair_time)
    assert server.state == ServerState.BUSY
    assert engine.state.events[-1].event_type == EventType.REPAIR
    assert engine.state.events[-1].entity_id == server.server_id


def test_idle_server_repairs_to_idle(idle_config, make_engine):
    engine = make_engine(idle_config.with_features(breakdowns=BreakdownConfig(mtbf=60.0, mttr=5.0)))
    server = engine.state.servers[0]
    server.next_breakdown_time = 0.5
    engine.reliability.handle_breakdowns(0.5)
    assert server.state == ServerState.OFFLINE

    engine.reliability.handle_breakdowns(server.repair_time + 0.1)
    assert server.state == ServerState.IDLE
    assert [seg.state for seg in server.timeline] == [
        ServerState.IDLE, ServerState.OFFLINE, ServerState.IDLE,
    ]


def test_repair_completes_after_feature_disabled(idle_config, make_engine):
    sim_config = idle_config.with_features(breakdowns=BreakdownConfig(mtbf=60.0, mttr=5.0))
    engine = make_engine(sim_config)
    server = engine.state.servers[0]
    server.next_breakdown_time = 0.5
    engine.reliability.handle_breakdowns(0.5)

    engine.update_config(sim_config.with_features(breakdowns=None))
    engine.reliability.handle_breakdowns(server.repair_time)
    assert server.state == ServerState.IDLE


def test_breakdown_scheduled_lazily(idle_config, make_engine):
    """Switching breakdowns on mid-run schedules a first failure."""
    engine = make_engine(idle_config)
    server = engine.state.servers[0]
    assert server.next_breakdown_time is None

    engine.update_config(idle_config.with_features(breakdowns=BreakdownConfig(mtbf=30.0, mttr=5.0)))
    engine.reliability.handle_breakdowns(2.0)
    assert server.next_breakdown_time is not None
    assert server.next_breakdown_time >= 2.0
    assert server.state == ServerState.IDLE


def test_breakdowns_during_a_run(base_config, make_engine, run_ticks):
    engine = make_engine(base_config.with_features(breakdowns=BreakdownConfig(mtbf=10.0, mttr=2.0)))
    seen = {EventType.BREAKDOWN: 0, EventType.REPAIR: 0}

    def check(eng):
        for event in eng.events:
            if event.event_type in seen:
                seen[event.event_type] += 1
        for server in eng.state.servers:
            if server.state == ServerState.OFFLINE:
                assert server.repair_time is not None
        eng.state.verify_ownership()

    run_ticks(engine, 240, check=check)
    assert seen[EventType.BREAKDOWN] > 0
    assert seen[EventType.REPAIR] > 0


def test_panic_has_no_hysteresis(idle_config, make_engine):
    engine = make_engine(idle_config.with_features(panic=PanicConfig(threshold=2, efficiency_multiplier=1.5)))
    engine.arrivals.admit(0.0)
    engine.arrivals.admit(0.0)
    engine.reliability.update_panic()
    assert engine.state.is_panic

    engine.routing.assign_servers()
    engine.reliability.update_panic()
    assert not engine.state.is_panic, "One waiting customer is below the threshold"


def test_panic_off_without_block(idle_config, make_engine):
    engine = make_engine(idle_config)
    for _ in range(20):
        engine.arrivals.admit(0.0)
    engine.reliability.update_panic()
    assert not engine.state.is_panic
