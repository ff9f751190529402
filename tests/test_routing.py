"""
Tests for line selection, service assignment, batching and jockeying.
"""

from queue_node.entities import (
    DistributionType,
    QueueModel,
    QueueTopology,
    ServerSelectionStrategy,
    ServerState,
    SkillType,
)
from queue_node.settings import (
    BatchServiceConfig,
    DistributionSpec,
    PanicConfig,
    SimulationConfig,
    SkillRoutingConfig,
)
from queue_node.state import Holder


def test_batch_of_four_from_six_leaves_two(idle_config, make_engine):
    """One idle batch server takes four of six waiting customers."""
    engine = make_engine(idle_config.with_features(batch_service=BatchServiceConfig(max_batch_size=4)))
    for _ in range(6):
        engine.arrivals.admit(0.0)

    engine.routing.assign_servers()

    state = engine.state
    server = state.servers[0]
    assert len(state.queue) == 2
    assert len(server.active_batch) == 4
    assert server.state == ServerState.BUSY
    finishes = {state.arena[cid].finish_time for cid in server.active_batch}
    assert len(finishes) == 1, "Batch members share one finish time"
    state.verify_ownership()


def test_single_service_without_batching(idle_config, make_engine):
    engine = make_engine(idle_config)
    for _ in range(3):
        engine.arrivals.admit(0.0)
    engine.routing.assign_servers()
    assert len(engine.state.servers[0].active_batch) == 1
    assert len(engine.state.queue) == 2


def test_dedicated_join_shortest_line(idle_config, make_engine):
    """Each arrival joins the least loaded dedicated line."""
    engine = make_engine(idle_config.with_features(server_count=2, topology=QueueTopology.DEDICATED))
    for _ in range(3):
        engine.arrivals.admit(0.0)

    first, second = engine.state.servers
    assert first.queue == [0, 2]
    assert second.queue == [1]
    assert engine.state.queue == []
    assert engine.state.max_queue_length == 2


def test_no_eligible_server_falls_back_to_common_queue(idle_config, make_engine):
    engine = make_engine(idle_config.with_features(topology=QueueTopology.DEDICATED))
    engine.state.servers[0].should_remove = True
    engine.arrivals.admit(0.0)
    assert engine.state.queue == [0]


def test_jockeying_moves_last_customer(idle_config, make_engine):
    engine = make_engine(idle_config.with_features(
        server_count=2, topology=QueueTopology.DEDICATED, jockeying=True,
    ))
    state = engine.state
    for _ in range(3):
        customer = engine.arrivals.create_customer(0.0)
        state.place(customer.customer_id, (Holder.DEDICATED, 0))

    engine.routing.jockey()

    assert state.servers[0].queue == [0, 1]
    assert state.servers[1].queue == [2]
    state.verify_ownership()


def test_jockeying_reverted_on_skill_mismatch(idle_config, make_engine):
    engine = make_engine(idle_config.with_features(
        server_count=2, topology=QueueTopology.DEDICATED, jockeying=True,
        skill_routing=SkillRoutingConfig(),
    ))
    engine.update_server_skills(1, [SkillType.SALES])
    state = engine.state
    for _ in range(3):
        customer = engine.arrivals.create_customer(0.0)
        customer.required_skill = SkillType.TECH
        state.place(customer.customer_id, (Holder.DEDICATED, 0))

    engine.routing.jockey()

    assert state.servers[0].queue == [0, 1, 2]
    assert state.servers[1].queue == []


def test_skill_first_fit_in_common_queue(idle_config, make_engine):
    """A specialist skips customers it cannot serve."""
    engine = make_engine(idle_config.with_features(skill_routing=SkillRoutingConfig()))
    engine.update_server_skills(0, [SkillType.SALES])
    for skill in (SkillType.TECH, SkillType.SALES):
        customer = engine.arrivals.create_customer(0.0)
        customer.required_skill = skill
        engine.routing.route(customer)

    engine.routing.assign_servers()

    state = engine.state
    assert state.servers[0].active_batch == [1]
    assert state.queue == [0]


def test_efficiency_strategy_orders_fastest_first(idle_config, make_engine):
    engine = make_engine(idle_config.with_features(
        server_count=3, server_selection=ServerSelectionStrategy.EFFICIENCY,
    ))
    for server, efficiency in zip(engine.state.servers, (0.7, 1.5, 1.0)):
        server.efficiency = efficiency

    ordered = engine.routing.order_idle_servers(engine.state.servers)
    assert [s.server_id for s in ordered] == [1, 2, 0]


def test_random_strategy_keeps_every_server(idle_config, make_engine):
    engine = make_engine(idle_config.with_features(server_count=4))
    ordered = engine.routing.order_idle_servers(engine.state.servers)
    assert sorted(s.server_id for s in ordered) == [0, 1, 2, 3]


def test_panic_speeds_up_service(idle_config, make_engine):
    """While panicking the batch duration is divided by the multiplier."""
    engine = make_engine(idle_config.with_features(
        panic=PanicConfig(threshold=2, efficiency_multiplier=2.0),
    ))
    for _ in range(3):
        engine.arrivals.admit(0.0)
    engine.reliability.update_panic()
    assert engine.state.is_panic

    engine.routing.assign_servers()
    served = engine.state.arena[engine.state.servers[0].active_batch[0]]
    assert served.finish_time - served.start_time == 5.0


def test_infinite_servers_never_wait(make_engine, run_ticks):
    sim_config = SimulationConfig(model=QueueModel.MMINF, arrival_rate=60.0, avg_service_time=5.0)
    engine = make_engine(sim_config)

    def check(eng):
        for server in eng.state.servers:
            assert server.is_infinite_slot
            assert len(server.active_batch) == 1
        assert eng.state.queue == []

    run_ticks(engine, 120, check=check)
    assert engine.state.customers_served > 0
    assert engine.state.stats_wq.mean == 0.0
    assert all(row.wait_time == 0.0 for row in engine.completed_customers)


def test_service_never_starts_before_arrival(base_config, make_engine, run_ticks):
    engine = make_engine(base_config.with_features(
        service=DistributionSpec(DistributionType.ERLANG, k=3),
    ))
    run_ticks(engine, 240, delta=0.25)
    rows = list(engine.completed_customers)
    assert rows
    assert all(row.start_time >= row.arrival_time for row in rows)
    assert all(row.finish_time >= row.start_time for row in rows)
