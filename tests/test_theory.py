"""
Tests for the closed-form reference formulas.
"""

import math

import pytest

import config
from queue_node.entities import DistributionType, QueueModel
from queue_node.settings import BreakdownConfig, SimulationConfig, WorkloadConfig
from queue_node.theory import (
    calculate_ewt,
    calculate_required_servers,
    calculate_theoretical_metrics,
    erlang_c,
    reference_metrics,
    workload_moments,
)


def test_erlang_c_single_server_equals_rho():
    """For one server the waiting probability is the utilization."""
    assert erlang_c(0.5, 1) == pytest.approx(0.5)
    assert erlang_c(3.0, 2) == 1.0, "Overloaded systems always wait"


def test_mm1_closed_form():
    """M/M/1 with λ=10/h, μ=12/h: Lq = ρ²/(1-ρ)."""
    metrics = calculate_theoretical_metrics(10.0, 12.0, 1, model=QueueModel.MM1)
    rho = 10.0 / 12.0
    assert metrics.is_stable
    assert metrics.rho == pytest.approx(rho)
    assert metrics.p0 == pytest.approx(1 - rho)
    assert metrics.lq == pytest.approx(rho ** 2 / (1 - rho))
    assert metrics.wq == pytest.approx(metrics.lq / 10.0)
    assert metrics.w == pytest.approx(metrics.wq + 1 / 12.0)
    assert metrics.l == pytest.approx(metrics.lq + rho)


def test_mm1_unstable():
    """λ=10/h with a 15 minute service time cannot keep up."""
    metrics = calculate_theoretical_metrics(10.0, 4.0, 1, model=QueueModel.MM1)
    assert not metrics.is_stable
    assert math.isinf(metrics.wq)


def test_mms_matches_erlang_c():
    """Wq = C(s, r) / (sμ - λ) for M/M/s."""
    lam, mu, s = 45.0, 12.0, 5
    metrics = calculate_theoretical_metrics(lam, mu, s)
    expected_wq = erlang_c(lam / mu, s) / (s * mu - lam)
    assert metrics.wq == pytest.approx(expected_wq)


def test_md1_is_half_of_mm1():
    """Deterministic service halves the queue (Pollaczek-Khinchine)."""
    mm1 = calculate_theoretical_metrics(10.0, 12.0, 1, model=QueueModel.MM1)
    md1 = calculate_theoretical_metrics(
        10.0, 12.0, 1, model=QueueModel.MM1, service_kind=DistributionType.DETERMINISTIC
    )
    assert md1.lq == pytest.approx(mm1.lq / 2)
    assert "Pollaczek" in md1.approx_note


def test_infinite_servers_palm():
    metrics = calculate_theoretical_metrics(30.0, 12.0, 0, model=QueueModel.MMINF)
    assert metrics.l == pytest.approx(2.5)
    assert metrics.wq == 0.0
    assert metrics.p0 == pytest.approx(math.exp(-2.5))


def test_finite_capacity_blocking():
    """M/M/1/1 at r=1 blocks half of the arrivals."""
    metrics = calculate_theoretical_metrics(10.0, 10.0, 1, model=QueueModel.MMSK, capacity=1)
    assert metrics.p0 == pytest.approx(0.5)
    assert metrics.lambda_eff == pytest.approx(5.0)
    assert metrics.lq == pytest.approx(0.0)


def test_finite_population_single_caller():
    """One caller, one server: the server is busy half the time at λ=μ."""
    metrics = calculate_theoretical_metrics(
        6.0, 6.0, 1, model=QueueModel.MMS_N_POP, population_size=1
    )
    assert metrics.l == pytest.approx(0.5)
    assert metrics.lq == pytest.approx(0.0)
    assert metrics.lambda_eff == pytest.approx(3.0)


def test_breakdowns_reduce_capacity():
    """MTBF = MTTR halves the effective service rate."""
    plain = calculate_theoretical_metrics(5.0, 12.0, 1, model=QueueModel.MM1)
    broken = calculate_theoretical_metrics(5.0, 12.0, 1, model=QueueModel.MM1, mtbf=30.0, mttr=30.0)
    assert broken.rho == pytest.approx(2 * plain.rho)
    assert broken.is_approximate


def test_trace_disables_analysis():
    metrics = calculate_theoretical_metrics(10.0, 12.0, 1, arrival_kind=DistributionType.TRACE)
    assert metrics.is_approximate
    assert metrics.wq == 0.0


def test_calculate_ewt():
    assert calculate_ewt(4, 2, 5.0) == pytest.approx(12.5)
    assert calculate_ewt(4, 0, 5.0) == config.NO_SERVER_WAIT_ESTIMATE


def test_required_servers_meets_target():
    s = calculate_required_servers(45.0, 12.0, target_minutes=0.5, target_percent=0.8)
    assert s > 45.0 / 12.0
    r = 45.0 / 12.0
    service_level = 1 - erlang_c(r, s) * math.exp(-(s * 12.0 - 45.0) * 0.5 / 60)
    assert service_level >= 0.8


def test_workload_moments():
    """Single-item workloads keep the base mean; variable ones grow it."""
    assert workload_moments(SimulationConfig()) == (config.DEFAULT_AVG_SERVICE_TIME, None)

    mean, cs2 = workload_moments(SimulationConfig(workload=WorkloadConfig(1, 1)))
    assert mean == pytest.approx(config.DEFAULT_AVG_SERVICE_TIME)
    assert cs2 == pytest.approx(1.0)

    mean, cs2 = workload_moments(SimulationConfig(avg_service_time=2.0, workload=WorkloadConfig(1, 3)))
    assert mean == pytest.approx(4.0)


def test_reference_metrics_uses_config():
    sim_config = SimulationConfig(
        model=QueueModel.MMS, avg_service_time=5.0,
        breakdowns=BreakdownConfig(mtbf=60.0, mttr=5.0),
    )
    metrics = reference_metrics(sim_config, 45.0, 5)
    direct = calculate_theoretical_metrics(45.0, 12.0, 5, mtbf=60.0, mttr=5.0)
    assert metrics.wq == pytest.approx(direct.wq)
