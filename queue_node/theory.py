"""
Closed-form and approximate queueing formulas used as the reference
comparison for simulated output.

Rates are per HOUR and the returned waiting times are in HOURS, except
calculate_ewt which works in minutes like the engine.
"""

import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

import config
from queue_node.entities import DistributionType, QueueModel
from queue_node.settings import SimulationConfig


@dataclass(frozen=True)
class TheoreticalMetrics:
    rho: float
    p0: float
    lq: float
    l: float
    wq: float
    w: float
    is_stable: bool
    is_approximate: bool = False
    approx_note: Optional[str] = None
    heavy_traffic_lq: Optional[float] = None
    heavy_traffic_wq: Optional[float] = None
    lambda_eff: Optional[float] = None


UNSTABLE = dict(p0=0.0, lq=math.inf, l=math.inf, wq=math.inf, w=math.inf, is_stable=False)


def _poisson_terms(r: float, n: int) -> List[float]:
    """r**i / i! for i = 0..n, built iteratively to avoid overflow."""
    terms = [1.0]
    for i in range(1, n + 1):
        terms.append(terms[-1] * r / i)
    return terms


def squared_cv(kind: DistributionType, k: int = 2) -> float:
    """Squared coefficient of variation of a duration distribution."""
    if kind == DistributionType.DETERMINISTIC:
        return 0.0
    if kind == DistributionType.UNIFORM:
        return 1.0 / 3.0
    if kind == DistributionType.ERLANG:
        return 1.0 / max(1, k)
    return 1.0


def calculate_ewt(
    queue_length: int,
    active_servers: int,
    avg_service_time: float,
    avg_efficiency: float = 1.0,
) -> float:
    """Estimated wait for a new arrival: (Lq + 1) / (s · μ_eff).

    Args:
        queue_length: Customers already waiting
        active_servers: Servers working the line
        avg_service_time: Mean service time (minutes)
        avg_efficiency: Average efficiency multiplier

    Returns:
        Estimated wait in minutes
    """
    if active_servers <= 0 or avg_service_time <= 0 or avg_efficiency <= 0:
        return config.NO_SERVER_WAIT_ESTIMATE
    system_rate = active_servers * avg_efficiency / avg_service_time
    return (queue_length + 1) / system_rate


def erlang_c(r: float, s: int) -> float:
    """Probability that an arrival has to wait in M/M/s."""
    if s <= r:
        return 1.0
    terms = _poisson_terms(r, s)
    tail = terms[s] * s / (s - r)
    return tail / (sum(terms[:s]) + tail)


def calculate_required_servers(
    arrival_rate: float,
    service_rate: float,
    target_minutes: float,
    target_percent: float,
    max_servers: int = 100,
) -> int:
    """Smallest s with P(wait <= target) >= target_percent (inverse Erlang-C).

    Args:
        arrival_rate: λ per hour
        service_rate: μ per hour
        target_minutes: Service-level target wait
        target_percent: Required fraction in [0, 1]
        max_servers: Search cap

    Returns:
        Required number of servers
    """
    r = arrival_rate / service_rate
    target_hours = target_minutes / 60.0
    s = int(math.floor(r)) + 1
    while s <= max_servers:
        p_wait = erlang_c(r, s)
        service_level = 1 - p_wait * math.exp(-(s * service_rate - arrival_rate) * target_hours)
        if service_level >= target_percent:
            return s
        s += 1
    return max_servers


def calculate_theoretical_metrics(
    arrival_rate: float,
    service_rate: float,
    servers: int,
    model: QueueModel = QueueModel.MMS,
    capacity: float = math.inf,
    population_size: float = math.inf,
    arrival_kind: DistributionType = DistributionType.POISSON,
    arrival_k: int = 2,
    service_kind: DistributionType = DistributionType.POISSON,
    service_k: int = 2,
    avg_efficiency: float = 1.0,
    mtbf: Optional[float] = None,
    mttr: Optional[float] = None,
    custom_cs2: Optional[float] = None,
) -> TheoreticalMetrics:
    """Steady-state metrics for the configured model.

    M/M/s uses Erlang-C, M/M/s/K and M/M/s//N the exact birth-death
    probabilities, M/G/inf Palm's theorem. Non-Poisson inputs get the
    Allen-Cunneen correction. Breakdowns scale μ by the availability
    MTBF / (MTBF + MTTR).
    """
    if DistributionType.TRACE in (arrival_kind, service_kind):
        return TheoreticalMetrics(
            rho=0.0, p0=0.0, lq=0.0, l=0.0, wq=0.0, w=0.0, is_stable=True,
            is_approximate=True,
            approx_note="Trace data - analytical model disabled",
        )

    effective_mu = service_rate * avg_efficiency
    if mtbf is not None and mtbf > 0:
        effective_mu *= mtbf / (mtbf + (mttr or 0.0))
    if effective_mu <= 0:
        return TheoreticalMetrics(rho=math.inf, **UNSTABLE)

    r = arrival_rate / effective_mu
    if model == QueueModel.MM1:
        s = 1
    elif model == QueueModel.MMINF:
        s = config.INFINITE_SERVER_CAP
    else:
        s = max(1, int(servers))
    rho = r / s

    ca2 = squared_cv(arrival_kind, arrival_k)
    cs2 = custom_cs2 if custom_cs2 is not None else squared_cv(service_kind, service_k)
    poisson_arrival = arrival_kind == DistributionType.POISSON
    if custom_cs2 is None:
        poisson_service = service_kind == DistributionType.POISSON
    else:
        poisson_service = abs(custom_cs2 - 1) < 0.01
    is_ggs = not poisson_arrival or not poisson_service
    variability = (ca2 + cs2) / 2

    if model == QueueModel.MMINF:
        l = r
        return TheoreticalMetrics(
            rho=0.0, p0=math.exp(-l), lq=0.0, l=l, wq=0.0, w=1 / effective_mu,
            is_stable=True,
            is_approximate=not poisson_arrival,
            approx_note=(
                "Exact result (Palm's theorem)" if poisson_arrival
                else "G/G/inf approximation (L = λ/μ remains exact)"
            ),
        )

    if model == QueueModel.MMS_N_POP:
        return _finite_population(arrival_rate, effective_mu, s, int(population_size), is_ggs)

    if model == QueueModel.MMSK:
        return _finite_capacity(arrival_rate, effective_mu, s, int(capacity), is_ggs, variability)

    if rho >= 1:
        return TheoreticalMetrics(rho=rho, **UNSTABLE)

    terms = _poisson_terms(r, s)
    p0 = 1 / (sum(terms[:s]) + terms[s] / (1 - rho))
    lq = p0 * terms[s] * rho / (1 - rho) ** 2
    if is_ggs:
        lq *= variability

    wq = lq / arrival_rate if arrival_rate > 0 else 0.0
    w = wq + 1 / effective_mu

    is_mg1 = s == 1 and poisson_arrival and not poisson_service
    really_approx = is_ggs and not is_mg1
    breakdowns = mtbf is not None
    if is_mg1:
        note = "Exact (Pollaczek-Khinchine formula)"
    elif really_approx:
        note = "G/G/s Allen-Cunneen approximation"
    elif breakdowns:
        note = "Adjusted for availability (effective service rate)"
    elif custom_cs2 is not None:
        note = "Variable workload: compound distribution model"
    else:
        note = None

    heavy_lq = rho ** math.sqrt(2 * (s + 1)) / (1 - rho) * variability
    heavy_wq = heavy_lq / arrival_rate if arrival_rate > 0 else 0.0

    return TheoreticalMetrics(
        rho=rho, p0=p0, lq=lq, l=lq + r, wq=wq, w=w, is_stable=True,
        is_approximate=really_approx or breakdowns or custom_cs2 is not None,
        approx_note=note,
        heavy_traffic_lq=heavy_lq,
        heavy_traffic_wq=heavy_wq,
    )


def _finite_population(
    per_caller_rate: float, mu: float, s: int, population: int, is_ggs: bool
) -> TheoreticalMetrics:
    """Machine-repair model M/M/s//N."""
    ratio = per_caller_rate / mu
    weights = np.ones(population + 1)
    for n in range(1, population + 1):
        weights[n] = weights[n - 1] * (population - n + 1) * ratio / min(n, s)
    probs = weights / weights.sum()
    n_values = np.arange(population + 1)

    l = float(np.dot(n_values, probs))
    lq = float(np.dot(np.maximum(n_values - s, 0), probs))
    lambda_eff = per_caller_rate * (population - l)
    w = l / lambda_eff if lambda_eff > 0 else 0.0
    wq = lq / lambda_eff if lambda_eff > 0 else 0.0

    return TheoreticalMetrics(
        rho=lambda_eff / (s * mu), p0=float(probs[0]), lq=lq, l=l, wq=wq, w=w,
        is_stable=True, lambda_eff=lambda_eff,
        is_approximate=is_ggs,
        approx_note="M/M/s//N formulas (G/G inputs ignored)" if is_ggs else None,
    )


def _finite_capacity(
    arrival_rate: float, mu: float, s: int, capacity: int, is_ggs: bool, variability: float
) -> TheoreticalMetrics:
    """M/M/s/K with blocking."""
    s = max(1, min(s, capacity))
    r = arrival_rate / mu
    rho = r / s
    terms = _poisson_terms(r, s)

    p0_inv = sum(terms) + sum(terms[s] * rho ** (n - s) for n in range(s + 1, capacity + 1))
    p0 = 1 / p0_inv
    p_block = terms[s] * rho ** (capacity - s) * p0
    lambda_eff = arrival_rate * (1 - p_block)

    if math.isclose(rho, 1.0):
        lq = p0 * terms[s] / 2 * (capacity - s) * (capacity - s + 1)
    else:
        lq = (p0 * terms[s] * rho / (1 - rho) ** 2) * (
            1 - rho ** (capacity - s + 1) - (capacity - s + 1) * rho ** (capacity - s) * (1 - rho)
        )
    if is_ggs:
        lq *= variability

    wq = lq / lambda_eff if lambda_eff > 0 else 0.0
    w = wq + 1 / mu
    return TheoreticalMetrics(
        rho=rho, p0=p0, lq=lq, l=lambda_eff * w, wq=wq, w=w, is_stable=True,
        lambda_eff=lambda_eff,
        is_approximate=is_ggs,
        approx_note="G/G/s/K heuristic approximation" if is_ggs else None,
    )


def workload_moments(sim_config: SimulationConfig):
    """Mean and squared CV of the total (multi-item) service time.

    Returns:
        (mean_minutes, cs2) or (avg_service_time, None) without variable workload
    """
    workload = sim_config.workload
    mean_s = sim_config.avg_service_time
    if workload is None:
        return mean_s, None

    mean_n = (workload.min_items + workload.max_items) / 2
    var_n = ((workload.max_items - workload.min_items + 1) ** 2 - 1) / 12
    var_s = mean_s * mean_s * squared_cv(sim_config.service.kind, sim_config.service.k)

    mean_t = mean_n * mean_s
    var_t = mean_n * var_s + mean_s * mean_s * var_n
    cs2 = var_t / (mean_t * mean_t) if mean_t > 0 else None
    return mean_t, cs2


def reference_metrics(sim_config: SimulationConfig, arrival_rate: float, servers: int) -> TheoreticalMetrics:
    """Theoretical metrics for a configuration at the current λ and headcount.

    Args:
        sim_config: Engine configuration
        arrival_rate: Current λ (per hour)
        servers: Current scheduled headcount

    Returns:
        TheoreticalMetrics
    """
    mean_service, cs2 = workload_moments(sim_config)
    mu = 60.0 / mean_service if mean_service > 0 else 0.0
    breakdowns = sim_config.breakdowns
    return calculate_theoretical_metrics(
        arrival_rate,
        mu,
        servers,
        model=sim_config.model,
        capacity=sim_config.capacity,
        population_size=sim_config.population_size,
        arrival_kind=sim_config.arrival.kind,
        arrival_k=sim_config.arrival.k,
        service_kind=sim_config.service.kind,
        service_k=sim_config.service.k,
        avg_efficiency=sim_config.average_efficiency,
        mtbf=breakdowns.mtbf if breakdowns else None,
        mttr=breakdowns.mttr if breakdowns else None,
        custom_cs2=cs2,
    )
