"""
Statistics recorder: online accumulators, Little's Law integration,
utilization bookkeeping and the periodic time-series snapshot.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, Optional

import config
from queue_node.entities import ServerState


@dataclass
class StatisticalAccumulator:
    """Running (count, sum, sum of squares) for online mean/variance."""
    count: int = 0
    total: float = 0.0
    total_sq: float = 0.0

    def update(self, value: float):
        self.count += 1
        self.total += value
        self.total_sq += value * value

    @property
    def mean(self) -> float:
        return self.total / self.count if self.count > 0 else 0.0

    @property
    def variance(self) -> float:
        """Unbiased sample variance, 0 with fewer than two samples."""
        if self.count < 2:
            return 0.0
        n = self.count
        return max(0.0, (self.total_sq - self.total * self.total / n) / (n - 1))

    @property
    def stddev(self) -> float:
        return math.sqrt(self.variance)

    def half_width(self, z: float = config.CONFIDENCE_Z) -> float:
        """Confidence interval half-width of the mean."""
        if self.count < 2:
            return 0.0
        return z * self.stddev / math.sqrt(self.count)


@dataclass(frozen=True)
class Snapshot:
    """One time-series point. Times in minutes except `time` (hours)."""
    time: float
    wq: float
    w: float
    wq_theor: float
    w_theor: float
    lq_theor: float
    wq_approx: Optional[float]
    lq_approx: Optional[float]
    wq_lower: float
    wq_upper: float
    variance_wq: float
    served: int
    lq_actual: int
    l_obs: float
    lambda_w: float
    current_lambda: float
    current_servers: int
    utilization: float  # percent
    sla_percent: float
    loss_rate: float  # percent
    is_stable: bool
    server_utilization: Dict[int, float] = field(default_factory=dict)

    @property
    def littles_law_ratio(self) -> float:
        """L_obs / (λ·W); 1.0 when Little's Law holds."""
        return self.l_obs / self.lambda_w if self.lambda_w > 0 else 0.0


class StatisticsRecorder:
    """Integrates occupancy and produces snapshots for an engine."""

    def __init__(self, engine):
        self.engine = engine
        self.last_snapshot_time = 0.0

    def reset(self):
        self.last_snapshot_time = 0.0

    def integrate_occupancy(self, delta: float):
        """Accumulate ∫N(t)dt over the coming tick."""
        state = self.engine.state
        state.integral_l += state.occupancy() * delta

    def record_wait(self, wait: float):
        state = self.engine.state
        state.total_wait_time += wait
        state.stats_wq.update(wait)

    def record_system_time(self, system_time: float):
        state = self.engine.state
        state.total_system_time += system_time
        state.stats_w.update(system_time)

    def maybe_snapshot(self, now: float) -> Optional[Snapshot]:
        if now >= self.last_snapshot_time + config.SNAPSHOT_INTERVAL:
            self.last_snapshot_time = now
            return self.record_snapshot()
        return None

    def update_utilization(self, delta: float):
        for server in self.engine.state.servers:
            is_busy = 1 if server.state == ServerState.BUSY else 0
            if is_busy:
                server.total_busy_time += delta
            server.utilization_history.append(is_busy)

    def record_snapshot(self) -> Snapshot:
        """Compute and store one history point.

        Returns:
            The snapshot appended to the state's history
        """
        engine = self.engine
        state = engine.state
        now = state.current_time
        metrics = engine.theoretical_metrics()

        avg_wq = state.stats_wq.mean
        avg_w = state.stats_w.mean
        ci = state.stats_wq.half_width()

        elapsed = now if now > 0 else 1.0
        l_obs = state.integral_l / elapsed
        lambda_eff = state.customers_arrivals / elapsed  # per minute
        lambda_w = lambda_eff * avg_w

        server_utilization = {
            s.server_id: s.utilization(now) for s in state.servers if not s.should_remove
        }
        utilization = (
            100.0 * sum(server_utilization.values()) / len(server_utilization)
            if server_utilization else 0.0
        )

        sla_percent = (
            100.0 * state.customers_served_within_target / state.customers_served
            if state.customers_served > 0 else 100.0
        )
        loss_rate = (
            100.0 * state.customers_impatient / state.customers_arrivals
            if state.customers_arrivals > 0 else 0.0
        )

        stable = metrics.is_stable
        point = Snapshot(
            time=now / 60.0,
            wq=avg_wq,
            w=avg_w,
            wq_theor=metrics.wq * 60.0 if stable else 0.0,
            w_theor=metrics.w * 60.0 if stable else 0.0,
            lq_theor=metrics.lq if stable else 0.0,
            wq_approx=(
                metrics.heavy_traffic_wq * 60.0
                if metrics.heavy_traffic_wq is not None else None
            ),
            lq_approx=metrics.heavy_traffic_lq,
            wq_lower=max(0.0, avg_wq - ci),
            wq_upper=avg_wq + ci,
            variance_wq=state.stats_wq.variance,
            served=state.customers_served,
            lq_actual=state.total_queued(),
            l_obs=l_obs,
            lambda_w=lambda_w,
            current_lambda=engine.arrivals.current_lambda(now),
            current_servers=engine.staffing.target_count(now),
            utilization=utilization,
            sla_percent=sla_percent,
            loss_rate=loss_rate,
            is_stable=stable,
            server_utilization=server_utilization,
        )
        state.history.append(point)
        return point
