"""
Metrics computation and reporting for simulated days.
Compares simulated output with the reference formulas, checks Little's
Law, and generates JSON reports and plots.
"""

import json
from dataclasses import asdict
from pathlib import Path
from typing import Dict, List

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

import config
from queue_node.entities import ServerState
from queue_node.runner import RunResult

STATE_COLORS = {
    ServerState.IDLE: "#9e9e9e",
    ServerState.BUSY: "#2e7d32",
    ServerState.OFFLINE: "#c62828",
}


class MetricsComputer:
    """Compute performance metrics and generate reports for one run."""

    def __init__(
        self,
        result: RunResult,
        output_dir: str = config.REPORT_DIR,
        run_id: str = "",
    ):
        """Initialize metrics computer.

        Args:
            result: Outcome of a simulated day
            output_dir: Output directory for reports
            run_id: Identifier for this run (defaults to the result's)
        """
        self.result = result
        self.state = result.state
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.run_id = run_id or result.run_id

    def history_dataframe(self) -> pd.DataFrame:
        """Snapshot history as a DataFrame (per-server utilization dropped)."""
        rows = []
        for point in self.result.history:
            row = asdict(point)
            row.pop("server_utilization")
            row["littles_law_ratio"] = point.littles_law_ratio
            rows.append(row)
        return pd.DataFrame(rows)

    def compute_counts(self) -> Dict[str, int]:
        state = self.state
        in_system = state.occupancy() + len(state.orbit)
        return {
            "arrivals": state.customers_arrivals,
            "served": state.customers_served,
            "lost": state.customers_impatient,
            "blocked": state.customers_blocked,
            "balked": state.customers_balked,
            "reneged": state.customers_reneged,
            "retried": state.customers_retried,
            "in_system": in_system,
            "max_queue_length": state.max_queue_length,
        }

    def compute_wait_statistics(self) -> Dict[str, float]:
        """Mean waiting and system times with 95% confidence intervals.

        Returns:
            Dict of minutes
        """
        wq = self.state.stats_wq
        w = self.state.stats_w
        return {
            "mean_wq": wq.mean,
            "wq_ci_half_width": wq.half_width(),
            "variance_wq": wq.variance,
            "mean_w": w.mean,
            "w_ci_half_width": w.half_width(),
            "samples": w.count,
        }

    def compute_littles_law(self) -> Dict[str, float]:
        """Compare time-average occupancy with λ·W.

        Returns:
            Dict with l_obs, lambda_w, ratio and a pass flag
        """
        state = self.state
        elapsed = state.current_time
        if elapsed <= 0:
            return {"l_obs": 0.0, "lambda_w": 0.0, "ratio": 0.0, "holds": False}

        l_obs = state.integral_l / elapsed
        lambda_eff = state.customers_served / elapsed
        lambda_w = lambda_eff * state.stats_w.mean
        ratio = l_obs / lambda_w if lambda_w > 0 else 0.0
        return {
            "l_obs": l_obs,
            "lambda_eff_per_min": lambda_eff,
            "lambda_w": lambda_w,
            "ratio": ratio,
            "holds": abs(ratio - 1.0) <= config.LITTLES_LAW_TOLERANCE,
        }

    def compute_service_level(self) -> Dict[str, float]:
        state = self.state
        sla = (
            100.0 * state.customers_served_within_target / state.customers_served
            if state.customers_served > 0 else 100.0
        )
        loss = (
            100.0 * state.customers_impatient / state.customers_arrivals
            if state.customers_arrivals > 0 else 0.0
        )
        return {"sla_percent": sla, "loss_rate_percent": loss, "sl_target": self.result.config.sl_target}

    def compute_utilization(self) -> Dict[str, float]:
        """Mean utilization over the history plus the final per-server values."""
        now = self.state.current_time
        per_server = {
            str(s.server_id): s.total_busy_time / (now - s.start_time)
            for s in self.state.servers
            if now > s.start_time and not s.is_infinite_slot
        }
        history = [point.utilization for point in self.result.history]
        return {
            "mean_utilization_pct": float(np.mean(history)) if history else 0.0,
            "per_server": per_server,
        }

    def compute_theory_comparison(self) -> Dict:
        """Observed vs reference waiting times (minutes)."""
        theory = self.result.theory
        observed_wq = self.state.stats_wq.mean
        theoretical_wq = theory.wq * 60.0 if theory.is_stable else None
        error_pct = None
        if theoretical_wq:
            error_pct = abs(observed_wq - theoretical_wq) / theoretical_wq * 100
        return {
            "is_stable": theory.is_stable,
            "rho": theory.rho,
            "theoretical_wq": theoretical_wq,
            "theoretical_w": theory.w * 60.0 if theory.is_stable else None,
            "theoretical_lq": theory.lq if theory.is_stable else None,
            "observed_wq": observed_wq,
            "wq_error_pct": error_pct,
            "is_approximate": theory.is_approximate,
            "approx_note": theory.approx_note,
        }

    def generate_report(self) -> Dict:
        """Generate comprehensive metrics report.

        Returns:
            Report dictionary
        """
        result = self.result
        return {
            "run_id": self.run_id,
            "seed": result.seed,
            "model": result.config.model.value,
            "simulated_minutes": result.end_time,
            "ticks": result.ticks,
            "day_complete": result.day_complete,
            "counts": self.compute_counts(),
            "wait_times": self.compute_wait_statistics(),
            "littles_law": self.compute_littles_law(),
            "service_level": self.compute_service_level(),
            "utilization": self.compute_utilization(),
            "theory": self.compute_theory_comparison(),
            "events": result.event_counts,
        }

    def save_report_json(self, report: Dict) -> str:
        """Save report as JSON file.

        Args:
            report: Report dictionary

        Returns:
            Path to saved file
        """
        path = self.output_dir / f"report_{self.run_id}.json"

        def default_serializer(obj):
            if isinstance(obj, np.ndarray):
                return obj.tolist()
            if isinstance(obj, np.bool_):
                return bool(obj)
            if isinstance(obj, (np.integer, np.floating)):
                return float(obj)
            return str(obj)

        with open(path, "w") as f:
            json.dump(report, f, indent=2, default=default_serializer)

        return str(path)

    def plot_history(self) -> str:
        """Plot waiting time, Little's Law and load over the day.

        Returns:
            Path to saved figure, or "" without history
        """
        df = self.history_dataframe()
        if df.empty:
            return ""

        fig, axes = plt.subplots(3, 1, figsize=(12, 10), sharex=True)

        axes[0].plot(df["time"], df["wq"], label="Observed Wq", linewidth=2)
        axes[0].fill_between(df["time"], df["wq_lower"], df["wq_upper"], alpha=0.2, label="95% CI")
        axes[0].plot(df["time"], df["wq_theor"], color="r", linestyle="--", label="Theoretical Wq", linewidth=2)
        axes[0].set_ylabel("Wait (min)")
        axes[0].set_title("Waiting Time")
        axes[0].legend()
        axes[0].grid(True, alpha=0.3)

        axes[1].plot(df["time"], df["l_obs"], label="L observed", linewidth=2)
        axes[1].plot(df["time"], df["lambda_w"], linestyle="--", label="λ·W", linewidth=2)
        axes[1].set_ylabel("Customers")
        axes[1].set_title("Little's Law")
        axes[1].legend()
        axes[1].grid(True, alpha=0.3)

        axes[2].plot(df["time"], df["utilization"], label="Utilization (%)", linewidth=2)
        axes[2].plot(df["time"], df["lq_actual"], label="Queue length", linewidth=2)
        axes[2].set_xlabel("Simulation Time (h)")
        axes[2].set_title("Load")
        axes[2].legend()
        axes[2].grid(True, alpha=0.3)

        path = self.output_dir.parent / "plots" / f"history_{self.run_id}.png"
        path.parent.mkdir(parents=True, exist_ok=True)
        plt.tight_layout()
        plt.savefig(path, dpi=150)
        plt.close(fig)

        return str(path)

    def plot_server_timeline(self) -> str:
        """Gantt chart of each server's IDLE / BUSY / OFFLINE segments.

        Returns:
            Path to saved figure, or "" without servers
        """
        servers = [s for s in self.state.servers if not s.is_infinite_slot]
        if not servers:
            return ""

        now = self.state.current_time
        fig, ax = plt.subplots(figsize=(12, 1 + 0.5 * len(servers)))
        labels: List[str] = []
        for row, server in enumerate(servers):
            for segment in server.timeline:
                end = segment.end if segment.end is not None else now
                ax.broken_barh(
                    [(segment.start, end - segment.start)], (row - 0.4, 0.8),
                    facecolors=STATE_COLORS[segment.state],
                )
            labels.append(f"S{server.server_id} ({server.type_label})")

        ax.set_yticks(range(len(servers)))
        ax.set_yticklabels(labels)
        ax.set_xlabel("Simulation Time (min)")
        ax.set_title("Server Timeline")
        handles = [plt.Rectangle((0, 0), 1, 1, color=c) for c in STATE_COLORS.values()]
        ax.legend(handles, [s.value for s in STATE_COLORS], loc="upper right")
        ax.grid(True, axis="x", alpha=0.3)

        path = self.output_dir.parent / "plots" / f"timeline_{self.run_id}.png"
        path.parent.mkdir(parents=True, exist_ok=True)
        plt.tight_layout()
        plt.savefig(path, dpi=150)
        plt.close(fig)

        return str(path)
