"""
Main orchestration script for the queue node simulator.
Runs replications of the default scenario and generates reports.
"""

from pathlib import Path
import logging
import sys

# Ensure root directory is in path for config import
root_dir = Path(__file__).parent.parent
sys.path.insert(0, str(root_dir))

import numpy as np
import config
from queue_node.entities import QueueModel
from queue_node.metrics import MetricsComputer
from queue_node.runner import RunResult, run_day
from queue_node.settings import SimulationConfig


def default_scenario() -> SimulationConfig:
    """Base scenario built from the config module defaults."""
    return SimulationConfig(
        model=QueueModel(config.DEFAULT_MODEL),
        arrival_rate=config.DEFAULT_ARRIVAL_RATE,
        avg_service_time=config.DEFAULT_AVG_SERVICE_TIME,
        server_count=config.DEFAULT_SERVER_COUNT,
    )


def run_single_simulation(sim_config: SimulationConfig, run_id: int = 0) -> dict:
    """Run one simulated day and write its outputs.

    Args:
        sim_config: Scenario to simulate
        run_id: Identifier for this run (seed offset)

    Returns:
        Report dictionary
    """
    seed = config.RANDOM_SEED_BASE + run_id

    print(f"[Run {run_id}] Starting simulation...")
    result: RunResult = run_day(sim_config, seed=seed, run_id=f"run{run_id}")
    print(f"[Run {run_id}] Simulation complete at t={result.end_time:.1f} min.")

    result.completed.save_csv(output_dir=config.LOG_DIR, run_id=f"run{run_id}")

    metrics_computer = MetricsComputer(result, output_dir=config.REPORT_DIR)
    report = metrics_computer.generate_report()
    metrics_computer.save_report_json(report)
    metrics_computer.plot_history()
    metrics_computer.plot_server_timeline()

    print(f"[Run {run_id}] Report saved.")

    return report


def run_batch_simulation(num_seeds: int = config.NUM_SEEDS):
    """Run multiple simulations with different seeds.

    Args:
        num_seeds: Number of independent runs
    """
    sim_config = default_scenario()

    print(f"Queue Node Simulation")
    print(f"=" * 50)
    print(f"Configuration:")
    print(f"  Model: {sim_config.model.value}")
    print(f"  Arrival rate: {sim_config.arrival_rate} customers/hour")
    print(f"  Mean service time: {sim_config.avg_service_time} min")
    print(f"  Servers: {sim_config.server_count}")
    print(f"  Opening hours: {sim_config.open_hour}:00 - {sim_config.close_hour}:00")
    print(f"  Number of runs: {num_seeds}")
    print(f"=" * 50)

    all_reports = []

    for run_id in range(num_seeds):
        print(f"\n--- Run {run_id + 1}/{num_seeds} ---")
        report = run_single_simulation(sim_config, run_id)
        all_reports.append(report)

    # Summary statistics
    print(f"\n{'=' * 50}")
    print(f"SUMMARY")
    print(f"{'=' * 50}")

    mean_waits = [r["wait_times"]["mean_wq"] for r in all_reports]
    ratios = [r["littles_law"]["ratio"] for r in all_reports]
    losses = [r["service_level"]["loss_rate_percent"] for r in all_reports]

    print(f"\nMean Wait in Queue (min):")
    print(f"  Mean: {np.mean(mean_waits):.3f}")
    print(f"  Std:  {np.std(mean_waits):.3f}")
    print(f"  Min:  {np.min(mean_waits):.3f}")
    print(f"  Max:  {np.max(mean_waits):.3f}")

    theory = all_reports[0]["theory"]
    if theory["is_stable"]:
        print(f"  Theoretical: {theory['theoretical_wq']:.3f}")
    else:
        print(f"  Theoretical: unstable (rho={theory['rho']:.2f})")

    print(f"\nLittle's Law L / (λW):")
    print(f"  Mean: {np.mean(ratios):.3f}")
    print(f"  Runs within tolerance: {sum(r['littles_law']['holds'] for r in all_reports)} / {num_seeds}")

    print(f"\nLoss Rate (%):")
    print(f"  Mean: {np.mean(losses):.2f}%")

    print(f"\n{'=' * 50}")
    print(f"Outputs:")
    print(f"  Customer logs: {config.LOG_DIR}")
    print(f"  Reports:       {config.REPORT_DIR}")
    print(f"  Plots:         {config.PLOT_DIR}")
    print(f"{'=' * 50}")


def main():
    """Entry point for the simulation."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    run_batch_simulation(num_seeds=config.NUM_SEEDS)


if __name__ == "__main__":
    main()
