"""
Metrics Tracking for the Resource Allocation Graph Simulator.

Tracks per-tick samples and counters throughout a simulation run.
"""

from dataclasses import dataclass, field
from typing import List, Dict
import statistics

import numpy as np

from models.allocation_store import AllocationStore


@dataclass
class SimulationMetrics:
    """
    Accumulated metrics for a single simulation run.

    Tracks:
    1. Deadlock Occurrence Frequency: Ticks on which detection reported a deadlock
    2. Resource Utilization %: (allocated units / total units) x 100 per tick
    3. Process Waiting Time: Ticks each process spent waiting
    4. Risk: Score sampled each tick
    5. Recovery actions: Terminations and preemptions applied
    """
    deadlock_count: int = 0
    total_steps: int = 0
    terminations: int = 0
    preemptions: int = 0
    rejected_operations: int = 0

    # Per-tick samples
    utilization_samples: List[float] = field(default_factory=list)
    risk_samples: List[float] = field(default_factory=list)

    # Per-resource utilization tracking
    resource_utilization_samples: Dict[str, List[float]] = field(default_factory=dict)

    # Per-process tracking
    process_waiting_times: Dict[str, int] = field(default_factory=dict)

    def record_step(self, step: int, store: AllocationStore) -> None:
        """
        Record utilization and waiting samples for one tick.

        Args:
            step: Current step number
            store: Allocation state after the tick's mutations
        """
        self.total_steps = step + 1

        if store.num_resources:
            total = store.total_vector
            allocated = total - store.available_vector
            if total.sum() > 0:
                self.utilization_samples.append(float(allocated.sum() / total.sum() * 100))
            per_resource = np.divide(allocated, total) * 100
            for j, rid in enumerate(store.resources):
                self.resource_utilization_samples.setdefault(rid, []).append(float(per_resource[j]))

        for pid, process in store.processes.items():
            self.process_waiting_times.setdefault(pid, 0)
            if process.is_waiting():
                self.process_waiting_times[pid] += 1

    def record_deadlock(self) -> None:
        """Record a deadlock occurrence."""
        self.deadlock_count += 1

    def record_risk(self, score: float) -> None:
        self.risk_samples.append(score)

    def record_recovery(self, message: str) -> None:
        """Count a recovery action from its description."""
        if "Terminated" in message:
            self.terminations += 1
        elif "Preempted" in message:
            self.preemptions += 1

    def record_rejection(self) -> None:
        self.rejected_operations += 1

    def get_avg_utilization(self) -> float:
        """Calculate average resource utilization."""
        if not self.utilization_samples:
            return 0.0
        return statistics.mean(self.utilization_samples)

    def get_resource_utilization(self, resource_id: str) -> float:
        """
        Calculate average utilization for a specific resource.

        Args:
            resource_id: Resource identifier

        Returns:
            Average utilization percentage for this resource
        """
        samples = self.resource_utilization_samples.get(resource_id)
        if not samples:
            return 0.0
        return statistics.mean(samples)

    def get_avg_waiting_time(self) -> float:
        """Average ticks spent waiting per process seen during the run."""
        if not self.process_waiting_times:
            return 0.0
        return statistics.mean(self.process_waiting_times.values())

    def get_avg_risk(self) -> float:
        if not self.risk_samples:
            return 0.0
        return statistics.mean(self.risk_samples)

    def get_peak_risk(self) -> float:
        return max(self.risk_samples, default=0.0)

    def get_deadlock_frequency(self) -> float:
        """Get deadlock frequency (deadlocked ticks / total steps)."""
        if self.total_steps == 0:
            return 0.0
        return self.deadlock_count / self.total_steps


def format_metrics_report(metrics: SimulationMetrics, stop_reason: str = None) -> str:
    """
    Format metrics for display at end of simulation.

    Args:
        metrics: SimulationMetrics instance with collected data
        stop_reason: Reason simulation stopped

    Returns:
        Formatted metrics report string
    """
    lines = []
    lines.append("\n" + "="*60)
    lines.append("SIMULATION METRICS")
    lines.append("="*60)

    if stop_reason:
        lines.append(f"Stop Reason: {stop_reason}")
        lines.append("")

    lines.append(f"Total Steps: {metrics.total_steps}")
    lines.append(f"Deadlocked Ticks: {metrics.deadlock_count}")
    lines.append(f"Terminations: {metrics.terminations}")
    lines.append(f"Preemptions: {metrics.preemptions}")
    lines.append(f"Rejected Operations: {metrics.rejected_operations}")
    lines.append(f"Average Resource Utilization: {metrics.get_avg_utilization():.2f}%")
    lines.append(f"Average Waiting Time: {metrics.get_avg_waiting_time():.2f} steps/process")
    lines.append(f"Average Risk: {metrics.get_avg_risk():.2f} (peak {metrics.get_peak_risk():.2f})")

    if metrics.resource_utilization_samples:
        lines.append("")
        lines.append("PER-RESOURCE UTILIZATION:")
        lines.append("-" * 60)
        for resource_id in metrics.resource_utilization_samples:
            util = metrics.get_resource_utilization(resource_id)
            lines.append(f"  {resource_id}: {util:.2f}% average")

    lines.append("="*60)
    return "\n".join(lines)
