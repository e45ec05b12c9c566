#!/usr/bin/env python3
"""
Resource Allocation Graph Deadlock Simulator
Main entry point for the simulation system.

Tick-driven: every tick applies scheduled scenario events and the optional
external feed, grants free units, then runs deadlock detection and risk
assessment against one snapshot and optionally resolves a detected deadlock.
"""

import argparse
import json
import sys
from dataclasses import dataclass, field
from typing import Optional, Dict, List, Tuple

from models.allocation_store import AllocationStore
from models.errors import AllocationError
from models.report import DeadlockReport, RiskReport
from utils.config import SimulatorConfig, ConfigError, load_config, RECOVERY_METHODS
from utils.logger import SimulatorLogger
from utils.process_feed import FeedError, ProcessObserver, ingest_snapshots
from utils.scenario_loader import (
    ScenarioLoadError,
    apply_event,
    describe_event,
    get_scenario_description,
    load_scenario,
)
from algorithms.detection import detect_deadlock, should_run_detection
from algorithms.recovery import VICTIM_STRATEGIES, recover_from_deadlock
from algorithms.risk import assess_risk
from analysis.events import EventLog, SimulationEvent, EventType
from analysis.metrics import SimulationMetrics, format_metrics_report


@dataclass
class TickReport:
    """
    Result of one tick.

    Attributes:
        step: Step the tick ran at
        deadlock: Detection report, None if detection did not run this tick
        risk: Risk report for the same snapshot
        grants: Units granted to waiting processes, by resource
        recovery_actions: Messages from automatic resolution
        rejected: Descriptions of rejected scenario/feed operations
    """
    step: int
    deadlock: Optional[DeadlockReport]
    risk: RiskReport
    grants: Dict[str, List[str]] = field(default_factory=dict)
    recovery_actions: List[str] = field(default_factory=list)
    rejected: List[str] = field(default_factory=list)

    @property
    def deadlocked(self) -> bool:
        return self.deadlock is not None and self.deadlock.detected


class Simulation:
    """
    Cooperative tick driver around one allocation store.

    Pausing takes effect at the next tick boundary; reset() restores the
    initial state and discards the deadlock state.
    """

    def __init__(
        self,
        store: AllocationStore,
        events_by_step: Optional[Dict[int, List[Dict]]] = None,
        config: Optional[SimulatorConfig] = None,
        logger: Optional[SimulatorLogger] = None,
        observer: Optional[ProcessObserver] = None
    ):
        self.config = (config or SimulatorConfig()).validate()
        self.logger = logger or SimulatorLogger(
            verbose=self.config.verbose,
            log_file=self.config.log_file
        )
        self.store = store
        self.events_by_step = events_by_step or {}
        self.observer = observer
        self.event_log = EventLog()
        self.metrics = SimulationMetrics()
        self.paused = False
        self.last_deadlock: Optional[DeadlockReport] = None
        self.last_risk: Optional[RiskReport] = None
        self._initial = store.snapshot()

    @classmethod
    def from_scenario(
        cls,
        scenario_path: str,
        config: Optional[SimulatorConfig] = None,
        logger: Optional[SimulatorLogger] = None,
        observer: Optional[ProcessObserver] = None
    ) -> "Simulation":
        """Load a scenario file and wrap it in a simulation."""
        store, events_by_step = load_scenario(scenario_path)
        return cls(store, events_by_step, config=config, logger=logger, observer=observer)

    @property
    def step(self) -> int:
        return self.store.step

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    def reset(self) -> None:
        """Reinitialize the store from the initial state and discard all results."""
        self.paused = False
        self.store.replace_with(self._initial)
        with self.store.lock:
            self.store.step = 0
        self.last_deadlock = None
        self.last_risk = None
        self.metrics = SimulationMetrics()
        self.event_log.add(SimulationEvent(
            step=0,
            event_type=EventType.RESET,
            message="Simulation reset to initial state"
        ))
        self.logger.log("Simulation reset to initial state")

    def tick(self) -> Optional[TickReport]:
        """
        Run one tick.

        Step Ordering (for deterministic execution):
        1. Apply scheduled events for this step (file order)
        2. Ingest the external process feed, if any
        3. Grant free units to waiting processes in FIFO order (if enabled)
        4. Snapshot; run detection (depending on detect_interval) and risk
        5. If deadlock and a recovery method is configured -> recover

        Returns:
            TickReport, or None if the simulation is paused
        """
        if self.paused:
            return None

        step = self.store.step
        self.logger.log(f"\n{'-'*60}")
        self.logger.log(f"Step {step}")
        self.logger.log(f"{'-'*60}")

        rejected = []

        # Step 1: Scheduled events
        for event in self.events_by_step.get(step, []):
            try:
                description = apply_event(self.store, event)
            except AllocationError as e:
                rejected.append(self._reject(step, describe_event(event), str(e), event))
                continue
            self.logger.log_operation(step, description, True)
            self.event_log.add(SimulationEvent(
                step=step,
                event_type=EventType.OPERATION,
                process_id=event.get('process'),
                resource_id=event.get('resource'),
                message=description
            ))

        # Step 2: External feed
        if self.observer is not None:
            try:
                ingested = ingest_snapshots(self.store, self.observer.observe_processes())
            except (AllocationError, FeedError) as e:
                rejected.append(self._reject(step, "feed ingest", str(e)))
            else:
                self.logger.log_step(step, f"Ingested {len(ingested)} observed processes")
                self.event_log.add(SimulationEvent(
                    step=step,
                    event_type=EventType.INGEST,
                    message=f"{len(ingested)} processes"
                ))

        # Step 3: FIFO grants
        grants = {}
        if self.config.auto_grant:
            grants = self.store.grant_all_waiting()
            for rid, pids in grants.items():
                for pid in pids:
                    self.logger.log_step(step, f"{rid} granted to {pid} (queue order)")
                    self.event_log.add(SimulationEvent(
                        step=step,
                        event_type=EventType.GRANT,
                        process_id=pid,
                        resource_id=rid
                    ))

        # Step 4: Detection and risk over the same snapshot
        snapshot = self.store.snapshot()
        report = None
        if should_run_detection(step, self.config.detect_interval):
            report = detect_deadlock(snapshot)
            self.store.record_detection(report)
            self.last_deadlock = report
        risk = assess_risk(snapshot, self.config.contention_threshold)
        self.last_risk = risk
        self.metrics.record_risk(risk.score)
        self.logger.log_risk(step, risk.score, risk.contention_level, risk.recommended_strategy)
        self.event_log.add(SimulationEvent(
            step=step,
            event_type=EventType.RISK,
            message=f"score={risk.score:.2f} strategy={risk.recommended_strategy}"
        ))

        # Step 5: Deadlock handling
        recovery_actions = []
        if report is not None and report.detected:
            self.logger.log_deadlock(step, report.deadlocked_processes, report.describe())
            self.metrics.record_deadlock()
            self.event_log.add(SimulationEvent(
                step=step,
                event_type=EventType.DEADLOCK,
                message=report.describe()
            ))

            if self.config.recovery_method != "none":
                success, recovery_actions = recover_from_deadlock(
                    self.store,
                    method=self.config.recovery_method,
                    strategy=self.config.victim_strategy
                )
                for action in recovery_actions:
                    self.logger.log_recovery(step, action)
                    if action.startswith("RECOVERY:"):
                        self.metrics.record_recovery(action)
                        self.event_log.add(SimulationEvent(
                            step=step,
                            event_type=EventType.RECOVERY,
                            message=action
                        ))
                if not success:
                    self.logger.log(f"Recovery failed at step {step}", "error")
        elif report is not None:
            self.logger.log(f"  Deadlock check: No deadlock detected", "debug")

        self.metrics.record_step(step, self.store)
        self.logger.log_system_state(step, self.store.display())
        self.store.advance_step()

        return TickReport(
            step=step,
            deadlock=report,
            risk=risk,
            grants=grants,
            recovery_actions=recovery_actions,
            rejected=rejected
        )

    def run(self, steps: Optional[int] = None) -> Tuple[List[TickReport], str]:
        """
        Run ticks until the step budget is spent, the simulation is paused,
        or an unresolved deadlock is found.

        Returns:
            Tuple of (tick reports, stop reason)
        """
        budget = self.config.max_steps if steps is None else steps
        reports = []
        for _ in range(budget):
            if self.paused:
                return reports, "Paused"
            report = self.tick()
            reports.append(report)
            if report.deadlocked and self.config.recovery_method == "none":
                self.logger.log("\nNo recovery method configured - halting simulation")
                return reports, f"Deadlock detected at step {report.step}"
        return reports, f"Completed {budget} steps"

    def _reject(self, step: int, description: str, reason: str, event: Optional[Dict] = None) -> str:
        self.logger.log_operation(step, description, False, reason)
        self.metrics.record_rejection()
        self.event_log.add(SimulationEvent(
            step=step,
            event_type=EventType.REJECTED,
            process_id=(event or {}).get('process'),
            resource_id=(event or {}).get('resource'),
            message=description,
            reason=reason
        ))
        return f"{description}: {reason}"


def run_simulation(
    scenario_path: str,
    config: Optional[SimulatorConfig] = None,
    steps: Optional[int] = None,
    logger: Optional[SimulatorLogger] = None
) -> Tuple[EventLog, SimulationMetrics, str]:
    """
    Run the simulation for a scenario file.

    Args:
        scenario_path: Path to scenario JSON file
        config: Simulator settings
        steps: Number of ticks (defaults to config.max_steps)
        logger: Logger to use (defaults to one built from config)

    Returns:
        Tuple of (EventLog, SimulationMetrics, stop reason)
    """
    config = config or SimulatorConfig()
    logger = logger or SimulatorLogger(verbose=config.verbose, log_file=config.log_file)

    try:
        simulation = Simulation.from_scenario(scenario_path, config=config, logger=logger)
    except ScenarioLoadError as e:
        logger.log(f"Failed to load scenario: {e}", "error")
        return EventLog(), SimulationMetrics(), f"Scenario load failed: {e}"

    logger.log(f"\n{'='*60}")
    logger.log(f"SIMULATION START: recovery={config.recovery_method.upper()}")
    logger.log(f"Scenario: {scenario_path}")
    description = get_scenario_description(scenario_path)
    if description:
        logger.log(f"Description: {description}")
    logger.log(f"{'='*60}\n")
    logger.log(simulation.store.display())

    _, stop_reason = simulation.run(steps)

    logger.log(f"\n{'='*60}")
    logger.log("SIMULATION COMPLETE")
    logger.log(f"{'='*60}\n")
    logger.log(format_metrics_report(simulation.metrics, stop_reason))

    logger.close()
    return simulation.event_log, simulation.metrics, stop_reason


def analyze_scenario(scenario_path: str, contention_threshold: int) -> Dict:
    """One-shot detection + risk assessment of a scenario's initial state."""
    store, _ = load_scenario(scenario_path)
    report = detect_deadlock(store)
    risk = assess_risk(store, contention_threshold)
    return {
        'description': get_scenario_description(scenario_path),
        'deadlock': report.as_dict(),
        'risk': risk.as_dict(),
        'statuses': {pid: str(status) for pid, status in store.statuses().items()}
    }


def main():
    """Main entry point for the simulator."""
    parser = argparse.ArgumentParser(
        description='Resource Allocation Graph Deadlock Simulator'
    )
    parser.add_argument(
        '--scenario',
        type=str,
        required=True,
        help='Path to scenario JSON file'
    )
    parser.add_argument(
        '--config',
        type=str,
        help='Path to simulator config JSON file'
    )
    parser.add_argument(
        '--steps',
        type=int,
        help='Number of ticks to run (default: config max_steps)'
    )
    parser.add_argument(
        '--recovery',
        choices=RECOVERY_METHODS,
        help='Automatic deadlock resolution (default: none)'
    )
    parser.add_argument(
        '--victim-strategy',
        choices=VICTIM_STRATEGIES,
        help='Victim selection strategy (default: priority)'
    )
    parser.add_argument(
        '--detect-interval',
        type=int,
        help='Ticks between deadlock detection checks (default: 1)'
    )
    parser.add_argument(
        '--no-auto-grant',
        action='store_true',
        help='Do not grant free units to waiting processes each tick'
    )
    parser.add_argument(
        '--log-file',
        type=str,
        help='Also write the log to this file'
    )
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )
    parser.add_argument(
        '--analyze',
        action='store_true',
        help='Print detection and risk reports for the initial state as JSON and exit'
    )

    args = parser.parse_args()

    try:
        base = load_config(args.config) if args.config else SimulatorConfig()
        config = base.merged(
            detect_interval=args.detect_interval,
            recovery_method=args.recovery,
            victim_strategy=args.victim_strategy,
            auto_grant=False if args.no_auto_grant else None,
            verbose=True if args.verbose else None,
            log_file=args.log_file
        )
    except ConfigError as e:
        parser.error(str(e))

    if args.analyze:
        try:
            result = analyze_scenario(args.scenario, config.contention_threshold)
        except ScenarioLoadError as e:
            print(f"[ERROR] Failed to load scenario: {e}")
            return 1
        print(json.dumps(result, indent=2))
        return 0

    _, _, stop_reason = run_simulation(args.scenario, config, args.steps)
    return 1 if stop_reason.startswith("Scenario load failed") else 0


if __name__ == '__main__':
    sys.exit(main())
