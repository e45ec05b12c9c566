"""
Report types returned by the graph reducer, detector and risk assessor.

All reports are plain immutable data so they can be handed to a presentation
layer or compared across runs.
"""

from dataclasses import dataclass, field
from typing import List, Tuple


REQUEST_EDGE = "request"
ALLOCATION_EDGE = "allocation"


@dataclass(frozen=True)
class Edge:
    """
    Directed edge of the resource allocation graph.

    A request edge points process -> resource, an allocation edge points
    resource -> process.
    """
    source: str
    target: str
    kind: str

    def __str__(self) -> str:
        return f"{self.source} -> {self.target}"


@dataclass(frozen=True)
class DeadlockReport:
    """
    Result of one detection run (the current deadlock state).

    Attributes:
        detected: True if at least one process can never finish
        deadlocked_processes: Process ids left unfinished by the reduction (store order)
        deadlocked_resources: Resources requested by deadlocked processes (store order)
        explanation_edges: Allocation-graph edges among the deadlocked set
        cycle: Alternating process/resource trace, empty for a knot or no deadlock
        is_knot: Deadlock without a single-instance simple cycle witness
        timestamp: Logical simulation step the store was at
        revision: Store mutation counter the report was computed from
    """
    detected: bool
    deadlocked_processes: Tuple[str, ...] = ()
    deadlocked_resources: Tuple[str, ...] = ()
    explanation_edges: Tuple[Edge, ...] = ()
    cycle: Tuple[str, ...] = ()
    is_knot: bool = False
    timestamp: int = 0
    revision: int = 0

    def involves(self, process_id: str) -> bool:
        return process_id in self.deadlocked_processes

    def describe(self) -> str:
        """One-line human-readable summary."""
        if not self.detected:
            return "No deadlock detected"
        if self.cycle:
            trace = " -> ".join(self.cycle + (self.cycle[0],))
            return f"Circular wait detected in {trace}"
        procs = ", ".join(self.deadlocked_processes)
        return f"Deadlock knot among [{procs}] (multi-instance resources, no single cycle)"

    def as_dict(self) -> dict:
        """Plain dict for JSON output."""
        return {
            'detected': self.detected,
            'deadlocked_processes': list(self.deadlocked_processes),
            'deadlocked_resources': list(self.deadlocked_resources),
            'explanation_edges': [
                {'source': e.source, 'target': e.target, 'kind': e.kind}
                for e in self.explanation_edges
            ],
            'cycle': list(self.cycle),
            'is_knot': self.is_knot,
            'timestamp': self.timestamp
        }


@dataclass(frozen=True)
class ResolutionOption:
    """A suggested resolution shown alongside a risk report."""
    name: str
    description: str
    impact: str
    recommended: bool


@dataclass(frozen=True)
class RiskReport:
    """
    Result of one risk assessment.

    Attributes:
        score: Risk in [0, 1]
        contention_level: "moderate" or "high"
        recommended_strategy: "preemption", "allocation ordering" or "monitor"
        chains: Waiting chains found (each a tuple of process ids). Enumeration
            stops at processes + resources chains, where the score saturates
        chains_capped: True when enumeration stopped at that limit, so more
            chains may exist than are listed
        resource_usage: (resource_id, allocation + wait count) per resource
        explanation: Human-readable analysis lines
        resolution_options: Suggested actions
        prevention_tips: General advice, scaled with risk and contention
    """
    score: float
    contention_level: str
    recommended_strategy: str
    chains: Tuple[Tuple[str, ...], ...] = ()
    chains_capped: bool = False
    resource_usage: Tuple[Tuple[str, int], ...] = ()
    explanation: Tuple[str, ...] = ()
    resolution_options: Tuple[ResolutionOption, ...] = field(default_factory=tuple)
    prevention_tips: Tuple[str, ...] = ()

    @property
    def chain_count(self) -> int:
        return len(self.chains)

    def as_dict(self) -> dict:
        """Plain dict for JSON output."""
        return {
            'score': self.score,
            'contention_level': self.contention_level,
            'recommended_strategy': self.recommended_strategy,
            'chains': [list(chain) for chain in self.chains],
            'chains_capped': self.chains_capped,
            'resource_usage': dict(self.resource_usage),
            'explanation': list(self.explanation),
            'resolution_options': [
                {
                    'name': o.name,
                    'description': o.description,
                    'impact': o.impact,
                    'recommended': o.recommended
                }
                for o in self.resolution_options
            ],
            'prevention_tips': list(self.prevention_tips)
        }
