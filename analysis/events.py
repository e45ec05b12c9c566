"""
Event Model for the Resource Allocation Graph Simulator.

Defines event types for tracking simulation actions and an ordered history
of them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class EventType(Enum):
    """Types of events in the simulation."""
    OPERATION = "operation"
    REJECTED = "rejected"
    GRANT = "grant"
    INGEST = "ingest"
    DEADLOCK = "deadlock"
    RISK = "risk"
    RECOVERY = "recovery"
    RESET = "reset"


@dataclass
class SimulationEvent:
    """
    Represents a single event in the simulation.

    Attributes:
        step: Simulation step when event occurred
        event_type: Type of event
        process_id: Process involved in event (if applicable)
        resource_id: Resource involved (if applicable)
        message: Human-readable description
        reason: Reason for rejection (if applicable)
        timestamp: Wall-clock time the event was recorded
    """
    step: int
    event_type: EventType
    process_id: Optional[str] = None
    resource_id: Optional[str] = None
    message: str = ""
    reason: str = ""
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        """Format event for logging."""
        base = f"Step {self.step}"

        if self.event_type == EventType.REJECTED:
            return f"{base}: {self.message} - REJECTED ({self.reason})"
        elif self.event_type == EventType.GRANT:
            return f"{base}: {self.resource_id} granted to {self.process_id}"
        elif self.event_type == EventType.DEADLOCK:
            return f"{base}: DEADLOCK DETECTED ({self.message})"
        elif self.event_type == EventType.RECOVERY:
            return f"{base}: RECOVERY ({self.message})"
        else:
            return f"{base}: {self.event_type.value}: {self.message}"


@dataclass
class EventLog:
    """Collection of simulation events."""
    events: list = None

    def __post_init__(self):
        if self.events is None:
            self.events = []

    def add(self, event: SimulationEvent) -> None:
        """Add an event to the log."""
        self.events.append(event)

    def get_events_by_type(self, event_type: EventType) -> list:
        """Get all events of a specific type."""
        return [e for e in self.events if e.event_type == event_type]

    def get_events_by_step(self, step: int) -> list:
        """Get all events from a specific step."""
        return [e for e in self.events if e.step == step]

    def clear(self) -> None:
        self.events = []

    def display(self) -> str:
        """Format all events for display."""
        return "\n".join(str(event) for event in self.events)
