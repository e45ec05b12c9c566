"""
Process model for the Resource Allocation Graph Simulator.

Represents a process record competing for resources. Processes are inert data:
they are never executed, only mutated through the allocation store.
"""

from dataclasses import dataclass, field
from typing import List, Optional
from enum import Enum


class ProcessState(Enum):
    """Process states as seen by callers."""
    RUNNING = "RUNNING"
    WAITING = "WAITING"
    BLOCKED = "BLOCKED"
    DEADLOCKED = "DEADLOCKED"


@dataclass(frozen=True)
class ProcessStatus:
    """
    Derived status of a process.

    Attributes:
        state: One of the ProcessState values
        resource_id: Requested resource when state is WAITING, else None
    """
    state: ProcessState
    resource_id: Optional[str] = None

    def __str__(self) -> str:
        if self.state == ProcessState.WAITING:
            return f"{self.state.value}({self.resource_id})"
        return self.state.value


@dataclass
class Process:
    """
    Represents a process in the resource allocation graph.

    Attributes:
        process_id: Process identifier (unique, e.g. "P1")
        name: Display name
        priority: Priority level (higher value = lower priority for victim selection)
        held: Resource ids currently allocated to this process, one unit each
        waiting_for: Resource id of the single outstanding request, if any
        blocked: Set when the process lost a unit to preemption (or was observed blocked)
    """
    process_id: str
    name: str
    priority: int = 1
    held: List[str] = field(default_factory=list)
    waiting_for: Optional[str] = None
    blocked: bool = False

    def holds(self, resource_id: str) -> bool:
        """Check whether this process holds a unit of the resource."""
        return resource_id in self.held

    def is_waiting(self) -> bool:
        return self.waiting_for is not None

    def holding_count(self) -> int:
        return len(self.held)

    def copy(self) -> "Process":
        """Independent copy (lists are not shared)."""
        return Process(
            process_id=self.process_id,
            name=self.name,
            priority=self.priority,
            held=self.held.copy(),
            waiting_for=self.waiting_for,
            blocked=self.blocked
        )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"Process(id={self.process_id}, priority={self.priority}, "
            f"held={self.held}, waiting_for={self.waiting_for})"
        )
